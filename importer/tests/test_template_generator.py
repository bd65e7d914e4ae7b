"""
Tests for template generation and cross-group template sharing.
"""

import shutil
import tempfile
from pathlib import Path

from asgiref.sync import async_to_sync
from django.test import SimpleTestCase, TestCase

from importer.exceptions import ImportPhaseError
from importer.models import ImportJob, ImportJobError, ImportJobStatus, StagedItem, Template
from importer.services.content_client import (
    ComparisonResult,
    ContentServiceError,
    TemplateCodeResult,
)
from importer.services.job_registry import JobRegistry
from importer.services.rule_generator import RuleGenerator
from importer.services.template_generator import (
    TemplateGenerator,
    infer_region_type,
    region_markup,
    regions_from_selector_map,
)
from importer.services.tenancy import resolve_tenant
from importer.tests.fakes import ROOT_URL, FakeContentClient, stage_site


class RegionHelperTests(SimpleTestCase):
    def test_infer_region_type(self):
        self.assertEqual(infer_region_type("hero_image"), "image")
        self.assertEqual(infer_region_type("body"), "richtext")
        self.assertEqual(infer_region_type("about_text"), "richtext")
        self.assertEqual(infer_region_type("title"), "text")
        self.assertEqual(infer_region_type("summary", {"type": "richtext"}), "richtext")

    def test_regions_from_selector_map(self):
        regions = regions_from_selector_map(
            {"product_title": {"selector": "h1"}, "gallery": {"selector": "img", "multiple": True}}
        )
        self.assertEqual(regions, [
            {"name": "product_title", "label": "Product Title", "type": "text", "multiple": False},
            {"name": "gallery", "label": "Gallery", "type": "image", "multiple": True},
        ])

    def test_region_markup(self):
        self.assertEqual(
            region_markup({"name": "title", "type": "text", "multiple": False}),
            '<span data-cms-region="title" data-cms-type="text">{{ content.title }}</span>',
        )
        self.assertIn("| safe", region_markup({"name": "body", "type": "richtext", "multiple": False}))
        gallery = region_markup({"name": "gallery", "type": "image", "multiple": True})
        self.assertTrue(gallery.startswith("{% for img in content.gallery %}"))


class TemplateGeneratorTests(TestCase):
    def setUp(self):
        self.ctx = resolve_tenant("default")
        self.job = ImportJob.objects.create(source_url=f"{ROOT_URL}/")
        self.registry = JobRegistry()
        self.templates_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.templates_dir, True)
        self.client = FakeContentClient()
        stage_site(self.job)
        async_to_sync(RuleGenerator(self.ctx, self.job.id, self.client, self.registry).run)()

    def generate(self):
        generator = TemplateGenerator(
            self.ctx, self.job.id, self.client, self.registry, templates_dir=self.templates_dir
        )
        return async_to_sync(generator.run)()

    def test_one_template_per_layout(self):
        result = self.generate()

        self.assertEqual(result.templates_created, 3)
        self.assertEqual(result.duplicates, 0)
        self.assertEqual(Template.objects.count(), 3)
        self.assertEqual(
            ImportJob.objects.get(pk=self.job.id).status, ImportJobStatus.TEMPLATES_GENERATED
        )

        # home and about are both "page": compared once, product never compared
        self.assertEqual(len(self.client.calls["compare_structures"]), 1)

    def test_template_record_and_file(self):
        self.generate()

        widget = StagedItem.objects.get(job=self.job, url=f"{ROOT_URL}/products/widget")
        entry = ImportJob.objects.get(pk=self.job.id).ruleset["types"][widget.fingerprint]
        template = Template.objects.get(pk=entry["template_id"])

        self.assertEqual(template.filename, f"imported/product-{widget.fingerprint[:12]}.njk")
        self.assertEqual(template.name, "Imported Product")
        self.assertEqual(template.content_type, "products")
        self.assertIn('data-cms-region="price"', template.content)
        self.assertIn("[[region:content]]", template.content)
        self.assertEqual(
            [region["name"] for region in template.regions],
            ["title", "price", "image", "description"],
        )
        self.assertEqual(
            (Path(self.templates_dir) / template.filename).read_text(encoding="utf-8"),
            template.content,
        )
        self.assertEqual(widget.metadata["template_id"], template.id)

    def test_sharing_layouts_reuse_template(self):
        self.client.can_share = True

        result = self.generate()

        self.assertEqual(result.templates_created, 2)
        self.assertEqual(result.duplicates, 1)
        types = ImportJob.objects.get(pk=self.job.id).ruleset["types"]
        page_entries = [e for e in types.values() if e["page_type"] == "page"]
        self.assertEqual(page_entries[0]["template_id"], page_entries[1]["template_id"])
        self.assertEqual(sorted(e["is_duplicate"] for e in page_entries), [False, True])
        self.assertEqual(self.client.calls["generate_template"].count("page"), 1)

    def test_second_page_template_is_numbered(self):
        self.generate()
        names = sorted(Template.objects.filter(content_type="pages").values_list("name", flat=True))
        self.assertEqual(names, ["Imported Page", "Imported Page (2)"])

    def test_rerun_upserts_by_filename(self):
        self.generate()
        self.generate()
        self.assertEqual(Template.objects.count(), 3)

    def test_generation_failure_is_recorded(self):
        async def fail(*args, **kwargs):
            return TemplateCodeResult(success=False, error="Model refused")

        self.client.generate_template = fail

        result = self.generate()

        self.assertEqual(result.failures, 3)
        self.assertEqual(Template.objects.count(), 0)
        self.assertEqual(ImportJobError.objects.filter(job=self.job, phase="templates").count(), 3)

    def test_comparison_failure_propagates(self):
        async def broken(*args, **kwargs):
            return ComparisonResult(success=False, error="HTTP 502")

        self.client.compare_structures = broken

        with self.assertRaises(ContentServiceError) as raised:
            self.generate()
        self.assertIn("Structure comparison", str(raised.exception))

    def test_missing_ruleset(self):
        ImportJob.objects.filter(pk=self.job.id).update(ruleset={})
        with self.assertRaises(ImportPhaseError):
            self.generate()


class TemplatePathTests(TestCase):
    def setUp(self):
        self.ctx = resolve_tenant("default")
        self.job = ImportJob.objects.create(source_url=f"{ROOT_URL}/")
        self.registry = JobRegistry()
        self.root = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.root, True)
        self.templates_dir = self.root / "templates"
        self.client = FakeContentClient()
        stage_site(self.job)
        async_to_sync(RuleGenerator(self.ctx, self.job.id, self.client, self.registry).run)()

    def generator(self):
        return TemplateGenerator(
            self.ctx, self.job.id, self.client, self.registry, templates_dir=str(self.templates_dir)
        )

    def test_hostile_page_type_stays_in_templates_dir(self):
        job = ImportJob.objects.get(pk=self.job.id)
        for entry in job.ruleset["types"].values():
            entry["page_type"] = "../../escaped"
        job.save(update_fields=["ruleset"])

        async_to_sync(self.generator().run)()

        self.assertEqual([p.name for p in self.root.iterdir()], ["templates"])
        for template in Template.objects.all():
            self.assertTrue(template.filename.startswith("imported/escaped-"))
            self.assertNotIn("..", template.filename)
            self.assertTrue((self.templates_dir / template.filename).is_file())

    def test_write_outside_templates_dir_is_refused(self):
        with self.assertRaises(ImportPhaseError):
            self.generator()._write_file("imported/../../outside.njk", "<main></main>")

        self.assertFalse((self.root / "outside.njk").exists())
