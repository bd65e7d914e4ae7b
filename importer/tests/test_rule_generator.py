"""
Tests for rule generation per fingerprint group.
"""

from asgiref.sync import async_to_sync
from django.test import TestCase

from importer.models import ImportJob, ImportJobError, ImportJobStatus, StagedItem
from importer.services.job_registry import JobRegistry
from importer.services.rule_generator import RuleGenerator
from importer.services.tenancy import resolve_tenant
from importer.tests.fakes import ROOT_URL, FakeContentClient, product_html, stage_site


class RuleGeneratorTests(TestCase):
    def setUp(self):
        self.ctx = resolve_tenant("default")
        self.job = ImportJob.objects.create(source_url=f"{ROOT_URL}/")
        self.registry = JobRegistry()
        self.registry.register(self.job.id)
        self.client = FakeContentClient()

    def generate(self):
        generator = RuleGenerator(self.ctx, self.job.id, self.client, self.registry)
        return async_to_sync(generator.run)()

    def test_one_analysis_per_group(self):
        stage_site(self.job)

        result = self.generate()

        self.assertEqual(result.groups_total, 3)
        self.assertEqual(result.groups_analyzed, 3)
        self.assertEqual(len(self.client.calls["analyze_page"]), 3)

        self.job.refresh_from_db()
        self.assertEqual(self.job.status, ImportJobStatus.RULES_GENERATED)
        types = self.job.ruleset["types"]
        self.assertEqual(len(types), 3)
        self.assertEqual(self.job.ruleset["root_url"], f"{ROOT_URL}/")

    def test_product_group_entry(self):
        stage_site(self.job)
        self.generate()

        widget = StagedItem.objects.get(job=self.job, url=f"{ROOT_URL}/products/widget")
        entry = ImportJob.objects.get(pk=self.job.id).ruleset["types"][widget.fingerprint]

        self.assertEqual(entry["page_type"], "product")
        self.assertEqual(entry["member_count"], 2)
        self.assertEqual(entry["selector_map"]["price"]["selector"], "span.price")
        self.assertEqual(entry["validation"]["title"]["success_rate"], 1.0)
        self.assertIsNone(entry["template_id"])
        self.assertFalse(entry["is_duplicate"])
        self.assertEqual(widget.item_type, "product")

    def test_brittle_selector_is_kept_and_reported(self):
        pages = {
            f"{ROOT_URL}/products/widget": product_html("Widget", "19.99"),
            f"{ROOT_URL}/products/gadget": product_html("Gadget", "5.00", image=False),
        }
        stage_site(self.job, pages)
        self.generate()

        types = ImportJob.objects.get(pk=self.job.id).ruleset["types"]
        entry = next(iter(types.values()))
        self.assertIn("image", entry["selector_map"])
        self.assertEqual(entry["validation"]["image"]["success_rate"], 0.5)
        self.assertTrue(entry["validation"]["image"]["is_brittle"])
        self.assertIn("image", [f["field"] for f in entry["validation_report"]])

    def test_failed_group_is_recorded_and_others_continue(self):
        stage_site(self.job)
        self.client.fail_analysis_for = {f"{ROOT_URL}/about"}

        result = self.generate()

        self.assertEqual(result.groups_analyzed, 2)
        self.assertEqual(result.groups_failed, 1)
        error = ImportJobError.objects.get(job=self.job)
        self.assertEqual(error.phase, "rules")
        self.assertEqual(error.error_type, "ContentServiceError")
        self.assertEqual(len(ImportJob.objects.get(pk=self.job.id).ruleset["types"]), 2)

    def test_cancelled_before_first_group(self):
        stage_site(self.job)
        self.registry.cancel(self.job.id)

        result = self.generate()

        self.assertTrue(result.cancelled)
        self.assertEqual(self.client.calls["analyze_page"], [])
        self.assertNotEqual(
            ImportJob.objects.get(pk=self.job.id).status, ImportJobStatus.RULES_GENERATED
        )

    def test_repository_groups_use_source_analysis(self):
        self.job.source_kind = "repository"
        self.job.save()
        StagedItem.objects.create(
            job=self.job,
            url="src/pages/About.tsx",
            raw_html="export default () => <h1>About</h1>",
            fingerprint="a" * 64,
        )

        self.generate()

        entry = ImportJob.objects.get(pk=self.job.id).ruleset["types"]["a" * 64]
        self.assertEqual(self.client.calls["analyze_source"], ["src/pages/About.tsx"])
        self.assertEqual(entry["selector_map"]["title"]["value"], "About.tsx")
        self.assertEqual(entry["validation"], {})
