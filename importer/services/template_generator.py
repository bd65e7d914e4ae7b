"""
Template Generator - one render template per distinct page layout.

Walks the ruleset in fingerprint order. Before generating, each group's
sample page is compared with the samples of templates already generated for
the same page type in this job; when the content service says the layouts
can share a template, the group reuses it and is marked as a duplicate.

Generated code is expanded (``[[region:<field>]]`` and ``[[assets]]``
placeholders), written below IMPORTER_TEMPLATES_DIR and upserted as a
Template keyed by its filename, so importing the same site again
updates rather than duplicates.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.utils.text import slugify

from importer.exceptions import ImportPhaseError
from importer.models import (
    ContentModule,
    ImportJob,
    ImportJobStatus,
    ImportPhase,
    SourceKind,
    StagedItem,
    Template,
)
from importer.monitoring import record_import_error
from importer.services.content_client import ContentServiceClient, ContentServiceError
from importer.services.job_registry import JobRegistry
from importer.services.placeholders import expand_placeholders
from importer.services.tenancy import TenantContext, job_logger

logger = logging.getLogger(__name__)

RICHTEXT_KEYWORDS = ("content", "body", "about", "details", "description")
IMAGE_KEYWORDS = ("image", "photo", "thumbnail", "banner", "logo", "gallery")

POST_PAGE_TYPES = {"article", "blog_post", "post"}


def infer_region_type(name: str, rule: Optional[Dict[str, Any]] = None) -> str:
    """Classify a field as richtext, image or text from its name."""
    lowered = name.lower()
    if any(keyword in lowered for keyword in IMAGE_KEYWORDS):
        return "image"
    if any(keyword in lowered for keyword in RICHTEXT_KEYWORDS):
        return "richtext"
    declared = (rule or {}).get("type")
    if declared in ("richtext", "image"):
        return declared
    return "text"


def content_type_for(page_type: str) -> str:
    if page_type == "product":
        return ContentModule.PRODUCTS
    if page_type in POST_PAGE_TYPES:
        return ContentModule.POSTS
    return ContentModule.PAGES


def regions_from_selector_map(selector_map: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Editable region declarations for a template."""
    return [
        {
            "name": name,
            "label": name.replace("_", " ").title(),
            "type": infer_region_type(name, rule),
            "multiple": bool((rule or {}).get("multiple", False)),
        }
        for name, rule in selector_map.items()
    ]


def region_markup(region: Dict[str, Any]) -> str:
    """Editable-region markup for one field."""
    name = region["name"]
    region_type = region["type"]

    if region_type == "image":
        if region["multiple"]:
            return (
                f"{{% for img in content.{name} %}}"
                f'<img data-cms-region="{name}" data-cms-type="image" src="{{{{ img }}}}">'
                "{% endfor %}"
            )
        return (
            f'<img data-cms-region="{name}" data-cms-type="image" '
            f"src=\"{{{{ content.{name} | default('') }}}}\">"
        )
    if region_type == "richtext":
        return (
            f'<div data-cms-region="{name}" data-cms-type="richtext">'
            f"{{{{ content.{name} | safe }}}}</div>"
        )
    if region["multiple"]:
        return (
            f'<ul data-cms-region="{name}" data-cms-type="text">'
            f"{{% for item in content.{name} %}}<li>{{{{ item }}}}</li>{{% endfor %}}</ul>"
        )
    return f'<span data-cms-region="{name}" data-cms-type="text">{{{{ content.{name} }}}}</span>'


def asset_markup(local_assets: Dict[str, Any]) -> str:
    """Link and script tags for sideloaded assets."""
    tags = []
    for path in local_assets.get("stylesheets", []):
        tags.append(f'<link rel="stylesheet" href="{path}">')
    for path in local_assets.get("scripts", []):
        tags.append(f'<script src="{path}"></script>')
    return "\n".join(tags)


@dataclass
class GeneratedTemplate:
    template_id: int
    page_type: str
    fingerprint: str
    markup: str


@dataclass
class TemplateGenerationResult:
    templates_created: int = 0
    duplicates: int = 0
    failures: int = 0
    cancelled: bool = False


class TemplateGenerator:
    """Generates and registers templates for a job's ruleset."""

    def __init__(
        self,
        ctx: TenantContext,
        job_id,
        client: ContentServiceClient,
        registry: JobRegistry,
        templates_dir: Optional[str] = None,
    ):
        self.ctx = ctx
        self.job_id = job_id
        self.client = client
        self.registry = registry
        self.templates_dir = Path(
            templates_dir or getattr(settings, "IMPORTER_TEMPLATES_DIR", "templates")
        )
        self.log = job_logger(logger, ctx, job_id)

    async def run(self) -> TemplateGenerationResult:
        job = await self._load_job()
        ruleset = dict(job.ruleset or {})
        types = ruleset.get("types")
        if not types:
            raise ImportPhaseError(f"Ruleset not found for import job {self.job_id}")

        local_assets = (job.platform_info or {}).get("local_assets", {})
        result = TemplateGenerationResult()
        generated: List[GeneratedTemplate] = []
        type_counts: Dict[str, int] = {}

        await self._set_status(
            ImportJobStatus.GENERATING_TEMPLATES, f"Generating templates for {len(types)} groups"
        )

        for fingerprint in sorted(types):
            if await self.registry.poll(self.ctx, self.job_id):
                result.cancelled = True
                self.log.info("Template generation stopped: job cancelled")
                break

            entry = types[fingerprint]
            page_type = entry.get("page_type") or "page"
            markup = await self._sample_markup(fingerprint, job.source_kind)
            if markup is None:
                self.log.warning(f"No sample markup for group {fingerprint[:8]}, skipping")
                continue

            # Comparison failures propagate and fail the job.
            shared = await self.find_shared_template(markup, page_type, generated)
            if shared is not None:
                entry["template_id"] = shared.template_id
                entry["is_duplicate"] = True
                result.duplicates += 1
                await self._save_group(ruleset, fingerprint, shared.template_id)
                self.log.info(
                    f"Group {fingerprint[:8]} reuses template {shared.template_id} "
                    f"from group {shared.fingerprint[:8]}"
                )
                continue

            type_counts[page_type] = type_counts.get(page_type, 0) + 1
            try:
                template = await self.generate_group_template(
                    fingerprint, entry, markup, local_assets, type_counts[page_type]
                )
            except Exception as e:
                result.failures += 1
                await sync_to_async(record_import_error)(
                    self.ctx,
                    self.job_id,
                    ImportPhase.TEMPLATES,
                    e,
                    url=entry.get("sample_url"),
                    extra_context={"fingerprint": fingerprint, "page_type": page_type},
                )
                continue

            entry["template_id"] = template.id
            entry["is_duplicate"] = False
            generated.append(GeneratedTemplate(template.id, page_type, fingerprint, markup))
            result.templates_created += 1
            await self._save_group(ruleset, fingerprint, template.id)
            self.log.info(f"Generated template {template.filename}")

        if not result.cancelled:
            await self._set_status(
                ImportJobStatus.TEMPLATES_GENERATED,
                f"Generated {result.templates_created} templates "
                f"({result.duplicates} groups reuse an existing one)",
            )
        return result

    async def find_shared_template(
        self, markup: str, page_type: str, generated: List[GeneratedTemplate]
    ) -> Optional[GeneratedTemplate]:
        """
        First earlier template of the same page type whose layout can be shared.

        Raises:
            ContentServiceError: a comparison could not be made
        """
        for candidate in generated:
            if candidate.page_type != page_type:
                continue
            comparison = await self.client.compare_structures(markup, candidate.markup)
            if not comparison.success:
                raise ContentServiceError(
                    f"Structure comparison against template {candidate.template_id} failed: "
                    f"{comparison.error}"
                )
            if comparison.can_share:
                return candidate
        return None

    async def generate_group_template(
        self,
        fingerprint: str,
        entry: Dict[str, Any],
        markup: str,
        local_assets: Dict[str, Any],
        ordinal: int,
    ) -> Template:
        page_type = entry.get("page_type") or "page"
        selector_map = entry.get("selector_map") or {}

        code_result = await self.client.generate_template(
            markup, selector_map, page_type, local_assets=local_assets
        )
        if not code_result.success:
            raise ContentServiceError(f"Template generation failed: {code_result.error}")

        regions = regions_from_selector_map(selector_map)
        by_name = {region["name"]: region for region in regions}

        def resolve(kind, arg):
            if kind == "region" and arg in by_name:
                return region_markup(by_name[arg])
            if kind == "assets":
                return asset_markup(local_assets)
            return None

        code = expand_placeholders(code_result.code, resolve)
        filename = f"imported/{slugify(page_type) or 'page'}-{slugify(fingerprint[:12])}.njk"
        await sync_to_async(self._write_file)(filename, code)

        name = f"Imported {page_type.replace('_', ' ').title()}"
        if ordinal > 1:
            name = f"{name} ({ordinal})"

        @sync_to_async
        def upsert():
            template, _ = Template.objects.using(self.ctx.db_alias).update_or_create(
                filename=filename,
                defaults={
                    "name": name,
                    "content_type": content_type_for(page_type),
                    "content": code,
                    "regions": regions,
                    "blueprint": selector_map,
                    "description": entry.get("summary") or "",
                },
            )
            return template

        return await upsert()

    def _write_file(self, filename: str, code: str):
        root = self.templates_dir.resolve()
        path = (root / filename).resolve()
        if root not in path.parents:
            raise ImportPhaseError(f"Template path {filename} escapes {root}")
        os.makedirs(path.parent, exist_ok=True)
        path.write_text(code, encoding="utf-8")

    async def _sample_markup(self, fingerprint: str, source_kind: str) -> Optional[str]:
        field_name = "raw_html" if source_kind == SourceKind.REPOSITORY else "stripped_html"

        @sync_to_async
        def load():
            return (
                StagedItem.objects.using(self.ctx.db_alias)
                .filter(job_id=self.job_id, fingerprint=fingerprint)
                .order_by("id")
                .values_list(field_name, flat=True)
                .first()
            )

        markup = await load()
        return markup or None

    async def _load_job(self) -> ImportJob:
        @sync_to_async
        def load():
            return ImportJob.objects.using(self.ctx.db_alias).filter(pk=self.job_id).first()

        job = await load()
        if job is None:
            raise ImportPhaseError(f"Import job {self.job_id} not found")
        return job

    async def _save_group(self, ruleset: Dict[str, Any], fingerprint: str, template_id: int):
        @sync_to_async
        def save():
            ImportJob.objects.using(self.ctx.db_alias).filter(pk=self.job_id).update(
                ruleset=ruleset
            )
            items = StagedItem.objects.using(self.ctx.db_alias).filter(
                job_id=self.job_id, fingerprint=fingerprint
            )
            for item in items:
                item.metadata = {**(item.metadata or {}), "template_id": template_id}
                item.save(using=self.ctx.db_alias, update_fields=["metadata", "updated_at"])

        await save()

    async def _set_status(self, status: str, message: str):
        await sync_to_async(ImportJob.set_status)(self.ctx.db_alias, self.job_id, status, message)
