"""
Rule Generator - extraction rules per fingerprint group.

For each group of staged pages sharing a fingerprint:
1. send the sample page's analysis markup to the content service for a
   page-type classification and field -> selector map
2. validate the selectors against up to five group members
3. store selector map, regions and validation report on the job's ruleset
4. tag every group member with the detected page type

A group the content service cannot analyse is recorded against the job and
skipped; the rest of the groups still get rules. Repository imports analyse
page components from source instead, and their rules carry literal values,
so there is nothing to validate.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from asgiref.sync import sync_to_async

from importer.exceptions import ImportPhaseError
from importer.models import (
    ImportJob,
    ImportJobStatus,
    ImportPhase,
    SourceKind,
    StagedItem,
)
from importer.monitoring import record_import_error
from importer.services.content_client import ContentServiceClient, ContentServiceError
from importer.services.job_registry import JobRegistry
from importer.services.selector_validation import SelectorValidator
from importer.services.tenancy import TenantContext, job_logger

logger = logging.getLogger(__name__)


@dataclass
class PageGroup:
    """Staged items sharing one fingerprint, in staging order."""

    fingerprint: str
    member_ids: List[int]
    member_urls: List[str]

    @property
    def sample_id(self) -> int:
        return self.member_ids[0]

    @property
    def sample_url(self) -> str:
        return self.member_urls[0]


@dataclass
class RuleGenerationResult:
    groups_total: int = 0
    groups_analyzed: int = 0
    groups_failed: int = 0
    cancelled: bool = False


class RuleGenerator:
    """Builds the ruleset for a job from its staged pages."""

    def __init__(
        self,
        ctx: TenantContext,
        job_id,
        client: ContentServiceClient,
        registry: JobRegistry,
        validator: Optional[SelectorValidator] = None,
    ):
        self.ctx = ctx
        self.job_id = job_id
        self.client = client
        self.registry = registry
        self.validator = validator or SelectorValidator()
        self.log = job_logger(logger, ctx, job_id)

    async def run(self) -> RuleGenerationResult:
        job = await self._load_job()
        groups = await self.load_groups()
        result = RuleGenerationResult(groups_total=len(groups))

        ruleset = dict(job.ruleset or {})
        ruleset.setdefault("root_url", job.source_url)
        types = ruleset.setdefault("types", {})

        await self._set_status(
            ImportJobStatus.GENERATING_RULES, f"Analyzing {len(groups)} page groups"
        )

        for index, group in enumerate(groups, start=1):
            if await self.registry.poll(self.ctx, self.job_id):
                result.cancelled = True
                self.log.info("Rule generation stopped: job cancelled")
                break

            try:
                entry = await self.analyze_group(group, job.source_kind, ruleset)
            except Exception as e:
                result.groups_failed += 1
                await sync_to_async(record_import_error)(
                    self.ctx,
                    self.job_id,
                    ImportPhase.RULES,
                    e,
                    url=group.sample_url,
                    extra_context={"fingerprint": group.fingerprint},
                )
                continue

            types[group.fingerprint] = entry
            await self._save_group(ruleset, group, entry["page_type"])
            result.groups_analyzed += 1
            self.log.info(
                f"Group {index}/{len(groups)} ({group.fingerprint[:8]}): "
                f"{entry['page_type']}, {len(entry['selector_map'])} fields"
            )

        if not result.cancelled:
            await self._set_status(
                ImportJobStatus.RULES_GENERATED,
                f"Generated rules for {result.groups_analyzed} of {result.groups_total} page groups",
            )
        return result

    async def analyze_group(
        self, group: PageGroup, source_kind: str, ruleset: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Analyse one group and validate its rules. Raises on service failure."""
        samples = await self._load_samples(group)
        sample = samples[0]

        if source_kind == SourceKind.REPOSITORY:
            analysis = await self.client.analyze_source(sample["raw_html"], sample["url"])
        else:
            analysis = await self.client.analyze_page(
                sample["analysis_html"],
                context={
                    "url": sample["url"],
                    "platform": ruleset.get("platform"),
                    "member_count": len(group.member_ids),
                },
            )

        if not analysis.success:
            raise ContentServiceError(f"Page analysis failed: {analysis.error}")

        selector_map = analysis.selector_map
        validation = {}
        failures = []
        if source_kind != SourceKind.REPOSITORY and selector_map:
            report = self.validator.validate(
                selector_map,
                [(s["url"], s["stripped_html"]) for s in samples],
            )
            validation = {name: result.to_dict() for name, result in report.items()}
            failures = self.validator.failures(report)

        return {
            "page_type": analysis.page_type,
            "sample_url": group.sample_url,
            "sample_id": group.sample_id,
            "member_count": len(group.member_ids),
            "selector_map": selector_map,
            "regions": [region.to_dict() for region in analysis.regions],
            "validation": validation,
            "validation_report": failures,
            "confidence": analysis.confidence,
            "summary": analysis.summary,
            "route_slug": analysis.route_slug,
            "template_id": None,
            "is_duplicate": False,
        }

    async def load_groups(self) -> List[PageGroup]:
        """Fingerprint groups of the job, sorted by fingerprint."""

        @sync_to_async
        def load():
            rows = (
                StagedItem.objects.using(self.ctx.db_alias)
                .filter(job_id=self.job_id)
                .exclude(fingerprint="")
                .order_by("fingerprint", "id")
                .values_list("id", "url", "fingerprint")
            )
            groups: Dict[str, PageGroup] = {}
            for item_id, url, fingerprint in rows:
                group = groups.setdefault(fingerprint, PageGroup(fingerprint, [], []))
                group.member_ids.append(item_id)
                group.member_urls.append(url)
            return list(groups.values())

        return await load()

    async def _load_samples(self, group: PageGroup) -> List[Dict[str, Any]]:
        ids = group.member_ids[: self.validator.max_samples]

        @sync_to_async
        def load():
            rows = StagedItem.objects.using(self.ctx.db_alias).filter(id__in=ids).values(
                "id", "url", "raw_html", "stripped_html", "analysis_html"
            )
            by_id = {row["id"]: row for row in rows}
            return [by_id[i] for i in ids if i in by_id]

        samples = await load()
        if not samples:
            raise ImportPhaseError(f"Group {group.fingerprint} has no staged items")
        return samples

    async def _load_job(self) -> ImportJob:
        @sync_to_async
        def load():
            return ImportJob.objects.using(self.ctx.db_alias).filter(pk=self.job_id).first()

        job = await load()
        if job is None:
            raise ImportPhaseError(f"Import job {self.job_id} not found")
        return job

    async def _save_group(self, ruleset: Dict[str, Any], group: PageGroup, page_type: str):
        @sync_to_async
        def save():
            ImportJob.objects.using(self.ctx.db_alias).filter(pk=self.job_id).update(
                ruleset=ruleset
            )
            StagedItem.objects.using(self.ctx.db_alias).filter(
                job_id=self.job_id, fingerprint=group.fingerprint
            ).update(item_type=page_type)

        await save()

    async def _set_status(self, status: str, message: str):
        await sync_to_async(ImportJob.set_status)(self.ctx.db_alias, self.job_id, status, message)
