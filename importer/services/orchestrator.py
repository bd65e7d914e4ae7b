"""
Import Orchestrator - runs the pipeline phases for one job.

Phase sequence:
    clear (optional) -> discovery -> sideload (optional) -> crawl
    -> rules -> templates -> transform (optional) -> completed

Before and after every phase the job's cancellation token (and the
persisted cancel flag) is checked; a cancelled job ends as ``cancelled``
without running further phases. Any other exception ends the job as
``failed`` with the error as its progress message. run() never raises, so
a failing job cannot take the worker down with it.

Repository imports skip discovery and sideloading; their crawl phase is the
source scan.
"""

import logging
from typing import Any, Callable, Dict, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.utils import timezone

from importer.exceptions import ImportCancelled
from importer.fetchers import HttpFetcher, SourceRepositoryScanner, SPARenderer
from importer.models import (
    ImportJob,
    ImportJobStatus,
    ImportPhase,
    SourceKind,
    default_import_config,
)
from importer.monitoring import add_import_breadcrumb, record_import_error
from importer.services.content_client import ContentServiceClient, get_content_client
from importer.services.crawl_engine import CrawlEngine, SourceScanEngine
from importer.services.data_cleaner import clear_imported_data
from importer.services.discovery import AssetSideloader, DiscoveryEngine
from importer.services.fingerprint import get_fingerprinter
from importer.services.job_registry import JobRegistry, get_job_registry
from importer.services.media_store import MediaStore
from importer.services.rule_generator import RuleGenerator
from importer.services.template_generator import TemplateGenerator
from importer.services.tenancy import TenantContext, job_logger
from importer.services.transformation import TransformationEngine

logger = logging.getLogger(__name__)


def default_fetcher_factory(source_kind: str):
    if source_kind == SourceKind.SPA:
        return SPARenderer()
    return HttpFetcher()


class ImportOrchestrator:
    """
    Drives one import job through its phases.

    Collaborators are injected so that a worker shares one registry and one
    content client across jobs; fetchers, scanners and media stores are
    created per job through factories.

    Usage:
        orchestrator = ImportOrchestrator(ctx, registry=get_job_registry())
        status = await orchestrator.run(job_id)
    """

    def __init__(
        self,
        ctx: TenantContext,
        registry: Optional[JobRegistry] = None,
        client: Optional[ContentServiceClient] = None,
        fetcher_factory: Optional[Callable[[str], Any]] = None,
        discovery_fetcher_factory: Optional[Callable[[], Any]] = None,
        scanner_factory: Optional[Callable[[], SourceRepositoryScanner]] = None,
        media_store_factory: Optional[Callable[[Any], MediaStore]] = None,
        templates_dir: Optional[str] = None,
    ):
        self.ctx = ctx
        self.registry = registry or get_job_registry()
        self.client = client or get_content_client()
        self.fetcher_factory = fetcher_factory or default_fetcher_factory
        self.discovery_fetcher_factory = discovery_fetcher_factory or HttpFetcher
        self.scanner_factory = scanner_factory or SourceRepositoryScanner
        self.media_store_factory = media_store_factory or MediaStore
        self.templates_dir = templates_dir

    async def run(self, job_id) -> str:
        """
        Execute every phase of a job.

        Returns:
            The job's final status
        """
        log = job_logger(logger, self.ctx, job_id)
        self.registry.register(job_id)
        try:
            job = await self._load_job(job_id)
            if job is None:
                log.error("Import job not found")
                return ImportJobStatus.FAILED
            if job.is_terminal:
                log.info(f"Import job already {job.status}, not running it again")
                return job.status

            await self._mark_started(job_id)
            log.info(f"Import started for {job.source_url} ({job.source_kind})")

            await self._execute(job, log)

            await self._set_status(job_id, ImportJobStatus.COMPLETED, "Import completed.")
            log.info("Import completed")

        except ImportCancelled:
            log.info("Import cancelled")
            await self._set_status(job_id, ImportJobStatus.CANCELLED, "Import cancelled.")

        except Exception as e:
            log.error(f"Import failed: {type(e).__name__}: {e}")
            await sync_to_async(record_import_error)(self.ctx, job_id, ImportPhase.JOB, e)
            await self._set_status(
                job_id, ImportJobStatus.FAILED, f"Import failed: {e}", error_message=str(e)
            )

        finally:
            self.registry.unregister(job_id)

        return await self._current_status(job_id)

    async def _execute(self, job: ImportJob, log):
        job_id = job.id
        config = {**default_import_config(), **(job.config or {})}
        kind = job.source_kind

        await self._checkpoint(job_id)

        if config.get("clear_existing"):
            await self._phase(job_id, ImportPhase.CLEAR)
            await self._set_status(job_id, ImportJobStatus.CLEARING, "Clearing existing imported data")
            cleared = await sync_to_async(clear_imported_data)(self.ctx, self.templates_dir)
            log.info(f"Cleared existing data: {cleared.to_dict()}")
            await self._checkpoint(job_id)

        if kind != SourceKind.REPOSITORY:
            await self._phase(job_id, ImportPhase.DISCOVERY)
            async with self.discovery_fetcher_factory() as fetcher:
                platform_info = await DiscoveryEngine(
                    self.ctx, job_id, job.source_url, fetcher, self.client
                ).run()
            await self._checkpoint(job_id)

            if config.get("sideload_assets"):
                await self._phase(job_id, ImportPhase.SIDELOAD)
                await AssetSideloader(
                    self.ctx, job_id, media_store=self.media_store_factory(job_id)
                ).run(platform_info)
                await self._checkpoint(job_id)

        await self._phase(job_id, ImportPhase.CRAWL)
        crawl = await self._crawl(job, config)
        log.info(f"Crawl phase: {crawl.pages_crawled} pages, {crawl.errors} errors")
        self._raise_if_cancelled(job_id, crawl.cancelled)
        await self._checkpoint(job_id)

        await self._phase(job_id, ImportPhase.RULES)
        rules = await RuleGenerator(self.ctx, job_id, self.client, self.registry).run()
        self._raise_if_cancelled(job_id, rules.cancelled)
        await self._checkpoint(job_id)

        await self._phase(job_id, ImportPhase.TEMPLATES)
        templates = await TemplateGenerator(
            self.ctx, job_id, self.client, self.registry, templates_dir=self.templates_dir
        ).run()
        self._raise_if_cancelled(job_id, templates.cancelled)
        await self._checkpoint(job_id)

        if config.get("run_transform", True):
            await self._phase(job_id, ImportPhase.TRANSFORM)
            transform = await TransformationEngine(
                self.ctx,
                job_id,
                self.client,
                self.registry,
                media_store=self.media_store_factory(job_id),
            ).run()
            self._raise_if_cancelled(job_id, transform.cancelled)
            await self._checkpoint(job_id)

    async def _crawl(self, job: ImportJob, config: Dict[str, Any]):
        max_pages = config.get("max_pages") or self._default_budget(job.source_kind)

        if job.source_kind == SourceKind.REPOSITORY:
            return await SourceScanEngine(
                self.ctx,
                job.id,
                job.source_url,
                self.registry,
                scanner=self.scanner_factory(),
                max_pages=max_pages,
            ).run()

        delay = (
            getattr(settings, "IMPORTER_SPA_CRAWL_DELAY", 0.2)
            if job.source_kind == SourceKind.SPA
            else getattr(settings, "IMPORTER_CRAWL_DELAY", 0.1)
        )
        async with self.fetcher_factory(job.source_kind) as fetcher:
            return await CrawlEngine(
                self.ctx,
                job.id,
                job.source_url,
                fetcher,
                self.registry,
                max_pages=max_pages,
                delay=delay,
                fingerprinter=get_fingerprinter(config.get("fingerprint_mode") or "structure"),
            ).run()

    @staticmethod
    def _default_budget(source_kind: str) -> int:
        if source_kind == SourceKind.SPA:
            return getattr(settings, "IMPORTER_SPA_MAX_PAGES", 50)
        return getattr(settings, "IMPORTER_DEFAULT_MAX_PAGES", 500)

    async def _checkpoint(self, job_id):
        if await self.registry.poll(self.ctx, job_id):
            raise ImportCancelled(job_id)

    @staticmethod
    def _raise_if_cancelled(job_id, cancelled: bool):
        if cancelled:
            raise ImportCancelled(job_id)

    async def _phase(self, job_id, phase: str):
        add_import_breadcrumb(self.ctx.tenant, job_id, phase, f"Starting {phase} phase")

    async def _load_job(self, job_id) -> Optional[ImportJob]:
        @sync_to_async
        def load():
            return ImportJob.objects.using(self.ctx.db_alias).filter(pk=job_id).first()

        return await load()

    async def _mark_started(self, job_id):
        @sync_to_async
        def mark():
            ImportJob.objects.using(self.ctx.db_alias).filter(
                pk=job_id, started_at__isnull=True
            ).update(started_at=timezone.now())

        await mark()

    async def _set_status(self, job_id, status: str, message: str, **fields):
        await sync_to_async(ImportJob.set_status)(
            self.ctx.db_alias, job_id, status, message, **fields
        )

    async def _current_status(self, job_id) -> str:
        @sync_to_async
        def load():
            return (
                ImportJob.objects.using(self.ctx.db_alias)
                .filter(pk=job_id)
                .values_list("status", flat=True)
                .first()
            )

        return await load() or ImportJobStatus.FAILED
