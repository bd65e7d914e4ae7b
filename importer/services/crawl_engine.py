"""
Crawl Engine - breadth-first walk of a site into the staging store.

States per job: queued -> crawling -> crawled | cancelled | failed

Each loop iteration:
1. poll the job registry; stop if the job was cancelled
2. stop if the page budget is spent
3. pop the next URL; skip it if already visited
4. fetch/render it through the injected strategy
5. store raw, stripped and analysis markup plus the structural fingerprint
6. enqueue unseen same-site links
7. persist the page counter and sleep for the politeness delay

A page that fails to fetch is recorded against the job and skipped.
The source-repository variant (SourceScanEngine) stages files from a
checkout instead of walking links and shares the persistence helpers.
"""

import asyncio
import hashlib
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from importer.exceptions import ImportPhaseError
from importer.fetchers.source_scanner import SourceRepositoryScanner
from importer.models import (
    ImportJob,
    ImportJobStatus,
    ImportPhase,
    StagedItem,
    StagedItemStatus,
    TERMINAL_STATUSES,
)
from importer.monitoring import record_import_error
from importer.services.fingerprint import StructuralFingerprint
from importer.services.job_registry import JobRegistry
from importer.services.link_extractor import LinkExtractor
from importer.services.markup import MarkupCleaner
from importer.services.tenancy import TenantContext, job_logger
from importer.utils.urls import normalize_url

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A page could not be fetched or rendered."""


@dataclass
class CrawlResult:
    """Outcome of the crawl phase."""

    pages_crawled: int = 0
    errors: int = 0
    cancelled: bool = False
    urls: List[str] = field(default_factory=list)


@dataclass
class StagedPage:
    url: str
    title: str
    raw_html: str
    stripped_html: str
    analysis_html: str
    fingerprint: str
    item_type: str = ""
    metadata: Dict = field(default_factory=dict)


class CrawlEngine:
    """
    Breadth-first crawler bounded by a page budget.

    The fetcher is any object with ``async fetch(url, is_root) -> FetchResponse``
    (HttpFetcher or SPARenderer); the caller owns its lifetime.
    """

    PROGRESS_EVERY = 10
    TITLE_MAX_LENGTH = 255

    def __init__(
        self,
        ctx: TenantContext,
        job_id,
        root_url: str,
        fetcher,
        registry: JobRegistry,
        max_pages: Optional[int] = None,
        delay: Optional[float] = None,
        fingerprinter: Optional[StructuralFingerprint] = None,
        cleaner: Optional[MarkupCleaner] = None,
        link_extractor: Optional[LinkExtractor] = None,
    ):
        self.ctx = ctx
        self.job_id = job_id
        self.root_url = root_url
        self.fetcher = fetcher
        self.registry = registry
        self.max_pages = max_pages or getattr(settings, "IMPORTER_DEFAULT_MAX_PAGES", 500)
        self.delay = (
            delay if delay is not None else getattr(settings, "IMPORTER_CRAWL_DELAY", 0.1)
        )
        self.fingerprinter = fingerprinter or StructuralFingerprint()
        self.cleaner = cleaner or MarkupCleaner()
        self.link_extractor = link_extractor or LinkExtractor()
        self.log = job_logger(logger, ctx, job_id)

    async def run(self) -> CrawlResult:
        root = normalize_url(self.root_url, self.root_url)
        if root is None:
            raise ImportPhaseError(f"Root URL cannot be crawled: {self.root_url}")

        result = CrawlResult()
        queue = deque([root])
        queued = {root}
        visited = set()

        await self._set_status(ImportJobStatus.CRAWLING, f"Crawling {root}")
        self.log.info(f"Crawl started at {root} (budget {self.max_pages} pages)")

        while queue:
            if await self.registry.poll(self.ctx, self.job_id):
                result.cancelled = True
                self.log.info("Crawl stopped: job cancelled")
                break
            if result.pages_crawled >= self.max_pages:
                self.log.info(f"Page budget of {self.max_pages} reached")
                break

            url = queue.popleft()
            if url in visited:
                continue
            visited.add(url)

            try:
                response = await self.fetcher.fetch(url, is_root=(url == root))
                if not response.success:
                    raise FetchError(response.error or f"HTTP {response.status_code}")

                page = self.build_page(url, response.content, response.url or url)
                page.metadata["strategy"] = response.strategy
                await self._save_page(page)
            except Exception as e:
                result.errors += 1
                await self._record_error(e, url)
                continue

            result.pages_crawled += 1
            result.urls.append(url)
            await self._update_progress(result.pages_crawled)

            for link in self.link_extractor.extract_links(
                response.content, response.url or url, self.root_url
            ):
                if link.url not in queued and link.url not in visited:
                    queue.append(link.url)
                    queued.add(link.url)

            if self.delay:
                await asyncio.sleep(self.delay)

        if not result.cancelled:
            await self._set_status(
                ImportJobStatus.CRAWLED,
                f"Crawled {result.pages_crawled} pages ({result.errors} errors)",
            )
        self.log.info(
            f"Crawl finished: {result.pages_crawled} pages, {result.errors} errors"
        )
        return result

    def build_page(self, url: str, html: str, base_url: str) -> StagedPage:
        """Derive the stored variants and fingerprint from captured markup."""
        stripped = self.cleaner.strip(html)
        assets = self.cleaner.collect_assets(html, base_url)
        return StagedPage(
            url=url,
            title=self.cleaner.extract_title(html)[: self.TITLE_MAX_LENGTH],
            raw_html=html,
            stripped_html=stripped,
            analysis_html=self.cleaner.analysis(html),
            fingerprint=self.fingerprinter.compute(stripped),
            metadata={"stylesheets": assets.stylesheets, "scripts": assets.scripts},
        )

    async def _save_page(self, page: StagedPage) -> StagedItem:
        @sync_to_async
        def save():
            item, _ = StagedItem.objects.using(self.ctx.db_alias).update_or_create(
                job_id=self.job_id,
                url=page.url,
                defaults={
                    "title": page.title,
                    "raw_html": page.raw_html,
                    "stripped_html": page.stripped_html,
                    "analysis_html": page.analysis_html,
                    "fingerprint": page.fingerprint,
                    "item_type": page.item_type,
                    "status": StagedItemStatus.CRAWLED,
                    "metadata": page.metadata,
                },
            )
            return item

        return await save()

    async def _update_progress(self, pages: int):
        @sync_to_async
        def update():
            jobs = (
                ImportJob.objects.using(self.ctx.db_alias)
                .filter(pk=self.job_id)
                .exclude(status__in=TERMINAL_STATUSES)
            )
            if pages % self.PROGRESS_EVERY == 0:
                jobs.update(page_count=pages, progress_message=f"Crawled {pages} pages...")
            else:
                jobs.update(page_count=pages)

        await update()

    async def _set_status(self, status: str, message: str):
        await sync_to_async(ImportJob.set_status)(self.ctx.db_alias, self.job_id, status, message)

    async def _record_error(self, error: Exception, url: str):
        await sync_to_async(record_import_error)(
            self.ctx, self.job_id, ImportPhase.CRAWL, error, url=url
        )


class SourceScanEngine(CrawlEngine):
    """
    Stages the files of a source repository instead of walking links.

    Page components get a path-derived fingerprint, so each forms its own
    group for rule generation. Other files are staged ungrouped.
    """

    def __init__(
        self,
        ctx: TenantContext,
        job_id,
        repo_url: str,
        registry: JobRegistry,
        scanner: Optional[SourceRepositoryScanner] = None,
        max_pages: Optional[int] = None,
    ):
        super().__init__(
            ctx,
            job_id,
            root_url=repo_url,
            fetcher=None,
            registry=registry,
            max_pages=max_pages,
            delay=0,
        )
        self.scanner = scanner or SourceRepositoryScanner()

    async def run(self) -> CrawlResult:
        result = CrawlResult()
        await self._set_status(ImportJobStatus.CRAWLING, f"Scanning {self.root_url}")

        async with self.scanner:
            checkout = await self.scanner.checkout(self.root_url)
            files = self.scanner.scan(checkout)

            for source_file in files:
                if await self.registry.poll(self.ctx, self.job_id):
                    result.cancelled = True
                    self.log.info("Source scan stopped: job cancelled")
                    break
                if result.pages_crawled >= self.max_pages:
                    self.log.info(f"File budget of {self.max_pages} reached")
                    break

                try:
                    await self._save_page(self.build_source_page(source_file))
                except Exception as e:
                    result.errors += 1
                    await self._record_error(e, source_file.path)
                    continue

                result.pages_crawled += 1
                result.urls.append(source_file.path)
                await self._update_progress(result.pages_crawled)

        if not result.cancelled:
            await self._set_status(
                ImportJobStatus.CRAWLED,
                f"Staged {result.pages_crawled} source files",
            )
        return result

    def build_source_page(self, source_file) -> StagedPage:
        fingerprint = ""
        if source_file.is_page:
            fingerprint = hashlib.sha256(
                f"source:{source_file.path}".encode("utf-8")
            ).hexdigest()

        return StagedPage(
            url=source_file.path,
            title=source_file.path.rsplit("/", 1)[-1][: self.TITLE_MAX_LENGTH],
            raw_html=source_file.content,
            stripped_html="",
            analysis_html=source_file.content if source_file.is_page else "",
            fingerprint=fingerprint,
            item_type="page" if source_file.is_page else "source",
            metadata={"source_file": True, "is_page": source_file.is_page},
        )
