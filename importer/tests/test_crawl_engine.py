"""
Tests for the crawl engine and the source-repository scan.

The fetcher is an in-memory fake; pages are staged in the test database.
"""

from asgiref.sync import async_to_sync
from django.test import TestCase

from importer.fetchers import SourceFile
from importer.models import (
    ImportJob,
    ImportJobError,
    ImportJobStatus,
    StagedItem,
    StagedItemStatus,
)
from importer.services.crawl_engine import CrawlEngine, SourceScanEngine
from importer.services.job_registry import JobRegistry
from importer.services.tenancy import resolve_tenant
from importer.tests.fakes import ROOT_URL, SITE, FakeFetcher


class CrawlEngineTests(TestCase):
    def setUp(self):
        self.ctx = resolve_tenant("default")
        self.job = ImportJob.objects.create(source_url=f"{ROOT_URL}/")
        self.registry = JobRegistry()
        self.registry.register(self.job.id)

    def crawl(self, fetcher, **kwargs):
        engine = CrawlEngine(
            self.ctx, self.job.id, self.job.source_url, fetcher, self.registry, delay=0, **kwargs
        )
        return async_to_sync(engine.run)()

    def test_crawls_every_same_site_page_once(self):
        fetcher = FakeFetcher()
        result = self.crawl(fetcher)

        self.assertEqual(result.pages_crawled, 4)
        self.assertEqual(result.errors, 0)
        self.assertEqual(sorted(fetcher.fetched), sorted(SITE))
        self.assertEqual(fetcher.fetched[0], ROOT_URL)

        self.job.refresh_from_db()
        self.assertEqual(self.job.status, ImportJobStatus.CRAWLED)
        self.assertEqual(self.job.page_count, 4)
        self.assertEqual(StagedItem.objects.filter(job=self.job).count(), 4)

    def test_staged_item_variants_and_fingerprint(self):
        self.crawl(FakeFetcher())

        widget = StagedItem.objects.get(job=self.job, url=f"{ROOT_URL}/products/widget")
        gadget = StagedItem.objects.get(job=self.job, url=f"{ROOT_URL}/products/gadget")
        home = StagedItem.objects.get(job=self.job, url=ROOT_URL)

        self.assertEqual(widget.status, StagedItemStatus.CRAWLED)
        self.assertEqual(widget.title, "Widget")
        self.assertIn("<nav>", widget.raw_html)
        self.assertNotIn("<nav", widget.analysis_html)
        self.assertEqual(widget.fingerprint, gadget.fingerprint)
        self.assertNotEqual(widget.fingerprint, home.fingerprint)
        self.assertEqual(home.metadata["stylesheets"], [f"{ROOT_URL}/assets/theme.css"])
        self.assertEqual(home.metadata["strategy"], "http")

    def test_page_budget(self):
        result = self.crawl(FakeFetcher(), max_pages=2)

        self.assertEqual(result.pages_crawled, 2)
        self.assertEqual(StagedItem.objects.filter(job=self.job).count(), 2)

    def test_failed_page_is_recorded_and_skipped(self):
        pages = {url: html for url, html in SITE.items() if not url.endswith("/about")}
        result = self.crawl(FakeFetcher(pages))

        self.assertEqual(result.pages_crawled, 3)
        self.assertEqual(result.errors, 1)
        error = ImportJobError.objects.get(job=self.job)
        self.assertEqual(error.phase, "crawl")
        self.assertEqual(error.url, f"{ROOT_URL}/about")
        self.assertEqual(error.error_type, "FetchError")

    def test_cancel_stops_crawl_without_crawled_status(self):
        ImportJob.objects.filter(pk=self.job.id).update(cancel_requested=True)

        result = self.crawl(FakeFetcher())

        self.assertTrue(result.cancelled)
        self.assertEqual(result.pages_crawled, 0)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, ImportJobStatus.CRAWLING)

    def test_recrawl_updates_staged_items(self):
        self.crawl(FakeFetcher())
        self.crawl(FakeFetcher())
        self.assertEqual(StagedItem.objects.filter(job=self.job).count(), 4)


class FakeScanner:
    def __init__(self, files):
        self.files = files

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def checkout(self, repo_url):
        return "/checkout"

    def scan(self, root):
        return self.files


class SourceScanEngineTests(TestCase):
    def setUp(self):
        self.ctx = resolve_tenant("default")
        self.job = ImportJob.objects.create(
            source_url="https://git.example/acme/site.git", source_kind="repository"
        )
        self.registry = JobRegistry()

    def test_page_components_get_their_own_group(self):
        scanner = FakeScanner([
            SourceFile("src/pages/Index.tsx", "export default () => <h1>Home</h1>", is_page=True),
            SourceFile("src/pages/About.tsx", "export default () => <h1>About</h1>", is_page=True),
            SourceFile("src/index.css", "body { margin: 0 }"),
        ])
        engine = SourceScanEngine(
            self.ctx, self.job.id, self.job.source_url, self.registry, scanner=scanner
        )

        result = async_to_sync(engine.run)()

        self.assertEqual(result.pages_crawled, 3)
        index = StagedItem.objects.get(job=self.job, url="src/pages/Index.tsx")
        about = StagedItem.objects.get(job=self.job, url="src/pages/About.tsx")
        css = StagedItem.objects.get(job=self.job, url="src/index.css")
        self.assertNotEqual(index.fingerprint, about.fingerprint)
        self.assertEqual(css.fingerprint, "")
        self.assertEqual(css.item_type, "source")
        self.assertEqual(index.title, "Index.tsx")
