"""
Transformation Engine - staged items to CMS content.

For every staged item still in ``crawled`` status whose group has rules:
1. build a typed field list from the group's selector map
2. extract field values (content service; repository rules carry literal values)
3. store embedded and referenced images locally, make same-site links relative
4. upsert the ContentRecord by slug, then the PageRecord or ProductRecord
5. mark the item ``transformed`` with the content id in its metadata

Steps 4 and 5 run in one transaction per item. Upserts are keyed by slug
and SKU, so a retried job updates the records it created before.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

from asgiref.sync import sync_to_async
from bs4 import BeautifulSoup
from django.db import transaction
from django.utils.text import slugify

from importer.exceptions import ImportPhaseError, MediaStoreError
from importer.models import (
    ContentModule,
    ContentRecord,
    ImportJob,
    ImportJobStatus,
    ImportPhase,
    PageRecord,
    ProductRecord,
    PublishStatus,
    SourceKind,
    StagedItem,
    StagedItemStatus,
    Template,
)
from importer.monitoring import record_import_error
from importer.services.content_client import ContentServiceClient, ContentServiceError
from importer.services.job_registry import JobRegistry
from importer.services.media_store import MediaStore
from importer.services.template_generator import content_type_for
from importer.services.tenancy import TenantContext, job_logger
from importer.utils.urls import slug_from_path

logger = logging.getLogger(__name__)

RICHTEXT_FIELDS = {"description", "content", "body"}
IMAGE_FIELDS = {"image", "images", "gallery", "thumbnail", "featured_image", "photo"}

PRICE_CHARS_RE = re.compile(r"[^\d.]")


def field_type(name: str, rule: Optional[Dict[str, Any]] = None) -> str:
    if name in RICHTEXT_FIELDS:
        return "richtext"
    if name in IMAGE_FIELDS:
        return "image"
    declared = (rule or {}).get("type")
    if declared in ("richtext", "image"):
        return declared
    return "text"


def build_fields(selector_map: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Typed field list sent with an extraction request."""
    return [
        {
            "name": name,
            "type": field_type(name, rule),
            "selector": (rule or {}).get("selector", ""),
            "multiple": bool((rule or {}).get("multiple", False)),
        }
        for name, rule in selector_map.items()
    ]


def parse_price(value) -> Optional[Decimal]:
    """'$1,299.00' -> Decimal('1299.00'); None when nothing numeric remains."""
    if value in (None, ""):
        return None
    cleaned = PRICE_CHARS_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        return Decimal(cleaned).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def relative_link(href: str, origin: str) -> str:
    """Rewrite an absolute same-origin link to a site-relative path."""
    parts = urlsplit(href)
    if f"{parts.scheme}://{parts.netloc}".lower() != origin.lower():
        return href
    return urlunsplit(("", "", parts.path or "/", parts.query, parts.fragment))


@dataclass
class TransformationResult:
    items_total: int = 0
    items_transformed: int = 0
    items_skipped: int = 0
    errors: int = 0
    cancelled: bool = False


class TransformationEngine:
    """Turns staged items into content records using the job's ruleset."""

    PROGRESS_EVERY = 5

    def __init__(
        self,
        ctx: TenantContext,
        job_id,
        client: ContentServiceClient,
        registry: JobRegistry,
        media_store: Optional[MediaStore] = None,
    ):
        self.ctx = ctx
        self.job_id = job_id
        self.client = client
        self.registry = registry
        self.media_store = media_store or MediaStore(job_id)
        self.log = job_logger(logger, ctx, job_id)

    async def run(self) -> TransformationResult:
        job = await self._load_job()
        types = (job.ruleset or {}).get("types")
        if not types:
            raise ImportPhaseError(f"Ruleset not found for import job {self.job_id}")

        origin = "{0.scheme}://{0.netloc}".format(urlsplit(job.source_url)).lower()
        item_ids = await self._pending_item_ids(list(types))
        result = TransformationResult(items_total=len(item_ids))

        await self._set_status(
            ImportJobStatus.TRANSFORMING, f"Migrating {len(item_ids)} items to CMS..."
        )

        async with self.media_store:
            for index, item_id in enumerate(item_ids):
                if await self.registry.poll(self.ctx, self.job_id):
                    result.cancelled = True
                    self.log.info("Transformation stopped: job cancelled")
                    break

                if index % self.PROGRESS_EVERY == 0:
                    await self._set_status(
                        ImportJobStatus.TRANSFORMING,
                        f"Migrating items to CMS {index + 1}/{len(item_ids)}...",
                    )

                item = await self._load_item(item_id)
                entry = types.get(item.fingerprint) or {}
                try:
                    template = await self._load_template(entry.get("template_id"))
                    if template is None:
                        raise ImportPhaseError(
                            f"No template for group {item.fingerprint[:8]}, item skipped"
                        )
                    await self.transform_item(item, entry, template, job.source_kind, origin)
                except Exception as e:
                    if isinstance(e, ImportPhaseError):
                        result.items_skipped += 1
                    else:
                        result.errors += 1
                    await sync_to_async(record_import_error)(
                        self.ctx, self.job_id, ImportPhase.TRANSFORM, e, url=item.url
                    )
                    continue

                result.items_transformed += 1

        self.log.info(
            f"Transformation finished: {result.items_transformed}/{result.items_total} items, "
            f"{result.items_skipped} skipped, {result.errors} errors"
        )
        return result

    async def transform_item(
        self,
        item: StagedItem,
        entry: Dict[str, Any],
        template: Template,
        source_kind: str,
        origin: str,
    ) -> ContentRecord:
        selector_map = entry.get("selector_map") or {}
        page_type = entry.get("page_type") or "page"

        if source_kind == SourceKind.REPOSITORY:
            values = {
                name: rule.get("value")
                for name, rule in selector_map.items()
                if rule.get("value") is not None
            }
        else:
            extraction = await self.client.extract_fields(
                item.stripped_html, build_fields(selector_map)
            )
            if not extraction.success:
                raise ContentServiceError(f"Field extraction failed: {extraction.error}")
            values = extraction.values

        values = await self.process_values(values, origin)
        slug = self.slug_for(item, entry, source_kind)
        module = content_type_for(page_type)
        return await self._persist(item, values, slug, module, template)

    async def process_values(self, values: Dict[str, Any], origin: str) -> Dict[str, Any]:
        """Store referenced media locally and make same-site links relative."""
        processed = dict(values)
        for key, value in values.items():
            if not value:
                continue

            if isinstance(value, str) and ("<img" in value or "<a" in value):
                processed[key] = await self.rewrite_html(value, origin)
            elif key in IMAGE_FIELDS and isinstance(value, str) and value.startswith("http"):
                processed[key] = await self._store_or_keep(value)
            elif isinstance(value, list):
                processed[key] = [
                    await self._store_or_keep(element)
                    if isinstance(element, str) and element.startswith("http")
                    else element
                    for element in value
                ]
        return processed

    async def rewrite_html(self, html: str, origin: str) -> str:
        soup = BeautifulSoup(html, "html.parser")

        for img in soup.find_all("img", src=True):
            src = img["src"]
            if src.startswith("//"):
                src = f"{urlsplit(origin).scheme}:{src}"
            if src.startswith("http"):
                img["src"] = await self._store_or_keep(src)

        for anchor in soup.find_all("a", href=True):
            anchor["href"] = relative_link(anchor["href"], origin)

        return str(soup)

    async def _store_or_keep(self, url: str) -> str:
        try:
            return await self.media_store.store_remote(url)
        except MediaStoreError as e:
            self.log.warning(f"Keeping remote media URL {url}: {e}")
            return url

    @staticmethod
    def slug_for(item: StagedItem, entry: Dict[str, Any], source_kind: str) -> str:
        if source_kind == SourceKind.REPOSITORY:
            route = entry.get("route_slug")
            if route:
                return slug_from_path(route)
            return slugify(PurePosixPath(item.url).stem) or "home"
        return slug_from_path(item.url)

    async def _persist(
        self,
        item: StagedItem,
        values: Dict[str, Any],
        slug: str,
        module: str,
        template: Template,
    ) -> ContentRecord:
        alias = self.ctx.db_alias
        title = str(values.get("title") or item.title or slug)[:500]

        @sync_to_async
        def persist():
            with transaction.atomic(using=alias):
                content, _ = ContentRecord.objects.using(alias).update_or_create(
                    slug=slug,
                    defaults={
                        "module": module,
                        "title": title,
                        "data": values,
                        "source_url": item.url,
                    },
                )

                if module == ContentModule.PAGES:
                    PageRecord.objects.using(alias).update_or_create(
                        content=content,
                        defaults={
                            "title": title,
                            "template": template,
                            "status": PublishStatus.PUBLISHED,
                        },
                    )
                elif module == ContentModule.PRODUCTS:
                    fallback_sku = f"slug-{slug}"[:255]
                    sku = str(values.get("sku") or fallback_sku)[:255]
                    products = ProductRecord.objects.using(alias)
                    if products.filter(sku=sku).exclude(content=content).exists():
                        self.log.warning(
                            f"SKU {sku} already belongs to another product, using {fallback_sku}"
                        )
                        sku = fallback_sku
                    products.update_or_create(
                        content=content,
                        defaults={
                            "sku": sku,
                            "title": title,
                            "template": template,
                            "price": parse_price(values.get("price")),
                            "status": PublishStatus.PUBLISHED,
                        },
                    )

                item.status = StagedItemStatus.TRANSFORMED
                item.metadata = {**(item.metadata or {}), "content_id": content.id}
                item.save(using=alias, update_fields=["status", "metadata", "updated_at"])
            return content

        return await persist()

    async def _pending_item_ids(self, fingerprints: List[str]) -> List[int]:
        @sync_to_async
        def load():
            return list(
                StagedItem.objects.using(self.ctx.db_alias)
                .filter(
                    job_id=self.job_id,
                    status=StagedItemStatus.CRAWLED,
                    fingerprint__in=fingerprints,
                )
                .order_by("id")
                .values_list("id", flat=True)
            )

        return await load()

    async def _load_item(self, item_id: int) -> StagedItem:
        return await sync_to_async(StagedItem.objects.using(self.ctx.db_alias).get)(pk=item_id)

    async def _load_template(self, template_id) -> Optional[Template]:
        if not template_id:
            return None

        @sync_to_async
        def load():
            return Template.objects.using(self.ctx.db_alias).filter(pk=template_id).first()

        return await load()

    async def _load_job(self) -> ImportJob:
        @sync_to_async
        def load():
            return ImportJob.objects.using(self.ctx.db_alias).filter(pk=self.job_id).first()

        job = await load()
        if job is None:
            raise ImportPhaseError(f"Import job {self.job_id} not found")
        return job

    async def _set_status(self, status: str, message: str):
        await sync_to_async(ImportJob.set_status)(self.ctx.db_alias, self.job_id, status, message)
