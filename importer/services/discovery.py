"""
Discovery and asset sideloading.

DiscoveryEngine fetches the root page, collects its stylesheet and script
references and asks the content service which platform and theme the site
runs on and which assets are worth keeping. The result lands on
``ImportJob.platform_info`` and seeds the ruleset.

AssetSideloader downloads the recommended assets through the media store and
records their local URLs in ``platform_info["local_assets"]``, where the
template generator picks them up.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from asgiref.sync import sync_to_async

from importer.exceptions import ImportPhaseError, MediaStoreError
from importer.models import ImportJob, ImportJobStatus, ImportPhase
from importer.monitoring import add_import_breadcrumb, record_import_error
from importer.services.content_client import ContentServiceClient
from importer.services.markup import MarkupCleaner
from importer.services.media_store import MediaStore
from importer.services.tenancy import TenantContext, job_logger

logger = logging.getLogger(__name__)

UNKNOWN_PLATFORM = "unknown"


class DiscoveryEngine:
    """Platform and theme detection from the root page."""

    def __init__(
        self,
        ctx: TenantContext,
        job_id,
        root_url: str,
        fetcher,
        client: ContentServiceClient,
        cleaner: Optional[MarkupCleaner] = None,
    ):
        self.ctx = ctx
        self.job_id = job_id
        self.root_url = root_url
        self.fetcher = fetcher
        self.client = client
        self.cleaner = cleaner or MarkupCleaner()
        self.log = job_logger(logger, ctx, job_id)

    async def run(self) -> Dict[str, Any]:
        """
        Discover the site's platform and assets.

        Raises:
            ImportPhaseError: the root page could not be fetched
        """
        await self._set_status(ImportJobStatus.DISCOVERING, f"Analyzing {self.root_url}")

        response = await self.fetcher.fetch(self.root_url, is_root=True)
        if not response.success:
            raise ImportPhaseError(
                f"Root page {self.root_url} could not be fetched: "
                f"{response.error or f'HTTP {response.status_code}'}"
            )

        assets = self.cleaner.collect_assets(response.content, response.url or self.root_url)
        analysis = await self.client.analyze_assets(
            self.root_url, assets.stylesheets, assets.scripts
        )

        if analysis.success:
            platform_info = {
                "platform": analysis.platform,
                "theme": analysis.theme,
                "assets": self._typed_assets(analysis.assets, assets.stylesheets),
            }
        else:
            self.log.warning(f"Asset analysis failed, continuing without it: {analysis.error}")
            platform_info = {
                "platform": UNKNOWN_PLATFORM,
                "theme": {},
                "assets": [],
                "error": analysis.error,
            }
        platform_info["stylesheets"] = assets.stylesheets
        platform_info["scripts"] = assets.scripts

        await self._save(platform_info)
        add_import_breadcrumb(
            self.ctx.tenant,
            self.job_id,
            ImportPhase.DISCOVERY,
            f"Detected platform {platform_info['platform']}",
            extra_data={"assets": len(platform_info["assets"])},
        )
        self.log.info(
            f"Discovery finished: platform={platform_info['platform']}, "
            f"{len(assets.stylesheets)} stylesheets, {len(assets.scripts)} scripts"
        )
        return platform_info

    def _typed_assets(
        self, assets: List[Dict[str, Any]], stylesheets: List[str]
    ) -> List[Dict[str, Any]]:
        typed = []
        for asset in assets:
            url = urljoin(self.root_url, asset["url"])
            kind = asset.get("type") or ("stylesheet" if url in stylesheets else "script")
            typed.append({**asset, "url": url, "type": kind, "recommend": bool(asset.get("recommend"))})
        return typed

    async def _save(self, platform_info: Dict[str, Any]):
        @sync_to_async
        def save():
            job = ImportJob.objects.using(self.ctx.db_alias).filter(pk=self.job_id).first()
            if job is None:
                raise ImportPhaseError(f"Import job {self.job_id} not found")
            ruleset = dict(job.ruleset or {})
            ruleset.update(
                {
                    "root_url": self.root_url,
                    "platform": platform_info["platform"],
                    "theme": platform_info["theme"],
                }
            )
            ruleset.setdefault("types", {})
            job.platform_info = platform_info
            job.ruleset = ruleset
            job.save(using=self.ctx.db_alias, update_fields=["platform_info", "ruleset"])

        await save()

    async def _set_status(self, status: str, message: str):
        await sync_to_async(ImportJob.set_status)(self.ctx.db_alias, self.job_id, status, message)


class AssetSideloader:
    """Stores the recommended stylesheets and scripts of a site locally."""

    def __init__(self, ctx: TenantContext, job_id, media_store: Optional[MediaStore] = None):
        self.ctx = ctx
        self.job_id = job_id
        self.media_store = media_store or MediaStore(job_id)
        self.log = job_logger(logger, ctx, job_id)

    async def run(self, platform_info: Dict[str, Any]) -> Dict[str, List[str]]:
        local_assets = {"stylesheets": [], "scripts": []}
        recommended = [a for a in platform_info.get("assets", []) if a.get("recommend")]

        await sync_to_async(ImportJob.set_status)(
            self.ctx.db_alias,
            self.job_id,
            ImportJobStatus.SIDELOADING,
            f"Sideloading {len(recommended)} theme assets",
        )

        async with self.media_store:
            for asset in recommended:
                try:
                    local_url = await self.media_store.store_remote(asset["url"])
                except MediaStoreError as e:
                    await sync_to_async(record_import_error)(
                        self.ctx, self.job_id, ImportPhase.SIDELOAD, e, url=asset["url"]
                    )
                    continue

                key = "stylesheets" if asset.get("type") == "stylesheet" else "scripts"
                local_assets[key].append(local_url)

        @sync_to_async
        def save():
            job = ImportJob.objects.using(self.ctx.db_alias).get(pk=self.job_id)
            job.platform_info = {**(job.platform_info or {}), "local_assets": local_assets}
            job.save(using=self.ctx.db_alias, update_fields=["platform_info"])

        await save()
        self.log.info(
            f"Sideloaded {len(local_assets['stylesheets'])} CSS and "
            f"{len(local_assets['scripts'])} JS files"
        )
        return local_assets
