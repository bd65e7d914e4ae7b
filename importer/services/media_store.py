"""
Media store for imported images and sideloaded assets.

Files are saved through Django's default_storage under
``imports/<job_id>/`` and addressed by ``default_storage.url(name)``.
Names are derived from the source URL, so importing the same file twice
in one job reuses the stored copy.
"""

import hashlib
import logging
import os
import re
from typing import Dict, Optional
from urllib.parse import urlsplit

import httpx
from asgiref.sync import sync_to_async
from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from importer.exceptions import MediaStoreError
from importer.fetchers.http_fetcher import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]+")


def storage_name(job_id, hint: str, source: Optional[str] = None) -> str:
    """Storage path for a file: imports/<job_id>/<digest>-<basename>."""
    basename = os.path.basename(urlsplit(hint).path) or "file"
    basename = SAFE_NAME_RE.sub("-", basename).strip("-")[:100] or "file"
    digest = hashlib.sha256((source or hint).encode("utf-8")).hexdigest()[:12]
    return f"imports/{job_id}/{digest}-{basename}"


class MediaStore:
    """
    Downloads remote files and stores them for one import job.

    Usage:
        async with MediaStore(job_id) as store:
            local_url = await store.store_remote("https://site.example/a.jpg")
    """

    MAX_BYTES = 20 * 1024 * 1024

    def __init__(self, job_id, timeout: Optional[float] = None, user_agent: Optional[str] = None):
        self.job_id = job_id
        self.timeout = timeout or getattr(settings, "IMPORTER_REQUEST_TIMEOUT", 30)
        self.user_agent = user_agent or getattr(settings, "IMPORTER_USER_AGENT", DEFAULT_USER_AGENT)
        self._client: Optional[httpx.AsyncClient] = None
        self._stored: Dict[str, str] = {}

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def store_remote(self, url: str, hint: Optional[str] = None) -> str:
        """
        Download a file and store it.

        Returns:
            Locally addressable URL of the stored copy

        Raises:
            MediaStoreError: download failed or the response was unusable
        """
        if url in self._stored:
            return self._stored[url]

        name = storage_name(self.job_id, hint or url, source=url)
        if await sync_to_async(default_storage.exists)(name):
            local_url = default_storage.url(name)
            self._stored[url] = local_url
            return local_url

        client = self._client or httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
        )
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise MediaStoreError(f"Download failed for {url}: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()

        if response.status_code != 200:
            raise MediaStoreError(f"Download failed for {url}: HTTP {response.status_code}")
        if len(response.content) > self.MAX_BYTES:
            raise MediaStoreError(f"File too large: {url} ({len(response.content)} bytes)")

        local_url = await self._save(name, response.content)
        self._stored[url] = local_url
        logger.debug(f"Stored {url} as {local_url}")
        return local_url

    async def store_bytes(self, data: bytes, hint: str) -> str:
        """Store raw bytes under a name derived from hint and content."""
        digest = hashlib.sha256(data).hexdigest()
        name = storage_name(self.job_id, hint, source=digest)
        if await sync_to_async(default_storage.exists)(name):
            return default_storage.url(name)
        return await self._save(name, data)

    async def _save(self, name: str, data: bytes) -> str:
        @sync_to_async
        def save():
            try:
                saved = default_storage.save(name, ContentFile(data))
            except OSError as e:
                raise MediaStoreError(f"Could not store {name}: {e}") from e
            return default_storage.url(saved)

        return await save()
