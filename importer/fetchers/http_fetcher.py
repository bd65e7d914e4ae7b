"""
HTTP fetcher - httpx for static and server-rendered sites.

The lightweight acquisition strategy: one async GET per page with retries,
no JavaScript execution.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SiteImporter/1.0; +https://example.com/bot)"


@dataclass
class FetchResponse:
    """Response from a fetch or render operation."""

    url: str
    content: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None
    strategy: str = "http"


class HttpFetcher:
    """
    Page fetcher using async httpx.

    Features:
    - Connection pooling across a whole crawl
    - Identifying User-Agent
    - Exponential backoff on timeouts, connection errors and 429/5xx
    - Non-HTML responses reported as failures
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
    }

    RETRY_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds (default from settings)
            max_retries: Attempts per URL (default from settings)
            user_agent: Custom User-Agent string
        """
        self.timeout = timeout or getattr(settings, "IMPORTER_REQUEST_TIMEOUT", 30)
        self.max_retries = max(
            1,
            max_retries
            if max_retries is not None
            else getattr(settings, "IMPORTER_MAX_RETRIES", 3),
        )
        self.user_agent = user_agent or getattr(
            settings, "IMPORTER_USER_AGENT", DEFAULT_USER_AGENT
        )

        self._http_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._init_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_http_client(self):
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={**self.DEFAULT_HEADERS, "User-Agent": self.user_agent},
                follow_redirects=True,
            )

    async def close(self):
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, url: str, is_root: bool = False) -> FetchResponse:
        """
        Fetch a page.

        Args:
            url: URL to fetch
            is_root: Unused by this strategy; accepted for interface parity

        Returns:
            FetchResponse; failures are reported, never raised
        """
        if self._http_client is None:
            await self._init_http_client()

        try:
            response = await self._fetch_with_retry(url)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout fetching {url}: {e}")
            return FetchResponse(url=url, content="", status_code=0, success=False, error=f"Timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error fetching {url}: {e}")
            return FetchResponse(url=url, content="", status_code=0, success=False, error=str(e))

        final_url = str(response.url)
        headers = dict(response.headers)

        if not 200 <= response.status_code < 400:
            logger.warning(f"HTTP {response.status_code} for {url}")
            return FetchResponse(
                url=final_url,
                content="",
                status_code=response.status_code,
                headers=headers,
                success=False,
                error=f"HTTP {response.status_code}",
            )

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type.lower():
            return FetchResponse(
                url=final_url,
                content="",
                status_code=response.status_code,
                headers=headers,
                success=False,
                error=f"Not HTML: {content_type}",
            )

        return FetchResponse(
            url=final_url,
            content=response.text,
            status_code=response.status_code,
            headers=headers,
        )

    async def _fetch_with_retry(self, url: str) -> httpx.Response:
        """
        Fetch with exponential backoff retry logic.

        Client errors (4xx other than 429) are returned without retrying.
        """
        last_error: Optional[Exception] = None
        response = None

        for attempt in range(self.max_retries):
            try:
                response = await self._http_client.get(url)
                if response.status_code not in self.RETRY_CODES:
                    return response
                logger.warning(
                    f"HTTP {response.status_code} for {url} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )

            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_error = e
                logger.warning(
                    f"Error fetching {url}: {e} (attempt {attempt + 1}/{self.max_retries})"
                )

            if attempt < self.max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        if response is not None:
            return response
        raise last_error
