"""
Content-understanding service client.

Async httpx client for the service that classifies page structure, proposes
extraction rules, compares layouts, writes template code and extracts field
values. Every call returns a typed result dataclass carrying ``success`` and
``error``; service failures never raise out of the public methods.

Request:  POST {CONTENT_SERVICE_URL}/api/v1/understand/<task>/
          {"task": ..., "content": <markup>, "context": {...}}
Response: {"result": <object | JSON text>, "error": null}

The service fronts a language model, so ``result`` may arrive as text with
the JSON wrapped in Markdown fences or surrounded by prose. parse_json_payload()
recovers what it can; anything else is reported as a failed result.
"""

import asyncio
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class ContentServiceError(Exception):
    """Error talking to the content-understanding service."""

    pass


@dataclass
class RegionSpec:
    """One extractable field proposed by page analysis."""

    key: str
    selector: str = ""
    attr: Optional[str] = None
    multiple: bool = False
    type: str = "text"
    label: str = ""
    raw_value: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegionSpec":
        key = str(data.get("key") or data.get("name") or "").strip()
        return cls(
            key=key,
            selector=str(data.get("selector") or ""),
            attr=data.get("attr") or None,
            multiple=bool(data.get("multiple", False)),
            type=str(data.get("type") or "text"),
            label=str(data.get("label") or key.replace("_", " ").title()),
            raw_value=data.get("raw_value", data.get("value")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PageAnalysisResult:
    """Page-type classification plus proposed extraction regions."""

    success: bool
    page_type: str = "page"
    regions: List[RegionSpec] = field(default_factory=list)
    confidence: float = 0.0
    summary: str = ""
    route_slug: Optional[str] = None
    error: Optional[str] = None

    @property
    def selector_map(self) -> Dict[str, Dict[str, Any]]:
        """Field -> selector rule, as stored on the ruleset."""
        rules = {}
        for region in self.regions:
            rule = {
                "selector": region.selector,
                "attr": region.attr,
                "multiple": region.multiple,
                "type": region.type,
            }
            if region.raw_value is not None:
                rule["value"] = region.raw_value
            rules[region.key] = rule
        return rules


@dataclass
class ComparisonResult:
    """Whether two pages can share one template."""

    success: bool
    can_share: bool = False
    reason: str = ""
    error: Optional[str] = None


@dataclass
class TemplateCodeResult:
    success: bool
    code: str = ""
    error: Optional[str] = None


@dataclass
class ExtractionResult:
    """Flat field -> value mapping extracted from one page."""

    success: bool
    values: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class AssetAnalysisResult:
    success: bool
    platform: str = "unknown"
    theme: Dict[str, Any] = field(default_factory=dict)
    assets: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


def parse_json_payload(text: str) -> Optional[Any]:
    """
    Parse JSON that may be wrapped in Markdown fences or prose.

    Returns:
        The decoded value, or None if nothing parseable was found
    """
    if not text:
        return None

    candidate = text.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", candidate, re.DOTALL | re.IGNORECASE)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        return json.loads(candidate)
    except ValueError:
        pass

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except ValueError:
            return None
    return None


def _is_true(value) -> bool:
    """Only a JSON true or the string "true" counts as yes."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _regions_from_payload(data: Dict[str, Any]) -> List[RegionSpec]:
    """Accept either a region list or a bare field -> selector map."""
    regions = []
    raw_regions = data.get("regions") or data.get("fields")
    if isinstance(raw_regions, list):
        for item in raw_regions:
            if isinstance(item, dict):
                region = RegionSpec.from_dict(item)
                if region.key:
                    regions.append(region)
        return regions

    selector_map = data.get("selector_map") or data.get("selectorMap") or {}
    if isinstance(selector_map, dict):
        for key, rule in selector_map.items():
            if isinstance(rule, str):
                regions.append(RegionSpec.from_dict({"key": key, "selector": rule}))
            elif isinstance(rule, dict):
                regions.append(RegionSpec.from_dict({"key": key, **rule}))
    return regions


class ContentServiceClient:
    """
    Async HTTP client for the content-understanding service.

    Features:
    - Bearer token authentication
    - Retry with exponential backoff on 429/5xx, timeouts and connection errors
    - Tolerant parsing of model output
    """

    DEFAULT_TIMEOUT = 300.0
    MAX_RETRIES = 3
    RETRY_BASE_DELAY = 1.0  # seconds
    RETRY_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        self.base_url = (
            base_url
            or getattr(settings, "CONTENT_SERVICE_URL", "http://localhost:8001")
        ).rstrip("/")
        self.api_key = api_key or getattr(settings, "CONTENT_SERVICE_TOKEN", "")
        self.timeout = timeout or getattr(settings, "CONTENT_SERVICE_TIMEOUT", self.DEFAULT_TIMEOUT)
        self.max_retries = max(
            1,
            max_retries
            if max_retries is not None
            else getattr(settings, "CONTENT_SERVICE_MAX_RETRIES", self.MAX_RETRIES),
        )

        logger.debug(
            "ContentServiceClient initialized: base_url=%s, timeout=%.1fs, max_retries=%d",
            self.base_url,
            self.timeout,
            self.max_retries,
        )

    async def analyze_page(
        self, markup: str, context: Optional[Dict[str, Any]] = None
    ) -> PageAnalysisResult:
        """
        Classify a page and propose field -> selector extraction rules.

        Args:
            markup: Analysis markup of the sample page
            context: Optional hints (url, platform, existing selectors)
        """
        data, error = await self._call("analyze_page", markup, context or {})
        if error:
            return PageAnalysisResult(success=False, error=error)
        return self._page_analysis(data)

    async def analyze_source(self, source: str, path: str) -> PageAnalysisResult:
        """Analyse a page component from a source repository."""
        data, error = await self._call("analyze_source", source, {"path": path})
        if error:
            return PageAnalysisResult(success=False, error=error)
        return self._page_analysis(data)

    async def compare_structures(self, markup_a: str, markup_b: str) -> ComparisonResult:
        """Ask whether two pages can be rendered by one template."""
        data, error = await self._call(
            "compare_structures", markup_a, {"candidate": markup_b}
        )
        if error:
            return ComparisonResult(success=False, reason="Comparison error", error=error)
        return ComparisonResult(
            success=True,
            can_share=_is_true(data.get("can_share", data.get("canShare"))),
            reason=str(data.get("reason", "")),
        )

    async def generate_template(
        self,
        markup: str,
        selector_map: Dict[str, Any],
        page_type: str,
        local_assets: Optional[Dict[str, Any]] = None,
    ) -> TemplateCodeResult:
        """Generate template code for a page group."""
        context = {
            "selector_map": selector_map,
            "page_type": page_type,
            "local_assets": local_assets or {},
        }
        data, error = await self._call("generate_template", markup, context, expect_json=False)
        if error:
            return TemplateCodeResult(success=False, error=error)

        code = data.get("code") if isinstance(data, dict) else data
        if not isinstance(code, str) or not code.strip():
            return TemplateCodeResult(success=False, error="Empty template code")

        fenced = re.match(r"^\s*```[a-zA-Z]*\n(.*?)```\s*$", code, re.DOTALL)
        if fenced:
            code = fenced.group(1)
        return TemplateCodeResult(success=True, code=code.strip())

    async def extract_fields(
        self, markup: str, fields: List[Dict[str, str]]
    ) -> ExtractionResult:
        """
        Extract field values from a page.

        Args:
            markup: Stripped page markup
            fields: [{"name", "type", "selector"}, ...]
        """
        data, error = await self._call("extract_fields", markup, {"fields": fields})
        if error:
            return ExtractionResult(success=False, error=error)
        values = data.get("values", data) if isinstance(data, dict) else None
        if not isinstance(values, dict):
            return ExtractionResult(success=False, error="Extraction result is not an object")
        return ExtractionResult(success=True, values=values)

    async def analyze_assets(
        self, root_url: str, stylesheets: List[str], scripts: List[str]
    ) -> AssetAnalysisResult:
        """Identify the site platform/theme and which assets are worth keeping."""
        context = {"root_url": root_url, "stylesheets": stylesheets, "scripts": scripts}
        data, error = await self._call("analyze_assets", "", context)
        if error:
            return AssetAnalysisResult(success=False, error=error)

        assets = [a for a in data.get("assets", []) if isinstance(a, dict) and a.get("url")]
        return AssetAnalysisResult(
            success=True,
            platform=str(data.get("platform") or "unknown"),
            theme=data.get("theme") if isinstance(data.get("theme"), dict) else {},
            assets=assets,
        )

    def _page_analysis(self, data: Dict[str, Any]) -> PageAnalysisResult:
        try:
            confidence = float(data.get("confidence") or 0.0)
        except (TypeError, ValueError):
            confidence = 0.0

        return PageAnalysisResult(
            success=True,
            page_type=str(data.get("page_type") or data.get("pageType") or "page"),
            regions=_regions_from_payload(data),
            confidence=confidence,
            summary=str(data.get("summary") or ""),
            route_slug=data.get("route_slug") or data.get("routeSlug"),
        )

    async def _call(
        self,
        task: str,
        content: str,
        context: Dict[str, Any],
        expect_json: bool = True,
    ) -> Tuple[Any, Optional[str]]:
        """
        Send one task and decode its result.

        Returns:
            (data, None) on success, (None, error message) on failure.
            With expect_json=False a non-JSON text result is returned as-is.
        """
        payload = {"task": task, "content": content, "context": context}

        try:
            response = await self._send_request(task, payload)
        except ContentServiceError as e:
            logger.error("Content service %s failed: %s", task, str(e))
            return None, str(e)
        except Exception as e:
            logger.exception("Unexpected error in content service %s: %s", task, str(e))
            return None, f"Unexpected error: {str(e)}"

        if response.status_code != 200:
            error_msg = f"HTTP {response.status_code}"
            try:
                error_data = response.json()
                if isinstance(error_data, dict) and error_data.get("error"):
                    error_msg = f"{error_msg}: {error_data['error']}"
                elif isinstance(error_data, dict) and error_data.get("detail"):
                    error_msg = f"{error_msg}: {error_data['detail']}"
            except ValueError:
                error_msg = f"{error_msg}: {response.text[:200]}"
            logger.warning("Content service %s failed: %s", task, error_msg)
            return None, error_msg

        try:
            body = response.json()
        except ValueError:
            body = parse_json_payload(response.text)
            if body is None:
                if not expect_json and response.text.strip():
                    return response.text, None
                return None, "Invalid JSON response"

        if isinstance(body, dict) and body.get("error"):
            return None, str(body["error"])

        result = body.get("result", body) if isinstance(body, dict) else body
        if isinstance(result, str):
            parsed = parse_json_payload(result)
            if parsed is None:
                if not expect_json and result.strip():
                    return result, None
                logger.warning("Content service %s returned unparseable result", task)
                return None, "Malformed JSON in service result"
            result = parsed

        if expect_json and not isinstance(result, dict):
            return None, f"Unexpected result type: {type(result).__name__}"
        return result, None

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _send_request(self, task: str, payload: Dict[str, Any]) -> httpx.Response:
        """
        Send request with retry logic and exponential backoff.

        Raises:
            ContentServiceError: If all retries are exhausted
        """
        endpoint = f"{self.base_url}/api/v1/understand/{task}/"
        last_error: Optional[str] = None

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        endpoint,
                        json=payload,
                        headers=self._get_headers(),
                    )

                    if response.status_code not in self.RETRY_CODES:
                        return response

                    last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                    logger.warning(
                        "Retryable error on attempt %d/%d: %s",
                        attempt + 1,
                        self.max_retries,
                        last_error,
                    )

            except httpx.TimeoutException as e:
                last_error = f"Request timeout after {self.timeout}s: {str(e)}"
                logger.warning(
                    "Timeout on attempt %d/%d: %s", attempt + 1, self.max_retries, last_error
                )

            except httpx.TransportError as e:
                last_error = f"Transport error: {type(e).__name__}: {str(e)}"
                logger.warning(
                    "Transport error on attempt %d/%d: %s",
                    attempt + 1,
                    self.max_retries,
                    last_error,
                )

            if attempt < self.max_retries - 1:
                delay = self.RETRY_BASE_DELAY * (2 ** attempt)
                await asyncio.sleep(delay)

        raise ContentServiceError(f"Max retries ({self.max_retries}) exceeded: {last_error}")

    async def health_check(self) -> bool:
        """
        Check if the content service is available.

        Returns:
            True if service responds, False otherwise
        """
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(
                    f"{self.base_url}/health/",
                    headers=self._get_headers(),
                )
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Content service health check failed: %s", str(e))
            return False


_client_instance: Optional[ContentServiceClient] = None


def get_content_client(**kwargs) -> ContentServiceClient:
    """
    Get or create the ContentServiceClient singleton.

    Args:
        **kwargs: Configuration overrides (only used when creating the instance)
    """
    global _client_instance
    if _client_instance is None:
        _client_instance = ContentServiceClient(**kwargs)
    return _client_instance


def reset_content_client() -> None:
    """Reset the singleton instance."""
    global _client_instance
    _client_instance = None
