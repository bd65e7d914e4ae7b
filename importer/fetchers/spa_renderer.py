"""
SPA renderer - Playwright headless browser for client-rendered sites.

Holds one browser, context and page for the lifetime of a crawl so that
client-side state survives between pages. Non-root pages are reached by
clicking a matching in-page link where one exists, falling back to a hard
navigation otherwise.

Render steps per page:
1. navigate (in-page click or goto, waiting for network idle)
2. wait for a hydration marker inside the framework mount point
3. click common "reveal" controls (read more, show more, closed details)
4. scroll down in steps to trigger lazy loading, then back to the top
5. let the page settle and capture the serialized document

Usage:
    async with SPARenderer() as renderer:
        response = await renderer.fetch(root_url, is_root=True)
"""

import logging
from typing import Optional
from urllib.parse import urlsplit

from django.conf import settings

from .http_fetcher import DEFAULT_USER_AGENT, FetchResponse

logger = logging.getLogger(__name__)

FIND_AND_CLICK_LINK_JS = """
(target) => {
    const norm = (p) => p.replace(/\\/+$/, '') || '/';
    const anchors = Array.from(document.querySelectorAll('a[href]'));
    const match = anchors.find((a) => {
        try {
            const u = new URL(a.getAttribute('href'), window.location.href);
            return u.origin === window.location.origin && norm(u.pathname) === norm(target);
        } catch (e) {
            return false;
        }
    });
    if (!match) {
        return false;
    }
    match.click();
    return true;
}
"""

PROGRESSIVE_SCROLL_JS = """
async ({step, interval, maxSteps}) => {
    await new Promise((resolve) => {
        let scrolled = 0;
        let steps = 0;
        const timer = setInterval(() => {
            window.scrollBy(0, step);
            scrolled += step;
            steps += 1;
            if (scrolled >= document.body.scrollHeight || steps >= maxSteps) {
                clearInterval(timer);
                resolve();
            }
        }, interval);
    });
    window.scrollTo(0, 0);
}
"""


class SPARenderer:
    """
    Page renderer using a Playwright headless Chromium.

    Features:
    - Lazy Playwright initialization (import on first use)
    - One browser/page per renderer, released on exit even after errors
    - Hydration wait, reveal clicks and progressive scroll before capture
    """

    VIEWPORT = {"width": 1280, "height": 800}

    HYDRATION_SELECTORS = ["#root > *", "#__next > *", "#app > *", "[data-reactroot]"]

    REVEAL_SELECTORS = [
        "details:not([open]) > summary",
        "button[aria-expanded='false']",
        "button:has-text('Read more')",
        "button:has-text('Show more')",
        "button:has-text('Load more')",
    ]

    SCROLL_STEP = 400
    SCROLL_INTERVAL_MS = 80
    MAX_SCROLL_STEPS = 150
    SETTLE_MS = 500

    def __init__(
        self,
        timeout: Optional[float] = None,
        hydration_timeout: float = 10.0,
        max_reveal_clicks: int = 10,
        user_agent: Optional[str] = None,
    ):
        """
        Args:
            timeout: Navigation timeout in seconds
            hydration_timeout: Seconds to wait for the app to mount
            max_reveal_clicks: Cap on reveal-control clicks per page
            user_agent: Custom User-Agent string
        """
        self.timeout = timeout or getattr(settings, "IMPORTER_REQUEST_TIMEOUT", 30)
        self.hydration_timeout = hydration_timeout
        self.max_reveal_clicks = max_reveal_clicks
        self.user_agent = user_agent or getattr(
            settings, "IMPORTER_USER_AGENT", DEFAULT_USER_AGENT
        )

        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def __aenter__(self):
        await self._init_browser()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_browser(self):
        """Start Playwright and open the page used for the whole crawl."""
        if self._page is not None:
            return

        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise RuntimeError(
                "Playwright not installed. Install with: "
                "pip install playwright && playwright install chromium"
            )

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=True,
            args=["--no-sandbox", "--disable-dev-shm-usage"],
        )
        self._context = await self._browser.new_context(
            viewport=self.VIEWPORT,
            user_agent=self.user_agent,
        )
        self._page = await self._context.new_page()
        logger.info("Playwright browser initialized for SPA rendering")

    async def close(self):
        """Close page, context, browser and Playwright, in that order."""
        try:
            if self._page is not None:
                await self._page.close()
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None

    async def fetch(self, url: str, is_root: bool = False) -> FetchResponse:
        """
        Render a page and capture its markup.

        Args:
            url: Page URL
            is_root: Root pages always use a hard navigation

        Returns:
            FetchResponse; failures are reported, never raised
        """
        if self._page is None:
            await self._init_browser()

        page = self._page
        try:
            response = None
            navigated = False
            if not is_root and page.url.startswith("http"):
                navigated = await self._navigate_in_page(url)
            if not navigated:
                response = await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.timeout * 1000,
                )

            await self._wait_for_hydration()
            await self._reveal_content()
            await self._progressive_scroll()
            await page.wait_for_timeout(self.SETTLE_MS)

            content = await page.content()
            status_code = response.status if response else 200

            return FetchResponse(
                url=page.url or url,
                content=content,
                status_code=status_code,
                headers=dict(response.headers) if response else {},
                success=200 <= status_code < 400,
                error=None if 200 <= status_code < 400 else f"HTTP {status_code}",
                strategy="spa",
            )

        except Exception as e:
            logger.error(f"SPA render error for {url}: {e}")
            return FetchResponse(
                url=url,
                content="",
                status_code=0,
                success=False,
                error=str(e),
                strategy="spa",
            )

    async def _navigate_in_page(self, url: str) -> bool:
        """Click an in-page link to the target path, if the current page has one."""
        target_path = urlsplit(url).path or "/"
        try:
            clicked = await self._page.evaluate(FIND_AND_CLICK_LINK_JS, target_path)
        except Exception as e:
            logger.debug(f"In-page navigation lookup failed for {url}: {e}")
            return False

        if not clicked:
            return False

        await self._page.wait_for_load_state("networkidle", timeout=self.timeout * 1000)
        logger.debug(f"Navigated in-page to {url}")
        return True

    async def _wait_for_hydration(self):
        selector = ", ".join(self.HYDRATION_SELECTORS)
        try:
            await self._page.wait_for_selector(selector, timeout=self.hydration_timeout * 1000)
        except Exception:
            logger.debug("No hydration marker found, capturing body as rendered")
            await self._page.wait_for_selector("body", timeout=self.hydration_timeout * 1000)

    async def _reveal_content(self) -> int:
        """Click collapsed sections and "more" buttons. Returns the click count."""
        clicks = 0
        for selector in self.REVEAL_SELECTORS:
            if clicks >= self.max_reveal_clicks:
                break
            try:
                locator = self._page.locator(selector)
                count = await locator.count()
            except Exception as e:
                logger.debug(f"Reveal selector {selector} failed: {e}")
                continue

            for index in range(count):
                if clicks >= self.max_reveal_clicks:
                    break
                element = locator.nth(index)
                try:
                    if await element.is_visible():
                        await element.click(timeout=1000)
                        clicks += 1
                except Exception as e:
                    logger.debug(f"Reveal click on {selector} failed: {e}")

        if clicks:
            await self._page.wait_for_timeout(self.SETTLE_MS)
        return clicks

    async def _progressive_scroll(self):
        await self._page.evaluate(
            PROGRESSIVE_SCROLL_JS,
            {
                "step": self.SCROLL_STEP,
                "interval": self.SCROLL_INTERVAL_MS,
                "maxSteps": self.MAX_SCROLL_STEPS,
            },
        )
