"""
Markup variants for staged pages.

Every captured page is stored three ways:
1. raw markup, exactly as fetched or rendered
2. stripped markup: scripts, styles and head noise removed, hydration root
   unwrapped. Fingerprinting, selector validation, template generation and
   field extraction all read this variant.
3. analysis markup: stripped further to a whitespace-collapsed body with
   navigation chrome removed and only a handful of attributes kept, to keep
   content-service requests small.

The HTTP fetcher and the SPA renderer both go through strip(), so a page
produces the same stripped tree (and fingerprint) whichever captured it.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)


@dataclass
class PageAssets:
    """Stylesheet and script URLs referenced by a page."""

    stylesheets: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)


class MarkupCleaner:
    """Produces the stripped and analysis variants of page markup."""

    DEFAULT_MAX_TOKENS = 16000
    CHARS_PER_TOKEN_HTML = 2

    # Removed from every stored variant
    STRIP_TAGS = ["script", "style", "noscript", "iframe", "template"]

    # Injected by dev servers and hosted builders, never part of the site
    STRIP_SELECTORS = ["vite-error-overlay", "#webpack-dev-server-client-overlay", "#lovable-badge"]

    # Client-side framework mount points, unwrapped so SSR and rendered
    # captures share a tree
    HYDRATION_ROOTS = ["#root", "#__next"]

    # Additionally removed from analysis markup
    ANALYSIS_REMOVE_TAGS = [
        "head", "svg", "path", "symbol", "canvas", "link", "meta",
    ]
    CHROME_SELECTORS = [
        "header", "footer", "nav", "aside",
        ".sidebar", ".menu", ".nav", ".header", ".footer",
        "#header", "#footer", "#nav",
    ]
    ANALYSIS_ATTRIBUTES = {"class", "id", "src", "href", "alt"}

    def __init__(self, max_tokens: int = DEFAULT_MAX_TOKENS):
        self.max_tokens = max_tokens

    def strip(self, html: str) -> str:
        """Return the stripped variant of a page."""
        if not html:
            return ""
        return str(self._clean(html))

    def analysis(self, html: str) -> str:
        """Return the analysis variant of a page (body markup only)."""
        if not html:
            return ""

        soup = self._clean(html)

        for tag in soup.find_all(self.ANALYSIS_REMOVE_TAGS):
            self._decompose(tag)
        for selector in self.CHROME_SELECTORS:
            for element in soup.select(selector):
                self._decompose(element)

        for element in soup.find_all(True):
            element.attrs = {
                name: value
                for name, value in element.attrs.items()
                if name in self.ANALYSIS_ATTRIBUTES
            }

        body = soup.body or soup
        markup = body.decode_contents()
        markup = re.sub(r">\s+<", "><", markup)
        markup = re.sub(r"\s+", " ", markup).strip()
        return self.truncate(markup)

    def extract_title(self, html: str) -> str:
        if not html:
            return ""
        soup = BeautifulSoup(html, "html.parser")
        if soup.title and soup.title.string:
            return soup.title.string.strip()[:255]
        heading = soup.find("h1")
        if heading:
            return heading.get_text(" ", strip=True)[:255]
        return ""

    def collect_assets(self, html: str, base_url: str) -> PageAssets:
        """Collect absolute stylesheet and script URLs referenced by a page."""
        assets = PageAssets()
        if not html:
            return assets

        soup = BeautifulSoup(html, "html.parser")
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if isinstance(rel, str):
                rel = rel.split()
            if "stylesheet" in [r.lower() for r in rel]:
                url = urljoin(base_url, link["href"])
                if url not in assets.stylesheets:
                    assets.stylesheets.append(url)
        for script in soup.find_all("script", src=True):
            url = urljoin(base_url, script["src"])
            if url not in assets.scripts:
                assets.scripts.append(url)
        return assets

    def truncate(self, markup: str, max_tokens: Optional[int] = None) -> str:
        """Cut markup to the token budget at the last tag boundary."""
        max_chars = (max_tokens or self.max_tokens) * self.CHARS_PER_TOKEN_HTML
        if len(markup) <= max_chars:
            return markup

        cut = markup[:max_chars]
        boundary = cut.rfind(">")
        if boundary > max_chars // 2:
            cut = cut[: boundary + 1]
        logger.debug(f"Truncated analysis markup from {len(markup)} to {len(cut)} chars")
        return cut

    def _clean(self, html: str) -> BeautifulSoup:
        soup = BeautifulSoup(html, "html.parser")

        head = soup.head
        if head is not None:
            title = head.find("title")
            title_text = title.get_text() if title else ""
            head.clear()
            if title_text:
                new_title = soup.new_tag("title")
                new_title.string = title_text
                head.append(new_title)

        for tag in soup.find_all(self.STRIP_TAGS):
            self._decompose(tag)

        for selector in self.STRIP_SELECTORS:
            for element in soup.select(selector):
                self._decompose(element)

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        for selector in self.HYDRATION_ROOTS:
            for element in soup.select(selector):
                element.unwrap()

        return soup

    @staticmethod
    def _decompose(element):
        if not getattr(element, "decomposed", False):
            element.decompose()
