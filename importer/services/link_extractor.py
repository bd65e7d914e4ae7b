"""
Link Extractor Service.

Extracts crawlable same-site links from HTML content for the crawl frontier.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Set

from bs4 import BeautifulSoup

from importer.utils.urls import is_same_site, normalize_url

logger = logging.getLogger(__name__)


@dataclass
class ExtractedLink:
    """A canonical link plus its anchor text."""

    url: str
    text: str = ""


class LinkExtractor:
    """
    Extracts same-site page links from HTML content.

    Links are canonicalised with normalize_url(), so two hrefs for the same
    page collapse to one entry. Asset downloads are skipped.
    """

    SKIP_PATTERNS = [
        r"\.(jpg|jpeg|png|gif|svg|webp|ico|css|js|pdf|zip)$",
    ]

    def __init__(self):
        self._skip_regexes = [re.compile(p, re.IGNORECASE) for p in self.SKIP_PATTERNS]

    def extract_links(self, html: str, page_url: str, root_url: str) -> List[ExtractedLink]:
        """
        Extract same-site links in document order.

        Args:
            html: Page markup
            page_url: URL the markup came from (relative hrefs resolve against it)
            root_url: The job's root URL; only links on its host are kept
        """
        if not html:
            return []

        soup = BeautifulSoup(html, "html.parser")

        links: List[ExtractedLink] = []
        seen_urls: Set[str] = set()

        for anchor in soup.find_all("a", href=True):
            href = anchor.get("href", "").strip()
            if not href or href.startswith("#"):
                continue

            url = normalize_url(href, page_url or root_url)
            if url is None or url in seen_urls:
                continue
            if not is_same_site(url, root_url) or self._should_skip(url):
                continue

            seen_urls.add(url)
            links.append(ExtractedLink(url=url, text=anchor.get_text(strip=True)[:200]))

        logger.debug(f"Extracted {len(links)} links from {page_url}")
        return links

    def _should_skip(self, url: str) -> bool:
        path = url.split("?", 1)[0]
        return any(regex.search(path) for regex in self._skip_regexes)
