"""
Structural Fingerprinting for staged pages.

Reduces a page's DOM to a token sequence of its layout elements and hashes
it. Pages built from the same template share a fingerprint regardless of
their text, link targets or image sources, and regardless of how many items
a repeated list holds.

Algorithm:
- Depth-first walk from <body>, skipping content tags (text-level, inline,
  form and media leaves) entirely
- Emit the tag name on entry ("div", or "div.card.wide" in strict mode)
  and "/div" on exit
- Skip a child whose signature equals the previous retained sibling's, so
  N repeated cards walk once
- Stop descending below MAX_DEPTH
- SHA-256 over the ">"-joined tokens

Usage:
    fingerprinter = StructuralFingerprint()
    fingerprint = fingerprinter.compute(stripped_html)
"""

import hashlib
import logging
from typing import List

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


class StructuralFingerprint:
    """
    Compute structural fingerprints of HTML pages.

    Modes:
        structure: tag names only (default, groups pages by layout)
        strict: tag names plus sorted class lists
    """

    MODES = ("structure", "strict")

    CONTENT_TAGS = frozenset({
        "a", "span", "i", "strong", "em", "b", "u", "br", "small", "label",
        "button", "input", "select", "textarea",
        "p", "h1", "h2", "h3", "h4", "h5", "h6", "hr",
        "svg", "path", "img", "picture", "source", "video", "audio",
        "canvas", "iframe", "noscript",
    })

    MAX_DEPTH = 20

    def __init__(self, mode: str = "structure"):
        if mode not in self.MODES:
            raise ValueError(f"Unknown fingerprint mode: {mode}. Available modes: {list(self.MODES)}")
        self.mode = mode

    def compute(self, html: str) -> str:
        """
        Compute the fingerprint of cleaned page markup.

        Returns:
            64-character SHA-256 hex digest
        """
        signature = ">".join(self.tokens(html))
        return hashlib.sha256(signature.encode("utf-8")).hexdigest()

    def tokens(self, html: str) -> List[str]:
        """Structural token sequence for a page."""
        soup = BeautifulSoup(html or "", "html.parser")
        tokens: List[str] = []

        if soup.body is not None:
            self._walk(soup.body, 0, tokens)
        else:
            self._walk_children(soup, 0, tokens)
        return tokens

    def _walk(self, element: Tag, depth: int, tokens: List[str]) -> None:
        if depth > self.MAX_DEPTH:
            return

        tokens.append(self._element_signature(element))
        self._walk_children(element, depth + 1, tokens)
        tokens.append(f"/{element.name}")

    def _walk_children(self, parent, depth: int, tokens: List[str]) -> None:
        previous = None
        for child in parent.children:
            if not isinstance(child, Tag) or child.name in self.CONTENT_TAGS:
                continue

            signature = self._element_signature(child)
            if signature == previous:
                continue
            previous = signature
            self._walk(child, depth, tokens)

    def _element_signature(self, element: Tag) -> str:
        if self.mode != "strict":
            return element.name

        classes = element.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        if not classes:
            return element.name
        return f"{element.name}.{'.'.join(sorted(classes))}"


def get_fingerprinter(mode: str = "structure") -> StructuralFingerprint:
    """Factory function to get StructuralFingerprint instance."""
    return StructuralFingerprint(mode=mode)
