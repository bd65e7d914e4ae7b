"""
Tests for structural fingerprinting.
"""

import pytest

from importer.services.fingerprint import StructuralFingerprint, get_fingerprinter
from importer.services.markup import MarkupCleaner


def listing(cards, card_class="card"):
    items = "".join(
        f'<div class="{card_class}"><h2>Item {i}</h2><a href="/p/{i}">View</a></div>'
        for i in range(cards)
    )
    return f"<html><body><main><section>{items}</section></main></body></html>"


class TestStructuralFingerprint:
    def test_fingerprint_is_sha256_hex(self):
        fingerprint = StructuralFingerprint().compute(listing(2))
        assert len(fingerprint) == 64
        int(fingerprint, 16)

    def test_repeated_siblings_collapse(self):
        fingerprinter = StructuralFingerprint()
        assert fingerprinter.compute(listing(1)) == fingerprinter.compute(listing(12))

    def test_text_links_and_images_ignored(self):
        fingerprinter = StructuralFingerprint()
        a = '<body><div class="hero"><h1>Hello</h1><img src="/a.jpg"><a href="/x">x</a></div></body>'
        b = '<body><div class="hero"><h1>Other title</h1><img src="/b.png"></div></body>'
        assert fingerprinter.compute(a) == fingerprinter.compute(b)

    def test_layout_difference_changes_fingerprint(self):
        fingerprinter = StructuralFingerprint()
        a = "<body><main><div></div></main></body>"
        b = "<body><main><div></div></main><footer></footer></body>"
        assert fingerprinter.compute(a) != fingerprinter.compute(b)

    def test_structure_mode_ignores_classes(self):
        fingerprinter = StructuralFingerprint()
        assert fingerprinter.compute(listing(3, "card")) == fingerprinter.compute(listing(3, "tile"))

    def test_strict_mode_uses_sorted_classes(self):
        fingerprinter = StructuralFingerprint(mode="strict")
        a = '<body><div class="card wide"></div></body>'
        b = '<body><div class="wide card"></div></body>'
        c = '<body><div class="card"></div></body>'
        assert fingerprinter.compute(a) == fingerprinter.compute(b)
        assert fingerprinter.compute(a) != fingerprinter.compute(c)

    def test_tokens_include_enter_and_exit(self):
        tokens = StructuralFingerprint().tokens("<body><main><div></div></main></body>")
        assert tokens == ["body", "main", "div", "/div", "/main", "/body"]

    def test_depth_is_capped(self):
        fingerprinter = StructuralFingerprint()
        deep = "<body>" + "<div>" * 40 + "</div>" * 40 + "</body>"
        deeper = "<body>" + "<div>" * 60 + "</div>" * 60 + "</body>"
        assert fingerprinter.compute(deep) == fingerprinter.compute(deeper)

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            get_fingerprinter("fuzzy")

    def test_same_fingerprint_for_raw_and_rendered_capture(self):
        """Script tags and hydration roots do not change the stripped tree."""
        cleaner = MarkupCleaner()
        fingerprinter = StructuralFingerprint()
        server = "<html><body><main><div></div></main><script>boot()</script></body></html>"
        rendered = '<html><body><div id="root"><main><div></div></main></div></body></html>'
        assert fingerprinter.compute(cleaner.strip(server)) == fingerprinter.compute(
            cleaner.strip(rendered)
        )
