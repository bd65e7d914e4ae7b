"""
Tests for URL canonicalisation.
"""

import pytest

from importer.utils.urls import is_same_site, normalize_url, slug_from_path

ROOT = "https://shop.example/"


class TestNormalizeUrl:
    def test_collection_product_collapses_and_tracking_dropped(self):
        assert (
            normalize_url("/collections/sale/products/widget/?utm_source=x", "https://Shop.Example/")
            == "https://shop.example/products/widget"
        )

    def test_root_becomes_bare_origin(self):
        assert normalize_url("/", ROOT) == "https://shop.example"
        assert normalize_url(ROOT, ROOT) == "https://shop.example"

    @pytest.mark.parametrize("link, expected", [
        ("https://shop.example:443/a", "https://shop.example/a"),
        ("http://shop.example:80/a", "http://shop.example/a"),
        ("https://shop.example:8443/a", "https://shop.example:8443/a"),
        ("http://shop.example:443/a", "http://shop.example:443/a"),
    ])
    def test_default_port_dropped(self, link, expected):
        assert normalize_url(link, ROOT) == expected

    def test_fragment_dropped(self):
        assert normalize_url("/about#team", ROOT) == "https://shop.example/about"

    def test_meaningful_query_kept(self):
        assert normalize_url("/blog?page=2&utm_medium=mail", ROOT) == "https://shop.example/blog?page=2"

    def test_relative_link_resolves_against_page(self):
        assert normalize_url("gadget", "https://shop.example/products/") == "https://shop.example/products/gadget"

    @pytest.mark.parametrize("link", [
        "/cart",
        "/cart/add",
        "/search?q=shoes",
        "/account/login",
        "/checkout",
        "/admin",
        "/wp-admin/edit.php",
    ])
    def test_junk_paths_rejected(self, link):
        assert normalize_url(link, ROOT) is None

    @pytest.mark.parametrize("link", [
        "",
        "mailto:shop@example.com",
        "tel:+123",
        "javascript:void(0)",
        "ftp://shop.example/file",
    ])
    def test_non_http_links_rejected(self, link):
        assert normalize_url(link, ROOT) is None

    def test_cartography_is_not_cart(self):
        assert normalize_url("/cartography", ROOT) == "https://shop.example/cartography"

    @pytest.mark.parametrize("link", [
        "/collections/sale/products/widget/?utm_source=x&color=red",
        "HTTPS://SHOP.EXAMPLE/About/",
        "/blog/?fbclid=1#top",
        "/",
        "https://other.example/a/b/?gclid=9",
    ])
    def test_idempotent(self, link):
        once = normalize_url(link, ROOT)
        assert normalize_url(once, ROOT) == once


class TestHelpers:
    def test_same_site_compares_hostname(self):
        assert is_same_site("https://shop.example/a", "https://shop.example")
        assert not is_same_site("https://cdn.shop.example/a", "https://shop.example")

    def test_slug_from_path(self):
        assert slug_from_path("https://shop.example") == "home"
        assert slug_from_path("https://shop.example/") == "home"
        assert slug_from_path("https://shop.example/products/widget") == "products-widget"
        assert slug_from_path("/about/") == "about"
