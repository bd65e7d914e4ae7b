"""
URL canonicalisation for crawl dedup and fingerprint-group joins.

Normalization Rules (applied in order):
- Resolve against the root URL, drop the fragment
- Lower-case the host
- Collapse /collections/<name>/products/<item> to /products/<item>
- Reject cart, search, account, login, checkout and admin paths
- Drop tracking query parameters
- Drop trailing slashes (the root path becomes the bare origin)

normalize_url() is idempotent: feeding its output back in returns it unchanged.
"""

import re
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

NON_HTTP_PREFIXES = ("mailto:", "tel:", "javascript:", "data:", "sms:")

# Matched per path segment; a trailing slash means "anything below".
JUNK_PATHS = (
    "/cart",
    "/search",
    "/account",
    "/login",
    "/logout",
    "/checkout",
    "/admin",
    "/wp-admin",
    "/wp-login.php",
    "/tools/",
)

TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
    "gclid",
    "ref",
    "variant",
    "view",
    "_ss",
    "_v",
    "_pos",
    "pr_prod_strat",
    "pr_rec_id",
}

# Shopify-style product URLs nested under a collection
COLLECTION_PRODUCT_RE = re.compile(r"^/collections/[^/]+(/products/.+)$", re.IGNORECASE)

DEFAULT_PORTS = {"http": ":80", "https": ":443"}


def _is_junk_path(path: str) -> bool:
    lowered = path.lower()
    for prefix in JUNK_PATHS:
        if prefix.endswith("/"):
            if lowered.startswith(prefix):
                return True
        elif lowered == prefix or lowered.startswith(prefix + "/"):
            return True
    return False


def _strip_tracking(query: str) -> str:
    if not query:
        return ""
    kept = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    ]
    return urlencode(kept)


def normalize_url(link: str, root_url: str) -> Optional[str]:
    """
    Canonicalise a discovered link.

    Args:
        link: Absolute or relative href
        root_url: The job's root URL, used to resolve relative links

    Returns:
        Canonical absolute URL, or None when the link should not be crawled

    Example:
        >>> normalize_url("/collections/sale/products/widget/?utm_source=x", "https://Shop.Example/")
        'https://shop.example/products/widget'
    """
    if not link:
        return None

    link = link.strip()
    if not link or link.lower().startswith(NON_HTTP_PREFIXES):
        return None

    try:
        parts = urlsplit(urljoin(root_url, link))
    except ValueError:
        return None

    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None

    path = parts.path
    match = COLLECTION_PRODUCT_RE.match(path)
    if match:
        path = match.group(1)

    if _is_junk_path(path):
        return None

    query = _strip_tracking(parts.query)
    path = path.rstrip("/")

    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    if netloc.endswith(DEFAULT_PORTS[scheme]):
        netloc = netloc[: -len(DEFAULT_PORTS[scheme])]

    return urlunsplit((scheme, netloc, path, query, ""))


def is_same_site(url: str, root_url: str) -> bool:
    """True if both URLs share a hostname."""
    return (urlsplit(url).hostname or "") == (urlsplit(root_url).hostname or "")


def slug_from_path(url: str) -> str:
    """
    Derive a content slug from a URL path.

    The root path maps to "home"; other paths join their segments with "-".
    """
    path = urlsplit(url).path if "://" in url else url
    trimmed = path.strip("/")
    if not trimmed:
        return "home"
    return "-".join(segment for segment in trimmed.split("/") if segment)
