"""
Input acquisition strategies for the import pipeline.

- HttpFetcher: httpx fetch for static and server-rendered sites
- SPARenderer: Playwright render for client-rendered single-page apps
- SourceRepositoryScanner: shallow clone + file walk for source repositories

HttpFetcher and SPARenderer share the FetchResponse contract, so the crawl
engine drives either one.
"""

from .http_fetcher import FetchResponse, HttpFetcher
from .spa_renderer import SPARenderer
from .source_scanner import SourceFile, SourceRepositoryScanner

__all__ = [
    "FetchResponse",
    "HttpFetcher",
    "SPARenderer",
    "SourceFile",
    "SourceRepositoryScanner",
]
