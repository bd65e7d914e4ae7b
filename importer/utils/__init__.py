"""
Utility functions for the importer application.

- urls.py: URL canonicalisation and slug derivation
"""

from .urls import normalize_url, is_same_site, slug_from_path

__all__ = ["normalize_url", "is_same_site", "slug_from_path"]
