"""
Site importer Django application.

This app crawls external websites (or scans source repositories), clusters
their pages by structure and rebuilds them as CMS templates and content.
"""
