"""
Pipeline services for the site importer.
"""
