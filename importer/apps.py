"""
Importer application configuration.
"""

from django.apps import AppConfig


class ImporterConfig(AppConfig):
    """Configuration for the importer Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "importer"
    verbose_name = "Site Importer"
