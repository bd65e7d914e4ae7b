"""
Monitoring for the site importer.

- Sentry error tracking tagged with tenant, job and phase
- ImportJobError records for every per-page, per-group and per-item failure
"""

from .sentry_integration import capture_import_error, add_import_breadcrumb
from .error_logger import create_import_error_record, record_import_error

__all__ = [
    "capture_import_error",
    "add_import_breadcrumb",
    "create_import_error_record",
    "record_import_error",
]
