"""
REST API for import jobs.

All endpoints require authentication, are rate limited and operate on the
tenant named by the X-Tenant request header.
"""

from importer.api.views import (
    start_import_job,
    get_import_job_status,
    stop_import_job,
    list_import_job_errors,
)
from importer.api.throttling import (
    ImportStartThrottle,
    ImportStatusThrottle,
)

__all__ = [
    # Views
    'start_import_job',
    'get_import_job_status',
    'stop_import_job',
    'list_import_job_errors',
    # Throttling
    'ImportStartThrottle',
    'ImportStatusThrottle',
]
