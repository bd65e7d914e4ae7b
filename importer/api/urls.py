"""
Import API URL configuration.

Endpoints:
- POST /api/v1/imports/                  - Start an import job
- GET  /api/v1/imports/<job_id>/         - Job status
- POST /api/v1/imports/<job_id>/stop/    - Stop a job
- GET  /api/v1/imports/<job_id>/errors/  - Detailed error log of a job
"""

from django.urls import path

from importer.api.views import (
    start_import_job,
    get_import_job_status,
    stop_import_job,
    list_import_job_errors,
)

app_name = 'importer_api'

urlpatterns = [
    path('imports/', start_import_job, name='start_import'),
    path('imports/<uuid:job_id>/', get_import_job_status, name='import_status'),
    path('imports/<uuid:job_id>/stop/', stop_import_job, name='stop_import'),
    path('imports/<uuid:job_id>/errors/', list_import_job_errors, name='import_errors'),
]
