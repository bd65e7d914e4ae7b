"""
Import API views.

REST endpoints for the job control surface:
- start an import of a website, single-page app or source repository
- poll its phase, progress message and page count
- request cancellation
- read the detailed error log for operator diagnosis
"""

import logging
from urllib.parse import urlparse

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from importer.api.throttling import ImportStartThrottle, ImportStatusThrottle
from importer.exceptions import UnknownTenantError
from importer.models import ImportJobError, SourceKind
from importer.services.job_control import (
    get_import_status,
    start_import,
    stop_import,
)
from importer.services.tenancy import TENANT_HEADER, tenant_from_request

logger = logging.getLogger(__name__)

TENANT_PARAMETER = OpenApiParameter(
    name=TENANT_HEADER,
    type=OpenApiTypes.STR,
    location=OpenApiParameter.HEADER,
    required=False,
    description='Tenant whose data partition the job uses (default tenant when absent)',
)

BOOLEAN_CONFIG_KEYS = ('clear_existing', 'run_transform', 'sideload_assets')


def _is_valid_url(url: str) -> bool:
    """Check if a string is a valid http(s) URL."""
    try:
        result = urlparse(url)
        return all([result.scheme in ('http', 'https'), result.netloc])
    except ValueError:
        return False


def _is_valid_source(url: str, source_kind: str) -> bool:
    if source_kind == SourceKind.REPOSITORY:
        return bool(url) and (
            _is_valid_url(url) or url.startswith(('git@', 'ssh://', 'file://'))
        )
    return _is_valid_url(url)


def _tenant_or_error(request):
    try:
        return tenant_from_request(request), None
    except UnknownTenantError as e:
        return None, Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)


def _parse_config(data):
    """Validate job config from the request body. Returns (config, error)."""
    config = {}

    max_pages = data.get('max_pages')
    if max_pages is not None:
        try:
            max_pages = int(max_pages)
        except (TypeError, ValueError):
            return None, 'max_pages must be an integer'
        if max_pages < 1:
            return None, 'max_pages must be at least 1'
        config['max_pages'] = max_pages

    for key in BOOLEAN_CONFIG_KEYS:
        if key in data:
            if not isinstance(data[key], bool):
                return None, f'{key} must be a boolean'
            config[key] = data[key]

    fingerprint_mode = data.get('fingerprint_mode')
    if fingerprint_mode is not None:
        if fingerprint_mode not in ('structure', 'strict'):
            return None, "fingerprint_mode must be 'structure' or 'strict'"
        config['fingerprint_mode'] = fingerprint_mode

    return config, None


@extend_schema(
    tags=['Imports'],
    summary='Start an import job',
    description='''
    Queue an import of an external site or source repository.

    The job runs in the background: discovery, crawl, rule generation,
    template generation and (unless disabled) transformation into CMS content.
    Poll the status endpoint for progress.
    ''',
    parameters=[TENANT_PARAMETER],
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'source_url': {'type': 'string', 'description': 'Root URL of the site or repository location'},
                'source_kind': {'type': 'string', 'enum': ['website', 'spa', 'repository'], 'default': 'website'},
                'max_pages': {'type': 'integer', 'minimum': 1, 'description': 'Page budget for the crawl'},
                'clear_existing': {'type': 'boolean', 'default': False, 'description': 'Delete previously imported data first'},
                'run_transform': {'type': 'boolean', 'default': True, 'description': 'Create CMS content after generating templates'},
                'sideload_assets': {'type': 'boolean', 'default': False, 'description': 'Store recommended theme assets locally'},
                'fingerprint_mode': {'type': 'string', 'enum': ['structure', 'strict'], 'default': 'structure'},
            },
            'required': ['source_url'],
        }
    },
    responses={
        202: {
            'description': 'Job queued',
            'content': {
                'application/json': {
                    'example': {
                        'job_id': 'b3d1c6a2-4f2e-4d7a-9a51-0d1f7c0e9a11',
                        'status': 'pending',
                        'status_url': '/api/v1/imports/b3d1c6a2-4f2e-4d7a-9a51-0d1f7c0e9a11/',
                    }
                }
            }
        },
        400: {'description': 'Invalid source, config or tenant'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([ImportStartThrottle])
def start_import_job(request):
    """
    Start an import job.

    Request body:
    {
        "source_url": "https://shop.example",
        "source_kind": "website",     // Optional: "website", "spa", "repository"
        "max_pages": 200,             // Optional: crawl budget
        "clear_existing": false,      // Optional
        "run_transform": true,        // Optional
        "sideload_assets": false,     // Optional
        "fingerprint_mode": "structure"  // Optional: "structure" or "strict"
    }
    """
    ctx, error_response = _tenant_or_error(request)
    if error_response:
        return error_response

    source_url = (request.data.get('source_url') or '').strip()
    if not source_url:
        return Response(
            {'error': 'source_url is required'},
            status=status.HTTP_400_BAD_REQUEST
        )

    source_kind = request.data.get('source_kind', SourceKind.WEBSITE)
    if source_kind not in SourceKind.values:
        return Response(
            {'error': f'Invalid source_kind. Must be one of: {", ".join(SourceKind.values)}'},
            status=status.HTTP_400_BAD_REQUEST
        )

    if not _is_valid_source(source_url, source_kind):
        return Response(
            {'error': 'Invalid source_url format'},
            status=status.HTTP_400_BAD_REQUEST
        )

    config, config_error = _parse_config(request.data)
    if config_error:
        return Response({'error': config_error}, status=status.HTTP_400_BAD_REQUEST)

    job = start_import(ctx, source_url, source_kind, config)

    return Response(
        {
            'job_id': str(job.id),
            'status': job.status,
            'status_url': f'/api/v1/imports/{job.id}/',
        },
        status=status.HTTP_202_ACCEPTED
    )


@extend_schema(
    tags=['Imports'],
    summary='Get import job status',
    description='Current phase, progress message, page count and timing of an import job.',
    parameters=[TENANT_PARAMETER],
    responses={
        200: {
            'description': 'Job status',
            'content': {
                'application/json': {
                    'example': {
                        'id': 'b3d1c6a2-4f2e-4d7a-9a51-0d1f7c0e9a11',
                        'status': 'crawling',
                        'progress_message': 'Crawled 40 pages...',
                        'page_count': 42,
                    }
                }
            }
        },
        404: {'description': 'Job not found'},
    },
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@throttle_classes([ImportStatusThrottle])
def get_import_job_status(request, job_id):
    """Get status of an import job."""
    ctx, error_response = _tenant_or_error(request)
    if error_response:
        return error_response

    job_status = get_import_status(ctx, job_id)
    if job_status is None:
        return Response(
            {'error': 'Job not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    return Response(job_status)


@extend_schema(
    tags=['Imports'],
    summary='Stop an import job',
    description='''
    Request cancellation of an import job.

    Best effort: the phase in progress finishes its current page, group or
    item and the job then ends as cancelled.
    ''',
    parameters=[TENANT_PARAMETER],
    request=None,
    responses={
        200: {'description': 'Cancellation requested'},
        404: {'description': 'Job not found'},
        409: {'description': 'Job already finished'},
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([ImportStatusThrottle])
def stop_import_job(request, job_id):
    """Stop an import job."""
    ctx, error_response = _tenant_or_error(request)
    if error_response:
        return error_response

    current = get_import_status(ctx, job_id)
    if current is None:
        return Response(
            {'error': 'Job not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    if current['status'] in ('completed', 'failed'):
        return Response(
            {'error': f"Job already {current['status']}", 'status': current['status']},
            status=status.HTTP_409_CONFLICT
        )

    job = stop_import(ctx, job_id)
    return Response({
        'job_id': str(job.id),
        'status': job.status,
        'progress_message': job.progress_message,
    })


@extend_schema(
    tags=['Imports'],
    summary='List import job errors',
    description='Detailed per-page, per-group and per-item errors recorded for a job.',
    parameters=[
        TENANT_PARAMETER,
        OpenApiParameter(name='phase', type=OpenApiTypes.STR, description='Filter by pipeline phase'),
    ],
    responses={
        200: {'description': 'Error records, newest first'},
        404: {'description': 'Job not found'},
    },
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
@throttle_classes([ImportStatusThrottle])
def list_import_job_errors(request, job_id):
    """List the error log of an import job."""
    ctx, error_response = _tenant_or_error(request)
    if error_response:
        return error_response

    if get_import_status(ctx, job_id) is None:
        return Response(
            {'error': 'Job not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    errors = ImportJobError.objects.using(ctx.db_alias).filter(job_id=job_id)
    phase = request.query_params.get('phase')
    if phase:
        errors = errors.filter(phase=phase)

    return Response({
        'job_id': str(job_id),
        'count': errors.count(),
        'errors': [
            {
                'id': str(error.id),
                'phase': error.phase,
                'url': error.url,
                'error_type': error.error_type,
                'message': error.message,
                'timestamp': error.timestamp.isoformat(),
            }
            for error in errors[:200]
        ],
    })
