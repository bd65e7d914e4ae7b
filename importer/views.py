"""
Importer views.

Health check endpoint for monitoring and load balancer checks.
"""

import logging

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from importer.models import ImportJob, ImportJobStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


def get_redis_connection():
    """
    Get a Redis client for the Celery broker.

    Returns:
        Redis client, or None if the broker is not Redis.
    """
    broker_url = getattr(settings, "CELERY_BROKER_URL", "") or ""
    if not broker_url.startswith(("redis://", "rediss://")):
        return None
    return redis.Redis.from_url(broker_url, socket_connect_timeout=2, socket_timeout=2)


def get_celery_worker_count():
    """
    Get the count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if Celery not available.
    """
    try:
        from config.celery import app as celery_app

        inspect = celery_app.control.inspect(timeout=1.0)
        active = inspect.active()
        if active:
            return len(active)
        return 0
    except Exception as e:
        logger.debug(f"Celery inspect failed: {e}")
        return 0


def health_check(request):
    """
    Health check endpoint for the importer service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured", or "error"
        - celery_workers: integer count of active workers
        - active_imports: import jobs not yet in a terminal status
        - last_import: ISO timestamp of the most recent job

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    # Check Redis connection (graceful degradation)
    redis_status = "not_configured"
    try:
        redis_client = get_redis_connection()
        if redis_client is not None:
            redis_status = "connected" if redis_client.ping() else "error"
    except redis.RedisError as e:
        logger.warning(f"Health check Redis error: {e}")
        redis_status = "error"

    celery_workers = get_celery_worker_count()

    active_imports = 0
    pending_imports = 0
    last_import = None
    if database_status == "connected":
        try:
            active_imports = ImportJob.objects.exclude(status__in=TERMINAL_STATUSES).count()
            pending_imports = ImportJob.objects.filter(status=ImportJobStatus.PENDING).count()
            latest = ImportJob.objects.order_by("-created_at").first()
            if latest is not None:
                last_import = latest.created_at.isoformat()
        except Exception as e:
            logger.warning(f"Health check import stats unavailable: {e}")

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "redis": redis_status,
            "celery_workers": celery_workers,
            "active_imports": active_imports,
            "pending_imports": pending_imports,
            "last_import": last_import,
        },
        status=http_status,
    )
