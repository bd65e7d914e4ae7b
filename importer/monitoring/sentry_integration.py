"""
Sentry error tracking for import jobs.

The SDK itself is initialised in settings/base.py. This module adds
breadcrumbs for pipeline progress and captures exceptions with the tenant,
job and phase attached, filtering sensitive values first.

Usage:
    from importer.monitoring import capture_import_error

    try:
        await engine.run()
    except Exception as e:
        capture_import_error(e, tenant=ctx.tenant, job_id=job_id, phase="crawl")
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values whose key looks sensitive, recursing into nested dicts.
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_import_breadcrumb(
    tenant: str,
    job_id: str,
    phase: str,
    message: str,
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """Record a pipeline step so errors carry the phases that led up to them."""
    data = {"tenant": tenant, "job_id": str(job_id), "phase": phase}
    if extra_data:
        data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(
            category="import",
            message=message,
            level=level,
            data=data,
        )
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_import_error(
    error: Exception,
    tenant: str,
    job_id: str,
    phase: str,
    url: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an import error to Sentry with tenant/job/phase tags.

    Args:
        error: The exception that occurred
        tenant: Tenant the job belongs to
        job_id: ImportJob id
        phase: Pipeline phase (crawl, rules, templates, ...)
        url: Page or source path being processed, if any
        extra_context: Additional context (filtered for sensitive data)
    """
    add_import_breadcrumb(
        tenant=tenant,
        job_id=job_id,
        phase=phase,
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data={"url": url} if url else None,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("importer.tenant", tenant)
            scope.set_tag("importer.phase", phase)
            scope.set_extra("job_id", str(job_id))
            if url:
                scope.set_extra("import_url", url)
            if extra_context:
                scope.set_extra("import_context", _filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")
