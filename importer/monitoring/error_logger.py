"""
Detailed error logging for import jobs.

Every failure that the pipeline survives (a page that would not fetch, a
group the content service could not analyse, an item that failed to
transform) gets an ImportJobError row, a log line and a Sentry event.

Usage:
    from importer.monitoring import record_import_error

    record_import_error(ctx, job_id, phase="crawl", error=e, url=url)
"""

import logging
import traceback
from typing import Any, Dict, Optional

from importer.services.tenancy import TenantContext

logger = logging.getLogger(__name__)


def create_import_error_record(
    ctx: TenantContext,
    job_id,
    phase: str,
    error_type: str,
    message: str,
    url: str = "",
    stack_trace: str = "",
):
    """
    Create an ImportJobError row in the tenant's database.

    Returns:
        ImportJobError instance, or None if the row could not be written
    """
    from importer.models import ImportJobError

    try:
        record = ImportJobError.objects.using(ctx.db_alias).create(
            job_id=job_id,
            tenant=ctx.tenant,
            phase=phase,
            url=url or "",
            error_type=error_type[:100],
            message=message,
            stack_trace=stack_trace,
        )
        logger.debug(f"Created ImportJobError {record.id} for job {job_id}: {error_type}")
        return record

    except Exception as e:
        logger.error(f"Failed to create ImportJobError record: {e}")
        return None


def record_import_error(
    ctx: TenantContext,
    job_id,
    phase: str,
    error: Exception,
    url: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
):
    """
    Log an error to the database, the log and Sentry.

    Synchronous; async callers wrap it with sync_to_async.
    """
    from .sentry_integration import capture_import_error

    logger.error(
        f"[{ctx.tenant}/{job_id}] {phase} failed"
        f"{f' for {url}' if url else ''}: {type(error).__name__}: {error}",
        extra={"tenant": ctx.tenant, "job_id": str(job_id), "phase": phase},
    )

    stack_trace = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )
    record = create_import_error_record(
        ctx,
        job_id,
        phase=phase,
        error_type=type(error).__name__,
        message=str(error) or type(error).__name__,
        url=url or "",
        stack_trace=stack_trace,
    )

    capture_import_error(
        error,
        tenant=ctx.tenant,
        job_id=job_id,
        phase=phase,
        url=url,
        extra_context=extra_context,
    )
    return record
