"""
Job control: start, stop and inspect import jobs.

Used by the REST API and the management commands. Starting a job creates
the ImportJob row and enqueues the Celery task once the row is committed;
stopping sets the persisted cancel flag (which reaches the worker through
JobRegistry.poll), trips any local token and marks the job cancelled.
"""

import logging
from typing import Any, Dict, Optional

from django.db import transaction

from importer.models import (
    ImportJob,
    ImportJobStatus,
    SourceKind,
    default_import_config,
)
from importer.services.job_registry import JobRegistry, get_job_registry
from importer.services.tenancy import TenantContext

logger = logging.getLogger(__name__)

CONFIG_KEYS = set(default_import_config())

STOP_MESSAGE = "Cancelled by user."


def build_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Default job config updated with the known keys of overrides."""
    config = default_import_config()
    for key, value in (overrides or {}).items():
        if key in CONFIG_KEYS:
            config[key] = value
    return config


def start_import(
    ctx: TenantContext,
    source_url: str,
    source_kind: str = SourceKind.WEBSITE,
    config: Optional[Dict[str, Any]] = None,
    enqueue: bool = True,
) -> ImportJob:
    """
    Create an import job and queue it for a worker.

    Args:
        ctx: Tenant the job belongs to
        source_url: Root URL of the site or repository location
        source_kind: website, spa or repository
        config: Overrides for max_pages, clear_existing, run_transform,
            sideload_assets and fingerprint_mode
        enqueue: False to create the job without queueing it (run in-process)
    """
    from importer.tasks import run_import_job

    if source_kind not in SourceKind.values:
        raise ValueError(f"Unknown source kind: {source_kind}")

    with transaction.atomic(using=ctx.db_alias):
        job = ImportJob.objects.using(ctx.db_alias).create(
            tenant=ctx.tenant,
            source_url=source_url,
            source_kind=source_kind,
            config=build_config(config),
            progress_message="Queued",
        )
        if enqueue:
            transaction.on_commit(
                lambda: run_import_job.delay(str(job.id), ctx.tenant),
                using=ctx.db_alias,
            )

    logger.info(f"[{ctx.tenant}/{job.id}] Import job created for {source_url} ({source_kind})")
    return job


def stop_import(
    ctx: TenantContext, job_id, registry: Optional[JobRegistry] = None
) -> Optional[ImportJob]:
    """
    Request cancellation of a job.

    Best effort: a phase in progress finishes its current unit of work.
    Returns the job, or None if it does not exist.
    """
    registry = registry or get_job_registry()

    updated = ImportJob.objects.using(ctx.db_alias).filter(pk=job_id).update(
        cancel_requested=True
    )
    if not updated:
        return None

    registry.cancel(job_id)
    ImportJob.set_status(ctx.db_alias, job_id, ImportJobStatus.CANCELLED, STOP_MESSAGE)
    logger.info(f"[{ctx.tenant}/{job_id}] Stop requested")
    return ImportJob.objects.using(ctx.db_alias).get(pk=job_id)


def get_import_status(ctx: TenantContext, job_id) -> Optional[Dict[str, Any]]:
    """Phase, message, page count and timestamps of a job, or None."""
    job = ImportJob.objects.using(ctx.db_alias).filter(pk=job_id).first()
    if job is None:
        return None

    return {
        "id": str(job.id),
        "tenant": job.tenant,
        "source_url": job.source_url,
        "source_kind": job.source_kind,
        "status": job.status,
        "progress_message": job.progress_message,
        "page_count": job.page_count,
        "error_message": job.error_message,
        "cancel_requested": job.cancel_requested,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "duration_seconds": job.duration_seconds,
        "error_count": job.errors.count(),
    }
