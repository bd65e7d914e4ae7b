"""
Celery tasks for the Site Importer.

- run_import_job: runs one import job through every pipeline phase

The task receives the tenant *name* and resolves the TenantContext inside the
worker; the orchestrator's coroutine runs on a fresh event loop per task.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import shared_task

from importer.exceptions import UnknownTenantError
from importer.models import ImportJob
from importer.services.orchestrator import ImportOrchestrator
from importer.services.job_registry import get_job_registry
from importer.services.tenancy import resolve_tenant

logger = logging.getLogger(__name__)


@shared_task(name="importer.tasks.run_import_job", bind=True)
def run_import_job(self, job_id: str, tenant: str) -> Dict[str, Any]:
    """
    Import worker task.

    Args:
        job_id: UUID of the ImportJob
        tenant: Tenant name the job belongs to

    Returns:
        Dict with the job id and its final status
    """
    logger.info(f"Starting import job {job_id} for tenant {tenant}")

    try:
        ctx = resolve_tenant(tenant)
    except UnknownTenantError as e:
        logger.error(f"Import job {job_id} rejected: {e}")
        return {"job_id": job_id, "tenant": tenant, "status": "failed", "error": str(e)}

    if not ImportJob.objects.using(ctx.db_alias).filter(pk=job_id).exists():
        logger.error(f"Import job {job_id} not found for tenant {tenant}")
        return {"job_id": job_id, "tenant": tenant, "status": "failed", "error": "Job not found"}

    orchestrator = ImportOrchestrator(ctx, registry=get_job_registry())

    # Run async pipeline in its own event loop
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        final_status = loop.run_until_complete(orchestrator.run(job_id))
    finally:
        loop.close()

    logger.info(f"Import job {job_id} finished with status {final_status}")
    return {"job_id": job_id, "tenant": tenant, "status": final_status}
