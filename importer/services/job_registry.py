"""
Job Registry - cancellation tokens for running import jobs.

The orchestrator registers a token when a job starts and removes it when the
job ends; phases poll it between units of work. A stop request handled by
another process only reaches a worker through the persisted
``ImportJob.cancel_requested`` flag, which poll() folds into the local token.
"""

import logging
import threading
from typing import Dict, List, Optional

from asgiref.sync import sync_to_async

from importer.models import ImportJob
from importer.services.tenancy import TenantContext

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-way flag: once cancelled it stays cancelled."""

    def __init__(self, job_id):
        self.job_id = str(job_id)
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class JobRegistry:
    """Map of job id to cancellation token."""

    def __init__(self):
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, job_id) -> CancellationToken:
        key = str(job_id)
        with self._lock:
            token = self._tokens.get(key)
            if token is None:
                token = CancellationToken(key)
                self._tokens[key] = token
        return token

    def get(self, job_id) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.get(str(job_id))

    def cancel(self, job_id) -> bool:
        """Trip the token for a job. Returns False if the job is not running here."""
        token = self.get(job_id)
        if token is None:
            return False
        token.cancel()
        logger.info(f"Cancellation requested for import job {job_id}")
        return True

    def is_cancelled(self, job_id) -> bool:
        token = self.get(job_id)
        return token is not None and token.cancelled

    def unregister(self, job_id):
        with self._lock:
            self._tokens.pop(str(job_id), None)

    def active_jobs(self) -> List[str]:
        with self._lock:
            return list(self._tokens)

    async def poll(self, ctx: TenantContext, job_id) -> bool:
        """
        Check the local token and the persisted cancel flag.

        A set flag trips the local token so later checks stay cheap.
        """
        if self.is_cancelled(job_id):
            return True

        @sync_to_async
        def cancel_flag_set():
            return (
                ImportJob.objects.using(ctx.db_alias)
                .filter(pk=job_id, cancel_requested=True)
                .exists()
            )

        if await cancel_flag_set():
            self.register(job_id).cancel()
            return True
        return False


_job_registry: Optional[JobRegistry] = None


def get_job_registry() -> JobRegistry:
    """Get the registry for this worker process."""
    global _job_registry
    if _job_registry is None:
        _job_registry = JobRegistry()
    return _job_registry
