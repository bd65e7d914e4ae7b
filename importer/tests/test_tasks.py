"""
Tests for the import Celery task.

The orchestrator is mocked; its behaviour is covered in test_orchestrator.
"""

from unittest.mock import AsyncMock, patch

import pytest

from importer.models import ImportJobStatus
from importer.tasks import run_import_job


@pytest.mark.django_db
class TestRunImportJob:
    def test_runs_orchestrator_for_job(self, import_job):
        with patch("importer.tasks.ImportOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run = AsyncMock(return_value=ImportJobStatus.COMPLETED)

            result = run_import_job.apply(args=[str(import_job.id), "default"]).get()

        assert result == {
            "job_id": str(import_job.id),
            "tenant": "default",
            "status": "completed",
        }
        ctx = orchestrator_cls.call_args.args[0]
        assert ctx.tenant == "default"
        assert ctx.db_alias == "default"
        orchestrator_cls.return_value.run.assert_awaited_once_with(str(import_job.id))

    def test_unknown_tenant(self, import_job):
        with patch("importer.tasks.ImportOrchestrator") as orchestrator_cls:
            result = run_import_job.apply(args=[str(import_job.id), "acme"]).get()

        assert result["status"] == "failed"
        assert "acme" in result["error"]
        orchestrator_cls.assert_not_called()

    def test_missing_job(self):
        with patch("importer.tasks.ImportOrchestrator") as orchestrator_cls:
            result = run_import_job.apply(
                args=["00000000-0000-0000-0000-000000000000", "default"]
            ).get()

        assert result["status"] == "failed"
        assert result["error"] == "Job not found"
        orchestrator_cls.assert_not_called()
