"""
Tests for starting, stopping and inspecting import jobs.
"""

from unittest.mock import patch

import pytest

from importer.models import ImportJob, ImportJobStatus
from importer.services.job_control import (
    STOP_MESSAGE,
    build_config,
    get_import_status,
    start_import,
    stop_import,
)
from importer.services.job_registry import JobRegistry


def test_build_config_ignores_unknown_keys():
    config = build_config({"max_pages": 20, "run_transform": False, "bogus": 1})
    assert config["max_pages"] == 20
    assert config["run_transform"] is False
    assert config["fingerprint_mode"] == "structure"
    assert "bogus" not in config


@pytest.mark.django_db
class TestStartImport:
    def test_creates_pending_job(self, ctx):
        job = start_import(ctx, "https://shop.example", config={"max_pages": 10}, enqueue=False)

        assert job.status == ImportJobStatus.PENDING
        assert job.tenant == "default"
        assert job.progress_message == "Queued"
        assert job.config["max_pages"] == 10

    def test_enqueues_after_commit(self, ctx, django_capture_on_commit_callbacks):
        with patch("importer.tasks.run_import_job.delay") as delay:
            with django_capture_on_commit_callbacks(execute=True):
                job = start_import(ctx, "https://shop.example")

        delay.assert_called_once_with(str(job.id), "default")

    def test_rejects_unknown_kind(self, ctx):
        with pytest.raises(ValueError):
            start_import(ctx, "https://shop.example", source_kind="ftp", enqueue=False)


@pytest.mark.django_db
class TestStopImport:
    def test_marks_job_cancelled(self, ctx, import_job):
        registry = JobRegistry()
        registry.register(import_job.id)

        job = stop_import(ctx, import_job.id, registry=registry)

        assert job.status == ImportJobStatus.CANCELLED
        assert job.progress_message == STOP_MESSAGE
        assert job.cancel_requested is True
        assert registry.is_cancelled(import_job.id)

    def test_missing_job(self, ctx):
        assert stop_import(ctx, "00000000-0000-0000-0000-000000000000") is None

    def test_finished_job_keeps_status(self, ctx, import_job):
        ImportJob.objects.filter(pk=import_job.id).update(status=ImportJobStatus.COMPLETED)

        job = stop_import(ctx, import_job.id, registry=JobRegistry())

        assert job.status == ImportJobStatus.COMPLETED


@pytest.mark.django_db
class TestImportStatus:
    def test_status_fields(self, ctx, import_job):
        status = get_import_status(ctx, import_job.id)

        assert status["id"] == str(import_job.id)
        assert status["status"] == "pending"
        assert status["page_count"] == 0
        assert status["started_at"] is None
        assert status["duration_seconds"] is None
        assert status["error_count"] == 0

    def test_missing_job(self, ctx):
        assert get_import_status(ctx, "00000000-0000-0000-0000-000000000000") is None


@pytest.mark.django_db
def test_status_writes_are_monotonic(import_job):
    assert ImportJob.set_status("default", import_job.id, ImportJobStatus.FAILED, "boom")
    assert not ImportJob.set_status("default", import_job.id, ImportJobStatus.CRAWLING, "late")

    import_job.refresh_from_db()
    assert import_job.status == ImportJobStatus.FAILED
    assert import_job.progress_message == "boom"
    assert import_job.completed_at is not None
