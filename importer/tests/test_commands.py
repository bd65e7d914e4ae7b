"""
Tests for the run_import and clear_imported_data management commands.
"""

from io import StringIO
from unittest.mock import AsyncMock, patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from importer.models import ContentRecord, ImportJob, ImportJobStatus, Template


@pytest.mark.django_db
class TestRunImportCommand:
    def test_runs_job_in_process(self):
        out = StringIO()
        with patch("importer.management.commands.run_import.ImportOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run = AsyncMock(return_value=ImportJobStatus.COMPLETED)
            call_command(
                "run_import", "https://shop.example", "--max-pages", "5", "--no-transform",
                stdout=out,
            )

        job = ImportJob.objects.get()
        assert job.config["max_pages"] == 5
        assert job.config["run_transform"] is False
        assert "completed" in out.getvalue()
        orchestrator_cls.return_value.run.assert_awaited_once_with(job.id)

    def test_failed_import_raises(self):
        with patch("importer.management.commands.run_import.ImportOrchestrator") as orchestrator_cls:
            orchestrator_cls.return_value.run = AsyncMock(return_value=ImportJobStatus.FAILED)
            with pytest.raises(CommandError):
                call_command("run_import", "https://shop.example", stdout=StringIO())

    def test_rejects_bad_budget(self):
        with pytest.raises(CommandError):
            call_command("run_import", "https://shop.example", "--max-pages", "0")
        assert ImportJob.objects.count() == 0

    def test_unknown_tenant(self):
        with pytest.raises(CommandError):
            call_command("run_import", "https://shop.example", "--tenant", "acme")


@pytest.mark.django_db
class TestClearImportedDataCommand:
    def setup_records(self):
        ContentRecord.objects.create(slug="home", module="pages", source_url="https://shop.example")
        ContentRecord.objects.create(slug="handmade", module="pages")
        Template.objects.create(filename="imported/page-abc.njk", name="Imported Page")
        Template.objects.create(filename="base.njk", name="Base")

    def test_requires_confirm_or_dry_run(self):
        with pytest.raises(CommandError):
            call_command("clear_imported_data")

    def test_dry_run_deletes_nothing(self):
        self.setup_records()
        out = StringIO()

        call_command("clear_imported_data", "--dry-run", stdout=out)

        assert "ContentRecord: 1 records (would delete)" in out.getvalue()
        assert ContentRecord.objects.count() == 2

    def test_confirm_deletes_imported_data(self):
        self.setup_records()

        call_command("clear_imported_data", "--confirm", stdout=StringIO())

        assert list(ContentRecord.objects.values_list("slug", flat=True)) == ["handmade"]
        assert list(Template.objects.values_list("filename", flat=True)) == ["base.njk"]
