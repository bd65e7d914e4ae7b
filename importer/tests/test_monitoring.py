"""
Tests for import error logging and Sentry capture.
"""

from unittest.mock import MagicMock, patch

import pytest

from importer.models import ImportJobError, ImportPhase
from importer.monitoring import record_import_error
from importer.monitoring.sentry_integration import (
    _filter_sensitive_data,
    add_import_breadcrumb,
    capture_import_error,
)


class TestSensitiveDataFilter:
    def test_filters_sensitive_keys_recursively(self):
        data = {
            "url": "https://shop.example",
            "Authorization": "Bearer abc",
            "nested": {"api_key": "123", "page": 2},
        }

        filtered = _filter_sensitive_data(data)

        assert filtered["url"] == "https://shop.example"
        assert filtered["Authorization"] == "[Filtered]"
        assert filtered["nested"] == {"api_key": "[Filtered]", "page": 2}

    def test_non_dict_passes_through(self):
        assert _filter_sensitive_data("plain") == "plain"


class TestSentryCapture:
    @patch("importer.monitoring.sentry_integration.sentry_sdk")
    def test_capture_sets_tenant_and_phase_tags(self, mock_sentry):
        scope = MagicMock()
        mock_sentry.new_scope.return_value.__enter__.return_value = scope
        error = ValueError("bad selector")

        capture_import_error(
            error,
            tenant="acme",
            job_id="job-1",
            phase="rules",
            url="https://shop.example/about",
            extra_context={"token": "secret"},
        )

        scope.set_tag.assert_any_call("importer.tenant", "acme")
        scope.set_tag.assert_any_call("importer.phase", "rules")
        scope.set_extra.assert_any_call("import_url", "https://shop.example/about")
        scope.set_extra.assert_any_call("import_context", {"token": "[Filtered]"})
        mock_sentry.capture_exception.assert_called_once_with(error)

    @patch("importer.monitoring.sentry_integration.sentry_sdk")
    def test_breadcrumb_carries_job_context(self, mock_sentry):
        add_import_breadcrumb("acme", "job-1", "crawl", "Starting crawl phase")

        kwargs = mock_sentry.add_breadcrumb.call_args.kwargs
        assert kwargs["category"] == "import"
        assert kwargs["data"] == {"tenant": "acme", "job_id": "job-1", "phase": "crawl"}

    @patch("importer.monitoring.sentry_integration.sentry_sdk")
    def test_sentry_failure_is_logged_not_raised(self, mock_sentry):
        mock_sentry.new_scope.side_effect = RuntimeError("transport down")

        capture_import_error(ValueError("x"), tenant="acme", job_id="job-1", phase="crawl")


@pytest.mark.django_db
class TestRecordImportError:
    @patch("importer.monitoring.sentry_integration.sentry_sdk")
    def test_creates_error_row(self, mock_sentry, ctx, import_job):
        try:
            raise TimeoutError("Page load timed out")
        except TimeoutError as e:
            record = record_import_error(
                ctx, import_job.id, ImportPhase.CRAWL, e, url="https://shop.example/about"
            )

        assert record is not None
        stored = ImportJobError.objects.get(pk=record.pk)
        assert stored.tenant == "default"
        assert stored.phase == "crawl"
        assert stored.error_type == "TimeoutError"
        assert stored.message == "Page load timed out"
        assert stored.url == "https://shop.example/about"
        assert "TimeoutError" in stored.stack_trace
        mock_sentry.capture_exception.assert_called_once()

    @patch("importer.monitoring.sentry_integration.sentry_sdk")
    def test_empty_message_falls_back_to_type(self, mock_sentry, ctx, import_job):
        record = record_import_error(ctx, import_job.id, ImportPhase.JOB, KeyError())

        assert record.message == "KeyError"
