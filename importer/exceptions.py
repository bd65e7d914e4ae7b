"""
Exceptions raised by the import pipeline.
"""


class ImporterError(Exception):
    """Base class for importer errors."""


class ImportCancelled(ImporterError):
    """The job was cancelled. Recorded as status ``cancelled``, never as a failure."""

    def __init__(self, job_id):
        super().__init__(f"Import job {job_id} was cancelled")
        self.job_id = job_id


class ImportPhaseError(ImporterError):
    """A phase cannot run at all (missing job record, missing ruleset, ...)."""


class UnknownTenantError(ImporterError):
    """No database partition is configured for the tenant."""


class SourceScanError(ImporterError):
    """The source repository could not be cloned or read."""


class MediaStoreError(ImporterError):
    """A media file could not be downloaded or stored."""
