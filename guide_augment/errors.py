"""Error taxonomy for the augmentation pipeline.

Each error names the granularity it is recovered at:

- ExtractionFailed: one document (marked errored, batch continues)
- SearchDegraded: one gear mention (treated as zero candidates)
- WriteFailed: one document (original untouched if the backup failed)
- ConfigurationError: the whole run (raised before any document is processed)
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline errors.

    ``recoverable`` is False only for errors that must abort the run.
    """

    recoverable: bool = True

    def __init__(self, message: str, *, document_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.document_id = document_id


class ExtractionFailed(PipelineError):
    """Language-model call failed or returned output that does not validate."""


class SearchDegraded(PipelineError):
    """Catalog search for a single query could not be completed."""

    def __init__(self, message: str, *, query: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.query = query
        self.status_code = status_code


class WriteFailed(PipelineError):
    """Filesystem error while backing up or rewriting a document."""


class ConfigurationError(PipelineError):
    """Missing credentials or invalid run configuration."""

    recoverable = False
