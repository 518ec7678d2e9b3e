"""Exception hierarchy shared by the ingestion, retrieval and serving layers.

Every error carries a human-readable ``message`` and an optional ``details``
dict with context for logs.  The HTTP layer maps the categories to status
codes; the ingestion worker records them on the failed job.
"""

from __future__ import annotations

from typing import Any


class LegalAdvisoryError(Exception):
    """Base class for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ValidationError(LegalAdvisoryError):
    """Raised when caller input is rejected (bad filename, content type, query)."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class DocumentNotFoundError(LegalAdvisoryError):
    """Raised when a document name has no staged file or no known job."""


# -- ingestion ---------------------------------------------------------------


class IngestionError(LegalAdvisoryError):
    """Base class for failures inside an ingestion job."""


class ExtractionError(IngestionError):
    """The staged file could not be read as a PDF or holds no text."""


class EmbeddingError(IngestionError):
    """The embedding model failed, timed out, or returned unusable vectors."""


# -- storage -----------------------------------------------------------------


class StorageError(LegalAdvisoryError, OSError):
    """I/O failure on the staging area or the index snapshot."""


class StagingError(StorageError):
    """Uploaded bytes could not be written to the staging area."""


class IndexPersistError(StorageError):
    """The merged index could not be written over the snapshot."""


class CorruptIndexError(LegalAdvisoryError):
    """The snapshot file exists but cannot be parsed into a valid index."""


# -- answering ---------------------------------------------------------------


class AnswerGenerationError(LegalAdvisoryError):
    """The language model could not produce an answer for a query."""
