"""Upload gate — validates, stages and enqueues uploaded documents.

The gate answers synchronously: when :meth:`UploadGate.submit` returns, the
bytes are durably staged and an ingestion job is queued, but embedding has
not happened yet.  Ingestion failures are never reported back through the
gate; they are recorded on the job (see :class:`IngestionQueue`).
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING

from pydantic import BaseModel

from legal_advisory_rag.errors import DocumentNotFoundError, StagingError, ValidationError
from legal_advisory_rag.ingestion.models import IngestionJob, JobStatus
from legal_advisory_rag.storage import atomic_write_bytes

if TYPE_CHECKING:
    from legal_advisory_rag.ingestion.queue import IngestionQueue

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class UploadReceipt(BaseModel):
    """Outcome of an accepted upload."""

    document_name: str
    message: str
    queued: bool
    job_id: str | None = None


def validate_document_name(document_name: str | None) -> str:
    """Return *document_name* if it is a plain file name with an extension."""
    if not document_name or not document_name.strip():
        raise ValidationError("Invalid file", field="file")
    if "." not in document_name:
        raise ValidationError("Invalid file", field="file", details={"filename": document_name})
    if (
        PurePosixPath(document_name).name != document_name
        or PureWindowsPath(document_name).name != document_name
        or document_name in (".", "..")
    ):
        raise ValidationError(
            "Invalid file name", field="file", details={"filename": document_name}
        )
    return document_name


def validate_content_type(content_type: str | None) -> None:
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type != PDF_CONTENT_TYPE:
        raise ValidationError(
            "Invalid file format. Only PDF files are supported",
            field="file",
            details={"content_type": content_type},
        )


class UploadGate:
    """Entry point for uploaded documents.

    Parameters
    ----------
    upload_location:
        Staging directory; one file per document name.
    queue:
        Queue that receives an :class:`IngestionJob` per accepted upload.
    """

    def __init__(self, upload_location: str | Path, queue: IngestionQueue) -> None:
        self._upload_location = Path(upload_location)
        self._queue = queue
        # names whose bytes are being written right now
        self._in_flight: set[str] = set()

    def staged_path(self, document_name: str) -> Path:
        return self._upload_location / document_name

    def is_staged(self, document_name: str) -> bool:
        return document_name in self._in_flight or self.staged_path(document_name).exists()

    async def submit(self, document_name: str | None, data: bytes, content_type: str | None) -> UploadReceipt:
        """Validate, stage and enqueue one upload.

        Validation short-circuits in order: file name, content type, then
        the existing-file check.  Re-uploading a name that is already staged
        (or being staged) is a no-op that still counts as accepted.

        Raises
        ------
        ValidationError
            Bad file name or non-PDF content type.
        StagingError
            The bytes could not be written to the staging area.
        """
        name = validate_document_name(document_name)
        validate_content_type(content_type)

        if self.is_staged(name):
            logger.info("Document %s already exists, skipping ingestion", name)
            return UploadReceipt(document_name=name, message=f"Document {name} already exists", queued=False)

        self._in_flight.add(name)
        try:
            path = self.staged_path(name)
            logger.info("Uploading Document : %s (%d bytes)", name, len(data))
            try:
                await asyncio.to_thread(atomic_write_bytes, path, data)
            except OSError as exc:
                raise StagingError(
                    f"Could not stage document {name}",
                    details={"path": str(path), "reason": str(exc)},
                ) from exc

            job = IngestionJob(document_name=name, staged_path=str(path))
            self._queue.enqueue(job)
        finally:
            self._in_flight.discard(name)

        logger.info("file : %s uploaded successfully", name)
        return UploadReceipt(
            document_name=name,
            message=f"Document {name} uploaded successfully",
            queued=True,
            job_id=job.job_id,
        )

    def resubmit(self, document_name: str) -> IngestionJob:
        """Queue a fresh ingestion of an already staged document.

        Failed jobs are not retried automatically; this is the explicit
        operator action for it.  Also covers documents staged by an earlier
        process that never got a job in this one.

        Raises
        ------
        DocumentNotFoundError
            Nothing is staged under *document_name*.
        ValidationError
            The document's latest job has not failed.
        """
        path = self.staged_path(validate_document_name(document_name))
        if not path.exists():
            raise DocumentNotFoundError(f"Document {document_name} not found", details={"path": str(path)})

        previous = self._queue.get(document_name)
        if previous is not None and previous.status is not JobStatus.FAILED:
            raise ValidationError(
                f"Document {document_name} is {previous.status.value}, only failed ingestions can be retried",
                field="document_name",
            )

        job = IngestionJob(document_name=document_name, staged_path=str(path))
        self._queue.enqueue(job)
        logger.info("Re-queued ingestion of %s (job %s)", document_name, job.job_id)
        return job
