"""Ingestion job and state-machine models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class IngestionStage(str, Enum):
    """Worker states, in execution order; ``FAILED`` is absorbing."""

    QUEUED = "queued"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    MERGING = "merging"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class IngestionJob(BaseModel):
    """One uploaded document travelling through the ingestion worker.

    Created by the upload gate, consumed exactly once by the worker, and
    terminal once ``status`` is ``succeeded`` or ``failed``.
    """

    job_id: str = Field(default_factory=lambda: uuid4().hex)
    document_name: str
    staged_path: str
    enqueued_at: datetime = Field(default_factory=_utcnow)
    status: JobStatus = JobStatus.PENDING
    stage: IngestionStage = IngestionStage.QUEUED
    failed_stage: IngestionStage | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    chunk_count: int | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    def mark_running(self) -> None:
        self.status = JobStatus.RUNNING
        self.started_at = _utcnow()

    def mark_succeeded(self, chunk_count: int) -> None:
        self.status = JobStatus.SUCCEEDED
        self.stage = IngestionStage.DONE
        self.chunk_count = chunk_count
        self.finished_at = _utcnow()

    def mark_failed(self, error: str) -> None:
        self.failed_stage = self.stage
        self.status = JobStatus.FAILED
        self.stage = IngestionStage.FAILED
        self.error = error
        self.finished_at = _utcnow()
