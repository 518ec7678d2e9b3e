"""Request / response schemas for the HTTP layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from legal_advisory_rag.ingestion.models import IngestionJob, IngestionStage, JobStatus


class ErrorModel(BaseModel):
    """Error body returned for every 4xx / 5xx response."""

    code: str
    message: str
    details: Any = None


class JobResponse(BaseModel):
    """Public view of an ingestion job."""

    job_id: str
    document_name: str
    status: JobStatus
    stage: IngestionStage
    failed_stage: IngestionStage | None = None
    enqueued_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    chunk_count: int | None = None
    error: str | None = None

    @classmethod
    def from_job(cls, job: IngestionJob) -> JobResponse:
        return cls(**job.model_dump(exclude={"staged_path"}))
