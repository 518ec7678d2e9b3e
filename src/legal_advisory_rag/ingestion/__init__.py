"""
Ingestion — from uploaded PDF bytes to durable, indexed chunks.

Public surface
--------------
- :class:`UploadGate` — validate, stage and enqueue uploads.
- :class:`IngestionQueue` — single-consumer FIFO and job registry.
- :class:`IngestionWorker` — extract → chunk → embed → merge → persist.
- :class:`IngestionJob`, :class:`JobStatus`, :class:`IngestionStage` — job state.
"""

from legal_advisory_rag.ingestion.gate import UploadGate, UploadReceipt
from legal_advisory_rag.ingestion.models import IngestionJob, IngestionStage, JobStatus
from legal_advisory_rag.ingestion.queue import IngestionQueue
from legal_advisory_rag.ingestion.worker import IngestionWorker

__all__ = [
    "IngestionJob",
    "IngestionQueue",
    "IngestionStage",
    "IngestionWorker",
    "JobStatus",
    "UploadGate",
    "UploadReceipt",
]
