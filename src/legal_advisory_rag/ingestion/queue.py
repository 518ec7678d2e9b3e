"""Single-consumer ingestion queue and job registry.

Jobs are processed strictly in enqueue order by exactly one consumer task,
each one to a terminal state before the next is dequeued.  That single
consumer is what guarantees at most one index mutation at a time.

The queue also remembers every job it has seen so callers can poll a
document's ingestion status; it does not deduplicate (the upload gate
does).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from legal_advisory_rag.ingestion.models import IngestionJob
    from legal_advisory_rag.ingestion.worker import IngestionWorker

logger = logging.getLogger(__name__)


class IngestionQueue:
    """Unbounded FIFO of :class:`IngestionJob` drained by one worker.

    Parameters
    ----------
    worker:
        Anything with an ``async process(job)`` coroutine; normally an
        :class:`~legal_advisory_rag.ingestion.worker.IngestionWorker`.
    """

    def __init__(self, worker: IngestionWorker) -> None:
        self._worker = worker
        self._queue: asyncio.Queue[IngestionJob] = asyncio.Queue()
        self._jobs: dict[str, IngestionJob] = {}
        self._latest: dict[str, str] = {}
        self._consumer: asyncio.Task[None] | None = None

    # -- producer side ----------------------------------------------------------

    def enqueue(self, job: IngestionJob) -> None:
        """Append *job* without blocking the caller."""
        self._jobs[job.job_id] = job
        self._latest[job.document_name] = job.job_id
        self._queue.put_nowait(job)
        logger.info("Queued ingestion of %s (job %s, %d waiting)", job.document_name, job.job_id, self._queue.qsize())

    # -- lifecycle --------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._consumer = asyncio.create_task(self._consume(), name="ingestion-consumer")
        logger.info("Ingestion consumer started")

    async def stop(self) -> None:
        """Cancel the consumer.  Jobs still waiting stay ``pending``."""
        if self._consumer is None:
            return
        self._consumer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._consumer
        self._consumer = None
        logger.info("Ingestion consumer stopped (%d jobs left pending)", self._queue.qsize())

    async def join(self) -> None:
        """Wait until every enqueued job has reached a terminal state."""
        await self._queue.join()

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    # -- registry ---------------------------------------------------------------

    def get(self, document_name: str) -> IngestionJob | None:
        """Latest job for *document_name*, if any."""
        job_id = self._latest.get(document_name)
        return self._jobs.get(job_id) if job_id else None

    def get_job(self, job_id: str) -> IngestionJob | None:
        return self._jobs.get(job_id)

    def jobs(self) -> list[IngestionJob]:
        """All known jobs, oldest first."""
        return list(self._jobs.values())

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # -- consumer ---------------------------------------------------------------

    async def _consume(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._worker.process(job)
            except asyncio.CancelledError:
                if not job.is_terminal:
                    job.mark_failed("Interrupted by shutdown")
                raise
            except Exception as exc:
                # the worker records its own failures; this only catches bugs
                logger.exception("Unhandled error while ingesting %s", job.document_name)
                if not job.is_terminal:
                    job.mark_failed(f"Unexpected error: {type(exc).__name__}")
            finally:
                self._queue.task_done()
