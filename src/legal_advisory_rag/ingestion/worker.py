"""Ingestion worker — takes one staged PDF all the way into the index.

State machine::

    extracting → chunking → embedding → merging → persisting → done
         └───────────┴──────────┴──────────┴───────────┴──→ failed

Extraction and embedding call external code and run under a timeout on the
worker's own bounded thread pool, so a hung model cannot wedge the queue and
its abandoned threads never occupy the event loop's default executor (used
for staging writes and queries).  Merging and persisting run in one thread
while holding the index's write permit:

1. load the on-disk snapshot (the durable source of truth),
2. union it with the new chunks by id,
3. write the result to a temporary file and rename it over the snapshot,
4. only then swap the merged state into the shared in-memory index.

The previous snapshot is never deleted, so a crash at any point leaves
either the old or the new snapshot on disk, never neither.  Once the
commit thread has started it runs to completion; a cancellation that
arrives meanwhile is deferred until the commit's outcome is on the job.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from legal_advisory_rag.errors import (
    CorruptIndexError,
    EmbeddingError,
    ExtractionError,
    IngestionError,
    LegalAdvisoryError,
)
from legal_advisory_rag.ingestion.chunker import chunk_documents, to_chunks
from legal_advisory_rag.ingestion.embedder import embed_chunks
from legal_advisory_rag.ingestion.loader import load_pdf
from legal_advisory_rag.ingestion.models import IngestionJob, IngestionStage
from legal_advisory_rag.retrieval.index import VectorIndex

if TYPE_CHECKING:
    from langchain_core.documents import Document
    from langchain_core.embeddings import Embeddings

    from legal_advisory_rag.config import Settings
    from legal_advisory_rag.retrieval.models import Chunk

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IngestionWorker:
    """Runs :class:`IngestionJob`s against a shared :class:`VectorIndex`.

    Parameters
    ----------
    index:
        The process-wide index; replaced in place after every successful
        persist.
    embeddings:
        Embedding model used for the chunk vectors.
    index_path:
        Location of the persisted snapshot.
    loader:
        ``path -> list[Document]`` page extractor (defaults to
        :func:`~legal_advisory_rag.ingestion.loader.load_pdf`).
    chunk_size / chunk_overlap:
        Splitter configuration.
    batch_size:
        Texts per embedding call.
    embedding_dim:
        Required vector dimension, or ``None`` to accept the index's.
    timeout:
        Seconds allowed for each external call (extraction, embedding).
    external_workers:
        Size of the thread pool for external calls.  A call that times out
        keeps its thread until it returns; once every thread is held by a
        hung call, further external calls time out without starting.
    corrupt_index_policy:
        ``"fail"`` fails a job whose merge finds a corrupt snapshot;
        ``"empty"`` logs a warning and merges onto the in-memory state,
        which then replaces the corrupt file.
    """

    def __init__(
        self,
        index: VectorIndex,
        embeddings: Embeddings,
        *,
        index_path: str | Path,
        loader: Callable[[Path], list[Document]] = load_pdf,
        chunk_size: int = 800,
        chunk_overlap: int = 100,
        batch_size: int = 64,
        embedding_dim: int | None = None,
        timeout: float = 120.0,
        external_workers: int = 2,
        corrupt_index_policy: str = "fail",
    ) -> None:
        self._index = index
        self._embeddings = embeddings
        self._index_path = Path(index_path)
        self._loader = loader
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._batch_size = batch_size
        self._embedding_dim = embedding_dim
        self._timeout = timeout
        self._corrupt_index_policy = corrupt_index_policy
        self._executor = ThreadPoolExecutor(
            max_workers=external_workers, thread_name_prefix="ingestion-external"
        )

    @classmethod
    def from_settings(
        cls,
        index: VectorIndex,
        embeddings: Embeddings,
        settings: Settings,
        *,
        loader: Callable[[Path], list[Document]] | None = None,
    ) -> IngestionWorker:
        return cls(
            index,
            embeddings,
            index_path=settings.vector_store_file_location,
            loader=loader or load_pdf,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            batch_size=settings.embedding_batch_size,
            embedding_dim=settings.embedding_dim,
            timeout=settings.external_call_timeout_seconds,
            external_workers=settings.external_call_workers,
            corrupt_index_policy=settings.corrupt_index_policy,
        )

    def close(self) -> None:
        """Release the external-call pool without waiting for hung calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    # -- entry point ------------------------------------------------------------

    async def process(self, job: IngestionJob) -> None:
        """Drive *job* to ``succeeded`` or ``failed``.  Never raises for job errors."""
        job.mark_running()
        logger.info("[%s] Ingestion started (job %s)", job.document_name, job.job_id)
        t0 = time.monotonic()
        try:
            with self._stage(job, IngestionStage.EXTRACTING):
                pages = await self._external(
                    self._loader, Path(job.staged_path), error=ExtractionError, what="Text extraction"
                )

            with self._stage(job, IngestionStage.CHUNKING):
                chunks = to_chunks(
                    chunk_documents(pages, chunk_size=self._chunk_size, chunk_overlap=self._chunk_overlap),
                    job.document_name,
                )
                if not chunks:
                    raise ExtractionError(f"{job.document_name} produced no chunks")

            with self._stage(job, IngestionStage.EMBEDDING):
                embedded = await self._external(
                    embed_chunks,
                    chunks,
                    self._embeddings,
                    batch_size=self._batch_size,
                    expected_dim=self._embedding_dim or self._index.dimension,
                    error=EmbeddingError,
                    what="Embedding",
                )

            await self._commit(job, embedded, t0)
        except Exception as exc:
            self._record_failure(job, exc)
            return

        self._record_success(job, len(embedded), t0)

    # -- outcome ----------------------------------------------------------------

    def _record_success(self, job: IngestionJob, chunk_count: int, t0: float) -> None:
        job.mark_succeeded(chunk_count)
        logger.info(
            "[%s] Ingestion finished: %d chunks indexed in %.1fs (index size %d)",
            job.document_name,
            chunk_count,
            time.monotonic() - t0,
            len(self._index),
        )

    def _record_failure(self, job: IngestionJob, exc: BaseException) -> None:
        # details (paths, upstream errors) go to the log only, never onto the job
        if isinstance(exc, LegalAdvisoryError):
            logger.error(
                "[%s] Ingestion failed during %s: %s", job.document_name, job.stage.value, exc, exc_info=exc
            )
            job.mark_failed(exc.message)
        else:
            logger.error(
                "[%s] Unexpected error during %s", job.document_name, job.stage.value, exc_info=exc
            )
            job.mark_failed(f"Unexpected error: {type(exc).__name__}")

    # -- stages -----------------------------------------------------------------

    async def _commit(self, job: IngestionJob, chunks: list[Chunk], t0: float) -> None:
        commit = asyncio.ensure_future(asyncio.to_thread(self._merge_and_persist, job, chunks))
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            logger.warning(
                "[%s] Shutdown requested during %s, waiting for the index commit to finish",
                job.document_name,
                job.stage.value,
            )
            await asyncio.wait([commit])
            exc = commit.exception()
            if exc is None:
                self._record_success(job, len(chunks), t0)
            else:
                self._record_failure(job, exc)
            raise

    def _merge_and_persist(self, job: IngestionJob, chunks: list[Chunk]) -> None:
        with self._index.write_locked():
            with self._stage(job, IngestionStage.MERGING):
                merged = self._load_base(job)
                before = len(merged)
                try:
                    merged.add(chunks)
                except ValueError as exc:
                    raise EmbeddingError(
                        "New vectors do not fit the existing index",
                        details={"reason": str(exc), "index_dim": merged.dimension},
                    ) from exc
                logger.info(
                    "[%s] Merged %d chunks onto %d existing (%d after merge)",
                    job.document_name,
                    len(chunks),
                    before,
                    len(merged),
                )

            with self._stage(job, IngestionStage.PERSISTING):
                merged.persist(self._index_path)
                self._index.replace_with(merged)

    def _load_base(self, job: IngestionJob) -> VectorIndex:
        try:
            return VectorIndex.load(self._index_path, dimension=self._embedding_dim)
        except CorruptIndexError:
            if self._corrupt_index_policy != "empty":
                raise
            logger.warning(
                "[%s] Snapshot %s is corrupt; merging onto the in-memory index instead",
                job.document_name,
                self._index_path,
                exc_info=True,
            )
            return self._index.copy()

    # -- helpers ----------------------------------------------------------------

    async def _external(
        self,
        func: Callable[..., T],
        *args: Any,
        error: type[IngestionError],
        what: str,
        **kwargs: Any,
    ) -> T:
        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise error(f"{what} timed out after {self._timeout:g}s", details={"timeout": self._timeout}) from exc

    @contextmanager
    def _stage(self, job: IngestionJob, stage: IngestionStage) -> Iterator[None]:
        job.stage = stage
        logger.info("[%s] -> %s", job.document_name, stage.value)
        t0 = time.monotonic()
        yield
        logger.info("[%s] <- %s (%.2fs)", job.document_name, stage.value, time.monotonic() - t0)
