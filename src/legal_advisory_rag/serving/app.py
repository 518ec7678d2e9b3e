"""FastAPI application: document upload, question answering, job status.

Run with::

    uvicorn legal_advisory_rag.serving.app:app

All long-lived components are built once in the lifespan handler and kept
on ``app.state.services``: the vector index is loaded from its snapshot,
one ingestion consumer is started, and the upload gate and answering
service share that same index instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from legal_advisory_rag import __version__
from legal_advisory_rag.answering.llm import get_llm
from legal_advisory_rag.answering.service import AnsweringService
from legal_advisory_rag.config import Settings
from legal_advisory_rag.errors import (
    AnswerGenerationError,
    CorruptIndexError,
    DocumentNotFoundError,
    LegalAdvisoryError,
    ValidationError,
)
from legal_advisory_rag.ingestion.embedder import get_embedding_function
from legal_advisory_rag.ingestion.gate import UploadGate
from legal_advisory_rag.ingestion.queue import IngestionQueue
from legal_advisory_rag.ingestion.worker import IngestionWorker
from legal_advisory_rag.logging_utils import configure_logging
from legal_advisory_rag.retrieval.index import VectorIndex
from legal_advisory_rag.retrieval.retriever import RetrievalService
from legal_advisory_rag.serving.schemas import ErrorModel, JobResponse
from legal_advisory_rag.storage import ensure_directories

if TYPE_CHECKING:
    from langchain_core.documents import Document
    from langchain_core.embeddings import Embeddings
    from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred while processing the request"


@dataclass
class Services:
    """Components shared by every request."""

    settings: Settings
    index: VectorIndex
    queue: IngestionQueue
    gate: UploadGate
    retriever: RetrievalService
    answering: AnsweringService


def load_index(settings: Settings) -> VectorIndex:
    """Load the snapshot, applying ``corrupt_index_policy`` to a malformed file."""
    try:
        return VectorIndex.load(settings.vector_store_file_location, dimension=settings.embedding_dim)
    except CorruptIndexError:
        if settings.corrupt_index_policy != "empty":
            logger.critical("Index snapshot %s is corrupt, refusing to start", settings.vector_store_file_location)
            raise
        logger.warning(
            "Index snapshot %s is corrupt; starting with an empty index. "
            "The file is kept until the next successful ingestion replaces it.",
            settings.vector_store_file_location,
            exc_info=True,
        )
        return VectorIndex(dimension=settings.embedding_dim)


# ── Dependencies ──────────────────────────────────────────────────────
def get_services(request: Request) -> Services:
    return request.app.state.services


# ── Routes ────────────────────────────────────────────────────────────
router = APIRouter(prefix="/api/v1")


@router.post("", response_class=PlainTextResponse)
async def upload_document(
    file: UploadFile = File(...),
    services: Services = Depends(get_services),
) -> str:
    """Stage an uploaded PDF and queue it for ingestion.

    Returns as soon as the bytes are on disk; embedding happens later.
    """
    logger.info("Request to upload Document : %s", file.filename)
    data = await file.read()
    receipt = await services.gate.submit(file.filename, data, file.content_type)
    return receipt.message


@router.get("/query", response_class=PlainTextResponse)
async def query_documents(
    query: str | None = None,
    services: Services = Depends(get_services),
) -> str:
    """Answer *query* from the indexed documents."""
    if query is None or not query.strip():
        raise ValidationError("query is null or empty", field="query")
    timeout = services.settings.external_call_timeout_seconds
    try:
        answer = await asyncio.wait_for(asyncio.to_thread(services.answering.answer, query), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error("Query timed out after %gs", timeout)
        raise AnswerGenerationError("Query timed out") from exc
    return answer.answer


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(services: Services = Depends(get_services)) -> list[JobResponse]:
    """All ingestion jobs seen by this process, oldest first."""
    return [JobResponse.from_job(job) for job in services.queue.jobs()]


@router.get("/jobs/{document_name}", response_model=JobResponse)
async def get_job(document_name: str, services: Services = Depends(get_services)) -> JobResponse:
    """Latest ingestion job for *document_name*."""
    job = services.queue.get(document_name)
    if job is None:
        raise DocumentNotFoundError(f"No ingestion job for document {document_name}")
    return JobResponse.from_job(job)


@router.post("/jobs/{document_name}/retry", response_model=JobResponse, status_code=202)
async def retry_job(document_name: str, services: Services = Depends(get_services)) -> JobResponse:
    """Re-queue ingestion of a staged document whose last job failed."""
    return JobResponse.from_job(services.gate.resubmit(document_name))


# ── Error handlers ────────────────────────────────────────────────────
def _error(status_code: int, message: str, details: object = None) -> JSONResponse:
    body = ErrorModel(code=str(status_code), message=message, details=jsonable_encoder(details))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(400, exc.message, exc.details or None)


async def _handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("Invalid request %s %s: %s", request.method, request.url.path, exc.errors())
    return _error(400, "Invalid request", exc.errors())


async def _handle_not_found(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
    return _error(404, exc.message)


async def _handle_app_error(request: Request, exc: LegalAdvisoryError) -> JSONResponse:
    logger.error("Request %s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return _error(500, GENERIC_ERROR_MESSAGE)


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, GENERIC_ERROR_MESSAGE)


# ── Application factory ───────────────────────────────────────────────
def create_app(
    settings: Settings | None = None,
    *,
    embeddings: Embeddings | None = None,
    llm: BaseChatModel | None = None,
    loader: Callable[[Path], list[Document]] | None = None,
) -> FastAPI:
    """Build the application.

    *embeddings*, *llm* and *loader* replace the configured external
    collaborators (used by tests and local experiments).
    """
    cfg = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(cfg.log_level)
        logger.info("Initializing Legal Advisory RAG service")
        ensure_directories(cfg.upload_location, cfg.vector_store_file_location)
        index = load_index(cfg)

        embedder = embeddings or get_embedding_function(cfg.embedding_model)
        worker = IngestionWorker.from_settings(index, embedder, cfg, loader=loader)
        queue = IngestionQueue(worker)
        retriever = RetrievalService(
            index, embedder, default_k=cfg.search_top_k, score_threshold=cfg.score_threshold
        )
        app.state.services = Services(
            settings=cfg,
            index=index,
            queue=queue,
            gate=UploadGate(cfg.upload_location, queue),
            retriever=retriever,
            answering=AnsweringService(retriever, llm or get_llm(cfg)),
        )
        queue.start()
        logger.info("Service initialized (%d chunks indexed)", len(index))
        try:
            yield
        finally:
            await queue.stop()
            worker.close()

    app = FastAPI(
        title="Legal Advisory RAG API",
        version=__version__,
        description="Upload PDFs and ask questions answered from their content.",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    app.include_router(router)
    app.add_exception_handler(ValidationError, _handle_validation_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)
    app.add_exception_handler(DocumentNotFoundError, _handle_not_found)
    app.add_exception_handler(LegalAdvisoryError, _handle_app_error)
    app.add_exception_handler(Exception, _handle_unexpected)
    return app


app = create_app()
