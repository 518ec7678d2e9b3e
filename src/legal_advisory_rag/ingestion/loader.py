"""PDF loading — thin wrapper around LangChain's ``PyPDFLoader``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from langchain_community.document_loaders import PyPDFLoader

from legal_advisory_rag.errors import ExtractionError

if TYPE_CHECKING:
    from langchain_core.documents import Document

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"


def load_pdf(path: str | Path) -> list[Document]:
    """Load a single PDF file, one ``Document`` per page.

    Pages without any extractable text are dropped.

    Raises
    ------
    ExtractionError
        The file is unreadable, is not PDF-structured, or holds no text.
    """
    path = Path(path)
    try:
        with path.open("rb") as fh:
            header = fh.read(1024)
    except OSError as exc:
        raise ExtractionError(f"Cannot read staged file {path.name}", details={"path": str(path)}) from exc
    if PDF_MAGIC not in header:
        raise ExtractionError(f"{path.name} is not a PDF document", details={"path": str(path)})

    try:
        pages = PyPDFLoader(str(path)).load()
    except Exception as exc:  # pypdf raises a wide range of parser errors
        raise ExtractionError(
            f"Failed to extract text from {path.name}",
            details={"path": str(path), "reason": str(exc)},
        ) from exc

    pages = [page for page in pages if page.page_content.strip()]
    if not pages:
        raise ExtractionError(f"{path.name} contains no extractable text", details={"path": str(path)})
    logger.debug("Extracted %d text pages from %s", len(pages), path.name)
    return pages
