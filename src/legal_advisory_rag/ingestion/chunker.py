"""Text chunking and chunk identity."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from langchain_text_splitters import RecursiveCharacterTextSplitter

from legal_advisory_rag.retrieval.models import Chunk

if TYPE_CHECKING:
    from langchain_core.documents import Document


def chunk_documents(
    documents: list[Document],
    chunk_size: int = 800,
    chunk_overlap: int = 100,
) -> list[Document]:
    """Split *documents* into smaller chunks for embedding.

    Parameters
    ----------
    documents:
        Page documents produced by the loader.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of overlapping characters between consecutive chunks.

    Returns
    -------
    list[Document]
        Chunked documents, each keeping its page's metadata.
    """
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        length_function=len,
        separators=["\n\n", "\n", ". ", " ", ""],
    )
    return splitter.split_documents(documents)


def document_id(document_name: str) -> str:
    """Stable short id for a document name."""
    return hashlib.sha256(document_name.encode("utf-8")).hexdigest()[:16]


def to_chunks(pieces: list[Document], document_name: str) -> list[Chunk]:
    """Turn split documents into index chunks with deterministic ids.

    The id is ``<doc_id>_<chunk_index>`` so ingesting the same document
    again overwrites its chunks rather than adding copies.  ``page`` is
    1-based.
    """
    doc_id = document_id(document_name)
    count = len(pieces)
    chunks: list[Chunk] = []
    for i, piece in enumerate(pieces):
        page = piece.metadata.get("page")
        metadata = {
            "source": document_name,
            "doc_id": doc_id,
            "chunk_index": str(i),
            "chunk_count": str(count),
        }
        if isinstance(page, int):
            metadata["page"] = str(page + 1)
        chunks.append(Chunk(id=f"{doc_id}_{i}", text=piece.page_content, metadata=metadata))
    return chunks
