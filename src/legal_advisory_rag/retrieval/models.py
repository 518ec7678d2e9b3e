"""Domain models for indexed chunks, search hits and citations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class Chunk(BaseModel):
    """A bounded span of document text, the atomic unit stored in the index.

    Attributes
    ----------
    id:
        Globally unique chunk identifier (``<doc_id>_<chunk_index>``).
    text:
        The chunk's textual content.
    metadata:
        Flat string metadata; always includes ``source``, ``page``,
        ``chunk_index`` and ``chunk_count`` for ingested chunks.
    vector:
        Embedding, ``None`` until the embedding stage has run.
    """

    id: str
    text: str
    metadata: dict[str, str] = Field(default_factory=dict)
    vector: list[float] | None = None

    @property
    def source(self) -> str:
        return self.metadata.get("source", "unknown")


class SearchHit(BaseModel):
    """One result of :meth:`VectorIndex.search`."""

    chunk: Chunk
    score: float


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source document.

    Attributes
    ----------
    citation_id:
        Unique identifier for this citation instance.
    chunk_id:
        The index id of the chunk.
    source:
        Name of the uploaded document the chunk came from.
    chunk_index:
        Ordinal position of the chunk within the source document.
    page:
        Page number the chunk was extracted from.
    score:
        Cosine similarity between the query and the chunk.
    metadata:
        The chunk's full metadata.
    retrieved_at:
        UTC timestamp of when the retrieval happened.
    """

    citation_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    chunk_id: str | None = None
    source: str = "unknown"
    chunk_index: int | None = None
    page: int | None = None
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        return f"[{self.source}§{chunk}]"


class RetrievalResult(BaseModel):
    """A single retrieved passage together with its citation."""

    content: str
    citation: Citation
