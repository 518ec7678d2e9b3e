"""Semantic retriever — the query path's read contract on the vector index.

Usage::

    from legal_advisory_rag.retrieval.retriever import RetrievalService

    retriever = RetrievalService(index, embeddings)
    for r in retriever.search("What is the notice period?", k=4):
        print(r.citation.short_ref(), r.content[:80])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from legal_advisory_rag.retrieval.models import Citation, RetrievalResult, SearchHit

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from legal_advisory_rag.retrieval.index import VectorIndex

logger = logging.getLogger(__name__)


def _as_int(value: str | None) -> int | None:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class RetrievalService:
    """High-level retriever over a shared :class:`VectorIndex`.

    Parameters
    ----------
    index:
        The process-wide index; only read through :meth:`VectorIndex.search`.
    embeddings:
        Embedding model used to turn query text into a vector.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        index: VectorIndex,
        embeddings: Embeddings,
        *,
        default_k: int = 4,
        score_threshold: float = 0.0,
    ) -> None:
        self._index = index
        self._embeddings = embeddings
        self.default_k = default_k
        self.score_threshold = score_threshold

    # -- public API -----------------------------------------------------------

    def search(self, query: str, *, k: int | None = None) -> list[RetrievalResult]:
        """Embed *query* and return the closest chunks with citations."""
        if len(self._index) == 0:
            logger.info("Index is empty, nothing to retrieve for query")
            return []
        embedding = self._embeddings.embed_query(query)
        return self.search_by_embedding(embedding, k=k)

    def search_by_embedding(self, embedding: Sequence[float], *, k: int | None = None) -> list[RetrievalResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = k or self.default_k
        hits = self._index.search(embedding, k=k)
        results = self._to_results(hits)
        logger.debug("Retrieved %d / %d hits above threshold %.2f", len(results), len(hits), self.score_threshold)
        return results

    # -- internals ------------------------------------------------------------

    def _to_results(self, hits: list[SearchHit]) -> list[RetrievalResult]:
        results: list[RetrievalResult] = []
        for hit in hits:
            if hit.score < self.score_threshold:
                continue
            meta = hit.chunk.metadata
            citation = Citation(
                chunk_id=hit.chunk.id,
                source=meta.get("source", "unknown"),
                chunk_index=_as_int(meta.get("chunk_index")),
                page=_as_int(meta.get("page")),
                score=hit.score,
                metadata=dict(meta),
            )
            results.append(RetrievalResult(content=hit.chunk.text, citation=citation))
        return results
