"""
Retrieval — the vector index, its lock, and the query-side read contract.

Public surface
--------------
- :class:`VectorIndex` — in-memory chunk store with atomic JSON snapshots.
- :class:`RetrievalService` — query text → ranked results with citations.
- :class:`Chunk`, :class:`SearchHit`, :class:`Citation`, :class:`RetrievalResult` — data models.
"""

from legal_advisory_rag.retrieval.index import VectorIndex
from legal_advisory_rag.retrieval.models import Chunk, Citation, RetrievalResult, SearchHit
from legal_advisory_rag.retrieval.retriever import RetrievalService

__all__ = [
    "Chunk",
    "Citation",
    "RetrievalResult",
    "RetrievalService",
    "SearchHit",
    "VectorIndex",
]
