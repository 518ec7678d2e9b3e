"""
Answering — retrieval-augmented completion over the vector index.

- :func:`get_llm` — configured chat model.
- :class:`AnsweringService` — query → retrieved context → answer.
"""

from legal_advisory_rag.answering.llm import get_llm
from legal_advisory_rag.answering.service import Answer, AnsweringService

__all__ = ["Answer", "AnsweringService", "get_llm"]
