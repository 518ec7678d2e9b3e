"""Query answering: retrieve context from the index, then ask the model."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel

from legal_advisory_rag.answering.prompts import build_qa_prompt
from legal_advisory_rag.errors import AnswerGenerationError, ValidationError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from legal_advisory_rag.retrieval.retriever import RetrievalService

logger = logging.getLogger(__name__)


class Answer(BaseModel):
    """Generated answer plus the documents its context came from."""

    answer: str
    sources: list[str] = []


class AnsweringService:
    def __init__(self, retriever: RetrievalService, llm: BaseChatModel, *, k: int | None = None) -> None:
        self._retriever = retriever
        self._llm = llm
        self._k = k

    def answer(self, query: str | None) -> Answer:
        """Answer *query* from the indexed documents.

        Raises
        ------
        ValidationError
            *query* is missing or blank.
        AnswerGenerationError
            Retrieval or the model call failed; the cause is logged, not
            exposed.
        """
        if query is None or not query.strip():
            raise ValidationError("query is null or empty", field="query")

        try:
            results = self._retriever.search(query, k=self._k)
        except Exception as exc:
            logger.exception("Retrieval failed for query")
            raise AnswerGenerationError("Could not retrieve context for the query") from exc

        messages = build_qa_prompt(query, results)
        try:
            response = self._llm.invoke(messages)
        except Exception as exc:
            logger.exception("LLM call failed")
            raise AnswerGenerationError("Could not generate an answer for the query") from exc

        content = response.content if isinstance(response.content, str) else str(response.content)
        sources = list(dict.fromkeys(r.citation.source for r in results))
        logger.info("Answered query from %d chunks (%d sources)", len(results), len(sources))
        return Answer(answer=content, sources=sources)
