"""Prompt templates for question answering over retrieved context."""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from legal_advisory_rag.retrieval.models import RetrievalResult

QA_SYSTEM = """\
You are a legal advisory assistant. You answer questions about the documents
that have been uploaded to the knowledge base, citing them where useful.
"""

QA_USER_TEMPLATE = """\
{query}

Context information is below, surrounded by ---------------------

---------------------
{context}
---------------------

Given the context information and no prior knowledge, answer the question.
If the answer is not in the context, say that you can't answer the question.
"""


def format_context(results: list[RetrievalResult]) -> str:
    """Render retrieved passages, one block per chunk, with their reference."""
    if not results:
        return "(no relevant documents found)"
    return "\n\n".join(f"{r.citation.short_ref()} {r.content}" for r in results)


def build_qa_prompt(query: str, results: list[RetrievalResult]) -> list[BaseMessage]:
    """Build the messages for a retrieval-augmented answer."""
    return [
        SystemMessage(content=QA_SYSTEM),
        HumanMessage(content=QA_USER_TEMPLATE.format(query=query, context=format_context(results))),
    ]
