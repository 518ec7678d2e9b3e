"""Embedding model construction and chunk vectorisation."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from langchain_huggingface import HuggingFaceEmbeddings

from legal_advisory_rag.errors import EmbeddingError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from legal_advisory_rag.retrieval.models import Chunk

logger = logging.getLogger(__name__)


def get_embedding_function(model_name: str) -> HuggingFaceEmbeddings:
    """Return the sentence-transformer embedding function for *model_name*.

    Vectors are L2-normalised, which makes the index's cosine scan a plain
    dot product.
    """
    return HuggingFaceEmbeddings(
        model_name=model_name,
        encode_kwargs={"normalize_embeddings": True},
    )


def embed_chunks(
    chunks: list[Chunk],
    embeddings: Embeddings,
    *,
    batch_size: int = 64,
    expected_dim: int | None = None,
) -> list[Chunk]:
    """Return copies of *chunks* with their ``vector`` populated.

    Parameters
    ----------
    chunks:
        Chunks produced by the chunker (``vector`` unset).
    embeddings:
        Any LangChain ``Embeddings`` implementation.
    batch_size:
        Number of texts per ``embed_documents`` call.
    expected_dim:
        Required vector dimension.  When ``None`` the first vector fixes it
        and every later vector must match.

    Raises
    ------
    EmbeddingError
        The model raised, returned the wrong number of vectors, an empty
        vector, or a vector of unexpected dimension.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    texts = [c.text for c in chunks]
    vectors: list[list[float]] = []
    t0 = time.monotonic()
    for start in range(0, len(texts), batch_size):
        batch = texts[start : start + batch_size]
        try:
            result = embeddings.embed_documents(batch)
        except Exception as exc:  # the model is an external collaborator
            raise EmbeddingError(
                "Embedding model call failed",
                details={"batch_start": start, "batch_size": len(batch), "reason": str(exc)},
            ) from exc
        if len(result) != len(batch):
            raise EmbeddingError(
                "Embedding model returned the wrong number of vectors",
                details={"expected": len(batch), "got": len(result)},
            )
        vectors.extend(list(v) for v in result)
        logger.debug("  embedded %d / %d", len(vectors), len(texts))

    dim = expected_dim
    for chunk, vector in zip(chunks, vectors):
        if not vector:
            raise EmbeddingError("Embedding model returned an empty vector", details={"chunk_id": chunk.id})
        if dim is None:
            dim = len(vector)
        elif len(vector) != dim:
            raise EmbeddingError(
                "Embedding has unexpected dimension",
                details={"chunk_id": chunk.id, "expected": dim, "got": len(vector)},
            )

    logger.info("Embedded %d chunks (dim=%s) in %.1fs", len(vectors), dim, time.monotonic() - t0)
    return [c.model_copy(update={"vector": [float(x) for x in v]}) for c, v in zip(chunks, vectors)]
