"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Storage
    upload_location: str = Field(
        default="data/upload",
        description="Staging directory for uploaded PDFs, one file per document name.",
    )
    vector_store_file_location: str = Field(
        default="data/vector/vector-store.json",
        description="Path of the persisted vector-index snapshot.",
    )
    corrupt_index_policy: Literal["fail", "empty"] = Field(
        default="fail",
        description=(
            "What to do when the snapshot exists but cannot be parsed. "
            "'fail' refuses to start (and fails ingestion jobs); 'empty' logs a "
            "warning and continues from an empty index."
        ),
    )

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int | None = Field(
        default=None,
        description="Expected vector dimension. When unset, the first stored vector fixes it.",
    )
    embedding_batch_size: int = 64

    # Chunking
    chunk_size: int = 800
    chunk_overlap: int = 100

    # External calls (extraction, embedding, completion)
    external_call_timeout_seconds: float = 120.0
    external_call_workers: int = Field(
        default=2,
        description="Threads reserved for extraction and embedding calls; a timed-out call holds its thread until it returns.",
    )

    # Retrieval
    search_top_k: int = 4
    score_threshold: float = 0.0

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description="Base URL for an OpenAI-compatible endpoint. Leave empty to use OpenAI cloud.",
    )
    llm_temperature: float = 0.0

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

