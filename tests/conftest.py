"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path

import pytest
from langchain_core.embeddings import Embeddings

from legal_advisory_rag.config import Settings

EMBED_DIM = 64


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake embedding model ───────────────────────────────────────────────


class FakeEmbeddings(Embeddings):
    """Deterministic bag-of-words embeddings.

    Each lower-cased word is hashed into one of ``dim`` buckets, so texts
    sharing words get a high cosine similarity.
    """

    def __init__(self, dim: int = EMBED_DIM) -> None:
        self.dim = dim
        self.calls: list[list[str]] = []

    def _embed(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)


# ── Minimal PDF writer ─────────────────────────────────────────────────


def make_pdf(pages: list[str]) -> bytes:
    """Build a small valid PDF with one line of Helvetica text per page."""
    page_ids = [4 + 2 * i for i in range(len(pages))]
    objects: dict[int, bytes] = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        2: (
            f"<< /Type /Pages /Kids [{' '.join(f'{pid} 0 R' for pid in page_ids)}] "
            f"/Count {len(pages)} >>"
        ).encode(),
        3: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    }
    for pid, text in zip(page_ids, pages):
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 12 Tf 72 720 Td ({escaped}) Tj ET".encode("latin-1")
        objects[pid] = (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>"
        ).encode()
        objects[pid + 1] = b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"

    out = bytearray(b"%PDF-1.4\n")
    offsets: dict[int, int] = {}
    for num in sorted(objects):
        offsets[num] = len(out)
        out += b"%d 0 obj\n" % num + objects[num] + b"\nendobj\n"
    xref_at = len(out)
    size = max(objects) + 1
    out += b"xref\n0 %d\n" % size
    out += b"0000000000 65535 f \n"
    for num in range(1, size):
        out += b"%010d 00000 n \n" % offsets[num]
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (size, xref_at)
    return bytes(out)


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture()
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        upload_location=str(tmp_path / "upload"),
        vector_store_file_location=str(tmp_path / "vector" / "vector-store.json"),
        chunk_size=200,
        chunk_overlap=20,
        external_call_timeout_seconds=10.0,
        search_top_k=4,
    )


@pytest.fixture()
def index_path(settings: Settings) -> Path:
    path = Path(settings.vector_store_file_location)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture()
def upload_dir(settings: Settings) -> Path:
    path = Path(settings.upload_location)
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture()
def make_embeddings() -> type[FakeEmbeddings]:
    """The fake embedding class, for tests needing a custom dimension or subclass."""
    return FakeEmbeddings


@pytest.fixture()
def pdf_factory():
    """``pages -> bytes`` PDF builder."""
    return make_pdf
