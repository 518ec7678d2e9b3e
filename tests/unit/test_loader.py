"""Unit tests for PDF text extraction."""

from __future__ import annotations

from pathlib import Path

import pytest

from legal_advisory_rag.errors import ExtractionError
from legal_advisory_rag.ingestion.loader import load_pdf


def test_load_pdf_returns_one_document_per_page(tmp_path: Path, pdf_factory) -> None:
    path = tmp_path / "contract.pdf"
    path.write_bytes(pdf_factory(["The tenant pays rent monthly.", "Either party may terminate."]))

    pages = load_pdf(path)

    assert len(pages) == 2
    assert "rent" in pages[0].page_content
    assert "terminate" in pages[1].page_content
    assert [p.metadata["page"] for p in pages] == [0, 1]


def test_non_pdf_bytes_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "notes.pdf"
    path.write_bytes(b"just some plain text, not a PDF")
    with pytest.raises(ExtractionError, match="not a PDF"):
        load_pdf(path)


def test_truncated_pdf_is_rejected(tmp_path: Path, pdf_factory) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(pdf_factory(["Some text"])[:40])
    with pytest.raises(ExtractionError):
        load_pdf(path)


def test_pdf_without_text_is_rejected(tmp_path: Path, pdf_factory) -> None:
    path = tmp_path / "blank.pdf"
    path.write_bytes(pdf_factory([""]))
    with pytest.raises(ExtractionError, match="no extractable text"):
        load_pdf(path)


def test_missing_file_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ExtractionError):
        load_pdf(tmp_path / "absent.pdf")
