"""Unit tests for the chunker module."""

from langchain_core.documents import Document

from legal_advisory_rag.ingestion.chunker import chunk_documents, document_id, to_chunks


def test_chunk_documents_splits_long_text() -> None:
    """A document longer than chunk_size should be split."""
    long_text = "word " * 500  # ~2500 chars
    docs = [Document(page_content=long_text, metadata={"source": "test"})]
    chunks = chunk_documents(docs, chunk_size=256, chunk_overlap=32)
    assert len(chunks) > 1


def test_chunk_documents_preserves_metadata() -> None:
    """Metadata from the source document should be preserved in chunks."""
    docs = [Document(page_content="Short text.", metadata={"source": "test.pdf", "page": 0})]
    chunks = chunk_documents(docs, chunk_size=256, chunk_overlap=0)
    assert all(c.metadata.get("page") == 0 for c in chunks)


def test_chunk_documents_empty_input() -> None:
    """An empty list should return an empty list."""
    assert chunk_documents([]) == []


def test_chunk_documents_is_deterministic() -> None:
    docs = [Document(page_content="clause " * 300, metadata={"page": 0})]
    first = [c.page_content for c in chunk_documents(docs, chunk_size=120, chunk_overlap=10)]
    second = [c.page_content for c in chunk_documents(docs, chunk_size=120, chunk_overlap=10)]
    assert first == second


def test_to_chunks_assigns_stable_ids_and_string_metadata() -> None:
    pieces = [
        Document(page_content="Termination requires notice.", metadata={"source": "/tmp/x.pdf", "page": 0}),
        Document(page_content="Governing law is Delaware.", metadata={"source": "/tmp/x.pdf", "page": 1}),
    ]
    chunks = to_chunks(pieces, "contract.pdf")
    doc_id = document_id("contract.pdf")

    assert [c.id for c in chunks] == [f"{doc_id}_0", f"{doc_id}_1"]
    assert chunks[1].metadata == {
        "source": "contract.pdf",
        "doc_id": doc_id,
        "chunk_index": "1",
        "chunk_count": "2",
        "page": "2",
    }
    assert all(c.vector is None for c in chunks)


def test_document_ids_differ_per_name() -> None:
    assert document_id("a.pdf") != document_id("b.pdf")
    assert document_id("a.pdf") == document_id("a.pdf")
