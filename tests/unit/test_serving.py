"""Unit tests for the serving layer."""

from __future__ import annotations

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from legal_advisory_rag.config import Settings
from legal_advisory_rag.errors import CorruptIndexError
from legal_advisory_rag.retrieval.index import VectorIndex
from legal_advisory_rag.retrieval.models import Chunk
from legal_advisory_rag.serving.app import create_app


def _upload(client: TestClient, name: str, data: bytes, content_type: str = "application/pdf"):
    return client.post("/api/v1", files={"file": (name, data, content_type)})


def _wait_for_job(client: TestClient, name: str, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        body = client.get(f"/api/v1/jobs/{name}").json()
        if body["status"] in ("succeeded", "failed") or time.monotonic() > deadline:
            return body
        time.sleep(0.05)


@pytest.fixture()
def llm() -> FakeListChatModel:
    return FakeListChatModel(responses=["Rent is due on the first day of each month."])


@pytest.fixture()
def client(settings: Settings, embeddings, llm: FakeListChatModel):
    app = create_app(settings, embeddings=embeddings, llm=llm)
    with TestClient(app) as test_client:
        yield test_client


# ── health / errors ────────────────────────────────────────────────────


def test_health_endpoint(client: TestClient) -> None:
    """GET /health should return 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_startup_creates_directories(client: TestClient, settings: Settings) -> None:
    assert Path(settings.upload_location).is_dir()
    assert Path(settings.vector_store_file_location).parent.is_dir()


def test_invalid_content_type_is_400(client: TestClient) -> None:
    response = _upload(client, "photo.pdf", b"\x89PNG", content_type="image/png")
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "400"
    assert body["message"] == "Invalid file format. Only PDF files are supported"
    assert body["details"]["field"] == "file"


def test_name_without_extension_is_400(client: TestClient, pdf_factory) -> None:
    response = _upload(client, "report", pdf_factory(["x"]))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid file"


def test_missing_file_part_is_400(client: TestClient) -> None:
    response = client.post("/api/v1", data={"other": "value"})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request"


@pytest.mark.parametrize("params", [{}, {"query": ""}, {"query": "   "}])
def test_blank_query_is_400(client: TestClient, params: dict) -> None:
    response = client.get("/api/v1/query", params=params)
    assert response.status_code == 400
    assert response.json()["message"] == "query is null or empty"


def test_unknown_job_is_404(client: TestClient) -> None:
    response = client.get("/api/v1/jobs/nothing.pdf")
    assert response.status_code == 404
    assert response.json()["code"] == "404"


# ── upload → ingest → query ────────────────────────────────────────────


def test_upload_ingest_and_query(client: TestClient, settings: Settings, pdf_factory) -> None:
    pdf = pdf_factory(
        [
            "Rent is due on the first day of each month.",
            "The tenant may terminate with sixty days written notice.",
        ]
    )

    response = _upload(client, "contract.pdf", pdf)
    assert response.status_code == 200
    assert response.text == "Document contract.pdf uploaded successfully"
    assert (Path(settings.upload_location) / "contract.pdf").read_bytes() == pdf

    job = _wait_for_job(client, "contract.pdf")
    assert job["status"] == "succeeded", job
    assert job["chunk_count"] == 2
    assert "staged_path" not in job

    snapshot = VectorIndex.load(settings.vector_store_file_location)
    assert {c.metadata["source"] for c in snapshot.chunks()} == {"contract.pdf"}

    services = client.app.state.services
    hits = services.retriever.search("When is rent due?", k=1)
    assert hits[0].citation.source == "contract.pdf"
    assert "Rent is due" in hits[0].content

    response = client.get("/api/v1/query", params={"query": "When is rent due?"})
    assert response.status_code == 200
    assert response.text == "Rent is due on the first day of each month."


def test_duplicate_upload_is_not_reingested(client: TestClient, pdf_factory) -> None:
    pdf = pdf_factory(["Some clause."])
    assert _upload(client, "dup.pdf", pdf).status_code == 200
    _wait_for_job(client, "dup.pdf")

    response = _upload(client, "dup.pdf", pdf)

    assert response.status_code == 200
    assert response.text == "Document dup.pdf already exists"
    jobs = client.get("/api/v1/jobs").json()
    assert [j["document_name"] for j in jobs] == ["dup.pdf"]


def test_failed_ingestion_is_visible_and_retryable(client: TestClient, pdf_factory) -> None:
    assert _upload(client, "broken.pdf", b"not really a pdf").status_code == 200

    job = _wait_for_job(client, "broken.pdf")
    assert job["status"] == "failed"
    assert job["failed_stage"] == "extracting"
    assert "not a PDF" in job["error"]

    response = client.post("/api/v1/jobs/broken.pdf/retry")
    assert response.status_code == 202
    assert response.json()["job_id"] != job["job_id"]


def test_failed_job_hides_internal_details(client: TestClient, settings: Settings) -> None:
    assert _upload(client, "damaged.pdf", b"%PDF-1.4 garbage").status_code == 200

    job = _wait_for_job(client, "damaged.pdf")

    assert job["status"] == "failed"
    assert job["error"] == "Failed to extract text from damaged.pdf"
    body = client.get("/api/v1/jobs/damaged.pdf").text
    assert str(Path(settings.upload_location)) not in body
    assert "Details" not in body
    assert settings.upload_location not in client.get("/api/v1/jobs").text


def test_retry_of_successful_job_is_400(client: TestClient, pdf_factory) -> None:
    _upload(client, "fine.pdf", pdf_factory(["Fine."]))
    assert _wait_for_job(client, "fine.pdf")["status"] == "succeeded"

    response = client.post("/api/v1/jobs/fine.pdf/retry")
    assert response.status_code == 400


def test_retry_of_unknown_document_is_404(client: TestClient) -> None:
    assert client.post("/api/v1/jobs/ghost.pdf/retry").status_code == 404


def test_llm_failure_is_generic_500(settings: Settings, embeddings) -> None:
    class BrokenLLM:
        def invoke(self, messages):  # noqa: ANN001, ANN201
            raise ConnectionError("secret upstream detail")

    with TestClient(create_app(settings, embeddings=embeddings, llm=BrokenLLM())) as client:
        response = client.get("/api/v1/query", params={"query": "anything"})

    assert response.status_code == 500
    assert response.json()["message"] == "An unexpected error occurred while processing the request"
    assert "secret" not in response.text


# ── startup with an existing snapshot ──────────────────────────────────


def test_existing_snapshot_is_loaded_at_startup(settings: Settings, embeddings, llm, index_path: Path) -> None:
    text = "Arbitration in Geneva."
    seed = VectorIndex()
    seed.add([Chunk(id="old_0", text=text, metadata={"source": "old.pdf"}, vector=embeddings.embed_query(text))])
    seed.persist(index_path)

    with TestClient(create_app(settings, embeddings=embeddings, llm=llm)) as client:
        services = client.app.state.services
        assert services.index.ids() == ["old_0"]
        assert services.retriever.search("arbitration Geneva", k=1)[0].citation.source == "old.pdf"


def test_corrupt_snapshot_refuses_startup(settings: Settings, embeddings, llm, index_path: Path) -> None:
    index_path.write_text("{truncated")
    with pytest.raises(CorruptIndexError):
        with TestClient(create_app(settings, embeddings=embeddings, llm=llm)):
            pass
    assert index_path.read_text() == "{truncated"


def test_corrupt_snapshot_starts_empty_when_configured(settings: Settings, embeddings, llm, index_path: Path) -> None:
    index_path.write_text("{truncated")
    relaxed = settings.model_copy(update={"corrupt_index_policy": "empty"})

    with TestClient(create_app(relaxed, embeddings=embeddings, llm=llm)) as client:
        assert client.get("/health").status_code == 200
        assert len(client.app.state.services.index) == 0

    assert index_path.read_text() == "{truncated"
