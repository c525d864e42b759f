"""Tests for the HTTP API."""
from io import BytesIO

import pytest
from quart.datastructures import FileStorage

from docqa.main import build_services, create_app
from docqa.rag.embedder import EmbeddingClient
from tests.fakes import FakeEmbeddingProvider, FakeGenerator, bag_of_words

PETS_TEXT = "The cat sleeps on the mat. The dog runs in the park."


@pytest.fixture
def generator():
    return FakeGenerator(reply="Cats sleep a lot.")


@pytest.fixture
def services(tmp_path, generator):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    return build_services(
        generator=generator,
        embedder=EmbeddingClient(provider=FakeEmbeddingProvider(fail_on=("boom",)), model="fake-embed"),
        uploads_dir=uploads,
        snapshot_path=tmp_path / "vectors" / "store.json",
    )


@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    return app.test_client()


def add_pets(services):
    texts = ["The cat sleeps on the mat.", "The dog runs in the park."]
    services.store.add_document("pets", texts, [bag_of_words(t) for t in texts])


async def upload(client, content: bytes, filename: str):
    return await client.post(
        "/api/upload",
        files={"file": FileStorage(BytesIO(content), filename=filename)},
    )


@pytest.mark.asyncio
async def test_health_live(client):
    response = await client.get("/health/live")

    assert response.status_code == 200
    assert await response.get_json() == {"status": "alive"}


@pytest.mark.asyncio
async def test_health_reports_store_counts(client, services):
    add_pets(services)

    response = await client.get("/api/health")
    data = await response.get_json()

    assert response.status_code == 200
    assert data["status"] == "ok"
    assert data["vector_store"] == {"documents": 1, "chunks": 2}
    assert data["generator"]["provider"] == "fake"


@pytest.mark.asyncio
async def test_unknown_route_is_json_404(client):
    response = await client.get("/api/nothing-here")

    assert response.status_code == 404
    assert await response.get_json() == {"error": "Not found"}


@pytest.mark.asyncio
async def test_upload_processes_document(client, services):
    response = await upload(client, PETS_TEXT.encode("utf-8"), "pets.txt")
    data = await response.get_json()

    assert response.status_code == 202
    assert data["status"] == "processing"
    assert data["file_name"] == "pets.txt"
    assert data["file_type"] == "TXT"
    assert data["file_size"] == len(PETS_TEXT)

    await services.pipeline.drain()

    response = await client.get(f"/api/documents/{data['doc_id']}")
    record = await response.get_json()

    assert response.status_code == 200
    assert record["status"] == "ready"
    assert record["language"] == "en"
    assert record["chunk_count"] >= 1
    assert "upload_path" not in record


@pytest.mark.asyncio
async def test_upload_of_empty_text_fails_in_background(client, services):
    response = await upload(client, b"   ", "empty.txt")
    doc_id = (await response.get_json())["doc_id"]

    await services.pipeline.drain()

    record = await (await client.get(f"/api/documents/{doc_id}")).get_json()
    assert record["status"] == "failed"
    assert record["error"] == "No text extracted from document"


@pytest.mark.asyncio
async def test_upload_rejects_unsupported_type(client):
    response = await upload(client, b"\x89PNG", "photo.png")

    assert response.status_code == 400
    assert "Unsupported file type" in (await response.get_json())["error"]


@pytest.mark.asyncio
async def test_upload_without_file(client):
    response = await client.post("/api/upload", form={"other": "value"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_documents(client, services):
    await upload(client, PETS_TEXT.encode("utf-8"), "pets.txt")
    await services.pipeline.drain()

    response = await client.get("/api/documents")
    data = await response.get_json()

    assert data["total_documents"] == 1
    assert data["documents"][0]["file_name"] == "pets.txt"
    assert data["vector_stats"]["total_documents"] == 1
    assert data["vector_stats"]["embedding_model"] == "fake-embed"


@pytest.mark.asyncio
async def test_get_unknown_document(client):
    response = await client.get("/api/documents/missing")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_document(client, services):
    data = await (await upload(client, PETS_TEXT.encode("utf-8"), "pets.txt")).get_json()
    await services.pipeline.drain()
    chunk_count = services.store.get_document(data["doc_id"]).chunk_count

    response = await client.delete(f"/api/documents/{data['doc_id']}")
    body = await response.get_json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["chunks_removed"] == chunk_count
    assert services.store.get_stats()["total_chunks"] == 0
    assert (await client.get(f"/api/documents/{data['doc_id']}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_unknown_document(client):
    response = await client.delete("/api/documents/missing")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_query_without_documents(client):
    response = await client.post("/api/query", json={"question": "Where is the cat?"})
    data = await response.get_json()

    assert response.status_code == 200
    assert data["source"] == "no_match"
    assert data["chunks"] == []


@pytest.mark.asyncio
async def test_query_returns_context_by_default(client, services, generator):
    add_pets(services)

    response = await client.post("/api/query", json={"question": "Where does the cat sleep?"})
    data = await response.get_json()

    assert data["source"] == "fallback_context"
    assert data["answer"].startswith("Based on the document:")
    assert data["chunks"][0]["text"] == "The cat sleeps on the mat."
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_query_with_llm_and_generation_options(client, services, generator):
    add_pets(services)

    response = await client.post(
        "/api/query",
        json={
            "question": "Where does the cat sleep?",
            "use_llm": True,
            "top_k": 1,
            "generation": {"temperature": 0.1, "max_tokens": 32},
        },
    )
    data = await response.get_json()

    assert data["source"] == "llm_rag"
    assert data["answer"] == "Cats sleep a lot."
    assert len(data["chunks"]) == 1
    assert generator.max_tokens == [32]
    assert generator.options[0].temperature == 0.1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"question": ""},
        {"question": "   "},
        {},
        {"question": "cat", "top_k": 0},
        {"question": "cat", "generation": {"seed": 1}},
    ],
)
async def test_query_rejects_bad_requests(client, body):
    response = await client.post("/api/query", json=body)

    assert response.status_code == 400
    assert "error" in await response.get_json()


@pytest.mark.asyncio
async def test_query_rejects_non_json(client):
    response = await client.post("/api/query", data="question=cat")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_query_embedding_failure_is_503(client):
    response = await client.post("/api/query", json={"question": "boom"})

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_ask_without_documents(client, generator):
    response = await client.post("/api/ask", json={"message": "Tell me a joke"})
    data = await response.get_json()

    assert response.status_code == 200
    assert data["source"] == "llm_direct"
    assert data["content"] == "Cats sleep a lot."
    assert data["role"] == "assistant"
    assert generator.prompts == ["Tell me a joke"]


@pytest.mark.asyncio
async def test_ask_uses_last_message(client, services, generator):
    add_pets(services)

    response = await client.post(
        "/api/ask",
        json={"messages": [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi"},
            {"role": "user", "content": "Where does the cat sleep?"},
        ]},
    )
    data = await response.get_json()

    assert data["source"] == "llm_rag"
    assert "Question: Where does the cat sleep?" in generator.prompts[0]
    assert data["relevant_chunks"][0]["doc_id"] == "pets"


@pytest.mark.asyncio
async def test_ask_in_hindi(client):
    response = await client.post("/api/ask", json={"message": "यह क्या है?"})

    assert (await response.get_json())["language"] == "hi"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{}, {"message": "  "}, {"messages": []}])
async def test_ask_requires_a_message(client, body):
    response = await client.post("/api/ask", json=body)

    assert response.status_code == 400
