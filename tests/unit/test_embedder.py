"""Tests for the embedding client."""
import pytest

from docqa.errors import EmbeddingError
from docqa.rag.embedder import EmbeddingClient, filter_failed
from tests.fakes import FakeEmbeddingProvider, bag_of_words


@pytest.mark.asyncio
async def test_embed_one_uses_configured_model(embedder, provider):
    vector = await embedder.embed_one("cat")

    assert vector == bag_of_words("cat")
    assert provider.calls == [("cat", "fake-embed")]


@pytest.mark.asyncio
async def test_provider_failure_becomes_embedding_error():
    client = EmbeddingClient(provider=FakeEmbeddingProvider(fail_on=("boom",)))

    with pytest.raises(EmbeddingError):
        await client.embed_one("boom")


@pytest.mark.asyncio
async def test_empty_vector_is_an_error():
    client = EmbeddingClient(provider=FakeEmbeddingProvider(empty_on=("nothing",)))

    with pytest.raises(EmbeddingError):
        await client.embed_one("nothing here")


@pytest.mark.asyncio
async def test_embed_batch_keeps_positions_of_failures():
    client = EmbeddingClient(provider=FakeEmbeddingProvider(fail_on=("dog",)))

    embeddings = await client.embed_batch(["cat", "dog", "sun"])

    assert embeddings[0] == bag_of_words("cat")
    assert embeddings[1] is None
    assert embeddings[2] == bag_of_words("sun")


@pytest.mark.asyncio
async def test_embed_batch_of_nothing(embedder):
    assert await embedder.embed_batch([]) == []


def test_filter_failed_keeps_pairs_aligned():
    chunks, embeddings = filter_failed(["a", "b", "c"], [[1.0], None, [3.0]])

    assert chunks == ["a", "c"]
    assert embeddings == [[1.0], [3.0]]
