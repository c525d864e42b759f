"""Pytest configuration and shared fixtures."""
import os
import tempfile

# Keep config from touching the working tree or reaching a real model
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="docqa-tests-"))
os.environ.setdefault("LLM_PROVIDER", "none")

import pytest

from docqa.rag.embedder import EmbeddingClient
from docqa.rag.ingest import IngestPipeline, DocumentRegistry
from docqa.rag.orchestrator import RAGOrchestrator
from docqa.rag.store import VectorStore
from tests.fakes import FakeEmbeddingProvider, FakeGenerator


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedder(provider):
    return EmbeddingClient(provider=provider, model="fake-embed")


@pytest.fixture
def store(embedder):
    return VectorStore(embedder=embedder)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "vectors" / "store.json"


@pytest.fixture
def pipeline(store, embedder, snapshot_path):
    return IngestPipeline(
        store,
        embedder=embedder,
        registry=DocumentRegistry(),
        snapshot_path=snapshot_path,
        max_tokens=50,
        overlap_tokens=5,
    )


@pytest.fixture
def orchestrator(store, generator):
    return RAGOrchestrator(store, generator=generator)
