"""In-memory vector store with exact cosine search.

Handles:
- Document and chunk registration
- Linear-scan similarity search
- Deletion by document id
- JSON snapshot persistence
"""
import json
import os
import tempfile
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import List, Tuple, Optional, Dict, Any, Mapping, Sequence

import numpy as np
import structlog
from pydantic import BaseModel, ValidationError

from docqa import config
from docqa.errors import DimensionMismatchError

logger = structlog.get_logger()

DOCUMENT_FIELDS = ("file_name", "file_size", "file_type", "language", "language_confidence")


def make_chunk_id(doc_id: str, chunk_index: int) -> str:
    return f"{doc_id}:{chunk_index}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Chunk:
    """An embedded slice of a document's text."""

    chunk_id: str
    doc_id: str
    chunk_index: int
    text: str
    embedding: Tuple[float, ...]


@dataclass(frozen=True)
class DocumentMetadata:
    """Per-document record kept alongside its chunks."""

    doc_id: str
    chunk_count: int
    created_at: str
    file_name: str = ""
    file_size: int = 0
    file_type: str = ""
    language: str = "en"
    language_confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SimilarityResult:
    """A chunk scored against a query vector."""

    chunk_id: str
    doc_id: str
    chunk_index: int
    text: str
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine of the angle between two vectors.

    Returns exactly 0.0 when either vector is missing or empty, the lengths
    differ, or either norm is zero.
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0

    return float(np.clip(np.dot(va, vb) / denominator, -1.0, 1.0))


class _StoreState:
    """Immutable view of the store contents.

    Writers build a new state and swap it in; readers keep whichever state
    they grabbed first.
    """

    def __init__(
        self,
        chunks: Dict[str, Chunk] = None,
        documents: Dict[str, DocumentMetadata] = None,
    ):
        self.chunks: Mapping[str, Chunk] = MappingProxyType(dict(chunks or {}))
        self.documents: Mapping[str, DocumentMetadata] = MappingProxyType(dict(documents or {}))
        self.order: List[Chunk] = list(self.chunks.values())

        # Stack embeddings into one matrix when they share a dimension
        self.dimension: Optional[int] = None
        self.matrix: Optional[np.ndarray] = None
        self.norms: Optional[np.ndarray] = None

        dimensions = {len(c.embedding) for c in self.order}
        if len(dimensions) == 1:
            self.dimension = dimensions.pop()
            self.matrix = np.array([c.embedding for c in self.order], dtype=np.float64)
            self.norms = np.linalg.norm(self.matrix, axis=1)

    def scores(self, query_vector: Sequence[float]) -> np.ndarray:
        """Cosine similarity of the query against every chunk, in insertion order."""
        if (
            self.matrix is not None
            and query_vector is not None
            and len(query_vector) == self.dimension
            and self.dimension > 0
        ):
            query = np.asarray(query_vector, dtype=np.float64)
            denominators = self.norms * np.linalg.norm(query)
            result = np.zeros(len(self.order), dtype=np.float64)
            np.divide(self.matrix @ query, denominators, out=result, where=denominators != 0)
            return np.clip(result, -1.0, 1.0)

        return np.array(
            [cosine_similarity(query_vector, c.embedding) for c in self.order],
            dtype=np.float64,
        )


class _ChunkRecord(BaseModel):
    doc_id: str
    chunk_index: int
    text: str
    embedding: List[float]


class _DocumentRecord(BaseModel):
    chunk_count: int
    created_at: str
    file_name: str = ""
    file_size: int = 0
    file_type: str = ""
    language: str = "en"
    language_confidence: float = 0.0


class _Snapshot(BaseModel):
    chunks: List[Tuple[str, _ChunkRecord]]
    documents: List[Tuple[str, _DocumentRecord]]
    embedding_model: Optional[str] = None
    saved_at: Optional[str] = None


class VectorStore:
    """Chunk and document store with exact cosine similarity search."""

    def __init__(self, embedder=None, embedding_model: str = None):
        """Initialize an empty vector store.

        Args:
            embedder: EmbeddingClient used by ``query`` (optional)
            embedding_model: Embedding model identifier recorded in snapshots
        """
        self.embedder = embedder
        self.embedding_model = embedding_model or getattr(embedder, "model", None) or config.EMBEDDING_MODEL

        self._state = _StoreState()
        self._write_lock = threading.Lock()
        self._save_lock = threading.Lock()

        logger.info("vector_store_initialized", embedding_model=self.embedding_model)

    def add_document(
        self,
        doc_id: str,
        chunks: List[str],
        embeddings: List[List[float]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DocumentMetadata:
        """Register a document and its embedded chunks.

        Either every chunk is added or nothing is.

        Args:
            doc_id: Document id (callers generate a fresh one per ingestion)
            chunks: Chunk texts
            embeddings: One vector per chunk
            metadata: Optional document fields (file_name, file_size,
                file_type, language, language_confidence)

        Returns:
            The stored DocumentMetadata

        Raises:
            DimensionMismatchError: If chunks and embeddings do not line up
            ValueError: If metadata has unknown keys
        """
        if len(chunks) != len(embeddings):
            raise DimensionMismatchError(
                f"Chunks and embeddings length mismatch: "
                f"{len(chunks)} chunks, {len(embeddings)} embeddings"
            )

        missing = [i for i, e in enumerate(embeddings) if e is None]
        if missing:
            raise DimensionMismatchError(f"Missing embeddings at positions {missing}")

        metadata = dict(metadata or {})
        unknown = sorted(set(metadata) - set(DOCUMENT_FIELDS))
        if unknown:
            raise ValueError(f"Unknown document metadata fields: {', '.join(unknown)}")

        document = DocumentMetadata(
            doc_id=doc_id,
            chunk_count=len(chunks),
            created_at=_now(),
            **metadata,
        )

        new_chunks = {
            make_chunk_id(doc_id, i): Chunk(
                chunk_id=make_chunk_id(doc_id, i),
                doc_id=doc_id,
                chunk_index=i,
                text=text,
                embedding=tuple(float(x) for x in embedding),
            )
            for i, (text, embedding) in enumerate(zip(chunks, embeddings))
        }

        with self._write_lock:
            state = self._state
            merged_chunks = {cid: c for cid, c in state.chunks.items() if c.doc_id != doc_id}
            merged_chunks.update(new_chunks)
            documents = dict(state.documents)
            documents[doc_id] = document
            self._state = _StoreState(merged_chunks, documents)

        logger.info("document_added", doc_id=doc_id, chunk_count=len(chunks))

        return document

    def similarity_search(
        self, query_vector: Sequence[float], top_k: int = None
    ) -> List[SimilarityResult]:
        """Score every chunk against a query vector.

        Args:
            query_vector: Query embedding
            top_k: Number of results to return (default from config)

        Returns:
            Up to ``top_k`` results by descending similarity; equal scores
            keep insertion order
        """
        if top_k is None:
            top_k = config.RETRIEVAL_TOP_K

        state = self._state

        if top_k <= 0 or not state.order:
            return []

        scores = state.scores(query_vector)
        ranked = np.argsort(-scores, kind="stable")[:top_k]

        results = []
        for idx in ranked:
            chunk = state.order[int(idx)]
            results.append(
                SimilarityResult(
                    chunk_id=chunk.chunk_id,
                    doc_id=chunk.doc_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    similarity=float(scores[idx]),
                )
            )

        logger.debug(
            "vector_search_completed",
            top_k=top_k,
            searched=len(state.order),
            top_similarity=results[0].similarity if results else None,
        )

        return results

    async def query(self, question: str, top_k: int = None) -> List[SimilarityResult]:
        """Embed a question and search for similar chunks.

        Raises:
            EmbeddingError: If the question cannot be embedded
            RuntimeError: If the store has no embedding client
        """
        if self.embedder is None:
            raise RuntimeError("No embedding client configured for this store")

        query_vector = await self.embedder.embed_one(question)
        return self.similarity_search(query_vector, top_k=top_k)

    def delete_document(self, doc_id: str) -> int:
        """Remove a document and all of its chunks.

        Returns:
            Number of chunks removed (0 for an unknown id)
        """
        with self._write_lock:
            state = self._state
            remaining = {cid: c for cid, c in state.chunks.items() if c.doc_id != doc_id}
            deleted = len(state.chunks) - len(remaining)
            documents = {d: m for d, m in state.documents.items() if d != doc_id}

            if deleted or len(documents) != len(state.documents):
                self._state = _StoreState(remaining, documents)

        logger.info("document_deleted", doc_id=doc_id, chunks_removed=deleted)

        return deleted

    def get_document(self, doc_id: str) -> Optional[DocumentMetadata]:
        return self._state.documents.get(doc_id)

    def clear(self) -> None:
        """Drop every document and chunk."""
        with self._write_lock:
            self._state = _StoreState()
        logger.warning("vector_store_cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store.

        Returns:
            Dictionary with document/chunk totals and document records
        """
        state = self._state
        return {
            "total_documents": len(state.documents),
            "total_chunks": len(state.chunks),
            "embedding_model": self.embedding_model,
            "dimension": state.dimension,
            "documents": [m.to_dict() for m in state.documents.values()],
        }

    def save_snapshot(self, path: Path = None) -> Path:
        """Write the whole store to a JSON file.

        The file is written next to the target and renamed into place.
        Concurrent saves run one at a time, each writing the latest state.

        Returns:
            Path written
        """
        path = Path(path or config.SNAPSHOT_PATH)

        with self._save_lock:
            state = self._state
            self._write_snapshot(path, state)

        logger.info(
            "snapshot_saved",
            path=str(path),
            documents=len(state.documents),
            chunks=len(state.chunks),
        )

        return path

    def _write_snapshot(self, path: Path, state: _StoreState) -> None:
        data = {
            "chunks": [
                [cid, {
                    "doc_id": c.doc_id,
                    "chunk_index": c.chunk_index,
                    "text": c.text,
                    "embedding": list(c.embedding),
                }]
                for cid, c in state.chunks.items()
            ],
            "documents": [
                [doc_id, {k: v for k, v in m.to_dict().items() if k != "doc_id"}]
                for doc_id, m in state.documents.items()
            ],
            "embedding_model": self.embedding_model,
            "saved_at": _now(),
        }

        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_name, path)
        except OSError as e:
            logger.error("snapshot_save_failed", path=str(path), error=str(e))
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def load_snapshot(self, path: Path = None) -> bool:
        """Replace the store contents with a snapshot from disk.

        A missing or unreadable snapshot leaves the store unchanged.

        Returns:
            True if the snapshot was loaded
        """
        path = Path(path or config.SNAPSHOT_PATH)

        if not path.exists():
            logger.info("no_snapshot_found", path=str(path))
            return False

        try:
            with open(path, "r", encoding="utf-8") as f:
                snapshot = _Snapshot.model_validate(json.load(f))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(
                "snapshot_load_failed",
                path=str(path),
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        chunks = {
            cid: Chunk(
                chunk_id=cid,
                doc_id=record.doc_id,
                chunk_index=record.chunk_index,
                text=record.text,
                embedding=tuple(record.embedding),
            )
            for cid, record in snapshot.chunks
        }
        documents = {
            doc_id: DocumentMetadata(doc_id=doc_id, **record.model_dump())
            for doc_id, record in snapshot.documents
        }

        orphans = [cid for cid, c in chunks.items() if c.doc_id not in documents]
        if orphans:
            logger.warning("snapshot_orphan_chunks_dropped", count=len(orphans))
            for cid in orphans:
                del chunks[cid]

        if snapshot.embedding_model and snapshot.embedding_model != self.embedding_model:
            logger.warning(
                "snapshot_embedding_model_mismatch",
                stored_model=snapshot.embedding_model,
                current_model=self.embedding_model,
            )

        with self._write_lock:
            self._state = _StoreState(chunks, documents)

        logger.info(
            "snapshot_loaded",
            path=str(path),
            documents=len(documents),
            chunks=len(chunks),
            saved_at=snapshot.saved_at,
        )

        return True
