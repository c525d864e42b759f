"""Ingest pipeline for indexing uploaded documents.

Orchestrates:
- Text extraction
- Language detection
- Sentence-based chunking
- Embedding generation
- Vector store registration and snapshotting
"""
import asyncio
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Optional
import structlog

from docqa import config
from docqa.errors import DocQAError, NoTextExtracted, EmbeddingError, DocumentNotFound
from docqa.extractor import extract, file_type_for
from docqa.rag.chunker import TextChunker
from docqa.rag.embedder import EmbeddingClient, filter_failed
from docqa.rag.language import LanguageDetector
from docqa.rag.store import VectorStore, DocumentMetadata

logger = structlog.get_logger()

STATUS_PROCESSING = "processing"
STATUS_READY = "ready"
STATUS_FAILED = "failed"

PREVIEW_CHARS = 500


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class IngestionRecord:
    """Processing status of one uploaded document."""

    doc_id: str
    file_name: str = ""
    file_size: int = 0
    file_type: str = ""
    status: str = STATUS_PROCESSING
    language: Optional[str] = None
    language_confidence: Optional[float] = None
    chunk_count: int = 0
    extracted_text_length: int = 0
    text_preview: str = ""
    error: Optional[str] = None
    upload_path: Optional[str] = None
    processed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("upload_path")
        return data


class DocumentRegistry:
    """In-memory index of ingestion records by document id."""

    def __init__(self):
        self._records: Dict[str, IngestionRecord] = {}

    def add(self, record: IngestionRecord) -> IngestionRecord:
        self._records[record.doc_id] = record
        return record

    def get(self, doc_id: str) -> Optional[IngestionRecord]:
        return self._records.get(doc_id)

    def update(self, doc_id: str, **fields) -> IngestionRecord:
        record = self._records.get(doc_id)
        if record is None:
            record = self.add(IngestionRecord(doc_id=doc_id))
        for name, value in fields.items():
            setattr(record, name, value)
        return record

    def remove(self, doc_id: str) -> Optional[IngestionRecord]:
        return self._records.pop(doc_id, None)

    def list(self) -> List[IngestionRecord]:
        return list(self._records.values())

    def seed_from_store(self, store: VectorStore) -> int:
        """Register every stored document as ready.

        Returns:
            Number of records added
        """
        added = 0
        for meta in store.get_stats()["documents"]:
            if meta["doc_id"] in self._records:
                continue
            self.add(
                IngestionRecord(
                    doc_id=meta["doc_id"],
                    file_name=meta["file_name"],
                    file_size=meta["file_size"],
                    file_type=meta["file_type"],
                    status=STATUS_READY,
                    language=meta["language"],
                    language_confidence=meta["language_confidence"],
                    chunk_count=meta["chunk_count"],
                    processed_at=meta["created_at"],
                )
            )
            added += 1
        return added


class IngestPipeline:
    """Pipeline for ingesting documents into the vector store."""

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient = None,
        registry: DocumentRegistry = None,
        chunker: TextChunker = None,
        snapshot_path: Path = None,
        max_tokens: int = None,
        overlap_tokens: int = None,
        autosave: bool = True,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: Vector store receiving the chunks
            embedder: Embedding client (default: the store's own)
            registry: Document registry (a fresh one if not provided)
            chunker: Text chunker (default from config)
            snapshot_path: Where to checkpoint the store (default from config)
            max_tokens: Token budget per chunk (default from config)
            overlap_tokens: Overlap passed to the chunker (default from config)
            autosave: Save a snapshot after every add/delete
        """
        self.store = store
        self.embedder = embedder or store.embedder or EmbeddingClient()
        self.registry = registry if registry is not None else DocumentRegistry()
        self.max_tokens = max_tokens or config.CHUNK_MAX_TOKENS
        self.overlap_tokens = (
            config.CHUNK_OVERLAP_TOKENS if overlap_tokens is None else overlap_tokens
        )
        self.chunker = chunker or TextChunker(
            max_tokens=self.max_tokens, overlap_tokens=self.overlap_tokens
        )
        self.snapshot_path = Path(snapshot_path or config.SNAPSHOT_PATH)
        self.autosave = autosave

        self._tasks: Dict[str, asyncio.Task] = {}

        logger.info(
            "ingest_pipeline_initialized",
            max_tokens=self.max_tokens,
            overlap_tokens=self.overlap_tokens,
            snapshot_path=str(self.snapshot_path),
        )

    async def save(self) -> None:
        """Checkpoint the store; failures are logged, not raised."""
        try:
            await asyncio.to_thread(self.store.save_snapshot, self.snapshot_path)
        except OSError as e:
            logger.error("snapshot_checkpoint_failed", path=str(self.snapshot_path), error=str(e))

    async def ingest_text(
        self,
        doc_id: str,
        text: str,
        file_name: str = "",
        file_size: int = None,
        file_type: str = "TXT",
    ) -> DocumentMetadata:
        """Chunk, embed and store already extracted text.

        Raises:
            NoTextExtracted: If the text is empty or whitespace
            EmbeddingError: If no chunk could be embedded
            DimensionMismatchError: If the store rejects the chunk set
        """
        if file_size is None:
            file_size = len(text.encode("utf-8")) if text else 0

        self.registry.update(
            doc_id,
            file_name=file_name,
            file_size=file_size,
            file_type=file_type,
            status=STATUS_PROCESSING,
        )

        if not text or not text.strip():
            raise NoTextExtracted("No text extracted from document")

        detection = LanguageDetector.detect_with_confidence(text)

        chunks = self.chunker.smart_chunk(text, self.max_tokens, self.overlap_tokens)
        if not chunks:
            raise NoTextExtracted("Document produced no chunks")

        logger.info(
            "document_chunked",
            doc_id=doc_id,
            language=detection.language,
            stats=self.chunker.get_stats(chunks),
        )

        embeddings = await self.embedder.embed_batch(chunks)
        valid_chunks, valid_embeddings = filter_failed(chunks, embeddings)

        if not valid_chunks:
            raise EmbeddingError("Failed to generate embeddings")

        # Deleted while embedding; nothing may be stored under this id
        if self.registry.get(doc_id) is None:
            raise DocumentNotFound(doc_id)

        if len(valid_chunks) < len(chunks):
            logger.warning(
                "chunks_dropped_after_embedding_failure",
                doc_id=doc_id,
                dropped=len(chunks) - len(valid_chunks),
            )

        metadata = self.store.add_document(
            doc_id,
            valid_chunks,
            valid_embeddings,
            {
                "file_name": file_name,
                "file_size": file_size,
                "file_type": file_type,
                "language": detection.language,
                "language_confidence": detection.confidence,
            },
        )

        self.registry.update(
            doc_id,
            status=STATUS_READY,
            language=detection.language,
            language_confidence=detection.confidence,
            chunk_count=len(valid_chunks),
            extracted_text_length=len(text),
            text_preview=text[:PREVIEW_CHARS],
            error=None,
            processed_at=_now(),
        )

        if self.autosave:
            await self.save()

        logger.info("document_ingested", doc_id=doc_id, chunks_created=len(valid_chunks))

        return metadata

    async def ingest_file(
        self,
        file_path: Path,
        doc_id: str = None,
        file_name: str = None,
    ) -> DocumentMetadata:
        """Extract and ingest a single file.

        Raises:
            UnsupportedFileType, ExtractionFailed, NoTextExtracted,
            EmbeddingError: As raised by the individual stages
        """
        file_path = Path(file_path)
        doc_id = doc_id or str(uuid.uuid4())
        file_name = file_name or file_path.name
        file_type = file_type_for(file_name)

        logger.info("ingesting_file", doc_id=doc_id, path=str(file_path))

        text = await asyncio.to_thread(extract, file_path)

        return await self.ingest_text(
            doc_id,
            text,
            file_name=file_name,
            file_size=file_path.stat().st_size,
            file_type=file_type,
        )

    async def process_document(
        self,
        doc_id: str,
        file_path: Path,
        file_name: str = None,
    ) -> Optional[DocumentMetadata]:
        """Ingest a file, recording failures on its registry record.

        Returns:
            Stored metadata, or None if ingestion failed
        """
        try:
            return await self.ingest_file(file_path, doc_id=doc_id, file_name=file_name)
        except asyncio.CancelledError:
            logger.info("document_processing_cancelled", doc_id=doc_id)
            raise
        except Exception as e:
            level = logger.warning if isinstance(e, DocQAError) else logger.error
            level(
                "document_processing_failed",
                doc_id=doc_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if self.registry.get(doc_id) is not None:
                self.registry.update(
                    doc_id,
                    status=STATUS_FAILED,
                    error=str(e),
                    processed_at=_now(),
                )
            return None

    def submit(
        self,
        file_path: Path,
        file_name: str = None,
        file_size: int = 0,
        doc_id: str = None,
    ) -> str:
        """Schedule background ingestion of a saved upload.

        Returns:
            The document id
        """
        doc_id = doc_id or str(uuid.uuid4())
        file_name = file_name or Path(file_path).name

        self.registry.add(
            IngestionRecord(
                doc_id=doc_id,
                file_name=file_name,
                file_size=file_size,
                file_type=file_type_for(file_name),
                upload_path=str(file_path),
            )
        )

        task = asyncio.create_task(self.process_document(doc_id, Path(file_path), file_name))
        self._tasks[doc_id] = task
        task.add_done_callback(lambda t: self._forget_task(doc_id, t))

        logger.info("document_processing_scheduled", doc_id=doc_id, file_name=file_name)

        return doc_id

    def _forget_task(self, doc_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(doc_id) is task:
            del self._tasks[doc_id]

    async def drain(self) -> None:
        """Wait for all scheduled ingestions to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def delete_document(self, doc_id: str) -> int:
        """Delete a document from the store, the registry and disk.

        Returns:
            Number of chunks removed

        Raises:
            DocumentNotFound: If neither the registry nor the store knows the id
        """
        record = self.registry.get(doc_id)
        if record is None and self.store.get_document(doc_id) is None:
            raise DocumentNotFound(doc_id)

        task = self._tasks.get(doc_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        removed = self.store.delete_document(doc_id)
        self.registry.remove(doc_id)

        if record is not None and record.upload_path:
            Path(record.upload_path).unlink(missing_ok=True)

        if self.autosave:
            await self.save()

        logger.info("document_removed", doc_id=doc_id, chunks_removed=removed)

        return removed
