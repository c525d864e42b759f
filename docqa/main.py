"""Main Quart application for DocQA."""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, ValidationError
from quart import Quart, request, jsonify
import structlog

from docqa import config
from docqa.config import GenerationOptions
from docqa.errors import EmbeddingError, DocumentNotFound, UnsupportedFileType
from docqa.extractor import file_type_for
from docqa.llm_client import ollama_client, get_generator
from docqa.rag.embedder import EmbeddingClient
from docqa.rag.ingest import IngestPipeline, DocumentRegistry
from docqa.rag.orchestrator import RAGOrchestrator
from docqa.rag.store import VectorStore

config.configure_logging()

logger = structlog.get_logger()


class QueryRequest(BaseModel):
    question: str = Field(..., max_length=4000)
    top_k: int = Field(default=config.RETRIEVAL_TOP_K, ge=1, le=50)
    use_llm: bool = False
    generation: Optional[Dict[str, Any]] = None


class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class AskRequest(BaseModel):
    message: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    generation: Optional[Dict[str, Any]] = None

    @property
    def question(self) -> str:
        if self.message:
            return self.message
        return self.messages[-1].content if self.messages else ""


@dataclass
class Services:
    """Shared pipeline objects used by the routes."""

    store: VectorStore
    pipeline: IngestPipeline
    orchestrator: RAGOrchestrator
    uploads_dir: Path
    snapshot_path: Path


def build_services(
    generator=None,
    embedder: EmbeddingClient = None,
    uploads_dir: Path = None,
    snapshot_path: Path = None,
) -> Services:
    """Wire store, ingestion and orchestration together."""
    embedder = embedder or EmbeddingClient()
    snapshot_path = Path(snapshot_path or config.SNAPSHOT_PATH)

    store = VectorStore(embedder=embedder)
    pipeline = IngestPipeline(
        store,
        embedder=embedder,
        registry=DocumentRegistry(),
        snapshot_path=snapshot_path,
    )
    orchestrator = RAGOrchestrator(store, generator=generator)

    return Services(
        store=store,
        pipeline=pipeline,
        orchestrator=orchestrator,
        uploads_dir=Path(uploads_dir or config.UPLOADS_DIR),
        snapshot_path=snapshot_path,
    )


def _bad_request(message: str):
    return jsonify({"error": message}), 400


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "Invalid request")


def create_app(services: Services = None) -> Quart:
    """Create the Quart app around a set of services.

    Args:
        services: Pre-built services (default: Ollama/Groq backed)
    """
    if services is None:
        services = build_services(generator=get_generator())

    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_UPLOAD_BYTES
    app.extensions["docqa"] = services

    @app.before_serving
    async def load_store():
        """Restore the last snapshot and register its documents."""
        services.uploads_dir.mkdir(parents=True, exist_ok=True)
        if services.store.load_snapshot(services.snapshot_path):
            seeded = services.pipeline.registry.seed_from_store(services.store)
            logger.info("documents_restored", count=seeded)

    @app.after_serving
    async def finish_ingestion():
        await services.pipeline.drain()

    @app.route("/api/upload", methods=["POST"])
    async def upload():
        """Save an uploaded file and ingest it in the background.

        Expects multipart form data with a ``file`` field.

        Returns JSON:
        {
            "status": "processing",
            "doc_id": "uuid",
            "file_name": "report.pdf",
            "file_size": 1234,
            "file_type": "PDF"
        }
        """
        files = await request.files
        upload_file = files.get("file")

        if upload_file is None or not upload_file.filename:
            return _bad_request("No file uploaded")

        try:
            file_type = file_type_for(upload_file.filename)
        except UnsupportedFileType as e:
            return _bad_request(str(e))

        file_id = str(uuid.uuid4())
        saved_path = services.uploads_dir / f"{file_id}{Path(upload_file.filename).suffix.lower()}"
        await upload_file.save(saved_path)
        file_size = saved_path.stat().st_size

        doc_id = services.pipeline.submit(
            saved_path,
            file_name=upload_file.filename,
            file_size=file_size,
        )

        logger.info(
            "file_uploaded",
            doc_id=doc_id,
            file_name=upload_file.filename,
            file_size=file_size,
            file_type=file_type,
        )

        return jsonify({
            "status": "processing",
            "doc_id": doc_id,
            "file_name": upload_file.filename,
            "file_size": file_size,
            "file_type": file_type,
            "message": "File uploaded. Processing text extraction...",
        }), 202

    @app.route("/api/documents", methods=["GET"])
    async def list_documents():
        records = services.pipeline.registry.list()
        stats = services.store.get_stats()
        return jsonify({
            "total_documents": len(records),
            "documents": [r.to_dict() for r in records],
            "vector_stats": {
                "total_documents": stats["total_documents"],
                "total_chunks": stats["total_chunks"],
                "embedding_model": stats["embedding_model"],
            },
        })

    @app.route("/api/documents/<doc_id>", methods=["GET"])
    async def get_document(doc_id: str):
        record = services.pipeline.registry.get(doc_id)
        if record is None:
            return jsonify({"error": "Document not found"}), 404
        return jsonify(record.to_dict())

    @app.route("/api/documents/<doc_id>", methods=["DELETE"])
    async def delete_document(doc_id: str):
        try:
            removed = await services.pipeline.delete_document(doc_id)
        except DocumentNotFound:
            return jsonify({"error": "Document not found"}), 404

        return jsonify({"success": True, "message": "Document deleted", "chunks_removed": removed})

    @app.route("/api/query", methods=["POST"])
    async def query():
        """Answer a question from the uploaded documents.

        Expects JSON body:
        {
            "question": "text",
            "top_k": 5,           // optional
            "use_llm": false,     // optional
            "generation": {...}   // optional: temperature, top_p, max_tokens
        }
        """
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            return _bad_request("Expected a JSON object")

        try:
            body = QueryRequest.model_validate(data)
            options = GenerationOptions.from_dict(body.generation) if body.generation else None
        except ValidationError as e:
            return _bad_request(_validation_message(e))
        except (TypeError, ValueError) as e:
            return _bad_request(str(e))

        question = body.question.strip()
        if not question:
            return _bad_request("Question is required")

        try:
            result = await services.orchestrator.answer(
                question,
                top_k=body.top_k,
                use_llm=body.use_llm,
                options=options,
            )
        except EmbeddingError as e:
            logger.error("query_embedding_failed", error=str(e))
            return jsonify({"error": "Embedding service unavailable"}), 503

        return jsonify(result.to_dict())

    @app.route("/api/ask", methods=["POST"])
    async def ask():
        """Chat-style endpoint; works with or without uploaded documents.

        Expects JSON body with either ``message`` or a ``messages`` list
        whose last entry is the question.
        """
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            return _bad_request("Expected a JSON object")

        try:
            body = AskRequest.model_validate(data)
            options = GenerationOptions.from_dict(body.generation) if body.generation else None
        except ValidationError as e:
            return _bad_request(_validation_message(e))
        except (TypeError, ValueError) as e:
            return _bad_request(str(e))

        question = body.question.strip()
        if not question:
            return _bad_request("Message is required")

        result = await services.orchestrator.ask(question, options=options)

        return jsonify({
            "content": result.answer,
            "answer": result.answer,
            "role": "assistant",
            "language": result.language,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": result.source,
            "relevant_chunks": result.chunks,
        })

    @app.route("/api/health")
    async def health():
        stats = services.store.get_stats()
        generator = services.orchestrator.generator
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "generator": generator.get_info() if generator is not None else None,
            "vector_store": {
                "documents": stats["total_documents"],
                "chunks": stats["total_chunks"],
            },
        })

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check the embedding service is reachable."""
        checks = {
            "status": "healthy",
            "ollama": False,
            "embedding_model": False,
        }

        try:
            models = await ollama_client.list_models()
            checks["ollama"] = True

            wanted = config.EMBEDDING_MODEL
            if any(m == wanted or m.split(":")[0] == wanted for m in models):
                checks["embedding_model"] = True
            else:
                checks["status"] = "unhealthy"
                checks["error"] = f"Missing embedding model: {wanted}"

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host="0.0.0.0", port=5000, debug=True)
