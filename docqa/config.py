"""Application configuration with sensible defaults."""
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(DATA_DIR / "uploads")))
SNAPSHOT_PATH = Path(os.getenv("SNAPSHOT_PATH", str(DATA_DIR / "vectors" / "store.json")))

# Ensure data directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")

# Groq configuration (OpenAI-compatible endpoint)
GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

# "groq", "ollama" or "none"
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "groq" if GROQ_API_KEY else "ollama")

# Timeouts (seconds)
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "120.0"))

# RAG parameters (token budgets, 1 token ≈ 4 chars)
CHUNK_MAX_TOKENS = int(os.getenv("CHUNK_MAX_TOKENS", "500"))
CHUNK_OVERLAP_TOKENS = int(os.getenv("CHUNK_OVERLAP_TOKENS", "50"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
CONTEXT_CHUNKS = int(os.getenv("CONTEXT_CHUNKS", "3"))     # chunks sent to the LLM
FALLBACK_CHUNKS = int(os.getenv("FALLBACK_CHUNKS", "2"))   # chunks returned verbatim
ANSWER_MAX_TOKENS = int(os.getenv("ANSWER_MAX_TOKENS", "1024"))

# Uploads
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(500 * 1024 * 1024)))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling options forwarded to the generative model."""

    temperature: float = 0.5
    top_p: float = 0.9
    max_tokens: Optional[int] = None   # None defers to the caller's budget

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]]) -> "GenerationOptions":
        """Build options from a plain dict, rejecting unknown keys.

        Raises:
            ValueError: If a key is not a recognized option
        """
        if not options:
            return cls()

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"Unknown generation options: {', '.join(unknown)}")

        return cls(**options)


def configure_logging(level: str = None) -> None:
    """Configure structlog to emit JSON lines through stdlib logging."""
    logging.basicConfig(format="%(message)s", level=(level or LOG_LEVEL).upper())

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
