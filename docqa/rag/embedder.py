"""Embedding client: text in, fixed-length vectors out."""
from typing import List, Optional, Tuple
import structlog

from docqa import config
from docqa.errors import EmbeddingError
from docqa.llm_client import ollama_client

logger = structlog.get_logger()


class EmbeddingClient:
    """Maps text to vectors through an embedding provider.

    The provider is any object with ``async embed(text, model) -> list[float]``;
    by default the shared Ollama client.
    """

    def __init__(self, provider=None, model: str = None):
        self.provider = provider or ollama_client
        self.model = model or config.EMBEDDING_MODEL

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the provider fails or returns an empty vector
        """
        try:
            embedding = await self.provider.embed(text, model=self.model)
        except Exception as e:
            logger.error(
                "embedding_generation_failed",
                model=self.model,
                text_preview=text[:100],
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmbeddingError(f"Embedding generation failed: {e}") from e

        if not embedding:
            logger.error("empty_embedding_returned", model=self.model, text_preview=text[:100])
            raise EmbeddingError("No embeddings returned from provider")

        return list(embedding)

    async def embed_batch(self, texts: List[str]) -> List[Optional[List[float]]]:
        """Embed texts one at a time.

        A failed item becomes ``None`` at its position so the result stays
        aligned with ``texts``.
        """
        embeddings: List[Optional[List[float]]] = []
        failed = 0

        for text in texts:
            try:
                embeddings.append(await self.embed_one(text))
            except EmbeddingError:
                embeddings.append(None)
                failed += 1

        logger.info(
            "embeddings_batch_generated",
            batch_size=len(texts),
            failed=failed,
        )

        return embeddings


def filter_failed(
    chunks: List[str], embeddings: List[Optional[List[float]]]
) -> Tuple[List[str], List[List[float]]]:
    """Drop chunks whose embedding failed, keeping the pairs aligned."""
    pairs = [(c, e) for c, e in zip(chunks, embeddings) if e is not None]
    return [c for c, _ in pairs], [e for _, e in pairs]
