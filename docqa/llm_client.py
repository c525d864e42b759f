"""Ollama and Groq client wrappers with error handling."""
import httpx
from typing import List, Dict, Optional, Any
import structlog

from docqa import config
from docqa.config import GenerationOptions
from docqa.errors import GenerationFailed

logger = structlog.get_logger()


class OllamaClient:
    """Async client for the Ollama embedding and generation API."""

    def __init__(
        self,
        base_url: str = None,
        model: str = None,
        embedding_model: str = None,
        embedding_timeout: float = None,
        generation_timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            model: Generation model (defaults to config.CHAT_MODEL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            embedding_timeout: Timeout for embedding requests in seconds
            generation_timeout: Timeout for generation requests in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.model = model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.embedding_timeout = embedding_timeout or config.EMBEDDING_TIMEOUT
        self.generation_timeout = generation_timeout or config.GENERATION_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def embed(self, text: str, model: str = None) -> List[float]:
        """Generate an embedding for a text.

        Args:
            text: Text to embed
            model: Model to use (defaults to the client's embedding model)

        Returns:
            Embedding vector (may be empty if Ollama returned nothing)

        Raises:
            httpx.HTTPError: On API errors or timeouts
            ValueError: If the response body is malformed
        """
        model = model or self.embedding_model

        payload = {
            "model": model,
            "input": text,
        }

        try:
            async with self._client(self.embedding_timeout) as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    text_length=len(text),
                )

                response = await client.post(
                    f"{self.base_url}/api/embed",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e), base_url=self.base_url)
            raise

        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if embeddings is None:
            raise ValueError("Malformed embedding response: missing 'embeddings'")
        if not embeddings:
            return []

        logger.debug(
            "ollama_embedding_response",
            model=model,
            dimension=len(embeddings[0]),
        )

        return [float(x) for x in embeddings[0]]

    async def generate(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        options: Optional[GenerationOptions] = None,
    ) -> str:
        """Generate a completion for a prompt.

        Args:
            prompt: Input prompt
            max_tokens: Maximum tokens to generate (overrides options.max_tokens)
            options: Sampling options

        Returns:
            Generated text

        Raises:
            GenerationFailed: On API errors, timeouts or malformed responses
        """
        options = options or GenerationOptions()

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "num_predict": max_tokens or options.max_tokens or config.ANSWER_MAX_TOKENS,
            },
        }

        try:
            async with self._client(self.generation_timeout) as client:
                logger.info(
                    "ollama_generate_request",
                    model=self.model,
                    prompt_length=len(prompt),
                )

                response = await client.post(
                    f"{self.base_url}/api/generate",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()

        except httpx.HTTPError as e:
            logger.error(
                "ollama_generate_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise GenerationFailed(f"Ollama generation failed: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GenerationFailed("Malformed generation response: missing 'response'")

        logger.info("ollama_generate_response", model=self.model, response_length=len(text))

        return text

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(5.0) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise

    async def is_available(self) -> bool:
        """Check whether the Ollama service answers."""
        try:
            await self.list_models()
            return True
        except httpx.HTTPError:
            return False

    def get_info(self) -> Dict[str, Any]:
        return {"provider": "ollama", "model": self.model, "base_url": self.base_url}


class GroqClient:
    """Async client for Groq's OpenAI-compatible chat completion API."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or config.GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY is required for the Groq client")

        self.base_url = (base_url or config.GROQ_BASE_URL).rstrip("/")
        self.model = model or config.GROQ_MODEL
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def generate(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        options: Optional[GenerationOptions] = None,
    ) -> str:
        """Generate a single-turn chat completion.

        Raises:
            GenerationFailed: On API errors, timeouts or malformed responses
        """
        options = options or GenerationOptions(temperature=0.7)

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens or options.max_tokens or config.ANSWER_MAX_TOKENS,
            "temperature": options.temperature,
            "top_p": options.top_p,
        }

        try:
            async with self._client(self.timeout) as client:
                logger.info("groq_generate_request", model=self.model, prompt_length=len(prompt))

                response = await client.post(f"{self.base_url}/chat/completions", json=payload)
                response.raise_for_status()

                data = response.json()

        except httpx.HTTPError as e:
            logger.error(
                "groq_generate_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise GenerationFailed(f"Groq inference failed: {e}") from e

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationFailed(f"Malformed Groq response: {e}") from e

        logger.info("groq_generate_response", model=self.model, response_length=len(text or ""))

        return text or ""

    async def is_available(self) -> bool:
        """Check that the API key is accepted."""
        try:
            async with self._client(5.0) as client:
                response = await client.get(f"{self.base_url}/models")
                response.raise_for_status()
                return True
        except httpx.HTTPError as e:
            logger.warning("groq_availability_check_failed", error=str(e))
            return False

    def get_info(self) -> Dict[str, Any]:
        return {"provider": "groq", "model": self.model, "base_url": self.base_url}


# Global client instance
ollama_client = OllamaClient()


def get_generator(provider: str = None):
    """Build the configured generative model client.

    Args:
        provider: "groq", "ollama" or "none" (default from config)

    Returns:
        A client exposing ``generate`` and ``is_available``, or None when
        generation is disabled
    """
    provider = (provider or config.LLM_PROVIDER).lower()

    if provider == "none":
        return None
    if provider == "groq":
        return GroqClient()
    if provider == "ollama":
        return ollama_client

    raise ValueError(f"Unknown LLM provider: {provider}")
