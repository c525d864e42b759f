"""Tests for the Ollama and Groq HTTP clients."""
import json

import httpx
import pytest

from docqa import config
from docqa.config import GenerationOptions
from docqa.errors import GenerationFailed
from docqa.llm_client import GroqClient, OllamaClient, get_generator, ollama_client


def ollama(handler):
    return OllamaClient(
        base_url="http://ollama.test",
        model="llama3",
        embedding_model="nomic-embed-text",
        transport=httpx.MockTransport(handler),
    )


def groq(handler):
    return GroqClient(
        api_key="secret",
        base_url="https://groq.test/openai/v1",
        model="llama-3.3-70b-versatile",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_embed_posts_model_and_input():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embeddings": [[0.1, 0.2, 0.3]]})

    vector = await ollama(handler).embed("hello")

    assert vector == [0.1, 0.2, 0.3]
    assert seen == {"path": "/api/embed", "body": {"model": "nomic-embed-text", "input": "hello"}}


@pytest.mark.asyncio
async def test_embed_with_explicit_model():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embeddings": [[1.0]]})

    await ollama(handler).embed("hello", model="other-model")

    assert seen["body"]["model"] == "other-model"


@pytest.mark.asyncio
async def test_embed_empty_list_returns_empty_vector():
    client = ollama(lambda request: httpx.Response(200, json={"embeddings": []}))

    assert await client.embed("hello") == []


@pytest.mark.asyncio
async def test_embed_malformed_response():
    client = ollama(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(ValueError):
        await client.embed("hello")


@pytest.mark.asyncio
async def test_embed_http_error_propagates():
    client = ollama(lambda request: httpx.Response(500, json={"error": "boom"}))

    with pytest.raises(httpx.HTTPStatusError):
        await client.embed("hello")


@pytest.mark.asyncio
async def test_generate_sends_sampling_options():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "An answer."})

    options = GenerationOptions(temperature=0.2, top_p=0.8, max_tokens=99)
    text = await ollama(handler).generate("prompt", max_tokens=42, options=options)

    assert text == "An answer."
    assert seen["path"] == "/api/generate"
    assert seen["body"]["stream"] is False
    assert seen["body"]["options"] == {"temperature": 0.2, "top_p": 0.8, "num_predict": 42}


@pytest.mark.asyncio
async def test_generate_defaults_to_option_budget():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": ""})

    await ollama(handler).generate("prompt")

    assert seen["body"]["options"]["num_predict"] == config.ANSWER_MAX_TOKENS


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"error": "loading"}),
        httpx.Response(200, json={"done": True}),
    ],
)
async def test_generate_failures(response):
    client = ollama(lambda request: response)

    with pytest.raises(GenerationFailed):
        await client.generate("prompt")


@pytest.mark.asyncio
async def test_ollama_availability():
    def handler(request):
        return httpx.Response(200, json={"models": [{"name": "llama3:latest"}]})

    client = ollama(handler)

    assert await client.list_models() == ["llama3:latest"]
    assert await client.is_available() is True


@pytest.mark.asyncio
async def test_ollama_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    assert await ollama(handler).is_available() is False


def test_groq_requires_api_key(monkeypatch):
    monkeypatch.setattr("docqa.config.GROQ_API_KEY", "")

    with pytest.raises(ValueError):
        GroqClient(api_key=None)


@pytest.mark.asyncio
async def test_groq_chat_completion():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"choices": [{"message": {"role": "assistant", "content": "Hi there."}}]}
        )

    text = await groq(handler).generate("Hello", max_tokens=10)

    assert text == "Hi there."
    assert seen["auth"] == "Bearer secret"
    assert seen["path"] == "/openai/v1/chat/completions"
    assert seen["body"]["messages"] == [{"role": "user", "content": "Hello"}]
    assert seen["body"]["max_tokens"] == 10


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"error": "invalid key"}),
        httpx.Response(200, json={"choices": []}),
    ],
)
async def test_groq_failures(response):
    with pytest.raises(GenerationFailed):
        await groq(lambda request: response).generate("Hello")


@pytest.mark.asyncio
async def test_groq_availability():
    assert await groq(lambda request: httpx.Response(200, json={"data": []})).is_available() is True
    assert await groq(lambda request: httpx.Response(401)).is_available() is False


def test_get_generator(monkeypatch):
    monkeypatch.setattr("docqa.config.GROQ_API_KEY", "key")

    assert get_generator("none") is None
    assert get_generator("ollama") is ollama_client
    assert isinstance(get_generator("GROQ"), GroqClient)

    with pytest.raises(ValueError):
        get_generator("bogus")


def test_client_info():
    assert ollama(lambda request: None).get_info()["provider"] == "ollama"
    assert groq(lambda request: None).get_info() == {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "base_url": "https://groq.test/openai/v1",
    }
