"""
Tests for the embedding adapters
"""

import json

import httpx
import pytest

from memory_rag.core.config import settings
from memory_rag.core.exceptions import EmbeddingUnavailable
from memory_rag.services.embedding_service import (
    EmbeddingCache,
    LocalEmbeddingService,
    OllamaEmbeddingService,
    get_embedding_service,
)


def make_service(handler, cache_size=10):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaEmbeddingService(
        base_url="http://ollama:11434",
        model_name="bge-large",
        timeout=1.0,
        cache_size=cache_size,
        client=client,
    )


class TestOllamaEmbeddingService:

    @pytest.mark.asyncio
    async def test_posts_model_and_prompt(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"embedding": [0.1, 0.2, 3]})

        service = make_service(handler)

        embedding = await service.embed("hola mundo")

        assert embedding == [0.1, 0.2, 3.0]
        assert requests[0].url.path == "/api/embeddings"
        assert json.loads(requests[0].content) == {"model": "bge-large", "prompt": "hola mundo"}

    @pytest.mark.asyncio
    async def test_cache_avoids_second_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"embedding": [1.0, 0.0]})

        service = make_service(handler)

        await service.embed("same text")
        await service.embed("same text")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self):
        service = make_service(lambda request: httpx.Response(200, json={"embedding": [1.0]}))

        with pytest.raises(ValueError):
            await service.embed("  ")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="model not loaded"),
        httpx.Response(200, json={"error": "unknown model"}),
        httpx.Response(200, json={"embedding": []}),
        httpx.Response(200, text="not json"),
    ])
    async def test_bad_responses_raise_unavailable(self, response):
        service = make_service(lambda request: response)

        with pytest.raises(EmbeddingUnavailable) as exc_info:
            await service.embed("text")
        assert exc_info.value.code == "EMBEDDING_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_unreachable_server_raises_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = make_service(handler)

        with pytest.raises(EmbeddingUnavailable):
            await service.embed("text")
        assert await service.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check(self):
        service = make_service(lambda request: httpx.Response(200, json={"models": []}))

        assert await service.health_check() is True


class TestEmbeddingCache:

    def test_evicts_oldest(self):
        cache = EmbeddingCache(max_size=2)
        cache.set("a", [1.0])
        cache.set("b", [2.0])
        cache.set("c", [3.0])

        assert cache.get("a") is None
        assert cache.get("c") == [3.0]
        assert len(cache) == 2

    def test_zero_size_disables_cache(self):
        cache = EmbeddingCache(max_size=0)
        cache.set("a", [1.0])

        assert cache.get("a") is None


class TestFactory:

    def test_default_provider_is_ollama(self, monkeypatch):
        monkeypatch.setattr(settings, "EMBEDDING_PROVIDER", "ollama")

        assert isinstance(get_embedding_service(), OllamaEmbeddingService)

    def test_local_provider_loads_lazily(self, monkeypatch):
        monkeypatch.setattr(settings, "EMBEDDING_PROVIDER", "local")

        service = get_embedding_service()

        assert isinstance(service, LocalEmbeddingService)
        assert service.model is None

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "EMBEDDING_PROVIDER", "carrier-pigeon")

        with pytest.raises(ValueError):
            get_embedding_service()
