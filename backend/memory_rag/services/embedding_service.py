import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx

from memory_rag.core.config import settings
from memory_rag.core.exceptions import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingServiceInterface(ABC):
    """Turns text into a dense vector. Never returns a zero vector on failure."""

    model_name: str = "unknown"

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            ValueError: text is empty or whitespace
            EmbeddingUnavailable: the backing model could not be reached
        """
        pass

    async def health_check(self) -> bool:
        return True


class EmbeddingCache:
    """Simple in-memory cache for embeddings"""

    def __init__(self, max_size: int = 1000):
        self.cache: Dict[str, List[float]] = {}
        self.max_size = max_size

    def get(self, key: str) -> Optional[List[float]]:
        """Get cached embedding"""
        return self.cache.get(key)

    def set(self, key: str, embedding: List[float]):
        """Cache embedding"""
        if self.max_size <= 0:
            return
        if key not in self.cache and len(self.cache) >= self.max_size:
            # Remove oldest entry
            oldest_key = next(iter(self.cache))
            del self.cache[oldest_key]

        self.cache[key] = embedding

    def clear(self):
        """Clear cache"""
        self.cache.clear()

    def __len__(self) -> int:
        return len(self.cache)


class OllamaEmbeddingService(EmbeddingServiceInterface):
    """Embeddings from an Ollama server (``POST /api/embeddings``)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model_name: Optional[str] = None,
        timeout: Optional[float] = None,
        cache_size: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.timeout = timeout if timeout is not None else settings.EMBEDDING_TIMEOUT_SECONDS
        self.memory_cache = EmbeddingCache(
            settings.EMBEDDING_CACHE_SIZE if cache_size is None else cache_size
        )
        self._client = client

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        cache_key = self._get_cache_key(text)
        cached = self.memory_cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            response = await self._post("/api/embeddings", {"model": self.model_name, "prompt": text})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("Error generating embedding with %s: %s", self.model_name, e)
            raise EmbeddingUnavailable(f"Failed to generate embedding: {e}", service="ollama") from e
        except ValueError as e:
            raise EmbeddingUnavailable("Ollama returned a non-JSON response", service="ollama") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not embedding or not all(isinstance(v, (int, float)) for v in embedding):
            raise EmbeddingUnavailable("Ollama response did not contain an embedding", service="ollama")

        embedding = [float(v) for v in embedding]
        self.memory_cache.set(cache_key, embedding)
        return embedding

    async def health_check(self) -> bool:
        try:
            response = await self._get("/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def _post(self, path: str, payload: Dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(f"{self.base_url}{path}", json=payload)

    async def _get(self, path: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(f"{self.base_url}{path}", timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(f"{self.base_url}{path}")

    def _get_cache_key(self, text: str) -> str:
        """Generate cache key for text"""
        text_hash = hashlib.sha256(text.encode()).hexdigest()
        return f"embedding:{self.model_name}:{text_hash}"


class LocalEmbeddingService(EmbeddingServiceInterface):
    """Embeddings from a local sentence-transformers model"""

    def __init__(self, model_name: Optional[str] = None, cache_size: Optional[int] = None):
        self.model_name = model_name or settings.LOCAL_EMBEDDING_MODEL
        self.model = None
        self.memory_cache = EmbeddingCache(
            settings.EMBEDDING_CACHE_SIZE if cache_size is None else cache_size
        )

    def _load_model(self):
        if self.model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise EmbeddingUnavailable(
                    "sentence-transformers is not installed; install the 'local' extra",
                    service="local",
                ) from e
            self.model = SentenceTransformer(self.model_name)
        return self.model

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        cached = self.memory_cache.get(text)
        if cached is not None:
            return cached

        # Run in thread pool since sentence-transformers is synchronous
        loop = asyncio.get_running_loop()
        try:
            model = await loop.run_in_executor(None, self._load_model)
            vector = await loop.run_in_executor(None, model.encode, text)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            logger.error("Local embedding failed with %s: %s", self.model_name, e)
            raise EmbeddingUnavailable(f"Local embedding failed: {e}", service="local") from e

        embedding = vector.tolist()
        self.memory_cache.set(text, embedding)
        return embedding


def get_embedding_service() -> EmbeddingServiceInterface:
    """Embedding service selected by ``settings.EMBEDDING_PROVIDER``"""
    provider = settings.EMBEDDING_PROVIDER.lower()
    if provider == "ollama":
        return OllamaEmbeddingService()
    if provider == "local":
        return LocalEmbeddingService()
    raise ValueError(f"Unsupported embedding provider: {settings.EMBEDDING_PROVIDER}")
