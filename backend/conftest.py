"""
Global pytest configuration and fixtures.
"""

import hashlib
import math
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["TESTING"] = "1"
os.environ["VECTOR_STORE_TYPE"] = "memory"
os.environ["LOG_FORMAT"] = "text"

from memory_rag.core.exceptions import EmbeddingUnavailable  # noqa: E402
from memory_rag.services.embedding_service import EmbeddingServiceInterface  # noqa: E402
from memory_rag.services.vector_retrieval import VectorRetrieval  # noqa: E402
from memory_rag.services.vector_stores.in_memory_store import InMemoryVectorStore  # noqa: E402


DIMENSION = 16


def unit_vector(similarity: float, dimension: int = DIMENSION) -> List[float]:
    """Unit vector whose cosine similarity with ``axis_vector()`` is ``similarity``"""
    vector = [0.0] * dimension
    vector[0] = similarity
    vector[1] = math.sqrt(max(1.0 - similarity * similarity, 0.0))
    return vector


def axis_vector(dimension: int = DIMENSION) -> List[float]:
    return unit_vector(1.0, dimension)


class StubEmbeddingService(EmbeddingServiceInterface):
    """
    Deterministic embedder for tests.

    Texts listed in ``mapping`` get the given vector; anything else is hashed
    word by word into a bag-of-words vector, so texts sharing words are similar.
    """

    model_name = "stub"

    def __init__(self, mapping: Optional[Dict[str, List[float]]] = None, fail: bool = False):
        self.mapping = dict(mapping or {})
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        self.calls.append(text)
        if self.fail:
            raise EmbeddingUnavailable("embedding backend down", service="stub")
        if text in self.mapping:
            return list(self.mapping[text])

        vector = [0.0] * DIMENSION
        for word in text.lower().split():
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % DIMENSION
            vector[bucket] += 1.0
        return vector


@pytest.fixture
def embedding_service():
    return StubEmbeddingService()


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def retrieval(embedding_service, vector_store):
    return VectorRetrieval(embedding_service, vector_store, timeout=1.0)


@pytest.fixture
def sample_chat_messages():
    """Sample chat turns for testing."""
    return [
        {"role": "user", "content": "What is clustering?"},
        {"role": "assistant", "content": "Clustering groups similar items without labels."},
        {"role": "user", "content": "How does k-means work?"},
    ]
