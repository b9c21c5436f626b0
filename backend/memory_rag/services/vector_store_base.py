"""
Vector Store Abstraction Layer

Common interface for the vector backends holding the two memory corpora
(conversation pairs and document chunks), so the engine can switch between
an in-process store and PostgreSQL/pgvector without code changes.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Sequence
from dataclasses import dataclass, field
from enum import Enum


class VectorStoreType(str, Enum):
    MEMORY = "memory"
    PGVECTOR = "pgvector"


@dataclass
class VectorMatch:
    """Nearest-neighbour hit; ``distance`` is cosine distance (1 - similarity)"""
    id: str
    distance: float
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorStoreConfig:
    store_type: VectorStoreType
    connection_params: Dict[str, Any] = field(default_factory=dict)
    table_name: str = "memory_vectors"
    dimension: int = 1024


class VectorStoreInterface(ABC):
    """Abstract base class for vector store implementations"""

    @abstractmethod
    async def initialize(self) -> bool:
        """Initialize the vector store connection and schema"""
        pass

    @abstractmethod
    async def upsert(
        self,
        corpus_id: str,
        record_id: str,
        vector: Sequence[float],
        payload: Dict[str, Any]
    ) -> None:
        """Insert or replace one record in a corpus"""
        pass

    @abstractmethod
    async def query(
        self,
        corpus_id: str,
        query_vector: Sequence[float],
        k: int,
        scope_filter: Optional[Dict[str, Any]] = None
    ) -> List[VectorMatch]:
        """
        Nearest neighbours in a corpus, closest first.

        Args:
            corpus_id: Collection to search
            query_vector: Query embedding
            k: Maximum number of matches
            scope_filter: Payload fields that must equal the given values
        """
        pass

    @abstractmethod
    async def delete(self, corpus_id: str, record_ids: Sequence[str]) -> int:
        """Delete records by id, returning how many were removed"""
        pass

    @abstractmethod
    async def delete_by_filter(self, corpus_id: str, filters: Dict[str, Any]) -> int:
        """Delete records whose payload matches all filters"""
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """Get vector store statistics"""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the vector store is healthy"""
        pass


class VectorStoreFactory:
    """Factory for creating vector store instances"""

    @staticmethod
    def create_store(config: VectorStoreConfig) -> VectorStoreInterface:
        """Create a vector store instance based on configuration"""

        if config.store_type == VectorStoreType.MEMORY:
            from .vector_stores.in_memory_store import InMemoryVectorStore
            return InMemoryVectorStore(config)

        elif config.store_type == VectorStoreType.PGVECTOR:
            from .vector_stores.pgvector_store import PgVectorStore
            return PgVectorStore(config)

        else:
            raise ValueError(f"Unsupported vector store type: {config.store_type}")

    @staticmethod
    def from_settings() -> VectorStoreInterface:
        """Create the store named by ``settings.VECTOR_STORE_TYPE``"""
        from memory_rag.core.config import settings

        try:
            store_type = VectorStoreType(settings.VECTOR_STORE_TYPE)
        except ValueError:
            raise ValueError(f"Unsupported vector store type: {settings.VECTOR_STORE_TYPE}")

        return VectorStoreFactory.create_store(VectorStoreConfig(
            store_type=store_type,
            connection_params={"database_url": settings.DATABASE_URL},
            dimension=settings.EMBEDDING_DIMENSION,
        ))
