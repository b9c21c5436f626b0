"""
Tests for the vector store abstraction and the in-memory backend
"""

import pytest
from memory_rag.services.vector_store_base import (
    VectorStoreConfig,
    VectorStoreFactory,
    VectorStoreType,
)
from memory_rag.services.vector_stores.in_memory_store import InMemoryVectorStore
from memory_rag.services.vector_stores.pgvector_store import PgVectorStore

from conftest import axis_vector, unit_vector


class TestInMemoryVectorStore:

    @pytest.mark.asyncio
    async def test_query_returns_closest_first(self):
        store = InMemoryVectorStore()
        await store.upsert("docs", "far", unit_vector(0.2), {"content": "far"})
        await store.upsert("docs", "near", unit_vector(0.9), {"content": "near"})
        await store.upsert("docs", "mid", unit_vector(0.5), {"content": "mid"})

        matches = await store.query("docs", axis_vector(), k=2)

        assert [m.id for m in matches] == ["near", "mid"]
        assert matches[0].distance == pytest.approx(0.1, abs=1e-5)

    @pytest.mark.asyncio
    async def test_corpora_are_isolated(self):
        store = InMemoryVectorStore()
        await store.upsert("a", "r1", axis_vector(), {})

        assert await store.query("b", axis_vector(), k=5) == []

    @pytest.mark.asyncio
    async def test_scope_filter(self):
        store = InMemoryVectorStore()
        await store.upsert("docs", "p1", axis_vector(), {"project_id": "p1"})
        await store.upsert("docs", "p2", axis_vector(), {"project_id": "p2"})

        matches = await store.query("docs", axis_vector(), k=5, scope_filter={"project_id": "p2"})

        assert [m.id for m in matches] == ["p2"]

    @pytest.mark.asyncio
    async def test_upsert_replaces(self):
        store = InMemoryVectorStore()
        await store.upsert("docs", "r1", unit_vector(0.1), {"v": 1})
        await store.upsert("docs", "r1", unit_vector(0.9), {"v": 2})

        matches = await store.query("docs", axis_vector(), k=5)

        assert len(matches) == 1
        assert matches[0].payload == {"v": 2}

    @pytest.mark.asyncio
    async def test_delete_and_delete_by_filter(self):
        store = InMemoryVectorStore()
        for i in range(3):
            await store.upsert("docs", f"d1:{i}", axis_vector(), {"document_id": "d1"})
        await store.upsert("docs", "d2:0", axis_vector(), {"document_id": "d2"})

        assert await store.delete("docs", ["d2:0", "missing"]) == 1
        assert await store.delete_by_filter("docs", {"document_id": "d1"}) == 3
        assert (await store.get_stats())["total_vectors"] == 0

    @pytest.mark.asyncio
    async def test_dimension_mismatch_raises(self):
        store = InMemoryVectorStore()
        await store.upsert("docs", "r1", [1.0, 0.0, 0.0], {})

        with pytest.raises(ValueError):
            await store.query("docs", [1.0, 0.0], k=1)

    @pytest.mark.asyncio
    async def test_empty_vector_rejected(self):
        with pytest.raises(ValueError):
            await InMemoryVectorStore().upsert("docs", "r1", [], {})


class TestVectorStoreFactory:

    def test_creates_memory_store(self):
        store = VectorStoreFactory.create_store(VectorStoreConfig(store_type=VectorStoreType.MEMORY))

        assert isinstance(store, InMemoryVectorStore)

    def test_creates_pgvector_store_without_connecting(self):
        config = VectorStoreConfig(
            store_type=VectorStoreType.PGVECTOR,
            connection_params={"database_url": "postgresql+asyncpg://u:p@localhost/db"},
            dimension=8,
        )

        store = VectorStoreFactory.create_store(config)

        assert isinstance(store, PgVectorStore)
        assert store.dimension == 8
        assert store.table == "memory_vectors"

    def test_from_settings_uses_memory_in_tests(self):
        assert isinstance(VectorStoreFactory.from_settings(), InMemoryVectorStore)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            VectorStoreFactory.create_store(VectorStoreConfig(store_type="faiss"))
