"""
PostgreSQL with pgvector extension implementation for vector storage.

Both corpora live in one table keyed by (corpus_id, record_id); payloads are
JSONB so scope filters become a containment test.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..vector_store_base import VectorMatch, VectorStoreConfig, VectorStoreInterface

logger = logging.getLogger(__name__)


class PgVectorStore(VectorStoreInterface):
    """PostgreSQL with pgvector extension vector store implementation"""

    def __init__(self, config: VectorStoreConfig, engine: Optional[AsyncEngine] = None):
        self.config = config
        self.dimension = config.dimension
        self.table = config.table_name
        self._engine = engine
        self._session_factory: Optional[async_sessionmaker] = None
        self._initialized = False

    def _sessions(self) -> async_sessionmaker:
        if self._session_factory is None:
            if self._engine is None:
                self._engine = create_async_engine(
                    self.config.connection_params["database_url"],
                    future=True,
                    pool_pre_ping=True,
                    pool_size=self.config.connection_params.get("pool_size", 10),
                    max_overflow=self.config.connection_params.get("max_overflow", 20),
                )
            self._session_factory = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        return self._session_factory

    async def initialize(self) -> bool:
        """Enable pgvector and create the vectors table"""
        if self._initialized:
            return True

        async with self._sessions()() as session:
            try:
                await session.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

                await session.execute(text(f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        corpus_id TEXT NOT NULL,
                        record_id TEXT NOT NULL,
                        embedding vector({self.dimension}) NOT NULL,
                        payload JSONB NOT NULL DEFAULT '{{}}',
                        created_at TIMESTAMP DEFAULT NOW(),
                        PRIMARY KEY (corpus_id, record_id)
                    )
                """))

                # Vector similarity index using HNSW
                await session.execute(text(f"""
                    CREATE INDEX IF NOT EXISTS idx_{self.table}_embedding_cosine
                    ON {self.table} USING hnsw (embedding vector_cosine_ops)
                """))

                # GIN index for payload filters
                await session.execute(text(f"""
                    CREATE INDEX IF NOT EXISTS idx_{self.table}_payload
                    ON {self.table} USING gin(payload)
                """))

                await session.commit()
                self._initialized = True
                return True

            except Exception as e:
                await session.rollback()
                logger.error("Error initializing pgvector store: %s", e)
                return False

    async def upsert(
        self,
        corpus_id: str,
        record_id: str,
        vector: Sequence[float],
        payload: Dict[str, Any]
    ) -> None:
        """Insert or replace one record"""
        if not self._initialized:
            await self.initialize()

        async with self._sessions()() as session:
            try:
                await session.execute(text(f"""
                    INSERT INTO {self.table} (corpus_id, record_id, embedding, payload)
                    VALUES (:corpus_id, :record_id, CAST(:embedding AS vector), CAST(:payload AS JSONB))
                    ON CONFLICT (corpus_id, record_id)
                    DO UPDATE SET embedding = EXCLUDED.embedding, payload = EXCLUDED.payload
                """), {
                    "corpus_id": corpus_id,
                    "record_id": record_id,
                    "embedding": _vector_literal(vector),
                    "payload": json.dumps(payload, default=str),
                })
                await session.commit()

            except Exception as e:
                await session.rollback()
                logger.error("Error upserting %s/%s into pgvector: %s", corpus_id, record_id, e)
                raise

    async def query(
        self,
        corpus_id: str,
        query_vector: Sequence[float],
        k: int,
        scope_filter: Optional[Dict[str, Any]] = None
    ) -> List[VectorMatch]:
        """Nearest neighbours by cosine distance"""
        if not self._initialized:
            await self.initialize()

        sql = f"""
            SELECT record_id, payload, embedding <=> CAST(:query_embedding AS vector) AS distance
            FROM {self.table}
            WHERE corpus_id = :corpus_id
        """
        params: Dict[str, Any] = {
            "query_embedding": _vector_literal(query_vector),
            "corpus_id": corpus_id,
            "k": k,
        }

        if scope_filter:
            sql += " AND payload @> CAST(:scope_filter AS JSONB)"
            params["scope_filter"] = json.dumps({key: str(value) for key, value in scope_filter.items()})

        sql += " ORDER BY distance LIMIT :k"

        async with self._sessions()() as session:
            result = await session.execute(text(sql), params)
            rows = result.fetchall()

        return [
            VectorMatch(id=row.record_id, distance=float(row.distance), payload=row.payload or {})
            for row in rows
        ]

    async def delete(self, corpus_id: str, record_ids: Sequence[str]) -> int:
        """Delete records by id"""
        if not record_ids:
            return 0
        if not self._initialized:
            await self.initialize()

        async with self._sessions()() as session:
            try:
                result = await session.execute(text(f"""
                    DELETE FROM {self.table}
                    WHERE corpus_id = :corpus_id AND record_id = ANY(:record_ids)
                """), {"corpus_id": corpus_id, "record_ids": list(record_ids)})
                await session.commit()
                return result.rowcount or 0

            except Exception as e:
                await session.rollback()
                logger.error("Error deleting vectors from pgvector: %s", e)
                raise

    async def delete_by_filter(self, corpus_id: str, filters: Dict[str, Any]) -> int:
        """Delete records whose payload contains all filter values"""
        if not self._initialized:
            await self.initialize()

        async with self._sessions()() as session:
            try:
                result = await session.execute(text(f"""
                    DELETE FROM {self.table}
                    WHERE corpus_id = :corpus_id AND payload @> CAST(:filters AS JSONB)
                """), {
                    "corpus_id": corpus_id,
                    "filters": json.dumps({key: str(value) for key, value in filters.items()}),
                })
                await session.commit()
                return result.rowcount or 0

            except Exception as e:
                await session.rollback()
                logger.error("Error deleting vectors by filter from pgvector: %s", e)
                raise

    async def get_stats(self) -> Dict[str, Any]:
        """Get vector store statistics"""
        if not self._initialized:
            await self.initialize()

        async with self._sessions()() as session:
            try:
                result = await session.execute(text(f"""
                    SELECT corpus_id, COUNT(*) AS total
                    FROM {self.table}
                    GROUP BY corpus_id
                """))
                corpora = {row.corpus_id: row.total for row in result.fetchall()}

                size_result = await session.execute(text(f"""
                    SELECT pg_size_pretty(pg_total_relation_size('{self.table}')) AS table_size
                """))
                size_stats = size_result.fetchone()

                return {
                    "status": "available",
                    "store_type": "pgvector",
                    "corpora": corpora,
                    "total_vectors": sum(corpora.values()),
                    "table_size": size_stats.table_size,
                    "dimension": self.dimension,
                }

            except Exception as e:
                logger.error("Error getting pgvector stats: %s", e)
                return {"status": "error", "error": str(e)}

    async def health_check(self) -> bool:
        """Check if pgvector is healthy"""
        try:
            async with self._sessions()() as session:
                await session.execute(text("SELECT 1"))
                await session.execute(text("SELECT '[1,2,3]'::vector <=> '[3,2,1]'::vector"))
            return True

        except Exception as e:
            logger.warning("pgvector health check failed: %s", e)
            return False


def _vector_literal(vector: Sequence[float]) -> str:
    return f"[{','.join(map(str, vector))}]"
