"""
In-process vector store backed by numpy.

Brute-force cosine search; suitable for tests, demos and small single-process
deployments. Contents are lost when the process exits.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..vector_store_base import VectorMatch, VectorStoreConfig, VectorStoreInterface, VectorStoreType


class InMemoryVectorStore(VectorStoreInterface):
    """Dict-of-corpora store with exact cosine distance"""

    def __init__(self, config: Optional[VectorStoreConfig] = None):
        self.config = config or VectorStoreConfig(store_type=VectorStoreType.MEMORY)
        self._corpora: Dict[str, Dict[str, Tuple[np.ndarray, Dict[str, Any]]]] = {}

    async def initialize(self) -> bool:
        return True

    async def upsert(
        self,
        corpus_id: str,
        record_id: str,
        vector: Sequence[float],
        payload: Dict[str, Any]
    ) -> None:
        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1 or array.size == 0:
            raise ValueError("vector must be a non-empty 1-D sequence")

        self._corpora.setdefault(corpus_id, {})[record_id] = (array, dict(payload))

    async def query(
        self,
        corpus_id: str,
        query_vector: Sequence[float],
        k: int,
        scope_filter: Optional[Dict[str, Any]] = None
    ) -> List[VectorMatch]:
        records = self._corpora.get(corpus_id)
        if not records or k <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        query_norm = np.linalg.norm(query)

        matches = []
        for record_id, (vector, payload) in records.items():
            if not self._matches(payload, scope_filter):
                continue
            if vector.shape != query.shape:
                raise ValueError(
                    f"Dimension mismatch in corpus {corpus_id}: "
                    f"query has {query.size}, record {record_id} has {vector.size}"
                )

            denominator = query_norm * np.linalg.norm(vector)
            similarity = float(np.dot(query, vector) / denominator) if denominator else 0.0
            matches.append(VectorMatch(id=record_id, distance=1.0 - similarity, payload=dict(payload)))

        matches.sort(key=lambda m: m.distance)
        return matches[:k]

    async def delete(self, corpus_id: str, record_ids: Sequence[str]) -> int:
        records = self._corpora.get(corpus_id, {})
        removed = 0
        for record_id in record_ids:
            if records.pop(record_id, None) is not None:
                removed += 1
        return removed

    async def delete_by_filter(self, corpus_id: str, filters: Dict[str, Any]) -> int:
        records = self._corpora.get(corpus_id, {})
        doomed = [rid for rid, (_, payload) in records.items() if self._matches(payload, filters)]
        for record_id in doomed:
            del records[record_id]
        return len(doomed)

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "store_type": VectorStoreType.MEMORY.value,
            "corpora": {name: len(records) for name, records in self._corpora.items()},
            "total_vectors": sum(len(records) for records in self._corpora.values()),
        }

    async def health_check(self) -> bool:
        return True

    @staticmethod
    def _matches(payload: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        if not filters:
            return True
        return all(str(payload.get(key)) == str(value) for key, value in filters.items())
