"""
Vector Retrieval - Similarity search over one memory corpus

Embeds the query, asks the vector store for nearest neighbours, converts
cosine distance into similarity and applies the threshold. One instance
serves every corpus; calls share no state and may run concurrently.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from memory_rag.context_engine.models import (
    Corpus,
    ResultMetadata,
    RetrievalResult,
    SearchScope,
)
from memory_rag.core.exceptions import EmbeddingUnavailable, RetrievalUnavailable
from .embedding_service import EmbeddingServiceInterface
from .vector_store_base import VectorMatch, VectorStoreInterface

logger = logging.getLogger(__name__)


def build_scope_filter(
    corpus: Corpus,
    scope: SearchScope,
    project_id: Optional[str] = None,
    conversation_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Payload filter restricting a corpus search to the requested scope.

    Documents belong to projects, not conversations, so a
    current-conversation scope still searches the whole project for them.
    """
    if scope in (SearchScope.GLOBAL, SearchScope.CROSS_PROJECT):
        return None

    filters: Dict[str, Any] = {}
    if project_id is not None:
        filters["project_id"] = project_id
    if (
        scope == SearchScope.CURRENT_CONVERSATION
        and corpus == Corpus.CONVERSATIONS
        and conversation_id is not None
    ):
        filters["conversation_id"] = conversation_id

    return filters or None


class VectorRetrieval:
    """Query embedding + nearest-neighbour search + threshold filter"""

    def __init__(
        self,
        embedding_service: EmbeddingServiceInterface,
        vector_store: VectorStoreInterface,
        timeout: Optional[float] = None,
    ):
        if timeout is None:
            from memory_rag.core.config import settings

            timeout = settings.RETRIEVAL_TIMEOUT_SECONDS

        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.timeout = timeout

    async def search(
        self,
        query_text: str,
        corpus: Corpus,
        max_results: int,
        similarity_threshold: float,
        scope_filter: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievalResult]:
        """
        Search one corpus.

        Returns:
            Results with similarity >= threshold, best first, at most max_results

        Raises:
            RetrievalUnavailable: embedding or store failed, or the call timed out
        """
        if not query_text or not query_text.strip() or max_results <= 0:
            return []

        try:
            return await asyncio.wait_for(
                self._search(query_text, corpus, max_results, similarity_threshold, scope_filter),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise RetrievalUnavailable(
                f"Search in {corpus.value} timed out after {self.timeout}s", corpus=corpus.value
            ) from e
        except EmbeddingUnavailable as e:
            raise RetrievalUnavailable(
                f"Query embedding failed: {e.message}", corpus=corpus.value
            ) from e
        except RetrievalUnavailable:
            raise
        except Exception as e:
            raise RetrievalUnavailable(
                f"Vector search in {corpus.value} failed: {e}", corpus=corpus.value
            ) from e

    async def search_or_empty(
        self,
        query_text: str,
        corpus: Corpus,
        max_results: int,
        similarity_threshold: float,
        scope_filter: Optional[Dict[str, Any]] = None,
    ) -> Tuple[List[RetrievalResult], Optional[str]]:
        """
        Search, degrading any failure to an empty result.

        Returns:
            (results, error message or None)
        """
        try:
            results = await self.search(query_text, corpus, max_results, similarity_threshold, scope_filter)
            return results, None
        except RetrievalUnavailable as e:
            logger.warning(
                "Retrieval unavailable, continuing without %s: %s",
                corpus.value,
                e.message,
                extra={"corpus": corpus.value},
            )
            return [], e.message

    async def _search(
        self,
        query_text: str,
        corpus: Corpus,
        max_results: int,
        similarity_threshold: float,
        scope_filter: Optional[Dict[str, Any]],
    ) -> List[RetrievalResult]:
        start_time = time.time()

        query_vector = await self.embedding_service.embed(query_text)
        matches = await self.vector_store.query(corpus.value, query_vector, max_results, scope_filter)

        results = []
        for match in matches:
            result = self._to_result(match, corpus)
            if result.similarity >= similarity_threshold:
                results.append(result)

        results.sort(key=lambda r: r.similarity, reverse=True)
        results = results[:max_results]

        logger.info(
            "Found %d/%d results in %s above %.2f (%.1fms)",
            len(results),
            len(matches),
            corpus.value,
            similarity_threshold,
            (time.time() - start_time) * 1000,
            extra={"corpus": corpus.value},
        )
        return results

    @staticmethod
    def _to_result(match: VectorMatch, corpus: Corpus) -> RetrievalResult:
        similarity = min(max(1.0 - float(match.distance), 0.0), 1.0)
        payload = match.payload or {}

        if corpus == Corpus.DOCUMENTS:
            origin_id = str(payload.get("document_id") or match.id)
        else:
            origin_id = str(payload.get("conversation_id") or match.id)

        return RetrievalResult(
            source_type=corpus.source_type,
            content=str(payload.get("content", "")),
            similarity=similarity,
            origin_id=origin_id,
            metadata=ResultMetadata.from_payload(payload),
        )
