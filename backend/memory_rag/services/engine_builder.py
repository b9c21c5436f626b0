from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from memory_rag.config.vocabulary import QueryVocabulary, get_vocabulary
from memory_rag.context_engine.context_blender import ContextBlender
from memory_rag.context_engine.contradiction_guard import ContradictionGuard
from memory_rag.core.logging_config import setup_logging_from_settings
from .conversation_memory_service import ConversationMemoryService
from .document_ingestion import DocumentIngestionService
from .embedding_service import EmbeddingServiceInterface, get_embedding_service
from .llm_service_interface import LLMServiceInterface
from .query_classifier import QueryClassifier
from .query_router import QueryRouter
from .rag_service import ConversationalRAGService
from .strategy_selector import StrategySelector
from .vector_retrieval import VectorRetrieval
from .vector_store_base import VectorStoreFactory, VectorStoreInterface


logger = logging.getLogger("memory_rag.engine.builder")


@dataclass
class MemoryEngine:
    """Wired read and write paths sharing one embedder and one vector store"""
    embedding_service: EmbeddingServiceInterface
    vector_store: VectorStoreInterface
    retrieval: VectorRetrieval
    router: QueryRouter
    memory: ConversationMemoryService
    ingestion: DocumentIngestionService
    rag_service: ConversationalRAGService

    async def initialize(self) -> bool:
        return await self.vector_store.initialize()


def create_memory_engine(
    *,
    embedding_service: Optional[EmbeddingServiceInterface] = None,
    vector_store: Optional[VectorStoreInterface] = None,
    llm_service: Optional[LLMServiceInterface] = None,
    vocabulary: Optional[QueryVocabulary] = None,
    classifier: Optional[QueryClassifier] = None,
    selector: Optional[StrategySelector] = None,
    blender: Optional[ContextBlender] = None,
    configure_logging: bool = False,
) -> MemoryEngine:
    if configure_logging:
        setup_logging_from_settings()

    embedding_service = embedding_service or get_embedding_service()
    vector_store = vector_store or VectorStoreFactory.from_settings()
    vocabulary = vocabulary or get_vocabulary()

    if llm_service is None:
        from .openai_service import OpenAICompletionService

        llm_service = OpenAICompletionService()

    retrieval = VectorRetrieval(embedding_service, vector_store)
    router = QueryRouter(
        retrieval,
        classifier=classifier or QueryClassifier(vocabulary),
        selector=selector or StrategySelector(),
        guard=ContradictionGuard(vocabulary.access_denial_markers),
        blender=blender or ContextBlender(),
    )
    memory = ConversationMemoryService(embedding_service, vector_store)

    logger.info(
        "Memory engine created: embedder=%s store=%s llm=%s",
        type(embedding_service).__name__,
        type(vector_store).__name__,
        llm_service.get_model_name(),
    )

    return MemoryEngine(
        embedding_service=embedding_service,
        vector_store=vector_store,
        retrieval=retrieval,
        router=router,
        memory=memory,
        ingestion=DocumentIngestionService(embedding_service, vector_store),
        rag_service=ConversationalRAGService(router, llm_service, memory),
    )


@lru_cache(maxsize=1)
def get_memory_engine() -> MemoryEngine:
    return create_memory_engine(configure_logging=True)
