"""
Conversation Memory - Writes completed turn pairs into the conversations corpus
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from memory_rag.context_engine.models import Corpus, MemoryRecord
from .embedding_service import EmbeddingServiceInterface
from .vector_store_base import VectorStoreInterface

logger = logging.getLogger(__name__)


def format_pair(user_content: str, assistant_content: str) -> str:
    return f"User: {user_content}\n\nAssistant: {assistant_content}"


def conversation_thread_id(project_id: str, conversation_id: str) -> str:
    """Stable thread id shared by every pair of one conversation"""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{project_id}:{conversation_id}"))


class ConversationMemoryService:
    def __init__(self, embedding_service: EmbeddingServiceInterface, vector_store: VectorStoreInterface):
        self.embedding_service = embedding_service
        self.vector_store = vector_store

    async def store_conversation_pair(
        self,
        conversation_id: str,
        project_id: str,
        user_content: str,
        assistant_content: str,
        thread_id: Optional[str] = None,
        user_message_id: Optional[str] = None,
        assistant_message_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> MemoryRecord:
        """
        Embed and store one user/assistant exchange.

        Raises:
            ValueError: both sides of the exchange are empty
            EmbeddingUnavailable: the pair could not be embedded
        """
        if not (user_content or "").strip() and not (assistant_content or "").strip():
            raise ValueError("Cannot store an empty conversation pair")

        pair_content = format_pair(user_content, assistant_content)
        embedding = await self.embedding_service.embed(pair_content)

        record = MemoryRecord(
            thread_id=thread_id or conversation_thread_id(project_id, conversation_id),
            conversation_id=conversation_id,
            project_id=project_id,
            pair_content=pair_content,
            embedding=tuple(embedding),
            timestamp=timestamp or datetime.now(timezone.utc),
            pair_id=assistant_message_id or uuid.uuid4().hex,
        )

        payload: Dict[str, Any] = record.payload()
        if user_message_id is not None:
            payload["user_message_id"] = user_message_id
        if assistant_message_id is not None:
            payload["assistant_message_id"] = assistant_message_id

        await self.vector_store.upsert(Corpus.CONVERSATIONS.value, record.record_id, record.embedding, payload)

        logger.info(
            "Stored conversation pair %s (%d chars)",
            record.record_id,
            len(pair_content),
            extra={"conversation_id": conversation_id, "project_id": project_id},
        )
        return record
