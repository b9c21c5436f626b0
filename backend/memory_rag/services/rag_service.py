import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from memory_rag.context_engine.models import ContextSource, QueryType, RetrievalMetrics
from memory_rag.core.config import settings
from memory_rag.core.exceptions import CompletionUnavailable
from .conversation_memory_service import ConversationMemoryService
from .llm_service_interface import ChatTurn, LLMServiceInterface, TokenUsage
from .query_router import QueryRouter, RoutedContext

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant with long-term memory of this project's "
    "conversations and uploaded files."
)

TYPE_INSTRUCTIONS = {
    QueryType.KNOWLEDGE: (
        "Answer using the uploaded file content above. Cite the file name when you "
        "rely on it. If the files do not contain the answer, say so."
    ),
    QueryType.CONVERSATIONAL: (
        "Answer using the context from earlier conversations above. Refer to what "
        "was said before when it is relevant."
    ),
    QueryType.HYBRID: (
        "Combine the uploaded file content and the earlier conversation context "
        "above into one coherent answer."
    ),
}


@dataclass
class RAGResponse:
    text: str
    model: str
    usage: TokenUsage
    query_analysis: Dict[str, Any]
    sources: List[ContextSource] = field(default_factory=list)
    metrics: RetrievalMetrics = field(default_factory=RetrievalMetrics)
    context_items_used: int = 0
    contradiction_detected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.text,
            "model": self.model,
            "token_usage": self.usage.to_dict(),
            "query_analysis": self.query_analysis,
            "sources": [source.to_dict() for source in self.sources],
            "rag_metrics": self.metrics.to_dict(),
            "context_items_used": self.context_items_used,
            "contradiction_detected": self.contradiction_detected,
        }


class ConversationalRAGService:
    """Retrieval-augmented reply generation with conversational memory"""

    def __init__(
        self,
        router: QueryRouter,
        llm_service: LLMServiceInterface,
        memory_service: Optional[ConversationMemoryService] = None,
        completion_timeout: Optional[float] = None,
    ):
        self.router = router
        self.llm_service = llm_service
        self.memory_service = memory_service
        self.completion_timeout = (
            completion_timeout if completion_timeout is not None else settings.COMPLETION_TIMEOUT_SECONDS
        )

    async def generate_response(
        self,
        query: str,
        history: Optional[Sequence[Any]] = None,
        project_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
        extra_instructions: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RAGResponse:
        """
        Generate a reply to ``query`` with retrieved memory in the prompt.

        Retrieval problems never fail the request; the reply is generated with
        whatever context could be gathered. The new turn pair is stored after
        the reply, best-effort.

        Raises:
            CompletionUnavailable: the completion call failed or timed out
        """
        history = list(history or [])
        routed = await self.router.route(
            query,
            history=history,
            project_id=project_id,
            conversation_id=conversation_id,
            now=now,
        )

        messages = self._build_messages(query, history, routed, extra_instructions)

        try:
            completion = await asyncio.wait_for(
                self.llm_service.complete(
                    messages,
                    system_prompt=system_prompt or DEFAULT_SYSTEM_PROMPT,
                    temperature=settings.COMPLETION_TEMPERATURE,
                    max_tokens=settings.COMPLETION_MAX_TOKENS,
                ),
                timeout=self.completion_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Completion timed out after %ss", self.completion_timeout)
            raise CompletionUnavailable(
                f"Completion timed out after {self.completion_timeout}s"
            ) from e

        if conversation_id is not None and project_id is not None:
            await self._store_pair(conversation_id, project_id, query, completion.text)

        return RAGResponse(
            text=completion.text,
            model=completion.model,
            usage=completion.usage,
            query_analysis=routed.query_analysis(),
            sources=list(routed.blended.sources),
            metrics=routed.metrics,
            context_items_used=routed.blended.items_used,
            contradiction_detected=routed.guard_tripped,
        )

    def _build_messages(
        self,
        query: str,
        history: List[Any],
        routed: RoutedContext,
        extra_instructions: Optional[str],
    ) -> List[ChatTurn]:
        messages = [
            ChatTurn(role=role, content=content)
            for role, content in (_role_and_content(turn) for turn in self.router.recent_turns(history))
            if role in ("user", "assistant") and content
        ]

        blended = routed.blended
        parts = []
        if not blended.is_empty:
            parts.append(blended.text)
            if not blended.guard_tripped:
                parts.append(TYPE_INSTRUCTIONS[routed.query_context.type])
        if extra_instructions:
            parts.append(extra_instructions)
        parts.append(f"USER QUESTION: {query}" if parts else query)

        messages.append(ChatTurn(role="user", content="\n\n".join(parts)))
        return messages

    async def _store_pair(self, conversation_id: str, project_id: str, query: str, reply: str) -> None:
        if self.memory_service is None or not reply.strip():
            return
        try:
            await self.memory_service.store_conversation_pair(
                conversation_id=conversation_id,
                project_id=project_id,
                user_content=query,
                assistant_content=reply,
            )
        except Exception as e:
            logger.warning(
                "Could not store conversation pair: %s",
                e,
                extra={"conversation_id": conversation_id, "project_id": project_id},
            )


def _role_and_content(turn: Any):
    if isinstance(turn, dict):
        return turn.get("role"), turn.get("content")
    return getattr(turn, "role", None), getattr(turn, "content", None)
