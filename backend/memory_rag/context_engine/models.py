"""
Shared data contracts for the retrieval engine.

Everything here is created per request (or once at ingestion) and never
mutated afterwards, hence the frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class QueryType(str, Enum):
    CONVERSATIONAL = "conversational"
    KNOWLEDGE = "knowledge"
    HYBRID = "hybrid"


class QueryIntent(str, Enum):
    RECALL_CONVERSATION = "recall_conversation"
    SEARCH_DOCUMENTS = "search_documents"
    CONTEXTUAL_BLEND = "contextual_blend"
    GENERAL_QUESTION = "general_question"


class SearchScope(str, Enum):
    CURRENT_CONVERSATION = "current_conversation"
    CURRENT_PROJECT = "current_project"
    CROSS_PROJECT = "cross_project"
    GLOBAL = "global"


class SourceType(str, Enum):
    CONVERSATION = "conversation"
    DOCUMENT = "document"


class Corpus(str, Enum):
    """Vector store collections searched by the engine"""
    CONVERSATIONS = "conversation_pairs"
    DOCUMENTS = "document_chunks"

    @property
    def source_type(self) -> SourceType:
        if self is Corpus.CONVERSATIONS:
            return SourceType.CONVERSATION
        return SourceType.DOCUMENT


@dataclass(frozen=True)
class TemporalContext:
    relative: bool
    specific: Optional[datetime] = None


@dataclass(frozen=True)
class QueryContext:
    """Classification of a single user query"""
    type: QueryType
    intent: QueryIntent
    scope: SearchScope
    confidence: float
    keywords: Tuple[str, ...] = ()
    temporal_context: Optional[TemporalContext] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "intent": self.intent.value,
            "scope": self.scope.value,
            "confidence": self.confidence,
            "keywords": list(self.keywords),
            "temporal": self.temporal_context is not None,
        }


@dataclass(frozen=True)
class SearchStrategy:
    use_conversational: bool
    use_knowledge: bool
    conversational_weight: float
    knowledge_weight: float
    max_results: int
    similarity_threshold: float

    @property
    def enabled_corpora(self) -> Tuple[Corpus, ...]:
        corpora = []
        if self.use_conversational:
            corpora.append(Corpus.CONVERSATIONS)
        if self.use_knowledge:
            corpora.append(Corpus.DOCUMENTS)
        return tuple(corpora)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "use_conversational": self.use_conversational,
            "use_knowledge": self.use_knowledge,
            "conversational_weight": self.conversational_weight,
            "knowledge_weight": self.knowledge_weight,
            "max_results": self.max_results,
            "similarity_threshold": self.similarity_threshold,
        }


@dataclass(frozen=True)
class MemoryRecord:
    """One completed user/assistant turn pair in the conversational corpus"""
    thread_id: str
    conversation_id: str
    project_id: str
    pair_content: str
    embedding: Tuple[float, ...]
    timestamp: datetime
    pair_id: str

    @property
    def record_id(self) -> str:
        return f"{self.conversation_id}:{self.pair_id}"

    def payload(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "conversation_id": self.conversation_id,
            "project_id": self.project_id,
            "content": self.pair_content,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class DocumentChunkRecord:
    """One embedded chunk of an uploaded document"""
    document_id: str
    chunk_index: int
    content: str
    embedding: Tuple[float, ...]
    total_chunks: int
    project_id: str
    filename: str
    section: Optional[str] = None
    page: Optional[int] = None

    @property
    def record_id(self) -> str:
        return f"{self.document_id}:{self.chunk_index}"

    def payload(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "project_id": self.project_id,
            "filename": self.filename,
            "section": self.section,
            "page": self.page,
            "content": self.content,
        }


@dataclass(frozen=True)
class ResultMetadata:
    """Known optional provenance fields; anything else lands in ``extra``"""
    filename: Optional[str] = None
    chunk_index: Optional[int] = None
    total_chunks: Optional[int] = None
    section: Optional[str] = None
    page: Optional[int] = None
    project_id: Optional[str] = None
    conversation_id: Optional[str] = None
    thread_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = (
        "filename", "chunk_index", "total_chunks", "section", "page",
        "project_id", "conversation_id", "thread_id", "timestamp",
    )

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ResultMetadata":
        timestamp = payload.get("timestamp")
        if isinstance(timestamp, str):
            try:
                timestamp = datetime.fromisoformat(timestamp)
            except ValueError:
                timestamp = None

        extra = {
            key: value
            for key, value in payload.items()
            if key not in cls.KNOWN_KEYS and key != "content"
        }

        return cls(
            filename=payload.get("filename"),
            chunk_index=_optional_int(payload.get("chunk_index")),
            total_chunks=_optional_int(payload.get("total_chunks")),
            section=payload.get("section"),
            page=_optional_int(payload.get("page")),
            project_id=_optional_str(payload.get("project_id")),
            conversation_id=_optional_str(payload.get("conversation_id")),
            thread_id=_optional_str(payload.get("thread_id")),
            timestamp=timestamp,
            extra=extra,
        )


@dataclass(frozen=True)
class RetrievalResult:
    source_type: SourceType
    content: str
    similarity: float
    origin_id: str
    metadata: ResultMetadata = field(default_factory=ResultMetadata)


@dataclass
class StrategyResults:
    """Per-corpus results for one request, before blending"""
    conversational: List[RetrievalResult] = field(default_factory=list)
    knowledge: List[RetrievalResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.conversational) + len(self.knowledge)

    def similarity_scores(self) -> List[float]:
        return [r.similarity for r in self.conversational] + [r.similarity for r in self.knowledge]


@dataclass(frozen=True)
class ContextBudget:
    """How many retrieved items may enter the prompt"""
    max_total_items: int = 8
    max_knowledge_items: int = 6
    max_conversational_items: int = 8

    @classmethod
    def for_strategy(
        cls,
        strategy: SearchStrategy,
        max_total_items: int = 8,
        max_knowledge_items: int = 6,
        max_conversational_items: int = 2,
    ) -> "ContextBudget":
        # The conversational cap only applies when documents compete for slots
        if strategy.use_conversational and strategy.use_knowledge:
            conversational_cap = max_conversational_items
        else:
            conversational_cap = max_total_items
        return cls(
            max_total_items=max_total_items,
            max_knowledge_items=max_knowledge_items,
            max_conversational_items=conversational_cap,
        )


@dataclass(frozen=True)
class ContextSource:
    type: SourceType
    id: str
    title: str
    relevance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "title": self.title,
            "relevance": round(self.relevance, 4),
        }


@dataclass(frozen=True)
class BlendedContext:
    text: str
    sources: Tuple[ContextSource, ...] = ()
    guard_tripped: bool = False
    knowledge_used: int = 0
    conversational_used: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.text

    @property
    def items_used(self) -> int:
        return self.knowledge_used + self.conversational_used


@dataclass
class RetrievalMetrics:
    """Per-request retrieval diagnostics, returned to the caller as metadata"""
    response_time_ms: float = 0.0
    threshold_used: Optional[float] = None
    similarity_scores: List[float] = field(default_factory=list)
    conversational_results: int = 0
    knowledge_results: int = 0
    corpus_timings_ms: Dict[str, float] = field(default_factory=dict)
    corpus_errors: Dict[str, str] = field(default_factory=dict)
    ambiguous_classification: bool = False

    @property
    def similarity_stats(self) -> Dict[str, float]:
        scores = self.similarity_scores
        if not scores:
            return {"avg": 0.0, "max": 0.0, "min": 0.0, "count": 0}
        return {
            "avg": sum(scores) / len(scores),
            "max": max(scores),
            "min": min(scores),
            "count": len(scores),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response_time_ms": self.response_time_ms,
            "threshold_used": self.threshold_used,
            "similarity_scores": self.similarity_scores[:10],
            "similarity_stats": self.similarity_stats,
            "conversational_results": self.conversational_results,
            "knowledge_results": self.knowledge_results,
            "corpus_timings_ms": dict(self.corpus_timings_ms),
            "corpus_errors": dict(self.corpus_errors),
            "ambiguous_classification": self.ambiguous_classification,
        }


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
