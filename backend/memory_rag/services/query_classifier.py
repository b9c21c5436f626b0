"""
Query Classifier - Decides which memory a query is reaching for

Heuristic classification of a user message into:
- CONVERSATIONAL: recall of earlier dialogue ("what did we say yesterday")
- KNOWLEDGE: content of uploaded files ("what does the PDF say about X")
- HYBRID: both, or a request to continue/expand on earlier material

No LLM call is involved; the decision is a marker count over the
configured vocabulary, so the same query always classifies the same way.
"""

import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from memory_rag.config.vocabulary import DEFAULT_VOCABULARY, QueryVocabulary
from memory_rag.context_engine.models import (
    QueryContext,
    QueryIntent,
    QueryType,
    SearchScope,
    TemporalContext,
)

logger = logging.getLogger(__name__)


INTENT_BY_TYPE = {
    QueryType.CONVERSATIONAL: QueryIntent.RECALL_CONVERSATION,
    QueryType.KNOWLEDGE: QueryIntent.SEARCH_DOCUMENTS,
    QueryType.HYBRID: QueryIntent.CONTEXTUAL_BLEND,
}


class QueryClassifier:
    """Marker-count classifier for retrieval routing"""

    def __init__(self, vocabulary: Optional[QueryVocabulary] = None):
        """
        Initialize query classifier.

        Args:
            vocabulary: Marker lists to match against (defaults to the built-in
                        Spanish/English vocabulary)
        """
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY
        self._punctuation = re.compile(r"[^\w\s]")

    def classify(self, query: str, history: Optional[Sequence[Any]] = None) -> QueryContext:
        """
        Classify a user query.

        Args:
            query: Raw user message
            history: Recent turns; accepted for interface stability, not used
                     by the heuristic

        Returns:
            QueryContext with type, intent, scope, confidence and keywords
        """
        query_lower = (query or "").lower()

        conversational_hits = self._count(query_lower, self.vocabulary.conversational_markers)
        knowledge_hits = self._count(query_lower, self.vocabulary.knowledge_markers)
        hybrid_hits = self._count(query_lower, self.vocabulary.hybrid_markers)

        query_type, ambiguous = self._decide_type(conversational_hits, knowledge_hits, hybrid_hits)
        intent = INTENT_BY_TYPE[query_type]
        scope = self._detect_scope(query_lower)
        keywords = self.extract_keywords(query_lower)
        confidence = self._confidence(keywords, query_type, intent)

        temporal_context = None
        if self._count(query_lower, self.vocabulary.temporal_markers):
            temporal_context = TemporalContext(relative=True)

        if ambiguous:
            logger.info(
                "Ambiguous query classification, defaulting to knowledge "
                "(conversational=%d, knowledge=%d)",
                conversational_hits,
                knowledge_hits,
                extra={"query_type": query_type.value},
            )

        if history:
            logger.debug("Classifier received %d history turns", len(history))

        return QueryContext(
            type=query_type,
            intent=intent,
            scope=scope,
            confidence=confidence,
            keywords=keywords,
            temporal_context=temporal_context,
        )

    def is_ambiguous(self, query: str) -> bool:
        """True when the query falls through to the knowledge default."""
        query_lower = (query or "").lower()
        _, ambiguous = self._decide_type(
            self._count(query_lower, self.vocabulary.conversational_markers),
            self._count(query_lower, self.vocabulary.knowledge_markers),
            self._count(query_lower, self.vocabulary.hybrid_markers),
        )
        return ambiguous

    def extract_keywords(self, text: str) -> Tuple[str, ...]:
        """Lowercased content words, first-seen order, capped."""
        cleaned = self._punctuation.sub(" ", text.lower())
        stop_words = set(self.vocabulary.stop_words)

        keywords: List[str] = []
        for token in cleaned.split():
            if len(token) <= 2 or token in stop_words or token in keywords:
                continue
            keywords.append(token)
            if len(keywords) >= self.vocabulary.max_keywords:
                break

        return tuple(keywords)

    @staticmethod
    def _count(text: str, markers: Sequence[str]) -> int:
        return sum(1 for marker in markers if marker in text)

    @staticmethod
    def _decide_type(conversational: int, knowledge: int, hybrid: int) -> Tuple[QueryType, bool]:
        if hybrid > 0:
            return QueryType.HYBRID, False
        if conversational > 0 and knowledge > 0:
            return QueryType.HYBRID, False
        if conversational > knowledge:
            return QueryType.CONVERSATIONAL, False
        if knowledge > conversational:
            return QueryType.KNOWLEDGE, False
        # Tie can only be zero/zero here
        return QueryType.KNOWLEDGE, True

    def _detect_scope(self, query_lower: str) -> SearchScope:
        if self._count(query_lower, self.vocabulary.conversation_scope_markers):
            return SearchScope.CURRENT_CONVERSATION
        if self._count(query_lower, self.vocabulary.global_scope_markers):
            return SearchScope.GLOBAL
        if self._count(query_lower, self.vocabulary.cross_project_scope_markers):
            return SearchScope.CROSS_PROJECT
        return SearchScope.CURRENT_PROJECT

    @staticmethod
    def _confidence(keywords: Tuple[str, ...], query_type: QueryType, intent: QueryIntent) -> float:
        confidence = 0.5
        if len(keywords) > 2:
            confidence += 0.2
        if query_type != QueryType.HYBRID:
            confidence += 0.2
        if intent != QueryIntent.GENERAL_QUESTION:
            confidence += 0.1
        return round(min(confidence, 1.0), 2)
