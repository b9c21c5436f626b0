"""
Strategy Selector - Maps a classified query to a retrieval plan
"""

from typing import Dict, Optional, Tuple

from memory_rag.context_engine.models import QueryContext, QueryType, SearchStrategy


# type -> (use_conversational, use_knowledge, conversational_weight, knowledge_weight, max_results)
STRATEGY_TABLE: Dict[QueryType, Tuple[bool, bool, float, float, int]] = {
    QueryType.CONVERSATIONAL: (True, False, 1.0, 0.0, 3),
    QueryType.KNOWLEDGE: (False, True, 0.0, 1.0, 5),
    QueryType.HYBRID: (True, True, 0.4, 0.6, 8),
}


class StrategySelector:
    """Pure lookup; low-confidence classifications get a relaxed threshold."""

    def __init__(
        self,
        default_threshold: Optional[float] = None,
        relaxed_threshold: Optional[float] = None,
        low_confidence_cutoff: Optional[float] = None,
    ):
        if default_threshold is None or relaxed_threshold is None or low_confidence_cutoff is None:
            from memory_rag.core.config import settings

            default_threshold = settings.DEFAULT_SIMILARITY_THRESHOLD if default_threshold is None else default_threshold
            relaxed_threshold = settings.RELAXED_SIMILARITY_THRESHOLD if relaxed_threshold is None else relaxed_threshold
            low_confidence_cutoff = settings.LOW_CONFIDENCE_CUTOFF if low_confidence_cutoff is None else low_confidence_cutoff

        self.default_threshold = default_threshold
        self.relaxed_threshold = relaxed_threshold
        self.low_confidence_cutoff = low_confidence_cutoff

    def select(self, context: QueryContext) -> SearchStrategy:
        use_conversational, use_knowledge, conv_weight, know_weight, max_results = STRATEGY_TABLE[context.type]

        threshold = self.default_threshold
        if context.confidence < self.low_confidence_cutoff:
            threshold = self.relaxed_threshold

        return SearchStrategy(
            use_conversational=use_conversational,
            use_knowledge=use_knowledge,
            conversational_weight=conv_weight,
            knowledge_weight=know_weight,
            max_results=max_results,
            similarity_threshold=threshold,
        )
