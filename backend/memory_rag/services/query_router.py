"""
Query Router - Turns a user query into blended memory context

Pipeline per request:
    classify -> select strategy -> contradiction guard ->
    concurrent corpus searches -> blend

A failing corpus degrades to no results; the router itself never raises for
retrieval problems.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from memory_rag.config.vocabulary import get_vocabulary
from memory_rag.context_engine.context_blender import ContextBlender
from memory_rag.context_engine.contradiction_guard import ContradictionGuard
from memory_rag.context_engine.models import (
    BlendedContext,
    ContextBudget,
    Corpus,
    QueryContext,
    RetrievalMetrics,
    RetrievalResult,
    SearchStrategy,
    StrategyResults,
)
from memory_rag.core.logging_config import LoggerMixin
from .query_classifier import QueryClassifier
from .strategy_selector import StrategySelector
from .vector_retrieval import VectorRetrieval, build_scope_filter


@dataclass
class RoutedContext:
    """Everything the response layer needs from retrieval"""
    query_context: QueryContext
    strategy: SearchStrategy
    results: StrategyResults
    blended: BlendedContext
    metrics: RetrievalMetrics
    guard_tripped: bool

    def query_analysis(self) -> Dict[str, Any]:
        return {**self.query_context.to_dict(), "strategy": self.strategy.to_dict()}


class QueryRouter(LoggerMixin):
    """Retrieval orchestrator for one request at a time; holds no per-request state"""

    def __init__(
        self,
        retrieval: VectorRetrieval,
        classifier: Optional[QueryClassifier] = None,
        selector: Optional[StrategySelector] = None,
        guard: Optional[ContradictionGuard] = None,
        blender: Optional[ContextBlender] = None,
        max_context_items: Optional[int] = None,
        max_knowledge_items: Optional[int] = None,
        max_conversational_items: Optional[int] = None,
        history_window: Optional[int] = None,
    ):
        """
        Initialize query router.

        Args:
            retrieval: Vector retrieval over both corpora
            classifier: Query classifier (default: built-in vocabulary)
            selector: Strategy selector (default: thresholds from settings)
            guard: Contradiction guard over recent assistant turns
            blender: Context formatter
            max_context_items: Total prompt slots (default from settings)
            max_knowledge_items: Slots reserved for document chunks
            max_conversational_items: Conversational cap when both corpora are searched
            history_window: Number of recent turns inspected by the guard
        """
        from memory_rag.core.config import settings

        vocabulary = get_vocabulary() if classifier is None or guard is None else None

        self.retrieval = retrieval
        self.classifier = classifier or QueryClassifier(vocabulary)
        self.selector = selector or StrategySelector()
        self.guard = guard or ContradictionGuard(vocabulary.access_denial_markers)
        self.blender = blender or ContextBlender()
        self.max_context_items = settings.MAX_CONTEXT_ITEMS if max_context_items is None else max_context_items
        self.max_knowledge_items = settings.MAX_KNOWLEDGE_ITEMS if max_knowledge_items is None else max_knowledge_items
        self.max_conversational_items = (
            settings.MAX_CONVERSATIONAL_ITEMS if max_conversational_items is None else max_conversational_items
        )
        self.history_window = settings.HISTORY_WINDOW if history_window is None else history_window

    def recent_turns(self, history: Optional[Sequence[Any]]) -> List[Any]:
        """Last ``history_window`` turns, oldest first"""
        if not history or self.history_window <= 0:
            return []
        return list(history)[-self.history_window:]

    async def route(
        self,
        query: str,
        history: Optional[Sequence[Any]] = None,
        project_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RoutedContext:
        """
        Retrieve and blend context for a query.

        Args:
            query: The user's message
            history: Earlier turns, oldest first (dicts or objects with role/content)
            project_id: Project the conversation belongs to
            conversation_id: Current conversation
            now: Reference time for recency labels

        Returns:
            RoutedContext with classification, strategy, raw results, blended
            context and per-request metrics
        """
        start_time = time.time()
        recent_turns = self.recent_turns(history)
        log_context = {"conversation_id": conversation_id, "project_id": project_id}

        query_context = self.classifier.classify(query, recent_turns)
        strategy = self.selector.select(query_context)
        metrics = RetrievalMetrics(
            threshold_used=strategy.similarity_threshold,
            ambiguous_classification=self.classifier.is_ambiguous(query),
        )

        self.log_info(
            f"Query analysis: type={query_context.type.value} intent={query_context.intent.value} "
            f"scope={query_context.scope.value} confidence={query_context.confidence:.2f} "
            f"keywords={list(query_context.keywords)} corpora={[c.value for c in strategy.enabled_corpora]} "
            f"threshold={strategy.similarity_threshold}",
            query_type=query_context.type.value,
            **log_context,
        )

        finding = self.guard.find_contradiction(recent_turns)
        guard_tripped = finding is not None

        results = StrategyResults()
        if guard_tripped:
            self.log_warning(
                f"Skipping retrieval: assistant turn {finding.turn_index + 1} claimed no file access",
                **log_context,
            )
        else:
            results = await self._search_corpora(
                query, query_context, strategy, metrics, project_id, conversation_id
            )

        budget = ContextBudget.for_strategy(
            strategy,
            max_total_items=self.max_context_items,
            max_knowledge_items=self.max_knowledge_items,
            max_conversational_items=self.max_conversational_items,
        )
        blended = self.blender.blend(
            results,
            guard_tripped=guard_tripped,
            budget=budget,
            now=now,
            current_project_id=project_id,
        )

        metrics.similarity_scores = results.similarity_scores()
        metrics.conversational_results = len(results.conversational)
        metrics.knowledge_results = len(results.knowledge)
        metrics.response_time_ms = round((time.time() - start_time) * 1000, 2)

        stats = metrics.similarity_stats
        self.log_info(
            f"Retrieval complete: {results.total} results "
            f"({metrics.conversational_results} conversational, {metrics.knowledge_results} knowledge), "
            f"{blended.items_used} used, avg similarity {stats['avg']:.3f}, "
            f"{metrics.response_time_ms}ms",
            query_type=query_context.type.value,
            **log_context,
        )

        return RoutedContext(
            query_context=query_context,
            strategy=strategy,
            results=results,
            blended=blended,
            metrics=metrics,
            guard_tripped=guard_tripped,
        )

    async def _search_corpora(
        self,
        query: str,
        query_context: QueryContext,
        strategy: SearchStrategy,
        metrics: RetrievalMetrics,
        project_id: Optional[str],
        conversation_id: Optional[str],
    ) -> StrategyResults:
        corpora = strategy.enabled_corpora
        searches = [
            self._timed_search(
                query,
                corpus,
                strategy,
                build_scope_filter(corpus, query_context.scope, project_id, conversation_id),
            )
            for corpus in corpora
        ]

        outcomes = await asyncio.gather(*searches, return_exceptions=True)

        results = StrategyResults()
        for corpus, outcome in zip(corpora, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                self.log_error(f"Unexpected error searching {corpus.value}: {outcome}", corpus=corpus.value)
                metrics.corpus_errors[corpus.value] = str(outcome)
                continue

            found, error, elapsed_ms = outcome
            metrics.corpus_timings_ms[corpus.value] = elapsed_ms
            if error:
                metrics.corpus_errors[corpus.value] = error

            if corpus == Corpus.CONVERSATIONS:
                results.conversational = found
            else:
                results.knowledge = found

        return results

    async def _timed_search(
        self,
        query: str,
        corpus: Corpus,
        strategy: SearchStrategy,
        scope_filter: Optional[Dict[str, Any]],
    ) -> Tuple[List[RetrievalResult], Optional[str], float]:
        start_time = time.time()
        found, error = await self.retrieval.search_or_empty(
            query,
            corpus,
            max_results=strategy.max_results,
            similarity_threshold=strategy.similarity_threshold,
            scope_filter=scope_filter,
        )
        return found, error, round((time.time() - start_time) * 1000, 2)
