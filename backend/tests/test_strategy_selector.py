"""
Tests for Strategy Selector
"""

import pytest
from memory_rag.context_engine.models import (
    Corpus,
    QueryContext,
    QueryIntent,
    QueryType,
    SearchScope,
)
from memory_rag.services.strategy_selector import StrategySelector


def make_context(query_type, confidence=0.9):
    intent = {
        QueryType.CONVERSATIONAL: QueryIntent.RECALL_CONVERSATION,
        QueryType.KNOWLEDGE: QueryIntent.SEARCH_DOCUMENTS,
        QueryType.HYBRID: QueryIntent.CONTEXTUAL_BLEND,
    }[query_type]
    return QueryContext(
        type=query_type,
        intent=intent,
        scope=SearchScope.CURRENT_PROJECT,
        confidence=confidence,
    )


@pytest.mark.parametrize("query_type,conv,know,conv_w,know_w,max_results", [
    (QueryType.CONVERSATIONAL, True, False, 1.0, 0.0, 3),
    (QueryType.KNOWLEDGE, False, True, 0.0, 1.0, 5),
    (QueryType.HYBRID, True, True, 0.4, 0.6, 8),
])
def test_strategy_table(query_type, conv, know, conv_w, know_w, max_results):
    strategy = StrategySelector(0.7, 0.65, 0.6).select(make_context(query_type))

    assert strategy.use_conversational is conv
    assert strategy.use_knowledge is know
    assert strategy.conversational_weight == conv_w
    assert strategy.knowledge_weight == know_w
    assert strategy.max_results == max_results
    assert strategy.similarity_threshold == 0.7


def test_low_confidence_relaxes_threshold():
    selector = StrategySelector(0.7, 0.65, 0.6)

    assert selector.select(make_context(QueryType.KNOWLEDGE, confidence=0.59)).similarity_threshold == 0.65
    assert selector.select(make_context(QueryType.KNOWLEDGE, confidence=0.6)).similarity_threshold == 0.7


def test_defaults_come_from_settings():
    selector = StrategySelector()

    assert selector.default_threshold == 0.7
    assert selector.relaxed_threshold == 0.65
    assert selector.low_confidence_cutoff == 0.6


def test_select_is_pure():
    selector = StrategySelector()
    context = make_context(QueryType.HYBRID)

    assert selector.select(context) == selector.select(context)


def test_enabled_corpora():
    selector = StrategySelector()

    assert selector.select(make_context(QueryType.HYBRID)).enabled_corpora == (
        Corpus.CONVERSATIONS,
        Corpus.DOCUMENTS,
    )
    assert selector.select(make_context(QueryType.KNOWLEDGE)).enabled_corpora == (Corpus.DOCUMENTS,)
