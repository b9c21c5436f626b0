"""
Tests for Query Router - classification, concurrent retrieval and blending

Runs the full retrieval pipeline against the in-memory vector store with a
deterministic embedder.
"""

from datetime import datetime, timezone

import pytest
from memory_rag.context_engine.context_blender import CONTRADICTION_NOTE
from memory_rag.context_engine.models import Corpus, QueryType, SourceType
from memory_rag.services.query_router import QueryRouter
from memory_rag.services.vector_retrieval import VectorRetrieval
from memory_rag.services.vector_stores.in_memory_store import InMemoryVectorStore

from conftest import StubEmbeddingService, axis_vector, unit_vector


NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
SPANISH_QUERY = "¿Qué dice el archivo sobre clustering?"
HYBRID_QUERY = "Considerando lo que hablamos, ¿qué dice el archivo sobre clustering?"


class FlakyVectorStore(InMemoryVectorStore):
    """Fails every query against one corpus"""

    def __init__(self, failing_corpus):
        super().__init__()
        self.failing_corpus = failing_corpus
        self.queried = []

    async def query(self, corpus_id, query_vector, k, scope_filter=None):
        self.queried.append((corpus_id, scope_filter))
        if corpus_id == self.failing_corpus:
            raise ConnectionError(f"{corpus_id} unavailable")
        return await super().query(corpus_id, query_vector, k, scope_filter)


async def seed(store):
    await store.upsert(
        Corpus.DOCUMENTS.value,
        "doc-1:0",
        unit_vector(0.82),
        {
            "document_id": "doc-1",
            "chunk_index": 0,
            "total_chunks": 3,
            "filename": "ml_notes.pdf",
            "project_id": "p1",
            "section": "Clustering",
            "page": 1,
            "content": "El clustering agrupa datos similares sin etiquetas.",
        },
    )
    await store.upsert(
        Corpus.CONVERSATIONS.value,
        "c1:2024-05-07T12:00:00+00:00",
        unit_vector(0.55),
        {
            "thread_id": "t1",
            "conversation_id": "c1",
            "project_id": "p1",
            "content": "User: hola\n\nAssistant: ¡Hola! ¿En qué te ayudo?",
            "timestamp": "2024-05-07T12:00:00+00:00",
        },
    )


def make_router(store, **kwargs):
    embedder = StubEmbeddingService({SPANISH_QUERY: axis_vector(), HYBRID_QUERY: axis_vector()})
    retrieval = VectorRetrieval(embedder, store, timeout=1.0)
    return QueryRouter(retrieval, **kwargs), embedder


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_spanish_file_question_uses_document_only(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, _ = make_router(store)

        routed = await router.route(SPANISH_QUERY, history=[], project_id="p1", conversation_id="c1", now=NOW)

        assert routed.query_context.type == QueryType.KNOWLEDGE
        assert routed.strategy.similarity_threshold == 0.7
        assert routed.guard_tripped is False
        assert len(routed.results.knowledge) == 1
        assert routed.results.knowledge[0].similarity == pytest.approx(0.82, abs=1e-4)
        assert routed.results.conversational == []

        text = routed.blended.text
        assert "El clustering agrupa datos similares" in text
        assert "**ml_notes.pdf** (part 1/3) [CURRENT PROJECT]" in text
        assert "Relevance: 82.0%" in text
        assert "¡Hola!" not in text
        assert [s.type for s in routed.blended.sources] == [SourceType.DOCUMENT]

    @pytest.mark.asyncio
    async def test_hybrid_query_filters_weak_conversation_memory(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, _ = make_router(store)

        routed = await router.route(HYBRID_QUERY, history=[], project_id="p1", conversation_id="c1", now=NOW)

        assert routed.query_context.type == QueryType.HYBRID
        assert set(routed.metrics.corpus_timings_ms) == {"conversation_pairs", "document_chunks"}
        assert routed.results.conversational == []
        assert routed.blended.knowledge_used == 1
        assert routed.blended.conversational_used == 0
        assert "¡Hola!" not in routed.blended.text

    @pytest.mark.asyncio
    async def test_metrics(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, _ = make_router(store)

        routed = await router.route(SPANISH_QUERY, project_id="p1", now=NOW)
        metrics = routed.metrics.to_dict()

        assert metrics["threshold_used"] == 0.7
        assert metrics["knowledge_results"] == 1
        assert metrics["conversational_results"] == 0
        assert metrics["similarity_stats"]["max"] == pytest.approx(0.82, abs=1e-4)
        assert metrics["response_time_ms"] >= 0
        assert metrics["corpus_errors"] == {}
        assert metrics["ambiguous_classification"] is False


class TestContradictionGuard:

    @pytest.mark.asyncio
    async def test_guard_skips_retrieval_and_returns_note(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, embedder = make_router(store)
        history = [
            {"role": "user", "content": "¿Ves el PDF?"},
            {"role": "assistant", "content": "Lo siento, no tengo acceso a archivos subidos."},
        ]

        routed = await router.route(SPANISH_QUERY, history=history, project_id="p1", now=NOW)

        assert routed.guard_tripped is True
        assert routed.blended.text == CONTRADICTION_NOTE
        assert routed.results.total == 0
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_denial_outside_history_window_is_ignored(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, _ = make_router(store, history_window=2)
        history = [
            {"role": "assistant", "content": "I cannot access files."},
            {"role": "user", "content": "I uploaded it now."},
            {"role": "assistant", "content": "Great, thanks."},
        ]

        routed = await router.route(SPANISH_QUERY, history=history, project_id="p1", now=NOW)

        assert routed.guard_tripped is False
        assert routed.blended.knowledge_used == 1

    @pytest.mark.asyncio
    async def test_zero_history_window_inspects_nothing(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, _ = make_router(store, history_window=0)
        history = [{"role": "assistant", "content": "I cannot access files."}]

        routed = await router.route(SPANISH_QUERY, history=history, project_id="p1", now=NOW)

        assert router.history_window == 0
        assert router.recent_turns(history) == []
        assert routed.guard_tripped is False


class TestBudgetOverrides:

    @pytest.mark.asyncio
    async def test_zero_conversational_cap_is_respected(self):
        store = InMemoryVectorStore()
        await seed(store)
        await store.upsert(
            Corpus.CONVERSATIONS.value,
            "c1:m9",
            unit_vector(0.9),
            {"conversation_id": "c1", "project_id": "p1", "content": "User: clustering?\n\nAssistant: Sí.",
             "timestamp": "2024-05-09T12:00:00+00:00"},
        )
        router, _ = make_router(store, max_conversational_items=0)

        routed = await router.route(HYBRID_QUERY, project_id="p1", conversation_id="c1", now=NOW)

        assert router.max_conversational_items == 0
        assert len(routed.results.conversational) == 1
        assert routed.blended.conversational_used == 0
        assert routed.blended.knowledge_used == 1


class TestDegradation:

    @pytest.mark.asyncio
    async def test_failing_corpus_does_not_block_the_other(self):
        store = FlakyVectorStore(failing_corpus=Corpus.CONVERSATIONS.value)
        await seed(store)
        router, _ = make_router(store)

        routed = await router.route(HYBRID_QUERY, project_id="p1", conversation_id="c1", now=NOW)

        assert routed.blended.knowledge_used == 1
        assert "conversation_pairs" in routed.metrics.corpus_errors
        assert "unavailable" in routed.metrics.corpus_errors["conversation_pairs"]

    @pytest.mark.asyncio
    async def test_all_corpora_failing_gives_empty_context(self):
        embedder = StubEmbeddingService(fail=True)
        router = QueryRouter(VectorRetrieval(embedder, InMemoryVectorStore(), timeout=1.0))

        routed = await router.route(HYBRID_QUERY, project_id="p1", now=NOW)

        assert routed.blended.is_empty
        assert set(routed.metrics.corpus_errors) == {"conversation_pairs", "document_chunks"}


class TestScope:

    @pytest.mark.asyncio
    async def test_conversation_scope_narrows_conversation_search(self):
        store = FlakyVectorStore(failing_corpus=None)
        router, _ = make_router(store)

        await router.route(
            "En esta conversación, ¿qué hablamos sobre el archivo?",
            project_id="p1",
            conversation_id="c1",
            now=NOW,
        )

        filters = dict(store.queried)
        assert filters["conversation_pairs"] == {"project_id": "p1", "conversation_id": "c1"}
        assert filters["document_chunks"] == {"project_id": "p1"}

    @pytest.mark.asyncio
    async def test_global_scope_is_unfiltered(self):
        store = FlakyVectorStore(failing_corpus=None)
        router, _ = make_router(store)

        await router.route("Search all projects: what does the file say?", project_id="p1", now=NOW)

        assert store.queried == [("document_chunks", None)]

    @pytest.mark.asyncio
    async def test_other_project_documents_excluded_by_default(self):
        store = InMemoryVectorStore()
        await seed(store)
        router, _ = make_router(store)

        routed = await router.route(SPANISH_QUERY, project_id="p2", now=NOW)

        assert routed.results.knowledge == []
        assert routed.blended.is_empty

    @pytest.mark.asyncio
    async def test_mentioning_other_projects_stays_in_current_project(self):
        query = "What does the file in other projects say about clustering?"
        store = InMemoryVectorStore()
        await seed(store)
        embedder = StubEmbeddingService({query: axis_vector()})
        router = QueryRouter(VectorRetrieval(embedder, store, timeout=1.0))

        routed = await router.route(query, project_id="p2", now=NOW)

        assert routed.query_context.scope.value == "current_project"
        assert routed.results.knowledge == []
        assert "El clustering agrupa" not in routed.blended.text


def test_query_analysis_dict():
    from memory_rag.context_engine.models import (
        BlendedContext,
        QueryContext,
        QueryIntent,
        RetrievalMetrics,
        SearchScope,
        SearchStrategy,
        StrategyResults,
    )
    from memory_rag.services.query_router import RoutedContext

    routed = RoutedContext(
        query_context=QueryContext(QueryType.KNOWLEDGE, QueryIntent.SEARCH_DOCUMENTS, SearchScope.CURRENT_PROJECT, 1.0, ("file",)),
        strategy=SearchStrategy(False, True, 0.0, 1.0, 5, 0.7),
        results=StrategyResults(),
        blended=BlendedContext(text=""),
        metrics=RetrievalMetrics(),
        guard_tripped=False,
    )

    analysis = routed.query_analysis()

    assert analysis["type"] == "knowledge"
    assert analysis["keywords"] == ["file"]
    assert analysis["strategy"]["max_results"] == 5
