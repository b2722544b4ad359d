# =============================================================================
# Unit Tests — RAG Service
# =============================================================================
#
# RagService over an in-memory knowledge base: filters, the confidence
# threshold, caching, context formatting and the combined views.
# =============================================================================

from __future__ import annotations

import asyncio

from legal_ai.services.embedding import EmbeddingService
from legal_ai.services.rag import (
    CONTEXT_HEADER,
    SEARCH_CACHE_PREFIX,
    VIEW_SEPARATOR,
    RagService,
    RetrievedContext,
    SearchOptions,
    SearchResult,
)
from tests.fakes import FakeEmbedder, MemoryCache, MemoryKnowledgeBase, hit


def _run(coro):
    return asyncio.run(coro)


class ExplodingEmbedder:
    async def embed(self, texts):
        raise ConnectionError("embedding endpoint down")


def _service(hits=(), embedder=None):
    knowledge_base = MemoryKnowledgeBase(list(hits))
    cache = MemoryCache()
    embeddings = EmbeddingService(embedder or FakeEmbedder(), cache, knowledge_base)
    return RagService(embeddings, knowledge_base, cache), knowledge_base, cache


LEGISLATION = [
    hit("Art. 1.003 CPC", 0.05, "legislation", ["CPC"], "CPC art. 1.003", entry_id=1),
    hit("Art. 7º CF", 0.1, "legislation", ["CF"], "CF art. 7º", entry_id=2),
]
JURISPRUDENCE = [
    hit("REsp sobre prazo", 0.12, "jurisprudence", ["STJ"], "STJ - REsp 1", entry_id=3),
]
DOCUMENTS = [
    hit("Contrato de locação", 0.15, "document", ["folder:10", "document"], "contrato.pdf", entry_id=4),
    hit("Outro caso", 0.15, "document", ["folder:11", "document"], "outro.pdf", entry_id=5),
]


class TestSearch:
    def test_results_meet_threshold(self):
        hits = [hit("perto", 0.1, entry_id=1), hit("longe", 0.4, entry_id=2)]
        service, _, _ = _service(hits)

        results = _run(service.search("prazo"))

        assert [r.content for r in results] == ["perto"]
        assert all(r.confidence >= 0.7 for r in results)

    def test_custom_threshold(self):
        hits = [hit("perto", 0.1, entry_id=1), hit("longe", 0.4, entry_id=2)]
        service, _, _ = _service(hits)
        results = _run(service.search("prazo", SearchOptions(min_confidence=0.5)))
        assert len(results) == 2

    def test_over_fetches_twice_the_limit(self):
        service, knowledge_base, _ = _service(LEGISLATION)
        _run(service.search("prazo", SearchOptions(limit=3)))
        assert knowledge_base.search_limits == [6]

    def test_source_type_and_tag_filters(self):
        service, _, _ = _service(LEGISLATION + JURISPRUDENCE)
        results = _run(
            service.search("prazo", SearchOptions(source_type="legislation", tags=["CF"]))
        )
        assert [r.title for r in results] == ["CF art. 7º"]

    def test_results_are_cached(self):
        service, knowledge_base, cache = _service(LEGISLATION)
        first = _run(service.search("prazo"))
        knowledge_base.hits = []
        second = _run(service.search("prazo"))

        assert [r.id for r in second] == [r.id for r in first]
        assert any(prefix == SEARCH_CACHE_PREFIX for prefix, _ in cache.store)

    def test_cached_empty_result_skips_the_knowledge_base(self):
        service, knowledge_base, _ = _service()
        _run(service.search("nada"))
        _run(service.search("nada"))
        assert knowledge_base.search_limits == [10]

    def test_embedding_outage_degrades_to_empty(self):
        service, _, _ = _service(LEGISLATION, embedder=ExplodingEmbedder())
        assert _run(service.search("prazo")) == []

    def test_empty_knowledge_base(self):
        service, _, _ = _service()
        assert _run(service.search("prazo")) == []


class TestBuildContext:
    def test_empty(self):
        assert RagService.build_context([]) == ""

    def test_numbered_blocks(self):
        results = [
            SearchResult(id=1, content="Texto A", source_type="legislation", distance=0.1, title="Lei A"),
            SearchResult(
                id=2, content="Texto B", source_type="legislation", distance=0.25,
                source_url="https://exemplo.gov.br/b",
            ),
            SearchResult(id=3, content="Texto C", source_type="legislation", distance=0.3),
        ]
        context = RagService.build_context(results)

        assert context.startswith(f"{CONTEXT_HEADER}\n\n[1] Lei A (90.0% relevância)\nTexto A")
        assert "[2] https://exemplo.gov.br/b (75.0% relevância)" in context
        assert "[3] Fonte 3 (70.0% relevância)" in context
        assert context.count("\n\n---\n\n") == 2


class TestViews:
    def test_document_context_scoped_to_folder(self):
        service, _, _ = _service(DOCUMENTS)
        context = _run(service.document_context("locação", folder_id=10))
        assert [s.title for s in context.sources] == ["contrato.pdf"]

    def test_document_context_without_folder_spans_folders(self):
        service, _, _ = _service(DOCUMENTS)
        context = _run(service.document_context("locação"))
        assert [s.title for s in context.sources] == ["contrato.pdf", "outro.pdf"]

    def test_comprehensive_without_folder_or_jurisprudence(self):
        service, _, _ = _service(LEGISLATION + JURISPRUDENCE + DOCUMENTS)
        context = _run(service.comprehensive_context("prazo"))

        assert len(context.legislation) == 2
        assert context.jurisprudence == []
        assert context.documents == []
        assert VIEW_SEPARATOR not in context.context

    def test_comprehensive_with_everything(self):
        service, _, _ = _service(LEGISLATION + JURISPRUDENCE + DOCUMENTS)
        context = _run(
            service.comprehensive_context("prazo", folder_id=10, include_jurisprudence=True)
        )

        assert [s.id for s in context.sources] == [1, 2, 3, 4]
        assert context.context.count(VIEW_SEPARATOR) == 2
        assert context.has_context

    def test_has_context_follows_the_context_text(self):
        assert RetrievedContext(context="CONTEXTO").has_context
        assert not RetrievedContext().has_context
