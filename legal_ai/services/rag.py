# =============================================================================
# RAG Service — Retrieval, Filtering & Context Building
# =============================================================================
#
# Similarity search over the knowledge base with source-type / tag filters
# and a confidence threshold, plus the fixed retrieval "views" the agents
# combine (legislation, jurisprudence, case documents, comprehensive).
#
# SEARCH PIPELINE:
#   1. Cache lookup on canonical {query, options}         (rag:search, 5 min)
#   2. Query embedding via EmbeddingService                (cached, 24 h)
#   3. Over-fetch 2 × limit nearest neighbours
#   4. Filter: source_type equality, tag overlap (any tag in common)
#   5. Keep 1 - distance >= min_confidence, truncate to limit
#   6. Cache and return
#
# DESIGN DECISION: Retrieval never fails a request.
# An empty knowledge base, an embedding outage or a vector store error all
# degrade to "no context" (logged at debug) and the agent answers from the
# model alone. RAG is an enhancement, not a dependency.
#
# DESIGN DECISION: Post-filtering over an over-fetched list keeps the vector
# store interface to a single nearest-neighbour call. The trade-off is that
# a very selective filter can return fewer than `limit` results.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field

from legal_ai.config import settings
from legal_ai.services.cache import AICache
from legal_ai.services.embedding import EmbeddingService
from legal_ai.services.knowledge_base import KnowledgeBase

logger = logging.getLogger(__name__)

SEARCH_CACHE_PREFIX = "rag:search"

CONTEXT_HEADER = "CONTEXTO RELEVANTE DA BASE DE CONHECIMENTO:"
BLOCK_SEPARATOR = "\n\n---\n\n"
VIEW_SEPARATOR = "\n\n=== SEPARADOR DE CONTEXTO ===\n\n"

LEGISLATION_TAGS = ["CF", "CPC", "CLT", "CCB", "Lei"]
JURISPRUDENCE_TAGS = ["STF", "STJ", "TST", "Jurisprudência"]


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class SearchOptions:
    source_type: str | None = None
    tags: list[str] | None = None
    limit: int | None = None
    min_confidence: float | None = None

    def cache_payload(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class SearchResult:
    id: int | str
    content: str
    source_type: str
    distance: float
    title: str | None = None
    source_url: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        return 1.0 - self.distance


@dataclass
class RetrievedContext:
    """Context text for the system prompt plus the results it was built from."""

    context: str = ""
    sources: list[SearchResult] = field(default_factory=list)

    @property
    def has_context(self) -> bool:
        return bool(self.context)


@dataclass
class ComprehensiveContext(RetrievedContext):
    legislation: list[SearchResult] = field(default_factory=list)
    jurisprudence: list[SearchResult] = field(default_factory=list)
    documents: list[SearchResult] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class RagService:
    def __init__(
        self,
        embeddings: EmbeddingService,
        knowledge_base: KnowledgeBase,
        cache: AICache,
    ) -> None:
        self._embeddings = embeddings
        self._knowledge_base = knowledge_base
        self._cache = cache

    async def search(
        self, query: str, options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """
        Ranked knowledge base results for `query`. Never raises.

        Every returned result satisfies 1 - distance >= min_confidence.
        """
        options = options or SearchOptions()
        cache_input = {"query": query, **options.cache_payload()}

        try:
            cached = await self._cache.get(SEARCH_CACHE_PREFIX, cache_input)
            if cached is not None:
                logger.debug("RAG cache hit for '%s'", query[:50])
                return [SearchResult(**item) for item in cached]

            limit = options.limit or settings.rag_top_k
            min_confidence = (
                settings.rag_min_confidence
                if options.min_confidence is None
                else options.min_confidence
            )

            embedding = await self._embeddings.generate_embedding(query)
            hits = await self._knowledge_base.similarity_search(embedding, limit * 2)

            if options.source_type:
                hits = [h for h in hits if h.source_type == options.source_type]
            if options.tags:
                wanted = set(options.tags)
                hits = [h for h in hits if wanted.intersection(h.tags or [])]

            results = [
                SearchResult(
                    id=h.id,
                    content=h.content,
                    source_type=h.source_type,
                    distance=h.distance,
                    title=h.title,
                    source_url=h.source_url,
                    metadata=h.metadata,
                )
                for h in hits
                if 1.0 - h.distance >= min_confidence
            ][:limit]

            await self._cache.set(
                SEARCH_CACHE_PREFIX,
                cache_input,
                [asdict(r) for r in results],
                ttl=settings.rag_search_cache_ttl,
            )
            logger.info("RAG search for '%s' returned %d results", query[:50], len(results))
            return results
        except Exception as exc:
            # Expected when the knowledge base is empty or unreachable
            logger.debug("RAG search skipped for '%s': %s", query[:50], exc)
            return []

    @staticmethod
    def build_context(results: list[SearchResult]) -> str:
        if not results:
            return ""

        blocks = []
        for index, result in enumerate(results, start=1):
            source = result.title or result.source_url or f"Fonte {index}"
            blocks.append(
                f"[{index}] {source} ({result.confidence * 100:.1f}% relevância)\n"
                f"{result.content}"
            )
        return f"{CONTEXT_HEADER}\n\n{BLOCK_SEPARATOR.join(blocks)}"

    async def get_context(
        self, query: str, options: SearchOptions | None = None,
    ) -> RetrievedContext:
        results = await self.search(query, options)
        return RetrievedContext(context=self.build_context(results), sources=results)

    # -----------------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------------

    async def legislation_context(self, query: str, limit: int = 3) -> RetrievedContext:
        """Brazilian legislation (Constitution, codes, statutes)."""
        return await self.get_context(
            query,
            SearchOptions(source_type="legislation", tags=LEGISLATION_TAGS, limit=limit),
        )

    async def jurisprudence_context(self, query: str, limit: int = 3) -> RetrievedContext:
        """Court decisions (STF, STJ, TST)."""
        return await self.get_context(
            query,
            SearchOptions(source_type="jurisprudence", tags=JURISPRUDENCE_TAGS, limit=limit),
        )

    async def document_context(
        self, query: str, folder_id: int | None = None, limit: int = 5,
    ) -> RetrievedContext:
        """Documents attached to a case folder (any folder if none given)."""
        # Tags match on any overlap, so a folder scope must be its only tag
        tags = [f"folder:{folder_id}"] if folder_id else ["document"]
        return await self.get_context(
            query,
            SearchOptions(source_type="document", tags=tags, limit=limit),
        )

    async def comprehensive_context(
        self,
        query: str,
        folder_id: int | None = None,
        include_jurisprudence: bool = False,
    ) -> ComprehensiveContext:
        """
        Legislation (2) + jurisprudence (2, optional) + case documents
        (3, when a folder is linked), fetched concurrently.
        """
        empty = RetrievedContext()

        async def _nothing() -> RetrievedContext:
            return empty

        legislation, jurisprudence, documents = await asyncio.gather(
            self.legislation_context(query, 2),
            self.jurisprudence_context(query, 2) if include_jurisprudence else _nothing(),
            self.document_context(query, folder_id, 3) if folder_id else _nothing(),
        )

        contexts = [
            part.context
            for part in (legislation, jurisprudence, documents)
            if part.context
        ]
        return ComprehensiveContext(
            context=VIEW_SEPARATOR.join(contexts),
            sources=legislation.sources + jurisprudence.sources + documents.sources,
            legislation=legislation.sources,
            jurisprudence=jurisprudence.sources,
            documents=documents.sources,
        )
