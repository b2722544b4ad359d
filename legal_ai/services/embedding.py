# =============================================================================
# Embedding Service — Vector Generation & Knowledge Base Ingestion
# =============================================================================
#
# Turns text into vectors (single, cached; batch, uncached) and ingests long
# texts into the knowledge base as overlapping word-window chunks.
#
# DESIGN DECISION: Cache single embeddings, not batches.
# Single embeddings are query vectors, repeated often (the same legal
# question, the same fixed RAG view queries) and cached for 24 hours.
# Batch embeddings are ingestion chunks that are embedded once, so caching
# them would only fill Redis.
#
# INGESTION PIPELINE:
#   chunk_words() → one batch embedding call → one knowledge base row per
#   chunk, each tagged with chunk_index / total_chunks
#
# All failures surface as EmbeddingError with the cause chained.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from legal_ai.config import settings
from legal_ai.errors import EmbeddingError, NotFoundError
from legal_ai.services.cache import AICache
from legal_ai.services.chunker import chunk_words
from legal_ai.services.knowledge_base import KnowledgeBase, NewEntry
from legal_ai.services.llm import EmbeddingProvider

logger = logging.getLogger(__name__)

EMBEDDING_CACHE_PREFIX = "embedding"


@dataclass
class IngestPayload:
    """A source document to be chunked, embedded and stored."""

    content: str
    source_type: str  # legislation | jurisprudence | doctrine | document | web
    title: str | None = None
    source_url: str | None = None
    source_id: str | None = None
    tags: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


class EmbeddingService:
    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: AICache,
        knowledge_base: KnowledgeBase,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._knowledge_base = knowledge_base
        self._chunk_size = chunk_size or settings.rag_chunk_size
        self._chunk_overlap = (
            settings.rag_chunk_overlap if chunk_overlap is None else chunk_overlap
        )

    async def generate_embedding(self, text: str) -> list[float]:
        """Embed one text, served from the cache when possible."""
        cached = await self._cache.get(EMBEDDING_CACHE_PREFIX, text)
        if cached is not None:
            return cached

        try:
            vectors = await self._provider.embed([text])
        except Exception as exc:
            logger.error("Embedding generation failed: %s", exc)
            raise EmbeddingError(f"Failed to generate embedding: {exc}") from exc

        embedding = vectors[0]
        await self._cache.set(
            EMBEDDING_CACHE_PREFIX, text, embedding, ttl=settings.embedding_cache_ttl,
        )
        logger.debug(
            "Generated embedding (text_length=%d, dimensions=%d)",
            len(text), len(embedding),
        )
        return embedding

    async def generate_batch_embeddings(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await self._provider.embed(texts)
        except Exception as exc:
            logger.error("Batch embedding generation failed: %s", exc)
            raise EmbeddingError(f"Failed to generate batch embeddings: {exc}") from exc

        logger.info("Generated %d batch embeddings", len(texts))
        return vectors

    async def ingest(self, payload: IngestPayload) -> int:
        """
        Chunk, embed and store `payload`. Returns the number of rows written.

        Each row carries the payload's source fields and tags, plus
        metadata = payload.metadata ∪ {chunk_index, total_chunks}.
        """
        try:
            chunks = chunk_words(payload.content, self._chunk_size, self._chunk_overlap)
            if not chunks:
                logger.warning("Nothing to ingest for '%s' (empty content)", payload.title)
                return 0

            logger.info(
                "Ingesting '%s' into knowledge base (source_type=%s, chunks=%d)",
                payload.title, payload.source_type, len(chunks),
            )

            embeddings = await self.generate_batch_embeddings(chunks)

            entries = [
                NewEntry(
                    content=chunk,
                    embedding=embedding,
                    source_type=payload.source_type,
                    title=payload.title,
                    source_url=payload.source_url,
                    source_id=payload.source_id,
                    tags=list(payload.tags),
                    metadata={
                        **payload.metadata,
                        "chunk_index": index,
                        "total_chunks": len(chunks),
                    },
                )
                for index, (chunk, embedding) in enumerate(zip(chunks, embeddings, strict=True))
            ]
            ids = await self._knowledge_base.add_entries(entries)
        except EmbeddingError:
            raise
        except Exception as exc:
            logger.error("Content ingestion failed for '%s': %s", payload.title, exc)
            raise EmbeddingError(f"Failed to ingest content: {exc}") from exc

        logger.info("Ingested %d chunks for '%s'", len(ids), payload.title)
        return len(ids)

    async def update_embedding(self, entry_id: int | str, content: str) -> None:
        """Replace an entry's content and re-embed it."""
        embedding = await self.generate_embedding(content)
        try:
            updated = await self._knowledge_base.update_embedding(entry_id, content, embedding)
        except Exception as exc:
            logger.error("Embedding update failed (id=%s): %s", entry_id, exc)
            raise EmbeddingError(f"Failed to update embedding: {exc}") from exc

        if not updated:
            raise NotFoundError(f"Knowledge base entry {entry_id} not found")
        logger.info("Embedding updated (id=%s)", entry_id)
