# =============================================================================
# Knowledge Base — Pluggable Vector Store Backend
# =============================================================================
#
# Stores embedded legal text chunks (legislation, jurisprudence, doctrine,
# case documents) and answers nearest-neighbour queries over them.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Any class with the right methods is a knowledge base, including the
# in-memory fakes used by the tests.
#
# DESIGN DECISION: The store only ranks by distance.
# Source-type / tag filtering and the confidence threshold are applied by
# RagService over an over-fetched candidate list (2 × limit), so both
# backends stay dumb and interchangeable.
#
# DESIGN DECISION: Cosine distance on both backends.
# pgvector `<=>` (HNSW, vector_cosine_ops) and Chroma `hnsw:space=cosine`
# return the same metric, so confidence = 1 - distance means the same
# thing regardless of backend.
#
# ARCHITECTURE:
#   KnowledgeBase (Protocol)
#   ├── PgVectorKnowledgeBase — ai_knowledge_base table (async SQLAlchemy)
#   └── ChromaKnowledgeBase   — ChromaDB collection, sync client wrapped
#                               in asyncio.to_thread()
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from legal_ai.config import settings
from legal_ai.db.models import KnowledgeBaseEntry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class NewEntry:
    """A chunk ready to be written to the knowledge base."""

    content: str
    embedding: list[float]
    source_type: str
    title: str | None = None
    source_url: str | None = None
    source_id: str | None = None
    tags: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    language: str = "pt-BR"


@dataclass
class KnowledgeBaseHit:
    """
    A single nearest-neighbour result.

    `distance` is cosine distance (0 = identical). Callers derive
    confidence as 1 - distance.
    """

    id: int | str
    content: str
    source_type: str
    distance: float
    title: str | None = None
    source_url: str | None = None
    source_id: str | None = None
    tags: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class KnowledgeBase(Protocol):
    async def add_entries(self, entries: list[NewEntry]) -> list[int | str]:
        """Store entries, returning their ids in input order."""
        ...

    async def similarity_search(
        self, embedding: list[float], limit: int,
    ) -> list[KnowledgeBaseHit]:
        """The `limit` nearest entries, closest first."""
        ...

    async def update_embedding(
        self, entry_id: int | str, content: str, embedding: list[float],
    ) -> bool:
        """Replace an entry's content and vector. False if it does not exist."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


class PgVectorKnowledgeBase:
    """
    pgvector-backed knowledge base on the ai_knowledge_base table.

    Writes go through the ORM; reads order by pgvector's cosine_distance(),
    served by the HNSW index.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        if session_factory is None:
            from legal_ai.db.engine import async_session_factory

            session_factory = async_session_factory
        self._session_factory = session_factory

    async def add_entries(self, entries: list[NewEntry]) -> list[int | str]:
        async with self._session_factory() as session:
            rows = [
                KnowledgeBaseEntry(
                    content=entry.content,
                    embedding=entry.embedding,
                    source_type=entry.source_type,
                    source_url=entry.source_url,
                    source_id=entry.source_id,
                    title=entry.title,
                    tags=list(entry.tags),
                    metadata_=entry.metadata,
                    language=entry.language,
                )
                for entry in entries
            ]
            session.add_all(rows)
            # Flush assigns IDs without committing the transaction
            await session.flush()
            ids: list[int | str] = [row.id for row in rows]
            await session.commit()

        logger.info("Stored %d knowledge base entries in pgvector", len(ids))
        return ids

    async def similarity_search(
        self, embedding: list[float], limit: int,
    ) -> list[KnowledgeBaseHit]:
        distance = KnowledgeBaseEntry.embedding.cosine_distance(embedding)
        async with self._session_factory() as session:
            result = await session.execute(
                select(KnowledgeBaseEntry, distance.label("distance"))
                .where(KnowledgeBaseEntry.embedding.is_not(None))
                .order_by(distance)
                .limit(limit)
            )
            rows = result.all()

        logger.debug("pgvector search returned %d rows (limit=%d)", len(rows), limit)

        return [
            KnowledgeBaseHit(
                id=entry.id,
                content=entry.content,
                source_type=entry.source_type,
                distance=float(dist),
                title=entry.title,
                source_url=entry.source_url,
                source_id=entry.source_id,
                tags=list(entry.tags or []),
                metadata=entry.metadata_ or {},
            )
            for entry, dist in rows
        ]

    async def update_embedding(
        self, entry_id: int | str, content: str, embedding: list[float],
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(KnowledgeBaseEntry)
                .where(KnowledgeBaseEntry.id == int(entry_id))
                .values(content=content, embedding=embedding)
            )
            await session.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaKnowledgeBase:
    """
    ChromaDB-backed knowledge base.

    ChromaDB supports both in-process and client/server modes:
    - In-process (default): no extra infra, data held in memory
    - Client/server: set CHROMA_URL for a Docker deployment

    Metadata values must be scalars, so tags are stored comma-joined and
    caller metadata as a JSON string; both are decoded on the way out.
    """

    def __init__(self, client=None, collection_name: str = "legal_knowledge_base") -> None:
        import chromadb

        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def add_entries(self, entries: list[NewEntry]) -> list[int | str]:
        if not entries:
            return []
        ids: list[int | str] = [uuid.uuid4().hex for _ in entries]

        def _sync_add() -> None:
            self._collection.add(
                ids=ids,
                documents=[e.content for e in entries],
                embeddings=[e.embedding for e in entries],
                metadatas=[_entry_metadata(e) for e in entries],
            )

        await asyncio.to_thread(_sync_add)
        logger.info("Stored %d knowledge base entries in ChromaDB", len(ids))
        return ids

    async def similarity_search(
        self, embedding: list[float], limit: int,
    ) -> list[KnowledgeBaseHit]:
        def _sync_search() -> list[KnowledgeBaseHit]:
            if self._collection.count() == 0:
                return []

            results = self._collection.query(
                query_embeddings=[embedding],
                n_results=limit,
                include=["documents", "metadatas", "distances"],
            )

            hits: list[KnowledgeBaseHit] = []
            if results and results["ids"] and results["ids"][0]:
                for i, chroma_id in enumerate(results["ids"][0]):
                    metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                    hits.append(
                        _hit_from_chroma(
                            chroma_id,
                            content=results["documents"][0][i] if results["documents"] else "",
                            distance=results["distances"][0][i] if results["distances"] else 0.0,
                            metadata=metadata or {},
                        )
                    )
            return hits

        return await asyncio.to_thread(_sync_search)

    async def update_embedding(
        self, entry_id: int | str, content: str, embedding: list[float],
    ) -> bool:
        def _sync_update() -> bool:
            existing = self._collection.get(ids=[str(entry_id)])
            if not existing["ids"]:
                return False
            self._collection.update(
                ids=[str(entry_id)],
                documents=[content],
                embeddings=[embedding],
            )
            return True

        return await asyncio.to_thread(_sync_update)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_knowledge_base: PgVectorKnowledgeBase | ChromaKnowledgeBase | None = None


def get_knowledge_base() -> PgVectorKnowledgeBase | ChromaKnowledgeBase:
    """
    Return the configured knowledge base backend (lazy singleton).

    Reads `knowledge_base_backend` from settings:
    - "pgvector" → PgVectorKnowledgeBase (default)
    - "chroma" → ChromaKnowledgeBase
    """
    global _knowledge_base
    if _knowledge_base is None:
        if settings.knowledge_base_backend == "chroma":
            logger.info("Using ChromaDB knowledge base")
            _knowledge_base = ChromaKnowledgeBase()
        else:
            logger.info("Using pgvector knowledge base")
            _knowledge_base = PgVectorKnowledgeBase()
    return _knowledge_base


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _entry_metadata(entry: NewEntry) -> dict:
    """
    Flatten an entry into ChromaDB-compatible metadata.

    ChromaDB requires str, int, float or bool values, so None becomes ""
    and list/dict values are encoded.
    """
    return {
        "source_type": entry.source_type,
        "source_url": entry.source_url or "",
        "source_id": entry.source_id or "",
        "title": entry.title or "",
        "tags": ",".join(entry.tags),
        "language": entry.language,
        "metadata_json": json.dumps(entry.metadata, ensure_ascii=False, default=str),
    }


def _hit_from_chroma(
    chroma_id: str, content: str, distance: float, metadata: dict,
) -> KnowledgeBaseHit:
    tags = metadata.get("tags") or ""
    return KnowledgeBaseHit(
        id=chroma_id,
        content=content or "",
        source_type=metadata.get("source_type", ""),
        distance=float(distance),
        title=metadata.get("title") or None,
        source_url=metadata.get("source_url") or None,
        source_id=metadata.get("source_id") or None,
        tags=[t for t in tags.split(",") if t],
        metadata=json.loads(metadata.get("metadata_json") or "{}"),
    )
