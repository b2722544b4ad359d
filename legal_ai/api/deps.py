# =============================================================================
# API Dependencies — Caller Identity & Orchestrator Wiring
# =============================================================================
#
# 1. get_current_user_id() — the authenticated user id
# 2. get_orchestrator()    — the process-wide Orchestrator
#
# DESIGN DECISION: Identity comes from request.state, set upstream.
# Authentication and sessions belong to the host application's middleware.
# This core only reads the already-authenticated id, and it is the ONLY
# source of `user_id` for conversations and tool calls.
#
# DESIGN DECISION: The entity repository is supplied by the host app.
# Clients, folders, tasks, movements and documents live in the surrounding
# CRUD application; it hands its EntityRepository to create_app() and the
# orchestrator is built lazily on first use.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from legal_ai.agents.orchestrator import Orchestrator
from legal_ai.services.cache import get_cache
from legal_ai.services.embedding import EmbeddingService
from legal_ai.services.knowledge_base import get_knowledge_base
from legal_ai.services.llm import get_embedding_provider, get_llm_provider
from legal_ai.services.rag import RagService
from legal_ai.tools.catalog import build_tool_registry
from legal_ai.tools.entities import EntityRepository

logger = logging.getLogger(__name__)


async def get_current_user_id(request: Request) -> int:
    """
    FastAPI dependency returning the authenticated user's id.

    Raises:
        HTTPException 401: No authenticated user on the request.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return int(user_id)


def build_orchestrator(entities: EntityRepository) -> Orchestrator:
    """Wire the default providers, cache and knowledge base into an Orchestrator."""
    cache = get_cache()
    knowledge_base = get_knowledge_base()
    embeddings = EmbeddingService(get_embedding_provider(), cache, knowledge_base)
    rag = RagService(embeddings, knowledge_base, cache)
    tools = build_tool_registry(entities, rag)
    logger.info("Orchestrator ready with %d tools", len(tools.names))
    return Orchestrator(get_llm_provider(), rag, tools)


async def get_orchestrator(request: Request) -> Orchestrator:
    """
    FastAPI dependency returning the shared Orchestrator.

    Raises:
        HTTPException 503: No entity repository was configured, or a
            provider key is missing.
    """
    state = request.app.state
    orchestrator = getattr(state, "orchestrator", None)
    if orchestrator is not None:
        return orchestrator

    try:
        entities = getattr(state, "entity_repository", None)
        if entities is None:
            raise ValueError("No entity repository configured")
        orchestrator = build_orchestrator(entities)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e

    state.orchestrator = orchestrator
    return orchestrator
