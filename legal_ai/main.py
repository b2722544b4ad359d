# =============================================================================
# FastAPI Application Factory
# =============================================================================
#
# The host application mounts this core by calling create_app() with its
# own EntityRepository (clients, folders, tasks, movements, documents) and
# installing an authentication middleware that sets request.state.user_id.
#
#   app = create_app(entity_repository=MyEntityRepository())
#
# The orchestrator and its providers are built lazily on the first request
# (see legal_ai/api/deps.py), so the app starts without API keys and reports
# missing configuration as 503.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from legal_ai.api.chat import router as chat_router
from legal_ai.config import settings
from legal_ai.models.responses import HealthResponse
from legal_ai.tools.entities import EntityRepository

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting %s %s (llm=%s, knowledge_base=%s, stream_mode=%s)",
        settings.app_name,
        settings.app_version,
        settings.llm_provider,
        settings.knowledge_base_backend,
        settings.stream_mode,
    )
    yield
    logger.info("%s shutdown complete", settings.app_name)


def create_app(entity_repository: EntityRepository | None = None) -> FastAPI:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Legal AI agent orchestration: routing, RAG, tools and workflows",
        lifespan=lifespan,
    )
    app.state.entity_repository = entity_repository
    app.include_router(chat_router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    return app
