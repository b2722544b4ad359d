# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy engine only.
# Every consumer of the database in this project (FastAPI handlers, the
# orchestrator, the agent engine, the knowledge base) runs inside the event
# loop, so asyncpg is the only driver.
#
# SESSIONS: the repositories in legal_ai/db/repositories.py open one
# session per method from async_session_factory and commit explicitly, so
# an execution row marked FAILED stays FAILED even if the caller fails.
# =============================================================================

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from legal_ai.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# echo follows debug mode. pool_size/max_overflow are sized for a single
# API process; tune for production concurrency.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False: loaded objects stay usable after commit. Without
# it, touching an attribute after commit triggers lazy IO outside a session.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

