# =============================================================================
# Repositories — Persistence Interface for the Orchestration Core
# =============================================================================
#
# Thin async wrappers over the ORM models. The engine and orchestrator only
# ever talk to these classes, never to a session, which keeps them testable
# with small in-memory fakes.
#
# DESIGN DECISION: One session per repository call.
# Every method opens its own session from the factory and commits before
# returning. Execution bookkeeping must survive failures in the caller
# (a FAILED execution row is written while an exception is in flight), so
# it cannot share a transaction with the work it describes.
#
# DESIGN DECISION: Token accumulation is a single UPDATE ... SET x = x + n.
# Read-modify-write from Python would lose increments when two requests hit
# the same conversation, and the counter must never go backwards.
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from legal_ai.db.models import (
    Agent,
    AgentExecution,
    Citation,
    Conversation,
    ConversationMode,
    ExecutionStatus,
    Message,
    MessageRole,
)

logger = logging.getLogger(__name__)


def _default_session_factory() -> async_sessionmaker[AsyncSession]:
    # Imported lazily so that importing this module never builds an engine
    from legal_ai.db.engine import async_session_factory

    return async_session_factory


class _Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or _default_session_factory()


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class AgentRepository(_Repository):
    async def find_by_slug(self, slug: str) -> Agent | None:
        async with self._session_factory() as session:
            result = await session.execute(select(Agent).where(Agent.slug == slug))
            return result.scalar_one_or_none()

    async def list_active(self) -> list[Agent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Agent).where(Agent.is_active.is_(True)).order_by(Agent.id)
            )
            return list(result.scalars().all())

    async def upsert(self, slug: str, **fields: Any) -> Agent:
        """Create the agent or overwrite its fields if the slug exists."""
        async with self._session_factory() as session:
            result = await session.execute(select(Agent).where(Agent.slug == slug))
            agent = result.scalar_one_or_none()
            if agent is None:
                agent = Agent(slug=slug, **fields)
                session.add(agent)
            else:
                for key, value in fields.items():
                    setattr(agent, key, value)
            await session.commit()
            await session.refresh(agent)
            return agent


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class ConversationRepository(_Repository):
    async def get(self, conversation_id: int) -> Conversation | None:
        async with self._session_factory() as session:
            return await session.get(Conversation, conversation_id)

    async def get_with_messages(self, conversation_id: int) -> Conversation | None:
        """Load a conversation with its messages and their citations."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Conversation)
                .where(Conversation.id == conversation_id)
                .options(
                    selectinload(Conversation.messages).selectinload(Message.citations)
                )
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        user_id: int,
        agent_id: int | None,
        title: str | None,
        mode: ConversationMode = ConversationMode.SINGLE,
        folder_id: int | None = None,
        metadata: dict | None = None,
    ) -> Conversation:
        async with self._session_factory() as session:
            conversation = Conversation(
                user_id=user_id,
                agent_id=agent_id,
                folder_id=folder_id,
                title=title,
                mode=mode,
                total_tokens=0,
                metadata_=metadata or {},
            )
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)
            logger.info(
                "Created conversation %d (user=%d, mode=%s)",
                conversation.id, user_id, mode.value,
            )
            return conversation

    async def add_tokens(self, conversation_id: int, tokens: int) -> None:
        if tokens <= 0:
            return
        async with self._session_factory() as session:
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(total_tokens=Conversation.total_tokens + tokens)
            )
            await session.commit()

    async def list_for_user(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        folder_id: int | None = None,
    ) -> tuple[list[Conversation], int]:
        """Return one page of the user's conversations plus the total count."""
        filters = [Conversation.user_id == user_id]
        if folder_id is not None:
            filters.append(Conversation.folder_id == folder_id)

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(Conversation).where(*filters)
            )
            result = await session.execute(
                select(Conversation)
                .where(*filters)
                .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(result.scalars().all()), int(total or 0)

    async def delete(self, conversation_id: int) -> None:
        async with self._session_factory() as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is not None:
                # ORM delete so the cascade to messages/executions applies
                await session.delete(conversation)
                await session.commit()


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessageRepository(_Repository):
    async def add(
        self,
        conversation_id: int,
        role: MessageRole,
        content: str,
        agent_id: int | None = None,
        tokens_used: int | None = None,
        citations: list[dict] | None = None,
    ) -> Message:
        async with self._session_factory() as session:
            message = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                agent_id=agent_id,
                tokens_used=tokens_used,
            )
            message.citations = [Citation(**c) for c in citations or []]
            session.add(message)
            # Touch the parent so conversation listings sort by activity
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(updated_at=func.now())
            )
            await session.commit()
            await session.refresh(message)
            return message

    async def history(self, conversation_id: int, limit: int = 20) -> list[dict[str, str]]:
        """Most recent `limit` messages, oldest first, as chat messages."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            rows = list(result.scalars().all())
        rows.reverse()
        return [{"role": m.role.value, "content": m.content} for m in rows]


# ---------------------------------------------------------------------------
# Agent executions
# ---------------------------------------------------------------------------


class ExecutionRepository(_Repository):
    """
    Status bookkeeping for AgentExecution rows.

    `start` creates the row in RUNNING. Exactly one of `complete` or `fail`
    is then called. Both only match rows still in RUNNING, so a terminal
    row is never rewritten.
    """

    async def start(self, conversation_id: int, agent_id: int, input_text: str) -> int:
        async with self._session_factory() as session:
            execution = AgentExecution(
                conversation_id=conversation_id,
                agent_id=agent_id,
                status=ExecutionStatus.RUNNING,
                input=input_text,
                started_at=datetime.now(timezone.utc),
            )
            session.add(execution)
            await session.commit()
            return execution.id

    async def complete(
        self,
        execution_id: int,
        output: str,
        tool_calls: list[dict],
        tokens_used: int,
        duration_ms: int,
    ) -> None:
        await self._finish(
            execution_id,
            status=ExecutionStatus.COMPLETED,
            output=output,
            tool_calls=tool_calls,
            tokens_used=tokens_used,
            duration_ms=duration_ms,
        )

    async def fail(self, execution_id: int, error_message: str) -> None:
        await self._finish(
            execution_id,
            status=ExecutionStatus.FAILED,
            error_message=error_message,
        )

    async def _finish(self, execution_id: int, **values: Any) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(AgentExecution)
                .where(
                    AgentExecution.id == execution_id,
                    AgentExecution.status == ExecutionStatus.RUNNING,
                )
                .values(completed_at=datetime.now(timezone.utc), **values)
            )
            await session.commit()

