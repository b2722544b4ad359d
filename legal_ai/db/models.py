# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Tables owned by the AI orchestration core. Entity tables (clients,
# folders, tasks, movements, documents) belong to the surrounding CRUD
# application and are reached only through the EntityRepository protocol.
#
# SCHEMA OVERVIEW:
#
# ┌──────────────┐     ┌───────────────────┐     ┌──────────────┐
# │  ai_agents   │◀────│ ai_conversations  │────▶│ ai_messages  │
# ├──────────────┤     ├───────────────────┤ 1:N ├──────────────┤
# │ slug (uniq)  │     │ user_id           │     │ role         │
# │ model        │     │ agent_id (null)   │     │ content      │
# │ config jsonb │     │ folder_id (null)  │     │ agent_id     │
# │ is_active    │     │ mode              │     └──────┬───────┘
# └──────────────┘     │ total_tokens      │            │ 1:N
#                      └─────────┬─────────┘     ┌──────▼───────┐
#                                │ 1:N           │ ai_citations │
#                      ┌─────────▼─────────┐     └──────────────┘
#                      │ai_agent_executions│
#                      ├───────────────────┤   ┌──────────────────────┐
#                      │ status            │   │ ai_knowledge_base    │
#                      │ tool_calls jsonb  │   ├──────────────────────┤
#                      │ tokens_used       │   │ content, embedding   │
#                      └───────────────────┘   │ source_type, tags[]  │
#                                              │ metadata_ jsonb      │
#                                              └──────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. String enums for status/mode/role: readable in SQL and API responses.
# 2. `metadata_` attribute name: avoids clashing with DeclarativeBase.metadata.
# 3. Conversation → messages/executions cascade on delete. A conversation is
#    only removed by an explicit user delete.
# 4. The knowledge base embedding uses cosine distance (HNSW index with
#    vector_cosine_ops), so confidence = 1 - distance.
# =============================================================================

import enum
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from legal_ai.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all AI tables."""

    pass


class ConversationMode(str, enum.Enum):
    SINGLE = "single"   # one agent answers every turn
    MULTI = "multi"     # workflow conversation, agent_id is null


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ExecutionStatus(str, enum.Enum):
    """
    Lifecycle of one agent invocation.

    State machine:
        RUNNING → COMPLETED
                → FAILED

    A row is created in RUNNING and moves to exactly one terminal state.
    It is never reopened.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Agent(Base):
    """
    A configured LLM persona.

    Rows are created by seeding (see legal_ai/agents/profiles.py) and are
    read-only at runtime. Behaviour beyond model/temperature lives in the
    matching AgentProfile, keyed by `slug`.
    """

    __tablename__ = "ai_agents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    model: Mapped[str] = mapped_column(String(200), nullable=False)

    # {"temperature": 0.3, "max_tokens": 4096}
    config: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, slug='{self.slug}', model='{self.model}')>"


class Conversation(Base):
    """A persisted thread of messages owned by one user."""

    __tablename__ = "ai_conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Owner. Comes from the authenticated identity, never from request input.
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    agent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ai_agents.id", ondelete="SET NULL"), nullable=True,
    )

    # Linked legal folder/case in the CRUD application (no FK: external table)
    folder_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mode: Mapped[ConversationMode] = mapped_column(
        Enum(ConversationMode),
        nullable=False,
        default=ConversationMode.SINGLE,
    )

    # Running token counter. Only ever incremented.
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Workflow conversations record {"workflow": "<name>"} here
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True, default=dict,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    agent: Mapped["Agent | None"] = relationship("Agent", lazy="selectin")
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )
    executions: Mapped[list["AgentExecution"]] = relationship(
        "AgentExecution",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, user_id={self.user_id}, "
            f"mode={self.mode}, total_tokens={self.total_tokens})>"
        )


class Message(Base):
    """One turn in a conversation. Append-only."""

    __tablename__ = "ai_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("ai_conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    agent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ai_agents.id", ondelete="SET NULL"), nullable=True,
    )
    role: Mapped[MessageRole] = mapped_column(Enum(MessageRole), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="messages",
    )
    citations: Mapped[list["Citation"]] = relationship(
        "Citation",
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class Citation(Base):
    """A retrieval source surfaced alongside an assistant message."""

    __tablename__ = "ai_citations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("ai_messages.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence_score: Mapped[float | None] = mapped_column(nullable=True)

    message: Mapped["Message"] = relationship("Message", back_populates="citations")


class AgentExecution(Base):
    """Audit/status row for one agent invocation."""

    __tablename__ = "ai_agent_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("ai_conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ai_agents.id"), nullable=False,
    )
    status: Mapped[ExecutionStatus] = mapped_column(
        Enum(ExecutionStatus),
        nullable=False,
        default=ExecutionStatus.RUNNING,
    )
    input: Mapped[str] = mapped_column(Text, nullable=False)
    output: Mapped[str | None] = mapped_column(Text, nullable=True)

    # [{"tool_name": ..., "parameters": {...}, "result": {...}}, ...]
    tool_calls: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    tokens_used: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="executions",
    )

    def __repr__(self) -> str:
        return (
            f"<AgentExecution(id={self.id}, agent_id={self.agent_id}, "
            f"status={self.status})>"
        )


class KnowledgeBaseEntry(Base):
    """
    One embedded text chunk with its source metadata.

    Created by EmbeddingService.ingest(); only mutated by an explicit
    re-embedding (EmbeddingService.update_embedding()).
    """

    __tablename__ = "ai_knowledge_base"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions), nullable=True,
    )

    # legislation | jurisprudence | doctrine | document | web
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tags: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=list,
    )

    # Ingestion adds chunk_index / total_chunks on top of caller metadata
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONB, nullable=True, default=dict,
    )
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="pt-BR")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<KnowledgeBaseEntry(id={self.id}, source_type='{self.source_type}', "
            f"title='{self.title}')>"
        )


# =============================================================================
# Database Indexes
# =============================================================================

# HNSW index for cosine nearest-neighbour search over the knowledge base
knowledge_base_embedding_idx = Index(
    "idx_ai_knowledge_base_embedding_hnsw",
    KnowledgeBaseEntry.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)

# GIN index for tag overlap filters
knowledge_base_tags_idx = Index(
    "idx_ai_knowledge_base_tags",
    KnowledgeBaseEntry.tags,
    postgresql_using="gin",
)

# Conversation listing: newest activity first per user
conversation_user_updated_idx = Index(
    "idx_ai_conversations_user_updated",
    Conversation.user_id,
    Conversation.updated_at.desc(),
)
