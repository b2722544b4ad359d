# =============================================================================
# Database Package
# =============================================================================
# Provides the async SQLAlchemy engine, ORM models and repositories.
#
# Key exports:
#   - async_session_factory: session factory used by the repositories
#   - Base: SQLAlchemy declarative base for ORM models
#   - Agent, Conversation, Message, Citation, AgentExecution,
#     KnowledgeBaseEntry: ORM models
#   - AgentRepository, ConversationRepository, MessageRepository,
#     ExecutionRepository: the persistence interface used by the core
# =============================================================================
