# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data going OUT of the chat API. ORM rows are mapped with
# from_attributes; the knowledge base embedding and internal execution
# bookkeeping are never exposed.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from legal_ai.db.models import ConversationMode, MessageRole


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    service: str


class AgentResponse(BaseModel):
    id: int
    slug: str
    name: str
    description: str | None = None
    model: str
    config: dict | None = None

    model_config = ConfigDict(from_attributes=True)


class CitationResponse(BaseModel):
    source_type: str
    source_url: str | None = None
    source_title: str | None = None
    excerpt: str | None = None
    confidence_score: float | None = None

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    id: int
    role: MessageRole
    content: str
    agent_id: int | None = None
    tokens_used: int | None = None
    created_at: datetime
    citations: list[CitationResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ConversationResponse(BaseModel):
    id: int
    title: str | None = None
    agent_id: int | None = None
    folder_id: int | None = None
    mode: ConversationMode
    total_tokens: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationDetailResponse(ConversationResponse):
    messages: list[MessageResponse] = []


class ConversationListResponse(BaseModel):
    items: list[ConversationResponse]
    total: int
    page: int
    limit: int


class ToolCallTrace(BaseModel):
    tool_name: str
    parameters: Any = None
    result: Any = None


class ChatResponse(BaseModel):
    """Response for POST /ai/chat: one agent answer."""

    conversation_id: int
    conversation_title: str | None = None
    agent_slug: str
    output: str
    tokens_used: int
    tool_calls: list[ToolCallTrace] = []
    citations: list[CitationResponse] = []
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="execution_id, agent_id, agent_slug, model, duration_ms, has_context",
    )


class WorkflowStepResponse(BaseModel):
    agent_slug: str
    output: str
    tokens_used: int
    tool_calls: list[ToolCallTrace] = []
    citations: list[CitationResponse] = []


class WorkflowResponse(BaseModel):
    workflow: str
    conversation_id: int
    results: list[WorkflowStepResponse]
    summary: str
