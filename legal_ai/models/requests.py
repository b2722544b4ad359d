# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the chat API. The caller's identity is never
# part of a request body: it comes from the authenticated session
# (see legal_ai/api/deps.py).
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """
    Request body for POST /ai/chat and POST /ai/chat/stream.

    The orchestrator picks the agent from the message text. Passing a
    `conversation_id` continues an existing thread owned by the caller.

    Example:
        {
            "message": "Preciso calcular o prazo para recurso",
            "folder_id": 12
        }
    """

    message: str = Field(
        ...,
        min_length=1,
        max_length=10000,
        description="The request in natural language",
        examples=["Pesquise jurisprudência do STJ sobre dano moral"],
    )

    conversation_id: int | None = Field(
        default=None,
        gt=0,
        description="Existing conversation to continue. Omit to start a new one.",
    )

    # Links retrieval (case documents) and the conversation to a case folder
    folder_id: int | None = Field(
        default=None,
        gt=0,
        description="Case folder the request is about",
    )

    mode: Literal["single", "multi"] = Field(default="single")

    model_config = ConfigDict(str_strip_whitespace=True)


class WorkflowRequest(BaseModel):
    """Request body for POST /ai/workflows."""

    # Validated by the orchestrator so an unknown name is rejected before
    # anything is created
    workflow: str = Field(
        ...,
        description="full-case-analysis, contract-review or litigation-strategy",
        examples=["full-case-analysis"],
    )

    message: str = Field(default="", max_length=10000)

    folder_id: int | None = Field(default=None, gt=0)

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [
                {
                    "workflow": "litigation-strategy",
                    "message": "Ação de indenização por dano moral contra companhia aérea",
                    "folder_id": 12,
                }
            ]
        },
    )
