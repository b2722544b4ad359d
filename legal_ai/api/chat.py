# =============================================================================
# Chat API — Agents, Conversations, Chat, Streaming, Workflows
# =============================================================================
#
#   GET    /ai/agents                    active agents
#   GET    /ai/conversations             caller's conversations (paginated)
#   GET    /ai/conversations/{id}        one conversation with messages
#   DELETE /ai/conversations/{id}        delete (cascades)
#   POST   /ai/chat                      one agent answer
#   POST   /ai/chat/stream               same, as Server-Sent Events
#   POST   /ai/workflows                 fixed multi-agent pipeline
#
# Handlers only validate the request, map errors and map the response.
#
# ERROR MAPPING:
#   NotFoundError                      → 404
#   UnauthorizedError                  → 403
#   AgentExecutionError, ProviderError → 502
#   ValueError (configuration)         → 503
#
# SSE FRAMING:
#   data: {"type": "content" | "delta", ...}\n\n
#   event: done\ndata: {...}\n\n
#   event: error\ndata: {"error": "..."}\n\n
# Once the response has started, errors can only be reported in-band as an
# `error` event.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import StreamingResponse

from legal_ai.agents.engine import AgentResult
from legal_ai.agents.orchestrator import ChatPayload, Orchestrator, StreamEvent
from legal_ai.api.deps import get_current_user_id, get_orchestrator
from legal_ai.db.models import ConversationMode
from legal_ai.errors import (
    AgentExecutionError,
    LegalAIError,
    NotFoundError,
    ProviderError,
    UnauthorizedError,
)
from legal_ai.models.requests import ChatRequest, WorkflowRequest
from legal_ai.models.responses import (
    AgentResponse,
    ChatResponse,
    ConversationDetailResponse,
    ConversationListResponse,
    ConversationResponse,
    WorkflowResponse,
    WorkflowStepResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI Agents"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (AgentExecutionError, ProviderError)):
        return HTTPException(status_code=502, detail=f"LLM service error: {exc}")
    if isinstance(exc, ValueError):
        return HTTPException(status_code=503, detail=f"Service configuration error: {exc}")
    return HTTPException(status_code=500, detail=str(exc))


def _payload(request: ChatRequest, user_id: int) -> ChatPayload:
    return ChatPayload(
        user_id=user_id,
        input=request.message,
        conversation_id=request.conversation_id,
        folder_id=request.folder_id,
        mode=ConversationMode(request.mode),
    )


def _step_fields(result: AgentResult) -> dict:
    return {
        "output": result.output,
        "tokens_used": result.tokens_used,
        "tool_calls": result.tool_calls,
        "citations": [c.to_dict() for c in result.citations],
    }


def sse_frame(event: StreamEvent) -> str:
    body = json.dumps(event.data, ensure_ascii=False, default=str)
    if event.type == "done":
        return f"event: done\ndata: {body}\n\n"
    return f"data: {body}\n\n"


def sse_error(message: str) -> str:
    return f"event: error\ndata: {json.dumps({'error': message}, ensure_ascii=False)}\n\n"


# ---------------------------------------------------------------------------
# Agents & conversations
# ---------------------------------------------------------------------------


@router.get("/agents", response_model=list[AgentResponse], summary="List active agents")
async def list_agents(
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> list[AgentResponse]:
    agents = await orchestrator.list_agents()
    return [AgentResponse.model_validate(agent) for agent in agents]


@router.get(
    "/conversations",
    response_model=ConversationListResponse,
    summary="List the caller's conversations, most recently active first",
)
async def list_conversations(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    folder_id: int | None = Query(default=None, gt=0),
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> ConversationListResponse:
    listing = await orchestrator.list_conversations(
        user_id, page=page, limit=per_page, folder_id=folder_id,
    )
    return ConversationListResponse(
        items=[ConversationResponse.model_validate(c) for c in listing["items"]],
        total=listing["total"],
        page=listing["page"],
        limit=listing["limit"],
    )


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationDetailResponse,
    summary="Get a conversation with its messages and citations",
)
async def get_conversation(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> ConversationDetailResponse:
    try:
        conversation = await orchestrator.get_conversation(conversation_id, user_id)
    except LegalAIError as e:
        raise _http_error(e) from e
    return ConversationDetailResponse.model_validate(conversation)


@router.delete(
    "/conversations/{conversation_id}",
    status_code=204,
    summary="Delete a conversation, its messages and its executions",
)
async def delete_conversation(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> Response:
    try:
        await orchestrator.delete_conversation(conversation_id, user_id)
    except LegalAIError as e:
        raise _http_error(e) from e
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/chat", response_model=ChatResponse, summary="Send a message to the agents")
async def chat(
    request: ChatRequest,
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    logger.info(
        "Chat request: user=%d, conversation=%s, folder=%s",
        user_id, request.conversation_id, request.folder_id,
    )
    try:
        outcome = await orchestrator.execute(_payload(request, user_id))
    except (LegalAIError, ValueError) as e:
        logger.error("Chat failed: %s", e)
        raise _http_error(e) from e

    return ChatResponse(
        conversation_id=outcome.conversation_id,
        conversation_title=outcome.conversation_title,
        agent_slug=outcome.agent_slug,
        metadata=outcome.result.metadata,
        **_step_fields(outcome.result),
    )


@router.post(
    "/chat/stream",
    summary="Send a message and receive the answer as Server-Sent Events",
    response_class=StreamingResponse,
)
async def chat_stream(
    request: ChatRequest,
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    payload = _payload(request, user_id)

    async def frames() -> AsyncIterator[str]:
        try:
            async for event in orchestrator.execute_stream(payload):
                yield sse_frame(event)
        except (LegalAIError, ValueError) as e:
            logger.error("Chat stream failed: %s", e)
            yield sse_error(str(e))
        except Exception as e:
            # The response has already started, so failures go in-band
            logger.exception("Chat stream failed unexpectedly: %s", e)
            yield sse_error(f"Internal error: {type(e).__name__}")

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


@router.post(
    "/workflows",
    response_model=WorkflowResponse,
    summary="Run a multi-agent workflow",
)
async def execute_workflow(
    request: WorkflowRequest,
    user_id: int = Depends(get_current_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> WorkflowResponse:
    logger.info("Workflow request: user=%d, workflow=%s", user_id, request.workflow)
    try:
        outcome = await orchestrator.execute_workflow(
            user_id, request.message, request.workflow, request.folder_id,
        )
    except (LegalAIError, ValueError) as e:
        logger.error("Workflow %s failed: %s", request.workflow, e)
        raise _http_error(e) from e

    return WorkflowResponse(
        workflow=outcome.workflow,
        conversation_id=outcome.conversation_id,
        results=[
            WorkflowStepResponse(agent_slug=slug, **_step_fields(result))
            for slug, result in zip(outcome.agent_slugs, outcome.results)
        ],
        summary=outcome.summary,
    )
