# =============================================================================
# Orchestrator — Conversation Resolution, Agent Routing, Workflows
# =============================================================================
#
# Entry point for every chat request:
#
#   1. Resolve the conversation (load + ownership check, or create)
#   2. Route the input to an agent slug (keyword rules, first match wins)
#   3. Persist the user message, run the agent engine with the history
#   4. Persist the assistant message with its citations
#   5. Add the tokens to the conversation's running total
#
# DESIGN DECISION: Rule-based routing over LLM classification.
# Zero latency, zero cost, and easy to test. The table is ordered data:
# the first rule with any keyword contained in the lowercased input wins,
# so "prazo do recurso no STJ" goes to legal-research, not deadline-manager.
# Unmatched input falls back to legal-research.
#
# DESIGN DECISION: Routing happens on every turn.
# A conversation remembers the agent it started with, but each new input
# is routed again, so a thread can move from research to deadlines.
#
# STREAMING (settings.stream_mode):
#   buffered     run the whole execution, then one `content` event with the
#                full answer and one `done` event
#   incremental  one `delta` event per provider fragment, then `done`
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from legal_ai.agents.engine import AgentEngine, AgentPayload, AgentResult
from legal_ai.agents.profiles import AGENT_PROFILES, AgentProfile
from legal_ai.agents.workflows import WORKFLOWS, WorkflowStep, run_workflow, workflow_summary
from legal_ai.config import settings
from legal_ai.db.models import Agent, Conversation, ConversationMode, MessageRole
from legal_ai.db.repositories import (
    AgentRepository,
    ConversationRepository,
    ExecutionRepository,
    MessageRepository,
)
from legal_ai.errors import NotFoundError, UnauthorizedError
from legal_ai.services.llm import LLMProvider
from legal_ai.services.rag import RagService
from legal_ai.tools.base import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_AGENT_SLUG = "legal-research"

TITLE_MAX_LENGTH = 50

ROUTING_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        (
            "pesquisar", "jurisprudência", "precedente", "stf", "stj", "tst",
            "legislação", "lei", "código", "súmula", "doutrina",
        ),
        "legal-research",
    ),
    (
        (
            "analisar contrato", "revisar contrato", "cláusula", "analisar documento",
            "analisar petição", "analisar decisão", "documento", "pdf",
        ),
        "document-analyzer",
    ),
    (
        (
            "estratégia", "chance de êxito", "avaliar risco", "plano", "tática",
            "como proceder", "melhor caminho",
        ),
        "case-strategy",
    ),
    (
        (
            "prazo", "vencimento", "calcular prazo", "urgência", "deadline",
            "feriado", "quando vence",
        ),
        "deadline-manager",
    ),
    (
        (
            "redigir", "escrever", "elaborar petição", "elaborar contrato",
            "parecer", "minuta", "draft",
        ),
        "legal-writer",
    ),
    (
        (
            "explicar para cliente", "relatório executivo", "resumo", "comunicar",
            "traduzir", "simplificar",
        ),
        "client-communicator",
    ),
)


def route_slug(user_input: str) -> str:
    """Agent slug for `user_input`: first rule with a keyword hit, else the default."""
    text = user_input.lower()
    for keywords, slug in ROUTING_RULES:
        if any(keyword in text for keyword in keywords):
            return slug
    return DEFAULT_AGENT_SLUG


def conversation_title(user_input: str) -> str:
    if len(user_input) > TITLE_MAX_LENGTH:
        return user_input[: TITLE_MAX_LENGTH - 3] + "..."
    return user_input


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ChatPayload:
    user_id: int
    input: str
    conversation_id: int | None = None
    folder_id: int | None = None
    mode: ConversationMode = ConversationMode.SINGLE


@dataclass
class ChatOutcome:
    conversation_id: int
    conversation_title: str | None
    agent_slug: str
    result: AgentResult


@dataclass
class StreamEvent:
    """One frame of a streamed answer: `content`, `delta` or `done`."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkflowOutcome:
    workflow: str
    conversation_id: int
    results: list[AgentResult]
    agent_slugs: list[str]
    summary: str


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    def __init__(
        self,
        llm: LLMProvider,
        rag: RagService,
        tools: ToolRegistry,
        agents: AgentRepository | None = None,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
        executions: ExecutionRepository | None = None,
        profiles: dict[str, AgentProfile] | None = None,
        stream_mode: str | None = None,
    ) -> None:
        self._agents = agents or AgentRepository()
        self._conversations = conversations or ConversationRepository()
        self._messages = messages or MessageRepository()
        executions = executions or ExecutionRepository()
        self._stream_mode = stream_mode or settings.stream_mode

        # One engine per profile, built once
        self._engines: dict[str, AgentEngine] = {
            slug: AgentEngine(profile, llm, rag, tools, self._agents, executions)
            for slug, profile in (profiles or AGENT_PROFILES).items()
        }

    def engine(self, slug: str) -> AgentEngine:
        try:
            return self._engines[slug]
        except KeyError:
            raise NotFoundError(f"Agent '{slug}' not found") from None

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------

    async def select_agent(
        self, user_input: str, mode: ConversationMode = ConversationMode.SINGLE,
    ) -> Agent:
        slug = route_slug(user_input)
        agent = await self._agents.find_by_slug(slug)
        if agent is None:
            raise NotFoundError(f"Agent '{slug}' not found")
        logger.info("Routed input to '%s' (mode=%s)", slug, mode.value)
        return agent

    async def resolve_conversation(
        self,
        user_id: int,
        user_input: str,
        conversation_id: int | None = None,
        folder_id: int | None = None,
        mode: ConversationMode = ConversationMode.SINGLE,
        agent: Agent | None = None,
    ) -> Conversation:
        if conversation_id is not None:
            conversation = await self._conversations.get(conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            if conversation.user_id != user_id:
                raise UnauthorizedError("Unauthorized access to conversation")
            return conversation

        if agent is None:
            agent = await self.select_agent(user_input, mode)
        return await self._conversations.create(
            user_id=user_id,
            agent_id=agent.id,
            title=conversation_title(user_input),
            mode=mode,
            folder_id=folder_id,
        )

    async def _prepare(self, payload: ChatPayload) -> tuple[Conversation, Agent, AgentPayload]:
        # Routed on every turn, so a follow-up may reach a different agent
        agent = await self.select_agent(payload.input, payload.mode)
        conversation = await self.resolve_conversation(
            payload.user_id,
            payload.input,
            payload.conversation_id,
            payload.folder_id,
            payload.mode,
            agent=agent,
        )

        # History is read before this turn's user message is stored
        history = await self._messages.history(conversation.id)
        await self._messages.add(
            conversation.id, MessageRole.USER, payload.input, agent_id=agent.id,
        )
        agent_payload = AgentPayload(
            input=payload.input,
            user_id=payload.user_id,
            conversation_id=conversation.id,
            folder_id=payload.folder_id or conversation.folder_id,
            history=history,
        )
        return conversation, agent, agent_payload

    async def _record_answer(
        self, conversation_id: int, agent: Agent, result: AgentResult,
    ) -> None:
        await self._messages.add(
            conversation_id,
            MessageRole.ASSISTANT,
            result.output,
            agent_id=agent.id,
            tokens_used=result.tokens_used,
            citations=[c.to_dict() for c in result.citations],
        )
        await self._conversations.add_tokens(conversation_id, result.tokens_used)

    # -----------------------------------------------------------------------
    # Chat
    # -----------------------------------------------------------------------

    async def execute(self, payload: ChatPayload) -> ChatOutcome:
        conversation, agent, agent_payload = await self._prepare(payload)
        result = await self.engine(agent.slug).execute(agent_payload)
        await self._record_answer(conversation.id, agent, result)
        return ChatOutcome(
            conversation_id=conversation.id,
            conversation_title=conversation.title,
            agent_slug=agent.slug,
            result=result,
        )

    async def execute_stream(self, payload: ChatPayload) -> AsyncIterator[StreamEvent]:
        conversation, agent, agent_payload = await self._prepare(payload)
        conversation_info = {"id": conversation.id, "title": conversation.title}
        engine = self.engine(agent.slug)

        if self._stream_mode == "incremental":
            result: AgentResult | None = None
            async for item in engine.execute_stream(agent_payload):
                if isinstance(item, AgentResult):
                    result = item
                else:
                    yield StreamEvent("delta", {"type": "delta", "content": item})
            await self._record_answer(conversation.id, agent, result)
            yield StreamEvent("done", self._done_data(result, conversation_info))
            return

        result = await engine.execute(agent_payload)
        await self._record_answer(conversation.id, agent, result)
        yield StreamEvent(
            "content",
            {"type": "content", "content": result.output, "conversation": conversation_info},
        )
        yield StreamEvent("done", self._done_data(result))

    @staticmethod
    def _done_data(
        result: AgentResult, conversation: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "done",
            "metadata": {
                "tokens": result.tokens_used,
                "citations": [c.to_dict() for c in result.citations],
            },
        }
        if conversation is not None:
            data["conversation"] = conversation
        return data

    # -----------------------------------------------------------------------
    # Workflows
    # -----------------------------------------------------------------------

    async def execute_workflow(
        self,
        user_id: int,
        user_input: str,
        workflow_name: str,
        folder_id: int | None = None,
    ) -> WorkflowOutcome:
        """
        Run a fixed multi-agent pipeline in a new "multi" conversation.

        Raises:
            UnauthorizedError: Unknown workflow name. Nothing is created.
            AgentExecutionError / NotFoundError: A step failed. Later steps
                did not run; earlier results stay persisted.
        """
        if workflow_name not in WORKFLOWS:
            raise UnauthorizedError(f"Unknown workflow: {workflow_name}")

        logger.info("[Workflow] Starting %s for user %d", workflow_name, user_id)
        conversation = await self._conversations.create(
            user_id=user_id,
            agent_id=None,
            title=f"Workflow: {workflow_name}",
            mode=ConversationMode.MULTI,
            folder_id=folder_id,
            metadata={"workflow": workflow_name},
        )

        async def run_step(step: WorkflowStep, instruction: str) -> AgentResult:
            engine = self.engine(step.agent_slug)
            result = await engine.execute(
                AgentPayload(
                    input=instruction,
                    user_id=user_id,
                    conversation_id=conversation.id,
                    folder_id=folder_id,
                )
            )
            await self._messages.add(
                conversation.id,
                MessageRole.ASSISTANT,
                result.output,
                agent_id=result.metadata["agent_id"],
                tokens_used=result.tokens_used,
                citations=[c.to_dict() for c in result.citations],
            )
            await self._conversations.add_tokens(conversation.id, result.tokens_used)
            return result

        state = await run_workflow(workflow_name, user_input or "", run_step)
        results, slugs = state["results"], state["slugs"]
        logger.info(
            "[Workflow] Completed %s with %d agents", workflow_name, len(results),
        )
        return WorkflowOutcome(
            workflow=workflow_name,
            conversation_id=conversation.id,
            results=results,
            agent_slugs=slugs,
            summary=workflow_summary(workflow_name, slugs, results),
        )

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def list_agents(self) -> list[Agent]:
        return await self._agents.list_active()

    async def list_conversations(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        folder_id: int | None = None,
    ) -> dict[str, Any]:
        items, total = await self._conversations.list_for_user(
            user_id, page=page, limit=limit, folder_id=folder_id,
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def _owned(self, conversation_id: int, user_id: int, with_messages: bool = False):
        if with_messages:
            conversation = await self._conversations.get_with_messages(conversation_id)
        else:
            conversation = await self._conversations.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def get_conversation(self, conversation_id: int, user_id: int) -> Conversation:
        return await self._owned(conversation_id, user_id, with_messages=True)

    async def delete_conversation(self, conversation_id: int, user_id: int) -> None:
        await self._owned(conversation_id, user_id)
        await self._conversations.delete(conversation_id)
        logger.info("Deleted conversation %d (user=%d)", conversation_id, user_id)
