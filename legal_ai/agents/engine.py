# =============================================================================
# Agent Execution Engine — One Engine, Many Profiles
# =============================================================================
#
# Runs a single agent invocation end to end:
#
#   1. Look up the agent row by slug           (NotFoundError, no bookkeeping)
#   2. Create the execution row                 (RUNNING)
#   3. Retrieve context                         (profile.context_strategy)
#   4. Build messages                           (system + context + history + input)
#   5. First chat call with the agent's tools
#   6. Tool loop: run every requested tool in order through the registry,
#      then a second chat call WITHOUT tools over the results
#   7. Derive citations from the retrieved sources
#   8. Mark the execution COMPLETED             (or FAILED, then raise)
#
# DESIGN DECISION: A single tool round.
# The second call is made without tools, so the model has to answer from
# the tool results it already has. One round is enough for the lookups
# these agents do and bounds latency and cost per request.
#
# DESIGN DECISION: Tokens = first call + second call.
# Both calls are billed, so both are reported and accumulated on the
# conversation.
#
# DESIGN DECISION: The execution row is closed BEFORE the error leaves.
# Whatever fails after step 2, the row is marked FAILED with the message
# and only then is AgentExecutionError raised, so no execution is ever
# left RUNNING by a failed request.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass, field
from typing import Any

from legal_ai.agents.profiles import AgentProfile
from legal_ai.agents.prompts import GROUNDING_DIRECTIVE
from legal_ai.config import settings
from legal_ai.db.models import Agent
from legal_ai.db.repositories import AgentRepository, ExecutionRepository
from legal_ai.errors import AgentExecutionError, NotFoundError
from legal_ai.services.llm import LLMProvider, ToolCall
from legal_ai.services.rag import RagService, RetrievedContext, SearchResult
from legal_ai.tools.base import ToolRegistry
from legal_ai.tools.entities import BASELINE_TOOL_NAMES

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class AgentPayload:
    """What an agent is asked to do, and on whose behalf."""

    input: str
    user_id: int
    conversation_id: int
    folder_id: int | None = None
    history: list[dict[str, str]] = field(default_factory=list)


@dataclass
class SourceCitation:
    source_type: str
    source_url: str | None
    source_title: str | None
    excerpt: str
    confidence_score: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AgentResult:
    output: str
    tokens_used: int
    tool_calls: list[dict[str, Any]]
    citations: list[SourceCitation]
    metadata: dict[str, Any]


def build_citations(sources: list[SearchResult]) -> list[SourceCitation]:
    return [
        SourceCitation(
            source_type=source.source_type,
            source_url=source.source_url,
            source_title=source.title,
            excerpt=source.content[: settings.citation_excerpt_length],
            confidence_score=source.confidence,
        )
        for source in sources
    ]


def tool_result_message(name: str, result: Any) -> dict[str, str]:
    """The user turn that hands one tool result back to the model."""
    return {
        "role": "user",
        "content": f"Tool {name} result: {json.dumps(result, ensure_ascii=False, default=str)}",
    }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AgentEngine:
    def __init__(
        self,
        profile: AgentProfile,
        llm: LLMProvider,
        rag: RagService,
        tools: ToolRegistry,
        agents: AgentRepository,
        executions: ExecutionRepository,
    ) -> None:
        self.profile = profile
        self._llm = llm
        self._rag = rag
        # The model can only call what this agent offers
        self._tools = tools.select([*BASELINE_TOOL_NAMES, *profile.extra_tools])
        self._agents = agents
        self._executions = executions

    @property
    def tool_names(self) -> list[str]:
        return self._tools.names

    def build_messages(
        self, payload: AgentPayload, context: str = "",
    ) -> list[dict[str, str]]:
        system_prompt = self.profile.system_prompt
        if context:
            system_prompt = f"{system_prompt}\n\n{context}\n\n{GROUNDING_DIRECTIVE}"

        return [
            {"role": "system", "content": system_prompt},
            *payload.history,
            {"role": "user", "content": payload.input},
        ]

    async def _load_agent(self) -> Agent:
        agent = await self._agents.find_by_slug(self.profile.slug)
        if agent is None:
            raise NotFoundError(f"Agent '{self.profile.slug}' not found")
        return agent

    def _sampling(self, agent: Agent) -> dict[str, Any]:
        config = agent.config or {}
        return {
            "model": agent.model,
            "temperature": config.get("temperature", settings.llm_temperature),
            "max_tokens": config.get("max_tokens", settings.llm_max_tokens),
        }

    async def _run_tools(self, calls: list[ToolCall], user_id: int) -> list[dict[str, Any]]:
        """Execute requested tools sequentially, in the order requested."""
        trace = []
        for call in calls:
            result = await self._tools.execute(call.name, call.arguments, user_id)
            try:
                parameters = json.loads(call.arguments) if call.arguments else {}
            except ValueError:
                parameters = call.arguments
            trace.append({"tool_name": call.name, "parameters": parameters, "result": result})
        return trace

    @staticmethod
    def _follow_up(
        messages: list[dict[str, str]], assistant_content: str, trace: list[dict[str, Any]],
    ) -> list[dict[str, str]]:
        follow_up = list(messages)
        if assistant_content:
            follow_up.append({"role": "assistant", "content": assistant_content})
        follow_up.extend(tool_result_message(t["tool_name"], t["result"]) for t in trace)
        return follow_up

    def _result(
        self,
        agent: Agent,
        execution_id: int,
        output: str,
        tokens: int,
        trace: list[dict[str, Any]],
        retrieved: RetrievedContext,
        duration_ms: int,
    ) -> AgentResult:
        return AgentResult(
            output=output,
            tokens_used=tokens,
            tool_calls=trace,
            citations=build_citations(retrieved.sources),
            metadata={
                "execution_id": execution_id,
                "agent_id": agent.id,
                "agent_slug": agent.slug,
                "model": agent.model,
                "duration_ms": duration_ms,
                "has_context": retrieved.has_context,
            },
        )

    async def _fail(self, execution_id: int, exc: Exception) -> AgentExecutionError:
        logger.exception(
            "Agent '%s' execution %d failed", self.profile.slug, execution_id,
        )
        try:
            await self._executions.fail(execution_id, str(exc) or exc.__class__.__name__)
        except Exception:
            logger.exception("Could not mark execution %d as failed", execution_id)
        return AgentExecutionError(f"Agent execution failed: {exc}", execution_id)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def execute(self, payload: AgentPayload) -> AgentResult:
        """
        Run the agent once and return its answer.

        Raises:
            NotFoundError: The agent is not seeded. No execution row exists.
            AgentExecutionError: Anything failed after the execution row was
                created. The row is already FAILED when this is raised.
        """
        agent = await self._load_agent()
        started = time.monotonic()
        execution_id = await self._executions.start(
            payload.conversation_id, agent.id, payload.input,
        )
        logger.info(
            "Executing agent '%s' (execution=%d, conversation=%d)",
            agent.slug, execution_id, payload.conversation_id,
        )

        try:
            retrieved = await self.profile.context_strategy(self._rag, payload)
            messages = self.build_messages(payload, retrieved.context)
            sampling = self._sampling(agent)

            first = await self._llm.chat(
                messages, tools=self._tools.definitions() or None, **sampling,
            )
            output, tokens, trace = first.content, first.tokens, []

            if first.tool_calls:
                trace = await self._run_tools(first.tool_calls, payload.user_id)
                second = await self._llm.chat(
                    self._follow_up(messages, first.content, trace), **sampling,
                )
                output = second.content
                tokens += second.tokens

            duration_ms = int((time.monotonic() - started) * 1000)
            await self._executions.complete(execution_id, output, trace, tokens, duration_ms)
        except Exception as exc:
            raise await self._fail(execution_id, exc) from exc

        logger.info(
            "Agent '%s' completed (execution=%d, tokens=%d, tools=%d, %dms)",
            agent.slug, execution_id, tokens, len(trace), duration_ms,
        )
        return self._result(agent, execution_id, output, tokens, trace, retrieved, duration_ms)

    async def execute_stream(self, payload: AgentPayload) -> AsyncIterator[str | AgentResult]:
        """
        Run the agent, yielding answer fragments as the provider emits them.

        Yields text fragments and, last, the AgentResult. The result's output
        is exactly the concatenation of the yielded fragments. Failure
        handling is the same as execute().
        """
        agent = await self._load_agent()
        started = time.monotonic()
        execution_id = await self._executions.start(
            payload.conversation_id, agent.id, payload.input,
        )
        logger.info(
            "Streaming agent '%s' (execution=%d, conversation=%d)",
            agent.slug, execution_id, payload.conversation_id,
        )

        try:
            retrieved = await self.profile.context_strategy(self._rag, payload)
            messages = self.build_messages(payload, retrieved.context)
            sampling = self._sampling(agent)

            emitted: list[str] = []
            first_text: list[str] = []
            tokens, calls, trace = 0, [], []
            async for delta in self._llm.chat_stream(
                messages, tools=self._tools.definitions() or None, **sampling,
            ):
                if delta.content:
                    first_text.append(delta.content)
                    emitted.append(delta.content)
                    yield delta.content
                tokens += delta.tokens
                calls.extend(delta.tool_calls)

            if calls:
                trace = await self._run_tools(calls, payload.user_id)
                follow_up = self._follow_up(messages, "".join(first_text), trace)
                async for delta in self._llm.chat_stream(follow_up, **sampling):
                    if delta.content:
                        emitted.append(delta.content)
                        yield delta.content
                    tokens += delta.tokens

            output = "".join(emitted)
            duration_ms = int((time.monotonic() - started) * 1000)
            await self._executions.complete(execution_id, output, trace, tokens, duration_ms)
        except (GeneratorExit, asyncio.CancelledError):
            # Consumer went away mid-stream
            logger.warning("Stream for execution %d closed early", execution_id)
            await self._executions.fail(execution_id, "Stream closed before completion")
            raise
        except Exception as exc:
            raise await self._fail(execution_id, exc) from exc

        yield self._result(agent, execution_id, output, tokens, trace, retrieved, duration_ms)
