# =============================================================================
# Unit Tests — Agent Execution Engine
# =============================================================================
#
# Runs AgentEngine against scripted LLM responses and in-memory
# repositories: execution bookkeeping, the single tool round, identity
# injection, citations and streaming.
# =============================================================================

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from legal_ai.agents.engine import AgentEngine, AgentPayload, AgentResult, build_citations
from legal_ai.agents.profiles import (
    AGENT_PROFILES,
    AgentProfile,
    client_facing,
    folder_deadlines,
    folder_documents,
)
from legal_ai.agents.prompts import GROUNDING_DIRECTIVE
from legal_ai.db.models import ExecutionStatus
from legal_ai.errors import AgentExecutionError, NotFoundError, ProviderError
from legal_ai.services.llm import StreamDelta, ToolCall
from legal_ai.services.rag import ComprehensiveContext, RetrievedContext, SearchResult
from legal_ai.tools.base import Tool, ToolRegistry
from legal_ai.tools.catalog import build_tool_registry
from legal_ai.tools.entities import BASELINE_TOOL_NAMES
from tests.fakes import (
    FakeAgentRepository,
    FakeEntities,
    FakeExecutionRepository,
    FakeLLM,
    FakeRag,
    make_agent,
    text,
    tool_request,
)


def _run(coro):
    return asyncio.run(coro)


class EchoUserTool(Tool):
    name = "echo_user"
    description = "Returns the parameters it was called with"

    async def execute(self, params: dict[str, Any]) -> dict:
        return {"user_id": params["user_id"], "params": params}


def _source(content: str = "Art. 5º Todos são iguais perante a lei", distance: float = 0.25):
    return SearchResult(
        id=1,
        content=content,
        source_type="legislation",
        distance=distance,
        title="CF/88 art. 5º",
        source_url="https://www.planalto.gov.br/cf",
    )


async def _no_context(rag, payload) -> RetrievedContext:
    return RetrievedContext()


def _profile(strategy=_no_context) -> AgentProfile:
    return AgentProfile(
        slug="test-agent",
        name="Test Agent",
        description="",
        model="test-model",
        temperature=0.2,
        max_tokens=1024,
        system_prompt="Você é um agente de testes.",
        context_strategy=strategy,
        extra_tools=("echo_user",),
    )


def _engine(llm, strategy=_no_context, agents=None, executions=None):
    executions = executions or FakeExecutionRepository()
    engine = AgentEngine(
        _profile(strategy),
        llm,
        FakeRag(),
        ToolRegistry([EchoUserTool()]),
        agents or FakeAgentRepository([make_agent("test-agent", 3)]),
        executions,
    )
    return engine, executions


def _payload(**overrides) -> AgentPayload:
    fields = {"input": "Qual o prazo?", "user_id": 7, "conversation_id": 1}
    fields.update(overrides)
    return AgentPayload(**fields)


async def _collect(stream) -> list:
    return [item async for item in stream]


# ---------------------------------------------------------------------------
# Test: execute()
# ---------------------------------------------------------------------------


class TestExecute:
    def test_plain_answer_completes_execution(self):
        llm = FakeLLM([text("Quinze dias úteis.", tokens=12)])
        engine, executions = _engine(llm)

        result = _run(engine.execute(_payload()))

        assert result.output == "Quinze dias úteis."
        assert result.tokens_used == 12
        assert result.tool_calls == []
        assert result.metadata["execution_id"] == 1
        assert result.metadata["agent_slug"] == "test-agent"
        assert result.metadata["has_context"] is False
        row = executions.rows[1]
        assert row["status"] is ExecutionStatus.COMPLETED
        assert row["output"] == "Quinze dias úteis."
        assert row["tokens_used"] == 12

    def test_sampling_comes_from_agent_row(self):
        llm = FakeLLM([text("ok")])
        agents = FakeAgentRepository(
            [make_agent("test-agent", 3, model="row-model", temperature=0.0, max_tokens=99)]
        )
        engine, _ = _engine(llm, agents=agents)

        _run(engine.execute(_payload()))

        call = llm.calls[0]
        assert call["model"] == "row-model"
        assert call["temperature"] == 0.0
        assert call["max_tokens"] == 99

    def test_first_call_offers_agent_tools(self):
        llm = FakeLLM([text("ok")])
        engine, _ = _engine(llm)

        _run(engine.execute(_payload()))

        tools = llm.calls[0]["tools"]
        assert [t["function"]["name"] for t in tools] == ["echo_user"]

    def test_tool_round_injects_caller_identity(self):
        llm = FakeLLM(
            [
                tool_request(("echo_user", '{"user_id": 999, "folder_id": 4}'), tokens=5),
                text("Resposta final", tokens=7),
            ]
        )
        engine, executions = _engine(llm)

        result = _run(engine.execute(_payload(user_id=7)))

        trace = result.tool_calls[0]
        assert trace["tool_name"] == "echo_user"
        assert trace["parameters"] == {"user_id": 999, "folder_id": 4}
        assert trace["result"]["user_id"] == 7
        assert result.output == "Resposta final"
        assert result.tokens_used == 12
        assert executions.rows[1]["tool_calls"] == result.tool_calls

    def test_follow_up_call_has_no_tools(self):
        llm = FakeLLM([tool_request(("echo_user", "{}")), text("done")])
        engine, _ = _engine(llm)

        _run(engine.execute(_payload()))

        assert len(llm.calls) == 2
        assert llm.calls[1]["tools"] is None
        last = llm.calls[1]["messages"][-1]
        assert last["role"] == "user"
        assert last["content"].startswith("Tool echo_user result: ")

    def test_unknown_tool_is_reported_not_raised(self):
        llm = FakeLLM([tool_request(("drop_everything", "{}")), text("Não foi possível.")])
        engine, executions = _engine(llm)

        result = _run(engine.execute(_payload()))

        assert result.tool_calls[0]["result"] == {"error": "Tool not found"}
        assert executions.rows[1]["status"] is ExecutionStatus.COMPLETED

    def test_tools_run_in_requested_order(self):
        llm = FakeLLM(
            [
                tool_request(("echo_user", '{"n": 1}'), ("echo_user", '{"n": 2}')),
                text("ok"),
            ]
        )
        engine, _ = _engine(llm)

        result = _run(engine.execute(_payload()))

        assert [t["parameters"]["n"] for t in result.tool_calls] == [1, 2]

    def test_provider_failure_marks_execution_failed(self):
        llm = FakeLLM([ProviderError("AI generation failed: timeout")])
        engine, executions = _engine(llm)

        with pytest.raises(AgentExecutionError) as exc_info:
            _run(engine.execute(_payload()))

        assert exc_info.value.execution_id == 1
        row = executions.rows[1]
        assert row["status"] is ExecutionStatus.FAILED
        assert "timeout" in row["error_message"]

    def test_unknown_agent_creates_no_execution(self):
        engine, executions = _engine(FakeLLM(), agents=FakeAgentRepository([]))

        with pytest.raises(NotFoundError):
            _run(engine.execute(_payload()))

        assert executions.rows == {}


class TestMessagesAndCitations:
    def test_history_sits_between_system_and_input(self):
        engine, _ = _engine(FakeLLM())
        history = [
            {"role": "user", "content": "Olá"},
            {"role": "assistant", "content": "Como posso ajudar?"},
        ]

        messages = engine.build_messages(_payload(history=history))

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "Qual o prazo?"

    def test_no_context_keeps_plain_prompt(self):
        engine, _ = _engine(FakeLLM())
        messages = engine.build_messages(_payload())
        assert messages[0]["content"] == "Você é um agente de testes."

    def test_context_and_grounding_directive_appended(self):
        async def with_sources(rag, payload):
            return RetrievedContext(context="CONTEXTO X", sources=[_source("a" * 300)])

        llm = FakeLLM([text("ok")])
        engine, _ = _engine(llm, strategy=with_sources)

        result = _run(engine.execute(_payload()))

        system = llm.calls[0]["messages"][0]["content"]
        assert "CONTEXTO X" in system
        assert system.endswith(GROUNDING_DIRECTIVE)
        assert result.metadata["has_context"] is True
        citation = result.citations[0]
        assert len(citation.excerpt) == 200
        assert citation.confidence_score == pytest.approx(0.75)
        assert citation.source_title == "CF/88 art. 5º"

    def test_build_citations_short_content_untouched(self):
        citations = build_citations([_source("curto")])
        assert citations[0].excerpt == "curto"
        assert citations[0].to_dict()["source_type"] == "legislation"


# ---------------------------------------------------------------------------
# Test: execute_stream()
# ---------------------------------------------------------------------------


class TestExecuteStream:
    def test_fragments_then_result(self):
        llm = FakeLLM(
            streams=[[StreamDelta("Olá "), StreamDelta("mundo"), StreamDelta(tokens=9)]]
        )
        engine, executions = _engine(llm)

        items = _run(_collect(engine.execute_stream(_payload())))

        assert items[:2] == ["Olá ", "mundo"]
        result = items[-1]
        assert isinstance(result, AgentResult)
        assert result.output == "Olá mundo"
        assert result.tokens_used == 9
        assert executions.rows[1]["status"] is ExecutionStatus.COMPLETED

    def test_tool_call_on_final_delta_streams_follow_up(self):
        llm = FakeLLM(
            streams=[
                [
                    StreamDelta("Vou verificar. "),
                    StreamDelta(tokens=4, tool_calls=[ToolCall("c1", "echo_user", "{}")]),
                ],
                [StreamDelta("Pronto."), StreamDelta(tokens=6)],
            ]
        )
        engine, executions = _engine(llm)

        items = _run(_collect(engine.execute_stream(_payload())))

        fragments = [i for i in items if isinstance(i, str)]
        result = items[-1]
        assert result.output == "".join(fragments) == "Vou verificar. Pronto."
        assert result.tokens_used == 10
        assert len(result.tool_calls) == 1
        assert llm.calls[1]["tools"] is None
        assert executions.rows[1]["output"] == "Vou verificar. Pronto."

    def test_consumer_closing_early_fails_execution(self):
        llm = FakeLLM(streams=[[StreamDelta("Olá "), StreamDelta("mundo"), StreamDelta(tokens=3)]])
        engine, executions = _engine(llm)

        async def scenario():
            stream = engine.execute_stream(_payload())
            first = await stream.__anext__()
            await stream.aclose()
            return first

        assert _run(scenario()) == "Olá "
        assert executions.rows[1]["status"] is ExecutionStatus.FAILED


# ---------------------------------------------------------------------------
# Test: profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    def test_six_agents(self):
        assert set(AGENT_PROFILES) == {
            "legal-research",
            "document-analyzer",
            "case-strategy",
            "deadline-manager",
            "legal-writer",
            "client-communicator",
        }

    def test_each_agent_gets_baseline_plus_its_tools(self):
        registry = build_tool_registry(FakeEntities(), FakeRag())
        for profile in AGENT_PROFILES.values():
            engine = AgentEngine(
                profile, FakeLLM(), FakeRag(), registry,
                FakeAgentRepository(), FakeExecutionRepository(),
            )
            assert engine.tool_names == [*BASELINE_TOOL_NAMES, *profile.extra_tools]

    def test_folder_strategies_skip_without_folder(self):
        rag = FakeRag()
        assert _run(folder_documents(rag, _payload())).context == ""
        assert _run(folder_deadlines(rag, _payload())).context == ""
        assert rag.calls == []

    def test_folder_documents_uses_ten_results(self):
        rag = FakeRag(documents=RetrievedContext(context="DOCS"))
        context = _run(folder_documents(rag, _payload(folder_id=12)))
        assert context.context == "DOCS"
        assert rag.calls == [("document", "Qual o prazo?", 12, 10)]

    def test_folder_deadlines_uses_fixed_query(self):
        rag = FakeRag()
        _run(folder_deadlines(rag, _payload(folder_id=12)))
        assert rag.calls == [("document", "movimentações processuais prazos", 12, 5)]

    def test_client_facing_cites_documents_only(self):
        document = _source("contrato social")
        rag = FakeRag(
            comprehensive=ComprehensiveContext(
                context="TUDO",
                sources=[_source(), document],
                legislation=[_source()],
                documents=[document],
            )
        )
        context = _run(client_facing(rag, _payload(folder_id=3)))
        assert context.context == "TUDO"
        assert context.sources == [document]
        assert rag.calls == [("comprehensive", "Qual o prazo?", 3, False)]

    def test_seed_default_agents(self):
        from legal_ai.agents.profiles import seed_default_agents

        agents = FakeAgentRepository()
        assert _run(seed_default_agents(agents)) == 6
        research = agents.agents["legal-research"]
        assert research.config == {"temperature": 0.3, "max_tokens": 4096}
        assert research.is_active is True
