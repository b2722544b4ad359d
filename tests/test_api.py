# =============================================================================
# Integration Tests — Chat API
# =============================================================================
#
# Drives the FastAPI app through TestClient with an Orchestrator built on
# in-memory fakes. A small middleware stands in for the host application's
# authentication by setting request.state.user_id from a header.
# =============================================================================

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from legal_ai.agents.orchestrator import Orchestrator, StreamEvent
from legal_ai.agents.profiles import AGENT_PROFILES
from legal_ai.api.chat import sse_error, sse_frame
from legal_ai.errors import ProviderError
from legal_ai.main import create_app
from legal_ai.services.llm import StreamDelta
from legal_ai.tools.catalog import build_tool_registry
from tests.fakes import (
    FakeAgentRepository,
    FakeConversationRepository,
    FakeEntities,
    FakeExecutionRepository,
    FakeLLM,
    FakeMessageRepository,
    FakeRag,
    make_agent,
    text,
)


def _client(llm: FakeLLM | None = None, stream_mode: str = "buffered") -> TestClient:
    entities = FakeEntities()
    app = create_app(entity_repository=entities)

    @app.middleware("http")
    async def fake_auth(request, call_next):
        user = request.headers.get("X-Test-User")
        if user:
            request.state.user_id = int(user)
        return await call_next(request)

    rag = FakeRag()
    app.state.orchestrator = Orchestrator(
        llm or FakeLLM(),
        rag,
        build_tool_registry(entities, rag),
        agents=FakeAgentRepository(
            [make_agent(slug, i) for i, slug in enumerate(AGENT_PROFILES, start=1)]
        ),
        conversations=FakeConversationRepository(),
        messages=FakeMessageRepository(),
        executions=FakeExecutionRepository(),
        stream_mode=stream_mode,
    )
    return TestClient(app)


USER_7 = {"X-Test-User": "7"}
USER_8 = {"X-Test-User": "8"}


class TestSseFraming:
    def test_data_frame(self):
        frame = sse_frame(StreamEvent("delta", {"type": "delta", "content": "Olá"}))
        assert frame == 'data: {"type": "delta", "content": "Olá"}\n\n'

    def test_done_frame_is_named(self):
        frame = sse_frame(StreamEvent("done", {"type": "done"}))
        assert frame.startswith("event: done\ndata: ")
        assert frame.endswith("\n\n")

    def test_error_frame(self):
        assert sse_error("falhou") == 'event: error\ndata: {"error": "falhou"}\n\n'


class TestChatApi:
    def test_health(self):
        response = _client().get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_requires_authenticated_user(self):
        response = _client().post("/ai/chat", json={"message": "oi"})
        assert response.status_code == 401

    def test_chat(self):
        client = _client(FakeLLM([text("Prazo de 15 dias.", tokens=20)]))
        response = client.post(
            "/ai/chat", json={"message": "Preciso calcular o prazo para recurso"}, headers=USER_7,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["agent_slug"] == "deadline-manager"
        assert body["output"] == "Prazo de 15 dias."
        assert body["tokens_used"] == 20
        assert body["metadata"]["agent_slug"] == "deadline-manager"

    @pytest.mark.parametrize(
        "payload",
        [{"message": ""}, {"message": "x" * 10001}, {"message": "oi", "folder_id": 0}],
    )
    def test_invalid_body(self, payload):
        response = _client().post("/ai/chat", json=payload, headers=USER_7)
        assert response.status_code == 422

    def test_foreign_conversation_is_forbidden(self):
        client = _client()
        first = client.post("/ai/chat", json={"message": "oi"}, headers=USER_7).json()

        response = client.post(
            "/ai/chat",
            json={"message": "oi", "conversation_id": first["conversation_id"]},
            headers=USER_8,
        )
        assert response.status_code == 403

    def test_missing_conversation(self):
        response = _client().post(
            "/ai/chat", json={"message": "oi", "conversation_id": 42}, headers=USER_7,
        )
        assert response.status_code == 404

    def test_agent_failure_is_bad_gateway(self):
        client = _client(FakeLLM([ProviderError("AI generation failed: 500")]))
        response = client.post("/ai/chat", json={"message": "oi"}, headers=USER_7)
        assert response.status_code == 502
        assert response.json()["detail"].startswith("LLM service error:")

    def test_stream_buffered(self):
        client = _client(FakeLLM([text("Resposta", tokens=5)]))
        response = client.post("/ai/chat/stream", json={"message": "oi"}, headers=USER_7)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = [f for f in response.text.split("\n\n") if f]
        assert json.loads(frames[0].removeprefix("data: "))["content"] == "Resposta"
        assert frames[-1].startswith("event: done\n")

    def test_stream_incremental(self):
        llm = FakeLLM(streams=[[StreamDelta("Olá"), StreamDelta(tokens=2)]])
        client = _client(llm, stream_mode="incremental")
        response = client.post("/ai/chat/stream", json={"message": "oi"}, headers=USER_7)

        frames = [f for f in response.text.split("\n\n") if f]
        assert json.loads(frames[0].removeprefix("data: ")) == {"type": "delta", "content": "Olá"}
        assert frames[-1].startswith("event: done\n")

    def test_stream_error_is_in_band(self):
        response = _client().post(
            "/ai/chat/stream", json={"message": "oi", "conversation_id": 42}, headers=USER_7,
        )
        assert response.status_code == 200
        assert response.text.startswith("event: error\n")

    def test_unexpected_stream_failure_is_in_band(self):
        class BrokenOrchestrator:
            async def execute_stream(self, payload):
                raise RuntimeError("database connection lost")
                yield

        client = _client()
        client.app.state.orchestrator = BrokenOrchestrator()
        response = client.post("/ai/chat/stream", json={"message": "oi"}, headers=USER_7)

        assert response.status_code == 200
        assert response.text == sse_error("Internal error: RuntimeError")


class TestConversationsApi:
    def test_list_get_delete(self):
        client = _client()
        created = client.post("/ai/chat", json={"message": "oi"}, headers=USER_7).json()
        conversation_id = created["conversation_id"]

        listing = client.get("/ai/conversations", headers=USER_7).json()
        assert listing["total"] == 1
        assert listing["items"][0]["id"] == conversation_id

        assert client.get("/ai/conversations", headers=USER_8).json()["total"] == 0
        assert client.get(f"/ai/conversations/{conversation_id}", headers=USER_8).status_code == 404

        detail = client.get(f"/ai/conversations/{conversation_id}", headers=USER_7)
        assert detail.status_code == 200
        assert detail.json()["mode"] == "single"

        assert client.delete(f"/ai/conversations/{conversation_id}", headers=USER_7).status_code == 204
        assert client.get(f"/ai/conversations/{conversation_id}", headers=USER_7).status_code == 404

    def test_agents(self):
        response = _client().get("/ai/agents", headers=USER_7)
        assert response.status_code == 200
        assert [a["slug"] for a in response.json()] == list(AGENT_PROFILES)


class TestWorkflowsApi:
    def test_unknown_workflow(self):
        response = _client().post(
            "/ai/workflows", json={"workflow": "nope", "message": "x"}, headers=USER_7,
        )
        assert response.status_code == 403

    def test_litigation_strategy(self):
        response = _client().post(
            "/ai/workflows",
            json={"workflow": "litigation-strategy", "message": "dano moral"},
            headers=USER_7,
        )

        assert response.status_code == 200
        body = response.json()
        assert [r["agent_slug"] for r in body["results"]] == [
            "legal-research",
            "case-strategy",
            "deadline-manager",
        ]
        assert body["summary"].startswith("# Resumo do Workflow: litigation-strategy")
