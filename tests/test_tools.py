# =============================================================================
# Unit Tests — Tool Registry, Entity Tools, Research Tools
# =============================================================================
#
# Entity tools run against FakeEntities (user-scoped dict rows). Research
# tools run against a real RagService over an in-memory knowledge base, so
# the filtering and confidence threshold are exercised end to end.
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any
from unittest.mock import AsyncMock

import pytest

from legal_ai.services.embedding import EmbeddingService
from legal_ai.services.rag import RagService
from legal_ai.tools.base import (
    INVALID_ARGUMENTS,
    TOOL_NOT_FOUND,
    Tool,
    ToolRegistry,
    clamp_limit,
    optional_bool,
    optional_int,
    sanitize_search,
)
from legal_ai.tools.catalog import build_tool_registry
from legal_ai.tools.entities import CLIENT_NOT_FOUND, FOLDER_NOT_FOUND, QueryClientsTool
from legal_ai.tools.research import estimate_impact
from tests.fakes import FakeEmbedder, FakeEntities, MemoryCache, MemoryKnowledgeBase, hit


def _run(coro):
    return asyncio.run(coro)


class BrokenTool(Tool):
    name = "broken"

    async def execute(self, params: dict[str, Any]) -> dict:
        raise RuntimeError("database unavailable")


def _rag(hits) -> RagService:
    knowledge_base = MemoryKnowledgeBase(hits)
    embeddings = EmbeddingService(FakeEmbedder(), MemoryCache(), knowledge_base)
    return RagService(embeddings, knowledge_base, MemoryCache())


def _registry(hits=(), entities=None, today=date(2025, 1, 5)) -> ToolRegistry:
    return build_tool_registry(entities or FakeEntities(), _rag(list(hits)), today=lambda: today)


# ---------------------------------------------------------------------------
# Test: Registry
# ---------------------------------------------------------------------------


class TestToolRegistry:
    def test_duplicate_name_rejected(self):
        registry = ToolRegistry([BrokenTool()])
        with pytest.raises(ValueError):
            registry.register(BrokenTool())

    def test_unknown_tool(self):
        result = _run(ToolRegistry().execute("missing", "{}", 7))
        assert result == {"error": TOOL_NOT_FOUND}

    def test_malformed_arguments(self):
        registry = _registry()
        assert _run(registry.execute("query_clients", "{not json", 7)) == {"error": INVALID_ARGUMENTS}
        assert _run(registry.execute("query_clients", "[1, 2]", 7)) == {"error": INVALID_ARGUMENTS}

    def test_tool_exception_becomes_error_value(self):
        result = _run(ToolRegistry([BrokenTool()]).execute("broken", None, 7))
        assert result == {"error": "database unavailable"}

    def test_select_keeps_requested_order_and_skips_unknown(self):
        registry = _registry()
        selected = registry.select(["query_tasks", "nope", "query_clients"])
        assert selected.names == ["query_tasks", "query_clients"]

    def test_definitions_use_function_format(self):
        definition = _registry().get("query_clients").definition()
        assert definition["type"] == "function"
        assert definition["function"]["name"] == "query_clients"
        assert definition["function"]["parameters"]["type"] == "object"

    def test_catalog_names_are_unique(self):
        names = _registry().names
        assert len(names) == len(set(names)) == 20


class TestParameterHelpers:
    def test_sanitize_trims_and_bounds(self):
        assert sanitize_search("  Acme  ") == "Acme"
        assert len(sanitize_search("x" * 150)) == 100

    def test_sanitize_empty_is_none(self):
        assert sanitize_search("   ") is None
        assert sanitize_search(None) is None

    def test_sanitize_rejects_injection(self):
        for term in ("'; DROP TABLE clients", "a -- b", "1 UNION SELECT 2", 'say "hi"'):
            with pytest.raises(ValueError):
                sanitize_search(term)

    def test_sanitize_allows_words_containing_keywords(self):
        assert sanitize_search("Selection Ltda") == "Selection Ltda"

    def test_clamp_limit(self):
        assert clamp_limit(None, 10, 50) == 10
        assert clamp_limit("abc", 10, 50) == 10
        assert clamp_limit(500, 10, 50) == 50
        assert clamp_limit(0, 10, 50) == 1

    def test_optional_int(self):
        assert optional_int("12") == 12
        assert optional_int("") is None
        with pytest.raises(ValueError):
            optional_int("doze")

    def test_optional_bool(self):
        assert optional_bool("false") is False
        assert optional_bool(" Sim ") is True
        assert optional_bool(True) is True
        assert optional_bool(None) is None
        assert optional_bool("") is None


# ---------------------------------------------------------------------------
# Test: Entity tools
# ---------------------------------------------------------------------------


class TestEntityTools:
    def test_clients_scoped_to_caller(self):
        registry = _registry()
        mine = _run(registry.execute("query_clients", {}, 7))
        theirs = _run(registry.execute("query_clients", {"search": "acme"}, 8))
        assert [c["name"] for c in mine["clients"]] == ["Acme Ltda"]
        assert theirs == {"total": 0, "clients": []}

    def test_model_supplied_user_id_is_ignored(self):
        entities = FakeEntities()
        registry = _registry(entities=entities)
        _run(registry.execute("query_clients", {"user_id": 8}, 7))
        assert entities.calls == [("list_clients", 7)]

    def test_client_details_of_another_user(self):
        result = _run(_registry().execute("get_client_details", {"client_id": 2}, 7))
        assert result == {"error": CLIENT_NOT_FOUND}

    def test_missing_required_parameter(self):
        result = _run(_registry().execute("get_folder_details", {}, 7))
        assert "error" in result

    def test_injection_in_search_is_an_error_value(self):
        result = _run(_registry().execute("query_folders", {"search": "x'; DROP"}, 7))
        assert result["error"].startswith("Termo de busca")

    def test_movements_check_folder_ownership_first(self):
        entities = FakeEntities()
        result = _run(
            _registry(entities=entities).execute("query_folder_movements", {"folder_id": 20}, 7)
        )
        assert result == {"error": FOLDER_NOT_FOUND}
        assert ("list_movements", 7) not in entities.calls

    def test_documents_for_owned_folder(self):
        entities = FakeEntities()
        entities.documents = [{"id": 1, "folder_id": 10, "name": "inicial.pdf"}]
        result = _run(_registry(entities=entities).execute("query_documents", {"folder_id": 10}, 7))
        assert result["total"] == 1

    def test_limit_clamped_before_repository(self):
        entities = AsyncMock()
        entities.list_clients.return_value = []
        _run(QueryClientsTool(entities).execute({"user_id": 7, "limit": 500}))
        assert entities.list_clients.call_args.kwargs["limit"] == 50


# ---------------------------------------------------------------------------
# Test: Research tools
# ---------------------------------------------------------------------------


STF_RULING = (
    "Recurso extraordinário 0001234-56.2024.1.00.0000. Dano moral in re ipsa."
)


class TestResearchTools:
    def test_court_search_filters_by_tag_and_confidence(self):
        hits = [
            hit(STF_RULING, 0.1, "jurisprudence", ["STF"], "STF - RE 1.234", entry_id=1),
            hit("Acórdão do STJ", 0.1, "jurisprudence", ["STJ"], "STJ - REsp 9", entry_id=2),
            hit("STF distante", 0.5, "jurisprudence", ["STF"], "STF - RE 2", entry_id=3),
        ]
        result = _run(_registry(hits).execute("search_stf", {"query": "dano moral"}, 7))

        assert result["court"] == "STF"
        assert result["total_results"] == 1
        item = result["jurisprudence"][0]
        assert item["tribunal"] == "STF"
        assert item["confidence"] == 90.0
        assert item["process_number"] == "0001234-56.2024.1.00.0000"
        assert result["context_summary"].startswith("CONTEXTO RELEVANTE DA BASE DE CONHECIMENTO:")

    def test_court_search_requires_query(self):
        result = _run(_registry().execute("search_stj", {}, 7))
        assert "error" in result

    def test_legislation_type_narrows_tags(self):
        hits = [
            hit("Art. 1.003 prazo de 15 dias", 0.2, "legislation", ["CPC"], "CPC", entry_id=1),
            hit("Art. 7º direitos", 0.2, "legislation", ["CF"], "CF", entry_id=2),
        ]
        result = _run(
            _registry(hits).execute(
                "search_legislation", {"query": "prazo recurso", "legislation_type": "CPC"}, 7,
            )
        )
        assert [item["title"] for item in result["legislation"]] == ["CPC"]

    def test_analyze_precedents_counts_by_court(self):
        hits = [
            hit("a", 0.1, "jurisprudence", ["STF"], "STF - RE 1", entry_id=1),
            hit("b", 0.15, "jurisprudence", ["STJ"], "STJ - REsp 2", entry_id=2),
            hit("c", 0.2, "jurisprudence", ["STJ"], "STJ - REsp 3", entry_id=3),
        ]
        result = _run(
            _registry(hits).execute("analyze_precedents", {"keywords": ["dano moral"]}, 7)
        )
        assert result["total_precedents"] == 3
        assert result["by_court"] == {"STF": 1, "STJ": 2}

    def test_extract_clauses_requires_owned_folder(self):
        result = _run(_registry().execute("extract_clauses", {"folder_id": 20}, 7))
        assert result == {"error": FOLDER_NOT_FOUND}

    def test_extract_clauses_only_reads_the_requested_folder(self):
        hits = [
            hit("Multa de 10%", 0.1, "document", ["folder:10", "document"], "meu.pdf", entry_id=1),
            hit("Multa de 20%", 0.1, "document", ["folder:20", "document"], "alheio.pdf", entry_id=2),
        ]
        result = _run(
            _registry(hits).execute("extract_clauses", {"folder_id": 10, "clause_type": "multa"}, 7)
        )
        assert [c["document"] for c in result["clauses_found"]] == ["meu.pdf"]

    def test_check_document_deadlines(self):
        hits = [
            hit(
                "O pagamento vence em 20/01/2025 e a entrega em 2025-01-10.",
                0.1,
                "document",
                ["folder:10", "document"],
                "contrato.pdf",
            )
        ]
        result = _run(
            _registry(hits, today=date(2025, 1, 5)).execute(
                "check_document_deadlines", {"folder_id": 10}, 7,
            )
        )
        assert [d["date"] for d in result["deadlines_found"]] == ["2025-01-10", "2025-01-20"]
        assert result["deadlines_found"][0]["urgency"] == "attention"
        assert result["deadlines_found"][1]["urgency"] == "normal"

    def test_estimate_timeline(self):
        result = _run(_registry().execute("estimate_timeline", {"complexity": "média"}, 7))
        assert result["total_days"] == 586
        assert result["total_months"] == 20
        assert len(result["phases"]) == 6

    def test_estimate_timeline_rejects_unknown_complexity(self):
        result = _run(_registry().execute("estimate_timeline", {"complexity": "extrema"}, 7))
        assert "error" in result


class TestEstimateImpact:
    def test_medium_risk(self):
        result = estimate_impact("ganhar processo", 1_000_000, 0.6)
        impact = result["financial_impact"]
        assert impact["best_case"]["amount"] == pytest.approx(1_200_000)
        assert impact["worst_case"]["amount"] == pytest.approx(300_000)
        assert impact["expected_value"] == pytest.approx(480_000)
        assert result["risk_level"] == "médio"

    def test_risk_levels(self):
        assert estimate_impact(None, 100, 0.8)["risk_level"] == "baixo"
        assert estimate_impact(None, 100, 0.3)["risk_level"] == "alto"

    def test_probability_out_of_range(self):
        with pytest.raises(ValueError):
            estimate_impact(None, 100, 1.5)
