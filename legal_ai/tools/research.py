# =============================================================================
# Research & Analysis Tools — Knowledge-Base Backed Specialist Tools
# =============================================================================
#
# Tools that answer from the RAG knowledge base (legislation, jurisprudence,
# case documents) plus two deterministic estimators:
#
#   search_stf / search_stj / search_legislation   → legal-research
#   extract_clauses / check_document_deadlines     → document-analyzer
#   analyze_precedents / estimate_timeline         → case-strategy
#   suggest_precedent (+ search_legislation)       → legal-writer
#   estimate_impact                                → client-communicator
#
# SECURITY: document tools search by the `folder:<id>` tag, so they check
# folder ownership through the EntityRepository before searching. A
# model-chosen folder id must never expose another user's documents.
# =============================================================================

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date
from typing import Any

from legal_ai.services.rag import (
    JURISPRUDENCE_TAGS,
    LEGISLATION_TAGS,
    RagService,
    SearchOptions,
    SearchResult,
)
from legal_ai.tools.base import Tool, clamp_limit, required_int
from legal_ai.tools.deadlines import urgency_for
from legal_ai.tools.entities import FOLDER_NOT_FOUND, EntityRepository

CNJ_SEARCH = re.compile(r"\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4}")
COURTS = ("STF", "STJ", "TST", "TRF", "TJ", "TRT")

# dd/mm/yyyy or yyyy-mm-dd
_DATE_PATTERNS = (
    (re.compile(r"\b(\d{2})/(\d{2})/(\d{4})\b"), lambda m: (m[3], m[2], m[1])),
    (re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b"), lambda m: (m[1], m[2], m[3])),
)


def _query(params: dict, key: str = "query") -> str:
    value = str(params.get(key) or "").strip()
    if not value:
        raise ValueError(f"Parâmetro obrigatório ausente: {key}")
    return value


def _tribunal(title: str | None) -> str:
    for court in COURTS:
        if title and court in title:
            return court
    return "Não identificado"


def _percent(result: SearchResult) -> float:
    return round(result.confidence * 100, 1)


def _jurisprudence_item(result: SearchResult) -> dict:
    match = CNJ_SEARCH.search(result.content or "")
    return {
        "tribunal": _tribunal(result.title),
        "title": result.title,
        "ementa": result.content,
        "confidence": _percent(result),
        "url": result.source_url,
        "process_number": match.group(0) if match else None,
    }


# ---------------------------------------------------------------------------
# Legislation & jurisprudence search
# ---------------------------------------------------------------------------


class _RagTool(Tool):
    def __init__(self, rag: RagService) -> None:
        self._rag = rag


class SearchCourtTool(_RagTool):
    """Jurisprudence search restricted to one superior court."""

    def __init__(self, rag: RagService, court: str, court_name: str) -> None:
        super().__init__(rag)
        self.court = court
        self.name = f"search_{court.lower()}"
        self.description = f"Busca jurisprudência no {court} ({court_name})"
        self.parameters = {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Termo de busca (ex: \"habeas corpus\", \"dano moral\")"},
            },
            "required": ["query"],
        }

    async def execute(self, params: dict[str, Any]) -> dict:
        query = _query(params)
        results = await self._rag.search(
            query, SearchOptions(source_type="jurisprudence", tags=[self.court], limit=5),
        )
        return {
            "query": query,
            "court": self.court,
            "total_results": len(results),
            "jurisprudence": [_jurisprudence_item(r) for r in results],
            "context_summary": self._rag.build_context(results),
        }


class SearchLegislationTool(_RagTool):
    name = "search_legislation"
    description = (
        "Busca legislação brasileira (Constituição Federal, CPC, CLT, CCB, leis específicas). "
        "Use para encontrar artigos de lei relevantes."
    )
    parameters = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Consulta sobre legislação (ex: \"prazo para recurso CPC\")",
            },
            "legislation_type": {
                "type": "string",
                "enum": LEGISLATION_TAGS,
                "description": "Tipo de legislação",
            },
            "top_k": {
                "type": "number",
                "description": "Quantidade de resultados (padrão: 5, máximo: 10)",
                "default": 5,
            },
        },
        "required": ["query"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        query = _query(params)
        legislation_type = params.get("legislation_type")
        tags = [legislation_type] if legislation_type in LEGISLATION_TAGS else LEGISLATION_TAGS
        results = await self._rag.search(
            query,
            SearchOptions(
                source_type="legislation",
                tags=tags,
                limit=clamp_limit(params.get("top_k"), 5, 10),
            ),
        )
        return {
            "query": query,
            "total_results": len(results),
            "legislation": [
                {
                    "title": r.title,
                    "content": r.content,
                    "confidence": _percent(r),
                    "url": r.source_url,
                }
                for r in results
            ],
            "context_summary": self._rag.build_context(results),
        }


class AnalyzePrecedentsTool(_RagTool):
    name = "analyze_precedents"
    description = "Analisa precedentes similares e suas decisões"
    parameters = {
        "type": "object",
        "properties": {
            "case_type": {"type": "string", "description": "Tipo de caso (ex: tributário, trabalhista, cível)"},
            "keywords": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Palavras-chave para busca de precedentes",
            },
        },
        "required": ["keywords"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        keywords = params.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [keywords]
        terms = [str(k).strip() for k in keywords if str(k).strip()]
        if params.get("case_type"):
            terms.insert(0, str(params["case_type"]).strip())
        if not terms:
            raise ValueError("Informe ao menos uma palavra-chave")

        context = await self._rag.jurisprudence_context(" ".join(terms), limit=10)
        by_court: dict[str, int] = {}
        for result in context.sources:
            court = _tribunal(result.title)
            by_court[court] = by_court.get(court, 0) + 1

        return {
            "keywords": terms,
            "total_precedents": len(context.sources),
            "by_court": by_court,
            "precedents": [_jurisprudence_item(r) for r in context.sources],
            "context_summary": context.context,
        }


class SuggestPrecedentTool(_RagTool):
    name = "suggest_precedent"
    description = "Sugere precedente jurisprudencial relevante para fundamentar uma tese"
    parameters = {
        "type": "object",
        "properties": {
            "thesis": {"type": "string", "description": "Tese jurídica que precisa de fundamentação"},
            "court_level": {
                "type": "string",
                "enum": list(COURTS),
                "description": "Nível do tribunal para busca de precedente",
            },
        },
        "required": ["thesis"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        thesis = _query(params, "thesis")
        court = params.get("court_level")
        tags = [court] if court in COURTS else JURISPRUDENCE_TAGS
        results = await self._rag.search(
            thesis, SearchOptions(source_type="jurisprudence", tags=tags, limit=3),
        )
        return {
            "thesis": thesis,
            "court_level": court or "all",
            "total_results": len(results),
            "suggestions": [_jurisprudence_item(r) for r in results],
            "context_summary": self._rag.build_context(results),
        }


# ---------------------------------------------------------------------------
# Case documents
# ---------------------------------------------------------------------------


class _DocumentTool(_RagTool):
    def __init__(self, rag: RagService, entities: EntityRepository) -> None:
        super().__init__(rag)
        self._entities = entities

    async def _owned_folder(self, params: dict) -> int | None:
        folder_id = required_int(params, "folder_id")
        if await self._entities.get_folder(params["user_id"], folder_id) is None:
            return None
        return folder_id


class ExtractClausesTool(_DocumentTool):
    name = "extract_clauses"
    description = "Extrai cláusulas específicas dos contratos e documentos de um processo"
    parameters = {
        "type": "object",
        "properties": {
            "folder_id": {"type": "number", "description": "ID da pasta/processo"},
            "clause_type": {
                "type": "string",
                "enum": ["rescisão", "multa", "garantia", "confidencialidade", "prazo", "pagamento"],
                "description": "Tipo de cláusula a extrair",
            },
        },
        "required": ["folder_id"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        folder_id = await self._owned_folder(params)
        if folder_id is None:
            return {"error": FOLDER_NOT_FOUND}

        clause_type = str(params.get("clause_type") or "").strip()
        query = f"cláusula {clause_type}".strip()
        context = await self._rag.document_context(query, folder_id, limit=10)

        return {
            "folder_id": folder_id,
            "clause_type": clause_type or None,
            "clauses_found": [
                {
                    "document": r.title,
                    "text": r.content,
                    "chunk_index": (r.metadata or {}).get("chunk_index"),
                    "confidence": _percent(r),
                }
                for r in context.sources
            ],
        }


class CheckDocumentDeadlinesTool(_DocumentTool):
    name = "check_document_deadlines"
    description = "Verifica datas e prazos mencionados nos documentos de um processo"
    parameters = {
        "type": "object",
        "properties": {
            "folder_id": {"type": "number", "description": "ID da pasta/processo"},
        },
        "required": ["folder_id"],
    }

    def __init__(
        self,
        rag: RagService,
        entities: EntityRepository,
        today: Callable[[], date] = date.today,
    ) -> None:
        super().__init__(rag, entities)
        self._today = today

    async def execute(self, params: dict[str, Any]) -> dict:
        folder_id = await self._owned_folder(params)
        if folder_id is None:
            return {"error": FOLDER_NOT_FOUND}

        context = await self._rag.document_context("prazo vencimento data limite", folder_id, limit=10)
        today = self._today()

        found: dict[date, dict] = {}
        for result in context.sources:
            for day in _dates_in(result.content):
                if day in found:
                    continue
                days_remaining = (day - today).days
                found[day] = {
                    "date": day.isoformat(),
                    "document": result.title,
                    "days_remaining": days_remaining,
                    "urgency": urgency_for(days_remaining),
                    "is_expired": days_remaining < 0,
                }

        deadlines = [found[day] for day in sorted(found)]
        return {"folder_id": folder_id, "total": len(deadlines), "deadlines_found": deadlines}


def _dates_in(text: str) -> list[date]:
    days = []
    for pattern, parts in _DATE_PATTERNS:
        for match in pattern.finditer(text or ""):
            year, month, day = parts(match)
            try:
                days.append(date(int(year), int(month), int(day)))
            except ValueError:
                continue
    return days


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------

# Typical first-instance durations for a case of medium complexity
_BASE_PHASES = (
    ("Petição inicial", 1),
    ("Citação", 30),
    ("Contestação", 15),
    ("Instrução probatória", 180),
    ("Sentença", 120),
    ("Recursos (se houver)", 240),
)
_COMPLEXITY_FACTOR = {"simples": 0.7, "média": 1.0, "alta": 1.5}


class EstimateTimelineTool(Tool):
    name = "estimate_timeline"
    description = "Estima duração do processo por fase"
    parameters = {
        "type": "object",
        "properties": {
            "case_type": {"type": "string", "description": "Tipo de processo"},
            "court": {"type": "string", "description": "Tribunal"},
            "complexity": {
                "type": "string",
                "enum": list(_COMPLEXITY_FACTOR),
                "description": "Complexidade do caso",
            },
        },
        "required": ["complexity"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        complexity = params.get("complexity") or "média"
        if complexity not in _COMPLEXITY_FACTOR:
            raise ValueError(f"Complexidade inválida: {complexity}")
        factor = _COMPLEXITY_FACTOR[complexity]

        phases = [
            {"phase": phase, "duration_days": max(1, round(days * factor))}
            for phase, days in _BASE_PHASES
        ]
        total_days = sum(p["duration_days"] for p in phases)
        return {
            "case_type": params.get("case_type"),
            "court": params.get("court"),
            "complexity": complexity,
            "total_days": total_days,
            "total_months": round(total_days / 30),
            "phases": phases,
        }


class EstimateImpactTool(Tool):
    name = "estimate_impact"
    description = "Estima impacto financeiro de um cenário jurídico"
    parameters = {
        "type": "object",
        "properties": {
            "scenario": {
                "type": "string",
                "description": "Cenário jurídico (ex: \"ganhar processo\", \"perder em 1ª instância\")",
            },
            "case_value": {"type": "number", "description": "Valor da causa em reais"},
            "probability": {"type": "number", "description": "Probabilidade do cenário (0-1)"},
        },
        "required": ["scenario"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        return estimate_impact(
            params.get("scenario"),
            float(params.get("case_value") or 1_000_000),
            float(params.get("probability") or 0.6),
        )


def estimate_impact(scenario: str | None, case_value: float, probability: float) -> dict:
    """
    Best case: value + interest and monetary correction (×1.2).
    Worst case: loss of fees and costs (×0.3).
    """
    if not 0.0 <= probability <= 1.0:
        raise ValueError("A probabilidade deve estar entre 0 e 1")

    if probability > 0.7:
        risk_level = "baixo"
    elif probability > 0.4:
        risk_level = "médio"
    else:
        risk_level = "alto"

    return {
        "scenario": scenario,
        "financial_impact": {
            "best_case": {
                "amount": case_value * 1.2,
                "probability": probability,
                "description": "Ganho com juros e correção",
            },
            "worst_case": {
                "amount": case_value * 0.3,
                "probability": 1 - probability,
                "description": "Condenação em honorários sucumbenciais",
            },
            "expected_value": case_value * probability - case_value * 0.3 * (1 - probability),
        },
        "risk_level": risk_level,
    }
