# =============================================================================
# Agent Profiles — Closed Strategy Table
# =============================================================================
#
# Every agent is the same AgentEngine parameterised by one AgentProfile:
#   - system_prompt:    fixed instructions (prompts.py)
#   - context_strategy: which RAG views to combine for this agent
#   - extra_tools:      tool names offered on top of the baseline entity tools
#   - seed defaults:    name / description / model / temperature / max_tokens
#                       written to ai_agents by seed_default_agents()
#
# DESIGN DECISION: A table of data + small strategy functions instead of a
# subclass per agent. Adding an agent is one entry here plus a prompt; the
# engine never branches on slug.
#
# RETRIEVAL STRATEGIES:
#   legal-research       comprehensive (legislation + jurisprudence + docs)
#   document-analyzer    case documents (10), only with a linked folder
#   case-strategy        comprehensive (legislation + jurisprudence + docs)
#   deadline-manager     case documents about movements/deadlines (5)
#   legal-writer         comprehensive (legislation + jurisprudence + docs)
#   client-communicator  comprehensive without jurisprudence; only the
#                        documents are cited back to the client
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from legal_ai.agents import prompts
from legal_ai.services.rag import RagService, RetrievedContext

if TYPE_CHECKING:
    from legal_ai.agents.engine import AgentPayload
    from legal_ai.db.repositories import AgentRepository

logger = logging.getLogger(__name__)

ContextStrategy = Callable[[RagService, "AgentPayload"], Awaitable[RetrievedContext]]


@dataclass(frozen=True)
class AgentProfile:
    slug: str
    name: str
    description: str
    model: str
    temperature: float
    max_tokens: int
    system_prompt: str
    context_strategy: ContextStrategy
    extra_tools: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Context strategies
# ---------------------------------------------------------------------------


async def comprehensive_with_jurisprudence(
    rag: RagService, payload: AgentPayload,
) -> RetrievedContext:
    return await rag.comprehensive_context(
        payload.input, folder_id=payload.folder_id, include_jurisprudence=True,
    )


async def folder_documents(rag: RagService, payload: AgentPayload) -> RetrievedContext:
    if not payload.folder_id:
        return RetrievedContext()
    return await rag.document_context(payload.input, payload.folder_id, limit=10)


async def folder_deadlines(rag: RagService, payload: AgentPayload) -> RetrievedContext:
    if not payload.folder_id:
        return RetrievedContext()
    return await rag.document_context(
        "movimentações processuais prazos", payload.folder_id, limit=5,
    )


async def client_facing(rag: RagService, payload: AgentPayload) -> RetrievedContext:
    if not payload.folder_id:
        return RetrievedContext()
    result = await rag.comprehensive_context(
        payload.input, folder_id=payload.folder_id, include_jurisprudence=False,
    )
    # Clients get the case documents as sources, not legal citations
    return RetrievedContext(context=result.context, sources=result.documents)


# ---------------------------------------------------------------------------
# The table
# ---------------------------------------------------------------------------

AGENT_PROFILES: dict[str, AgentProfile] = {
    profile.slug: profile
    for profile in (
        AgentProfile(
            slug="legal-research",
            name="Pesquisador Jurídico",
            description=(
                "Especializado em pesquisar legislação brasileira, jurisprudência "
                "(STF, STJ, TST) e doutrina"
            ),
            model="meta/llama-3.1-70b-instruct",
            temperature=0.3,
            max_tokens=4096,
            system_prompt=prompts.LEGAL_RESEARCH_PROMPT,
            context_strategy=comprehensive_with_jurisprudence,
            extra_tools=("search_stf", "search_stj", "search_legislation"),
        ),
        AgentProfile(
            slug="document-analyzer",
            name="Analisador de Documentos",
            description="Analisa contratos, petições, decisões judiciais e documentos processuais",
            model="qwen/qwen3-coder-480b",
            temperature=0.2,
            max_tokens=8192,
            system_prompt=prompts.DOCUMENT_ANALYZER_PROMPT,
            context_strategy=folder_documents,
            extra_tools=("extract_clauses", "check_document_deadlines"),
        ),
        AgentProfile(
            slug="case-strategy",
            name="Estrategista Processual",
            description=(
                "Desenvolve estratégias processuais, analisa chances de êxito e "
                "sugere melhores caminhos"
            ),
            model="deepseek-ai/deepseek-r1",
            temperature=0.5,
            max_tokens=6144,
            system_prompt=prompts.CASE_STRATEGY_PROMPT,
            context_strategy=comprehensive_with_jurisprudence,
            extra_tools=("analyze_precedents", "estimate_timeline"),
        ),
        AgentProfile(
            slug="deadline-manager",
            name="Gestor de Prazos",
            description="Monitora prazos processuais, calcula vencimentos e alerta sobre urgências",
            model="mistralai/mistral-7b-instruct-v0.3",
            temperature=0.1,
            max_tokens=2048,
            system_prompt=prompts.DEADLINE_MANAGER_PROMPT,
            context_strategy=folder_deadlines,
            extra_tools=("calculate_deadline", "check_holidays", "list_urgencies", "track_process"),
        ),
        AgentProfile(
            slug="legal-writer",
            name="Redator Jurídico",
            description=(
                "Redige petições, contratos, pareceres e documentos jurídicos com "
                "excelência técnica"
            ),
            model="meta/llama-3.1-70b-instruct",
            temperature=0.4,
            max_tokens=8192,
            system_prompt=prompts.LEGAL_WRITER_PROMPT,
            context_strategy=comprehensive_with_jurisprudence,
            extra_tools=("suggest_precedent", "search_legislation"),
        ),
        AgentProfile(
            slug="client-communicator",
            name="Comunicador com Cliente",
            description=(
                "Traduz questões jurídicas complexas para linguagem acessível ao "
                "cliente corporativo"
            ),
            model="meta/llama-3.1-70b-instruct",
            temperature=0.6,
            max_tokens=4096,
            system_prompt=prompts.CLIENT_COMMUNICATOR_PROMPT,
            context_strategy=client_facing,
            extra_tools=("estimate_impact",),
        ),
    )
}


async def seed_default_agents(agents: AgentRepository) -> int:
    """Create or refresh one ai_agents row per profile. Returns the count."""
    for profile in AGENT_PROFILES.values():
        await agents.upsert(
            profile.slug,
            name=profile.name,
            description=profile.description,
            model=profile.model,
            config={"temperature": profile.temperature, "max_tokens": profile.max_tokens},
            is_active=True,
        )
    logger.info("Seeded %d agents", len(AGENT_PROFILES))
    return len(AGENT_PROFILES)
