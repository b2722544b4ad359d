# =============================================================================
# Multi-Agent Workflows — Fixed LangGraph Pipelines
# =============================================================================
#
# A workflow is an ordered list of (agent slug, instruction) steps run
# against one "multi" conversation. Each step is one agent execution.
#
# WORKFLOWS:
#   full-case-analysis:  document-analyzer → legal-research →
#                        case-strategy → client-communicator
#   contract-review:     document-analyzer → legal-research → legal-writer
#   litigation-strategy: legal-research → case-strategy → deadline-manager
#
# GRAPH TOPOLOGY (one per workflow):
#   START ──▶ step_1 ──▶ step_2 ──▶ ... ──▶ step_n ──▶ END
#
# DESIGN DECISION: Linear graph, compiled once at module level.
# No conditional edges, plain TypedDict state, no checkpointer. The graphs
# are reused across requests.
#
# DESIGN DECISION: Abort, don't compensate.
# A failing step raises out of the graph, the remaining steps never run and
# whatever earlier steps persisted stays persisted. There is no resumption.
#
# The step runner is injected through the state (like the provider override
# in a per-request graph), so the graph stays independent of repositories
# and engines.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

if TYPE_CHECKING:
    from langgraph.graph.state import CompiledStateGraph

    from legal_ai.agents.engine import AgentResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowStep:
    agent_slug: str
    # May reference the caller's request as {input}
    instruction: str

    def render(self, user_input: str) -> str:
        return self.instruction.format(input=user_input)


WORKFLOWS: dict[str, tuple[WorkflowStep, ...]] = {
    "full-case-analysis": (
        WorkflowStep(
            "document-analyzer",
            "Analise todos os documentos da pasta e identifique riscos, prazos e inconsistências.",
        ),
        WorkflowStep(
            "legal-research",
            "Pesquise legislação, jurisprudência e precedentes relevantes para: {input}",
        ),
        WorkflowStep(
            "case-strategy",
            "Com base na análise documental e pesquisa jurídica, desenvolva estratégia "
            "processual e avalie chances de êxito.",
        ),
        WorkflowStep(
            "client-communicator",
            "Traduza análise para linguagem executiva e apresente recomendações.",
        ),
    ),
    "contract-review": (
        WorkflowStep(
            "document-analyzer",
            "Analise o contrato identificando cláusulas críticas, riscos e inconsistências.",
        ),
        WorkflowStep(
            "legal-research",
            "Verifique conformidade legal das cláusulas com legislação brasileira.",
        ),
        WorkflowStep(
            "legal-writer",
            "Sugira melhorias e redação alternativa para cláusulas problemáticas.",
        ),
    ),
    "litigation-strategy": (
        WorkflowStep(
            "legal-research",
            "Pesquise jurisprudência e precedentes sobre: {input}",
        ),
        WorkflowStep(
            "case-strategy",
            "Desenvolva estratégia processual baseada na pesquisa jurisprudencial.",
        ),
        WorkflowStep(
            "deadline-manager",
            "Calcule prazos processuais e identifique urgências.",
        ),
    ),
}

StepRunner = Callable[[WorkflowStep, str], Awaitable["AgentResult"]]


# ---------------------------------------------------------------------------
# Workflow State Schema
# ---------------------------------------------------------------------------


class WorkflowState(TypedDict, total=False):
    workflow: str
    input: str

    # Runs one step and returns its AgentResult. Not JSON-serialisable;
    # safe because no checkpointer is configured.
    run_step: Callable[..., Awaitable[Any]]

    results: list[Any]
    slugs: list[str]


def _step_node(workflow: str, position: int, step: WorkflowStep, total: int):
    async def node(state: WorkflowState) -> dict:
        logger.info(
            "[Workflow %s] Step %d/%d: %s", workflow, position, total, step.agent_slug,
        )
        result = await state["run_step"](step, step.render(state.get("input", "")))
        return {
            "results": [*state.get("results", []), result],
            "slugs": [*state.get("slugs", []), step.agent_slug],
        }

    node.__name__ = f"step_{position}"
    return node


def build_workflow_graph(name: str, steps: tuple[WorkflowStep, ...]) -> CompiledStateGraph:
    builder = StateGraph(WorkflowState)
    previous = START
    for position, step in enumerate(steps, start=1):
        node_name = f"step_{position}"
        builder.add_node(node_name, _step_node(name, position, step, len(steps)))
        builder.add_edge(previous, node_name)
        previous = node_name
    builder.add_edge(previous, END)
    return builder.compile()


# Compiled once at import time
WORKFLOW_GRAPHS: dict[str, CompiledStateGraph] = {
    name: build_workflow_graph(name, steps) for name, steps in WORKFLOWS.items()
}


async def run_workflow(name: str, user_input: str, run_step: StepRunner) -> WorkflowState:
    """Run workflow `name` step by step. Any step error propagates."""
    graph = WORKFLOW_GRAPHS[name]
    return await graph.ainvoke(
        {"workflow": name, "input": user_input, "run_step": run_step, "results": [], "slugs": []}
    )


def workflow_summary(name: str, slugs: list[str], results: list[Any]) -> str:
    sections = [
        f"# Resumo do Workflow: {name}\n",
        f"Total de agentes executados: {len(results)}\n",
    ]
    for slug, result in zip(slugs, results):
        sections.append(f"\n## Resultado: {slug}")
        sections.append(f"- Tokens: {result.tokens_used}")
        sections.append(f"- Citações: {len(result.citations)}")
        sections.append(f"- Tool calls: {len(result.tool_calls)}")
    return "\n".join(sections)
