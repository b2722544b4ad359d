# =============================================================================
# Tool Catalogue — Every Tool an Agent Can Be Offered
# =============================================================================
#
# Builds the single ToolRegistry holding every tool. Agent profiles pick
# their subset by name (baseline entity tools + their own extras) with
# ToolRegistry.select(), so a model can only call what its agent offers.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable
from datetime import date

from legal_ai.services.rag import RagService
from legal_ai.tools.base import ToolRegistry
from legal_ai.tools.deadlines import (
    CalculateDeadlineTool,
    CheckHolidaysTool,
    ListUrgenciesTool,
    TrackProcessTool,
)
from legal_ai.tools.entities import EntityRepository, entity_tools
from legal_ai.tools.research import (
    AnalyzePrecedentsTool,
    CheckDocumentDeadlinesTool,
    EstimateImpactTool,
    EstimateTimelineTool,
    ExtractClausesTool,
    SearchCourtTool,
    SearchLegislationTool,
    SuggestPrecedentTool,
)


def build_tool_registry(
    entities: EntityRepository,
    rag: RagService,
    today: Callable[[], date] = date.today,
) -> ToolRegistry:
    return ToolRegistry(
        [
            *entity_tools(entities),
            # legal-research
            SearchCourtTool(rag, "STF", "Supremo Tribunal Federal"),
            SearchCourtTool(rag, "STJ", "Superior Tribunal de Justiça"),
            SearchLegislationTool(rag),
            # document-analyzer
            ExtractClausesTool(rag, entities),
            CheckDocumentDeadlinesTool(rag, entities, today),
            # case-strategy
            AnalyzePrecedentsTool(rag),
            EstimateTimelineTool(),
            # deadline-manager
            CalculateDeadlineTool(today),
            CheckHolidaysTool(),
            ListUrgenciesTool(entities, today),
            TrackProcessTool(entities),
            # legal-writer
            SuggestPrecedentTool(rag),
            # client-communicator
            EstimateImpactTool(),
        ]
    )
