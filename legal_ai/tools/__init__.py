# =============================================================================
# Tools Package — Function Calling for Agents
# =============================================================================
#   - base.py: Tool definition, ToolRegistry and the identity-safe execution
#     boundary, search-string sanitising
#   - entities.py: Baseline tools over the CRUD entity layer (clients,
#     folders, tasks, movements, documents) via EntityRepository
#   - deadlines.py: Deadline counting, national holidays, urgencies,
#     process tracking
#   - research.py: Knowledge-base backed search tools, precedent analysis,
#     timeline and financial impact estimates
#   - catalog.py: build_tool_registry() wiring all of the above
# =============================================================================
