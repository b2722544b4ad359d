# =============================================================================
# Agents Package — Routing, Execution and Workflows
# =============================================================================
#   - prompts.py: System prompts per agent (pt-BR)
#   - profiles.py: Closed table of agent profiles (prompt, retrieval
#     strategy, extra tools, seed defaults)
#   - engine.py: Generic AgentEngine — retrieve → prompt → call → tool loop
#     → call → persist, with execution status bookkeeping
#   - orchestrator.py: Keyword routing, conversation resolution, single and
#     streaming execution, conversation management
#   - workflows.py: Fixed multi-agent pipelines as compiled LangGraph graphs
# =============================================================================
