# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - chat.py: agents, conversations, chat, SSE streaming, workflows
#   - deps.py: shared dependencies (authenticated user, orchestrator)
# =============================================================================
