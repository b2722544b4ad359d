# =============================================================================
# Legal AI Agents — Orchestration Core
# =============================================================================
# Routes Brazilian-Portuguese legal requests to specialised LLM agents, runs
# each agent through a retrieve → prompt → tool-loop → answer pipeline, and
# chains agents into fixed multi-step workflows with LangGraph.
#
# Package structure:
#   legal_ai/
#   ├── agents/       → Agent profiles, execution engine, orchestrator,
#   │                    LangGraph workflows
#   ├── api/          → FastAPI routes (chat, SSE streaming, workflows)
#   ├── db/           → Async engine, ORM models, repositories
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → LLM providers, cache, chunking, embeddings,
#   │                    knowledge base backends, RAG retrieval
#   └── tools/        → Tool registry, identity-safe execution boundary,
#                        entity and legal specialist tools
# =============================================================================
