# =============================================================================
# Services Package — Infrastructure for the Agents
# =============================================================================
#   - llm.py: Multi-provider chat + embedding abstraction (OpenAI-compatible
#     endpoints such as NVIDIA NIM, Anthropic)
#   - cache.py: Content-addressed Redis cache, best-effort
#   - chunker.py: Word-window chunking with overlap
#   - knowledge_base.py: Pluggable vector store protocol (pgvector, Chroma)
#   - embedding.py: Embedding generation and knowledge-base ingestion
#   - rag.py: Similarity search, confidence filtering, context building
# =============================================================================
