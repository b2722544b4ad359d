# =============================================================================
# Word-Window Text Chunker
# =============================================================================
#
# Splits long text into overlapping windows of whitespace-separated words
# before embedding and ingestion into the knowledge base.
#
# DESIGN DECISION: Words, not tokens.
# Chunk sizes are configured in words (RAG_CHUNK_SIZE / RAG_CHUNK_OVERLAP).
# The agent catalogue mixes several model families behind one endpoint, so
# there is no single tokenizer to count against; word windows are
# deterministic and tokenizer-free.
#
# ALGORITHM:
# 1. Split text on whitespace
# 2. Slide a window of chunk_size words, advancing chunk_size - overlap
# 3. Stop once a window reaches the last word. Later windows would be
#    fully contained in that one.
#
# For N words this yields ceil((N - overlap) / (chunk_size - overlap))
# chunks (at least 1 for non-empty text).
# =============================================================================

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def chunk_words(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """
    Split `text` into overlapping word windows.

    Args:
        text: Source text.
        chunk_size: Maximum words per chunk.
        overlap: Words shared by consecutive chunks.

    Returns:
        Chunks in document order, each at most `chunk_size` words.
        Empty list for empty or whitespace-only text.

    Raises:
        ValueError: If chunk_size < 1 or overlap is not in [0, chunk_size).
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(
            f"overlap must be in [0, chunk_size), got overlap={overlap} "
            f"chunk_size={chunk_size}"
        )

    words = text.split()
    if not words:
        return []

    step = chunk_size - overlap
    chunks: list[str] = []

    for start in range(0, len(words), step):
        window = words[start : start + chunk_size]
        chunks.append(" ".join(window))
        if start + chunk_size >= len(words):
            break

    logger.debug(
        "Chunked %d words into %d chunks (size=%d, overlap=%d)",
        len(words), len(chunks), chunk_size, overlap,
    )
    return chunks
