# =============================================================================
# Error Taxonomy
# =============================================================================
#
# Exceptions raised by the orchestration core. The HTTP layer maps them to
# status codes (see legal_ai/api/chat.py):
#
#   NotFoundError        → 404  unknown agent / conversation
#   UnauthorizedError    → 403  conversation owned by someone else,
#                               unknown workflow name
#   AgentExecutionError  → 502  any failure inside an agent execution
#   ProviderError        → 502  LLM / embedding call failed
#
# Tool failures are NOT exceptions: they are returned to the model as
# {"error": "..."} values and recorded in the tool trace. Retrieval failures
# are logged and degrade to an empty context.
# =============================================================================

from __future__ import annotations


class LegalAIError(Exception):
    """Base class for all errors raised by the core."""


class NotFoundError(LegalAIError):
    """A requested agent or conversation does not exist for this caller."""


class UnauthorizedError(LegalAIError):
    """The caller is not allowed to act on the requested resource."""


class ProviderError(LegalAIError):
    """The LLM or embedding provider call failed."""


class EmbeddingError(LegalAIError):
    """Embedding generation or knowledge-base ingestion failed."""


class AgentExecutionError(LegalAIError):
    """
    Wraps any failure that happened while an agent was executing.

    `execution_id` is set when the failure happened after the execution
    row was created, so callers can correlate with the audit trail.
    """

    def __init__(self, message: str, execution_id: int | None = None) -> None:
        super().__init__(message)
        self.execution_id = execution_id
