# =============================================================================
# Tool Registry & Identity-Safe Execution Boundary
# =============================================================================
#
# Tools are named functions the model can call. Each declares a JSON-schema
# parameter contract and is exposed to providers in OpenAI function format.
#
# SECURITY MODEL:
# The model decides WHICH tool to call and with WHAT arguments, but it never
# decides WHO is calling. ToolRegistry.execute() merges the authenticated
# caller's id into the arguments as the LAST step, overwriting any `user_id`
# the model supplied. Every data-access tool filters by that id.
#
# ERROR MODEL:
# Tool failures are data, not exceptions. Unknown tools, malformed
# arguments and anything a tool raises come back as {"error": "..."} so the
# model can read the failure in the follow-up call and the execution still
# completes.
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND = "Tool not found"
INVALID_ARGUMENTS = "Invalid tool arguments"

MAX_SEARCH_LENGTH = 100

# Quote/comment/terminator characters and statement keywords. Search terms
# are names, document numbers and CNJ numbers; none of them need these.
_FORBIDDEN_SEARCH_CHARS = (";", "--", "/*", "*/", "'", '"', "\\")
_FORBIDDEN_SEARCH_WORDS = re.compile(
    r"\b(union|select|drop|delete|insert|update|exec)\b", re.IGNORECASE,
)


class Tool:
    """
    Base class for agent tools.

    Subclasses set `name`, `description` and `parameters` (a JSON schema
    object) and implement `execute()`. `params` always contains `user_id`,
    injected by the registry.
    """

    name: str = ""
    description: str = ""
    parameters: dict = {"type": "object", "properties": {}, "required": []}

    async def execute(self, params: dict[str, Any]) -> dict:
        raise NotImplementedError

    def definition(self) -> dict:
        """OpenAI function-calling declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def select(self, names: list[str]) -> ToolRegistry:
        """A registry restricted to `names`, in that order. Unknown names are skipped."""
        return ToolRegistry([self._tools[n] for n in names if n in self._tools])

    def definitions(self) -> list[dict]:
        return [tool.definition() for tool in self._tools.values()]

    async def execute(
        self,
        name: str,
        arguments: str | dict | None,
        user_id: int,
    ) -> dict:
        """
        Run tool `name` on behalf of `user_id`. Never raises.

        `arguments` may be the raw JSON string from the provider or an
        already-decoded dict.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool '%s'", name)
            return {"error": TOOL_NOT_FOUND}

        params = _parse_arguments(arguments)
        if params is None:
            logger.warning("Malformed arguments for tool '%s': %r", name, arguments)
            return {"error": INVALID_ARGUMENTS}

        # Identity comes from the session, never from the model
        params = {**params, "user_id": user_id}

        try:
            result = await tool.execute(params)
        except Exception as exc:
            logger.exception("Tool '%s' failed", name)
            return {"error": str(exc) or exc.__class__.__name__}

        logger.debug("Tool '%s' executed for user %d", name, user_id)
        return result


def _parse_arguments(arguments: str | dict | None) -> dict | None:
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return dict(arguments)
    try:
        parsed = json.loads(arguments)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# Parameter helpers
# ---------------------------------------------------------------------------


def sanitize_search(value: Any) -> str | None:
    """
    Normalise a free-text search term.

    Trims, bounds to 100 characters, and rejects injection markers.

    Returns:
        The cleaned term, or None when empty.

    Raises:
        ValueError: If the term contains forbidden characters or keywords.
    """
    if value is None:
        return None
    term = str(value).strip()[:MAX_SEARCH_LENGTH]
    if not term:
        return None
    if any(marker in term for marker in _FORBIDDEN_SEARCH_CHARS) or _FORBIDDEN_SEARCH_WORDS.search(term):
        raise ValueError("Termo de busca contém caracteres ou palavras não permitidos")
    return term


def clamp_limit(value: Any, default: int, maximum: int) -> int:
    """Coerce a model-supplied limit into [1, maximum], `default` if unusable."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, min(limit, maximum))


def optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Valor numérico inválido: {value!r}") from None


def optional_bool(value: Any) -> bool | None:
    """Model-supplied flag. Strings like "false" or "não" are False."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "sim", "yes")
    return bool(value)


def required_int(params: dict, key: str) -> int:
    value = optional_int(params.get(key))
    if value is None:
        raise ValueError(f"Parâmetro obrigatório ausente: {key}")
    return value
