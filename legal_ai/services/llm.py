# =============================================================================
# Multi-Provider LLM Abstraction — Chat, Tool Calling, Streaming, Embeddings
# =============================================================================
#
# Provides a common interface for chat completions (with optional function
# calling and streaming) and embeddings, with concrete implementations for
# OpenAI-compatible APIs (NVIDIA NIM, DeepSeek, Qwen, OpenAI) and Anthropic.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Matches the KnowledgeBase pattern in knowledge_base.py. Any class with the
# right `chat()` / `chat_stream()` methods works, including test fakes.
#
# DESIGN DECISION: OpenAI function format is the lingua franca.
# Tools are declared in OpenAI's {"type": "function", "function": {...}}
# shape everywhere in the project. AnthropicProvider translates them to
# `input_schema` tools on the way in and `tool_use` blocks back to ToolCall
# on the way out, so the engine never sees provider differences.
#
# DESIGN DECISION: Model is a per-call argument.
# Each agent row carries its own model (llama, qwen, deepseek, mistral all
# behind one NIM endpoint), so the provider holds the client and defaults
# only.
#
# ERRORS: any SDK failure is re-raised as ProviderError with the original
# exception chained.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── OpenAICompatibleProvider — NIM and any OpenAI-compatible API
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   └── get_llm_provider()       — Singleton factory, reads from config
#   EmbeddingProvider (Protocol)
#   ├── OpenAICompatibleEmbedder — /embeddings endpoint, batched
#   └── get_embedding_provider() — Singleton factory
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from legal_ai.config import settings
from legal_ai.errors import ProviderError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ToolCall:
    """A function call requested by the model. `arguments` is raw JSON text."""

    id: str
    name: str
    arguments: str


@dataclass
class ChatResponse:
    """
    Standardised response from any LLM provider.

    `tokens` is the total (prompt + completion) reported by the provider,
    0 when the provider omits usage.
    """

    content: str
    tokens: int
    finish_reason: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class StreamDelta:
    """
    One streamed fragment.

    Text arrives as a sequence of deltas with `content`. The last delta of a
    stream carries usage and any tool calls the model requested.
    """

    content: str = ""
    tokens: int = 0
    tool_calls: list[ToolCall] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Protocol Definitions
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> ChatResponse:
        """
        Generate a completion.

        Args:
            messages: Chat messages with "role" ("system", "user",
                "assistant") and "content".
            model: Model identifier; defaults to settings.llm_model.
            temperature: Sampling temperature; defaults to settings.
            max_tokens: Max output tokens; defaults to settings.
            tools: Function declarations in OpenAI format. None disables
                tool calling for this call.
        """
        ...

    def chat_stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamDelta]:
        """
        Stream a completion as fragments.

        Tool calls are only known once the stream ends, so they arrive on
        the final delta.
        """
        ...


class EmbeddingProvider(Protocol):
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts, returning vectors in input order."""
        ...


def _resolve(value: Any, default: Any) -> Any:
    # `temperature or default` would silently replace 0.0
    return default if value is None else value


# ---------------------------------------------------------------------------
# Implementation 1: OpenAI-Compatible (NVIDIA NIM, DeepSeek, Qwen, etc.)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that follows the OpenAI spec.

    NVIDIA NIM is the default endpoint. Switching providers is a config
    change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> ChatResponse:
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "temperature": _resolve(temperature, self._temperature),
            "max_tokens": _resolve(max_tokens, self._max_tokens),
        }
        if tools:
            kwargs["tools"] = tools

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            logger.error("Chat completion failed (model=%s): %s", kwargs["model"], exc)
            raise ProviderError(f"AI generation failed: {exc}") from exc

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in (choice.message.tool_calls or [])
        ]

        return ChatResponse(
            content=choice.message.content or "",
            tokens=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason,
            tool_calls=tool_calls,
        )

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamDelta]:
        kwargs: dict = {
            "model": model or self._model,
            "messages": messages,
            "temperature": _resolve(temperature, self._temperature),
            "max_tokens": _resolve(max_tokens, self._max_tokens),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = tools

        tokens = 0
        # Tool call fragments are keyed by their position in the response
        partial_calls: dict[int, dict[str, Any]] = {}
        try:
            stream = await self._client.chat.completions.create(**kwargs)
            async for chunk in stream:
                if chunk.choices:
                    delta = chunk.choices[0].delta
                    if delta.content:
                        yield StreamDelta(content=delta.content)
                    for call in delta.tool_calls or []:
                        entry = partial_calls.setdefault(
                            call.index, {"id": "", "name": "", "arguments": []},
                        )
                        if call.id:
                            entry["id"] = call.id
                        if call.function and call.function.name:
                            entry["name"] = call.function.name
                        if call.function and call.function.arguments:
                            entry["arguments"].append(call.function.arguments)
                # The usage chunk arrives last, with an empty choices list
                if chunk.usage:
                    tokens = chunk.usage.total_tokens
        except Exception as exc:
            logger.error("Chat streaming failed: %s", exc)
            raise ProviderError(f"AI streaming failed: {exc}") from exc

        tool_calls = [
            ToolCall(
                id=entry["id"],
                name=entry["name"],
                arguments="".join(entry["arguments"]) or "{}",
            )
            for _, entry in sorted(partial_calls.items())
        ]
        yield StreamDelta(tokens=tokens, tool_calls=tool_calls)


# ---------------------------------------------------------------------------
# Implementation 2: Anthropic (Claude)
# ---------------------------------------------------------------------------


def _to_anthropic_tools(tools: list[dict]) -> list[dict]:
    """OpenAI function declarations → Anthropic tool declarations."""
    converted = []
    for tool in tools:
        fn = tool.get("function", tool)
        converted.append(
            {
                "name": fn["name"],
                "description": fn.get("description", ""),
                "input_schema": fn.get("parameters") or {"type": "object", "properties": {}},
            }
        )
    return converted


def _anthropic_tool_calls(blocks: list[Any]) -> list[ToolCall]:
    return [
        ToolCall(
            id=block.id,
            name=block.name,
            arguments=json.dumps(block.input, ensure_ascii=False),
        )
        for block in blocks
        if block.type == "tool_use"
    ]


def _split_system(messages: list[dict[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
    """Pull system messages out into Anthropic's top-level `system` kwarg."""
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    rest = [m for m in messages if m["role"] != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), rest


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system", and declares
    tools with `input_schema` instead of `parameters`.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.anthropic_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set ANTHROPIC_API_KEY or "
                "LLM_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    def _request_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict:
        system, rest = _split_system(messages)
        kwargs: dict = {
            "model": model or self._model,
            "messages": rest,
            "max_tokens": _resolve(max_tokens, self._max_tokens),
            "temperature": _resolve(temperature, self._temperature),
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> ChatResponse:
        kwargs = self._request_kwargs(messages, model, temperature, max_tokens)
        if tools:
            kwargs["tools"] = _to_anthropic_tools(tools)

        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as exc:
            logger.error("Anthropic completion failed (model=%s): %s", kwargs["model"], exc)
            raise ProviderError(f"AI generation failed: {exc}") from exc

        return ChatResponse(
            content="".join(b.text for b in response.content if b.type == "text"),
            tokens=response.usage.input_tokens + response.usage.output_tokens,
            finish_reason=response.stop_reason,
            tool_calls=_anthropic_tool_calls(response.content),
        )

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamDelta]:
        kwargs = self._request_kwargs(messages, model, temperature, max_tokens)
        if tools:
            kwargs["tools"] = _to_anthropic_tools(tools)
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield StreamDelta(content=text)
                final = await stream.get_final_message()
        except Exception as exc:
            logger.error("Anthropic streaming failed: %s", exc)
            raise ProviderError(f"AI streaming failed: {exc}") from exc

        yield StreamDelta(
            tokens=final.usage.input_tokens + final.usage.output_tokens,
            tool_calls=_anthropic_tool_calls(final.content),
        )


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


class OpenAICompatibleEmbedder:
    """
    Embeddings through any OpenAI-compatible /embeddings endpoint.

    API key resolution order:
      1. EMBEDDING_API_KEY (explicit embedding key)
      2. LLM_API_KEY (shared key, e.g. one NIM key for chat + embeddings)
    Base URL falls back to LLM_BASE_URL the same way.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        batch_size: int | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.embedding_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set EMBEDDING_API_KEY or LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.embedding_base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.embedding_model
        self._batch_size = batch_size or settings.embedding_batch_size

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = list(texts[i : i + self._batch_size])
            try:
                response = await self._client.embeddings.create(
                    model=self._model,
                    input=batch,
                )
            except Exception as exc:
                logger.error("Embedding request failed (model=%s): %s", self._model, exc)
                raise ProviderError(f"Embedding generation failed: {exc}") from exc

            # The API does not guarantee order; `index` does
            ordered = sorted(response.data, key=lambda item: item.index)
            vectors.extend(item.embedding for item in ordered)

            logger.debug(
                "Embedded batch %d-%d of %d",
                i, i + len(batch), len(texts),
            )

        return vectors


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------

# Lazy singletons — avoid re-creating clients on every request
_provider: OpenAICompatibleProvider | AnthropicProvider | None = None
_embedder: OpenAICompatibleEmbedder | None = None


def get_llm_provider() -> OpenAICompatibleProvider | AnthropicProvider:
    """
    Factory that returns the configured LLM provider.

    Reads `llm_provider` from settings:
    - "openai_compatible" → OpenAICompatibleProvider (NIM by default)
    - "anthropic" → AnthropicProvider (Claude)
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "anthropic":
            _provider = AnthropicProvider()
        else:
            _provider = OpenAICompatibleProvider()
    return _provider


def get_embedding_provider() -> OpenAICompatibleEmbedder:
    global _embedder
    if _embedder is None:
        _embedder = OpenAICompatibleEmbedder()
    return _embedder
