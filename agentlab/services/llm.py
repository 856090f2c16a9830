# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable AI Backend
# =============================================================================
#
# Provides the three call primitives every agent in this package is built
# from, with concrete implementations for Anthropic (Claude) and
# OpenAI-compatible APIs (OpenAI, DeepSeek, Qwen, Gemini's compat endpoint):
#
#   complete()         — one-shot text completion
#   stream()           — streaming text, yielded as deltas
#   generate_object()  — structured generation validated by a Pydantic model
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Any class with the right `complete()` / `stream()` methods works, which
# keeps test doubles trivial.
#
# DESIGN DECISION: Native SDKs over LangChain wrappers.
# Using anthropic and openai SDKs directly gives direct control over
# request parameters and easier debugging.
#
# DESIGN DECISION: Structured output via prompt + Pydantic validation.
# Provider-native JSON modes differ between vendors. Putting the JSON
# Schema into the system prompt and validating the reply with Pydantic
# works the same on every provider.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — Any OpenAI-compatible API
#   ├── stream_text()            — consume a stream, forward deltas
#   ├── generate_object()        — schema-validated JSON generation
#   ├── get_llm_provider()       — Singleton factory, reads from config
#   └── create_provider_from_id() — Non-singleton factory
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from agentlab.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises the different response formats (Anthropic vs OpenAI)
    into a single structure that downstream code can consume.
    """

    content: str           # The generated text
    model: str             # Model identifier (e.g., "claude-sonnet-4-6")
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


@dataclass
class StreamChunk:
    """
    One item of a text stream.

    Intermediate chunks carry a text delta. The final chunk carries the
    assembled LLMResponse (full text and usage) and an empty delta.
    """

    delta: str = ""
    response: LLMResponse | None = None


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the LLM provider interface.

    Both Anthropic and OpenAI-compatible implementations must provide
    `complete()` and `stream()`. Checked statically by mypy.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
                Roles: "user", "assistant" (no "system" — use the system param).
            system: System prompt for the LLM.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).
        """
        ...

    def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion as text deltas, ending with the full response."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized AnthropicProvider (model=%s)", self._model
        )

    def _request_kwargs(
        self,
        messages: list[dict[str, str]],
        system: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": (
                temperature if temperature is not None else self._temperature
            ),
        }
        # Anthropic: system prompt is a top-level kwarg, not a message
        if system:
            kwargs["system"] = system
        return kwargs

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        response = await self._client.messages.create(
            **self._request_kwargs(messages, system, temperature, max_tokens)
        )

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion from Claude."""
        kwargs = self._request_kwargs(messages, system, temperature, max_tokens)
        parts: list[str] = []

        async with self._client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                parts.append(text)
                yield StreamChunk(delta=text)
            final = await stream.get_final_message()

        yield StreamChunk(response=LLMResponse(
            content="".join(parts),
            model=final.model,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
        ))


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (OpenAI, DeepSeek, Qwen, etc.)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    OpenAI-compatible provider for any API that mirrors OpenAI chat completions.

    Switching providers is a config change:
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

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
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

    def _all_messages(
        self,
        messages: list[dict[str, str]],
        system: str | None,
    ) -> list[dict[str, str]]:
        # OpenAI: system prompt goes as the first message
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)
        return all_messages

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=self._all_messages(messages, system),
            max_tokens=max_tokens or self._max_tokens,
            temperature=(
                temperature if temperature is not None else self._temperature
            ),
        )

        content = response.choices[0].message.content or ""

        usage = response.usage
        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion from an OpenAI-compatible API."""
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=self._all_messages(messages, system),
            max_tokens=max_tokens or self._max_tokens,
            temperature=(
                temperature if temperature is not None else self._temperature
            ),
            stream=True,
            stream_options={"include_usage": True},
        )

        parts: list[str] = []
        model = self._model
        input_tokens = output_tokens = 0

        async for chunk in response:
            if chunk.model:
                model = chunk.model
            # The usage chunk arrives last and has no choices
            if chunk.usage:
                input_tokens = chunk.usage.prompt_tokens
                output_tokens = chunk.usage.completion_tokens
            if chunk.choices and chunk.choices[0].delta.content:
                text = chunk.choices[0].delta.content
                parts.append(text)
                yield StreamChunk(delta=text)

        yield StreamChunk(response=LLMResponse(
            content="".join(parts),
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        ))


# ---------------------------------------------------------------------------
# Streaming Helper
# ---------------------------------------------------------------------------


async def stream_text(
    llm: LLMProvider,
    messages: list[dict[str, str]],
    system: str | None = None,
    on_delta: Callable[[str], Awaitable[None] | None] | None = None,
) -> LLMResponse:
    """
    Consume a provider stream, forwarding each delta to `on_delta`.

    Returns the final LLMResponse. If a provider ends the stream without
    a final response chunk, one is assembled from the deltas with zero
    usage.
    """
    parts: list[str] = []
    final: LLMResponse | None = None

    async for chunk in llm.stream(messages=messages, system=system):
        if chunk.response is not None:
            final = chunk.response
            continue
        if chunk.delta:
            parts.append(chunk.delta)
            if on_delta is not None:
                result = on_delta(chunk.delta)
                if result is not None:
                    await result

    if final is None:
        final = LLMResponse(
            content="".join(parts), model="unknown",
            input_tokens=0, output_tokens=0,
        )
    return final


# ---------------------------------------------------------------------------
# Structured Generation
# ---------------------------------------------------------------------------

_STRUCTURED_SUFFIX = """

Respond with ONLY valid JSON (no markdown, no explanation) matching this \
JSON Schema:
{schema}"""

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def parse_json_reply(text: str) -> object:
    """
    Parse a JSON reply from an LLM.

    Models sometimes wrap JSON in a ```json fence despite instructions;
    the fence is stripped before parsing.

    Raises:
        json.JSONDecodeError: If no valid JSON can be parsed.
    """
    stripped = text.strip()
    match = _FENCE_PATTERN.search(stripped)
    if match:
        stripped = match.group(1)
    return json.loads(stripped)


async def generate_object(
    llm: LLMProvider,
    schema: type[T],
    messages: list[dict[str, str]],
    system: str | None = None,
    temperature: float | None = 0.0,
) -> tuple[T, LLMResponse]:
    """
    Generate an object matching a Pydantic schema.

    Args:
        llm: Provider to call.
        schema: Pydantic model class the reply must validate against.
        messages: Conversation messages.
        system: Task-specific system prompt; the schema is appended.
        temperature: Sampling temperature (deterministic by default).

    Returns:
        (validated object, raw LLMResponse)

    Raises:
        ValueError: If the reply is not valid JSON or fails validation.
    """
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    full_system = (system or "") + _STRUCTURED_SUFFIX.format(schema=schema_json)

    response = await llm.complete(
        messages=messages,
        system=full_system,
        temperature=temperature,
    )

    try:
        raw = parse_json_reply(response.content)
        return schema.model_validate(raw), response
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(
            "Structured generation for %s failed: %s", schema.__name__, e,
        )
        raise ValueError(
            f"LLM returned invalid {schema.__name__}: {e}"
        ) from e


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

# Lazy singleton — avoid re-creating client on every request
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Factory that returns the configured LLM provider.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicProvider (Claude)
    - "openai_compatible" → OpenAICompatibleProvider
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider


# ---------------------------------------------------------------------------
# Non-Singleton Factory
# ---------------------------------------------------------------------------
# Eval variants (A/B runs of the same suite against different models) need
# independent provider instances. This factory creates fresh instances
# without touching the global singleton.
# ---------------------------------------------------------------------------


_KNOWN_PROVIDER_TYPES = {"anthropic", "openai_compatible"}


def _parse_provider_id(
    provider_id: str,
) -> tuple[str, str, str | None]:
    """
    Parse a provider_id string into (provider_type, model, base_url).

    Formats supported:
        "anthropic/claude-sonnet-4-6"
            → ("anthropic", "claude-sonnet-4-6", None)
        "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"
            → ("openai_compatible", "deepseek-chat", "https://api.deepseek.com/v1")

    Raises:
        ValueError: If the format is unrecognisable or provider type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected format: 'provider_type/model' or "
            "'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    return provider_type, model, base_url


def create_provider_from_id(
    provider_id: str,
    api_key: str | None = None,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Create a fresh, non-singleton LLM provider from a provider ID string.

    Raises:
        ValueError: If provider_id is invalid or API key is missing.
    """
    provider_type, model, base_url = _parse_provider_id(provider_id)

    if provider_type == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model)

    return OpenAICompatibleProvider(
        api_key=api_key, model=model, base_url=base_url,
    )
