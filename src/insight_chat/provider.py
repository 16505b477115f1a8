from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from insight_chat.tool import Tool


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StreamCompleted:
    message: dict
    tool_use_blocks: list[dict]
    stop_reason: str
    usage: Usage


StreamEvent = TextDelta | StreamCompleted


@runtime_checkable
class LLMProvider(Protocol):
    def stream_chat(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        messages: list[dict],
        tools: list[dict],
        *,
        tool_choice: str = "auto",
    ) -> AsyncIterator[StreamEvent]:
        """Stream a chat response.

        Yields a TextDelta for every chunk of text as it arrives, then exactly
        one StreamCompleted carrying the assembled assistant message (internal
        block format), the tool_use blocks, the stop reason and token usage.
        """
        ...

    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str = "",
    ) -> str:
        """Non-streaming completion (chat titles, document drafting)."""
        ...

    async def create_structured(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        schema_name: str,
        schema: dict[str, Any],
    ) -> dict[str, Any]:
        """Return an object matching ``schema``, produced through a forced tool call."""
        ...

    def convert_tools(self, tools: list[Tool]) -> list[dict]:
        """Convert Tool protocol objects to the internal tool dict format."""
        ...


_OPENAI_COMPATIBLE_BASE_URLS = {
    "mistral": "https://api.mistral.ai/v1",
    "ollama": "http://localhost:11434/v1",
}


class ProviderPool:
    """Creates one provider per backend name on first use and reuses it."""

    def __init__(self, api_keys: dict[str, str], base_urls: dict[str, str] | None = None):
        self._api_keys = api_keys
        self._base_urls = base_urls or {}
        self._providers: dict[str, LLMProvider] = {}

    def get(self, provider_name: str) -> LLMProvider:
        if provider_name not in self._providers:
            self._providers[provider_name] = create_provider(
                provider_name,
                self._api_keys.get(provider_name, ""),
                base_url=self._base_urls.get(provider_name),
            )
        return self._providers[provider_name]


def create_provider(provider_name: str, api_key: str, *, base_url: str | None = None) -> LLMProvider:
    """Factory: create an LLMProvider by name."""
    name = provider_name.strip().lower()
    if name == "anthropic":
        from insight_chat.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key)
    if name == "openai":
        from insight_chat.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, base_url=base_url)
    if name in _OPENAI_COMPATIBLE_BASE_URLS:
        from insight_chat.providers.openai_provider import OpenAIProvider
        # ollama ignores the key but the SDK refuses an empty one
        return OpenAIProvider(api_key or name, base_url=base_url or _OPENAI_COMPATIBLE_BASE_URLS[name])
    raise ValueError(
        f"Unknown provider: {provider_name!r}. Supported: 'anthropic', 'openai', 'mistral', 'ollama'"
    )
