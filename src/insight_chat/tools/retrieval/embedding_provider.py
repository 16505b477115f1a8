from __future__ import annotations

from typing import Protocol, runtime_checkable

import openai

DEFAULT_EMBEDDING_MODELS = {
    "openai": "text-embedding-ada-002",
    "mistral": "mistral-embed",
}

_BASE_URLS = {
    "mistral": "https://api.mistral.ai/v1",
}


@runtime_checkable
class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class OpenAIEmbeddingProvider:
    """Embeddings through the OpenAI SDK; Mistral exposes a compatible endpoint."""

    def __init__(self, api_key: str, model: str, *, base_url: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(model=self._model, input=text)
        return list(response.data[0].embedding)


def create_embedding_provider(provider_name: str, api_key: str, model: str | None = None) -> EmbeddingProvider:
    name = provider_name.strip().lower()
    if name not in DEFAULT_EMBEDDING_MODELS:
        raise ValueError(f"Unknown embedding provider: {provider_name!r}. Supported: 'openai', 'mistral'")
    return OpenAIEmbeddingProvider(
        api_key,
        model or DEFAULT_EMBEDDING_MODELS[name],
        base_url=_BASE_URLS.get(name),
    )
