from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from qdrant_client import AsyncQdrantClient


@dataclass(frozen=True)
class VectorHit:
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class VectorStore(Protocol):
    async def search(self, vector: list[float], limit: int) -> list[VectorHit]:
        """Return up to ``limit`` hits, most similar first."""
        ...


def create_qdrant_client(url: str, api_key: str | None = None) -> AsyncQdrantClient:
    # Only the hosted service expects a key.
    if "qdrant.io" in url and api_key:
        return AsyncQdrantClient(url=url, api_key=api_key)
    return AsyncQdrantClient(url=url)


class QdrantVectorStore:
    def __init__(self, client: AsyncQdrantClient, collection_name: str):
        self._client = client
        self._collection_name = collection_name

    async def search(self, vector: list[float], limit: int) -> list[VectorHit]:
        response = await self._client.query_points(
            collection_name=self._collection_name,
            query=vector,
            limit=limit,
            with_payload=True,
        )
        return [VectorHit(score=point.score, payload=dict(point.payload or {})) for point in response.points]
