import json
from typing import Any

from loguru import logger

from insight_chat.errors import UpstreamError, ValidationError
from insight_chat.tools.retrieval.embedding_provider import EmbeddingProvider
from insight_chat.tools.retrieval.vector_store import VectorHit, VectorStore

SEARCH_LIMIT = 5


def normalize_question(question: str) -> str:
    # Clients sometimes send escaped newlines as the two characters "\n".
    return question.replace("\\n", " ")


def project_hit(hit: VectorHit) -> dict[str, Any]:
    """Shape a hit as {source, page, snippet}; the similarity score is not exposed.

    Understands both the ``metadata`` payload written by document loaders and
    the flat ``fileName``/``chunkIndex``/``content`` payload of the seeding job.
    """
    payload = hit.payload
    meta = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    return {
        "source": meta.get("source", payload.get("fileName")),
        "page": meta.get("page", payload.get("chunkIndex")),
        "snippet": meta.get("page_content", payload.get("content")),
    }


class GetInformationTool:
    def __init__(self, embeddings: EmbeddingProvider, store: VectorStore) -> None:
        self._embeddings = embeddings
        self._store = store

    @property
    def name(self) -> str:
        return "get_information"

    @property
    def description(self) -> str:
        return "Get information from your knowledge base to answer questions."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "question": {
                    "type": "string",
                    "description": "the users question",
                },
            },
            "required": ["question"],
        }

    async def find_relevant_content(self, question: str) -> list[dict[str, Any]]:
        text = normalize_question(question)
        try:
            vector = await self._embeddings.embed(text)
            hits = await self._store.search(vector, SEARCH_LIMIT)
        except Exception as ex:
            raise UpstreamError(f"Knowledge base lookup failed: {type(ex).__name__}: {ex}") from ex
        logger.info(f"Knowledge base returned {len(hits)} hit(s)")
        return [project_hit(hit) for hit in hits]

    async def execute(self, tool_input: dict[str, Any]) -> str:
        question = str(tool_input.get("question", "")).strip()
        if not question:
            raise ValidationError("question must not be empty")
        return json.dumps(await self.find_relevant_content(question))
