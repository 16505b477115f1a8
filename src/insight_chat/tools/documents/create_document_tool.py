import json
from typing import Any

from insight_chat.errors import UpstreamError, ValidationError
from insight_chat.memory.documents import DocumentStore
from insight_chat.provider import LLMProvider
from insight_chat.tools.documents.prompts import CREATE_DOCUMENT_PROMPT

_MAX_TOKENS = 4096


class CreateDocumentTool:
    def __init__(self, provider: LLMProvider, model: str, documents: DocumentStore, user_id: str) -> None:
        self._provider = provider
        self._model = model
        self._documents = documents
        self._user_id = user_id

    @property
    def name(self) -> str:
        return "create_document"

    @property
    def description(self) -> str:
        return "Create a document for a writing activity."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"title": {"type": "string"}},
            "required": ["title"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        title = str(tool_input.get("title", "")).strip()
        if not title:
            raise ValidationError("title must not be empty")

        try:
            content = await self._provider.create_message(
                self._model,
                _MAX_TOKENS,
                0.7,
                [{"role": "user", "content": title}],
                system_prompt=CREATE_DOCUMENT_PROMPT,
            )
        except Exception as ex:
            raise UpstreamError(f"Failed to draft document: {ex}") from ex

        document = self._documents.create(self._user_id, title, content)
        return json.dumps({
            "id": document.id,
            "title": document.title,
            "content": "A document was created and is now visible to the user.",
        })
