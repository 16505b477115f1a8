import json
from typing import Any

from insight_chat.errors import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from insight_chat.memory.documents import DocumentStore
from insight_chat.provider import LLMProvider
from insight_chat.tools.documents.prompts import update_document_prompt

_MAX_TOKENS = 4096


class UpdateDocumentTool:
    def __init__(self, provider: LLMProvider, model: str, documents: DocumentStore, user_id: str) -> None:
        self._provider = provider
        self._model = model
        self._documents = documents
        self._user_id = user_id

    @property
    def name(self) -> str:
        return "update_document"

    @property
    def description(self) -> str:
        return "Update a document with the given description."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "The ID of the document to update"},
                "description": {
                    "type": "string",
                    "description": "The description of changes that need to be made",
                },
            },
            "required": ["id", "description"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        document_id = str(tool_input.get("id", "")).strip()
        description = str(tool_input.get("description", "")).strip()
        if not document_id or not description:
            raise ValidationError("id and description are required")

        document = self._documents.get_latest(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        if document.user_id != self._user_id:
            raise AuthorizationError("Document belongs to another user")

        try:
            content = await self._provider.create_message(
                self._model,
                _MAX_TOKENS,
                0.7,
                [{"role": "user", "content": description}],
                system_prompt=update_document_prompt(document.content),
            )
        except Exception as ex:
            raise UpstreamError(f"Failed to update document: {ex}") from ex

        updated = self._documents.add_version(document, content)
        return json.dumps({
            "id": updated.id,
            "title": updated.title,
            "version": updated.version,
            "content": "The document has been updated successfully.",
        })
