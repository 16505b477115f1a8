from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from loguru import logger

from insight_chat.errors import AuthorizationError, BadRequestError, NotFoundError
from insight_chat.memory.models import ChatRecord, MessageRecord
from insight_chat.memory.session_manager import SessionManager
from insight_chat.models import ModelRegistry
from insight_chat.provider import LLMProvider, ProviderPool
from insight_chat.providers.common import text_of
from insight_chat.system_prompt import TITLE_PROMPT, get_system_prompt
from insight_chat.tool import Tool
from insight_chat.tool_policy import select_active_tools
from insight_chat.turn_engine import TurnEngine

_TITLE_MAX_CHARS = 80

ToolFactory = Callable[..., list[Tool]]


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str


def get_most_recent_user_message(messages: list[dict]) -> dict | None:
    for message in reversed(messages):
        if message.get("role") == "user":
            return message
    return None


class ChatService:
    """Turn submission and chat management for an authenticated caller."""

    def __init__(
        self,
        *,
        sessions: SessionManager,
        models: ModelRegistry,
        providers: ProviderPool,
        tool_factory: ToolFactory,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        max_tool_result_chars: int = 40_000,
        system_prompt: str | None = None,
    ) -> None:
        self._sessions = sessions
        self._models = models
        self._providers = providers
        self._tool_factory = tool_factory
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._max_tool_result_chars = max_tool_result_chars
        self._system_prompt = system_prompt or get_system_prompt()

    async def submit_turn(
        self,
        caller: CallerIdentity | None,
        chat_id: str,
        messages: list[dict],
        model_id: str,
    ) -> AsyncIterator[str]:
        """Validate and start a turn; returns the stream of assistant text.

        Every rejection happens here, before any model output is produced.
        """
        user_id = self._require_caller(caller)
        model = self._models.get(model_id)

        user_message = get_most_recent_user_message(messages)
        if user_message is None:
            raise BadRequestError("No user message found")

        provider = self._providers.get(model.provider)
        user_text = text_of(user_message.get("content", ""))
        saved_in = self._chat_holding(user_message)
        if saved_in is not None and saved_in != chat_id:
            raise BadRequestError(f"Message id already used in another chat: {user_message['id']}")

        chat = self._sessions.get_chat(chat_id)
        if chat is None:
            title = await self._generate_title(provider, model.api_identifier, user_text)
            # Returns the existing row if a concurrent turn created it first.
            chat = self._sessions.create_chat(chat_id, user_id, title)
        if chat.is_deleted:
            raise NotFoundError(f"Chat not found: {chat_id}")
        if chat.user_id != user_id:
            raise AuthorizationError("Chat belongs to another user")

        if saved_in == chat_id:
            # Resubmission of a turn, e.g. a retry after an abandoned stream.
            logger.bind(chat_id=chat_id).info(f"User message {user_message['id']} already saved; not saving again")
        else:
            self._sessions.save_messages(
                chat_id,
                [{"id": user_message.get("id"), "role": "user", "content": user_message["content"]}],
            )

        tools = self._tool_factory(provider=provider, model=model.api_identifier, user_id=user_id)
        active_names = select_active_tools(user_text, [t.name for t in tools])
        active_tools = [t for t in tools if t.name in active_names]
        logger.bind(chat_id=chat_id).info(f"model={model.id}, active tools={active_names}")

        engine = TurnEngine(
            provider=provider,
            model=model.api_identifier,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system_prompt=self._system_prompt,
            max_tool_result_chars=self._max_tool_result_chars,
            chat_id=chat_id,
        )
        return engine.run(
            messages=messages,
            tools=active_tools,
            on_finalize=lambda new_messages, usage: self._sessions.save_messages(chat_id, new_messages, usage),
        )

    def delete_chat(self, caller: CallerIdentity | None, chat_id: str) -> None:
        user_id = self._require_caller(caller)
        chat = self._require_owned_chat(user_id, chat_id)
        self._sessions.delete_chat(chat.id)

    def list_chats(self, caller: CallerIdentity | None) -> list[ChatRecord]:
        return self._sessions.list_chats(self._require_caller(caller))

    def get_messages(self, caller: CallerIdentity | None, chat_id: str) -> list[MessageRecord]:
        user_id = self._require_caller(caller)
        return self._sessions.load_messages(self._require_owned_chat(user_id, chat_id).id)

    def usage_summary(self, caller: CallerIdentity | None, chat_id: str) -> dict:
        user_id = self._require_caller(caller)
        return self._sessions.usage_summary(self._require_owned_chat(user_id, chat_id).id)

    def _require_caller(self, caller: CallerIdentity | None) -> str:
        if caller is None or not caller.user_id:
            raise AuthorizationError("Unauthorized")
        return caller.user_id

    def _require_owned_chat(self, user_id: str, chat_id: str) -> ChatRecord:
        chat = self._sessions.get_chat(chat_id)
        if chat is None or chat.is_deleted:
            raise NotFoundError(f"Chat not found: {chat_id}")
        if chat.user_id != user_id:
            raise AuthorizationError("Chat belongs to another user")
        return chat

    def _chat_holding(self, user_message: dict) -> str | None:
        message_id = user_message.get("id")
        return self._sessions.message_chat_id(message_id) if message_id else None

    async def _generate_title(self, provider: LLMProvider, model: str, user_text: str) -> str:
        try:
            title = await provider.create_message(
                model,
                64,
                0.0,
                [{"role": "user", "content": user_text}],
                system_prompt=TITLE_PROMPT,
            )
        except Exception as ex:
            logger.warning(f"Title generation failed, using the message text: {type(ex).__name__}: {ex}")
            title = user_text
        title = " ".join(title.replace('"', "").replace(":", "").split())
        return title[:_TITLE_MAX_CHARS]
