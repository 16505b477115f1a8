import asyncio
import io
import unittest
from contextlib import redirect_stdout
from types import SimpleNamespace

from insight_chat.__main__ import ConsoleSession
from insight_chat.chat_service import CallerIdentity, ChatService
from insight_chat.models import ModelRegistry
from tests.fakes import ScriptedProvider, text_response
from tests.memory.base import MemoryStoreTestCase


class ConsoleCommandTests(MemoryStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        provider = ScriptedProvider([text_response("Hi!")], completion="Greeting")
        self.service = ChatService(
            sessions=self._sessions,
            models=ModelRegistry(),
            providers=SimpleNamespace(get=lambda name: provider),
            tool_factory=lambda **kwargs: [],
        )
        runtime = SimpleNamespace(chat_service=self.service, models=ModelRegistry())
        self.session = ConsoleSession(runtime, CallerIdentity("alice"), "gpt-4o-mini")

    def _command(self, text: str) -> tuple[bool, str]:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            handled = asyncio.run(self.session.router.try_handle(text))
        return handled, buffer.getvalue()

    def _send(self, text: str) -> str:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            asyncio.run(self.session.send(text))
        return buffer.getvalue()

    def test_plain_text_is_not_a_command(self) -> None:
        handled, _ = self._command("hello")
        self.assertFalse(handled)

    def test_send_streams_answer_and_keeps_history(self) -> None:
        output = self._send("hello")
        self.assertIn("Hi!", output)

        self._send("again")

        self.assertEqual(4, len(self.service.get_messages(CallerIdentity("alice"), self.session.chat_id)))

    def test_chats_and_usage(self) -> None:
        self._send("hello")

        _, chats = self._command("/chats")
        _, usage = self._command("/usage")

        self.assertIn("Greeting", chats)
        self.assertIn("Turns: 1", usage)

    def test_delete_current_chat_starts_new_one(self) -> None:
        self._send("hello")
        old_chat = self.session.chat_id

        _, output = self._command("/delete")

        self.assertIn(f"Deleted chat: {old_chat}", output)
        self.assertNotEqual(old_chat, self.session.chat_id)
        self.assertTrue(self._sessions.get_chat(old_chat).is_deleted)

    def test_model_switch(self) -> None:
        _, output = self._command("/model claude-sonnet")
        self.assertIn("claude-sonnet", output)
        self.assertEqual("claude-sonnet", self.session.model_id)

    def test_unknown_command(self) -> None:
        handled, output = self._command("/frobnicate")
        self.assertTrue(handled)
        self.assertIn("Unknown command", output)


if __name__ == "__main__":
    unittest.main()
