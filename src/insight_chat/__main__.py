import asyncio
import getpass
import sys
import uuid
from contextlib import aclosing

from dotenv import load_dotenv
from loguru import logger

from insight_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from insight_chat.bootstrap import AppRuntime, bootstrap_runtime
from insight_chat.chat_service import CallerIdentity
from insight_chat.commands.router import CommandRouter
from insight_chat.console import Spinner
from insight_chat.errors import ChatError
from insight_chat.tool_policy import FIND_MARKER, QUERY_MARKER

_HELP_TEXT = f"""Commands:
  /help                 show this help
  /new                  start a new chat
  /chats [limit]        list your chats
  /usage                token usage of the current chat
  /delete [chat id]     delete a chat (defaults to the current one)
  /model [model id]     show or switch the model
Start a message with {QUERY_MARKER} to query the database or {FIND_MARKER} to search the knowledge base.
"""


class ConsoleSession:
    """Client-side state of the REPL: the current chat and its history."""

    def __init__(self, runtime: AppRuntime, caller: CallerIdentity, model_id: str):
        self._runtime = runtime
        self._service = runtime.chat_service
        self._caller = caller
        self.model_id = model_id
        self.chat_id = str(uuid.uuid4())
        self._history: list[dict] = []
        self.router = CommandRouter(
            on_help=self._on_help,
            on_new=self._on_new,
            on_chats=self._on_chats,
            on_usage=self._on_usage,
            on_delete=self._on_delete,
            on_model=self._on_model,
            on_unknown=self._on_unknown,
        )

    async def send(self, text: str) -> None:
        messages = [*self._history, {"id": str(uuid.uuid4()), "role": "user", "content": text}]
        spinner = Spinner(prefix="assistant> ")
        spinner.start()
        try:
            stream = await self._service.submit_turn(self._caller, self.chat_id, messages, self.model_id)
            async with aclosing(stream):
                async for chunk in stream:
                    spinner.stop()
                    print(chunk, end="", flush=True)
        finally:
            spinner.stop()
        self._reload_history()

    def _reload_history(self) -> None:
        records = self._service.get_messages(self._caller, self.chat_id)
        self._history = [{"id": r.id, "role": r.role, "content": r.content} for r in records]

    async def _on_help(self) -> None:
        print(_HELP_TEXT)

    async def _on_new(self) -> None:
        self.chat_id = str(uuid.uuid4())
        self._history = []
        print(f"New chat: {self.chat_id}\n")

    async def _on_chats(self, argument: str) -> None:
        limit = int(argument) if argument.isdigit() else 20
        chats = self._service.list_chats(self._caller)[:limit]
        if not chats:
            print("No chats yet.\n")
            return
        for chat in chats:
            marker = "*" if chat.id == self.chat_id else " "
            print(f"{marker} {chat.id}  {chat.created_at}  {chat.title}")
        print()

    async def _on_usage(self) -> None:
        if not self._history:
            print("Nothing sent in this chat yet.\n")
            return
        summary = self._service.usage_summary(self._caller, self.chat_id)
        print(
            f"Turns: {summary['turns']}, prompt tokens: {summary['prompt_tokens']:,}, "
            f"completion tokens: {summary['completion_tokens']:,}, total: {summary['total_tokens']:,}\n"
        )

    async def _on_delete(self, argument: str) -> None:
        chat_id = argument or self.chat_id
        self._service.delete_chat(self._caller, chat_id)
        print(f"Deleted chat: {chat_id}")
        if chat_id == self.chat_id:
            await self._on_new()

    async def _on_model(self, argument: str) -> None:
        if not argument:
            for spec in self._runtime.models.all():
                marker = "*" if spec.id == self.model_id else " "
                print(f"{marker} {spec.id:<16} {spec.label} - {spec.description}")
            print()
            return
        self.model_id = self._runtime.models.get(argument).id
        print(f"Model: {self.model_id}\n")

    def _on_unknown(self, command: str) -> None:
        print(f"Unknown command: {command} (try /help)\n")


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()

    if not any(env.api_keys.values()):
        logger.error("Set at least one of OPENAI_API_KEY, ANTHROPIC_API_KEY or MISTRAL_API_KEY.")
        print("No model API key configured; see .env.example", file=sys.stderr)
        sys.exit(1)

    runtime = bootstrap_runtime(app, env)
    caller = CallerIdentity(app.user_id or getpass.getuser())
    session = ConsoleSession(runtime, caller, runtime.models.get(app.default_model).id)

    print("insight-chat (type 'exit' to quit, '/help' for commands)")
    print(f"User: {caller.user_id}")
    print(f"Model: {session.model_id}")
    print("Tools:")
    for name in runtime.tool_names:
        print(f"  - {name}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                if await session.router.try_handle(trimmed):
                    continue
                print()
                await session.send(trimmed)
                print("\n")
            except ChatError as ex:
                print(f"\n{type(ex).__name__}: {ex}\n")
            except Exception as ex:
                logger.error(f"Unhandled error: {type(ex).__name__}: {ex}")
                print(f"\nError: {ex}\n")
    finally:
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
