from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from insight_chat.provider import LLMProvider, StreamCompleted, TextDelta, Usage
from insight_chat.tool import Tool

MAX_TOOL_STEPS = 5

BUDGET_FALLBACK_TEXT = (
    "I wasn't able to finish answering within the allowed number of tool calls. "
    "Please narrow the question and try again."
)
EMPTY_RESPONSE_FALLBACK_TEXT = (
    "I don't have an answer for that yet. "
    "Please rephrase the question and try again."
)


class TurnState(Enum):
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    FINALIZED = "finalized"


class ToolStatus(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ToolInvocation:
    id: str
    name: str
    input: dict[str, Any]
    status: ToolStatus = ToolStatus.PENDING
    result: str | None = None
    error: str | None = None

    def succeed(self, result: str) -> ToolInvocation:
        self.status = ToolStatus.SUCCEEDED
        self.result = result
        return self

    def fail(self, error: str) -> ToolInvocation:
        self.status = ToolStatus.FAILED
        self.error = error
        return self

    def to_result_block(self) -> dict:
        block = {
            "type": "tool_result",
            "tool_use_id": self.id,
            "tool_name": self.name,
        }
        if self.status is ToolStatus.SUCCEEDED:
            block["content"] = self.result or ""
        else:
            block["content"] = json.dumps({"error": self.error or "Tool call did not complete"})
            block["is_error"] = True
        return block


@dataclass
class TurnProgress:
    state: TurnState = TurnState.REASONING
    tool_steps: int = 0
    usage: Usage = field(default_factory=Usage)
    text_parts: list[str] = field(default_factory=list)
    new_messages: list[dict] = field(default_factory=list)
    pending: list[dict] = field(default_factory=list)
    results: list[dict] = field(default_factory=list)

    @property
    def budget_exhausted(self) -> bool:
        return self.tool_steps >= MAX_TOOL_STEPS

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


FinalizeCallback = Callable[[list[dict], Usage], None]


class TurnEngine:
    """Runs one turn: stream model output, dispatch tool calls, repeat.

    ``run`` is an async generator of text chunks. Per-turn counters live in a
    TurnProgress threaded through the loop; the engine itself holds only
    read-only configuration and can serve concurrent turns.
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        model: str,
        max_tokens: int,
        temperature: float,
        system_prompt: str,
        max_tool_result_chars: int = 40_000,
        chat_id: str = "-",
    ) -> None:
        self._log = logger.bind(chat_id=chat_id)
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._system_prompt = system_prompt
        self._max_tool_result_chars = max_tool_result_chars

    async def run(
        self,
        *,
        messages: list[dict],
        tools: list[Tool],
        on_finalize: FinalizeCallback | None = None,
    ) -> AsyncIterator[str]:
        progress = TurnProgress()
        context = list(messages)
        tool_map = {t.name: t for t in tools}
        converted_tools = self._provider.convert_tools(tools)

        try:
            while progress.state is not TurnState.FINALIZED:
                if progress.state is TurnState.REASONING:
                    async with aclosing(self._reason(progress, context, converted_tools)) as reasoning:
                        async for chunk in reasoning:
                            yield chunk

                elif progress.state is TurnState.TOOL_CALL:
                    block = progress.pending.pop(0)
                    if progress.budget_exhausted:
                        invocation = ToolInvocation(block["id"], block["name"], block.get("input") or {})
                        invocation.fail(f"Skipped: the limit of {MAX_TOOL_STEPS} tool calls per turn was reached")
                    else:
                        progress.tool_steps += 1
                        invocation = await self._dispatch(block, tool_map, progress)
                    progress.results.append(invocation.to_result_block())
                    progress.state = TurnState.TOOL_RESULT

                elif progress.state is TurnState.TOOL_RESULT:
                    if progress.pending:
                        progress.state = TurnState.TOOL_CALL
                        continue
                    self._append(progress, context, {"role": "tool", "content": progress.results})
                    progress.results = []
                    progress.state = TurnState.REASONING

            if not progress.text.strip():
                self._log.warning(f"Turn finalized without text after {progress.tool_steps} tool call(s)")
                fallback = BUDGET_FALLBACK_TEXT if progress.budget_exhausted else EMPTY_RESPONSE_FALLBACK_TEXT
                self._append(progress, context, {"role": "assistant", "content": [{"type": "text", "text": fallback}]})
                progress.text_parts.append(fallback)
                yield fallback
        finally:
            self._finalize(progress, on_finalize)

    async def _reason(
        self,
        progress: TurnProgress,
        context: list[dict],
        converted_tools: list[dict],
    ) -> AsyncIterator[str]:
        tool_choice = "none" if progress.budget_exhausted else "auto"
        completed: StreamCompleted | None = None
        stream = self._provider.stream_chat(
            self._model,
            self._max_tokens,
            self._temperature,
            self._system_prompt,
            context,
            converted_tools,
            tool_choice=tool_choice,
        )
        async with aclosing(stream):
            async for event in stream:
                if isinstance(event, TextDelta):
                    progress.text_parts.append(event.text)
                    yield event.text
                elif isinstance(event, StreamCompleted):
                    completed = event

        if completed is None:
            raise RuntimeError("Model stream ended without a completion event")

        progress.usage = progress.usage + completed.usage
        self._append(progress, context, completed.message)

        if completed.tool_use_blocks and tool_choice == "auto":
            progress.pending = list(completed.tool_use_blocks)
            progress.state = TurnState.TOOL_CALL
        else:
            progress.state = TurnState.FINALIZED

    async def _dispatch(
        self,
        block: dict,
        tool_map: dict[str, Tool],
        progress: TurnProgress,
    ) -> ToolInvocation:
        invocation = ToolInvocation(block["id"], block["name"], block.get("input") or {})
        task = asyncio.ensure_future(self._invoke(invocation, tool_map))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # Let a dispatched call finish so its result is persisted with the turn.
            self._log.info(f"Turn cancelled while {invocation.name} was running; waiting for it to complete")
            await asyncio.wait({task})
            progress.results.append(invocation.to_result_block())
            progress.new_messages.append({"role": "tool", "content": progress.results})
            progress.results = []
            raise

    async def _invoke(self, invocation: ToolInvocation, tool_map: dict[str, Tool]) -> ToolInvocation:
        tool = tool_map.get(invocation.name)
        if tool is None:
            self._log.warning(f"Model requested tool outside the active set: {invocation.name}")
            return invocation.fail(f'Unknown or inactive tool "{invocation.name}"')

        self._log.info(f"Tool call {invocation.id}: {invocation.name} {json.dumps(invocation.input)[:200]}")
        try:
            result = await tool.execute(invocation.input)
        except Exception as ex:
            self._log.warning(f"Tool {invocation.name} failed: {type(ex).__name__}: {ex}")
            return invocation.fail(str(ex) or type(ex).__name__)
        return invocation.succeed(self._truncate_tool_result(result, invocation.name))

    def _append(self, progress: TurnProgress, context: list[dict], message: dict) -> None:
        context.append(message)
        progress.new_messages.append(message)

    def _finalize(self, progress: TurnProgress, on_finalize: FinalizeCallback | None) -> None:
        progress.state = TurnState.FINALIZED
        messages = sanitize_response_messages(progress.new_messages)
        self._log.info(
            f"Turn finalized: tool_calls={progress.tool_steps}, messages={len(messages)}, "
            f"prompt_tokens={progress.usage.prompt_tokens}, "
            f"completion_tokens={progress.usage.completion_tokens}"
        )
        if on_finalize is None:
            return
        try:
            on_finalize(messages, progress.usage)
        except Exception as ex:
            self._log.error(f"Failed to save chat messages: {type(ex).__name__}: {ex}")

    def _truncate_tool_result(self, result: str, tool_name: str) -> str:
        if self._max_tool_result_chars <= 0 or len(result) <= self._max_tool_result_chars:
            return result

        original_length = len(result)
        truncated = result[: self._max_tool_result_chars]
        message = (
            f"\n\n[OUTPUT TRUNCATED: Showing {self._max_tool_result_chars:,} "
            f"of {original_length:,} characters from {tool_name}]"
        )
        self._log.warning(
            f"{tool_name} output truncated from {original_length:,} "
            f"to {self._max_tool_result_chars:,} chars"
        )
        return truncated + message


def sanitize_response_messages(messages: list[dict]) -> list[dict]:
    """Drop tool_use blocks that never got a result, and messages left empty."""
    answered = {
        block.get("tool_use_id")
        for message in messages
        if message["role"] == "tool"
        for block in message["content"]
    }
    cleaned: list[dict] = []
    for message in messages:
        content = message["content"]
        if message["role"] == "assistant" and isinstance(content, list):
            content = [
                block
                for block in content
                if not (block.get("type") == "tool_use" and block.get("id") not in answered)
                and not (block.get("type") == "text" and not block.get("text"))
            ]
        if not content:
            continue
        cleaned.append({**message, "content": content})
    return cleaned
