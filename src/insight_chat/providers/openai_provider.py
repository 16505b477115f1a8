import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import openai
from loguru import logger
from tenacity import retry

from insight_chat.provider import StreamCompleted, StreamEvent, TextDelta, Usage
from insight_chat.providers.common import default_retry_kwargs, text_of
from insight_chat.tool import Tool

# OpenAI finish reasons -> internal stop reasons
_STOP_REASON_MAP = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "length": "max_tokens",
}


def _assistant_to_openai(content: str | list[dict]) -> dict:
    if isinstance(content, str):
        return {"role": "assistant", "content": content}

    text = text_of(content)
    out: dict = {"role": "assistant", "content": text or None}
    calls = [
        {
            "id": block["id"],
            "type": "function",
            "function": {"name": block["name"], "arguments": json.dumps(block["input"])},
        }
        for block in content
        if block.get("type") == "tool_use"
    ]
    if calls:
        out["tool_calls"] = calls
    return out


def _results_to_openai(content: str | list) -> list[dict]:
    """One ``tool`` message per result; any loose text follows as a user message."""
    if isinstance(content, str):
        return [{"role": "user", "content": content}]

    out = [
        {
            "role": "tool",
            "tool_call_id": block["tool_use_id"],
            "content": text_of(block.get("content", "")),
        }
        for block in content
        if isinstance(block, dict) and block.get("type") == "tool_result"
    ]
    loose_text = text_of([b for b in content if not (isinstance(b, dict) and b.get("type") == "tool_result")])
    if loose_text:
        out.append({"role": "user", "content": loose_text})
    return out


def _to_openai_messages(system_prompt: str, messages: list[dict]) -> list[dict]:
    """Convert internal block-format messages to OpenAI chat messages."""
    out: list[dict] = [{"role": "system", "content": system_prompt}] if system_prompt else []
    for msg in messages:
        role = msg["role"]
        content = msg.get("content", "")
        if role == "assistant":
            out.append(_assistant_to_openai(content))
        elif role in ("user", "tool"):
            out.extend(_results_to_openai(content))
        else:
            out.append({"role": role, "content": text_of(content)})
    return out


def _to_openai_tools(tools: list[dict]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("input_schema", {}),
            },
        }
        for t in tools
    ]


@dataclass
class _ToolCallBuffer:
    """Collects one streamed tool call; id, name and argument fragments arrive piecemeal."""

    id: str = ""
    name: str = ""
    argument_parts: list[str] = field(default_factory=list)

    def feed(self, delta: Any) -> None:
        if delta.id:
            self.id = delta.id
        if delta.function is None:
            return
        if delta.function.name:
            self.name = delta.function.name
        if delta.function.arguments:
            self.argument_parts.append(delta.function.arguments)

    def to_block(self) -> dict:
        raw = "".join(self.argument_parts)
        try:
            parsed = json.loads(raw) if raw else {}
        except json.JSONDecodeError:
            logger.warning(f"Unparseable arguments for {self.name}: {raw[:200]}")
            parsed = {}
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": parsed}


class OpenAIProvider:
    def __init__(self, api_key: str, *, base_url: str | None = None):
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        # stream_options is an OpenAI extension; compatible servers may reject it
        self._include_usage = base_url is None

    def convert_tools(self, tools: list[Tool]) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.input_schema,
            }
            for t in tools
        ]

    async def stream_chat(
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
        oai_messages = _to_openai_messages(system_prompt, messages)
        oai_tools = _to_openai_tools(tools)
        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"messages={len(oai_messages)}, tools={len(oai_tools)}, tool_choice={tool_choice}"
        )

        request: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": oai_messages,
            "stream": True,
        }
        if self._include_usage:
            request["stream_options"] = {"include_usage": True}
        if oai_tools:
            request["tools"] = oai_tools
            request["tool_choice"] = tool_choice

        text_parts: list[str] = []
        buffers: dict[int, _ToolCallBuffer] = {}
        finish_reason: str | None = None
        usage = Usage()

        stream = await self._client.chat.completions.create(**request)
        async for chunk in stream:
            if getattr(chunk, "usage", None) is not None:
                usage = Usage(chunk.usage.prompt_tokens or 0, chunk.usage.completion_tokens or 0)
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            finish_reason = choice.finish_reason or finish_reason
            delta = choice.delta
            if delta is None:
                continue
            if delta.content:
                text_parts.append(delta.content)
                yield TextDelta(delta.content)
            for call_delta in delta.tool_calls or []:
                buffers.setdefault(call_delta.index, _ToolCallBuffer()).feed(call_delta)

        text = "".join(text_parts)
        tool_use_blocks = [buffers[index].to_block() for index in sorted(buffers)]
        content = ([{"type": "text", "text": text}] if text else []) + tool_use_blocks
        stop_reason = _STOP_REASON_MAP.get(finish_reason or "stop", "end_turn")

        logger.debug(
            f"API response: stop_reason={stop_reason}, text_len={len(text)}, "
            f"tool_calls={len(tool_use_blocks)}, prompt_tokens={usage.prompt_tokens}, "
            f"completion_tokens={usage.completion_tokens}"
        )
        yield StreamCompleted(
            message={"role": "assistant", "content": content},
            tool_use_blocks=tool_use_blocks,
            stop_reason=stop_reason,
            usage=usage,
        )

    @retry(**default_retry_kwargs((
        openai.RateLimitError,
        openai.APIConnectionError,
        openai.APITimeoutError,
    )))
    async def create_message(
        self,
        model: str,
        max_tokens: int,
        temperature: float,
        messages: list[dict],
        *,
        system_prompt: str = "",
    ) -> str:
        oai_messages = _to_openai_messages(system_prompt, messages)
        logger.debug(f"Completion request: model={model}, messages={len(oai_messages)}")
        response = await self._client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=oai_messages,
        )
        text = response.choices[0].message.content or ""
        logger.debug(f"Completion response: len={len(text)}")
        return text

    async def create_structured(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        schema_name: str,
        schema: dict[str, Any],
    ) -> dict[str, Any]:
        logger.debug(f"Structured request: model={model}, schema={schema_name}")
        response = await self._client.chat.completions.create(
            model=model,
            messages=_to_openai_messages(system_prompt, [{"role": "user", "content": prompt}]),
            tools=[{"type": "function", "function": {"name": schema_name, "parameters": schema}}],
            tool_choice={"type": "function", "function": {"name": schema_name}},
        )
        tool_calls = response.choices[0].message.tool_calls or []
        if not tool_calls:
            raise ValueError(f"Model returned no {schema_name} object")
        parsed = json.loads(tool_calls[0].function.arguments or "{}")
        if not isinstance(parsed, dict):
            raise ValueError(f"Model returned a non-object {schema_name}")
        return parsed
