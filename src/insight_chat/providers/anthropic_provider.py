from collections.abc import AsyncIterator
from typing import Any

import anthropic
from loguru import logger
from tenacity import retry

from insight_chat.provider import StreamCompleted, StreamEvent, TextDelta, Usage
from insight_chat.providers.common import default_retry_kwargs
from insight_chat.tool import Tool

_STRUCTURED_MAX_TOKENS = 4096


def _to_anthropic_messages(messages: list[dict]) -> list[dict]:
    """Tool results travel as user messages; the extra tool_name key is dropped."""
    out: list[dict] = []
    for msg in messages:
        role = msg["role"]
        content = msg.get("content", "")
        if role != "tool":
            out.append({"role": role, "content": content})
            continue
        blocks: list[dict] = []
        for block in content if isinstance(content, list) else []:
            if block.get("type") != "tool_result":
                continue
            converted = {
                "type": "tool_result",
                "tool_use_id": block["tool_use_id"],
                "content": block.get("content", ""),
            }
            if block.get("is_error"):
                converted["is_error"] = True
            blocks.append(converted)
        out.append({"role": "user", "content": blocks})
    return out


class AnthropicProvider:
    def __init__(self, api_key: str):
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

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
        """Stream a chat response, yielding text deltas as they arrive.

        The final event is a StreamCompleted with the assembled message.
        """
        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"messages={len(messages)}, tools={len(tools)}, tool_choice={tool_choice}"
        )
        kwargs: dict = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=_to_anthropic_messages(messages),
        )
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = {"type": tool_choice}

        async with self._client.messages.stream(**kwargs) as stream:
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    yield TextDelta(event.delta.text)

            response = await stream.get_final_message()

        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )

        assistant_content: list[dict] = []
        tool_use_blocks: list[dict] = []
        for block in response.content:
            if block.type == "text":
                assistant_content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                tool_block = {
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                }
                assistant_content.append(tool_block)
                tool_use_blocks.append(tool_block)

        yield StreamCompleted(
            message={"role": "assistant", "content": assistant_content},
            tool_use_blocks=tool_use_blocks,
            stop_reason=response.stop_reason,
            usage=Usage(prompt_tokens=usage.input_tokens, completion_tokens=usage.output_tokens),
        )

    @retry(**default_retry_kwargs((
        anthropic.RateLimitError,
        anthropic.APIConnectionError,
        anthropic.APITimeoutError,
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
        logger.debug(f"Completion request: model={model}, messages={len(messages)}")
        response = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=_to_anthropic_messages(messages),
        )
        usage = response.usage
        logger.debug(
            f"Completion response: input_tokens={usage.input_tokens}, "
            f"output_tokens={usage.output_tokens}"
        )
        return "".join(block.text for block in response.content if block.type == "text")

    async def create_structured(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        schema_name: str,
        schema: dict[str, Any],
    ) -> dict[str, Any]:
        logger.debug(f"Structured request: model={model}, schema={schema_name}")
        response = await self._client.messages.create(
            model=model,
            max_tokens=_STRUCTURED_MAX_TOKENS,
            system=system_prompt,
            messages=[{"role": "user", "content": prompt}],
            tools=[{"name": schema_name, "input_schema": schema}],
            tool_choice={"type": "tool", "name": schema_name},
        )
        for block in response.content:
            if block.type == "tool_use" and block.name == schema_name:
                return dict(block.input)
        raise ValueError(f"Model returned no {schema_name} object")
