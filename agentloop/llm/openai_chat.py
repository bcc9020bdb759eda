"""
OpenAI Chat Model
=================

LanguageModel backed by the OpenAI chat completions API (or any
OpenAI-compatible endpoint via base_url).

Responsibilities:
1. Convert Message/ToolSchema into the API's message and tool format
2. Parse tool calls out of responses (arguments arrive as JSON strings)
3. Stream deltas, accumulating tool call fragments until the stream ends

Retries and rate limiting are left to the openai client itself
(max_retries on AsyncOpenAI).
"""

import json
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from agentloop.llm import LanguageModel, LLMResponse, StreamDelta
from agentloop.memory.state import Message, Role, ToolCall
from agentloop.tools import ToolSchema
from agentloop.utils.config import get_config, require_openai_key
from agentloop.utils.logger import Logger

logger = Logger("OpenAI")


def to_openai_messages(messages: list[Message]) -> list[dict]:
    """Format messages for the chat completions API."""
    result = []
    for message in messages:
        entry: dict[str, Any] = {"role": message.role.value, "content": message.content}
        if message.name and message.role in (Role.USER, Role.ASSISTANT):
            entry["name"] = message.name
        if message.role is Role.TOOL:
            entry["tool_call_id"] = message.tool_call_id
        if message.tool_calls:
            entry["content"] = message.content or None
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.args)},
                }
                for call in message.tool_calls
            ]
        result.append(entry)
    return result


def _parse_arguments(name: str, raw: str | None) -> dict[str, Any]:
    """
    Parse JSON tool arguments.

    Malformed arguments become an empty dict; the tool's own validation
    then reports what is missing back to the model.
    """
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse arguments for {name}", e)
        return {}
    return args if isinstance(args, dict) else {"value": args}


def _usage_dict(usage: Any) -> dict[str, Any]:
    if usage is None:
        return {}
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class OpenAIChatModel(LanguageModel):
    """
    OpenAI chat completions provider.

    Example:
        model = OpenAIChatModel(api_key="sk-...", model="gpt-4o-mini")
        response = await model.chat([Message.user("Hello!")])

        # Or from environment / .env
        model = OpenAIChatModel.from_config()
    """

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        temperature: float | None = None,
        client: AsyncOpenAI | None = None
    ):
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.temperature = temperature
        logger.info(f"OpenAI model initialized: {model}")

    @classmethod
    def from_config(cls) -> "OpenAIChatModel":
        config = get_config()
        return cls(
            api_key=require_openai_key(),
            model=config.openai.model,
            base_url=config.openai.base_url,
            temperature=config.openai.temperature,
        )

    def _request(self, messages: list[Message], tools: list[ToolSchema] | None) -> dict:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(messages),
        }
        if self.temperature is not None:
            request["temperature"] = self.temperature
        if tools:
            request["tools"] = [schema.to_openai_function() for schema in tools]
            request["tool_choice"] = "auto"
        return request

    async def chat(
        self,
        messages: list[Message],
        tools: list[ToolSchema] | None = None
    ) -> LLMResponse:
        response = await self.client.chat.completions.create(**self._request(messages, tools))

        choice = response.choices[0]
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                args=_parse_arguments(tc.function.name, tc.function.arguments),
            )
            for tc in choice.message.tool_calls or []
        ]
        logger.debug(f"Chat completion finished: {choice.finish_reason}",
                     {"tool_calls": len(tool_calls)})

        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=tool_calls,
            usage=_usage_dict(response.usage),
            model=response.model,
            finish_reason=choice.finish_reason,
        )

    async def chat_stream(
        self,
        messages: list[Message],
        tools: list[ToolSchema] | None = None
    ) -> AsyncIterator[StreamDelta]:
        request = self._request(messages, tools)
        request["stream"] = True
        request["stream_options"] = {"include_usage": True}

        stream = await self.client.chat.completions.create(**request)

        # Tool call fragments arrive keyed by index.
        pending: dict[int, dict[str, str]] = {}
        finish_reason = None
        usage: dict[str, Any] = {}

        async for chunk in stream:
            if chunk.usage is not None:
                usage = _usage_dict(chunk.usage)
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta

            for fragment in delta.tool_calls or []:
                entry = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                if fragment.id:
                    entry["id"] = fragment.id
                if fragment.function and fragment.function.name:
                    entry["name"] += fragment.function.name
                if fragment.function and fragment.function.arguments:
                    entry["arguments"] += fragment.function.arguments

            if choice.finish_reason:
                finish_reason = choice.finish_reason

            if delta.content:
                yield StreamDelta(delta=delta.content)

        yield StreamDelta(
            finish_reason=finish_reason or "stop",
            tool_calls=[
                ToolCall(id=entry["id"], name=entry["name"],
                         args=_parse_arguments(entry["name"], entry["arguments"]))
                for _, entry in sorted(pending.items())
            ],
            usage=usage,
        )
