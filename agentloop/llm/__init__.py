"""
Language Model Interface
========================

The engines talk to every provider through LanguageModel:

    response = await model.chat(messages, tools=schemas)
    response.content      # final text (may be empty when tools are requested)
    response.tool_calls   # list[ToolCall] the model wants executed
    response.usage        # {"prompt_tokens": ..., "completion_tokens": ...}

    async for delta in model.chat_stream(messages, tools=schemas):
        delta.delta           # incremental text
        delta.finish_reason   # set on the last delta
        delta.tool_calls      # requested calls, delivered on the last delta

Providers only have to implement chat(). The default chat_stream()
adapts chat() into a single delta, so every model can drive the
streaming pipeline; providers with real incremental output override it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from agentloop.memory.state import Message, ToolCall
from agentloop.tools import ToolSchema


@dataclass
class LLMResponse:
    """
    A model reply.

    Attributes:
        content: Text content
        tool_calls: Tool invocations requested by the model
        usage: Token accounting reported by the provider
        model: Model identifier
        finish_reason: Why generation stopped
    """
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, Any] = field(default_factory=dict)
    model: str | None = None
    finish_reason: str | None = None


@dataclass
class StreamDelta:
    """One increment of a streamed reply."""
    delta: str = ""
    finish_reason: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, Any] = field(default_factory=dict)


class LanguageModel(ABC):
    """
    Base class for model providers.

    Implementations must be safe for concurrent use by several agents.
    """

    name: str = "llm"

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        tools: list[ToolSchema] | None = None
    ) -> LLMResponse:
        """Send the conversation and get a reply."""

    async def chat_stream(
        self,
        messages: list[Message],
        tools: list[ToolSchema] | None = None
    ) -> AsyncIterator[StreamDelta]:
        """Stream a reply. Defaults to one delta carrying the whole chat() result."""
        response = await self.chat(messages, tools)
        yield StreamDelta(
            delta=response.content,
            finish_reason=response.finish_reason or "stop",
            tool_calls=list(response.tool_calls),
            usage=dict(response.usage),
        )

    async def complete(self, prompt: str) -> str:
        """Single-prompt convenience wrapper around chat()."""
        response = await self.chat([Message.user(prompt)])
        return response.content


__all__ = ["LanguageModel", "LLMResponse", "StreamDelta"]
