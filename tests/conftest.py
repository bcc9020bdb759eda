"""
Pytest Configuration and Fixtures
"""

import asyncio
import copy
from typing import Any

import pytest

from agentloop.llm import LanguageModel, LLMResponse
from agentloop.memory.state import ToolCall
from agentloop.tools import FunctionTool, Parameter
from agentloop.tools.calculator import Calculator
from agentloop.utils.config import reset_config


class ScriptedModel(LanguageModel):
    """
    LanguageModel fake that replays a script.

    Each entry is an LLMResponse, a plain string (text reply) or an
    exception instance (raised from chat()). Every call is recorded.
    Once the script runs out, the last entry repeats.
    """

    name = "scripted"

    def __init__(self, *script: Any, gate: asyncio.Event | None = None):
        self.script = list(script)
        self.calls: list[dict] = []
        self.gate = gate
        self._position = 0

    async def chat(self, messages, tools=None) -> LLMResponse:
        self.calls.append({"messages": list(messages), "tools": tools})
        if self.gate is not None:
            await self.gate.wait()

        entry = self.script[min(self._position, len(self.script) - 1)]
        self._position += 1
        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, str):
            return LLMResponse(content=entry, finish_reason="stop",
                               usage={"prompt_tokens": 10, "completion_tokens": 5})
        return copy.deepcopy(entry)


def tool_request(name: str, args: dict | None = None, call_id: str = "call_1", content: str = "") -> LLMResponse:
    """A model response asking for one tool call."""
    return LLMResponse(
        content=content,
        tool_calls=[ToolCall(id=call_id, name=name, args=dict(args or {}))],
        finish_reason="tool_calls",
    )


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Isolate every test from the caller's environment and .env."""
    for name in ("MEMORY_POLICY", "AGENT_MAX_ITERATIONS", "REACT_MAX_ITERATIONS",
                 "REACT_MAX_STALL_RETRIES", "TOOL_TIMEOUT_SECONDS", "PARALLEL_TOOL_CALLS",
                 "MEMORY_MAX_MESSAGES", "STREAM_BUFFER_SIZE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("agentloop.utils.config.load_dotenv", lambda *a, **k: False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def calculator() -> Calculator:
    return Calculator()


@pytest.fixture
def echo_tool() -> FunctionTool:
    async def echo(args: dict) -> str:
        return f"echo: {args['text']}"

    return FunctionTool(
        name="echo",
        description="Repeat the given text",
        func=echo,
        parameters=[Parameter("text", "string", "Text to repeat", required=True)],
    )


@pytest.fixture
def failing_tool() -> FunctionTool:
    def explode(args: dict) -> str:
        raise RuntimeError("disk on fire")

    return FunctionTool(name="explode", description="Always fails", func=explode)
