"""
Tool Executor
=============

Runs the tool calls a model asked for and turns the outcomes into tool
messages for the next model call.

Failure policy:
    A failing call never aborts the others. A missing tool, a tool that
    raised, or a tool that timed out each settles its ToolCall with an
    error; the error text goes back to the model, which decides how to
    react (often by rephrasing the call).

Tool Execution Loop:
    1. Model returns tool calls
    2. Executor runs them (concurrently by default) and waits for all
    3. One tool message per call is appended to the conversation
    4. The model continues with the results
"""

import asyncio
import json
import time
from typing import Any

from agentloop.agent.streaming import NULL_SINK, EventSink, EventType
from agentloop.errors import ToolExecutionError, ToolNotFound
from agentloop.memory.state import Message, ToolCall
from agentloop.tools import ToolRegistry
from agentloop.utils.logger import Logger

logger = Logger("ToolExecutor")


def format_result(call: ToolCall) -> str:
    """Format a settled call as tool message content."""
    if call.error is not None:
        return f"Error: {call.error}"
    if isinstance(call.result, str):
        return call.result
    return json.dumps(call.result, default=str)


class ToolExecutor:
    """
    Executes tool calls against a registry.

    Example:
        executor = ToolExecutor(registry, timeout=30)

        calls = await executor.execute_all(response.tool_calls)
        for call in calls:
            messages.append(executor.to_message(call))
    """

    def __init__(
        self,
        registry: ToolRegistry,
        timeout: float | None = None,
        parallel: bool = True,
        log: Logger | None = None
    ):
        """
        Args:
            registry: Tools available to the agent
            timeout: Seconds allowed per call (None for no limit)
            parallel: Run independent calls concurrently
            log: Logger to report through
        """
        self.registry = registry
        self.timeout = timeout
        self.parallel = parallel
        self.logger = log or logger

    async def _invoke(self, call: ToolCall) -> Any:
        coro = self.registry.execute(call.name, call.args)
        if not self.timeout:
            return await coro
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(call.name, asyncio.TimeoutError(f"timed out after {self.timeout}s")) from e

    async def execute_one(self, call: ToolCall, sink: EventSink = NULL_SINK) -> ToolCall:
        """
        Execute a single tool call and settle it.

        Returns:
            The same ToolCall, now carrying result or error
        """
        await sink.emit(
            EventType.TOOL_START, call.name,
            tool=call.name, tool_call_id=call.id, args=call.args,
        )

        started = time.perf_counter()
        result: Any = None
        error: str | None = None

        try:
            result = await self._invoke(call)
        except ToolNotFound as e:
            error = str(e)
            self.logger.warning(f"Model requested unknown tool: {call.name}")
        except ToolExecutionError as e:
            error = str(e)
            self.logger.warning(f"Tool {call.name} failed", {
                "tool_call_id": call.id,
                "cause": type(e.cause).__name__,
                "error": str(e.cause),
            })

        duration = time.perf_counter() - started
        call.settle(result=result, error=error, duration=duration)

        if error is None:
            self.logger.debug(f"Tool {call.name} succeeded in {duration:.3f}s")

        await sink.emit(
            EventType.TOOL_END, format_result(call),
            tool=call.name, tool_call_id=call.id,
            success=error is None, duration=duration,
        )
        return call

    async def execute_all(self, calls: list[ToolCall], sink: EventSink = NULL_SINK) -> list[ToolCall]:
        """
        Execute every call and wait for all of them.

        Returns:
            The calls in input order
        """
        if self.parallel and len(calls) > 1:
            await asyncio.gather(*(self.execute_one(call, sink) for call in calls))
        else:
            for call in calls:
                await self.execute_one(call, sink)
        return list(calls)

    @staticmethod
    def to_message(call: ToolCall) -> Message:
        """The tool message answering a settled call."""
        return Message.tool(call, format_result(call))
