"""
Function Agent
==============

Tool-calling loop driven by the model's native function calling.

Agent Loop:
    User Message
         │
         ▼
    Trim history (memory policy)
         │
         ▼
    LLM Request with Tools ◀──────────────┐
         │                                │
    ┌─── Has Tool Calls? ───┐             │
    │                       │             │
    Yes                     No            │
    │                       │             │
    ▼                       ▼             │
    Execute Tools      Return Response    │
    │                                     │
    ▼                                     │
    Append Results ───────────────────────┘

Each pass through the model call counts as one iteration. When the count
exceeds max_iterations the loop stops and returns its best partial answer
with stop_reason "max_iterations" instead of raising.
"""

from agentloop.agent.base import BaseAgent
from agentloop.agent.streaming import EventSink, EventType
from agentloop.errors import MaxIterationsExceeded
from agentloop.memory.state import AgentResponse, Message, ToolCall, Usage, new_tool_call_id


class FunctionAgent(BaseAgent):
    """
    Agent that lets the model call tools until it produces an answer.

    Example:
        agent = FunctionAgent(llm, tools=[Calculator()])
        response = await agent.run("What is 25 * 4?")

        print(response.content)       # "25 * 4 = 100"
        print(response.tool_calls)    # [ToolCall(name="calculator", ...)]
    """

    async def _execute(self, text: str, sink: EventSink) -> AgentResponse:
        self.logger.info(f"Processing input: {text[:50]}...")

        self.state.append(Message.user(text))
        self.state.iteration = 0

        usage = Usage()
        executed: list[ToolCall] = []
        partial = ""
        last_result = ""

        while True:
            self.state.iteration += 1
            if self.state.iteration > self.max_iterations:
                return await self._stop_at_limit(partial or last_result, executed, usage)

            self.logger.debug(f"Iteration {self.state.iteration}")
            await self._prepare()
            response = await self._call_model(self.state.messages, usage, sink)

            if not response.tool_calls:
                self.state.append(Message.assistant(response.content))
                await self._finish_turn()
                await sink.emit(EventType.ANSWER, response.content)

                self.logger.info(f"Generated response ({len(response.content)} chars)")
                return AgentResponse(
                    content=response.content,
                    tool_calls=executed,
                    usage=usage,
                    metadata={
                        "iterations": self.state.iteration,
                        "finish_reason": response.finish_reason,
                        "model": response.model,
                    },
                )

            calls = self._normalize_ids(response.tool_calls)
            self.state.append(Message.assistant(response.content, calls))
            if response.content:
                partial = response.content

            await self.executor.execute_all(calls, sink)
            for call in calls:
                message = self.executor.to_message(call)
                self.state.append(message)
                if call.succeeded:
                    last_result = message.content
            executed.extend(calls)

    def _normalize_ids(self, calls: list[ToolCall]) -> list[ToolCall]:
        """Give every call an id no other call in the history uses."""
        seen = self.state.tool_call_ids()
        for call in calls:
            if not call.id or call.id in seen:
                call.id = new_tool_call_id()
            seen.add(call.id)
        return list(calls)

    async def _stop_at_limit(
        self,
        partial: str,
        executed: list[ToolCall],
        usage: Usage
    ) -> AgentResponse:
        self.state.iteration = self.max_iterations
        error = MaxIterationsExceeded(self.max_iterations, partial)
        self.logger.warning(
            "Reached max iterations",
            {"max_iterations": self.max_iterations, "tool_calls": len(executed)}
        )
        await self._finish_turn()
        return AgentResponse(
            content=partial,
            tool_calls=executed,
            stop_reason="max_iterations",
            error=error,
            usage=usage,
            metadata={"iterations": self.max_iterations},
        )
