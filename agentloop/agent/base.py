"""
Base Agent
==========

Everything the three engines share:

- the ConversationState they own (system prompt pinned at the front)
- the MemoryManager that trims it before each model call
- the ToolRegistry and the executor that runs calls against it
- run() / run_stream() entry points and the one-run-at-a-time guard
- export_state() / import_state() / reset()

Engines implement a single coroutine:

    async def _execute(self, text: str, sink: EventSink) -> AgentResponse

run() calls it with a sink that discards events; run_stream() calls it on
a pipeline task with a sink feeding the caller's EventStream.
"""

from typing import Any

from agentloop.agent.streaming import NULL_SINK, EventSink, EventStream, EventType, StreamPipeline
from agentloop.agent.tools_executor import ToolExecutor
from agentloop.errors import AgentBusy, LLMFailure
from agentloop.llm import LanguageModel, LLMResponse
from agentloop.memory import MemoryManager
from agentloop.memory.policies import MemoryPolicy
from agentloop.memory.state import AgentResponse, ConversationState, Message, ToolCall, Usage
from agentloop.tools import Tool, ToolRegistry
from agentloop.utils.config import get_config
from agentloop.utils.logger import Logger


class BaseAgent:
    """
    Shared machinery for the agent engines.

    Not used directly; see FunctionAgent, ReActAgent and ConversationalAgent.
    """

    default_system_prompt: str | None = None

    def __init__(
        self,
        llm: LanguageModel,
        tools: list[Tool] | ToolRegistry | None = None,
        system_prompt: str | None = None,
        memory_policy: MemoryPolicy | None = None,
        max_iterations: int | None = None,
        tool_timeout: float | None = None,
        parallel_tool_calls: bool | None = None,
        stream_buffer_size: int | None = None
    ):
        """
        Args:
            llm: Model the agent talks to
            tools: Tools (or a ready registry) the agent may call
            system_prompt: Pinned system message; engines supply a default
            memory_policy: Retention policy for the history
            max_iterations: Loop bound; defaults from configuration
            tool_timeout: Seconds allowed per tool call; defaults from configuration
            parallel_tool_calls: Run one step's tool calls concurrently
            stream_buffer_size: Event channel capacity for run_stream()
        """
        config = get_config()

        self.llm = llm
        self.registry = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self.system_prompt = system_prompt if system_prompt is not None else self.default_system_prompt
        self.max_iterations = max_iterations if max_iterations is not None else self._configured_max_iterations(config)
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.memory = MemoryManager(memory_policy, model=llm)
        self.logger = Logger(type(self).__name__)
        self.executor = ToolExecutor(
            self.registry,
            timeout=tool_timeout if tool_timeout is not None else config.agent.tool_timeout,
            parallel=parallel_tool_calls if parallel_tool_calls is not None else config.agent.parallel_tool_calls,
            log=self.logger,
        )
        self.pipeline = StreamPipeline(stream_buffer_size or config.stream.buffer_size)

        self._run_token: object | None = None
        self.state = self._fresh_state()

        self.logger.info(
            f"{type(self).__name__} initialized with model: {llm.name}",
            {"tools": self.registry.list_names(), "memory": self.memory.policy.name}
        )

    def _configured_max_iterations(self, config) -> int:
        return config.agent.max_iterations

    def _fresh_state(self) -> ConversationState:
        state = ConversationState(max_iterations=self.max_iterations)
        if self.system_prompt:
            state.append(Message.system(self.system_prompt))
        return state

    # ==========================================================================
    # Public API
    # ==========================================================================

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def running(self) -> bool:
        return self._run_token is not None

    @property
    def messages(self) -> list[Message]:
        """A copy of the current history."""
        return list(self.state.messages)

    def add_tool(self, tool: Tool) -> None:
        """Register another tool. Raises DuplicateTool/InvalidTool."""
        self.registry.add(tool)

    def reset(self) -> None:
        """Discard the conversation. Keeps tools, policy and system prompt."""
        self._ensure_idle()
        self.state = self._fresh_state()
        self.logger.debug("Conversation reset")

    def export_state(self) -> dict:
        """JSON-compatible snapshot of the conversation."""
        return self.state.to_dict()

    def import_state(self, state: dict | ConversationState) -> None:
        """Replace the conversation with a previously exported one."""
        self._ensure_idle()
        data = state.to_dict() if isinstance(state, ConversationState) else state
        self.state = ConversationState.from_dict(data)
        self.state.max_iterations = self.max_iterations

    async def run(self, text: str) -> AgentResponse:
        """
        Process one user input to completion.

        Raises:
            AgentBusy: If another run is in flight on this agent
            LLMFailure: If a model call failed
        """
        token = self._acquire()
        try:
            return await self._execute(text, NULL_SINK)
        finally:
            self._release(token)

    def run_stream(self, text: str, timeout: float | None = None) -> EventStream:
        """
        Process one user input on a background task, streaming events.

        Must be called from a running event loop.

        Raises:
            AgentBusy: If another run is in flight on this agent
        """
        token = self._acquire()

        async def runner(sink: EventSink) -> AgentResponse:
            try:
                return await self._execute(text, sink)
            finally:
                self._release(token)

        try:
            return self.pipeline.start(
                runner,
                timeout=timeout,
                on_done=lambda: self._release(token),
            )
        except BaseException:
            self._release(token)
            raise

    # ==========================================================================
    # Engine helpers
    # ==========================================================================

    async def _execute(self, text: str, sink: EventSink) -> AgentResponse:
        raise NotImplementedError

    def _acquire(self) -> object:
        self._ensure_idle()
        self._run_token = object()
        return self._run_token

    def _release(self, token: object) -> None:
        # A late release from a finished run must not free a newer one.
        if self._run_token is token:
            self._run_token = None

    def _ensure_idle(self) -> None:
        if self._run_token is not None:
            raise AgentBusy(self.name)

    async def _prepare(self) -> None:
        """Trim the stored history with the memory policy."""
        self.state = await self.memory.prepare(self.state)

    async def _call_model(
        self,
        messages: list[Message],
        usage: Usage,
        sink: EventSink = NULL_SINK,
        with_tools: bool = True
    ) -> LLMResponse:
        """
        One model call. Streams tokens when the sink is streaming.

        Raises:
            LLMFailure: Wrapping whatever the provider raised
        """
        schemas = self.registry.schemas() if with_tools and len(self.registry) else None

        try:
            if sink.streaming:
                response = await self._stream_model(messages, schemas, sink)
            else:
                response = await self.llm.chat(messages, schemas)
        except Exception as e:
            failure = LLMFailure(self.llm.name, e)
            self.logger.error("Model call failed", failure)
            raise failure from e

        usage.add(response.usage)
        self.state.usage.add(response.usage)
        return response

    async def _stream_model(self, messages, schemas, sink: EventSink) -> LLMResponse:
        content: list[str] = []
        tool_calls: list[ToolCall] = []
        usage: dict[str, Any] = {}
        finish_reason = None

        async for delta in self.llm.chat_stream(messages, schemas):
            if delta.delta:
                content.append(delta.delta)
                await sink.emit(EventType.TOKEN, delta.delta)
            if delta.tool_calls:
                tool_calls.extend(delta.tool_calls)
            if delta.usage:
                usage = delta.usage
            if delta.finish_reason:
                finish_reason = delta.finish_reason

        return LLMResponse(
            content="".join(content),
            tool_calls=tool_calls,
            usage=usage,
            finish_reason=finish_reason,
        )

    async def _finish_turn(self) -> None:
        """End-of-turn trim so the stored history stays bounded."""
        await self._prepare()

    def __repr__(self) -> str:
        return f"{self.name}(llm={self.llm.name!r}, tools={self.registry.list_names()})"


__all__ = ["BaseAgent"]
