"""
Streaming Pipeline
==================

Runs an agent loop on its own task and hands its progress to the caller
as an ordered stream of typed events.

    stream = agent.run_stream("What is 25 * 4?")
    async for event in stream:
        if event.type is EventType.TOKEN:
            print(event.content, end="")

Event flow:

    producer task ──emit()──▶ bounded queue (capacity ~10) ──▶ consumer

- The producer blocks when the queue is full; events are never dropped.
- Every stream ends with exactly one terminal event: COMPLETE on success,
  ERROR on failure or cancellation. Iteration stops right after it.
- Cancelling (stream.cancel(), stream.aclose(), or cancelling the task
  that iterates) stops the producer at its next suspension point,
  discards undelivered events, and leaves a single ERROR event with
  metadata {"cancelled": True} as the last thing the consumer sees.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from agentloop.errors import AgentError
from agentloop.memory.state import AgentResponse
from agentloop.utils.logger import Logger

logger = Logger("Stream")


class EventType(str, Enum):
    """Kinds of stream events."""
    TOKEN = "token"
    THOUGHT = "thought"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    ANSWER = "answer"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = (EventType.COMPLETE, EventType.ERROR)


@dataclass(frozen=True)
class StreamEvent:
    """
    One unit of progress.

    Attributes:
        type: What happened
        content: Text payload (token text, thought, tool result, answer)
        index: Position in the stream, starting at 0
        timestamp: When the event was emitted
        metadata: Extra data (tool name, tool_call_id, error phase, ...)
    """
    type: EventType
    content: str = ""
    index: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    @property
    def cancelled(self) -> bool:
        return self.type is EventType.ERROR and bool(self.metadata.get("cancelled"))


class EventSink:
    """
    Where engines report progress.

    The base sink discards everything; run() uses it so the engines have
    a single code path for streaming and non-streaming execution.
    """

    streaming = False

    async def emit(self, type: EventType, content: str = "", **metadata: Any) -> None:
        return None


NULL_SINK = EventSink()


class QueueSink(EventSink):
    """Sink that numbers events and pushes them onto a bounded queue."""

    streaming = True

    def __init__(self, queue: asyncio.Queue):
        self.queue = queue
        self._index = 0

    def _next(self, type: EventType, content: str, metadata: dict[str, Any]) -> StreamEvent:
        event = StreamEvent(type=type, content=content, index=self._index, metadata=metadata)
        self._index += 1
        return event

    async def emit(self, type: EventType, content: str = "", **metadata: Any) -> None:
        if type in TERMINAL_EVENTS:
            raise ValueError("terminal events are emitted by the pipeline")
        await self.queue.put(self._next(type, content, metadata))

    async def finish(self, type: EventType, content: str = "", **metadata: Any) -> None:
        await self.queue.put(self._next(type, content, metadata))

    def finish_nowait(self, type: EventType, content: str = "", **metadata: Any) -> None:
        self.queue.put_nowait(self._next(type, content, metadata))


Runner = Callable[[EventSink], Awaitable[AgentResponse]]


class EventStream:
    """
    Consumer side of a pipeline. Async-iterable; single consumer.

    Attributes:
        response: The AgentResponse once a COMPLETE event was produced
        error: The exception once an ERROR event was produced
    """

    def __init__(self, queue: asyncio.Queue, sink: QueueSink):
        self._queue = queue
        self._sink = sink
        self._task: asyncio.Task | None = None
        self._finished = False      # terminal event delivered
        self._cancelled = False
        self.response: AgentResponse | None = None
        self.error: BaseException | None = None

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def closed(self) -> bool:
        return self._finished

    @property
    def done(self) -> bool:
        """True once the run has ended and its terminal event is queued."""
        task = self._task
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._finished:
            raise StopAsyncIteration
        try:
            event = await self._queue.get()
        except asyncio.CancelledError:
            # The consuming task was cancelled; take the producer down too.
            await self.cancel()
            raise
        if event.terminal:
            self._finished = True
        return event

    async def cancel(self) -> None:
        """
        Stop the run.

        No-op once the terminal event has been delivered, or once the run
        has finished and queued its terminal event. Otherwise the producer
        is cancelled, undelivered events are discarded and one cancelled
        ERROR event is queued as the final event.
        """
        if self._finished or self._cancelled or self._task is None or self.done:
            return
        self._cancelled = True

        if not self._task.done():
            self._task.cancel()
            await asyncio.wait([self._task])

        while not self._queue.empty():
            self._queue.get_nowait()

        self.response = None
        self.error = asyncio.CancelledError()
        self._sink.finish_nowait(EventType.ERROR, "cancelled", cancelled=True, phase="agent")
        logger.info("Stream cancelled")

    async def aclose(self) -> None:
        """Cancel if still running and discard anything left."""
        await self.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()
        self._finished = True

    async def collect(self) -> list[StreamEvent]:
        """Drain the stream into a list."""
        return [event async for event in self]

    async def result(self) -> AgentResponse:
        """
        Consume the remaining events and return the response.

        Raises:
            The run's error if it ended with an ERROR event
        """
        async for _ in self:
            pass
        if self.response is None:
            raise self.error or RuntimeError("stream ended without a response")
        return self.response


class StreamPipeline:
    """
    Turns an engine run into an EventStream.

    Example:
        pipeline = StreamPipeline(buffer_size=10)
        stream = pipeline.start(lambda sink: agent._execute("hi", sink))
    """

    def __init__(self, buffer_size: int = 10):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.buffer_size = buffer_size

    def start(
        self,
        runner: Runner,
        timeout: float | None = None,
        on_done: Callable[[], None] | None = None
    ) -> EventStream:
        """
        Schedule the runner on a new task and return its stream.

        Args:
            runner: Coroutine function taking the sink to emit into
            timeout: Optional deadline in seconds for the whole run
            on_done: Called when the producer task finishes, however it ends
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)
        sink = QueueSink(queue)
        stream = EventStream(queue, sink)

        task = asyncio.create_task(self._produce(runner, sink, stream, timeout))
        if on_done is not None:
            task.add_done_callback(lambda _: on_done())
        stream._attach(task)
        return stream

    async def _produce(
        self,
        runner: Runner,
        sink: QueueSink,
        stream: EventStream,
        timeout: float | None
    ) -> None:
        try:
            if timeout is not None:
                response = await asyncio.wait_for(runner(sink), timeout)
            else:
                response = await runner(sink)
        except asyncio.TimeoutError as e:
            stream.error = e
            logger.warning(f"Stream timed out after {timeout}s")
            await sink.finish(
                EventType.ERROR, f"timed out after {timeout}s",
                phase="agent", error_type="TimeoutError", timeout=True,
            )
            return
        except Exception as e:
            stream.error = e
            phase = e.phase if isinstance(e, AgentError) else "agent"
            logger.error("Stream run failed", e)
            await sink.finish(EventType.ERROR, str(e), phase=phase, error_type=type(e).__name__)
            return

        stream.response = response
        await sink.finish(
            EventType.COMPLETE,
            response.content,
            stop_reason=response.stop_reason,
            iterations=response.metadata.get("iterations"),
            tool_calls=len(response.tool_calls),
        )
