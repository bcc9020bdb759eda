"""
Conversation State
==================

The data model shared by every engine:

- Message: one entry of the ordered history
- ToolCall: a structured request to run a tool, settled once with a
  result or an error
- ConversationState: the ordered message list plus loop and token
  accounting, owned by exactly one agent instance
- AgentResponse: what run() hands back to the caller

State lives in memory only. export/import go through to_dict()/from_dict(),
which are plain JSON-compatible structures so an external caller can
persist them however it likes.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Who authored a message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def new_tool_call_id() -> str:
    """Generate an id for tool calls the engine authors itself."""
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass
class ToolCall:
    """
    A single invocation of a tool.

    Created from a model response (or parsed out of ReAct text), then
    settled exactly once by the engine after execution.

    Attributes:
        id: Unique id; tool messages point back to it
        name: The requested tool
        args: Argument map passed to the tool
        result: Tool return value (after success)
        error: Error text (after failure)
        duration: Execution time in seconds
    """
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    duration: float | None = None
    _settled: bool = field(default=False, repr=False, compare=False)

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def succeeded(self) -> bool:
        return self._settled and self.error is None

    def settle(self, result: Any = None, error: str | None = None, duration: float | None = None) -> None:
        """
        Attach the outcome of execution.

        Raises:
            RuntimeError: If the call was already settled
        """
        if self._settled:
            raise RuntimeError(f"tool call {self.id} already settled")
        self.result = result
        self.error = error
        self.duration = duration
        self._settled = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "args": copy.deepcopy(self.args),
            "result": copy.deepcopy(self.result),
            "error": self.error,
            "duration": self.duration,
            "settled": self._settled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        call = cls(
            id=data["id"],
            name=data["name"],
            args=copy.deepcopy(data.get("args") or {}),
            result=copy.deepcopy(data.get("result")),
            error=data.get("error"),
            duration=data.get("duration"),
        )
        call._settled = bool(data.get("settled", False))
        return call


@dataclass
class Message:
    """
    A single message in the conversation.

    Attributes:
        role: system, user, assistant or tool
        content: The message text
        name: Optional speaker or tool name
        tool_call_id: Set on tool messages; references a prior ToolCall.id
        tool_calls: Calls requested by an assistant message
        metadata: Extra data (usage, summary markers, ...)
        timestamp: When the message was created
    """
    role: Role
    content: str = ""
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.role = Role(self.role)
        if self.role is Role.TOOL and not self.tool_call_id:
            raise ValueError("tool messages must carry a tool_call_id")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, call: ToolCall, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content, name=call.name, tool_call_id=call.id)

    def to_dict(self) -> dict:
        return {
            "role": self.role.value,
            "content": self.content,
            "name": self.name,
            "tool_call_id": self.tool_call_id,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "metadata": copy.deepcopy(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            name=data.get("name"),
            tool_call_id=data.get("tool_call_id"),
            tool_calls=[ToolCall.from_dict(tc) for tc in data.get("tool_calls") or []],
            metadata=copy.deepcopy(data.get("metadata") or {}),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(),
        )


@dataclass
class Usage:
    """Token accounting summed over model calls."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        self.prompt_tokens += int(usage.get("prompt_tokens") or 0)
        self.completion_tokens += int(usage.get("completion_tokens") or 0)
        self.total_tokens += int(
            usage.get("total_tokens")
            or (usage.get("prompt_tokens") or 0) + (usage.get("completion_tokens") or 0)
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ConversationState:
    """
    Ordered message history plus accounting.

    Owned by a single agent instance. Memory policies never mutate a
    state in place; they return a new one.
    """
    messages: list[Message] = field(default_factory=list)
    iteration: int = 0
    max_iterations: int = 5
    usage: Usage = field(default_factory=Usage)

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def pinned_system(self) -> Message | None:
        """The leading system message, if any. Never trimmed."""
        if self.messages and self.messages[0].role is Role.SYSTEM:
            return self.messages[0]
        return None

    def body(self) -> list[Message]:
        """Messages excluding the pinned system message."""
        return self.messages[1:] if self.pinned_system else list(self.messages)

    def last_user_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role is Role.USER:
                return message
        return None

    def tool_call_ids(self) -> set[str]:
        return {call.id for message in self.messages for call in message.tool_calls}

    def orphaned_tool_messages(self) -> list[Message]:
        """Tool messages whose tool_call_id matches no earlier ToolCall."""
        seen: set[str] = set()
        orphans = []
        for message in self.messages:
            for call in message.tool_calls:
                seen.add(call.id)
            if message.role is Role.TOOL and message.tool_call_id not in seen:
                orphans.append(message)
        return orphans

    def unpaired_tool_messages(self) -> list[Message]:
        """
        Tool messages that do not match exactly one earlier ToolCall.

        Covers both orphans and results whose id several calls share.
        """
        counts: dict[str, int] = {}
        unpaired = []
        for message in self.messages:
            for call in message.tool_calls:
                counts[call.id] = counts.get(call.id, 0) + 1
            if message.role is Role.TOOL and counts.get(message.tool_call_id, 0) != 1:
                unpaired.append(message)
        return unpaired

    def with_messages(self, messages: list[Message]) -> "ConversationState":
        """A new state with the same accounting and a different history."""
        return ConversationState(
            messages=list(messages),
            iteration=self.iteration,
            max_iterations=self.max_iterations,
            usage=copy.deepcopy(self.usage),
        )

    def copy(self) -> "ConversationState":
        return ConversationState.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "iteration": self.iteration,
            "max_iterations": self.max_iterations,
            "usage": self.usage.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationState":
        return cls(
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            iteration=int(data.get("iteration", 0)),
            max_iterations=int(data.get("max_iterations", 5)),
            usage=Usage(**(data.get("usage") or {})),
        )


@dataclass
class AgentResponse:
    """
    Result of one agent run.

    Attributes:
        content: Final (or best partial) answer
        tool_calls: Every tool call executed during the run
        stop_reason: "final_answer" or "max_iterations"
        error: MaxIterationsExceeded when the loop guard fired
        usage: Token accounting for this run
        metadata: iterations, model, finish reason, ...
        steps: ReAct reasoning steps (ReActAgent only)
    """
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = "final_answer"
    error: Exception | None = None
    usage: Usage = field(default_factory=Usage)
    metadata: dict[str, Any] = field(default_factory=dict)
    steps: list[Any] = field(default_factory=list)

    @property
    def incomplete(self) -> bool:
        return self.stop_reason != "final_answer"
