"""
Error Types
===========

Every error raised by the engines derives from AgentError and names the
phase that produced it:

    registry    DuplicateTool, InvalidTool
    tool        ToolNotFound, ToolExecutionError
    model       LLMFailure
    loop_guard  MaxIterationsExceeded, ReasoningStalled
    memory      MemoryPolicyError
    agent       AgentBusy

Tool-phase errors never reach the caller of run(): the engines turn them
into tool-result text so the model can react. MaxIterationsExceeded is
attached to the returned AgentResponse rather than raised.
"""

from typing import Any


class AgentError(Exception):
    """Base class for all agent errors."""

    phase = "agent"


# ==============================================================================
# Registry
# ==============================================================================

class DuplicateTool(AgentError):
    """A tool with the same name is already registered."""

    phase = "registry"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"tool {tool_name!r} is already registered")


class InvalidTool(AgentError):
    """The tool is missing or has no name."""

    phase = "registry"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"invalid tool: {reason}")


# ==============================================================================
# Tool calls
# ==============================================================================

class ToolNotFound(AgentError):
    """The model asked for a tool that is not registered."""

    phase = "tool"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"tool not found: {tool_name}")


class ToolExecutionError(AgentError):
    """
    A tool ran and failed.

    The underlying exception is kept on `cause` (and chained as
    __cause__) so callers can tell a failing tool from a missing one.
    """

    phase = "tool"

    def __init__(self, tool_name: str, cause: BaseException):
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(f"tool {tool_name!r} execution failed: {cause}")


# ==============================================================================
# Model calls
# ==============================================================================

class LLMFailure(AgentError):
    """The language model call itself failed. Never retried by the engines."""

    phase = "model"

    def __init__(self, provider: str, cause: BaseException):
        self.provider = provider
        self.cause = cause
        super().__init__(f"LLM {provider!r} request failed: {cause}")


# ==============================================================================
# Loop guards
# ==============================================================================

class MaxIterationsExceeded(AgentError):
    """
    The loop hit its iteration bound without a final answer.

    Returned on AgentResponse.error together with the best partial answer.
    """

    phase = "loop_guard"

    def __init__(self, max_iterations: int, partial: str = ""):
        self.max_iterations = max_iterations
        self.partial = partial
        super().__init__(f"max iterations ({max_iterations}) reached without final answer")


class ReasoningStalled(AgentError):
    """The ReAct loop got no action and no final answer after its re-prompts."""

    phase = "loop_guard"

    def __init__(self, attempts: int, steps: list[Any] | None = None, last_response: str = ""):
        self.attempts = attempts
        self.steps = list(steps or [])
        self.last_response = last_response
        super().__init__(
            f"reasoning stalled: no action or final answer after {attempts} attempt(s)"
        )


# ==============================================================================
# Memory / agent
# ==============================================================================

class MemoryPolicyError(AgentError):
    """A memory policy could not be built from its settings."""

    phase = "memory"


class AgentBusy(AgentError):
    """A run is already in flight on this agent instance."""

    phase = "agent"

    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(
            f"{agent_name} is already running; one in-flight run per agent instance"
        )
