"""
Memory System
=============

Conversation state and the retention policies that keep it bounded.

This module provides a Facade: one MemoryManager per agent that owns a
policy and applies it to the agent's ConversationState

1. before every model call, so the model sees a bounded history, and
2. once more at the end of each turn, so the stored state stays bounded.

Usage:
    from agentloop.memory import MemoryManager, WindowPolicy

    memory = MemoryManager(WindowPolicy(max_messages=10))
    state = await memory.prepare(state)
"""

from agentloop.memory.state import (
    AgentResponse,
    ConversationState,
    Message,
    Role,
    ToolCall,
    Usage,
    new_tool_call_id,
)
from agentloop.memory.policies import (
    AllPolicy,
    MemoryPolicy,
    ModelSummarizer,
    SelectivePolicy,
    SummarizePolicy,
    WindowPolicy,
    default_importance,
    policy_from_config,
)

from agentloop.utils.logger import Logger

logger = Logger("Memory")


class MemoryManager:
    """
    Applies a retention policy to conversation state.

    Example:
        memory = MemoryManager(SummarizePolicy(trigger=12), model=llm)

        state.append(Message.user("Hello!"))
        state = await memory.prepare(state)
        response = await llm.chat(state.messages)
    """

    def __init__(self, policy: MemoryPolicy | None = None, model=None):
        """
        Args:
            policy: Retention policy (defaults to AllPolicy)
            model: LanguageModel handed to policies that need one
                   (SummarizePolicy's default summarizer)
        """
        self.policy = policy or AllPolicy()
        if model is not None:
            self.policy.bind_model(model)

    async def prepare(self, state: ConversationState) -> ConversationState:
        """Return the state trimmed by the policy. The input is left untouched."""
        trimmed = await self.policy.apply(state)

        dropped = len(state.messages) - len(trimmed.messages)
        if dropped:
            logger.debug(
                f"{self.policy.name} policy trimmed history",
                {"before": len(state.messages), "after": len(trimmed.messages)}
            )
        return trimmed


__all__ = [
    "MemoryManager",
    "MemoryPolicy",
    "WindowPolicy",
    "SummarizePolicy",
    "SelectivePolicy",
    "AllPolicy",
    "ModelSummarizer",
    "default_importance",
    "policy_from_config",
    "ConversationState",
    "Message",
    "Role",
    "ToolCall",
    "Usage",
    "AgentResponse",
    "new_tool_call_id",
]
