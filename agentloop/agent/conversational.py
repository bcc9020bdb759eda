"""
Conversational Agent
====================

Multi-turn chat with bounded memory.

Same tool loop as FunctionAgent; what differs is the defaults. A
conversational agent always has a system prompt and, unless told
otherwise, the memory policy configured in the environment
(MEMORY_POLICY, window of 20 messages by default) instead of unbounded
history.

    agent = ConversationalAgent(llm, memory_policy=WindowPolicy(10))
    await agent.chat("My name is Ada.")
    await agent.chat("What's my name?")
"""

from agentloop.agent.function import FunctionAgent
from agentloop.memory.policies import MemoryPolicy, format_transcript, policy_from_config
from agentloop.memory.state import AgentResponse
from agentloop.utils.config import get_config

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class ConversationalAgent(FunctionAgent):
    """
    Chat agent that remembers earlier turns within its memory policy.

    Example:
        agent = ConversationalAgent(llm, memory_policy=SummarizePolicy(trigger=12))

        await agent.chat("Hello!")
        print(agent.message_count)
        print(agent.export_conversation())
    """

    default_system_prompt = DEFAULT_SYSTEM_PROMPT

    def __init__(self, llm, tools=None, memory_policy: MemoryPolicy | None = None, **kwargs):
        if memory_policy is None:
            memory_policy = policy_from_config(get_config().memory)
        super().__init__(llm, tools, memory_policy=memory_policy, **kwargs)

    async def chat(self, message: str) -> AgentResponse:
        """Alias for run()."""
        return await self.run(message)

    def set_system_prompt(self, prompt: str) -> None:
        """Replace the system prompt. Starts a new conversation."""
        self.system_prompt = prompt
        self.reset()

    @property
    def message_count(self) -> int:
        return len(self.state.messages)

    def export_conversation(self) -> str:
        """The history as a plain "role: content" transcript."""
        return format_transcript(self.state.messages)
