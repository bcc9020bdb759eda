"""Tests for memory policies and the MemoryManager."""

import pytest

from conftest import ScriptedModel

from agentloop.errors import MemoryPolicyError
from agentloop.memory import (
    AllPolicy,
    MemoryManager,
    SelectivePolicy,
    SummarizePolicy,
    WindowPolicy,
    policy_from_config,
)
from agentloop.memory.policies import SUMMARY_PREFIX, group_units
from agentloop.memory.state import ConversationState, Message, Role, ToolCall
from agentloop.utils.config import MemoryConfig


def _chat(turns: int, system: str | None = "You are terse.") -> ConversationState:
    state = ConversationState()
    if system:
        state.append(Message.system(system))
    for i in range(1, turns + 1):
        state.append(Message.user(f"u{i}"))
        state.append(Message.assistant(f"a{i}"))
    return state


def _with_tools() -> ConversationState:
    call = ToolCall(id="call_1", name="calculator", args={"operation": "add", "a": 1, "b": 2})
    state = ConversationState()
    state.append(Message.user("u1"))
    state.append(Message.assistant("", [call]))
    state.append(Message.tool(call, "3"))
    state.append(Message.assistant("a1"))
    state.append(Message.user("u2"))
    state.append(Message.assistant("a2"))
    state.append(Message.user("u3"))
    return state


def _contents(state: ConversationState) -> list[str]:
    return [m.content for m in state.messages]


class TestWindowPolicy:

    @pytest.mark.asyncio
    async def test_keeps_newest_and_pins_system(self):
        state = _chat(3)

        trimmed = await WindowPolicy(max_messages=4).apply(state)

        assert _contents(trimmed) == ["You are terse.", "u2", "a2", "u3", "a3"]
        assert len(state) == 7

    @pytest.mark.asyncio
    async def test_under_budget_unchanged(self):
        state = _chat(2)

        trimmed = await WindowPolicy(max_messages=10).apply(state)

        assert _contents(trimmed) == _contents(state)

    @pytest.mark.asyncio
    async def test_never_orphans_tool_results(self):
        state = _with_tools()

        for size in range(1, 8):
            trimmed = await WindowPolicy(max_messages=size).apply(state)
            assert trimmed.orphaned_tool_messages() == []
            assert len(trimmed.body()) <= size
            assert trimmed.last_user_message().content == "u3"

    @pytest.mark.asyncio
    async def test_keeps_last_user_message(self):
        calls = [ToolCall(id=f"call_{i}", name="echo") for i in range(3)]
        state = ConversationState()
        state.append(Message.user("question"))
        for call in calls:
            state.append(Message.assistant("", [call]))
            state.append(Message.tool(call, "result"))

        trimmed = await WindowPolicy(max_messages=2).apply(state)

        assert trimmed.messages[0].content == "question"
        assert trimmed.orphaned_tool_messages() == []

    def test_rejects_empty_window(self):
        with pytest.raises(MemoryPolicyError):
            WindowPolicy(max_messages=0)


class TestSummarizePolicy:

    @pytest.mark.asyncio
    async def test_collapses_old_messages(self):
        seen = []

        async def summarizer(messages):
            seen.extend(messages)
            return "They exchanged greetings."

        state = _chat(3)
        trimmed = await SummarizePolicy(trigger=4, summarizer=summarizer, keep_recent=2).apply(state)

        assert [m.content for m in seen] == ["u1", "a1", "u2", "a2"]
        summary = trimmed.messages[1]
        assert summary.role is Role.ASSISTANT
        assert summary.name == "summary"
        assert summary.content == f"{SUMMARY_PREFIX} They exchanged greetings."
        assert _contents(trimmed)[0] == "You are terse."
        assert _contents(trimmed)[2:] == ["u3", "a3"]

    @pytest.mark.asyncio
    async def test_below_trigger_untouched(self):
        async def summarizer(messages):
            raise AssertionError("should not summarize")

        state = _chat(2)
        trimmed = await SummarizePolicy(trigger=4, summarizer=summarizer).apply(state)

        assert _contents(trimmed) == _contents(state)

    @pytest.mark.asyncio
    async def test_falls_back_to_window_on_failure(self):
        async def summarizer(messages):
            raise RuntimeError("model down")

        trimmed = await SummarizePolicy(trigger=4, summarizer=summarizer, keep_recent=2).apply(_chat(3))

        assert _contents(trimmed) == ["You are terse.", "u2", "a2", "u3", "a3"]

    @pytest.mark.asyncio
    async def test_uses_bound_model(self):
        model = ScriptedModel("Short recap.")
        memory = MemoryManager(SummarizePolicy(trigger=4, keep_recent=2), model=model)

        trimmed = await memory.prepare(_chat(3))

        prompt = model.calls[0]["messages"][0].content
        assert prompt.startswith("Summarize the following conversation")
        assert "user: u1" in prompt
        assert trimmed.messages[1].content == f"{SUMMARY_PREFIX} Short recap."

    def test_validates_settings(self):
        with pytest.raises(MemoryPolicyError):
            SummarizePolicy(trigger=1)
        with pytest.raises(MemoryPolicyError):
            SummarizePolicy(trigger=4, keep_recent=4)


class TestSelectivePolicy:

    @pytest.mark.asyncio
    async def test_keeps_important_then_recent(self):
        state = _chat(3, system=None)

        policy = SelectivePolicy(
            importance_fn=lambda m: 1.0 if m.content == "u1" else 0.1,
            max_messages=4,
            keep_recent=2,
        )
        trimmed = await policy.apply(state)

        # u1 by importance, a2 wins the tie on recency, then the recent block.
        assert _contents(trimmed) == ["u1", "a2", "u3", "a3"]

    @pytest.mark.asyncio
    async def test_tool_units_kept_whole(self):
        trimmed = await SelectivePolicy(max_messages=4, keep_recent=2).apply(_with_tools())

        assert len(trimmed) == 4
        assert trimmed.orphaned_tool_messages() == []
        assert [m.role for m in trimmed.messages[:2]] == [Role.ASSISTANT, Role.TOOL]
        assert _contents(trimmed)[2:] == ["a2", "u3"]

    @pytest.mark.asyncio
    async def test_last_user_always_kept(self):
        state = _chat(3, system=None)
        state.append(Message.assistant("a3b"))

        trimmed = await SelectivePolicy(
            importance_fn=lambda m: 0.0, max_messages=2, keep_recent=1
        ).apply(state)

        assert trimmed.last_user_message().content == "u3"
        assert len(trimmed) <= 2


class TestPolicyHelpers:

    def test_group_units(self):
        units = group_units(_with_tools().messages)

        assert [len(u) for u in units] == [1, 2, 1, 1, 1, 1]

    @pytest.mark.parametrize("name,policy_type", [
        ("window", WindowPolicy),
        ("summarize", SummarizePolicy),
        ("selective", SelectivePolicy),
        ("all", AllPolicy),
    ])
    def test_policy_from_config(self, name, policy_type):
        config = MemoryConfig(policy=name, max_messages=20, summarize_trigger=20, keep_recent=6)

        assert isinstance(policy_from_config(config), policy_type)

    def test_unknown_policy(self):
        config = MemoryConfig(policy="forget", max_messages=20, summarize_trigger=20, keep_recent=6)

        with pytest.raises(MemoryPolicyError):
            policy_from_config(config)

    @pytest.mark.asyncio
    async def test_manager_defaults_to_all(self):
        state = _chat(30)

        assert len(await MemoryManager().prepare(state)) == len(state)
