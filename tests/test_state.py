"""Tests for the conversation data model."""

import json

import pytest

from agentloop.memory.state import (
    AgentResponse,
    ConversationState,
    Message,
    Role,
    ToolCall,
    Usage,
    new_tool_call_id,
)


def _conversation() -> ConversationState:
    call = ToolCall(id="call_1", name="calculator", args={"operation": "add", "a": 1, "b": 2})
    call.settle(result=3, duration=0.01)

    state = ConversationState(max_iterations=7)
    state.append(Message.system("Be brief."))
    state.append(Message.user("1 + 2?"))
    state.append(Message.assistant("", [call]))
    state.append(Message.tool(call, "3"))
    state.append(Message.assistant("3"))
    state.usage.add({"prompt_tokens": 12, "completion_tokens": 4})
    return state


class TestToolCall:

    def test_settles_once(self):
        call = ToolCall(id="call_1", name="echo")
        call.settle(result="hi")

        assert call.settled and call.succeeded
        with pytest.raises(RuntimeError):
            call.settle(error="again")

    def test_failed_call(self):
        call = ToolCall(id="call_2", name="echo")
        call.settle(error="boom")

        assert call.settled
        assert not call.succeeded

    def test_generated_ids_are_unique(self):
        ids = {new_tool_call_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(i.startswith("call_") for i in ids)


class TestMessage:

    def test_tool_message_requires_call_id(self):
        with pytest.raises(ValueError):
            Message(role=Role.TOOL, content="orphan")

    def test_role_coerced_from_string(self):
        assert Message(role="user", content="hi").role is Role.USER

    def test_tool_message_points_at_call(self):
        call = ToolCall(id="call_9", name="echo")
        message = Message.tool(call, "done")

        assert message.tool_call_id == "call_9"
        assert message.name == "echo"


class TestConversationState:

    def test_round_trip_is_json_compatible(self):
        state = _conversation()

        data = json.loads(json.dumps(state.to_dict()))
        restored = ConversationState.from_dict(data)

        assert restored.to_dict() == state.to_dict()
        assert restored.messages[2].tool_calls[0].settled
        assert restored.max_iterations == 7
        assert restored.usage.total_tokens == 16

    def test_copy_is_independent(self):
        state = _conversation()
        clone = state.copy()
        clone.append(Message.user("more"))
        clone.messages[1].content = "changed"

        assert len(state) == 5
        assert state.messages[1].content == "1 + 2?"

    def test_pinned_system_and_body(self):
        state = _conversation()

        assert state.pinned_system.content == "Be brief."
        assert len(state.body()) == 4
        assert state.last_user_message().content == "1 + 2?"

    def test_orphans_detected(self):
        state = _conversation()
        assert state.orphaned_tool_messages() == []

        trimmed = state.with_messages([state.messages[0], state.messages[3]])
        assert trimmed.orphaned_tool_messages() == [state.messages[3]]

    def test_shared_call_id_is_unpaired(self):
        state = _conversation()
        assert state.unpaired_tool_messages() == []

        again = ToolCall(id="call_1", name="calculator", args={"operation": "add", "a": 2, "b": 2})
        state.append(Message.assistant("", [again]))
        state.append(Message.tool(again, "4"))

        assert state.orphaned_tool_messages() == []
        assert state.unpaired_tool_messages() == [state.messages[-1]]
        assert state.tool_call_ids() == {"call_1"}


class TestUsageAndResponse:

    def test_usage_accumulates(self):
        usage = Usage()
        usage.add({"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5})
        usage.add({"prompt_tokens": 1, "completion_tokens": 1})
        usage.add(None)

        assert usage.to_dict() == {"prompt_tokens": 4, "completion_tokens": 3, "total_tokens": 7}

    def test_incomplete_flag(self):
        assert not AgentResponse(content="done").incomplete
        assert AgentResponse(content="", stop_reason="max_iterations").incomplete
