"""Tests for the OpenAI chat adapter, against a fake client."""

from types import SimpleNamespace

import pytest

from agentloop.llm.openai_chat import OpenAIChatModel, to_openai_messages
from agentloop.memory.state import Message, ToolCall
from agentloop.tools.calculator import Calculator


class FakeCompletions:

    def __init__(self, result):
        self.result = result
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.result


def _client(result) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(result)))


def _chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    choices = []
    if content is not None or tool_calls or finish_reason:
        choices = [SimpleNamespace(
            delta=SimpleNamespace(content=content, tool_calls=tool_calls),
            finish_reason=finish_reason,
        )]
    return SimpleNamespace(choices=choices, usage=usage)


def _fragment(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class TestMessageFormatting:

    def test_tool_traffic(self):
        call = ToolCall(id="call_1", name="calculator", args={"a": 1})
        messages = to_openai_messages([
            Message.user("hi"),
            Message.assistant("", [call]),
            Message.tool(call, "1"),
        ])

        assert messages[0] == {"role": "user", "content": "hi"}
        assert messages[1]["content"] is None
        assert messages[1]["tool_calls"][0]["function"] == {
            "name": "calculator", "arguments": '{"a": 1}'
        }
        assert messages[2] == {"role": "tool", "content": "1", "tool_call_id": "call_1"}


class TestOpenAIChatModel:

    @pytest.mark.asyncio
    async def test_chat_parses_tool_calls(self):
        response = SimpleNamespace(
            model="gpt-test",
            usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
            choices=[SimpleNamespace(
                finish_reason="tool_calls",
                message=SimpleNamespace(content=None, tool_calls=[SimpleNamespace(
                    id="call_9",
                    function=SimpleNamespace(
                        name="calculator",
                        arguments='{"operation": "add", "a": 1, "b": 2}',
                    ),
                )]),
            )],
        )
        client = _client(response)
        model = OpenAIChatModel(client=client, model="gpt-test", temperature=0.0)

        result = await model.chat([Message.user("1+2")], tools=[Calculator().schema()])

        request = client.chat.completions.requests[0]
        assert request["tools"][0]["function"]["name"] == "calculator"
        assert request["tool_choice"] == "auto"
        assert request["temperature"] == 0.0
        assert result.content == ""
        assert result.tool_calls[0].id == "call_9"
        assert result.tool_calls[0].args == {"operation": "add", "a": 1, "b": 2}
        assert result.usage["total_tokens"] == 10

    @pytest.mark.asyncio
    async def test_malformed_arguments_become_empty(self):
        response = SimpleNamespace(
            model="gpt-test",
            usage=None,
            choices=[SimpleNamespace(
                finish_reason="tool_calls",
                message=SimpleNamespace(content="", tool_calls=[SimpleNamespace(
                    id="call_1", function=SimpleNamespace(name="calculator", arguments="{not json"),
                )]),
            )],
        )
        model = OpenAIChatModel(client=_client(response))

        result = await model.chat([Message.user("x")])

        assert result.tool_calls[0].args == {}

    @pytest.mark.asyncio
    async def test_stream_accumulates_fragments(self):
        async def chunks():
            yield _chunk(content="Let me ")
            yield _chunk(content="check.")
            yield _chunk(tool_calls=[_fragment(0, "call_1", "calculator", '{"operation": "add", ')])
            yield _chunk(tool_calls=[_fragment(0, arguments='"a": 1, "b": 2}')])
            yield _chunk(finish_reason="tool_calls")
            yield _chunk(usage=SimpleNamespace(prompt_tokens=4, completion_tokens=6, total_tokens=10))

        client = _client(chunks())
        model = OpenAIChatModel(client=client)

        deltas = [d async for d in model.chat_stream([Message.user("1+2")])]

        assert "".join(d.delta for d in deltas) == "Let me check."
        final = deltas[-1]
        assert final.finish_reason == "tool_calls"
        assert final.tool_calls[0].name == "calculator"
        assert final.tool_calls[0].args == {"operation": "add", "a": 1, "b": 2}
        assert final.usage["total_tokens"] == 10
        assert client.chat.completions.requests[0]["stream"] is True
