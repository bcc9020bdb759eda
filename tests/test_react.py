"""Tests for the ReAct parser and reasoning loop."""

import pytest

from conftest import ScriptedModel

from agentloop.agent import ReActAgent, ResponseKind, parse_response
from agentloop.agent.react import STALL_NOTE
from agentloop.agent.react_parser import coerce_value, split_arguments
from agentloop.errors import MaxIterationsExceeded, ReasoningStalled
from agentloop.memory.state import Role

MULTIPLY = "Thought: I need to multiply 25 by 4\nAction: calculator(operation=multiply, a=25, b=4)"
ANSWER = "Thought: I have the answer\nFinal Answer: 100"


class TestParseResponse:

    def test_action_with_keyword_arguments(self):
        parsed = parse_response(MULTIPLY)

        assert parsed.kind is ResponseKind.ACTION
        assert parsed.thought == "I need to multiply 25 by 4"
        assert parsed.tool == "calculator"
        assert parsed.args == {"operation": "multiply", "a": 25, "b": 4}

    def test_final_answer(self):
        parsed = parse_response(ANSWER)

        assert parsed.kind is ResponseKind.FINAL_ANSWER
        assert parsed.final_answer == "100"
        assert parsed.thought == "I have the answer"

    def test_multiline_final_answer(self):
        parsed = parse_response("Final Answer: line one\nline two")

        assert parsed.final_answer == "line one\nline two"

    @pytest.mark.parametrize("text", ["", "I am not sure what to do.", "Action: I will use the calculator"])
    def test_unparseable(self, text):
        assert parse_response(text).kind is ResponseKind.UNPARSEABLE

    def test_action_wins_over_final_answer(self):
        parsed = parse_response("Thought: t\nAction: echo(text=hi)\nFinal Answer: guess")

        assert parsed.kind is ResponseKind.ACTION
        assert parsed.tool == "echo"

    def test_stops_at_invented_observation(self):
        parsed = parse_response(
            "Thought: t\nAction: echo(text=hi)\nObservation: hi\nFinal Answer: hi"
        )

        assert parsed.kind is ResponseKind.ACTION
        assert "Observation" not in parsed.text

    def test_json_arguments(self):
        parsed = parse_response('Action: search({"query": "hello, world", "limit": 3})')

        assert parsed.args == {"query": "hello, world", "limit": 3}

    def test_quoted_commas(self):
        parsed = parse_response('Action: search(query="hello, world", exact=true)')

        assert parsed.args == {"query": "hello, world", "exact": True}

    def test_positional_arguments(self):
        parsed = parse_response("Action: calculator(multiply, 25, 4)")

        assert parsed.args == {}
        assert parsed.positional == ("multiply", 25, 4)

    def test_action_input_line(self):
        parsed = parse_response('Thought: look it up\nAction: search\nAction Input: {"query": "cats"}')

        assert parsed.tool == "search"
        assert parsed.args == {"query": "cats"}

    @pytest.mark.parametrize("action", ["None", "none", "N/A", "nothing"])
    def test_empty_action_defers_to_final_answer(self, action):
        parsed = parse_response(f"Thought: I know it\nAction: {action}\nFinal Answer: 42")

        assert parsed.kind is ResponseKind.FINAL_ANSWER
        assert parsed.final_answer == "42"
        assert parsed.thought == "I know it"

    def test_bare_name_needs_action_input(self):
        assert parse_response("Thought: hmm\nAction: search").kind is ResponseKind.UNPARSEABLE

    def test_final_answer_written_as_action(self):
        parsed = parse_response("Thought: done\nAction: Final Answer: 100")

        assert parsed.kind is ResponseKind.FINAL_ANSWER
        assert parsed.final_answer == "100"

    def test_final_answer_label_as_action(self):
        parsed = parse_response("Thought: done\nAction: Final Answer\nFinal Answer: 100")

        assert parsed.kind is ResponseKind.FINAL_ANSWER
        assert parsed.final_answer == "100"

    def test_markdown_labels(self):
        parsed = parse_response("**Thought:** hmm\n**Action:** echo(text=hi)")

        assert parsed.kind is ResponseKind.ACTION
        assert parsed.thought == "hmm"
        assert parsed.args == {"text": "hi"}

    def test_empty_argument_list(self):
        parsed = parse_response("Action: clock()")

        assert parsed.kind is ResponseKind.ACTION
        assert parsed.args == {}
        assert parsed.positional == ()

    def test_value_coercion(self):
        assert coerce_value("True") is True
        assert coerce_value("None") is None
        assert coerce_value("'quoted'") == "quoted"
        assert coerce_value("[1, 2]") == [1, 2]
        assert coerce_value("plain words") == "plain words"

    def test_split_respects_brackets(self):
        assert split_arguments("a=[1, 2], b={'x': 1}, c") == ["a=[1, 2]", "b={'x': 1}", "c"]


class TestReActAgent:

    @pytest.mark.asyncio
    async def test_action_then_answer(self, calculator):
        model = ScriptedModel(MULTIPLY, ANSWER)
        agent = ReActAgent(model, tools=[calculator])

        response = await agent.run("What is 25 * 4?")

        assert response.content == "100"
        assert len(model.calls) == 2
        assert model.calls[0]["tools"] is None

        steps = agent.get_trace()
        assert len(steps) == 2
        assert steps[0].action == "calculator"
        assert steps[0].observation == "100"
        assert steps[1].final_answer == "100"
        assert response.steps == steps

        first_prompt = model.calls[0]["messages"]
        assert first_prompt[0].role is Role.SYSTEM
        assert "Available tools:\n- calculator" in first_prompt[0].content
        assert first_prompt[-1].content.startswith("Question: What is 25 * 4?")

        second_prompt = model.calls[1]["messages"][-1].content
        assert "Action: calculator(operation=multiply, a=25, b=4)\nObservation: 100" in second_prompt

    @pytest.mark.asyncio
    async def test_records_tool_calls_in_state(self, calculator):
        agent = ReActAgent(ScriptedModel(MULTIPLY, ANSWER), tools=[calculator])

        await agent.run("What is 25 * 4?")

        roles = [m.role for m in agent.messages]
        assert roles == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert agent.messages[2].tool_call_id == agent.messages[1].tool_calls[0].id
        assert agent.messages[-1].content == "100"

    @pytest.mark.asyncio
    async def test_positional_arguments_follow_schema(self, calculator):
        model = ScriptedModel("Action: calculator(multiply, 25, 4)", ANSWER)
        agent = ReActAgent(model, tools=[calculator])

        await agent.run("What is 25 * 4?")

        step = agent.get_trace()[0]
        assert step.action_input == {"operation": "multiply", "a": 25, "b": 4}
        assert step.observation == "100"

    @pytest.mark.asyncio
    async def test_stalls_after_one_reprompt(self):
        model = ScriptedModel("I am not sure what to do.")
        agent = ReActAgent(model)

        with pytest.raises(ReasoningStalled) as exc_info:
            await agent.run("Help?")

        assert len(exc_info.value.steps) == 2
        assert len(agent.get_trace()) == 2
        assert exc_info.value.phase == "loop_guard"
        assert len(model.calls) == 2
        assert model.calls[1]["messages"][-1].content == STALL_NOTE
        assert not agent.running

    @pytest.mark.asyncio
    async def test_no_reprompt_when_disabled(self):
        model = ScriptedModel("...")
        agent = ReActAgent(model, max_stall_retries=0)

        with pytest.raises(ReasoningStalled):
            await agent.run("Help?")

        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_recovers_after_stall(self):
        agent = ReActAgent(ScriptedModel("hmm", "Thought: got it\nFinal Answer: 7"))

        response = await agent.run("3 + 4?")

        assert response.content == "7"
        assert len(response.steps) == 2

    @pytest.mark.asyncio
    async def test_action_none_finishes_run(self):
        model = ScriptedModel("Thought: I know it\nAction: None\nFinal Answer: 42")
        agent = ReActAgent(model, max_iterations=3)

        response = await agent.run("What is six times seven?")

        assert response.content == "42"
        assert response.stop_reason == "final_answer"
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_final_answer_in_action_line_finishes_run(self, calculator):
        model = ScriptedModel(MULTIPLY, "Thought: done\nAction: Final Answer: 100")
        agent = ReActAgent(model, tools=[calculator])

        response = await agent.run("What is 25 * 4?")

        assert response.content == "100"
        assert len(model.calls) == 2
        assert agent.get_trace()[-1].final_answer == "100"

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_observation(self):
        agent = ReActAgent(ScriptedModel("Action: nope(x=1)", ANSWER))

        await agent.run("try")

        assert agent.get_trace()[0].observation == "Error: tool not found: nope"

    @pytest.mark.asyncio
    async def test_max_iterations_returns_partial(self, calculator):
        agent = ReActAgent(ScriptedModel(MULTIPLY), tools=[calculator], max_iterations=2)

        response = await agent.run("loop")

        assert response.stop_reason == "max_iterations"
        assert isinstance(response.error, MaxIterationsExceeded)
        assert response.content == "100"
        assert len(response.steps) == 2

    @pytest.mark.asyncio
    async def test_earlier_turns_in_prompt(self):
        model = ScriptedModel("Final Answer: Hi Ada", "Final Answer: Your name is Ada")
        agent = ReActAgent(model)

        await agent.run("I am Ada")
        await agent.run("Who am I?")

        prompt = model.calls[1]["messages"]
        assert [m.content for m in prompt[1:3]] == ["I am Ada", "Hi Ada"]

    @pytest.mark.asyncio
    async def test_reset_clears_trace(self):
        agent = ReActAgent(ScriptedModel("Final Answer: ok"))
        await agent.run("hi")

        agent.reset()

        assert agent.get_trace() == []
        assert agent.messages == []
