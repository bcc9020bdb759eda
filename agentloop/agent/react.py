"""
ReAct Agent
===========

Reasoning + Acting through prompting alone, so it works with any model,
including ones without native function calling.

Loop:
    1. Thought: the model reasons about what to do next
    2. Action: the model names a tool and its arguments
    3. Observation: the engine runs the tool and feeds the result back
    4. Repeat until "Final Answer:"

Each model call produces one ReasoningStep, kept in a trace that callers
can inspect after the run (get_trace()). Tool calls are also recorded in
the conversation as assistant/tool message pairs, so the exported state
looks the same as a FunctionAgent's.

A response with neither an action nor a final answer is a stall. The
engine re-prompts with a clarifying note up to max_stall_retries times,
then raises ReasoningStalled carrying the steps taken so far.
"""

from dataclasses import dataclass, field
from typing import Any

from agentloop.agent.base import BaseAgent
from agentloop.agent.react_parser import ParsedResponse, ResponseKind, parse_response
from agentloop.agent.streaming import EventSink, EventType
from agentloop.errors import MaxIterationsExceeded, ReasoningStalled
from agentloop.memory.state import AgentResponse, ConversationState, Message, Role, ToolCall, Usage, new_tool_call_id
from agentloop.utils.config import get_config

REACT_SYSTEM_PROMPT = """You are a helpful AI assistant that solves problems step-by-step using the ReAct framework.

Follow this format exactly:

Thought: [Your reasoning about what to do next]
Action: tool_name(param1=value1, param2=value2)
Observation: [You will see the result here]

After seeing the observation, continue:

Thought: [Your reasoning about the observation]
Action: [Next action, or Final Answer if done]
...

When you have the final answer, respond with:
Thought: [Final reasoning]
Final Answer: [Your final answer to the user's question]

Important rules:
1. Always start with a Thought
2. Use Action to call tools when needed
3. Wait for Observation before continuing
4. Only provide Final Answer when you're confident
5. Be concise and clear in your reasoning"""

STALL_NOTE = (
    "Your last response contained neither an Action nor a Final Answer. "
    "Reply with a Thought followed by either "
    "'Action: tool_name(param=value)' or 'Final Answer: <answer>'."
)


@dataclass(frozen=True)
class ReasoningStep:
    """
    One iteration of the ReAct loop. Immutable once recorded.

    Attributes:
        iteration: 1-based loop iteration
        thought: The model's reasoning
        action: Tool name, if the model acted
        action_input: Arguments passed to the tool
        observation: Tool result (or error) text
        final_answer: Set on the step that ended the run
        tool_call_id: Id of the recorded ToolCall, if any
    """
    iteration: int
    thought: str = ""
    action: str | None = None
    action_input: dict[str, Any] = field(default_factory=dict)
    observation: str | None = None
    final_answer: str | None = None
    tool_call_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "thought": self.thought,
            "action": self.action,
            "action_input": dict(self.action_input),
            "observation": self.observation,
            "final_answer": self.final_answer,
            "tool_call_id": self.tool_call_id,
        }


class ReActAgent(BaseAgent):
    """
    Prompt-driven reasoning agent.

    Example:
        agent = ReActAgent(llm, tools=[Calculator()])
        response = await agent.run("What is 25 * 4 + 10?")

        for step in agent.get_trace():
            print(step.thought, step.action, step.observation)
    """

    default_system_prompt = REACT_SYSTEM_PROMPT

    def __init__(self, llm, tools=None, max_stall_retries: int | None = None, **kwargs):
        """
        Args:
            llm: Model the agent talks to
            tools: Tools the agent may call
            max_stall_retries: Clarifying re-prompts before ReasoningStalled
            **kwargs: See BaseAgent
        """
        super().__init__(llm, tools, **kwargs)
        if max_stall_retries is None:
            max_stall_retries = get_config().agent.max_stall_retries
        if max_stall_retries < 0:
            raise ValueError("max_stall_retries must not be negative")
        self.max_stall_retries = max_stall_retries
        self._trace: list[ReasoningStep] = []

    def _configured_max_iterations(self, config) -> int:
        return config.agent.react_max_iterations

    def _fresh_state(self) -> ConversationState:
        # The instructions are rebuilt into every prompt with the current
        # tool list; the stored history holds only the exchange itself.
        return ConversationState(max_iterations=self.max_iterations)

    # ==========================================================================
    # Public API
    # ==========================================================================

    def get_trace(self) -> list[ReasoningStep]:
        """Reasoning steps of the most recent run."""
        return list(self._trace)

    def reset(self) -> None:
        super().reset()
        self._trace = []

    # ==========================================================================
    # Prompt
    # ==========================================================================

    def _system_message(self) -> Message:
        content = self.system_prompt or REACT_SYSTEM_PROMPT
        if len(self.registry):
            content += "\n\nAvailable tools:\n" + self.registry.describe()
        return Message.system(content)

    def _history(self, question: Message) -> list[Message]:
        """Earlier user/assistant exchanges, without tool traffic."""
        history = []
        for message in self.state.messages:
            if message is question:
                break
            if message.role is Role.USER or (message.role is Role.ASSISTANT and not message.tool_calls):
                history.append(message)
        return history

    def _build_prompt(
        self,
        question: Message,
        scratchpad: list[str],
        stalled: bool
    ) -> list[Message]:
        content = f"Question: {question.content}\nLet's approach this step-by-step:\n"
        if scratchpad:
            content += "\n".join(scratchpad) + "\n"

        messages = [self._system_message(), *self._history(question), Message.user(content)]
        if stalled:
            messages.append(Message.system(STALL_NOTE))
        return messages

    def _map_arguments(self, parsed: ParsedResponse) -> dict[str, Any]:
        """Merge positional arguments into keywords by schema order."""
        args = dict(parsed.args)
        if not parsed.positional:
            return args

        tool = self.registry.get(parsed.tool)
        names = tool.schema().parameter_names if tool else []
        free = [name for name in names if name not in args]
        for index, value in enumerate(parsed.positional):
            key = free[index] if index < len(free) else f"arg{index}"
            args[key] = value
        return args

    # ==========================================================================
    # Loop
    # ==========================================================================

    async def _execute(self, text: str, sink: EventSink) -> AgentResponse:
        self.logger.info(f"Reasoning about: {text[:50]}...")

        question = Message.user(text)
        self.state.append(question)
        self.state.iteration = 0
        self._trace = []

        usage = Usage()
        executed: list[ToolCall] = []
        scratchpad: list[str] = []
        stalls = 0
        last_text = ""

        while True:
            self.state.iteration += 1
            iteration = self.state.iteration
            if iteration > self.max_iterations:
                return await self._stop_at_limit(executed, usage)

            await self._prepare()
            if not any(m is question for m in self.state.messages):
                # Trimmed away by the memory policy; the prompt still needs it.
                question = self.state.last_user_message() or question

            prompt = self._build_prompt(question, scratchpad, stalled=stalls > 0)
            response = await self._call_model(prompt, usage, sink, with_tools=False)
            parsed = parse_response(response.content)
            last_text = response.content

            if parsed.thought:
                await sink.emit(EventType.THOUGHT, parsed.thought, iteration=iteration)

            if parsed.kind is ResponseKind.ACTION:
                stalls = 0
                step, call = await self._act(iteration, parsed, sink)
                executed.append(call)
                self._trace.append(step)
                scratchpad.append(f"{parsed.text}\nObservation: {step.observation}")
                continue

            if parsed.kind is ResponseKind.FINAL_ANSWER:
                self._trace.append(ReasoningStep(
                    iteration=iteration,
                    thought=parsed.thought,
                    final_answer=parsed.final_answer,
                ))
                self.state.append(Message.assistant(parsed.final_answer))
                await self._finish_turn()
                await sink.emit(EventType.ANSWER, parsed.final_answer)

                self.logger.info(f"Final answer after {iteration} step(s)")
                return AgentResponse(
                    content=parsed.final_answer,
                    tool_calls=executed,
                    usage=usage,
                    steps=self.get_trace(),
                    metadata={"iterations": iteration, "model": response.model},
                )

            # Neither an action nor a final answer.
            stalls += 1
            self._trace.append(ReasoningStep(iteration=iteration, thought=parsed.thought or parsed.text))
            if stalls > self.max_stall_retries:
                error = ReasoningStalled(stalls, self.get_trace(), last_text)
                self.logger.error("Reasoning stalled", error, {"iterations": iteration})
                raise error

            self.logger.warning("No action or final answer, re-prompting", {"attempt": stalls})

    async def _act(
        self,
        iteration: int,
        parsed: ParsedResponse,
        sink: EventSink
    ) -> tuple[ReasoningStep, ToolCall]:
        call = ToolCall(id=new_tool_call_id(), name=parsed.tool, args=self._map_arguments(parsed))
        self.state.append(Message.assistant(parsed.text, [call]))

        await self.executor.execute_one(call, sink)
        message = self.executor.to_message(call)
        self.state.append(message)

        step = ReasoningStep(
            iteration=iteration,
            thought=parsed.thought,
            action=call.name,
            action_input=dict(call.args),
            observation=message.content,
            tool_call_id=call.id,
        )
        return step, call

    async def _stop_at_limit(self, executed: list[ToolCall], usage: Usage) -> AgentResponse:
        self.state.iteration = self.max_iterations

        partial = ""
        for step in reversed(self._trace):
            partial = step.observation or step.thought
            if partial:
                break

        self.logger.warning(
            "Reached max iterations",
            {"max_iterations": self.max_iterations, "steps": len(self._trace)}
        )
        await self._finish_turn()
        return AgentResponse(
            content=partial,
            tool_calls=executed,
            stop_reason="max_iterations",
            error=MaxIterationsExceeded(self.max_iterations, partial),
            usage=usage,
            steps=self.get_trace(),
            metadata={"iterations": self.max_iterations},
        )
