"""
ReAct Response Parser
=====================

Extracts structured intent from free-form ReAct text:

    Thought: I need to multiply 25 by 4
    Action: calculator(operation=multiply, a=25, b=4)

    Thought: I have the answer
    Final Answer: 100

The parser is a line-based state machine. It never raises: anything it
cannot make sense of comes back as ResponseKind.UNPARSEABLE and the
ReAct loop decides what to do about it.

Accepted action forms:
    Action: tool(a=1, b="two")           keyword arguments
    Action: tool({"a": 1, "b": "two"})   JSON object
    Action: tool(25, 4)                  positional (mapped by the agent)
    Action: tool                         only with a following line:
    Action Input: {"a": 1}               JSON, key=value list or a bare value

"Action: None" (or n/a, nothing, ...) means no action, and
"Action: Final Answer: X" is read as the final answer X.

Labels may be wrapped in markdown (**Action:**, ### Thought:). Parsing
stops at the first "Observation:" label, so observations the model
invents for itself are ignored. When a response carries both a real
action and a final answer, the action wins.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ResponseKind(str, Enum):
    FINAL_ANSWER = "final_answer"
    ACTION = "action"
    UNPARSEABLE = "unparseable"


@dataclass(frozen=True)
class ParsedResponse:
    """
    Tagged result of parsing one model response.

    Attributes:
        kind: Which variant this is
        thought: The model's reasoning text (may be empty)
        tool: Tool name (ACTION only)
        args: Keyword arguments (ACTION only)
        positional: Positional arguments, in order (ACTION only)
        final_answer: Answer text (FINAL_ANSWER only)
        text: The response up to any self-written Observation
    """
    kind: ResponseKind
    thought: str = ""
    tool: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    positional: tuple[Any, ...] = ()
    final_answer: str | None = None
    text: str = ""


_LABEL = re.compile(
    r"^[\s#*>]*(thought|think|action\s+input|action|observation|final\s+answer)[\s*]*:[\s*]*(.*)$",
    re.IGNORECASE,
)
_ACTION = re.compile(r"^([A-Za-z_][\w.\-]*)\s*(?:\((.*)\))?\s*$", re.DOTALL)
_KEYWORD = re.compile(r"^\s*([A-Za-z_]\w*)\s*=\s*(.*)$", re.DOTALL)
_ACTION_ANSWER = re.compile(r"^final\s+answer\b[\s*]*:?[\s*]*(.*)$", re.IGNORECASE | re.DOTALL)

_PYTHON_LITERALS = {"True": True, "False": False, "None": None}
_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_NO_ACTION = {"none", "null", "n/a", "na", "nothing", "no action", "-"}


def _normalize_label(label: str) -> str:
    label = " ".join(label.lower().split())
    return "thought" if label == "think" else label


def _split_sections(response: str) -> tuple[dict[str, str], str]:
    """Group lines under their labels. First occurrence of a label wins."""
    sections: dict[str, list[str]] = {}
    current: str | None = None
    kept_lines: list[str] = []

    for line in response.splitlines():
        match = _LABEL.match(line)
        if match:
            label = _normalize_label(match.group(1))
            if label == "observation":
                break
            if label in sections:
                current = None
            else:
                current = label
                sections[label] = [match.group(2).rstrip(" *")]
        elif current is not None:
            sections[current].append(line)
        kept_lines.append(line)

    return {k: "\n".join(v).strip() for k, v in sections.items()}, "\n".join(kept_lines).strip()


def split_arguments(text: str) -> list[str]:
    """Split on top-level commas, respecting quotes and brackets."""
    pieces: list[str] = []
    buffer: list[str] = []
    stack: list[str] = []
    quote: str | None = None

    for char in text:
        if quote:
            buffer.append(char)
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif stack and char == stack[-1]:
            stack.pop()
        elif char == "," and not stack:
            pieces.append("".join(buffer).strip())
            buffer = []
            continue
        buffer.append(char)

    tail = "".join(buffer).strip()
    if tail or pieces:
        pieces.append(tail)
    return [piece for piece in pieces if piece]


def coerce_value(raw: str) -> Any:
    """Best-effort conversion of an argument literal to a Python value."""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    if value in _PYTHON_LITERALS:
        return _PYTHON_LITERALS[value]
    try:
        return json.loads(value)
    except ValueError:
        return value


def parse_arguments(text: str) -> tuple[dict[str, Any], tuple[Any, ...]]:
    """Parse an argument list into keyword and positional arguments."""
    text = text.strip()
    if not text:
        return {}, ()

    if text.startswith("{"):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed, ()

    args: dict[str, Any] = {}
    positional: list[Any] = []
    for piece in split_arguments(text):
        keyword = _KEYWORD.match(piece)
        if keyword:
            args[keyword.group(1)] = coerce_value(keyword.group(2))
        else:
            positional.append(coerce_value(piece))
    return args, tuple(positional)


def _parse_action(action: str, action_input: str | None) -> tuple[str, dict[str, Any], tuple[Any, ...]] | None:
    action = action.strip().strip("`").strip()
    if action.lower().rstrip(".") in _NO_ACTION:
        return None
    match = _ACTION.match(action)
    if not match:
        return None

    tool, inner = match.group(1), match.group(2)
    if inner is not None:
        args, positional = parse_arguments(inner)
    elif action_input is not None:
        args, positional = parse_arguments(action_input.strip().strip("`"))
    else:
        # a bare word is only a call when an Action Input line names its arguments
        return None
    return tool, args, positional


def _answer_in_action(action: str, sections: dict[str, str]) -> str | None:
    """The answer from "Action: Final Answer: X", or None for a real action."""
    match = _ACTION_ANSWER.match(action.strip().strip("`"))
    if not match:
        return None
    return match.group(1).strip() or sections.get("final answer") or None


def parse_response(response: str) -> ParsedResponse:
    """
    Parse one ReAct model response.

    Returns:
        ParsedResponse tagged ACTION, FINAL_ANSWER or UNPARSEABLE
    """
    sections, text = _split_sections(response or "")
    thought = sections.get("thought", "")

    final_answer = sections.get("final answer")
    action_text = sections.get("action")
    if action_text:
        answer = _answer_in_action(action_text, sections)
        if answer is not None:
            final_answer = answer
        else:
            action = _parse_action(action_text, sections.get("action input"))
            if action is not None:
                tool, args, positional = action
                return ParsedResponse(
                    kind=ResponseKind.ACTION,
                    thought=thought,
                    tool=tool,
                    args=args,
                    positional=positional,
                    text=text,
                )

    if final_answer:
        return ParsedResponse(
            kind=ResponseKind.FINAL_ANSWER,
            thought=thought,
            final_answer=final_answer,
            text=text,
        )

    return ParsedResponse(kind=ResponseKind.UNPARSEABLE, thought=thought, text=text)
