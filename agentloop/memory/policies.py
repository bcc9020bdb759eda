"""
Memory Policies
===============

Retention strategies that keep conversation history bounded.

Every policy is applied as

    new_state = await policy.apply(state)

and never mutates the state it is given. All policies share three rules:

1. A leading system message is pinned: never counted, never removed.
2. The most recent user message is always kept.
3. No tool result survives without the assistant message that requested
   it. An assistant tool-call message and its tool results form a "unit"
   that is kept or dropped as a whole.

Policies:
- WindowPolicy: keep the newest N messages (lossy, cheap)
- SummarizePolicy: collapse the oldest block into one summary message
- SelectivePolicy: keep the highest-scoring units plus the newest few
- AllPolicy: keep everything
"""

from typing import Awaitable, Callable, TYPE_CHECKING

import numpy as np

from agentloop.errors import MemoryPolicyError
from agentloop.memory.state import ConversationState, Message, Role
from agentloop.utils.logger import Logger

if TYPE_CHECKING:
    from agentloop.llm import LanguageModel
    from agentloop.utils.config import MemoryConfig

logger = Logger("Memory")

Summarizer = Callable[[list[Message]], Awaitable[str]]
ImportanceFn = Callable[[Message], float]

SUMMARY_PREFIX = "Summary of earlier conversation:"


# ==============================================================================
# Helpers
# ==============================================================================

def _assemble(state: ConversationState, body: list[Message]) -> ConversationState:
    pinned = state.pinned_system
    messages = ([pinned] if pinned else []) + body
    return state.with_messages(messages)


def _drop_leading_tool_results(messages: list[Message]) -> list[Message]:
    """Tool results at the front of a window have lost their tool call."""
    start = 0
    while start < len(messages) and messages[start].role is Role.TOOL:
        start += 1
    return messages[start:]


def _contains(messages: list[Message], target: Message) -> bool:
    return any(m is target for m in messages)


def group_units(body: list[Message]) -> list[list[Message]]:
    """
    Split history into units.

    An assistant message with tool calls absorbs the tool results that
    answer it. Every other message is a unit of its own. Tool results
    whose call is not in the history come back as single-message units
    flagged by role so callers can discard them.
    """
    units: list[list[Message]] = []
    open_calls: set[str] = set()

    for message in body:
        if message.role is Role.TOOL and message.tool_call_id in open_calls and units:
            units[-1].append(message)
            continue
        units.append([message])
        open_calls = {call.id for call in message.tool_calls}

    return units


def _is_orphan_unit(unit: list[Message]) -> bool:
    return unit[0].role is Role.TOOL


def format_transcript(messages: list[Message]) -> str:
    """Render messages as 'role: content' lines for a summarization prompt."""
    lines = []
    for message in messages:
        if message.role is Role.TOOL:
            lines.append(f"tool ({message.name}): {message.content}")
        elif message.tool_calls:
            calls = ", ".join(f"{c.name}({c.args})" for c in message.tool_calls)
            text = f"{message.content} " if message.content else ""
            lines.append(f"assistant: {text}[called {calls}]")
        else:
            lines.append(f"{message.role.value}: {message.content}")
    return "\n".join(lines)


# ==============================================================================
# Policies
# ==============================================================================

class MemoryPolicy:
    """Base class for retention policies."""

    name = "base"

    async def apply(self, state: ConversationState) -> ConversationState:
        raise NotImplementedError

    def bind_model(self, model: "LanguageModel") -> None:
        """Give the policy access to the agent's model. Most policies ignore it."""


class AllPolicy(MemoryPolicy):
    """No trimming. The caller accepts unbounded growth."""

    name = "all"

    async def apply(self, state: ConversationState) -> ConversationState:
        return state.with_messages(state.messages)


class WindowPolicy(MemoryPolicy):
    """
    Keep only the newest `max_messages` messages (plus the pinned system
    message). Older messages are dropped outright.
    """

    name = "window"

    def __init__(self, max_messages: int = 20):
        if max_messages < 1:
            raise MemoryPolicyError("window size must be at least 1")
        self.max_messages = max_messages

    async def apply(self, state: ConversationState) -> ConversationState:
        return _assemble(state, self.trim(state.body()))

    def trim(self, body: list[Message]) -> list[Message]:
        if len(body) <= self.max_messages:
            return list(body)

        kept = _drop_leading_tool_results(body[-self.max_messages:])

        last_user = next((m for m in reversed(body) if m.role is Role.USER), None)
        if last_user is None or _contains(kept, last_user):
            return kept

        # The newest user message fell out of the window: keep it and fill
        # the remaining slots with what came after it.
        index = next(i for i, m in enumerate(body) if m is last_user)
        after = body[index + 1:]
        room = self.max_messages - 1
        tail = _drop_leading_tool_results(after[-room:]) if room > 0 else []
        return [last_user] + tail


class SummarizePolicy(MemoryPolicy):
    """
    Once the history grows past `trigger` messages, collapse everything but
    the newest `keep_recent` messages into one assistant-authored summary.

    If the summarizer fails, the turn continues with window trimming at
    `trigger` messages instead.
    """

    name = "summarize"

    def __init__(
        self,
        trigger: int = 20,
        summarizer: Summarizer | None = None,
        keep_recent: int | None = None
    ):
        if trigger < 2:
            raise MemoryPolicyError("summarize trigger must be at least 2")
        self.trigger = trigger
        self.summarizer = summarizer
        self.keep_recent = keep_recent if keep_recent is not None else trigger // 2
        if not 0 < self.keep_recent < trigger:
            raise MemoryPolicyError("keep_recent must be between 1 and trigger - 1")

    def bind_model(self, model: "LanguageModel") -> None:
        if self.summarizer is None:
            self.summarizer = ModelSummarizer(model)

    async def apply(self, state: ConversationState) -> ConversationState:
        body = state.body()
        if len(body) <= self.trigger:
            return _assemble(state, body)

        split = len(body) - self.keep_recent
        # Never start the recent block with a tool result.
        while split < len(body) and body[split].role is Role.TOOL:
            split += 1

        last_user_index = max(
            (i for i, m in enumerate(body) if m.role is Role.USER), default=None
        )
        if last_user_index is not None and last_user_index < split:
            split = last_user_index

        old, recent = body[:split], body[split:]
        if not old:
            return _assemble(state, body)

        if self.summarizer is None:
            raise MemoryPolicyError("summarize policy has no summarizer")

        try:
            summary = await self.summarizer(old)
        except Exception as e:
            logger.warning(
                "Summarization failed, falling back to window trimming",
                {"error": str(e), "trigger": self.trigger}
            )
            return _assemble(state, WindowPolicy(self.trigger).trim(body))

        summary_message = Message(
            role=Role.ASSISTANT,
            content=f"{SUMMARY_PREFIX} {summary.strip()}",
            name="summary",
            metadata={"summary": True, "summarized_messages": len(old)},
        )
        logger.debug(f"Summarized {len(old)} messages, kept {len(recent)}")
        return _assemble(state, [summary_message] + recent)


def default_importance(message: Message) -> float:
    """
    Score a message for SelectivePolicy.

    Tool traffic and earlier summaries rank highest, then user messages,
    then plain assistant text. Longer content earns a small bonus.
    """
    if message.metadata.get("summary"):
        base = 0.9
    elif message.role is Role.TOOL or message.tool_calls:
        base = 0.8
    elif message.role is Role.USER:
        base = 0.6
    elif message.role is Role.SYSTEM:
        base = 0.7
    else:
        base = 0.4
    return base + min(len(message.content), 500) / 500 * 0.1


class SelectivePolicy(MemoryPolicy):
    """
    Keep `max_messages` messages: the newest `keep_recent` in chronological
    order, preceded by the most important older units in descending
    importance order (ties go to the more recent unit).
    """

    name = "selective"

    def __init__(
        self,
        importance_fn: ImportanceFn | None = None,
        max_messages: int = 20,
        keep_recent: int = 6
    ):
        if max_messages < 1:
            raise MemoryPolicyError("selective budget must be at least 1")
        self.importance_fn = importance_fn or default_importance
        self.max_messages = max_messages
        self.keep_recent = min(keep_recent, max_messages)

    async def apply(self, state: ConversationState) -> ConversationState:
        body = state.body()
        if len(body) <= self.max_messages:
            return _assemble(state, body)

        units = group_units(body)

        # Newest units that fit in keep_recent.
        recent_ids: set[int] = set()
        used = 0
        for index in range(len(units) - 1, -1, -1):
            size = len(units[index])
            if used + size > self.keep_recent:
                break
            recent_ids.add(index)
            used += size

        last_user = next((i for i in range(len(units) - 1, -1, -1)
                          if units[i][0].role is Role.USER), None)
        if last_user is not None and last_user not in recent_ids:
            while recent_ids and used + 1 > self.max_messages:
                oldest = min(recent_ids)
                recent_ids.discard(oldest)
                used -= len(units[oldest])
            recent_ids.add(last_user)
            used += 1

        candidates = [
            i for i in range(len(units))
            if i not in recent_ids and not _is_orphan_unit(units[i])
        ]
        selected: list[int] = []
        budget = self.max_messages - used

        if candidates and budget > 0:
            indices = np.array(candidates)
            scores = np.array([
                max(self.importance_fn(m) for m in units[i]) for i in candidates
            ], dtype=float)
            # Primary key: score descending. Secondary: recency descending.
            order = np.lexsort((-indices, -scores))
            for position in order:
                unit_index = int(indices[position])
                size = len(units[unit_index])
                if size <= budget:
                    selected.append(unit_index)
                    budget -= size

        kept: list[Message] = []
        for unit_index in selected:
            kept.extend(units[unit_index])
        for unit_index in sorted(recent_ids):
            kept.extend(units[unit_index])

        logger.debug(f"Selective memory kept {len(kept)} of {len(body)} messages")
        return _assemble(state, kept)


# ==============================================================================
# Summarizer backed by the agent's model
# ==============================================================================

class ModelSummarizer:
    """Summarizes a block of messages with a LanguageModel."""

    PROMPT = (
        "Summarize the following conversation concisely, preserving key facts "
        "and context:\n\n{conversation}\n\nSummary:"
    )

    def __init__(self, model: "LanguageModel"):
        self.model = model

    async def __call__(self, messages: list[Message]) -> str:
        prompt = self.PROMPT.format(conversation=format_transcript(messages))
        return await self.model.complete(prompt)


def policy_from_config(config: "MemoryConfig") -> MemoryPolicy:
    """Build the configured default policy."""
    if config.policy == "window":
        return WindowPolicy(config.max_messages)
    if config.policy == "summarize":
        return SummarizePolicy(
            trigger=config.summarize_trigger,
            keep_recent=min(config.keep_recent, config.summarize_trigger - 1),
        )
    if config.policy == "selective":
        return SelectivePolicy(max_messages=config.max_messages, keep_recent=config.keep_recent)
    if config.policy == "all":
        return AllPolicy()
    raise MemoryPolicyError(f"unknown memory policy: {config.policy}")
