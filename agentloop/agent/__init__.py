"""
Agent System
============

Three engines share one ConversationState model, one ToolRegistry and
one MemoryManager:

1. FunctionAgent: native function calling until the model answers
2. ReActAgent: Thought / Action / Observation through prompting alone
3. ConversationalAgent: multi-turn chat under a memory policy

Every engine offers run() for a single response and run_stream() for an
EventStream of typed progress events.

This module provides:
- FunctionAgent, ReActAgent, ConversationalAgent: the engines
- ToolExecutor: runs the tool calls of one step
- StreamPipeline / EventStream / StreamEvent: the streaming channel
"""

from agentloop.agent.base import BaseAgent
from agentloop.agent.function import FunctionAgent
from agentloop.agent.react import ReActAgent, ReasoningStep
from agentloop.agent.react_parser import ParsedResponse, ResponseKind, parse_response
from agentloop.agent.conversational import ConversationalAgent
from agentloop.agent.tools_executor import ToolExecutor
from agentloop.agent.streaming import (
    EventSink,
    EventStream,
    EventType,
    StreamEvent,
    StreamPipeline,
)

__all__ = [
    "BaseAgent",
    "FunctionAgent",
    "ReActAgent",
    "ReasoningStep",
    "ConversationalAgent",
    "ParsedResponse",
    "ResponseKind",
    "parse_response",
    "ToolExecutor",
    "EventSink",
    "EventStream",
    "EventType",
    "StreamEvent",
    "StreamPipeline",
]
