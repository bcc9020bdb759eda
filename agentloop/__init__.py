"""
agentloop - Agent Orchestration Core
====================================

A small runtime for LLM agents built around one conversation model.

This package provides:
- Agent engines: function calling, ReAct reasoning, conversational chat
- Tool registry with JSON-schema tools (calculator, HTTP, files)
- Memory policies that keep history bounded (window, summarize, selective)
- A streaming pipeline with typed events and cancellation
"""

__version__ = "1.0.0"
