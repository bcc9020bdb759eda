"""
Settings
========

Environment-driven defaults for the engines, read once into frozen
dataclasses. A .env file in the working directory is loaded before the
environment is read.

Settings only fill gaps: every engine accepts explicit keyword arguments
and consults these values for whatever the caller leaves out, so an
agent built around an injected model needs no environment at all. The
OpenAI key is demanded only when the OpenAI adapter is built from
settings.

Environment variables:
    OPENAI_API_KEY, OPENAI_MODEL, OPENAI_BASE_URL, OPENAI_TEMPERATURE
    AGENT_MAX_ITERATIONS, REACT_MAX_ITERATIONS, REACT_MAX_STALL_RETRIES
    TOOL_TIMEOUT_SECONDS, PARALLEL_TOOL_CALLS
    MEMORY_POLICY, MEMORY_MAX_MESSAGES, MEMORY_SUMMARIZE_TRIGGER, MEMORY_KEEP_RECENT
    STREAM_BUFFER_SIZE, LOG_LEVEL

Usage:
    from agentloop.utils.config import get_config

    settings = get_config()
    settings.agent.max_iterations
    settings.memory.policy
"""

import os
import sys
from dataclasses import dataclass
from typing import Callable, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")

_TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str, default: T, convert: Callable[[str], T]) -> T:
    """
    Read one variable through a converter.

    Unset or blank variables give the default; so do values the converter
    rejects, with a note on stderr.
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return convert(raw)
    except ValueError:
        print(f"Ignoring {name}={raw!r}; falling back to {default!r}", file=sys.stderr)
        return default


def _env_str(name: str, default: str) -> str:
    return _env(name, default, str)


def _env_int(name: str, default: int) -> int:
    return _env(name, default, int)


def _env_float(name: str, default: float) -> float:
    return _env(name, default, float)


def _env_flag(name: str, default: bool) -> bool:
    return _env(name, default, lambda raw: raw.lower() in _TRUTHY)


# ==============================================================================
# Sections
# ==============================================================================

@dataclass(frozen=True)
class OpenAIConfig:
    """Chat-completions endpoint and sampling."""
    api_key: str | None
    model: str
    base_url: str | None    # any OpenAI-compatible server
    temperature: float


@dataclass(frozen=True)
class AgentConfig:
    """Loop guards and tool execution."""
    max_iterations: int         # model calls per FunctionAgent run
    react_max_iterations: int   # model calls per ReActAgent run
    max_stall_retries: int      # unparseable ReAct replies re-prompted before giving up
    tool_timeout: float         # seconds per tool call, 0 disables
    parallel_tool_calls: bool


@dataclass(frozen=True)
class MemoryConfig:
    """Retention policy applied to conversation history."""
    policy: str             # window | summarize | selective | all
    max_messages: int
    summarize_trigger: int
    keep_recent: int


@dataclass(frozen=True)
class StreamConfig:
    buffer_size: int        # events held before the producer waits


@dataclass(frozen=True)
class Config:
    openai: OpenAIConfig
    agent: AgentConfig
    memory: MemoryConfig
    stream: StreamConfig
    log_level: str


def load_config() -> Config:
    """Build a fresh Config from .env and the process environment."""
    load_dotenv()

    openai = OpenAIConfig(
        api_key=os.getenv("OPENAI_API_KEY") or None,
        model=_env_str("OPENAI_MODEL", "gpt-4o-mini"),
        base_url=os.getenv("OPENAI_BASE_URL") or None,
        temperature=_env_float("OPENAI_TEMPERATURE", 0.0),
    )
    agent = AgentConfig(
        max_iterations=_env_int("AGENT_MAX_ITERATIONS", 5),
        react_max_iterations=_env_int("REACT_MAX_ITERATIONS", 10),
        max_stall_retries=_env_int("REACT_MAX_STALL_RETRIES", 1),
        tool_timeout=_env_float("TOOL_TIMEOUT_SECONDS", 30.0),
        parallel_tool_calls=_env_flag("PARALLEL_TOOL_CALLS", True),
    )
    memory = MemoryConfig(
        policy=_env_str("MEMORY_POLICY", "window").lower(),
        max_messages=_env_int("MEMORY_MAX_MESSAGES", 20),
        summarize_trigger=_env_int("MEMORY_SUMMARIZE_TRIGGER", 20),
        keep_recent=_env_int("MEMORY_KEEP_RECENT", 6),
    )
    return Config(
        openai=openai,
        agent=agent,
        memory=memory,
        stream=StreamConfig(buffer_size=_env_int("STREAM_BUFFER_SIZE", 10)),
        log_level=_env_str("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Cached instance
# ==============================================================================

_cached: Config | None = None


def get_config() -> Config:
    """Settings loaded on first use and shared by every engine afterwards."""
    global _cached
    if _cached is None:
        _cached = load_config()
    return _cached


def reset_config() -> None:
    """Forget the cached settings; the next get_config() reads the environment again."""
    global _cached
    _cached = None


def require_openai_key() -> str:
    """
    The configured OpenAI API key.

    Raises:
        ValueError: If OPENAI_API_KEY is unset or blank
    """
    key = os.getenv("OPENAI_API_KEY", "").strip() or get_config().openai.api_key
    if not key:
        raise ValueError(
            "OPENAI_API_KEY is not set. Export it or add it to a .env file "
            "before building the OpenAI adapter from settings."
        )
    return key
