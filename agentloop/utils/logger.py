"""
Run Logging
===========

Named, levelled console logging shared by the engines, the tool executor
and the memory manager. Each component owns a logger named after itself;
nested components extend the name with a colon:

    [2026-01-31T10:30:00] [INFO] [FunctionAgent:Tools] Executing tool: calculator

The threshold comes from LOG_LEVEL (DEBUG, INFO, WARNING, ERROR) and can
be changed per logger with set_level(). WARNING and ERROR lines go to
stderr, the rest to stdout. ANSI colour is only used on a terminal and is
switched off entirely by NO_COLOR.

Usage:
    from agentloop.utils.logger import Logger

    log = Logger("ReActAgent")
    log.info("Starting run")
    log.debug("Parsed step", {"tool": "calculator", "args": {"a": 1}})
    log.child("Tools").warning("Tool failed", {"tool": "http_request"})
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


_RESET = "\033[0m"
_DIM = "\033[2m"

# level -> (label printed in the line, ANSI colour)
_STYLES: dict[LogLevel, tuple[str, str]] = {
    LogLevel.DEBUG: ("DEBUG", "\033[36m"),
    LogLevel.INFO: ("INFO", "\033[32m"),
    LogLevel.WARNING: ("WARN", "\033[33m"),
    LogLevel.ERROR: ("ERROR", "\033[31m"),
}

_ALIASES = {"WARN": LogLevel.WARNING}


def parse_level(name: str | None, fallback: LogLevel = LogLevel.INFO) -> LogLevel:
    """Map a level name such as "debug" or "WARN" to a LogLevel."""
    if not name:
        return fallback
    key = name.strip().upper()
    if key in _ALIASES:
        return _ALIASES[key]
    return LogLevel.__members__.get(key, fallback)


def _colour_enabled(stream: TextIO) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def _paint(text: str, colour: str, enabled: bool) -> str:
    return f"{colour}{text}{_RESET}" if enabled else text


class Logger:
    """
    Console logger bound to a component name.

    Messages below the logger's threshold are dropped before anything is
    formatted. Structured data is printed under the line as indented JSON.
    Errors passed to error() contribute their type, message and, for
    agentloop errors, the phase they failed in.

    Example:
        log = Logger("ConversationalAgent")
        log.child("Memory").debug("Trimmed history", {"before": 24, "after": 20})
    """

    def __init__(self, context: str = ""):
        self.context = context
        self._threshold = parse_level(os.getenv("LOG_LEVEL"))

    def child(self, name: str) -> "Logger":
        """Logger for a sub-component, e.g. Logger("ReActAgent").child("Parser")."""
        scoped = Logger(f"{self.context}:{name}" if self.context else name)
        scoped._threshold = self._threshold
        return scoped

    def set_level(self, level: str) -> None:
        self._threshold = parse_level(level, self._threshold)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self._threshold

    def _render(self, level: LogLevel, message: str, colour_on: bool) -> str:
        label, colour = _STYLES[level]
        stamp = _paint(f"[{datetime.now().isoformat(timespec='seconds')}]", _DIM, colour_on)
        parts = [stamp, _paint(f"[{label}]", colour, colour_on)]
        if self.context:
            parts.append(f"[{self.context}]")
        parts.append(message)
        return " ".join(parts)

    def _emit(self, level: LogLevel, message: str, data: dict[str, Any] | None) -> None:
        if not self.is_enabled_for(level):
            return

        stream = sys.stderr if level >= LogLevel.WARNING else sys.stdout
        colour_on = _colour_enabled(stream)
        lines = [self._render(level, message, colour_on)]
        if data:
            lines.append(_paint(json.dumps(data, indent=2, default=str), _DIM, colour_on))
        print("\n".join(lines), file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._emit(LogLevel.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._emit(LogLevel.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """
        For recoverable problems: a tool failing, the iteration guard
        firing, a summarizer falling back to window trimming.
        """
        self._emit(LogLevel.WARNING, message, data)

    def error(
        self,
        message: str,
        error: BaseException | None = None,
        data: dict[str, Any] | None = None
    ) -> None:
        """
        Log a failure.

        Args:
            message: What went wrong, in a few words
            error: The exception, if there is one
            data: Extra structured context
        """
        details = dict(data or {})
        if error is not None:
            details.update(error_type=type(error).__name__, error_message=str(error))
            phase = getattr(error, "phase", None)
            if phase:
                details["phase"] = phase
        self._emit(LogLevel.ERROR, message, details or None)

