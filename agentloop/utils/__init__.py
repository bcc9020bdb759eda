"""
Utilities Module
================

Shared plumbing for the engines:
- logger: named, levelled console logging
- config: environment-driven defaults
"""

from agentloop.utils.logger import Logger, LogLevel
from agentloop.utils.config import get_config, reset_config, Config

__all__ = ["Logger", "LogLevel", "get_config", "reset_config", "Config"]
