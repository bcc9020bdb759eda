"""
Tools System
============

Tools are named capabilities the agent can call. Each tool has:
- a name (unique within a registry)
- a description shown to the model
- a ToolSchema describing its parameters
- an async execute(args) that returns a value or raises

How tools are used:
1. The agent passes the registry's schemas to the model
2. The model requests a call by name with an argument map
3. The registry resolves and executes the tool
4. The result (or error) goes back to the model as a tool message

This module provides:
- Parameter / ToolSchema for declaring arguments
- Tool, the abstract base class
- FunctionTool for wrapping a plain function
- ToolRegistry, the per-agent name -> tool mapping
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from agentloop.errors import DuplicateTool, InvalidTool, ToolExecutionError, ToolNotFound
from agentloop.utils.logger import Logger

logger = Logger("Tools")

_JSON_TYPES = {"string", "number", "integer", "boolean", "object", "array"}


@dataclass(frozen=True)
class Parameter:
    """
    A single tool parameter.

    Attributes:
        name: Parameter name
        type: string, number, integer, boolean, object or array
        description: What the parameter is for (shown to the model)
        required: Whether the model must supply it
        enum: Optional set of allowed values
        default: Value used when the parameter is omitted
    """
    name: str
    type: str = "string"
    description: str = ""
    required: bool = False
    enum: tuple = ()
    default: Any = None

    def __post_init__(self):
        if self.type not in _JSON_TYPES:
            raise ValueError(f"unsupported parameter type: {self.type}")

    def to_json_schema(self) -> dict:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        return schema


@dataclass(frozen=True)
class ToolSchema:
    """
    Declarative description of a tool's arguments.

    Example:
        schema = ToolSchema(
            name="calculator",
            description="Performs basic arithmetic",
            parameters=(
                Parameter("operation", "string", required=True,
                          enum=("add", "subtract", "multiply", "divide")),
                Parameter("a", "number", required=True),
                Parameter("b", "number", required=True),
            ),
        )
    """
    name: str
    description: str = ""
    parameters: tuple[Parameter, ...] = field(default_factory=tuple)

    @property
    def parameter_names(self) -> list[str]:
        return [p.name for p in self.parameters]

    def to_json_schema(self) -> dict:
        """The parameters as a JSON Schema object."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
        }
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema

    def to_openai_function(self) -> dict:
        """
        Convert to OpenAI function calling format.

        Returns:
            Dict in the format expected by the chat completions API
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.to_json_schema(),
            },
        }

    def prepare_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """
        Fill defaults and check required parameters and enums.

        Unknown keys pass through untouched.

        Raises:
            ValueError: On a missing required parameter or enum violation
        """
        prepared = dict(args)
        for param in self.parameters:
            if param.name not in prepared or prepared[param.name] is None:
                if param.default is not None:
                    prepared[param.name] = param.default
                elif param.required:
                    raise ValueError(f"missing required parameter: {param.name}")
                continue
            if param.enum and prepared[param.name] not in param.enum:
                allowed = ", ".join(str(v) for v in param.enum)
                raise ValueError(
                    f"invalid value for {param.name!r}: {prepared[param.name]!r} "
                    f"(expected one of: {allowed})"
                )
        return prepared


class Tool(ABC):
    """
    Base class for tools.

    Subclasses provide name, description, schema() and execute().
    execute() raises on failure; the registry wraps the exception.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def schema(self) -> ToolSchema:
        """Describe the accepted arguments."""

    @abstractmethod
    async def execute(self, args: dict[str, Any]) -> Any:
        """Run the tool."""

    def to_openai_function(self) -> dict:
        return self.schema().to_openai_function()


class FunctionTool(Tool):
    """
    Wrap a plain function (sync or async) as a tool.

    Example:
        async def lookup_weather(args: dict) -> dict:
            return {"city": args["city"], "forecast": "sunny"}

        weather = FunctionTool(
            name="weather",
            description="Get the forecast for a city",
            parameters=[Parameter("city", "string", required=True)],
            func=lookup_weather,
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[[dict[str, Any]], Any | Awaitable[Any]],
        parameters: list[Parameter] | tuple[Parameter, ...] = ()
    ):
        self.name = name
        self.description = description
        self.func = func
        self._schema = ToolSchema(name=name, description=description, parameters=tuple(parameters))

    def schema(self) -> ToolSchema:
        return self._schema

    async def execute(self, args: dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(args)
        # Run blocking callables off the event loop
        return await asyncio.to_thread(self.func, args)


class ToolRegistry:
    """
    Per-agent mapping from tool name to Tool.

    Registries are owned by an agent instance; there is no process-wide
    registry. After construction a registry is only read, so several
    agents may share one.

    Example:
        registry = ToolRegistry()
        registry.add(Calculator())

        tool = registry.resolve("calculator")
        result = await registry.execute("calculator", {"operation": "add", "a": 1, "b": 2})

        functions = registry.get_openai_functions()
    """

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.add(tool)

    def add(self, tool: Tool | None) -> None:
        """
        Register a tool.

        Raises:
            InvalidTool: If the tool is missing or unnamed
            DuplicateTool: If a tool with this name already exists
        """
        if tool is None:
            raise InvalidTool("tool cannot be None")
        name = getattr(tool, "name", None)
        if not name:
            raise InvalidTool("tool name cannot be empty")
        if name in self._tools:
            raise DuplicateTool(name)

        self._tools[name] = tool
        logger.debug(f"Registered tool: {name}")

    def resolve(self, name: str) -> Tool:
        """
        Get a tool by name.

        Raises:
            ToolNotFound: If no tool has this name
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(name)
        return tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_all(self) -> list[Tool]:
        return list(self._tools.values())

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def schemas(self) -> list[ToolSchema]:
        return [tool.schema() for tool in self._tools.values()]

    def get_openai_functions(self) -> list[dict]:
        """All tools in OpenAI function format."""
        return [tool.to_openai_function() for tool in self._tools.values()]

    def describe(self) -> str:
        """
        Plain-text tool list for prompt-based agents.

        - calculator: Performs basic arithmetic
          Parameters:
          - a (number) (required): The first number
        """
        lines = []
        for tool in self._tools.values():
            lines.append(f"- {tool.name}: {tool.description}")
            schema = tool.schema()
            if schema.parameters:
                lines.append("  Parameters:")
                for param in schema.parameters:
                    required = " (required)" if param.required else ""
                    line = f"  - {param.name} ({param.type}){required}: {param.description}"
                    if param.enum:
                        line += f" [one of: {', '.join(str(v) for v in param.enum)}]"
                    lines.append(line)
        return "\n".join(lines)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, name: str, args: dict[str, Any]) -> Any:
        """
        Resolve and execute a tool.

        Raises:
            ToolNotFound: If the tool is not registered
            ToolExecutionError: If the tool raised; the original exception
                is kept on .cause and chained
        """
        tool = self.resolve(name)

        try:
            prepared = tool.schema().prepare_args(args or {})
            logger.info(f"Executing tool: {name}")
            return await tool.execute(prepared)
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(name, e) from e


__all__ = [
    "Parameter",
    "ToolSchema",
    "Tool",
    "FunctionTool",
    "ToolRegistry",
]
