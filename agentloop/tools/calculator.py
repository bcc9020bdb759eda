"""
Calculator Tool
===============

Basic arithmetic on two numbers. Handy for exercising the tool loop:

    "What is 25 * 4?" -> calculator(operation="multiply", a=25, b=4) -> 100
"""

from typing import Any

from agentloop.tools import Parameter, Tool, ToolSchema

OPERATIONS = ("add", "subtract", "multiply", "divide")


def _as_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"parameter {name!r} must be a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value) if any(c in value for c in ".eE") else int(value)
        except ValueError:
            pass
    raise ValueError(f"parameter {name!r} must be a number")


class Calculator(Tool):
    """Add, subtract, multiply or divide two numbers."""

    name = "calculator"
    description = (
        "A calculator tool that can perform basic arithmetic operations: add, subtract, "
        "multiply, divide. Use this when you need to perform calculations."
    )

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Performs basic arithmetic operations",
            parameters=(
                Parameter(
                    "operation", "string",
                    "The operation to perform: add, subtract, multiply, divide",
                    required=True, enum=OPERATIONS,
                ),
                Parameter("a", "number", "The first number", required=True),
                Parameter("b", "number", "The second number", required=True),
            ),
        )

    async def execute(self, args: dict[str, Any]) -> float | int:
        operation = args.get("operation")
        a = _as_number("a", args.get("a"))
        b = _as_number("b", args.get("b"))

        if operation == "add":
            return a + b
        if operation == "subtract":
            return a - b
        if operation == "multiply":
            return a * b
        if operation == "divide":
            if b == 0:
                raise ZeroDivisionError("division by zero")
            return a / b
        raise ValueError(f"unknown operation: {operation}")
