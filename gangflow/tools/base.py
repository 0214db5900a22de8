"""Tool capability interface and the function-backed implementation.

A tool is anything with a ``name``, a ``description`` and an awaitable
``invoke(input)``. Failures are raised, never returned.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class ToolCapability(Protocol):
    """Interface every tool exposes to gang members."""

    name: str
    description: str

    async def invoke(self, input: Any) -> Any:
        ...


ToolFunction = Callable[[Any], Union[Any, Awaitable[Any]]]


class FunctionTool:
    """Adapts a plain sync or async function to the tool interface."""

    def __init__(self, function: ToolFunction, name: Optional[str] = None, description: Optional[str] = None):
        if not callable(function):
            raise TypeError(f"Tool function must be callable, got {type(function).__name__}")
        self.function = function
        self.name = (name or getattr(function, "__name__", "") or "").strip()
        self.description = (description or inspect.getdoc(function) or "").strip()
        if not self.name:
            raise ValueError("Tool name cannot be empty")

    async def invoke(self, input: Any) -> Any:
        result = self.function(input)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"


def tool(name: str, description: str) -> Callable[[ToolFunction], FunctionTool]:
    """Decorator turning a function into a named tool.

    Example:
        @tool("shout", "Upper-case the input text.")
        async def shout(text):
            return str(text).upper()
    """
    def decorator(function: ToolFunction) -> FunctionTool:
        return FunctionTool(function, name=name, description=description)
    return decorator


def as_tool(candidate: Any, name: Optional[str] = None) -> ToolCapability:
    """Coerce a custom tool export into a tool capability.

    Objects that already expose ``invoke`` are used as-is; bare callables are
    wrapped in a :class:`FunctionTool`.

    Raises:
        TypeError: If the export is neither a tool nor callable
    """
    if callable(getattr(candidate, "invoke", None)) and hasattr(candidate, "name"):
        return candidate
    if callable(candidate):
        return FunctionTool(candidate, name=name)
    raise TypeError(f"Object of type {type(candidate).__name__} is not a tool")


def argument(input: Any, key: str, default: Any = None) -> Any:
    """Read one argument from tool input given either as a mapping or as a bare value."""
    if isinstance(input, dict):
        return input.get(key, default)
    if input is None or input == "":
        return default
    return input
