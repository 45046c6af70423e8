"""Tool system types for the orchestration core.

This module defines the tool specification, the handler protocol the
registry accepts, and the result value returned at the execution boundary.
Ordinary failures (bad arguments, unknown tools, handler exceptions) are
represented as error results rather than exceptions.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Mapping, Protocol, runtime_checkable

from ..types import Message, ToolDefinition

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "Tool",
    "SimpleTool",
    "ToolExecutionResult",
    "EMPTY_OUTPUT_PLACEHOLDER",
    "coerce_output",
]

EMPTY_OUTPUT_PLACEHOLDER = "Tool executed successfully with no output"


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description of what the tool does.
        parameters: JSON Schema for the tool's parameters.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_definition(self) -> ToolDefinition:
        """Convert to the definition advertised in chat requests."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=dict(self.parameters) if self.parameters else {
                "type": "object",
                "properties": {},
            },
        )


# -----------------------------------------------------------------------------
# Tool Handler Types
# -----------------------------------------------------------------------------

# Synchronous tool handler
ToolHandler = Callable[[Mapping[str, Any]], Any]

# Asynchronous tool handler
AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations.

    Tools can be implemented as classes conforming to this protocol,
    or as simple functions registered with a ToolSpec.
    """

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        """Execute the tool with parsed *arguments* and return its output."""
        ...


@dataclass
class SimpleTool:
    """Tool implementation wrapping a plain callable.

    Example:
        def read_file(args: dict) -> str:
            return Path(args["path"]).read_text()

        tool = SimpleTool(
            spec=ToolSpec(name="read_file", description="Read a file"),
            handler=read_file,
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = asyncio.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, arguments: Mapping[str, Any]) -> Any:
        if self._is_async:
            return await self.handler(arguments)  # type: ignore[misc]
        return await asyncio.to_thread(self.handler, arguments)


# -----------------------------------------------------------------------------
# Execution Result
# -----------------------------------------------------------------------------


def coerce_output(output: Any) -> str:
    """Render a handler's return value as tool-result text."""

    if output is None:
        return EMPTY_OUTPUT_PLACEHOLDER
    if isinstance(output, str):
        return output if output else EMPTY_OUTPUT_PLACEHOLDER
    if isinstance(output, (dict, list, tuple)):
        return json.dumps(output, ensure_ascii=False, default=str)
    text = str(output)
    return text if text else EMPTY_OUTPUT_PLACEHOLDER


@dataclass(slots=True, frozen=True)
class ToolExecutionResult:
    """Outcome of one tool invocation.

    Attributes:
        tool_name: Name the model asked for.
        content: Text handed back to the model (error text on failure).
        success: Whether the tool produced output without error.
        duration_ms: Wall time spent in the handler.
    """

    tool_name: str
    content: str
    success: bool = True
    duration_ms: float = 0.0

    @classmethod
    def ok(cls, tool_name: str, output: Any, *, duration_ms: float = 0.0) -> ToolExecutionResult:
        return cls(tool_name, coerce_output(output), True, duration_ms)

    @classmethod
    def failure(cls, tool_name: str, message: str, *, duration_ms: float = 0.0) -> ToolExecutionResult:
        return cls(tool_name, message, False, duration_ms)

    def to_message(self, tool_call_id: str) -> Message:
        return Message.tool(self.content, tool_call_id, name=self.tool_name or None)
