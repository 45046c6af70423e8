"""Tool registry for the orchestration core.

This module provides a registry for managing tool registrations and the
``execute(name, args_json) -> str`` boundary the orchestrator talks to.
Failures at that boundary come back as ``"Error..."`` strings, never as
exceptions.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from ..types import ToolDefinition
from .types import (
    AsyncToolHandler,
    SimpleTool,
    Tool,
    ToolExecutionResult,
    ToolHandler,
    ToolSpec,
)

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    """Raised when a requested tool is not found in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


# -----------------------------------------------------------------------------
# Tool Registration
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolRegistration:
    """Record of a registered tool.

    Attributes:
        name: Tool name.
        tool: The tool implementation.
        spec: Tool specification.
        enabled: Whether the tool is currently enabled.
        metadata: Additional registration metadata.
    """

    name: str
    tool: Tool
    spec: ToolSpec
    enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for managing tool registrations.

    Example:
        registry = ToolRegistry()
        registry.register_function(
            spec=ToolSpec(name="read_file", description="Read a file"),
            handler=lambda args: Path(args["path"]).read_text(),
        )
        text = await registry.execute("read_file", '{"path": "README.md"}')
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolRegistration] = {}

    def register(
        self,
        tool: Tool,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a tool implementation.

        Raises:
            DuplicateToolError: If the name is taken and ``allow_override`` is False.
        """
        name = tool.name
        if name in self._tools and not allow_override:
            raise DuplicateToolError(name)

        registration = ToolRegistration(
            name=name,
            tool=tool,
            spec=tool.spec,
            enabled=enabled,
            metadata=dict(metadata) if metadata else {},
        )
        self._tools[name] = registration
        LOGGER.debug("Registered tool: %s", name)
        return registration

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        enabled: bool = True,
        allow_override: bool = False,
        metadata: Mapping[str, Any] | None = None,
    ) -> ToolRegistration:
        """Register a sync or async function as a tool."""
        tool = SimpleTool(spec=spec, handler=handler)
        return self.register(
            tool,
            enabled=enabled,
            allow_override=allow_override,
            metadata=metadata,
        )

    def unregister(self, name: str) -> bool:
        if name in self._tools:
            del self._tools[name]
            LOGGER.debug("Unregistered tool: %s", name)
            return True
        return False

    def get(self, name: str) -> Tool | None:
        """Get an enabled tool by name, or ``None``."""
        registration = self._tools.get(name)
        if registration is None or not registration.enabled:
            return None
        return registration.tool

    def get_required(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If the tool is missing or disabled.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def has(self, name: str) -> bool:
        registration = self._tools.get(name)
        return registration is not None and registration.enabled

    def list_names(self, *, include_disabled: bool = False) -> list[str]:
        return [
            registration.name
            for registration in self._tools.values()
            if registration.enabled or include_disabled
        ]

    def definitions(self, *, filter_names: Sequence[str] | None = None) -> list[ToolDefinition]:
        """Tool definitions for enabled tools, in registration order."""
        definitions: list[ToolDefinition] = []
        for registration in self._tools.values():
            if not registration.enabled:
                continue
            if filter_names is not None and registration.name not in filter_names:
                continue
            definitions.append(registration.spec.to_definition())
        return definitions

    def enable(self, name: str) -> bool:
        registration = self._tools.get(name)
        if registration is None:
            return False
        registration.enabled = True
        return True

    def disable(self, name: str) -> bool:
        registration = self._tools.get(name)
        if registration is None:
            return False
        registration.enabled = False
        return True

    # ------------------------------------------------------------------
    # Execution boundary
    # ------------------------------------------------------------------
    async def run(self, name: str, arguments_json: str | None) -> ToolExecutionResult:
        """Parse arguments, invoke the tool and wrap the outcome.

        Empty arguments, invalid JSON, unknown tools and handler exceptions
        all produce failure results.
        """
        if arguments_json is None or not arguments_json.strip():
            return ToolExecutionResult.failure(name, "Error: No arguments provided for tool call")
        try:
            arguments = json.loads(arguments_json)
        except json.JSONDecodeError as exc:
            return ToolExecutionResult.failure(name, f"Error: Invalid JSON arguments - {exc}")
        if not isinstance(arguments, dict):
            return ToolExecutionResult.failure(
                name, "Error: Invalid JSON arguments - expected a JSON object"
            )

        tool = self.get(name)
        if tool is None:
            available = ", ".join(self.list_names()) or "none"
            LOGGER.warning("Model requested unknown tool %s", name)
            return ToolExecutionResult.failure(
                name, f"Error: Tool '{name}' not found. Available tools: {available}"
            )

        start = time.perf_counter()
        try:
            output = await tool.execute(arguments)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, exc)
            return ToolExecutionResult.failure(
                name, f"Error executing tool: {exc}", duration_ms=duration_ms
            )
        duration_ms = (time.perf_counter() - start) * 1000
        LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
        return ToolExecutionResult.ok(name, output, duration_ms=duration_ms)

    async def execute(self, name: str, arguments_json: str | None) -> str:
        """Run a tool and return its text; failures are returned as error strings."""
        result = await self.run(name, arguments_json)
        return result.content

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
