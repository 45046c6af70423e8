"""Tool system for the orchestration core.

This package provides the tool registry, the execution engine, and related
types for running model-requested tool calls.

Example:
    from turnstile.ai.orchestration.tools import (
        ToolExecutionEngine,
        ToolRegistry,
        ToolSpec,
    )

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="greet", description="Greet someone"),
        handler=lambda args: f"Hello, {args.get('name', 'World')}!",
    )

    engine = ToolExecutionEngine(registry)
    messages = await engine.execute_tools(assistant_message.tool_calls)
"""

from .types import (
    EMPTY_OUTPUT_PLACEHOLDER,
    AsyncToolHandler,
    SimpleTool,
    Tool,
    ToolExecutionResult,
    ToolHandler,
    ToolSpec,
)

from .registry import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistration,
    ToolRegistry,
)

from .executor import (
    ExecutorConfig,
    ToolExecutionEngine,
    ToolProgressListener,
)

__all__ = [
    # types.py
    "EMPTY_OUTPUT_PLACEHOLDER",
    "AsyncToolHandler",
    "SimpleTool",
    "Tool",
    "ToolExecutionResult",
    "ToolHandler",
    "ToolSpec",
    # registry.py
    "DuplicateToolError",
    "ToolNotFoundError",
    "ToolRegistration",
    "ToolRegistry",
    # executor.py
    "ExecutorConfig",
    "ToolExecutionEngine",
    "ToolProgressListener",
]
