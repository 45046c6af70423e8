"""Tool execution engine for the orchestration core.

This module runs the tool calls from one assistant message and returns the
results in call order. A single call runs inline; several calls run
concurrently, each writing into a pre-sized slot at its call's index so the
output order never depends on completion order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Protocol, Sequence

from ..types import Message, ToolCall, UsageTotals
from .registry import ToolRegistry
from .types import ToolExecutionResult

__all__ = [
    "ToolExecutionEngine",
    "ExecutorConfig",
    "ToolProgressListener",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Executor Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Configuration for the execution engine.

    Attributes:
        default_timeout: Per-call timeout in seconds; ``None`` disables it.
        log_arguments: Whether to log tool arguments (may contain sensitive data).
    """

    default_timeout: float | None = 30.0
    log_arguments: bool = False


class ToolProgressListener(Protocol):
    """Receives progress notifications; calls are never interleaved."""

    def on_tool_start(self, call: ToolCall, index: int, total: int) -> None:
        ...

    def on_tool_finish(
        self, call: ToolCall, result: ToolExecutionResult, index: int, total: int
    ) -> None:
        ...


# -----------------------------------------------------------------------------
# Execution Engine
# -----------------------------------------------------------------------------


class ToolExecutionEngine:
    """Executes model-requested tool calls against a :class:`ToolRegistry`.

    Example:
        engine = ToolExecutionEngine(registry)
        results = await engine.execute_tools(assistant_message.tool_calls)
        # results[i].tool_call_id == assistant_message.tool_calls[i].id
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: ExecutorConfig | None = None,
        *,
        listener: ToolProgressListener | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()
        self._listener = listener
        self._output_lock = asyncio.Lock()
        self.last_results: list[ToolExecutionResult] = []

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    async def execute_tools(
        self,
        tool_calls: Sequence[ToolCall],
        usage: UsageTotals | None = None,
    ) -> list[Message]:
        """Run *tool_calls* and return one tool message per call, in call order."""

        calls = list(tool_calls)
        if not calls:
            self.last_results = []
            return []
        if usage is not None:
            LOGGER.debug(
                "Executing %d tool call(s); session cost so far %.6f over %d request(s)",
                len(calls),
                usage.cost,
                usage.requests,
            )

        total = len(calls)
        if total == 1:
            results = [await self._execute_one(calls[0], 0, total)]
        else:
            slots: list[ToolExecutionResult | None] = [None] * total

            async def _run(index: int, call: ToolCall) -> None:
                slots[index] = await self._execute_one(call, index, total)

            await asyncio.gather(*(_run(index, call) for index, call in enumerate(calls)))
            results = [slot for slot in slots if slot is not None]

        self.last_results = results
        return [result.to_message(call.id) for call, result in zip(calls, results)]

    async def _execute_one(self, call: ToolCall, index: int, total: int) -> ToolExecutionResult:
        if self._config.log_arguments:
            LOGGER.debug(
                "Executing tool %s (call_id=%s) with arguments: %s",
                call.function_name,
                call.id,
                call.arguments_json,
            )
        else:
            LOGGER.debug("Executing tool %s (call_id=%s)", call.function_name, call.id)

        await self._notify_start(call, index, total)
        timeout = self._config.default_timeout
        start = time.perf_counter()
        try:
            if timeout is not None and timeout > 0:
                result = await asyncio.wait_for(
                    self._registry.run(call.function_name, call.arguments_json),
                    timeout=timeout,
                )
            else:
                result = await self._registry.run(call.function_name, call.arguments_json)
        except asyncio.TimeoutError:
            duration_ms = (time.perf_counter() - start) * 1000
            LOGGER.warning(
                "Tool %s timed out after %.1fms (timeout=%.1fs)",
                call.function_name,
                duration_ms,
                timeout,
            )
            result = ToolExecutionResult.failure(
                call.function_name,
                f"Error executing tool: timed out after {timeout:g} seconds",
                duration_ms=duration_ms,
            )
        await self._notify_finish(call, result, index, total)
        return result

    async def _notify_start(self, call: ToolCall, index: int, total: int) -> None:
        if self._listener is None:
            return
        async with self._output_lock:
            self._listener.on_tool_start(call, index, total)

    async def _notify_finish(
        self, call: ToolCall, result: ToolExecutionResult, index: int, total: int
    ) -> None:
        if self._listener is None:
            return
        async with self._output_lock:
            self._listener.on_tool_finish(call, result, index, total)
