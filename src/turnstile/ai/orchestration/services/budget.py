"""Context budgeting for outgoing chat requests.

This module decides which subset of the conversation log fits in a model's
context window. Shaping never mutates the caller's messages: compressed
messages are copies that keep the original ``id``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Sequence

from ...ai_types import TokenCounterProtocol
from ...utils.tokens import ApproxCharCounter
from ..types import Message, ShapeResult, ToolDefinition

__all__ = [
    "ContextBudgeter",
    "middle_out",
    "compute_prompt_budget",
    "MIDDLE_OUT_MARKER",
    "MESSAGE_OVERHEAD_TOKENS",
    "TOOL_OVERHEAD_TOKENS",
    "SCHEMA_CHAR_LIMIT",
]

LOGGER = logging.getLogger(__name__)

MIDDLE_OUT_MARKER = "\n…[middle omitted]…\n"
MESSAGE_OVERHEAD_TOKENS = 4
TOOL_OVERHEAD_TOKENS = 8
SCHEMA_CHAR_LIMIT = 60_000
MIN_REASONABLE_BUDGET = 256
MIN_FALLBACK_BUDGET = 128
MAX_SAFETY_MARGIN = 0.9
VERBATIM_TAIL = 6
HEAD_MAX_CHARS = 4000
HEAD_MIN_CHARS = 1000
# Below this many characters for head + tail, middle-out degrades to a prefix.
_MIN_MIDDLE_OUT_SPAN = 20


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def middle_out(content: str, max_chars: int) -> str:
    """Keep the start and end of *content*, eliding the middle.

    Returns *content* unchanged when it already fits. Otherwise the result is
    ``head + MIDDLE_OUT_MARKER + tail`` and never longer than *max_chars*;
    when *max_chars* is too small for that, a hard-truncated prefix is
    returned instead.
    """

    if not content or len(content) <= max_chars:
        return content
    if max_chars <= 0:
        return ""
    available = max_chars - len(MIDDLE_OUT_MARKER)
    if available < _MIN_MIDDLE_OUT_SPAN:
        return content[:max_chars]
    head_chars = available // 2
    tail_chars = available - head_chars
    return content[:head_chars] + MIDDLE_OUT_MARKER + content[len(content) - tail_chars :]


def compute_prompt_budget(
    endpoint_context_length: int,
    target_completion_tokens: int,
    safety_margin_pct: float = 0.1,
) -> int:
    """Prompt tokens available after the safety margin and completion reserve.

    The margin is clamped to ``[0, 0.9]``. A result under 256 tokens falls back
    to a quarter of the context window, with a floor of 128.
    """

    margin = max(0.0, min(MAX_SAFETY_MARGIN, float(safety_margin_pct)))
    budget = math.floor(endpoint_context_length * (1.0 - margin)) - target_completion_tokens
    if budget < MIN_REASONABLE_BUDGET:
        budget = max(MIN_FALLBACK_BUDGET, endpoint_context_length // 4)
    return budget


def _compress(text: str, max_chars: int, use_middle_out: bool) -> str:
    if use_middle_out:
        return middle_out(text, max_chars)
    return text[:max_chars]


# -----------------------------------------------------------------------------
# Context Budgeter
# -----------------------------------------------------------------------------


class ContextBudgeter:
    """Estimates prompt size and shapes requests to fit a context window.

    Token estimation is delegated to a :class:`TokenCounterProtocol`; the
    default counter uses four characters per token.

    Example:
        budgeter = ContextBudgeter()
        result = budgeter.shape(
            store.snapshot(),
            tools,
            "auto",
            endpoint_context_length=128_000,
            target_completion_tokens=4_096,
        )
    """

    def __init__(self, counter: TokenCounterProtocol | None = None) -> None:
        self._counter = counter or ApproxCharCounter()

    @property
    def counter(self) -> TokenCounterProtocol:
        return self._counter

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------
    def estimate_tokens(self, text: str | None) -> int:
        if not text:
            return 0
        return self._counter.count(text)

    def estimate_message_tokens(self, message: Message) -> int:
        total = self.estimate_tokens(message.text)
        total += self.estimate_tokens(message.name)
        for call in message.tool_calls or ():
            total += self.estimate_tokens(call.function_name)
            total += self.estimate_tokens(call.arguments_json)
        return total + MESSAGE_OVERHEAD_TOKENS

    def estimate_tool_tokens(self, tools: Sequence[ToolDefinition] | None) -> int:
        if not tools:
            return 0
        total = 0
        for tool in tools:
            total += self.estimate_tokens(tool.name)
            total += self.estimate_tokens(tool.description)
            total += self.estimate_tokens(tool.schema_text())
        return total + len(tools) * TOOL_OVERHEAD_TOKENS

    # ------------------------------------------------------------------
    # Shaping
    # ------------------------------------------------------------------
    def shape(
        self,
        messages: Sequence[Message],
        tool_definitions: Sequence[ToolDefinition] | None,
        tool_choice: str | None,
        endpoint_context_length: int,
        target_completion_tokens: int,
        safety_margin_pct: float = 0.1,
        max_messages: int = 120,
        max_tool_output_chars: int = 100_000,
        use_middle_out: bool = True,
    ) -> ShapeResult:
        """Fit *messages* and *tool_definitions* into the prompt budget.

        Each reduction step only runs while the estimate is still over budget:
        pre-trim to ``max_messages``, cap runaway tool output, drop oversized
        tool schemas (relaxing ``tool_choice`` to ``"auto"``), middle-out every
        message outside the verbatim tail, then evict the oldest messages.
        Never raises; the worst case is a single message still over budget.
        """

        tools = list(tool_definitions) if tool_definitions else None
        budget = compute_prompt_budget(
            endpoint_context_length, target_completion_tokens, safety_margin_pct
        )
        shaped = list(messages)
        if not shaped:
            return ShapeResult([], tool_choice, tools, self.estimate_tool_tokens(tools), budget)

        if max_messages > 0 and len(shaped) > max_messages:
            LOGGER.debug("Pre-trimming %d message(s) to the last %d", len(shaped), max_messages)
            shaped = shaped[-max_messages:]

        for index, message in enumerate(shaped):
            if message.role != "tool":
                continue
            text = message.text
            if len(text) > max_tool_output_chars:
                shaped[index] = message.with_content(
                    _compress(text, max_tool_output_chars, use_middle_out)
                )

        costs = [self.estimate_message_tokens(message) for message in shaped]
        tool_tokens = self.estimate_tool_tokens(tools)
        total = sum(costs) + tool_tokens
        if total <= budget:
            return ShapeResult(shaped, tool_choice, tools, total, budget)

        if tools:
            tools = [
                replace(tool, parameters=None)
                if len(tool.schema_text()) > SCHEMA_CHAR_LIMIT
                else tool
                for tool in tools
            ]
            tool_tokens = self.estimate_tool_tokens(tools)
            total = sum(costs) + tool_tokens
            if total > budget and tool_choice != "auto":
                LOGGER.debug("Relaxing tool_choice %r to 'auto' under budget pressure", tool_choice)
                tool_choice = "auto"

        if total > budget:
            head_count = len(shaped) - min(VERBATIM_TAIL, len(shaped))
            for index in range(head_count):
                message = shaped[index]
                text = message.text
                if not text:
                    continue
                target = min(HEAD_MAX_CHARS, max(HEAD_MIN_CHARS, len(text) // 4))
                if len(text) > target:
                    shaped[index] = message.with_content(_compress(text, target, use_middle_out))
                    costs[index] = self.estimate_message_tokens(shaped[index])
            total = sum(costs) + tool_tokens

        evicted = 0
        while total > budget and len(shaped) > 1:
            shaped.pop(0)
            total -= costs.pop(0)
            evicted += 1
        if evicted:
            LOGGER.info(
                "Evicted %d oldest message(s) to fit budget (%d/%d tokens)",
                evicted,
                total,
                budget,
            )

        return ShapeResult(shaped, tool_choice, tools, total, budget)
