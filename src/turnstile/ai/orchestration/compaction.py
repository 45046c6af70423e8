"""Model-assisted compaction of long conversation histories."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ..utils.tokens import estimate_tokens
from .conversation import ConversationStore
from .types import ChatRequest, LLMProvider, Message, ProviderError

__all__ = [
    "HistoryCompactor",
    "CompactionResult",
    "SUMMARY_PREFIX",
    "render_transcript",
]

LOGGER = logging.getLogger(__name__)

SUMMARY_PREFIX = "[COMPRESSED SUMMARY]\n"
MAX_TRANSCRIPT_CHARS = 100_000
TRANSCRIPT_TAIL_CHARS = 8_000
_TRUNCATION_NOTE = "\n[... truncated for compression ...]\n"
_MIN_NON_SYSTEM_MESSAGES = 5
_PRESERVED_TAIL = 3

_COMPACTION_PROMPT = (
    "You are a summarization assistant. Given the following chat transcript, generate a "
    "concise summary that preserves all essential facts, decisions, code references, file "
    "operations, tool usage, and instructions. Pay special attention to any file reads, "
    "code changes, or tool operations. The summary should be short but complete enough "
    "that no important context is lost for continued development work."
)


@dataclass(slots=True)
class CompactionResult:
    """Outcome of :meth:`HistoryCompactor.compact`."""

    compacted: bool
    reason: str = ""
    messages_compacted: int = 0
    tokens_before: int = 0
    tokens_after: int = 0
    summary: Message | None = None


def render_transcript(messages: Sequence[Message], max_chars: int = MAX_TRANSCRIPT_CHARS) -> str:
    """Flatten *messages* into ``ROLE: text`` lines, eliding the middle past *max_chars*."""

    lines: list[str] = []
    for message in messages:
        lines.append(f"{message.role.upper()}: {message.text}")
        if message.tool_calls:
            names = ", ".join(call.function_name or "unknown" for call in message.tool_calls)
            lines.append(f"[Tool calls made: {names}]")
    transcript = "\n".join(lines)
    if len(transcript) <= max_chars:
        return transcript
    tail_chars = min(TRANSCRIPT_TAIL_CHARS, max_chars)
    head_chars = max(0, max_chars - tail_chars)
    return transcript[:head_chars] + _TRUNCATION_NOTE + transcript[-tail_chars:]


class HistoryCompactor:
    """Replaces the middle of a conversation with a provider-written summary.

    The system message, the first non-system message and the last three
    messages are kept verbatim. Everything in between is summarized into one
    assistant message inserted after the first message.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str,
        max_completion_tokens: int | None = None,
        max_transcript_chars: int = MAX_TRANSCRIPT_CHARS,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_completion_tokens = max_completion_tokens
        self._max_transcript_chars = max_transcript_chars

    async def compact(self, store: ConversationStore) -> CompactionResult:
        snapshot = store.snapshot()
        history = [message for message in snapshot if message.role != "system"]
        if len(history) < _MIN_NON_SYSTEM_MESSAGES:
            return CompactionResult(False, "history too short")

        first = history[0]
        tail = history[-_PRESERVED_TAIL:]
        middle = history[1:-_PRESERVED_TAIL]
        tokens_before = sum(estimate_tokens(message.text) for message in snapshot)

        request = ChatRequest(
            model=self._model,
            messages=[
                Message.system(_COMPACTION_PROMPT),
                Message.user(render_transcript(middle, self._max_transcript_chars)),
            ],
            max_completion_tokens=self._max_completion_tokens,
        )
        try:
            response = await self._provider.complete(request)
        except ProviderError as exc:
            LOGGER.warning("History compaction failed: %s", exc)
            return CompactionResult(False, f"provider error: {exc}", tokens_before=tokens_before)

        reply = response.first_message
        summary_text = reply.text.strip() if reply is not None else ""
        if not summary_text:
            return CompactionResult(False, "empty summary", tokens_before=tokens_before)

        summary = Message.assistant(SUMMARY_PREFIX + summary_text)
        store.replace_history([first, summary, *tail])
        tokens_after = sum(estimate_tokens(message.text) for message in store.snapshot())
        LOGGER.info(
            "Compacted %d message(s): ~%d -> ~%d tokens",
            len(middle),
            tokens_before,
            tokens_after,
        )
        return CompactionResult(
            True,
            "compacted",
            messages_compacted=len(middle),
            tokens_before=tokens_before,
            tokens_after=tokens_after,
            summary=summary,
        )
