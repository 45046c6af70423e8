"""Token estimation utilities for AI operations."""

from __future__ import annotations

# Average characters per token for English prose (GPT-style tokenization)
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str | None) -> int:
    """Estimate the number of tokens in a text string.

    Uses a simple character-based heuristic of 4 characters per token,
    rounded down. This is a deliberate approximation; callers that need
    exact counts plug a real tokenizer in through ``TokenCounterProtocol``.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count (minimum 1 for non-empty text, 0 for empty).
    """
    if not text:
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)


class ApproxCharCounter:
    """Deterministic counter that estimates tokens via character length."""

    def __init__(self, *, model_name: str | None = None) -> None:
        self.model_name = model_name

    def count(self, text: str) -> int:
        return estimate_tokens(text)

    def estimate(self, text: str) -> int:
        return estimate_tokens(text)


__all__ = ["CHARS_PER_TOKEN", "estimate_tokens", "ApproxCharCounter"]
