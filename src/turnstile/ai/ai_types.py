"""Shared typing contracts for AI infrastructure."""

from __future__ import annotations

from enum import Enum
from typing import Protocol


class TokenCounterProtocol(Protocol):
    """Protocol describing tokenizer implementations."""

    model_name: str | None

    def count(self, text: str) -> int:
        """Return the precise token count for *text*."""
        ...

    def estimate(self, text: str) -> int:
        """Return a deterministic fallback estimate when precise counts fail."""
        ...


class CacheStrategy(str, Enum):
    """How eagerly outgoing requests are annotated with prompt-cache hints."""

    NONE = "none"
    AUTO = "auto"
    AGGRESSIVE = "aggressive"

    @classmethod
    def coerce(cls, value: "CacheStrategy | str | None") -> "CacheStrategy":
        """Parse a strategy from settings text, defaulting to ``AUTO``."""

        if isinstance(value, CacheStrategy):
            return value
        text = (value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.AUTO


__all__ = ["TokenCounterProtocol", "CacheStrategy"]
