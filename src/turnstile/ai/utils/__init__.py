"""Utility helpers shared by the AI modules."""

from .tokens import CHARS_PER_TOKEN, ApproxCharCounter, estimate_tokens

__all__ = ["CHARS_PER_TOKEN", "ApproxCharCounter", "estimate_tokens"]
