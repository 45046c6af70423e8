"""Turnstile: orchestration core for tool-using LLM chat sessions."""

__all__ = ["__version__"]

__version__ = "0.1.0"
