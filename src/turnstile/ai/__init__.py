"""AI client, token counting and turn orchestration."""

from .ai_types import CacheStrategy, TokenCounterProtocol
from .client import AIClient, ApproxCharCounter, ClientSettings, TokenCounterRegistry

__all__ = [
    "AIClient",
    "ClientSettings",
    "TokenCounterRegistry",
    "ApproxCharCounter",
    "CacheStrategy",
    "TokenCounterProtocol",
]
