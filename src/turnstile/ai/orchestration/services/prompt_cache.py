"""Provider-aware prompt caching hints for outgoing chat requests."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping

from ...ai_types import CacheStrategy
from ...utils.tokens import CHARS_PER_TOKEN
from ..types import CacheControl, ChatRequest, ContentPart, Message, ProviderCacheProfile

__all__ = [
    "PromptCacheStrategist",
    "DEFAULT_CACHE_PROFILES",
    "infer_provider_from_model",
]

LOGGER = logging.getLogger(__name__)

_UNSUPPORTED = ProviderCacheProfile.unsupported()
_DEFAULT_BREAKPOINTS = 4
_DEFAULT_MIN_CACHEABLE_CHARS = 4000

DEFAULT_CACHE_PROFILES: Mapping[str, ProviderCacheProfile] = {
    "anthropic": ProviderCacheProfile(True, "explicit", 1000, 4),
    "openai": ProviderCacheProfile(True, "automated", 1024, 0),
    "x-ai": ProviderCacheProfile(True, "automated", 1000, 0),
    "deepseek": ProviderCacheProfile(True, "automated", 1000, 0),
    "google": ProviderCacheProfile(True, "both", 1028, 4),
    **{
        name: _UNSUPPORTED
        for name in (
            "meta",
            "mistral",
            "cohere",
            "together",
            "fireworks",
            "huggingface",
            "replicate",
            "perplexity",
            "nvidia",
            "lepton",
            "hyperbolic",
            "cerebras",
            "lambda",
            "groq",
            "deepinfra",
            "openrouter",
            "stealth",
        )
    },
}

# Checked in order; the first keyword found in the model id wins.
_MODEL_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("anthropic", "claude"), "anthropic"),
    (("google", "gemini"), "google"),
    (("openai", "gpt"), "openai"),
    (("grok",), "x-ai"),
    (("deepseek",), "deepseek"),
    (("meta", "llama"), "meta"),
    (("mistral",), "mistral"),
    (("cohere",), "cohere"),
    (("openrouter",), "openrouter"),
    (("stealth",), "stealth"),
)


def infer_provider_from_model(model: str | None) -> str | None:
    """Guess the serving vendor from substrings of a model identifier."""

    lowered = (model or "").strip().lower()
    if not lowered:
        return None
    for keywords, provider in _MODEL_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return provider
    return None


class PromptCacheStrategist:
    """Annotates requests with cache markers according to a :class:`CacheStrategy`.

    The strategist rewrites ``request.messages`` and ``request.tools`` in
    place, substituting annotated copies so the conversation store's own
    message objects are never altered. For any request the number of
    annotations (messages plus tool block) stays within the resolved
    profile's breakpoint limit.
    """

    def __init__(
        self,
        strategy: CacheStrategy | str = CacheStrategy.AUTO,
        *,
        profiles: Mapping[str, ProviderCacheProfile] | None = None,
    ) -> None:
        self._strategy = CacheStrategy.coerce(strategy)
        self._profiles = dict(DEFAULT_CACHE_PROFILES if profiles is None else profiles)

    @property
    def strategy(self) -> CacheStrategy:
        return self._strategy

    def resolve_provider(self, request: ChatRequest) -> str | None:
        """Provider from routing preferences, else inferred from the model id."""

        preferences = request.provider
        if preferences is not None:
            for candidates in (preferences.only, preferences.order):
                if candidates:
                    tag = candidates[0].strip().lower()
                    if tag in self._profiles:
                        return tag
                    return infer_provider_from_model(tag) or tag
        return infer_provider_from_model(request.model)

    def profile_for(self, provider: str | None) -> ProviderCacheProfile:
        if provider is None:
            return _UNSUPPORTED
        return self._profiles.get(provider, _UNSUPPORTED)

    def apply_caching_strategy(self, request: ChatRequest) -> int:
        """Add cache hints to *request*; returns the number of annotations."""

        if self._strategy is CacheStrategy.NONE:
            return 0
        provider = self.resolve_provider(request)
        aggressive = self._strategy is CacheStrategy.AGGRESSIVE
        if provider is None and not aggressive:
            return 0

        profile = self.profile_for(provider)
        if not profile.supports_cache:
            unknown = provider is None or provider not in self._profiles
            if not (aggressive and unknown):
                return 0
            profile = ProviderCacheProfile(True, "explicit", 0, _DEFAULT_BREAKPOINTS)

        if profile.cache_kind == "automated":
            LOGGER.debug("Provider %s caches automatically; no annotation", provider)
            return 0

        remaining = profile.max_breakpoints if profile.max_breakpoints > 0 else _DEFAULT_BREAKPOINTS
        annotations = 0
        if profile.cache_kind == "explicit" and request.tools:
            request.tools[-1] = replace(request.tools[-1], cache_control=CacheControl())
            remaining -= 1
            annotations += 1
        if remaining <= 0 or not request.messages:
            return annotations

        selected = self._select_messages(request.messages, profile, remaining)
        if not selected:
            return annotations
        if profile.cache_kind == "both":
            selected = [max(selected)]
        for index in selected:
            request.messages[index] = _annotate(request.messages[index])
            annotations += 1

        LOGGER.debug(
            "Applied %d cache breakpoint(s) for provider %s (%s)",
            annotations,
            provider or "unknown",
            profile.cache_kind,
        )
        return annotations

    @staticmethod
    def _select_messages(
        messages: list[Message], profile: ProviderCacheProfile, limit: int
    ) -> list[int]:
        if profile.min_cacheable_tokens > 0:
            min_chars = profile.min_cacheable_tokens * CHARS_PER_TOKEN
        else:
            min_chars = _DEFAULT_MIN_CACHEABLE_CHARS
        eligible = [
            (len(message.text), index)
            for index, message in enumerate(messages)
            if len(message.text) >= min_chars
        ]
        eligible.sort(key=lambda item: (-item[0], item[1]))
        return [index for _, index in eligible[:limit]]


def _annotate(message: Message) -> Message:
    if isinstance(message.content, list):
        parts = [replace(part) for part in message.content]
    else:
        parts = [ContentPart(text=message.content or "")]
    for part in reversed(parts):
        if part.type == "text":
            part.cache_control = CacheControl()
            break
    return message.with_content(parts)
