"""Endpoint metadata lookups and provider routing preferences.

Endpoint listings are fetched from an OpenRouter-compatible
``/models/{author}/{slug}/endpoints`` API, cached per model with a
time-to-live, and single-flighted so concurrent requests for the same model
share one network fetch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

import httpx

from ..types import ChatRequest, ProviderPreferences

__all__ = [
    "EndpointInfo",
    "ModelEndpoints",
    "EndpointMetadataService",
    "ProviderPreferencesBuilder",
    "TOOL_CAPABLE_PROVIDERS",
    "split_model_id",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TTL_SECONDS = 600.0

TOOL_CAPABLE_PROVIDERS: tuple[str, ...] = (
    "anthropic",
    "openai",
    "google",
    "meta",
    "mistral",
    "cohere",
    "x-ai",
    "deepseek",
    "together",
    "fireworks",
    "perplexity",
    "nvidia",
    "lepton",
    "hyperbolic",
    "groq",
    "deepinfra",
)


def split_model_id(model: str | None) -> tuple[str, str] | None:
    """Split ``author/slug[:variant]`` into ``(author, slug)``."""

    if not model or "/" not in model:
        return None
    author, _, rest = model.strip().partition("/")
    slug = rest.split(":", 1)[0]
    if not author or not slug:
        return None
    return author, slug


# -----------------------------------------------------------------------------
# Metadata Records
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class EndpointInfo:
    """One provider endpoint serving a model."""

    name: str = ""
    context_length: int = 0
    provider_name: str = ""
    tag: str | None = None
    supported_parameters: tuple[str, ...] = ()
    pricing: Mapping[str, Any] = field(default_factory=dict)

    @property
    def provider_tag(self) -> str:
        return self.tag or self.provider_name.lower()

    def supports(self, parameter: str) -> bool:
        wanted = parameter.lower()
        return any(candidate.lower() == wanted for candidate in self.supported_parameters)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> EndpointInfo:
        try:
            context_length = int(payload.get("context_length") or 0)
        except (TypeError, ValueError):
            context_length = 0
        return cls(
            name=str(payload.get("name") or ""),
            context_length=context_length,
            provider_name=str(payload.get("provider_name") or ""),
            tag=payload.get("tag") or None,
            supported_parameters=tuple(
                str(item) for item in payload.get("supported_parameters") or ()
            ),
            pricing=dict(payload.get("pricing") or {}),
        )


@dataclass(slots=True, frozen=True)
class ModelEndpoints:
    """Endpoint listing for a single model."""

    id: str
    name: str = ""
    endpoints: tuple[EndpointInfo, ...] = ()

    def best_endpoint(self) -> EndpointInfo | None:
        """Endpoint with the largest context window."""
        if not self.endpoints:
            return None
        return max(self.endpoints, key=lambda endpoint: endpoint.context_length)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ModelEndpoints:
        endpoints = tuple(
            EndpointInfo.from_payload(item)
            for item in payload.get("endpoints") or ()
            if isinstance(item, Mapping)
        )
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            endpoints=endpoints,
        )


@dataclass(slots=True)
class _CachedEndpoints:
    data: ModelEndpoints
    expires_at: float


# -----------------------------------------------------------------------------
# Metadata Service
# -----------------------------------------------------------------------------


class EndpointMetadataService:
    """TTL-cached, single-flighted endpoint lookups.

    Example:
        async with httpx.AsyncClient() as http:
            service = EndpointMetadataService(http)
            context = await service.best_context_length("anthropic/claude-sonnet-4")
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str = DEFAULT_BASE_URL,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, _CachedEndpoints] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self.fetch_count = 0

    async def get_endpoints(
        self, model: str, *, force_refresh: bool = False
    ) -> ModelEndpoints | None:
        """Return endpoint metadata for *model*, or ``None`` when unavailable."""

        parts = split_model_id(model)
        if parts is None:
            return None
        author, slug = parts
        key = f"{author}/{slug}".lower()

        cached = self._fresh(key)
        if cached is not None and not force_refresh:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._fresh(key)
            if cached is not None and not force_refresh:
                return cached
            data = await self._fetch(author, slug)
            if data is not None:
                self._cache[key] = _CachedEndpoints(data, self._clock() + self._ttl)
            return data

    async def best_context_length(self, model: str) -> int | None:
        metadata = await self.get_endpoints(model)
        if metadata is None:
            return None
        best = metadata.best_endpoint()
        if best is None or best.context_length <= 0:
            return None
        return best.context_length

    def invalidate(self, model: str | None = None) -> None:
        if model is None:
            self._cache.clear()
            return
        parts = split_model_id(model)
        if parts is not None:
            self._cache.pop(f"{parts[0]}/{parts[1]}".lower(), None)

    def _fresh(self, key: str) -> ModelEndpoints | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._cache[key]
            return None
        return entry.data

    async def _fetch(self, author: str, slug: str) -> ModelEndpoints | None:
        url = f"{self._base_url}/models/{author}/{slug}/endpoints"
        self.fetch_count += 1
        try:
            response = await self._http.get(url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Endpoint metadata fetch failed for %s/%s: %s", author, slug, exc)
            return None
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, Mapping):
            LOGGER.warning("Endpoint metadata for %s/%s had no data object", author, slug)
            return None
        LOGGER.debug("Fetched endpoint metadata for %s/%s", author, slug)
        return ModelEndpoints.from_payload(data)


# -----------------------------------------------------------------------------
# Provider Preferences
# -----------------------------------------------------------------------------


class ProviderPreferencesBuilder:
    """Derives routing preferences for a request from endpoint metadata.

    Explicit preferences on the request are kept as they are. Otherwise the
    builder prefers the cheapest endpoints that support every requested
    parameter, restricted to tool-capable endpoints when tools are sent, and
    sticks to the provider that last served a cache hit when one is set.
    """

    def __init__(
        self,
        metadata: EndpointMetadataService | None = None,
        *,
        tool_capable_providers: Sequence[str] = TOOL_CAPABLE_PROVIDERS,
    ) -> None:
        self._metadata = metadata
        self._tool_capable = tuple(tool_capable_providers)
        self._cache_provider: str | None = None

    @property
    def cache_provider(self) -> str | None:
        return self._cache_provider

    def set_cache_provider(self, provider: str | None) -> None:
        self._cache_provider = provider.strip().lower() if provider else None

    async def build(self, request: ChatRequest) -> ProviderPreferences:
        if request.provider is not None and not request.provider.is_empty():
            return request.provider

        has_tools = bool(request.tools)
        preferences = ProviderPreferences(
            require_parameters=has_tools,
            data_collection="allow",
            allow_fallbacks=True,
            sort="price",
        )

        if self._metadata is not None:
            metadata = await self._metadata.get_endpoints(request.model)
            if metadata is not None and metadata.endpoints:
                endpoints = list(metadata.endpoints)
                if has_tools:
                    endpoints = [endpoint for endpoint in endpoints if endpoint.supports("tools")]
                tags = list(dict.fromkeys(endpoint.provider_tag for endpoint in endpoints))
                if tags:
                    preferences.only = tags

        if not preferences.only:
            if has_tools:
                preferences.order = list(self._tool_capable)
                if self._cache_provider in self._tool_capable:
                    preferences.only = [self._cache_provider]
                    preferences.allow_fallbacks = False
            elif self._cache_provider is not None:
                preferences.order = [self._cache_provider]
                preferences.allow_fallbacks = False
        return preferences
