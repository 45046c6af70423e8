"""Tests for orchestration/services/endpoint_metadata.py."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from turnstile.ai.orchestration.services.endpoint_metadata import (
    TOOL_CAPABLE_PROVIDERS,
    EndpointMetadataService,
    ProviderPreferencesBuilder,
    split_model_id,
)
from turnstile.ai.orchestration.types import ChatRequest, Message, ProviderPreferences, ToolDefinition

PAYLOAD = {
    "data": {
        "id": "anthropic/claude-sonnet-4",
        "name": "Claude Sonnet 4",
        "endpoints": [
            {
                "name": "Anthropic",
                "provider_name": "Anthropic",
                "tag": "anthropic",
                "context_length": 200_000,
                "supported_parameters": ["tools", "max_tokens"],
            },
            {
                "name": "Vertex",
                "provider_name": "Google",
                "context_length": 1_000_000,
                "supported_parameters": ["max_tokens"],
            },
        ],
    }
}


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def make_service(handler, *, clock=None, ttl: float = 600.0):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    service = EndpointMetadataService(
        http, base_url="https://example.test/api/v1", ttl_seconds=ttl, clock=clock or FakeClock()
    )
    return http, service


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=PAYLOAD)


class TestSplitModelId:
    def test_variants_are_stripped(self) -> None:
        assert split_model_id("meta-llama/llama-3:free") == ("meta-llama", "llama-3")
        assert split_model_id("anthropic/claude-sonnet-4") == ("anthropic", "claude-sonnet-4")

    @pytest.mark.parametrize("model", [None, "", "gpt-4o", "/slug", "author/"])
    def test_invalid_ids(self, model) -> None:
        assert split_model_id(model) is None


class TestEndpointMetadataService:
    @pytest.mark.asyncio
    async def test_fetch_and_parse(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=PAYLOAD)

        http, service = make_service(handler)
        async with http:
            endpoints = await service.get_endpoints("anthropic/claude-sonnet-4:beta")

        assert seen == ["https://example.test/api/v1/models/anthropic/claude-sonnet-4/endpoints"]
        assert endpoints.name == "Claude Sonnet 4"
        assert [endpoint.provider_tag for endpoint in endpoints.endpoints] == ["anthropic", "google"]
        assert endpoints.endpoints[0].supports("TOOLS")

    @pytest.mark.asyncio
    async def test_best_context_length(self) -> None:
        http, service = make_service(ok_handler)
        async with http:
            assert await service.best_context_length("anthropic/claude-sonnet-4") == 1_000_000

    @pytest.mark.asyncio
    async def test_cached_until_ttl_expires(self) -> None:
        clock = FakeClock()
        http, service = make_service(ok_handler, clock=clock, ttl=600.0)
        async with http:
            await service.get_endpoints("anthropic/claude-sonnet-4")
            clock.now += 599
            await service.get_endpoints("Anthropic/Claude-Sonnet-4")
            assert service.fetch_count == 1

            clock.now += 2
            await service.get_endpoints("anthropic/claude-sonnet-4")
            assert service.fetch_count == 2

            await service.get_endpoints("anthropic/claude-sonnet-4", force_refresh=True)
            assert service.fetch_count == 3

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_fetch(self) -> None:
        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.05)
            return httpx.Response(200, json=PAYLOAD)

        http, service = make_service(slow_handler)
        async with http:
            results = await asyncio.gather(
                *(service.get_endpoints("anthropic/claude-sonnet-4") for _ in range(5))
            )

        assert service.fetch_count == 1
        assert all(result == results[0] for result in results)

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self) -> None:
        http, service = make_service(lambda request: httpx.Response(503, text="unavailable"))
        async with http:
            assert await service.get_endpoints("anthropic/claude-sonnet-4") is None
            assert await service.best_context_length("anthropic/claude-sonnet-4") is None

    @pytest.mark.asyncio
    async def test_missing_data_returns_none(self) -> None:
        http, service = make_service(lambda request: httpx.Response(200, json={"error": "nope"}))
        async with http:
            assert await service.get_endpoints("anthropic/claude-sonnet-4") is None

    @pytest.mark.asyncio
    async def test_invalid_model_id_skips_fetch(self) -> None:
        http, service = make_service(ok_handler)
        async with http:
            assert await service.get_endpoints("gpt-4o") is None
        assert service.fetch_count == 0

    @pytest.mark.asyncio
    async def test_invalidate(self) -> None:
        http, service = make_service(ok_handler)
        async with http:
            await service.get_endpoints("anthropic/claude-sonnet-4")
            service.invalidate("anthropic/claude-sonnet-4")
            await service.get_endpoints("anthropic/claude-sonnet-4")
        assert service.fetch_count == 2


def tool_request(model: str = "anthropic/claude-sonnet-4", provider=None) -> ChatRequest:
    return ChatRequest(
        model=model,
        messages=[Message.user("hi")],
        tools=[ToolDefinition(name="read_file")],
        provider=provider,
    )


class TestProviderPreferencesBuilder:
    @pytest.mark.asyncio
    async def test_explicit_preferences_are_kept(self) -> None:
        explicit = ProviderPreferences(only=["openai"])

        result = await ProviderPreferencesBuilder().build(tool_request(provider=explicit))

        assert result is explicit

    @pytest.mark.asyncio
    async def test_tool_capable_endpoints_from_metadata(self) -> None:
        http, service = make_service(ok_handler)
        async with http:
            preferences = await ProviderPreferencesBuilder(service).build(tool_request())

        assert preferences.only == ["anthropic"]
        assert preferences.require_parameters is True
        assert preferences.data_collection == "allow"
        assert preferences.allow_fallbacks is True
        assert preferences.sort == "price"

    @pytest.mark.asyncio
    async def test_fallback_orders_tool_capable_providers(self) -> None:
        preferences = await ProviderPreferencesBuilder().build(tool_request())

        assert preferences.only is None
        assert preferences.order == list(TOOL_CAPABLE_PROVIDERS)

    @pytest.mark.asyncio
    async def test_sticky_cache_provider_is_pinned(self) -> None:
        builder = ProviderPreferencesBuilder()
        builder.set_cache_provider("Anthropic")

        preferences = await builder.build(tool_request())

        assert preferences.only == ["anthropic"]
        assert preferences.allow_fallbacks is False

    @pytest.mark.asyncio
    async def test_without_tools(self) -> None:
        builder = ProviderPreferencesBuilder()
        request = ChatRequest(model="openai/gpt-4o", messages=[Message.user("hi")])

        plain = await builder.build(request)
        builder.set_cache_provider("openai")
        sticky = await builder.build(request)

        assert plain.require_parameters is False
        assert plain.order is None
        assert sticky.order == ["openai"]
        assert sticky.to_dict()["allow_fallbacks"] is False
