"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..services.settings import Settings
from .ai_types import TokenCounterProtocol
from .orchestration.types import (
    ChatChoice,
    ChatRequest,
    ChatResponse,
    Message,
    ProviderError,
    ToolCall,
    Usage,
)
from .utils.tokens import ApproxCharCounter

LOGGER = logging.getLogger(__name__)

# Keyword arguments ``chat.completions.create`` accepts directly; everything
# else in the payload travels in ``extra_body``.
_NATIVE_PARAMS = frozenset(
    {"model", "messages", "tools", "tool_choice", "max_completion_tokens", "temperature"}
)


class TokenCounterRegistry:
    """Registry maintaining tokenizer implementations per model."""

    _shared: TokenCounterRegistry | None = None

    def __init__(self, *, fallback: TokenCounterProtocol | None = None) -> None:
        self._fallback = fallback or ApproxCharCounter()
        self._counters: Dict[str, TokenCounterProtocol] = {}

    @classmethod
    def global_instance(cls) -> "TokenCounterRegistry":
        if cls._shared is None:
            cls._shared = TokenCounterRegistry()
        return cls._shared

    def register(self, model_name: str, counter: TokenCounterProtocol) -> None:
        key = self._normalize_key(model_name)
        if not key:
            raise ValueError("model_name is required for token counter registration")
        self._counters[key] = counter

    def unregister(self, model_name: str) -> None:
        self._counters.pop(self._normalize_key(model_name), None)

    def has(self, model_name: str | None) -> bool:
        key = self._normalize_key(model_name)
        return bool(key and key in self._counters)

    def get(self, model_name: str | None = None) -> TokenCounterProtocol:
        key = self._normalize_key(model_name)
        if key and key in self._counters:
            return self._counters[key]
        return self._fallback

    def count(self, model_name: str | None, text: str) -> int:
        return self.get(model_name).count(text)

    @staticmethod
    def _normalize_key(model_name: str | None) -> str:
        return (model_name or "").strip().lower()


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    request_timeout: float | None = 120.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> ClientSettings:
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            debug_logging=settings.debug_logging,
        )


class AIClient:
    """Provider adapter sending :class:`ChatRequest` objects via ``AsyncOpenAI``.

    Implements the ``LLMProvider`` protocol. Every failure surfaces as a
    :class:`ProviderError`; retries are bounded by ``max_retries`` attempts
    (one attempt by default).
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        client: AsyncOpenAI | None = None,
        token_registry: TokenCounterRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._token_registry = token_registry or TokenCounterRegistry.global_instance()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(self, request: ChatRequest) -> ChatResponse:
        """Send *request* and return the normalized response."""

        payload = request.to_payload()
        if not payload.get("model"):
            payload["model"] = self._settings.model
        kwargs = {key: value for key, value in payload.items() if key in _NATIVE_PARAMS}
        extra_body = {key: value for key, value in payload.items() if key not in _NATIVE_PARAMS}
        if extra_body:
            kwargs["extra_body"] = extra_body

        LOGGER.debug(
            "Requesting chat completion via %s with %s message(s)",
            kwargs["model"],
            len(kwargs["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._client.chat.completions.create(**kwargs)
        except APIStatusError as exc:
            LOGGER.warning("Provider returned HTTP %s: %s", exc.status_code, exc.message)
            raise ProviderError(
                f"Provider returned HTTP {exc.status_code}: {exc.message}",
                status_code=exc.status_code,
                body=exc.body,
            ) from exc
        except (APIConnectionError, APIError, httpx.HTTPError) as exc:
            LOGGER.warning("Provider request failed: %s", exc)
            raise ProviderError(f"Provider request failed: {exc}") from exc

        return self._convert_response(response)

    def get_token_counter(self, model: str | None = None) -> TokenCounterProtocol:
        return self._token_registry.get(model or self._settings.model)

    def count_tokens(self, text: str, *, model: str | None = None) -> int:
        if not text:
            return 0
        return self.get_token_counter(model).count(text)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIConnectionError,
                    APITimeoutError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _convert_response(self, response: Any) -> ChatResponse:
        error = getattr(response, "error", None)
        if error:
            raise ProviderError(f"Provider reported an error: {error}", body=error)
        raw_choices = getattr(response, "choices", None)
        if not raw_choices:
            raise ProviderError("Provider response contained no choices", body=response)

        choices: list[ChatChoice] = []
        for raw in raw_choices:
            raw_message = getattr(raw, "message", None)
            if raw_message is None:
                raise ProviderError("Provider choice is missing a message", body=response)
            tool_calls = [
                ToolCall(
                    id=str(getattr(call, "id", "") or ""),
                    function_name=str(getattr(call.function, "name", "") or ""),
                    arguments_json=getattr(call.function, "arguments", None),
                )
                for call in getattr(raw_message, "tool_calls", None) or ()
            ]
            message = Message.assistant(getattr(raw_message, "content", None), tool_calls or None)
            choices.append(ChatChoice(message=message, finish_reason=getattr(raw, "finish_reason", None)))

        return ChatResponse(
            choices=choices,
            usage=self._convert_usage(getattr(response, "usage", None)),
            model=getattr(response, "model", None),
            provider=getattr(response, "provider", None),
        )

    @staticmethod
    def _convert_usage(usage: Any) -> Usage | None:
        if usage is None:
            return None
        cost = getattr(usage, "cost", None)
        return Usage(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
            cost=float(cost) if cost is not None else None,
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


__all__ = [
    "AIClient",
    "ClientSettings",
    "TokenCounterRegistry",
    "ApproxCharCounter",
]
