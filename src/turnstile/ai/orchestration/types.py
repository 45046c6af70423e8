"""Core type definitions for the orchestration core.

This module defines the dataclasses that flow between the conversation store,
the context budgeter, the prompt-cache strategist, the tool execution engine
and the provider adapter. Messages carry a stable ``id`` assigned at creation
so that removal and replacement never depend on structural equality.
"""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Protocol, Sequence, runtime_checkable

__all__ = [
    # Message types
    "MessageRole",
    "CacheControl",
    "ContentPart",
    "ToolCall",
    "Message",
    # Tool definitions
    "ToolDefinition",
    # Dedup + caching
    "FileReadEntry",
    "CacheKind",
    "ProviderCacheProfile",
    "ShapeResult",
    # Provider boundary
    "ProviderPreferences",
    "ChatRequest",
    "Usage",
    "ChatChoice",
    "ChatResponse",
    "ProviderError",
    "LLMProvider",
    # Filesystem boundary
    "FileStat",
    "FileStatProvider",
    "PathlibStatProvider",
    # Turn results
    "UsageTotals",
    "TurnResult",
]


def _new_message_id() -> str:
    return uuid.uuid4().hex


# -----------------------------------------------------------------------------
# Message Types
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class CacheControl:
    """Provider cache marker attached to a content part or tool definition."""

    type: str = "ephemeral"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass(slots=True)
class ContentPart:
    """Single text segment of a multi-part message body."""

    text: str
    type: str = "text"
    cache_control: CacheControl | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "text": self.text}
        if self.cache_control is not None:
            payload["cache_control"] = self.cache_control.to_dict()
        return payload


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A model-requested tool invocation.

    ``arguments_json`` is kept as the opaque string the provider returned;
    the execution engine is responsible for parsing it.
    """

    id: str
    function_name: str
    arguments_json: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.function_name,
                "arguments": self.arguments_json or "",
            },
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> ToolCall:
        function = payload.get("function") or {}
        return cls(
            id=str(payload.get("id") or ""),
            function_name=str(function.get("name") or ""),
            arguments_json=function.get("arguments"),
        )


@dataclass(slots=True)
class Message:
    """Chat message stored in the conversation log.

    Messages are mutable only for content replacement. Every message receives
    a unique ``id`` at creation; :func:`dataclasses.replace` copies preserve it,
    which lets compressed request copies be traced back to their source.

    Attributes:
        role: The role of the message sender.
        content: Plain text, a list of content parts, or ``None``.
        name: Optional participant name.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Tool calls made by an assistant message.
        id: Stable identifier used for removal and replacement.
    """

    role: MessageRole
    content: str | list[ContentPart] | None = None
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCall] | None = None
    id: str = field(default_factory=_new_message_id)

    @property
    def text(self) -> str:
        """Return the message body flattened to a single string."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if part.type == "text")

    def with_content(self, content: str | list[ContentPart] | None) -> Message:
        """Return a copy carrying *content* and the same ``id``."""
        return replace(self, content=content)

    def to_chat_param(self) -> dict[str, Any]:
        """Convert to the OpenAI chat message shape."""
        payload: dict[str, Any] = {"role": self.role}
        if isinstance(self.content, list):
            payload["content"] = [part.to_dict() for part in self.content]
        else:
            payload["content"] = self.content
        if self.name is not None:
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return payload

    @classmethod
    def system(cls, content: str) -> Message:
        """Create a system message."""
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        """Create a user message."""
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        content: str | None,
        tool_calls: Sequence[ToolCall] | None = None,
    ) -> Message:
        """Create an assistant message."""
        return cls(
            role="assistant",
            content=content,
            tool_calls=list(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None) -> Message:
        """Create a tool result message."""
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name)


# -----------------------------------------------------------------------------
# Tool Definitions
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolDefinition:
    """Tool schema advertised to the model.

    Attributes:
        name: Unique tool name.
        description: Human-readable description.
        parameters: JSON schema for the arguments, or ``None`` when dropped.
        cache_control: Optional cache marker set by the strategist.
    """

    name: str
    description: str = ""
    parameters: Mapping[str, Any] | None = None
    cache_control: CacheControl | None = None

    def schema_text(self) -> str:
        """Serialized parameter schema, empty when no schema is attached."""
        if self.parameters is None:
            return ""
        return json.dumps(self.parameters, sort_keys=True)

    def to_openai_tool(self) -> dict[str, Any]:
        function: dict[str, Any] = {"name": self.name, "description": self.description}
        if self.parameters is not None:
            function["parameters"] = dict(self.parameters)
        payload: dict[str, Any] = {"type": "function", "function": function}
        if self.cache_control is not None:
            payload["cache_control"] = self.cache_control.to_dict()
        return payload


# -----------------------------------------------------------------------------
# Dedup and Caching Records
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class FileReadEntry:
    """Registered full-content read of a file.

    ``owner_message`` is a back reference only; the conversation store owns
    the message and the entry is dropped whenever that message is removed.
    """

    normalized_path: str
    content_hash: str
    source_last_write_time: float
    source_length: int
    owner_message: Message


CacheKind = Literal["none", "automated", "explicit", "both"]


@dataclass(slots=True, frozen=True)
class ProviderCacheProfile:
    """Static description of a provider's prompt caching behaviour."""

    supports_cache: bool = False
    cache_kind: CacheKind = "none"
    min_cacheable_tokens: int = 0
    max_breakpoints: int = 0

    @classmethod
    def unsupported(cls) -> ProviderCacheProfile:
        return cls()


@dataclass(slots=True)
class ShapeResult:
    """Outcome of :meth:`ContextBudgeter.shape`.

    Attributes:
        messages: Messages to send, oldest first.
        tool_choice: Possibly relaxed tool choice.
        tool_definitions: Possibly schema-stripped tool definitions.
        estimated_tokens: Estimated prompt tokens for the shaped request.
        budget: Prompt token budget the shaping aimed for.
    """

    messages: list[Message]
    tool_choice: str | None
    tool_definitions: list[ToolDefinition] | None
    estimated_tokens: int
    budget: int = 0


# -----------------------------------------------------------------------------
# Provider Boundary
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ProviderPreferences:
    """Routing preferences forwarded to an aggregating provider."""

    order: list[str] | None = None
    only: list[str] | None = None
    ignore: list[str] | None = None
    allow_fallbacks: bool | None = None
    require_parameters: bool | None = None
    data_collection: str | None = None
    sort: str | None = None

    def is_empty(self) -> bool:
        return not any(
            value is not None
            for value in (
                self.order,
                self.only,
                self.ignore,
                self.allow_fallbacks,
                self.require_parameters,
                self.data_collection,
                self.sort,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "order": self.order,
            "only": self.only,
            "ignore": self.ignore,
            "allow_fallbacks": self.allow_fallbacks,
            "require_parameters": self.require_parameters,
            "data_collection": self.data_collection,
            "sort": self.sort,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True)
class ChatRequest:
    """Outgoing chat completion request."""

    model: str
    messages: list[Message]
    tools: list[ToolDefinition] | None = None
    tool_choice: str | None = None
    provider: ProviderPreferences | None = None
    usage: Mapping[str, Any] | None = None
    max_completion_tokens: int | None = None
    temperature: float | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the OpenAI wire shape, omitting unset fields."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [message.to_chat_param() for message in self.messages],
        }
        if self.tools:
            payload["tools"] = [tool.to_openai_tool() for tool in self.tools]
        if self.tool_choice is not None and self.tools:
            payload["tool_choice"] = self.tool_choice
        if self.provider is not None and not self.provider.is_empty():
            payload["provider"] = self.provider.to_dict()
        if self.usage is not None:
            payload["usage"] = dict(self.usage)
        if self.max_completion_tokens is not None:
            payload["max_completion_tokens"] = self.max_completion_tokens
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload


@dataclass(slots=True, frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None


@dataclass(slots=True)
class ChatChoice:
    message: Message
    finish_reason: str | None = None


@dataclass(slots=True)
class ChatResponse:
    """Provider response normalized to orchestration types."""

    choices: list[ChatChoice]
    usage: Usage | None = None
    model: str | None = None
    provider: str | None = None

    @property
    def first_message(self) -> Message | None:
        if not self.choices:
            return None
        return self.choices[0].message


class ProviderError(RuntimeError):
    """Raised when the provider call fails or returns an unusable response.

    Attributes:
        status_code: HTTP status code when one was received.
        body: Raw response body or error payload, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@runtime_checkable
class LLMProvider(Protocol):
    """Remote chat completion endpoint."""

    async def complete(self, request: ChatRequest) -> ChatResponse:
        """Send *request* and return the parsed response.

        Raises:
            ProviderError: On network failure, non-success status or a
                malformed response.
        """
        ...


# -----------------------------------------------------------------------------
# Filesystem Boundary
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class FileStat:
    last_write_time: float
    length: int


class FileStatProvider(Protocol):
    def stat(self, path: str) -> FileStat | None:
        """Return metadata for *path*, or ``None`` when it is unavailable."""
        ...


class PathlibStatProvider:
    """Default :class:`FileStatProvider` backed by :mod:`pathlib`."""

    def __init__(self, root: str | os.PathLike[str] | None = None) -> None:
        self._root = Path(root) if root is not None else None

    def stat(self, path: str) -> FileStat | None:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute() and self._root is not None:
            candidate = self._root / candidate
        try:
            info = candidate.stat()
        except OSError:
            return None
        return FileStat(last_write_time=info.st_mtime, length=info.st_size)


# -----------------------------------------------------------------------------
# Turn Results
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class UsageTotals:
    """Usage and cost accumulated across a session."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    requests: int = 0

    def add(self, usage: Usage | None) -> None:
        self.requests += 1
        if usage is None:
            return
        self.prompt_tokens += usage.prompt_tokens
        self.completion_tokens += usage.completion_tokens
        self.total_tokens += usage.total_tokens
        if usage.cost is not None:
            self.cost += usage.cost


@dataclass(slots=True)
class TurnResult:
    """Outcome of a single user turn.

    Attributes:
        success: False when the provider call aborted the turn.
        content: Final assistant text, if any.
        error: Error description when ``success`` is False.
        iterations: Number of provider calls made.
        tool_calls_executed: Total tool calls run during the turn.
        usage: Usage accumulated during this turn.
    """

    success: bool
    content: str | None = None
    error: str | None = None
    iterations: int = 0
    tool_calls_executed: int = 0
    usage: UsageTotals = field(default_factory=UsageTotals)
