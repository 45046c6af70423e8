"""Turn Orchestrator: drives one user turn through the tool loop.

The orchestrator owns the per-session wiring between the conversation store,
the context budgeter, the prompt-cache strategist, the provider and the tool
execution engine. Each call to :meth:`TurnOrchestrator.run_turn` appends the
user message, then alternates provider calls and tool executions until the
model answers without tool calls or ``max_tool_iterations`` is reached.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ...services.settings import BudgetSettings, Settings
from ...utils.logging import configure_from_settings
from .compaction import CompactionResult, HistoryCompactor
from .conversation import ConversationStore
from .file_reads import FileReadDeduplicator
from .services.budget import ContextBudgeter
from .services.endpoint_metadata import EndpointMetadataService, ProviderPreferencesBuilder
from .services.file_read_cache import FileReadCache
from .services.prompt_cache import PromptCacheStrategist, infer_provider_from_model
from .tools.executor import ExecutorConfig, ToolExecutionEngine
from .tools.registry import ToolRegistry
from .types import (
    ChatRequest,
    ChatResponse,
    LLMProvider,
    Message,
    ProviderError,
    ToolDefinition,
    TurnResult,
    UsageTotals,
)

__all__ = [
    "TurnOrchestrator",
    "OrchestratorConfig",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Per-session knobs for :class:`TurnOrchestrator`.

    Attributes:
        model: Model identifier sent with every request.
        max_tool_iterations: Upper bound on provider calls per turn.
        request_timeout: Seconds to wait for a provider response.
        max_completion_tokens: Completion tokens reserved in the budget.
        temperature: Sampling temperature, or ``None`` for the provider default.
        context_length: Fixed context window; skips the metadata lookup.
        budget: Shaping constants passed to the budgeter.
    """

    model: str
    max_tool_iterations: int = 25
    request_timeout: float | None = 120.0
    max_completion_tokens: int = 8_192
    temperature: float | None = None
    context_length: int | None = None
    budget: BudgetSettings = field(default_factory=BudgetSettings)

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            model=settings.model,
            max_tool_iterations=settings.max_tool_iterations,
            request_timeout=settings.request_timeout,
            max_completion_tokens=settings.max_completion_tokens,
            temperature=settings.temperature,
            budget=settings.budget,
        )


# -----------------------------------------------------------------------------
# Turn Orchestrator
# -----------------------------------------------------------------------------


class TurnOrchestrator:
    """Runs user turns against an :class:`LLMProvider`.

    Only one turn runs at a time; concurrent callers queue on an internal
    lock. Provider failures end the turn with ``success=False`` and are never
    retried here.

    Example:
        >>> orchestrator = TurnOrchestrator(provider, store, engine, config=config)
        >>> result = await orchestrator.run_turn("Summarize main.py")
        >>> print(result.content)
    """

    def __init__(
        self,
        provider: LLMProvider,
        store: ConversationStore,
        engine: ToolExecutionEngine,
        *,
        config: OrchestratorConfig,
        budgeter: ContextBudgeter | None = None,
        strategist: PromptCacheStrategist | None = None,
        deduplicator: FileReadDeduplicator | None = None,
        endpoint_metadata: EndpointMetadataService | None = None,
        preferences: ProviderPreferencesBuilder | None = None,
        compactor: HistoryCompactor | None = None,
    ) -> None:
        self._provider = provider
        self._store = store
        self._engine = engine
        self._config = config
        self._budgeter = budgeter or ContextBudgeter()
        self._strategist = strategist or PromptCacheStrategist()
        self._deduplicator = deduplicator
        self._endpoint_metadata = endpoint_metadata
        self._preferences = preferences
        self._compactor = compactor
        self._turn_lock = asyncio.Lock()
        self._session_usage = UsageTotals()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: LLMProvider,
        registry: ToolRegistry,
        *,
        system_prompt: str | None = None,
        endpoint_metadata: EndpointMetadataService | None = None,
    ) -> TurnOrchestrator:
        """Wire a complete orchestrator from persisted :class:`Settings`."""

        configure_from_settings(settings)
        cache = FileReadCache()
        store = ConversationStore(system_prompt, file_read_cache=cache)
        engine = ToolExecutionEngine(
            registry, ExecutorConfig(default_timeout=settings.tool_timeout)
        )
        deduplicator = FileReadDeduplicator(
            store,
            cache,
            enabled=settings.experimental.deduplicate_file_reads,
        )
        preferences = None
        if endpoint_metadata is not None:
            preferences = ProviderPreferencesBuilder(endpoint_metadata)
        return cls(
            provider,
            store,
            engine,
            config=OrchestratorConfig.from_settings(settings),
            strategist=PromptCacheStrategist(settings.cache_strategy),
            deduplicator=deduplicator,
            endpoint_metadata=endpoint_metadata,
            preferences=preferences,
            compactor=HistoryCompactor(
                provider,
                model=settings.model,
                max_completion_tokens=settings.max_completion_tokens,
            ),
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def session_usage(self) -> UsageTotals:
        return self._session_usage

    @property
    def is_running(self) -> bool:
        return self._turn_lock.locked()

    # ------------------------------------------------------------------
    # Turn execution
    # ------------------------------------------------------------------
    async def run_turn(self, user_text: str) -> TurnResult:
        """Append *user_text* and run the tool loop until a final answer."""

        async with self._turn_lock:
            return await self._run_locked(user_text)

    async def _run_locked(self, user_text: str) -> TurnResult:
        self._store.append(Message.user(user_text))
        turn_usage = UsageTotals()
        tool_definitions = self._engine.registry.definitions()
        context_length = await self._resolve_context_length()
        executed = 0
        last_text: str | None = None

        for iteration in range(1, max(1, self._config.max_tool_iterations) + 1):
            request = await self._build_request(tool_definitions, context_length)
            try:
                response = await self._call_provider(request)
            except ProviderError as exc:
                LOGGER.warning("Turn aborted by provider error: %s", exc)
                return TurnResult(
                    success=False,
                    error=str(exc),
                    iterations=iteration,
                    tool_calls_executed=executed,
                    usage=turn_usage,
                )

            turn_usage.add(response.usage)
            self._session_usage.add(response.usage)
            self._remember_cache_provider(response)

            message = response.first_message
            if message is None:
                return TurnResult(
                    success=False,
                    error="Provider response contained no message",
                    iterations=iteration,
                    tool_calls_executed=executed,
                    usage=turn_usage,
                )

            self._store.append(message)
            if not message.tool_calls:
                LOGGER.debug("Turn finished after %d provider call(s)", iteration)
                return TurnResult(
                    success=True,
                    content=message.text,
                    iterations=iteration,
                    tool_calls_executed=executed,
                    usage=turn_usage,
                )

            last_text = message.text or last_text
            results = await self._engine.execute_tools(message.tool_calls, self._session_usage)
            for call, result in zip(message.tool_calls, results):
                if self._deduplicator is not None:
                    self._deduplicator.record(call, result)
                else:
                    self._store.append(result)
            executed += len(results)

        LOGGER.warning(
            "Reached max tool iterations (%d); ending turn without a final answer",
            self._config.max_tool_iterations,
        )
        return TurnResult(
            success=True,
            content=last_text,
            iterations=max(1, self._config.max_tool_iterations),
            tool_calls_executed=executed,
            usage=turn_usage,
        )

    async def _build_request(
        self, tool_definitions: list[ToolDefinition], context_length: int
    ) -> ChatRequest:
        budget = self._config.budget
        shaped = self._budgeter.shape(
            self._store.snapshot(),
            tool_definitions or None,
            "auto" if tool_definitions else None,
            context_length,
            self._config.max_completion_tokens,
            safety_margin_pct=budget.safety_margin_pct,
            max_messages=budget.max_messages,
            max_tool_output_chars=budget.max_tool_output_chars,
            use_middle_out=budget.use_middle_out,
        )
        request = ChatRequest(
            model=self._config.model,
            messages=list(shaped.messages),
            tools=shaped.tool_definitions,
            tool_choice=shaped.tool_choice,
            usage={"include": True},
            max_completion_tokens=self._config.max_completion_tokens,
            temperature=self._config.temperature,
        )
        if self._preferences is not None:
            request.provider = await self._preferences.build(request)
        annotations = self._strategist.apply_caching_strategy(request)
        LOGGER.debug(
            "Prepared request: %d message(s), ~%d/%d tokens, %d cache annotation(s)",
            len(request.messages),
            shaped.estimated_tokens,
            shaped.budget,
            annotations,
        )
        return request

    async def _call_provider(self, request: ChatRequest) -> ChatResponse:
        timeout = self._config.request_timeout
        if timeout is None or timeout <= 0:
            return await self._provider.complete(request)
        try:
            return await asyncio.wait_for(self._provider.complete(request), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"Provider request timed out after {timeout:g} seconds") from exc

    async def _resolve_context_length(self) -> int:
        if self._config.context_length:
            return self._config.context_length
        if self._endpoint_metadata is not None:
            length = await self._endpoint_metadata.best_context_length(self._config.model)
            if length:
                return length
        return self._config.budget.default_context_length

    def _remember_cache_provider(self, response: ChatResponse) -> None:
        if self._preferences is None or not response.provider:
            return
        tag = response.provider.strip().lower()
        profile = self._strategist.profile_for(infer_provider_from_model(tag) or tag)
        if profile.supports_cache:
            self._preferences.set_cache_provider(tag)

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------
    async def compact_history(self) -> CompactionResult:
        """Summarize the middle of the conversation, waiting for any running turn."""

        if self._compactor is None:
            return CompactionResult(False, "compaction not configured")
        async with self._turn_lock:
            return await self._compactor.compact(self._store)

    def reset(self) -> None:
        """Clear the conversation (keeping the system prompt) and session usage."""

        self._store.clear()
        self._session_usage = UsageTotals()
