"""Conversation, budgeting, caching and tool orchestration for chat turns."""

# Core types
from .types import (
    CacheControl,
    ChatRequest,
    ChatResponse,
    ContentPart,
    FileStat,
    LLMProvider,
    Message,
    ProviderError,
    ProviderPreferences,
    ToolCall,
    ToolDefinition,
    TurnResult,
    Usage,
    UsageTotals,
)

# Conversation state
from .conversation import ConversationStore
from .file_reads import UNCHANGED_SENTINEL, FileReadDeduplicator
from .compaction import CompactionResult, HistoryCompactor

# Services
from .services import (
    ContextBudgeter,
    EndpointMetadataService,
    FileReadCache,
    PromptCacheStrategist,
    ProviderPreferencesBuilder,
)

# Tool system
from .tools import (
    ExecutorConfig,
    ToolExecutionEngine,
    ToolExecutionResult,
    ToolRegistry,
    ToolSpec,
)

# Orchestrator
from .orchestrator import OrchestratorConfig, TurnOrchestrator

__all__ = [
    # Core types
    "CacheControl",
    "ChatRequest",
    "ChatResponse",
    "ContentPart",
    "FileStat",
    "LLMProvider",
    "Message",
    "ProviderError",
    "ProviderPreferences",
    "ToolCall",
    "ToolDefinition",
    "TurnResult",
    "Usage",
    "UsageTotals",
    # Conversation state
    "ConversationStore",
    "UNCHANGED_SENTINEL",
    "FileReadDeduplicator",
    "CompactionResult",
    "HistoryCompactor",
    # Services
    "ContextBudgeter",
    "EndpointMetadataService",
    "FileReadCache",
    "PromptCacheStrategist",
    "ProviderPreferencesBuilder",
    # Tool system
    "ExecutorConfig",
    "ToolExecutionEngine",
    "ToolExecutionResult",
    "ToolRegistry",
    "ToolSpec",
    # Orchestrator
    "OrchestratorConfig",
    "TurnOrchestrator",
]
