"""Services for the orchestration core.

This package contains the stateful helpers the turn orchestrator relies on
to keep requests within budget and cheap to resend.

Services:
    - FileReadCache: Path-keyed registry of live full-content file reads
    - ContextBudgeter: Token estimation and request shaping
    - PromptCacheStrategist: Provider-specific prompt cache annotations
    - EndpointMetadataService: TTL-cached model endpoint lookups
    - ProviderPreferencesBuilder: Routing preferences from endpoint metadata
"""

from .budget import (
    ContextBudgeter,
    compute_prompt_budget,
    middle_out,
)
from .endpoint_metadata import (
    EndpointInfo,
    EndpointMetadataService,
    ModelEndpoints,
    ProviderPreferencesBuilder,
)
from .file_read_cache import (
    FileReadCache,
    FileReadCacheStats,
    normalize_path,
)
from .prompt_cache import (
    DEFAULT_CACHE_PROFILES,
    PromptCacheStrategist,
    infer_provider_from_model,
)

__all__ = [
    # File Read Cache
    "FileReadCache",
    "FileReadCacheStats",
    "normalize_path",
    # Budget
    "ContextBudgeter",
    "compute_prompt_budget",
    "middle_out",
    # Prompt Cache
    "DEFAULT_CACHE_PROFILES",
    "PromptCacheStrategist",
    "infer_provider_from_model",
    # Endpoint Metadata
    "EndpointInfo",
    "EndpointMetadataService",
    "ModelEndpoints",
    "ProviderPreferencesBuilder",
]
