"""Tier-aware AI backend selection with sequential provider fallback."""

from ai_fallback.exceptions import (
    AIFallbackError,
    AllProvidersExhausted,
    ConfigUnavailable,
    JSONExtractionFailed,
)
from ai_fallback.llm import (
    invoke_vision_with_fallback,
    invoke_with_fallback,
    probe_config,
    resolve_configs,
)
from ai_fallback.schemas import (
    BackendConfig,
    CallOptions,
    CallResult,
    ModelProvider,
    ModelTier,
)
from ai_fallback.utils import extract_json

__all__ = [
    "AIFallbackError",
    "AllProvidersExhausted",
    "BackendConfig",
    "CallOptions",
    "CallResult",
    "ConfigUnavailable",
    "JSONExtractionFailed",
    "ModelProvider",
    "ModelTier",
    "extract_json",
    "invoke_vision_with_fallback",
    "invoke_with_fallback",
    "probe_config",
    "resolve_configs",
]
