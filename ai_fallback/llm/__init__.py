"""Backend selection and sequential provider fallback."""

from ai_fallback.llm.fallback import (
    FallbackExecutor,
    invoke_vision_with_fallback,
    invoke_with_fallback,
)
from ai_fallback.llm.probe import probe_and_record, probe_config
from ai_fallback.llm.providers import ProviderInvoker, parse_data_url
from ai_fallback.llm.tiers import filter_by_use_case, resolve, resolve_configs

__all__ = [
    "FallbackExecutor",
    "ProviderInvoker",
    "filter_by_use_case",
    "invoke_vision_with_fallback",
    "invoke_with_fallback",
    "parse_data_url",
    "probe_and_record",
    "probe_config",
    "resolve",
    "resolve_configs",
]
