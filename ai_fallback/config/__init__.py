from ai_fallback.config.loader import infer_tier, load_backend_configs
from ai_fallback.config.repository import (
    ConfigRepository,
    SqlConfigRepository,
    StaticConfigRepository,
    YamlConfigRepository,
    get_config_repository,
)

__all__ = [
    "ConfigRepository",
    "SqlConfigRepository",
    "StaticConfigRepository",
    "YamlConfigRepository",
    "get_config_repository",
    "infer_tier",
    "load_backend_configs",
]
