import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ai_fallback.schemas import BackendConfig, ModelTier

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-(.*?))?\}")

_LIGHTWEIGHT_MARKERS = ("flash", "mini", "haiku", "instant")


def _substitute_env_vars(value: str) -> str:
    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _substitute_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _substitute_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_recursive(item) for item in obj]
    return obj


def infer_tier(model_name: str) -> ModelTier:
    """Guess the tier from the model name: flash/mini/haiku/instant models are lightweight."""
    name_lower = model_name.lower()
    if any(marker in name_lower for marker in _LIGHTWEIGHT_MARKERS):
        return ModelTier.LIGHTWEIGHT
    return ModelTier.NORMAL


def load_backend_configs(config_path: str | None = None) -> list[BackendConfig] | None:
    """Load backend configs from a YAML file with a top-level ``backends`` list.

    Invalid entries are skipped with a warning. Returns None when nothing
    usable could be loaded.
    """
    if not config_path:
        return None

    path = Path(config_path)
    if not path.is_file():
        logger.warning("Backend config file not found: %s", config_path)
        return None

    try:
        raw = path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load backend config from %s: %s", config_path, e)
        return None

    if not isinstance(data, dict) or "backends" not in data:
        logger.warning("Backend config missing 'backends' key: %s", config_path)
        return None

    raw_backends = data["backends"]
    if not isinstance(raw_backends, list) or not raw_backends:
        logger.warning("Backend config 'backends' is empty or not a list: %s", config_path)
        return None

    configs: list[BackendConfig] = []
    seen_ids: set[str] = set()
    for i, entry in enumerate(raw_backends):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-mapping backend entry %d in %s", i, config_path)
            continue
        entry = _substitute_recursive(entry)
        if "tier" not in entry and isinstance(entry.get("model_name"), str):
            entry["tier"] = infer_tier(entry["model_name"])
        try:
            cfg = BackendConfig.model_validate(entry)
        except ValidationError as e:
            logger.warning("Skipping invalid backend entry %d in %s: %s", i, config_path, e)
            continue
        if cfg.id in seen_ids:
            logger.warning("Skipping duplicate backend id %s in %s", cfg.id, config_path)
            continue
        seen_ids.add(cfg.id)
        configs.append(cfg)

    if not configs:
        logger.warning("No valid backends loaded from %s", config_path)
        return None

    logger.info("Loaded %d backend(s) from YAML config: %s", len(configs), config_path)
    return configs
