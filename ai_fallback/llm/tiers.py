from __future__ import annotations

import logging

from ai_fallback.config.repository import ConfigRepository, get_config_repository
from ai_fallback.schemas import USE_CASE_ALL, USE_CASE_GENERAL, BackendConfig, ModelTier

logger = logging.getLogger(__name__)


def _is_general(config: BackendConfig) -> bool:
    return not config.use_case_tags or USE_CASE_GENERAL in config.use_case_tags


def filter_by_use_case(configs: list[BackendConfig], use_case: str | None) -> list[BackendConfig]:
    """Narrow one tier bucket to the configs preferred for ``use_case``.

    Precedence is exact tag, then the "all" sentinel, then general/untagged
    configs. When nothing matches the whole bucket is returned unchanged.
    """
    if not use_case:
        return configs

    specific = [c for c in configs if use_case in c.use_case_tags]
    if specific:
        return specific
    all_use = [c for c in configs if USE_CASE_ALL in c.use_case_tags]
    if all_use:
        return all_use
    general = [c for c in configs if _is_general(c)]
    if general:
        return general
    return configs


def resolve(
    active_configs: list[BackendConfig],
    tier: ModelTier | str = ModelTier.NORMAL,
    use_case: str | None = None,
) -> list[BackendConfig]:
    """Order candidates: requested tier first, then the other tier as fallback.

    ``active_configs`` must already be active-only and sorted by descending
    priority; that order is preserved inside each bucket.
    """
    tier = ModelTier(tier)
    fallback_tier = tier.other

    primary = [c for c in active_configs if c.tier == tier]
    secondary = [c for c in active_configs if c.tier == fallback_tier]

    filtered_primary = filter_by_use_case(primary, use_case)
    filtered_secondary = filter_by_use_case(secondary, use_case)
    ordered = filtered_primary + filtered_secondary

    if not ordered:
        logger.warning(
            "No %s or %s configs found, using any available", tier.value, fallback_tier.value
        )
        return list(active_configs)

    logger.info(
        "Config order: %d configs (%d %s, %d %s fallback) use_case=%s",
        len(ordered),
        len(filtered_primary),
        tier.value,
        len(filtered_secondary),
        fallback_tier.value,
        use_case or "-",
    )
    return ordered


async def resolve_configs(
    tier: ModelTier | str = ModelTier.NORMAL,
    use_case: str | None = None,
    repository: ConfigRepository | None = None,
) -> list[BackendConfig]:
    repository = repository or get_config_repository()
    active = await repository.get_active_configs()
    return resolve(active, tier, use_case)
