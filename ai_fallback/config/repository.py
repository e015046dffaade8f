"""Read access to the backend configuration registry.

Every repository returns only active configs, ordered by descending
priority. Ties keep the order in which the backing store returned them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ai_fallback.config.loader import load_backend_configs
from ai_fallback.db.models import AIModelConfig
from ai_fallback.exceptions import ConfigUnavailable
from ai_fallback.schemas import BackendConfig, ProbeResult

logger = logging.getLogger(__name__)

_BOOKKEEPING_KEYS = frozenset({"last_error"})


class ConfigRepository(Protocol):
    async def get_active_configs(self) -> list[BackendConfig]: ...


def _active_by_priority(configs: Iterable[BackendConfig]) -> list[BackendConfig]:
    active = [c for c in configs if c.is_active]
    # sorted() is stable, so equal priorities keep their fetch order.
    return sorted(active, key=lambda c: c.priority, reverse=True)


class StaticConfigRepository:
    def __init__(self, configs: Iterable[BackendConfig]) -> None:
        self._configs = list(configs)

    async def get_active_configs(self) -> list[BackendConfig]:
        active = _active_by_priority(self._configs)
        if not active:
            raise ConfigUnavailable("No active AI configurations found")
        return active


class YamlConfigRepository:
    """Re-reads the YAML file on every call so edits apply without a restart."""

    def __init__(self, config_path: str) -> None:
        self.config_path = config_path

    async def get_active_configs(self) -> list[BackendConfig]:
        configs = load_backend_configs(self.config_path)
        if configs is None:
            raise ConfigUnavailable(f"Failed to load AI model configurations from {self.config_path}")
        active = _active_by_priority(configs)
        if not active:
            raise ConfigUnavailable("No active AI configurations found")
        return active


def _row_to_config(row: AIModelConfig) -> BackendConfig:
    # last_error is probe bookkeeping, not a provider parameter.
    extra_params = {
        k: v for k, v in (row.configuration or {}).items() if k not in _BOOKKEEPING_KEYS
    }
    return BackendConfig(
        id=row.id,
        provider=row.provider,
        model_name=row.model_name,
        secret_ref=row.api_key_secret_name,
        priority=row.priority,
        is_active=row.is_active,
        is_default=row.is_default,
        extra_params=extra_params,
        use_case_tags=row.use_case,
        tier=row.model_tier or "normal",
        last_tested_at=row.last_tested_at,
        last_test_status=row.last_test_status,
    )


class SqlConfigRepository:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self.session_maker = session_maker

    async def get_active_configs(self) -> list[BackendConfig]:
        stmt = (
            select(AIModelConfig)
            .where(AIModelConfig.is_active.is_(True))
            .order_by(AIModelConfig.priority.desc())
        )
        try:
            async with self.session_maker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as e:
            logger.error("Failed to load AI model configurations: %s", e)
            raise ConfigUnavailable("Failed to load AI model configurations") from e

        configs: list[BackendConfig] = []
        for row in rows:
            try:
                configs.append(_row_to_config(row))
            except ValidationError as e:
                logger.warning("Skipping invalid AI model config %s: %s", row.id, e)

        active = _active_by_priority(configs)
        if not active:
            raise ConfigUnavailable("No active AI configurations found")
        return active

    async def get_config(self, config_id: str) -> BackendConfig | None:
        """Fetch one config regardless of its active flag."""
        try:
            async with self.session_maker() as session:
                row = await session.get(AIModelConfig, config_id)
        except (SQLAlchemyError, OSError) as e:
            raise ConfigUnavailable("Failed to load AI model configuration") from e
        if row is None:
            return None
        return _row_to_config(row)

    async def record_probe_result(self, config_id: str, result: ProbeResult) -> None:
        values: dict[str, object] = {
            "last_tested_at": result.tested_at,
            "last_test_status": result.status,
        }
        async with self.session_maker() as session:
            async with session.begin():
                if not result.success and result.error_details:
                    row = await session.get(AIModelConfig, config_id)
                    if row is not None:
                        values["configuration"] = {
                            **(row.configuration or {}),
                            "last_error": result.error_details,
                        }
                await session.execute(
                    update(AIModelConfig).where(AIModelConfig.id == config_id).values(**values)
                )
        logger.info("Recorded probe result for %s: %s", config_id, result.status)


_default_repository: ConfigRepository | None = None


def get_config_repository() -> ConfigRepository:
    global _default_repository
    if _default_repository is None:
        from ai_fallback.constants import AI_CONFIG_PATH

        if AI_CONFIG_PATH:
            _default_repository = YamlConfigRepository(AI_CONFIG_PATH)
        else:
            from ai_fallback.db.engine import get_session_maker

            _default_repository = SqlConfigRepository(get_session_maker())
    return _default_repository
