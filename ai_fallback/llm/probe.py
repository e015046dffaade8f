"""Connectivity check for a single backend config.

Used by the admin tooling to verify a freshly edited config before it is
relied on by the fallback chain. Backend failures are reported in the
result instead of being raised.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from ai_fallback.config.repository import SqlConfigRepository
from ai_fallback.constants import PROBE_MAX_TOKENS, PROBE_PROMPT
from ai_fallback.exceptions import ConfigUnavailable
from ai_fallback.llm.providers import ProviderInvoker
from ai_fallback.schemas import BackendConfig, CallOptions, ProbeResult, TextRequest

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


async def probe_config(
    config: BackendConfig,
    invoker: ProviderInvoker | None = None,
) -> ProbeResult:
    invoker = invoker or ProviderInvoker()

    if not invoker.secrets.lookup(config.secret_ref):
        message = f"API key {config.secret_ref} not found in environment"
        logger.error("Probe of %s failed: %s", config.label, message)
        return ProbeResult(
            config_id=config.id,
            success=False,
            message=f"Model test failed: {message}",
            error_details=message,
            tested_at=_now(),
        )

    request = TextRequest(
        system_prompt="",
        user_prompt=PROBE_PROMPT,
        options=CallOptions(max_tokens=PROBE_MAX_TOKENS),
    )
    try:
        text = await invoker.invoke(config, request)
    except Exception as e:
        error_details = f"{type(e).__name__}: {e}"
        logger.error("Probe of %s failed: %s", config.label, error_details)
        return ProbeResult(
            config_id=config.id,
            success=False,
            message=f"Model test failed: {error_details}",
            error_details=error_details,
            tested_at=_now(),
        )

    if not text:
        error_details = f"{config.label} returned no text (see logs for the provider response)"
        logger.error("Probe of %s failed: empty response", config.label)
        return ProbeResult(
            config_id=config.id,
            success=False,
            message=f"Model test failed: {error_details}",
            error_details=error_details,
            tested_at=_now(),
        )

    logger.info("Probe of %s succeeded", config.label)
    return ProbeResult(
        config_id=config.id,
        success=True,
        message="Model test successful",
        details=text,
        tested_at=_now(),
    )


async def probe_and_record(
    config_id: str,
    repository: SqlConfigRepository,
    invoker: ProviderInvoker | None = None,
) -> ProbeResult:
    config = await repository.get_config(config_id)
    if config is None:
        raise ConfigUnavailable(f"Configuration not found: {config_id}")
    result = await probe_config(config, invoker)
    await repository.record_probe_result(config_id, result)
    return result
