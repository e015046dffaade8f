from __future__ import annotations

import logging
import time

from ai_fallback.exceptions import AllProvidersExhausted
from ai_fallback.llm.providers import ProviderInvoker
from ai_fallback.schemas import (
    Attempt,
    AttemptOutcome,
    BackendConfig,
    CallOptions,
    CallRequest,
    CallResult,
    TextRequest,
    VisionRequest,
)

logger = logging.getLogger(__name__)


class FallbackExecutor:
    """Try candidates one at a time, in order, until one returns text.

    A failing candidate is skipped, never retried. Cancellation of the
    awaiting task is not caught, so no further candidates run after it.
    """

    def __init__(self, invoker: ProviderInvoker | None = None) -> None:
        self.invoker = invoker or ProviderInvoker()

    async def run(self, candidates: list[BackendConfig], request: CallRequest) -> CallResult:
        kind = "AI Vision" if isinstance(request, VisionRequest) else "AI"
        attempts: list[Attempt] = []

        for config in candidates:
            logger.info("[%s] Trying model: %s", kind, config.label)
            start_time = time.perf_counter()
            try:
                text = await self.invoker.invoke(config, request)
            except Exception as e:
                elapsed = time.perf_counter() - start_time
                logger.error(
                    "[%s] Failed with %s after %.2fs: %s: %s",
                    kind,
                    config.label,
                    elapsed,
                    type(e).__name__,
                    e,
                )
                attempts.append(
                    _attempt(config, AttemptOutcome.ERROR, elapsed, f"{type(e).__name__}: {e}")
                )
                continue

            elapsed = time.perf_counter() - start_time
            if text:
                logger.info("[%s] Success with %s in %.2fs", kind, config.label, elapsed)
                attempts.append(_attempt(config, AttemptOutcome.SUCCESS, elapsed))
                return CallResult(text=text, served_by=config, attempts=attempts)

            attempts.append(_attempt(config, AttemptOutcome.EMPTY, elapsed))

        if isinstance(request, VisionRequest):
            message = "All AI models failed to process the image"
        else:
            message = "All AI models failed to generate a response"
        logger.error("[%s] %s (%d candidates tried)", kind, message, len(attempts))
        raise AllProvidersExhausted(message, attempts)


def _attempt(
    config: BackendConfig, outcome: AttemptOutcome, elapsed: float, error: str | None = None
) -> Attempt:
    return Attempt(
        config_id=config.id,
        provider=config.provider,
        model_name=config.model_name,
        outcome=outcome,
        elapsed_seconds=round(elapsed, 3),
        error=error,
    )


async def invoke_with_fallback(
    configs: list[BackendConfig],
    system_prompt: str,
    user_prompt: str,
    options: CallOptions | None = None,
    executor: FallbackExecutor | None = None,
) -> CallResult:
    request = TextRequest(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        options=options or CallOptions(),
    )
    return await (executor or FallbackExecutor()).run(configs, request)


async def invoke_vision_with_fallback(
    configs: list[BackendConfig],
    prompt: str,
    image_data_url: str,
    options: CallOptions | None = None,
    executor: FallbackExecutor | None = None,
) -> CallResult:
    request = VisionRequest(
        prompt=prompt,
        image_data_url=image_data_url,
        options=options or CallOptions(),
    )
    return await (executor or FallbackExecutor()).run(configs, request)
