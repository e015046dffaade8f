from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ai_fallback.schemas import Attempt


class AIFallbackError(Exception):
    pass


class ConfigUnavailable(AIFallbackError):
    """No active backend configuration could be loaded."""


class AllProvidersExhausted(AIFallbackError):
    """Every resolved candidate failed or returned empty output."""

    def __init__(self, message: str, attempts: list[Attempt] | None = None) -> None:
        super().__init__(message)
        self.attempts: list[Attempt] = list(attempts or [])


class JSONExtractionFailed(AIFallbackError):
    """The model text did not contain parseable JSON.

    ``raw_text`` keeps the untouched response so callers can fall back to
    treating it as plain text.
    """

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.raw_text = raw_text
