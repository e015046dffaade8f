from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ai_fallback.constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEXT_TEMPERATURE,
    DEFAULT_VISION_TEMPERATURE,
)


class ModelProvider(StrEnum):
    GEMINI_FREE = "gemini-free"
    GEMINI_PAID = "gemini-paid"
    CLAUDE = "claude"
    OPENAI = "openai"
    LOVABLE = "lovable"


class ModelTier(StrEnum):
    LIGHTWEIGHT = "lightweight"
    NORMAL = "normal"

    @property
    def other(self) -> ModelTier:
        return ModelTier.NORMAL if self is ModelTier.LIGHTWEIGHT else ModelTier.LIGHTWEIGHT


USE_CASE_ALL = "all"
USE_CASE_GENERAL = "general"


class BackendConfig(BaseModel):
    """One row of the externally administered backend registry."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: ModelProvider
    model_name: str = Field(min_length=1)
    secret_ref: str = Field(min_length=1)
    priority: int = 0
    is_active: bool = True
    is_default: bool = False
    extra_params: dict[str, Any] = Field(default_factory=dict)
    use_case_tags: list[str] = Field(default_factory=list)
    tier: ModelTier = ModelTier.NORMAL
    last_tested_at: datetime | None = None
    last_test_status: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("use_case_tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value

    @field_validator("extra_params", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def label(self) -> str:
        return f"{self.provider.value} - {self.model_name}"


class CallOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    json_mode: bool = False


class ResolvedOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float
    max_tokens: int
    json_mode: bool


class TextRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    system_prompt: str
    user_prompt: str
    options: CallOptions = Field(default_factory=CallOptions)

    def resolved_options(self) -> ResolvedOptions:
        return _resolve(self.options, DEFAULT_TEXT_TEMPERATURE)


class VisionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    image_data_url: str
    options: CallOptions = Field(default_factory=CallOptions)

    def resolved_options(self) -> ResolvedOptions:
        return _resolve(self.options, DEFAULT_VISION_TEMPERATURE)


CallRequest = TextRequest | VisionRequest


def _resolve(options: CallOptions, default_temperature: float) -> ResolvedOptions:
    return ResolvedOptions(
        temperature=(
            options.temperature if options.temperature is not None else default_temperature
        ),
        max_tokens=options.max_tokens or DEFAULT_MAX_TOKENS,
        json_mode=options.json_mode,
    )


class AttemptOutcome(StrEnum):
    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"


class Attempt(BaseModel):
    config_id: str
    provider: ModelProvider
    model_name: str
    outcome: AttemptOutcome
    elapsed_seconds: float
    error: str | None = None


class CallResult(BaseModel):
    text: str
    served_by: BackendConfig
    attempts: list[Attempt] = Field(default_factory=list)


class ProbeResult(BaseModel):
    config_id: str
    success: bool
    message: str
    details: str | None = None
    error_details: str | None = None
    tested_at: datetime

    @property
    def status(self) -> str:
        return "success" if self.success else "failed"
