"""Per-provider request building and response parsing.

Each provider kind maps to one adapter. Adapters return the generated text
or None; None means "this candidate produced nothing usable", which covers
non-2xx statuses, bodies missing the expected field and image payloads the
provider cannot accept. Transport errors (connection refused, timeouts) are
raised to the caller so the fallback loop can record them.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
from openai import APIStatusError, AsyncOpenAI

from ai_fallback.constants import (
    ANTHROPIC_API_BASE,
    ANTHROPIC_VERSION,
    GEMINI_API_BASE,
    LOVABLE_API_BASE,
    OPENAI_API_BASE,
    PROVIDER_TIMEOUT,
)
from ai_fallback.schemas import (
    BackendConfig,
    CallRequest,
    ModelProvider,
    ResolvedOptions,
    TextRequest,
    VisionRequest,
)
from ai_fallback.secrets import SecretStore, get_secret_store

logger = logging.getLogger(__name__)

_DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)\Z")

_ERROR_BODY_LIMIT = 500


def parse_data_url(image_data_url: str) -> tuple[str, str] | None:
    """Split ``data:<mime>;base64,<payload>`` into (mime type, base64 body)."""
    match = _DATA_URL_PATTERN.match(image_data_url)
    if not match:
        return None
    return match.group(1), match.group(2)


def _dig(body: Any, path: tuple[str | int, ...]) -> str | None:
    node = body
    for key in path:
        if isinstance(key, int):
            if not isinstance(node, list) or len(node) <= key:
                return None
        elif not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    if isinstance(node, str) and node:
        return node
    return None


def _combined_prompt(request: TextRequest) -> str:
    if not request.system_prompt:
        return request.user_prompt
    return f"{request.system_prompt}\n\n{request.user_prompt}"


class ProviderAdapter(ABC):
    name: str = "provider"

    @abstractmethod
    async def complete(
        self,
        config: BackendConfig,
        api_key: str,
        request: CallRequest,
        http_client: httpx.AsyncClient | None = None,
    ) -> str | None: ...


class HttpJsonAdapter(ProviderAdapter):
    """Adapter for providers called with a plain JSON POST."""

    response_path: tuple[str | int, ...] = ()

    @abstractmethod
    def endpoint(self, config: BackendConfig, api_key: str) -> tuple[str, dict[str, str]]: ...

    @abstractmethod
    def build_text_payload(
        self, config: BackendConfig, request: TextRequest, options: ResolvedOptions
    ) -> dict[str, Any]: ...

    @abstractmethod
    def build_vision_payload(
        self, config: BackendConfig, request: VisionRequest, options: ResolvedOptions
    ) -> dict[str, Any] | None: ...

    def build_payload(self, config: BackendConfig, request: CallRequest) -> dict[str, Any] | None:
        options = request.resolved_options()
        if isinstance(request, VisionRequest):
            return self.build_vision_payload(config, request, options)
        return self.build_text_payload(config, request, options)

    def extract_text(self, body: Any) -> str | None:
        return _dig(body, self.response_path)

    async def complete(
        self,
        config: BackendConfig,
        api_key: str,
        request: CallRequest,
        http_client: httpx.AsyncClient | None = None,
    ) -> str | None:
        payload = self.build_payload(config, request)
        if payload is None:
            return None

        url, headers = self.endpoint(config, api_key)
        if http_client is not None:
            response = await http_client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=PROVIDER_TIMEOUT) as client:
                response = await client.post(url, json=payload, headers=headers)

        if not response.is_success:
            logger.error(
                "%s API error: %d %s",
                self.name,
                response.status_code,
                response.text[:_ERROR_BODY_LIMIT],
            )
            return None

        try:
            body = response.json()
        except ValueError:
            logger.error("%s API returned a non-JSON body", self.name)
            return None

        text = self.extract_text(body)
        if text is None:
            logger.warning("%s response has no text at %s", self.name, self.response_path)
        return text


class GeminiAdapter(HttpJsonAdapter):
    name = "Gemini"
    response_path = ("candidates", 0, "content", "parts", 0, "text")

    def endpoint(self, config: BackendConfig, api_key: str) -> tuple[str, dict[str, str]]:
        # Header auth keeps the key out of the URL that httpx logs.
        url = f"{GEMINI_API_BASE}/models/{config.model_name}:generateContent"
        return url, {"Content-Type": "application/json", "x-goog-api-key": api_key}

    def _generation_config(self, config: BackendConfig, options: ResolvedOptions) -> dict[str, Any]:
        generation: dict[str, Any] = {
            "temperature": options.temperature,
            "maxOutputTokens": options.max_tokens,
        }
        if options.json_mode:
            generation["responseMimeType"] = "application/json"
        generation.update(config.extra_params)
        return generation

    def build_text_payload(
        self, config: BackendConfig, request: TextRequest, options: ResolvedOptions
    ) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": _combined_prompt(request)}]}],
            "generationConfig": self._generation_config(config, options),
        }

    def build_vision_payload(
        self, config: BackendConfig, request: VisionRequest, options: ResolvedOptions
    ) -> dict[str, Any] | None:
        parsed = parse_data_url(request.image_data_url)
        if parsed is None:
            logger.error("Invalid image data URL format for %s", config.label)
            return None
        mime_type, data = parsed
        return {
            "contents": [
                {
                    "parts": [
                        {"text": request.prompt},
                        {"inline_data": {"mime_type": mime_type, "data": data}},
                    ]
                }
            ],
            "generationConfig": self._generation_config(config, options),
        }


class ClaudeAdapter(HttpJsonAdapter):
    name = "Claude"
    response_path = ("content", 0, "text")

    def endpoint(self, config: BackendConfig, api_key: str) -> tuple[str, dict[str, str]]:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        return f"{ANTHROPIC_API_BASE}/messages", headers

    def _body(
        self, config: BackendConfig, options: ResolvedOptions, content: Any
    ) -> dict[str, Any]:
        # The Messages API has no JSON-mode switch; json_mode is dropped here.
        knobs: dict[str, Any] = {
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            **config.extra_params,
        }
        return {
            **knobs,
            "model": config.model_name,
            "messages": [{"role": "user", "content": content}],
        }

    def build_text_payload(
        self, config: BackendConfig, request: TextRequest, options: ResolvedOptions
    ) -> dict[str, Any]:
        return self._body(config, options, _combined_prompt(request))

    def build_vision_payload(
        self, config: BackendConfig, request: VisionRequest, options: ResolvedOptions
    ) -> dict[str, Any] | None:
        parsed = parse_data_url(request.image_data_url)
        if parsed is None:
            logger.error("Invalid image data URL format for %s", config.label)
            return None
        media_type, data = parsed
        content = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": data},
            },
            {"type": "text", "text": request.prompt},
        ]
        return self._body(config, options, content)


_client_cache: dict[tuple[str, str], AsyncOpenAI] = {}


def _get_or_create_client(
    api_key: str, base_url: str, http_client: httpx.AsyncClient | None = None
) -> AsyncOpenAI:
    # The fallback chain is the only retry mechanism, so the SDK must not retry.
    if http_client is not None:
        return AsyncOpenAI(
            api_key=api_key, base_url=base_url, http_client=http_client, max_retries=0
        )
    cache_key = (base_url, api_key)
    if cache_key not in _client_cache:
        _client_cache[cache_key] = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=PROVIDER_TIMEOUT,
            max_retries=0,
        )
    return _client_cache[cache_key]


class OpenAIChatAdapter(ProviderAdapter):
    """Chat Completions over the openai SDK, for OpenAI and compatible gateways."""

    def __init__(self, base_url: str, name: str = "OpenAI") -> None:
        self.base_url = base_url
        self.name = name

    def build_messages(self, request: CallRequest) -> list[dict[str, Any]]:
        if isinstance(request, VisionRequest):
            return [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": request.prompt},
                        {"type": "image_url", "image_url": {"url": request.image_data_url}},
                    ],
                }
            ]
        messages: list[dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})
        return messages

    def build_kwargs(self, config: BackendConfig, request: CallRequest) -> dict[str, Any]:
        options = request.resolved_options()
        kwargs: dict[str, Any] = {
            "model": config.model_name,
            "messages": self.build_messages(request),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.json_mode and isinstance(request, TextRequest):
            kwargs["response_format"] = {"type": "json_object"}
        if config.extra_params:
            kwargs["extra_body"] = dict(config.extra_params)
        return kwargs

    async def complete(
        self,
        config: BackendConfig,
        api_key: str,
        request: CallRequest,
        http_client: httpx.AsyncClient | None = None,
    ) -> str | None:
        client = _get_or_create_client(api_key, self.base_url, http_client)
        try:
            completion = await client.chat.completions.create(**self.build_kwargs(config, request))
        except APIStatusError as e:
            logger.error(
                "%s API error: %d %s",
                self.name,
                e.status_code,
                e.response.text[:_ERROR_BODY_LIMIT],
            )
            return None

        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError):
            logger.warning("%s response has no choices[0].message.content", self.name)
            return None
        return content or None


def default_adapters() -> dict[ModelProvider, ProviderAdapter]:
    gemini = GeminiAdapter()
    return {
        ModelProvider.GEMINI_FREE: gemini,
        ModelProvider.GEMINI_PAID: gemini,
        ModelProvider.CLAUDE: ClaudeAdapter(),
        ModelProvider.OPENAI: OpenAIChatAdapter(OPENAI_API_BASE, name="OpenAI"),
        ModelProvider.LOVABLE: OpenAIChatAdapter(LOVABLE_API_BASE, name="Lovable"),
    }


class ProviderInvoker:
    """Resolves the credential for a config and dispatches to its adapter."""

    def __init__(
        self,
        secrets: SecretStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        adapters: dict[ModelProvider, ProviderAdapter] | None = None,
    ) -> None:
        self.secrets = secrets or get_secret_store()
        self.http_client = http_client
        self.adapters = adapters or default_adapters()

    async def invoke(self, config: BackendConfig, request: CallRequest) -> str | None:
        adapter = self.adapters.get(config.provider)
        if adapter is None:
            logger.error("No adapter registered for provider %s", config.provider)
            return None

        api_key = self.secrets.lookup(config.secret_ref)
        if not api_key:
            logger.error("API key %s not found", config.secret_ref)
            return None

        return await adapter.complete(config, api_key, request, self.http_client)
