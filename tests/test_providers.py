import json

import httpx
import openai
import pytest

from ai_fallback.llm.providers import (
    ClaudeAdapter,
    GeminiAdapter,
    OpenAIChatAdapter,
    ProviderInvoker,
    parse_data_url,
)
from ai_fallback.schemas import (
    BackendConfig,
    CallOptions,
    ModelProvider,
    TextRequest,
    VisionRequest,
)
from ai_fallback.secrets import MappingSecretStore

SECRETS = MappingSecretStore(
    {
        "GEMINI_API_KEY": "gem-key",
        "ANTHROPIC_API_KEY": "claude-key",
        "OPENAI_API_KEY": "openai-key",
        "LOVABLE_API_KEY": "lovable-key",
    }
)

_SECRET_REFS = {
    ModelProvider.GEMINI_FREE: "GEMINI_API_KEY",
    ModelProvider.GEMINI_PAID: "GEMINI_API_KEY",
    ModelProvider.CLAUDE: "ANTHROPIC_API_KEY",
    ModelProvider.OPENAI: "OPENAI_API_KEY",
    ModelProvider.LOVABLE: "LOVABLE_API_KEY",
}

IMAGE_URL = "data:image/png;base64,iVBORw0KGgo="


def _make_config(
    provider: ModelProvider,
    model_name: str = "test-model",
    extra_params: dict | None = None,
    secret_ref: str | None = None,
) -> BackendConfig:
    return BackendConfig(
        id=f"{provider.value}:{model_name}",
        provider=provider,
        model_name=model_name,
        secret_ref=secret_ref or _SECRET_REFS[provider],
        extra_params=extra_params or {},
    )


def _text_request(**options) -> TextRequest:
    return TextRequest(
        system_prompt="You are terse.",
        user_prompt="Summarize this.",
        options=CallOptions(**options),
    )


def _vision_request(image_data_url: str = IMAGE_URL) -> VisionRequest:
    return VisionRequest(prompt="Read the receipt.", image_data_url=image_data_url)


def _chat_completion(content: str | None) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "gpt-4o",
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
    }


class _Recorder:
    def __init__(self, status: int = 200, body: dict | None = None, text: str | None = None):
        self.status = status
        self.body = body
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.body or {})

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def _invoker(handler) -> ProviderInvoker:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProviderInvoker(secrets=SECRETS, http_client=client)


class TestParseDataUrl:
    def test_valid(self):
        assert parse_data_url("data:image/jpeg;base64,/9j/4AAQ") == ("image/jpeg", "/9j/4AAQ")

    def test_pdf_mime(self):
        assert parse_data_url("data:application/pdf;base64,JVBERi0=") == (
            "application/pdf",
            "JVBERi0=",
        )

    def test_plain_url_rejected(self):
        assert parse_data_url("https://example.com/receipt.png") is None

    def test_missing_base64_marker_rejected(self):
        assert parse_data_url("data:image/png,iVBORw0KGgo=") is None

    def test_empty_payload_rejected(self):
        assert parse_data_url("data:image/png;base64,") is None

    def test_line_break_in_payload_rejected(self):
        assert parse_data_url("data:image/png;base64,AAAA\nBBBB") is None

    def test_trailing_newline_rejected(self):
        assert parse_data_url("data:image/png;base64,AAAA\n") is None


class TestGemini:
    @pytest.mark.asyncio
    async def test_text_request_shape(self):
        recorder = _Recorder(body={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})
        config = _make_config(
            ModelProvider.GEMINI_PAID, "gemini-2.5-pro", extra_params={"topP": 0.8}
        )

        text = await _invoker(recorder).invoke(config, _text_request(temperature=0.3, max_tokens=50))

        assert text == "ok"
        request = recorder.requests[0]
        assert request.url.path.endswith("/models/gemini-2.5-pro:generateContent")
        assert request.headers["x-goog-api-key"] == "gem-key"
        assert "key=" not in str(request.url)
        body = recorder.last_json
        assert body["contents"][0]["parts"][0]["text"] == "You are terse.\n\nSummarize this."
        assert body["generationConfig"] == {
            "temperature": 0.3,
            "maxOutputTokens": 50,
            "topP": 0.8,
        }

    @pytest.mark.asyncio
    async def test_defaults_applied(self):
        recorder = _Recorder(body={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]})
        await _invoker(recorder).invoke(_make_config(ModelProvider.GEMINI_FREE), _text_request())
        assert recorder.last_json["generationConfig"] == {
            "temperature": 0.7,
            "maxOutputTokens": 4000,
        }

    @pytest.mark.asyncio
    async def test_json_mode_sets_response_mime_type(self):
        recorder = _Recorder(body={"candidates": [{"content": {"parts": [{"text": "{}"}]}}]})
        await _invoker(recorder).invoke(
            _make_config(ModelProvider.GEMINI_FREE), _text_request(json_mode=True)
        )
        assert recorder.last_json["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_vision_inline_data(self):
        recorder = _Recorder(body={"candidates": [{"content": {"parts": [{"text": "total 9"}]}}]})
        text = await _invoker(recorder).invoke(
            _make_config(ModelProvider.GEMINI_FREE), _vision_request()
        )
        assert text == "total 9"
        body = recorder.last_json
        assert body["contents"][0]["parts"] == [
            {"text": "Read the receipt."},
            {"inline_data": {"mime_type": "image/png", "data": "iVBORw0KGgo="}},
        ]
        assert body["generationConfig"]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_vision_invalid_data_url_skips_call(self):
        recorder = _Recorder(body={})
        text = await _invoker(recorder).invoke(
            _make_config(ModelProvider.GEMINI_FREE), _vision_request("not-a-data-url")
        )
        assert text is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_non_2xx_returns_none(self):
        recorder = _Recorder(status=429, body={"error": {"message": "quota"}})
        text = await _invoker(recorder).invoke(
            _make_config(ModelProvider.GEMINI_FREE), _text_request()
        )
        assert text is None

    @pytest.mark.asyncio
    async def test_missing_field_returns_none(self):
        recorder = _Recorder(body={"candidates": []})
        text = await _invoker(recorder).invoke(
            _make_config(ModelProvider.GEMINI_FREE), _text_request()
        )
        assert text is None

    @pytest.mark.asyncio
    async def test_non_json_body_returns_none(self):
        recorder = _Recorder(text="<html>gateway</html>")
        text = await _invoker(recorder).invoke(
            _make_config(ModelProvider.GEMINI_FREE), _text_request()
        )
        assert text is None


class TestClaude:
    @pytest.mark.asyncio
    async def test_text_request_shape(self):
        recorder = _Recorder(body={"content": [{"type": "text", "text": "hello"}]})
        config = _make_config(ModelProvider.CLAUDE, "claude-sonnet-4", extra_params={"top_k": 5})

        text = await _invoker(recorder).invoke(config, _text_request(json_mode=True))

        assert text == "hello"
        request = recorder.requests[0]
        assert request.url.path.endswith("/messages")
        assert request.headers["x-api-key"] == "claude-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = recorder.last_json
        assert body["model"] == "claude-sonnet-4"
        assert body["max_tokens"] == 4000
        assert body["top_k"] == 5
        assert body["messages"] == [
            {"role": "user", "content": "You are terse.\n\nSummarize this."}
        ]
        assert "response_format" not in body

    @pytest.mark.asyncio
    async def test_extra_params_cannot_replace_messages(self):
        recorder = _Recorder(body={"content": [{"type": "text", "text": "hello"}]})
        config = _make_config(ModelProvider.CLAUDE, extra_params={"messages": [], "model": "x"})
        await _invoker(recorder).invoke(config, _text_request())
        body = recorder.last_json
        assert body["model"] == "test-model"
        assert len(body["messages"]) == 1

    @pytest.mark.asyncio
    async def test_vision_image_block_first(self):
        recorder = _Recorder(body={"content": [{"type": "text", "text": "seen"}]})
        await _invoker(recorder).invoke(_make_config(ModelProvider.CLAUDE), _vision_request())
        content = recorder.last_json["messages"][0]["content"]
        assert content[0] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="},
        }
        assert content[1] == {"type": "text", "text": "Read the receipt."}

    @pytest.mark.asyncio
    async def test_server_error_returns_none(self):
        recorder = _Recorder(status=529, body={"type": "error"})
        text = await _invoker(recorder).invoke(_make_config(ModelProvider.CLAUDE), _text_request())
        assert text is None


class TestOpenAICompatible:
    @pytest.mark.asyncio
    async def test_text_request_shape(self):
        recorder = _Recorder(body=_chat_completion("answer"))
        config = _make_config(ModelProvider.OPENAI, "gpt-4o", extra_params={"seed": 7})

        text = await _invoker(recorder).invoke(config, _text_request(json_mode=True))

        assert text == "answer"
        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer openai-key"
        body = recorder.last_json
        assert body["messages"] == [
            {"role": "system", "content": "You are terse."},
            {"role": "user", "content": "Summarize this."},
        ]
        assert body["response_format"] == {"type": "json_object"}
        assert body["seed"] == 7
        assert body["max_tokens"] == 4000

    @pytest.mark.asyncio
    async def test_lovable_uses_gateway(self):
        recorder = _Recorder(body=_chat_completion("gw"))
        text = await _invoker(recorder).invoke(_make_config(ModelProvider.LOVABLE), _text_request())
        assert text == "gw"
        assert recorder.requests[0].url.host == "ai.gateway.lovable.dev"
        assert recorder.requests[0].headers["authorization"] == "Bearer lovable-key"

    @pytest.mark.asyncio
    async def test_vision_passes_data_url_through(self):
        recorder = _Recorder(body=_chat_completion("seen"))
        await _invoker(recorder).invoke(_make_config(ModelProvider.OPENAI), _vision_request())
        message = recorder.last_json["messages"][0]
        assert message["role"] == "user"
        assert message["content"] == [
            {"type": "text", "text": "Read the receipt."},
            {"type": "image_url", "image_url": {"url": IMAGE_URL}},
        ]
        assert "response_format" not in recorder.last_json

    @pytest.mark.asyncio
    async def test_status_error_returns_none_without_retry(self):
        recorder = _Recorder(status=500, body={"error": {"message": "boom"}})
        text = await _invoker(recorder).invoke(_make_config(ModelProvider.OPENAI), _text_request())
        assert text is None
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_content_returns_none(self):
        recorder = _Recorder(body=_chat_completion(None))
        text = await _invoker(recorder).invoke(_make_config(ModelProvider.OPENAI), _text_request())
        assert text is None

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(openai.APIConnectionError):
            await _invoker(refuse).invoke(_make_config(ModelProvider.OPENAI), _text_request())


class TestProviderInvoker:
    @pytest.mark.asyncio
    async def test_missing_credential_returns_none(self):
        recorder = _Recorder(body={})
        config = _make_config(ModelProvider.CLAUDE, secret_ref="UNSET_SECRET")
        assert await _invoker(recorder).invoke(config, _text_request()) is None
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_transport_error_propagates_for_http_adapters(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(httpx.ConnectError):
            await _invoker(refuse).invoke(_make_config(ModelProvider.CLAUDE), _text_request())

    @pytest.mark.asyncio
    async def test_timeout_propagates(self):
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(httpx.TimeoutException):
            await _invoker(slow).invoke(_make_config(ModelProvider.GEMINI_FREE), _text_request())

    def test_every_provider_has_an_adapter(self):
        invoker = ProviderInvoker(secrets=SECRETS)
        for provider in ModelProvider:
            assert provider in invoker.adapters
        assert isinstance(invoker.adapters[ModelProvider.GEMINI_PAID], GeminiAdapter)
        assert isinstance(invoker.adapters[ModelProvider.CLAUDE], ClaudeAdapter)
        assert isinstance(invoker.adapters[ModelProvider.LOVABLE], OpenAIChatAdapter)
