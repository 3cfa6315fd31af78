"""
Vendor adapters against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from botdesk.core.config_manager import DEFAULT_CONFIG
from botdesk.core.exceptions import ProviderError
from botdesk.providers import (
    AnthropicProvider,
    GeminiProvider,
    OpenRouterProvider,
    ChatConfig,
    ProviderType,
    STATIC_GEMINI_MODELS,
    STATIC_OPENROUTER_MODELS,
    get_provider_instance,
)

MESSAGES = [{"role": "user", "content": "Qual o horário da loja?"}]


def provider_config(name):
    return dict(DEFAULT_CONFIG["providers"][name])


class TestAnthropicProvider:
    async def test_chat_success(self, transport, http_client):
        transport.add("/messages", pytest.anthropic_reply("Abrimos às 9h.", 12, 8))
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        result = await provider.chat(MESSAGES, ChatConfig(temperature=0.2, max_output_tokens=100, api_key="bot-key"))

        assert result.content == "Abrimos às 9h."
        assert result.role == "assistant"
        assert result.tokens_used == 20
        assert result.timestamp

        request = transport.requests[0]
        assert request.headers["x-api-key"] == "bot-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["model"] == "claude-3-7-sonnet-20250219"
        assert body["max_tokens"] == 100
        assert body["messages"] == MESSAGES

    async def test_joins_multiple_text_blocks(self, transport, http_client):
        transport.add("/messages", lambda request: httpx.Response(200, json={
            "content": [
                {"type": "text", "text": "Parte 1. "},
                {"type": "tool_use", "id": "x"},
                {"type": "text", "text": "Parte 2."},
            ],
        }))
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        result = await provider.chat(MESSAGES, ChatConfig(api_key="k"))

        assert result.content == "Parte 1. Parte 2."
        assert result.tokens_used is None

    async def test_default_key_getter_is_used(self, transport, http_client):
        transport.add("/messages", pytest.anthropic_reply())

        async def stored_key():
            return "stored-anthropic-key"

        provider = AnthropicProvider(provider_config("anthropic"), http_client, stored_key)
        await provider.chat(MESSAGES, ChatConfig())

        assert transport.requests[0].headers["x-api-key"] == "stored-anthropic-key"

    async def test_env_key_is_last_resort(self, transport, http_client, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        transport.add("/messages", pytest.anthropic_reply())

        async def no_key():
            return None

        provider = AnthropicProvider(provider_config("anthropic"), http_client, no_key)
        await provider.chat(MESSAGES, ChatConfig())

        assert transport.requests[0].headers["x-api-key"] == "env-key"

    async def test_missing_key_raises_before_calling(self, transport, http_client):
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        with pytest.raises(ProviderError, match="No anthropic API key provided"):
            await provider.chat(MESSAGES, ChatConfig())
        assert transport.requests == []

    async def test_http_error_becomes_provider_error(self, transport, http_client):
        transport.add("/messages", pytest.vendor_error(429, "rate limited"))
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))

        assert exc_info.value.status_code == 429
        assert "rate limited" in exc_info.value.message
        assert isinstance(exc_info.value.original_exception, httpx.HTTPStatusError)

    async def test_network_error_becomes_provider_error(self, transport, http_client):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport.add("/messages", refuse)
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        with pytest.raises(ProviderError, match="Network error"):
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))

    async def test_malformed_body(self, transport, http_client):
        transport.add("/messages", lambda request: httpx.Response(200, json={"id": "msg"}))
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        with pytest.raises(ProviderError, match="missing content"):
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))

    @pytest.mark.parametrize("reply", [
        {"content": [{"type": "text", "text": "Oi"}], "usage": {"input_tokens": "n/a"}},
        {"content": [{"type": "text", "text": "Oi"}], "usage": [12, 8]},
        {"content": [{"type": "text", "text": ["Oi"]}]},
    ])
    async def test_unexpected_field_types(self, transport, http_client, reply):
        transport.add("/messages", lambda request: httpx.Response(200, json=reply))
        provider = AnthropicProvider(provider_config("anthropic"), http_client)

        with pytest.raises(ProviderError, match="Malformed response from anthropic"):
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))


class TestGeminiProvider:
    async def test_stream_chunks_are_concatenated(self, transport, http_client):
        transport.add(":streamGenerateContent", pytest.gemini_stream("Abrimos ", "às ", "9h.", total_tokens=42))
        provider = GeminiProvider(provider_config("google"), http_client)

        result = await provider.chat(MESSAGES, ChatConfig(temperature=0.3, max_output_tokens=64, api_key="g-key"))

        assert result.content == "Abrimos às 9h."
        assert result.tokens_used == 42
        assert result.model == "gemini-2.0-flash"

        request = transport.requests[0]
        assert request.url.path.endswith("/models/gemini-2.0-flash:streamGenerateContent")
        assert request.url.params["alt"] == "sse"
        assert request.headers["x-goog-api-key"] == "g-key"
        assert "key" not in request.url.params
        body = json.loads(request.content)
        assert body["contents"] == [{"role": "user", "parts": [{"text": MESSAGES[0]["content"]}]}]
        assert body["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 64}

    async def test_uses_bot_model(self, transport, http_client):
        transport.add(":streamGenerateContent", pytest.gemini_stream("ok"))
        provider = GeminiProvider(provider_config("google"), http_client)

        await provider.chat(MESSAGES, ChatConfig(model="gemini-1.5-pro", api_key="g-key"))

        assert "/models/gemini-1.5-pro:" in transport.requests[0].url.path

    async def test_env_default_key(self, transport, http_client, monkeypatch):
        monkeypatch.setenv("GOOGLE_AI_API_KEY", "env-google")
        transport.add(":streamGenerateContent", pytest.gemini_stream("ok"))
        provider = GeminiProvider(provider_config("google"), http_client)

        await provider.chat(MESSAGES, ChatConfig())

        assert transport.requests[0].headers["x-goog-api-key"] == "env-google"

    async def test_empty_stream_is_an_error(self, transport, http_client):
        transport.add(":streamGenerateContent", lambda request: httpx.Response(200, content=b""))
        provider = GeminiProvider(provider_config("google"), http_client)

        with pytest.raises(ProviderError, match="empty stream"):
            await provider.chat(MESSAGES, ChatConfig(api_key="g-key"))

    @pytest.mark.parametrize("chunk", [
        ["not", "an", "object"],
        {"candidates": {"content": {}}},
        {"candidates": ["Oi"]},
        {"candidates": [{"content": {"parts": [{"text": "Oi"}]}}], "usageMetadata": {"totalTokenCount": "many"}},
    ])
    async def test_unexpected_chunk_shapes(self, transport, http_client, chunk):
        transport.add(":streamGenerateContent", lambda request: httpx.Response(
            200, content=f"data: {json.dumps(chunk)}\n\n".encode(), headers={"content-type": "text/event-stream"}
        ))
        provider = GeminiProvider(provider_config("google"), http_client)

        with pytest.raises(ProviderError, match="Malformed response from google"):
            await provider.chat(MESSAGES, ChatConfig(api_key="g-key"))

    async def test_http_error_body_is_read(self, transport, http_client):
        transport.add(":streamGenerateContent", pytest.vendor_error(400, "API key not valid"))
        provider = GeminiProvider(provider_config("google"), http_client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat(MESSAGES, ChatConfig(api_key="g-key"))

        assert exc_info.value.status_code == 400
        assert "API key not valid" in exc_info.value.message

    async def test_echoed_key_is_masked(self, transport, http_client):
        transport.add(":streamGenerateContent", pytest.vendor_error(400, "key plain-google-key rejected"))
        provider = GeminiProvider(provider_config("google"), http_client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.chat(MESSAGES, ChatConfig(api_key="plain-google-key"))

        assert "plain-google-key" not in exc_info.value.message
        assert "***" in exc_info.value.message

    async def test_list_models_live(self, transport, http_client):
        transport.add("/models", lambda request: httpx.Response(200, json={"models": [
            {"name": "models/gemini-2.0-flash", "displayName": "Gemini 2.0 Flash",
             "inputTokenLimit": 1048576, "supportedGenerationMethods": ["generateContent"]},
            {"name": "models/text-embedding-004", "supportedGenerationMethods": ["embedContent"]},
            {"name": "models/gemini-embedding-exp", "supportedGenerationMethods": ["embedContent"]},
        ]}))
        provider = GeminiProvider(provider_config("google"), http_client)

        models = await provider.list_models(api_key="g-key")

        assert [m.id for m in models] == ["gemini-2.0-flash"]
        assert models[0].context_length == 1048576
        assert models[0].provider == "google"

    async def test_list_models_falls_back_on_failure(self, transport, http_client):
        transport.add("/models", pytest.vendor_error(500, "internal"))
        provider = GeminiProvider(provider_config("google"), http_client)

        models = await provider.list_models(api_key="g-key")

        assert models == STATIC_GEMINI_MODELS

    async def test_list_models_falls_back_without_key(self, transport, http_client):
        provider = GeminiProvider(provider_config("google"), http_client)

        models = await provider.list_models()

        assert models == STATIC_GEMINI_MODELS
        assert transport.requests == []


class TestOpenRouterProvider:
    async def test_chat_success(self, transport, http_client):
        transport.add("/chat/completions", pytest.openrouter_reply("Olá!", 30))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        result = await provider.chat(MESSAGES, ChatConfig(model="mistralai/mistral-small", api_key="sk-or-bot"))

        assert result.content == "Olá!"
        assert result.tokens_used == 30
        request = transport.requests[0]
        assert request.headers["authorization"] == "Bearer sk-or-bot"
        assert json.loads(request.content)["model"] == "mistralai/mistral-small"

    async def test_error_in_ok_body(self, transport, http_client):
        transport.add("/chat/completions", lambda request: httpx.Response(200, json={
            "error": {"message": "upstream overloaded", "code": 502}
        }))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        with pytest.raises(ProviderError, match="upstream overloaded"):
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))

    async def test_missing_choices(self, transport, http_client):
        transport.add("/chat/completions", lambda request: httpx.Response(200, json={"choices": []}))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        with pytest.raises(ProviderError, match="missing choices"):
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))

    @pytest.mark.parametrize("reply", [
        {"choices": [{"message": "not-an-object"}]},
        {"choices": ["Oi"]},
        {"choices": [{"message": {"content": {"text": "Oi"}}}]},
        {"choices": [{"message": {"content": "Oi"}}], "usage": ["x"]},
        {"choices": [{"message": {"content": "Oi"}}], "usage": {"total_tokens": "lots"}},
    ])
    async def test_unexpected_field_types(self, transport, http_client, reply):
        transport.add("/chat/completions", lambda request: httpx.Response(200, json=reply))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        with pytest.raises(ProviderError, match="Malformed response from openrouter"):
            await provider.chat(MESSAGES, ChatConfig(api_key="k"))

    async def test_missing_usage_leaves_tokens_unknown(self, transport, http_client):
        transport.add("/chat/completions", lambda request: httpx.Response(200, json={
            "choices": [{"message": {"content": "Oi"}}],
        }))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        result = await provider.chat(MESSAGES, ChatConfig(api_key="k"))

        assert result.content == "Oi"
        assert result.tokens_used is None

    async def test_list_models_is_public(self, transport, http_client):
        transport.add("/models", lambda request: httpx.Response(200, json={"data": [
            {"id": "openai/gpt-4o", "name": "GPT-4o", "context_length": 128000, "description": "Omni"},
        ]}))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        models = await provider.list_models()

        assert [m.to_dict() for m in models] == [{
            "id": "openai/gpt-4o",
            "name": "GPT-4o",
            "context_length": 128000,
            "provider": "openrouter",
            "description": "Omni",
        }]
        assert "authorization" not in transport.requests[0].headers

    async def test_list_models_falls_back(self, transport, http_client):
        transport.add("/models", lambda request: httpx.Response(200, content=b"<html>down</html>"))
        provider = OpenRouterProvider(provider_config("openrouter"), http_client)

        models = await provider.list_models()

        assert len(models) == 13
        assert models == STATIC_OPENROUTER_MODELS


class TestProviderFactory:
    async def test_builds_each_provider(self, http_client):
        for provider_type, cls in [
            (ProviderType.ANTHROPIC, AnthropicProvider),
            (ProviderType.GOOGLE, GeminiProvider),
            (ProviderType.OPENROUTER, OpenRouterProvider),
        ]:
            instance = get_provider_instance(provider_type, provider_config(provider_type.value), http_client)
            assert isinstance(instance, cls)

    async def test_unknown_provider(self, http_client):
        with pytest.raises(ProviderError):
            get_provider_instance(ProviderType.UNKNOWN, {}, http_client)

    async def test_missing_base_url(self, http_client):
        with pytest.raises(ProviderError, match="base_url"):
            get_provider_instance(ProviderType.GOOGLE, {"base_url": ""}, http_client)
