import httpx
from typing import Dict, Any, List, Optional

from .base import BaseProvider, ChatConfig, ChatResult, ModelInfo, KeyGetter
from ..core.exceptions import ProviderError
from ..core.logging import logger


_FALLBACK_IDS = [
    ("openai/gpt-3.5-turbo", "GPT-3.5 Turbo", 16385),
    ("openai/gpt-4", "GPT-4", 8191),
    ("openai/gpt-4o", "GPT-4o", 128000),
    ("openai/gpt-4-turbo", "GPT-4 Turbo", 128000),
    ("anthropic/claude-3-opus", "Claude 3 Opus", 200000),
    ("anthropic/claude-3-sonnet", "Claude 3 Sonnet", 200000),
    ("anthropic/claude-3-haiku", "Claude 3 Haiku", 200000),
    ("meta-llama/llama-3-70b-instruct", "Llama 3 70B Instruct", 8192),
    ("meta-llama/llama-3-8b-instruct", "Llama 3 8B Instruct", 8192),
    ("mistralai/mistral-large", "Mistral Large", 128000),
    ("mistralai/mistral-small", "Mistral Small", 32000),
    ("mistralai/mistral-7b-instruct", "Mistral 7B Instruct", 32768),
    ("mistralai/mixtral-8x7b-instruct", "Mixtral 8x7B Instruct", 32768),
]

STATIC_OPENROUTER_MODELS = [
    ModelInfo(id=model_id, name=name, context_length=context, provider="openrouter", description="")
    for model_id, name, context in _FALLBACK_IDS
]


class OpenRouterProvider(BaseProvider):
    """OpenAI-compatible chat completions through OpenRouter."""

    name = "openrouter"

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient, default_key_getter: Optional[KeyGetter] = None):
        super().__init__(config, client, default_key_getter)
        self.headers["Content-Type"] = "application/json"

    async def chat(self, messages: List[Dict[str, str]], config: ChatConfig) -> ChatResult:
        api_key = await self._resolve_api_key(config.api_key)
        model = config.model or self.default_model

        request_body = {
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens,
        }
        if not request_body["messages"]:
            raise ProviderError("No messages to send", provider_name=self.name)

        headers = {**self.headers, "Authorization": f"Bearer {api_key}"}
        response_json = await self._post_json(
            f"{self.base_url}/chat/completions", headers, request_body, config.request_id
        )

        # OpenRouter reports some upstream failures with a 200 and an error body
        if response_json.get("error"):
            error = response_json["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(f"openrouter API error: {message}", provider_name=self.name)

        choices = response_json.get("choices")
        if not choices or not isinstance(choices, list):
            raise self._malformed("missing choices")

        message = self._object(self._object(choices[0], "choices[0]").get("message"), "choices[0].message")
        content = message.get("content") or ""
        if not isinstance(content, str):
            raise self._malformed("choices[0].message.content is not a string")
        usage = self._object(response_json.get("usage"), "usage")

        return ChatResult(
            content=content,
            tokens_used=self._token_count(usage.get("total_tokens"), "usage.total_tokens"),
            model=response_json.get("model", model)
        )

    async def list_models(self, api_key: Optional[str] = None) -> List[ModelInfo]:
        # The catalog is public; a key is sent only when the caller has one
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        try:
            payload = await self._get_json(f"{self.base_url}/models", headers)
            models = [
                ModelInfo(
                    id=entry["id"],
                    name=entry.get("name") or entry["id"],
                    context_length=entry.get("context_length"),
                    provider=self.name,
                    description=entry.get("description") or ""
                )
                for entry in payload.get("data") or []
                if isinstance(entry, dict) and entry.get("id")
            ]
            if not models:
                raise ProviderError("openrouter returned an empty model list", provider_name=self.name)
            return models
        except ProviderError as e:
            logger.warning(f"Falling back to static OpenRouter model list: {e.message}")
            return list(STATIC_OPENROUTER_MODELS)
