import httpx
from typing import Dict, Any, List, Optional

from .base import BaseProvider, ChatConfig, ChatResult, ModelInfo, KeyGetter
from ..core.exceptions import ProviderError
from ..core.logging import logger


STATIC_GEMINI_MODELS = [
    ModelInfo(id="gemini-2.0-flash", name="Gemini 2.0 Flash", context_length=1048576, provider="google",
              description="Fast multimodal model for everyday tasks"),
    ModelInfo(id="gemini-2.0-flash-lite", name="Gemini 2.0 Flash-Lite", context_length=1048576, provider="google",
              description="Cost-efficient, low latency variant of 2.0 Flash"),
    ModelInfo(id="gemini-1.5-pro", name="Gemini 1.5 Pro", context_length=2097152, provider="google",
              description="Mid-size model for complex reasoning"),
    ModelInfo(id="gemini-1.5-flash", name="Gemini 1.5 Flash", context_length=1048576, provider="google",
              description="Fast and versatile model"),
]


class GeminiProvider(BaseProvider):
    """Google Generative Language API adapter.

    Chat goes through ``streamGenerateContent`` with SSE framing; chunks are
    concatenated and only the full text is returned.
    """

    name = "google"

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient, default_key_getter: Optional[KeyGetter] = None):
        super().__init__(config, client, default_key_getter)
        self.headers["Content-Type"] = "application/json"

    async def chat(self, messages: List[Dict[str, str]], config: ChatConfig) -> ChatResult:
        api_key = await self._resolve_api_key(config.api_key)
        model = config.model or self.default_model

        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [{"text": m["content"]}]}
            for m in messages
        ]
        if not contents:
            raise ProviderError("No messages to send", provider_name=self.name)

        gemini_request = {
            "contents": contents,
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_output_tokens,
            },
        }

        # Key goes in a header so it never shows up in URLs or error text
        headers = {**self.headers, "x-goog-api-key": api_key}
        url = f"{self.base_url}/models/{model}:streamGenerateContent"

        text_parts = []
        tokens_used = None
        chunk_count = 0
        async for chunk in self._stream_sse(url, headers, gemini_request, config.request_id, params={"alt": "sse"}):
            chunk_count += 1
            if "error" in chunk:
                error = chunk["error"]
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise ProviderError(f"google API error: {message}", provider_name=self.name)

            candidates = chunk.get("candidates") or []
            if not isinstance(candidates, list):
                raise self._malformed("candidates is not a list")
            for candidate in candidates:
                parts = self._object(self._object(candidate, "candidate").get("content"), "candidate.content").get("parts") or []
                if not isinstance(parts, list):
                    raise self._malformed("candidate.content.parts is not a list")
                for part in parts:
                    if isinstance(part, dict) and isinstance(part.get("text"), str):
                        text_parts.append(part["text"])

            usage = self._object(chunk.get("usageMetadata"), "usageMetadata")
            if usage.get("totalTokenCount") is not None:
                tokens_used = self._token_count(usage["totalTokenCount"], "usageMetadata.totalTokenCount")

        if chunk_count == 0:
            raise self._malformed("empty stream")

        logger.debug(f"Gemini stream assembled from {chunk_count} chunks", request_id=config.request_id)
        return ChatResult(content="".join(text_parts), tokens_used=tokens_used, model=model)

    async def list_models(self, api_key: Optional[str] = None) -> List[ModelInfo]:
        try:
            key = await self._resolve_api_key(api_key)
            payload = await self._get_json(f"{self.base_url}/models", {"x-goog-api-key": key})

            models = []
            for entry in payload.get("models") or []:
                methods = entry.get("supportedGenerationMethods") or []
                model_id = (entry.get("name") or "").replace("models/", "", 1)
                if "gemini" not in model_id or "generateContent" not in methods:
                    continue
                models.append(ModelInfo(
                    id=model_id,
                    name=entry.get("displayName") or model_id,
                    context_length=entry.get("inputTokenLimit"),
                    provider=self.name,
                    description=entry.get("description") or ""
                ))

            if not models:
                raise ProviderError("google returned an empty model list", provider_name=self.name)
            return models
        except ProviderError as e:
            logger.warning(f"Falling back to static Gemini model list: {e.message}")
            return list(STATIC_GEMINI_MODELS)
