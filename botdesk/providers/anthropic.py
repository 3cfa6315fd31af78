import httpx
from typing import Dict, Any, List, Optional

from .base import BaseProvider, ChatConfig, ChatResult, KeyGetter
from ..core.exceptions import ProviderError


class AnthropicProvider(BaseProvider):
    name = "anthropic"

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient, default_key_getter: Optional[KeyGetter] = None):
        super().__init__(config, client, default_key_getter)
        self.headers["Content-Type"] = "application/json"
        self.headers.setdefault("anthropic-version", "2023-06-01")

    async def chat(self, messages: List[Dict[str, str]], config: ChatConfig) -> ChatResult:
        api_key = await self._resolve_api_key(config.api_key)
        model = config.model or self.default_model

        # Messages API: max_tokens is required, system prompts travel inside
        # the composed user message so roles map one to one
        anthropic_request = {
            "model": model,
            "max_tokens": config.max_output_tokens,
            "temperature": config.temperature,
            "messages": [
                {"role": "assistant" if m["role"] == "assistant" else "user", "content": m["content"]}
                for m in messages
            ],
        }
        if not anthropic_request["messages"]:
            raise ProviderError("No messages to send", provider_name=self.name)

        headers = {**self.headers, "x-api-key": api_key}
        response_json = await self._post_json(
            f"{self.base_url}/messages", headers, anthropic_request, config.request_id
        )

        blocks = response_json.get("content")
        if not isinstance(blocks, list):
            raise self._malformed("missing content")

        text_parts = []
        for block in blocks:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            text = block.get("text", "")
            if not isinstance(text, str):
                raise self._malformed("content text is not a string")
            text_parts.append(text)

        usage = self._object(response_json.get("usage"), "usage")
        tokens_used = None
        if usage:
            input_tokens = self._token_count(usage.get("input_tokens"), "usage.input_tokens")
            output_tokens = self._token_count(usage.get("output_tokens"), "usage.output_tokens")
            tokens_used = (input_tokens or 0) + (output_tokens or 0)

        return ChatResult(content="".join(text_parts), tokens_used=tokens_used, model=response_json.get("model", model))
