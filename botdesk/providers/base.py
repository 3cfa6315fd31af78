import httpx
import os
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, AsyncGenerator, Awaitable, Callable

from ..core.exceptions import ProviderError
from ..core.error_handling import ErrorContext, ErrorLogger
from ..core.logging import DebugLogger, header_secrets, logger
from ..core.sanitizer import CredentialSanitizer


KeyGetter = Callable[[], Awaitable[Optional[str]]]


@dataclass
class ChatConfig:
    temperature: float = 0.7
    max_output_tokens: int = 2048
    model: Optional[str] = None
    api_key: Optional[str] = None
    request_id: str = "unknown"


@dataclass
class ChatResult:
    content: str
    role: str = "assistant"
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    tokens_used: Optional[int] = None
    model: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ModelInfo:
    id: str
    name: str
    context_length: Optional[int]
    provider: str
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BaseProvider:
    """Common plumbing for vendor adapters.

    Subclasses map the shared message shape to their wire format and
    assemble one text result. Every vendor failure surfaces as ProviderError.
    """

    name = "base"

    def __init__(self, config: Dict[str, Any], client: httpx.AsyncClient, default_key_getter: Optional[KeyGetter] = None):
        self.base_url = (config.get("base_url") or "").rstrip("/")
        self.api_key_env = config.get("api_key_env")
        self.headers = dict(config.get("headers") or {})
        self.default_model = config.get("default_model")
        self.read_timeout = float(config.get("timeout", 60.0))
        self.client = client
        self.default_key_getter = default_key_getter

        if not self.base_url:
            raise ProviderError(
                f"Provider base_url is not configured for {self.name}",
                provider_name=self.name
            )

    @property
    def timeout(self) -> httpx.Timeout:
        # connect/write/pool stay short; read covers the whole generation
        return httpx.Timeout(connect=10.0, read=self.read_timeout, write=10.0, pool=10.0)

    async def _resolve_api_key(self, api_key: Optional[str]) -> str:
        """Explicit key, then the injected default (system setting), then the environment."""
        if api_key:
            return api_key
        if self.default_key_getter is not None:
            key = await self.default_key_getter()
            if key:
                return key
        if self.api_key_env:
            key = os.environ.get(self.api_key_env)
            if key:
                return key
        raise ProviderError(f"No {self.name} API key provided", provider_name=self.name)

    def _extract_error_message(self, response: httpx.Response) -> str:
        message = f"{response.status_code} - {response.text}"
        try:
            error_json = response.json()
        except (json.JSONDecodeError, ValueError):
            return message

        if isinstance(error_json, list) and error_json:
            error_json = error_json[0]
        if isinstance(error_json, dict):
            error = error_json.get("error")
            if isinstance(error, dict) and error.get("message"):
                return f"{response.status_code} - {error['message']}"
            if isinstance(error, str):
                return f"{response.status_code} - {error}"
            if error_json.get("message"):
                return f"{response.status_code} - {error_json['message']}"
        return message

    def _http_error(self, e: httpx.HTTPStatusError, request_id: str) -> ProviderError:
        # Vendors may echo the key that was sent
        message = CredentialSanitizer.scrub(
            self._extract_error_message(e.response),
            header_secrets(e.request.headers)
        )
        ErrorLogger.log_provider_error(
            provider_name=self.name,
            error_details=message,
            status_code=e.response.status_code,
            context=ErrorContext(request_id=request_id, provider_name=self.name)
        )
        return ProviderError(
            f"{self.name} API error: {message}",
            provider_name=self.name,
            status_code=e.response.status_code,
            original_exception=e
        )

    def _malformed(self, detail: str, original_exception: Optional[Exception] = None) -> ProviderError:
        return ProviderError(
            f"Malformed response from {self.name}: {detail}",
            provider_name=self.name,
            original_exception=original_exception
        )

    def _object(self, value: Any, field_name: str) -> Dict[str, Any]:
        """Missing fields read as empty; present fields must be JSON objects."""
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise self._malformed(f"{field_name} is not an object")
        return value

    def _token_count(self, value: Any, field_name: str) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, bool):
            raise self._malformed(f"{field_name} is not a number")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise self._malformed(f"{field_name} is not a number", e) from e

    def _network_error(self, e: httpx.RequestError) -> ProviderError:
        return ProviderError(
            f"Network error communicating with {self.name}: {type(e).__name__} {e}",
            provider_name=self.name,
            original_exception=e
        )

    async def _post_json(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        request_id: str,
        params: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        DebugLogger.log_provider_request(
            logger=logger,
            provider_name=self.name,
            url=url,
            headers=headers,
            request_body=body,
            request_id=request_id
        )

        try:
            response = await self.client.post(url, headers=headers, json=body, params=params, timeout=self.timeout)
            response.raise_for_status()
            response_json = response.json()
        except httpx.HTTPStatusError as e:
            raise self._http_error(e, request_id) from e
        except httpx.RequestError as e:
            raise self._network_error(e) from e
        except ValueError as e:
            raise self._malformed(str(e), e) from e

        if not isinstance(response_json, dict):
            raise self._malformed("expected an object")

        DebugLogger.log_provider_response(
            logger=logger,
            provider_name=self.name,
            response_data=response_json,
            request_id=request_id
        )
        return response_json

    async def _get_json(self, url: str, headers: Dict[str, str], params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = await self.client.get(url, headers=headers, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise self._http_error(e, "model_listing") from e
        except httpx.RequestError as e:
            raise self._network_error(e) from e
        except ValueError as e:
            raise ProviderError(
                f"Malformed model list from {self.name}: {e}",
                provider_name=self.name,
                original_exception=e
            ) from e

        if not isinstance(payload, dict):
            raise ProviderError(f"Malformed model list from {self.name}", provider_name=self.name)
        return payload

    async def _stream_sse(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
        request_id: str,
        params: Optional[Dict[str, str]] = None
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Yield parsed JSON payloads of ``data:`` lines from an SSE response."""
        DebugLogger.log_provider_request(
            logger=logger,
            provider_name=self.name,
            url=url,
            headers=headers,
            request_body=body,
            request_id=request_id
        )

        try:
            async with self.client.stream("POST", url, headers=headers, json=body,
                                          params=params, timeout=self.timeout) as response:
                if response.is_error:
                    # Error bodies must be read before they can be inspected
                    await response.aread()
                response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[5:].strip()
                    if not payload or payload == "[DONE]":
                        continue
                    try:
                        chunk = json.loads(payload)
                    except json.JSONDecodeError as e:
                        raise ProviderError(
                            f"Malformed stream chunk from {self.name}: {payload[:200]}",
                            provider_name=self.name,
                            original_exception=e
                        ) from e
                    if not isinstance(chunk, dict):
                        raise self._malformed("stream chunk is not an object")
                    yield chunk
        except httpx.HTTPStatusError as e:
            raise self._http_error(e, request_id) from e
        except httpx.RequestError as e:
            raise self._network_error(e) from e

    async def chat(self, messages: List[Dict[str, str]], config: ChatConfig) -> ChatResult:
        raise NotImplementedError

    async def list_models(self, api_key: Optional[str] = None) -> List[ModelInfo]:
        raise NotImplementedError
