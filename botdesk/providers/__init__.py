from typing import Dict, Any, Optional
import httpx

from .base import BaseProvider, ChatConfig, ChatResult, ModelInfo, KeyGetter
from .anthropic import AnthropicProvider
from .gemini import GeminiProvider, STATIC_GEMINI_MODELS
from .openrouter import OpenRouterProvider, STATIC_OPENROUTER_MODELS
from .selector import ProviderType, classify, resolve_provider
from .credentials import CredentialResolver
from ..core.exceptions import ProviderError


PROVIDER_CLASSES = {
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.GOOGLE: GeminiProvider,
    ProviderType.OPENROUTER: OpenRouterProvider,
}


def get_provider_instance(
    provider_type: ProviderType,
    provider_config: Dict[str, Any],
    client: httpx.AsyncClient,
    default_key_getter: Optional[KeyGetter] = None
) -> BaseProvider:
    provider_class = PROVIDER_CLASSES.get(provider_type)
    if provider_class is None:
        raise ProviderError(f"Provider '{provider_type}' is not supported", provider_name=str(provider_type))
    return provider_class(provider_config, client, default_key_getter)


__all__ = [
    "BaseProvider",
    "ChatConfig",
    "ChatResult",
    "ModelInfo",
    "AnthropicProvider",
    "GeminiProvider",
    "OpenRouterProvider",
    "STATIC_GEMINI_MODELS",
    "STATIC_OPENROUTER_MODELS",
    "ProviderType",
    "classify",
    "resolve_provider",
    "CredentialResolver",
    "get_provider_instance",
]
