import httpx
from typing import Dict, Any, Optional

from ..core.config_manager import ConfigManager
from ..core.exceptions import ProviderError
from ..core.logging import logger
from ..providers import ProviderType, get_provider_instance

LISTABLE_PROVIDERS = {
    "gemini": ProviderType.GOOGLE,
    "openrouter": ProviderType.OPENROUTER,
}


class ModelService:
    """Model catalogues for the admin model pickers.

    Adapters already fall back to their static lists when live listing fails,
    so these calls always answer with a non-empty list.
    """

    def __init__(self, config_manager: ConfigManager, httpx_client: httpx.AsyncClient):
        self.config_manager = config_manager
        self.httpx_client = httpx_client

    async def list_models(self, provider_slug: str, api_key: Optional[str] = None, request_id: str = "unknown") -> Dict[str, Any]:
        provider_type = LISTABLE_PROVIDERS.get(provider_slug)
        if provider_type is None:
            raise ProviderError(f"Model listing is not available for '{provider_slug}'", provider_name=provider_slug)

        provider = get_provider_instance(
            provider_type,
            self.config_manager.provider_config(provider_type.value),
            self.httpx_client
        )
        models = await provider.list_models(api_key=api_key or None)

        logger.info(f"Listed {len(models)} {provider_slug} models", extra_fields={
            "request_id": request_id,
            "provider_name": provider_type.value,
            "bot_supplied_key": bool(api_key)
        })
        return {"data": [model.to_dict() for model in models]}
