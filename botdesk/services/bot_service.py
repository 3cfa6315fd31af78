import copy
from typing import Any, Dict, List

from ..core.exceptions import ValidationError, NotFoundError
from ..core.logging import logger
from ..db.storage import Storage
from ..providers.selector import ProviderType, classify, parse_provider
from ..utils.deep_merge import deep_merge

DEFAULT_SETTINGS: Dict[str, Any] = {
    "initial_message": "Olá! Como posso ajudar?",
    "system_prompt": "",
    "model": "gemini-2.0-flash",
    "temperature": 0.7,
    "max_tokens": 1024,
    "api_keys": {},
    "theme": {
        "primary_color": "#0f172a",
        "font_family": "Inter",
        "border_radius": 8,
    },
}

DEFAULT_WORDPRESS_CONFIG: Dict[str, Any] = {
    "position": "bottom-right",
    "custom_css": "",
}


def _check_settings(settings: Dict[str, Any]):
    temperature = settings.get("temperature")
    if temperature is not None:
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0 <= temperature <= 1:
            raise ValidationError("temperature must be a number between 0 and 1", field_name="settings.temperature")

    max_tokens = settings.get("max_tokens")
    if max_tokens is not None:
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
            raise ValidationError("max_tokens must be a positive integer", field_name="settings.max_tokens")

    model = settings.get("model")
    if model is not None and not isinstance(model, str):
        raise ValidationError("model must be a string", field_name="settings.model")

    provider = settings.get("provider")
    if provider not in (None, "") and parse_provider(provider) is None:
        raise ValidationError(f"Unknown provider: {provider}", field_name="settings.provider")

    if not isinstance(settings.get("api_keys") or {}, dict):
        raise ValidationError("api_keys must be an object", field_name="settings.api_keys")


def _merge_api_keys(stored: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, str]:
    """Keys are write-only: strings set, empty or null clears, booleans keep."""
    keys = {name: key for name, key in (stored or {}).items() if isinstance(key, str) and key}
    for name, value in (incoming or {}).items():
        if parse_provider(name) in (None, ProviderType.UNKNOWN):
            raise ValidationError(f"Unknown provider for api key: {name}", field_name="settings.api_keys")
        if isinstance(value, bool):
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            keys.pop(name, None)
        elif isinstance(value, str):
            keys[name] = value.strip()
        else:
            raise ValidationError("api key values must be strings", field_name="settings.api_keys")
    return keys


def _store_provider(settings: Dict[str, Any], explicit_provider: bool):
    """Resolve the provider from the model once, at configuration time."""
    provider = parse_provider(settings.get("provider")) if explicit_provider else None
    if provider is None or provider is ProviderType.UNKNOWN:
        provider = classify(settings.get("model"))
    settings["provider"] = provider.value


class BotService:
    """Chatbot configuration CRUD."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def create(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required", field_name="name")

        incoming = payload.get("settings") or {}
        if not isinstance(incoming, dict):
            raise ValidationError("settings must be an object", field_name="settings")
        _check_settings(incoming)

        settings = deep_merge(copy.deepcopy(DEFAULT_SETTINGS), {k: v for k, v in incoming.items() if k != "api_keys"})
        settings["api_keys"] = _merge_api_keys({}, incoming.get("api_keys") or {})
        _store_provider(settings, explicit_provider="provider" in incoming)

        wordpress_config = deep_merge(copy.deepcopy(DEFAULT_WORDPRESS_CONFIG), payload.get("wordpress_config") or {})

        bot = await self.storage.create_chatbot({
            "name": name.strip(),
            "description": payload.get("description") or "",
            "settings": settings,
            "wordpress_config": wordpress_config,
            "api_key": payload.get("api_key") or None,
        })
        logger.info(f"Chatbot created: {bot.id}", extra_fields={
            "bot_id": bot.id,
            "model_id": settings.get("model"),
            "provider_name": settings["provider"]
        })
        return bot.to_dict()

    async def list(self) -> List[Dict[str, Any]]:
        return [bot.to_dict() for bot in await self.storage.list_chatbots()]

    async def get(self, bot_id: int) -> Dict[str, Any]:
        bot = await self.storage.get_chatbot(bot_id)
        if bot is None:
            raise NotFoundError(f"Chatbot {bot_id} not found", resource_id=bot_id)
        return bot.to_dict()

    async def update(self, bot_id: int, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        bot = await self.storage.get_chatbot(bot_id)
        if bot is None:
            raise NotFoundError(f"Chatbot {bot_id} not found", resource_id=bot_id)

        changes: Dict[str, Any] = {}
        if "name" in payload:
            name = payload["name"]
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("name must be a non-empty string", field_name="name")
            changes["name"] = name.strip()
        if "description" in payload:
            changes["description"] = payload["description"] or ""
        if "api_key" in payload:
            changes["api_key"] = payload["api_key"] or None
        if "wordpress_config" in payload:
            changes["wordpress_config"] = deep_merge(bot.wordpress_config or {}, payload["wordpress_config"] or {})

        if "settings" in payload:
            incoming = payload["settings"] or {}
            if not isinstance(incoming, dict):
                raise ValidationError("settings must be an object", field_name="settings")
            _check_settings(incoming)

            stored = bot.settings or {}
            settings = deep_merge(stored, {k: v for k, v in incoming.items() if k != "api_keys"})
            settings["api_keys"] = _merge_api_keys(stored.get("api_keys") or {}, incoming.get("api_keys") or {})
            if "provider" in incoming or "model" in incoming or not stored.get("provider"):
                _store_provider(settings, explicit_provider="provider" in incoming)
            changes["settings"] = settings

        updated = await self.storage.update_chatbot(bot_id, changes)
        if updated is None:
            raise NotFoundError(f"Chatbot {bot_id} not found", resource_id=bot_id)

        logger.info(f"Chatbot updated: {bot_id}", extra_fields={"bot_id": bot_id, "fields": sorted(changes)})
        return updated.to_dict()

    async def delete(self, bot_id: int):
        if not await self.storage.delete_chatbot(bot_id):
            raise NotFoundError(f"Chatbot {bot_id} not found", resource_id=bot_id)
        logger.info(f"Chatbot deleted: {bot_id}", extra_fields={"bot_id": bot_id})
