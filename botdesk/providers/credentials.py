from typing import Any, Dict, Optional, Union

from .selector import ProviderType, parse_provider


class CredentialResolver:
    """Picks the bot-specific API key for a provider.

    Returns None when the bot carries no key for the provider, which tells
    the adapter to use its process-wide default. Never raises.
    """

    def resolve(self, bot: Any, provider: Union[ProviderType, str]) -> Optional[str]:
        provider_type = parse_provider(provider)
        if provider_type is None:
            return None

        settings: Dict[str, Any] = _settings_of(bot)

        keys = settings.get("api_keys") or {}
        if isinstance(keys, dict):
            key = keys.get(provider_type.value)
            if isinstance(key, str) and key.strip():
                return key.strip()

        # Bot-level override applies only to the bot's own provider
        override = _attr(bot, "api_key")
        if isinstance(override, str) and override.strip():
            own = parse_provider(settings.get("provider"))
            if own is None or own is provider_type:
                return override.strip()

        return None


def _attr(bot: Any, name: str):
    if isinstance(bot, dict):
        return bot.get(name)
    return getattr(bot, name, None)


def _settings_of(bot: Any) -> Dict[str, Any]:
    settings = _attr(bot, "settings")
    return settings if isinstance(settings, dict) else {}
