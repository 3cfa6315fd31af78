"""
Provider selection for bot model ids.

The provider is derived from the model id once, when a bot is created or
its model is changed, and stored in the bot settings. ``resolve_provider``
only falls back to classifying the model string for bots saved without a
stored provider.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ProviderType(str, Enum):
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OPENROUTER = "openrouter"
    UNKNOWN = "unknown"


def classify(model_id: Optional[str]) -> ProviderType:
    """Classify a model id by substring rules, first match wins.

    ``/`` -> openrouter, ``gemini`` -> google, ``claude`` -> anthropic.
    """
    if not model_id:
        return ProviderType.UNKNOWN
    if "/" in model_id:
        return ProviderType.OPENROUTER
    if "gemini" in model_id:
        return ProviderType.GOOGLE
    if "claude" in model_id:
        return ProviderType.ANTHROPIC
    return ProviderType.UNKNOWN


def parse_provider(value: Any) -> Optional[ProviderType]:
    """Parse a stored provider value; returns None for empty or invalid values."""
    if isinstance(value, ProviderType):
        return value
    if not value:
        return None
    try:
        return ProviderType(str(value).lower())
    except ValueError:
        return None


def resolve_provider(settings: Dict[str, Any], fallback: Optional[str]) -> Optional[ProviderType]:
    """Resolve the adapter to use for a bot.

    Args:
        settings: Bot settings dict
        fallback: Configured provider for unknown models, or None

    Returns:
        The provider to dispatch to, or None when the model is unknown and no
        fallback is configured.
    """
    provider = parse_provider(settings.get("provider"))
    if provider is None or provider is ProviderType.UNKNOWN:
        provider = classify(settings.get("model"))

    if provider is ProviderType.UNKNOWN:
        fallback_provider = parse_provider(fallback)
        if fallback_provider is None or fallback_provider is ProviderType.UNKNOWN:
            return None
        return fallback_provider

    return provider
