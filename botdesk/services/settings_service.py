from typing import Any, Dict, Optional

from ..core.config_manager import ConfigManager
from ..core.exceptions import ValidationError
from ..core.logging import logger
from ..core.rate_limiter import RateLimiter, ROUTE_CLASSES
from ..db.storage import Storage

ANTHROPIC_KEY_SETTING = "anthropic_api_key"
RATE_LIMIT_PREFIX = "rate_limit."


class SettingsService:
    """System settings persisted in the ``system_settings`` table.

    Holds the stored rate limits (applied to the running limiter on change)
    and the default Anthropic key.
    """

    def __init__(self, storage: Storage, config_manager: ConfigManager, rate_limiter: RateLimiter):
        self.storage = storage
        self.config_manager = config_manager
        self.rate_limiter = rate_limiter

    async def get_anthropic_api_key(self) -> Optional[str]:
        return await self.storage.get_setting(ANTHROPIC_KEY_SETTING)

    async def stored_rate_limits(self) -> Dict[str, Dict[str, int]]:
        """Configured defaults overlaid with whatever is stored per class."""
        rules = self.config_manager.rate_limit_defaults
        stored = await self.storage.get_settings(RATE_LIMIT_PREFIX)

        for key, value in stored.items():
            parts = key.split(".")
            if len(parts) != 3 or parts[1] not in ROUTE_CLASSES or parts[2] not in ("window_ms", "max"):
                logger.warning(f"Ignoring malformed rate limit setting '{key}'")
                continue
            try:
                rules.setdefault(parts[1], {})[parts[2]] = int(value)
            except ValueError:
                logger.warning(f"Ignoring non-numeric rate limit setting '{key}'", extra_fields={"value": value})
        return rules

    async def load_rate_limits(self):
        """Apply stored limits to the running limiter; called on startup."""
        self.rate_limiter.configure(await self.stored_rate_limits())

    async def get_admin_settings(self) -> Dict[str, Any]:
        return {
            "rate_limits": self.rate_limiter.rules(),
            "has_anthropic_api_key": bool(await self.get_anthropic_api_key())
        }

    async def update_admin_settings(
        self,
        rate_limits: Optional[Dict[str, Dict[str, int]]] = None,
        anthropic_api_key: Optional[str] = None
    ) -> Dict[str, Any]:
        values: Dict[str, str] = {}
        changed_rules: Dict[str, Dict[str, int]] = {}

        for route_class, rule in (rate_limits or {}).items():
            if route_class not in ROUTE_CLASSES:
                raise ValidationError(f"Unknown rate limit class: {route_class}", field_name="rate_limits")
            current = self.rate_limiter.rules().get(route_class, {})
            merged = {**current, **{k: v for k, v in rule.items() if k in ("window_ms", "max") and v is not None}}
            if not all(
                isinstance(merged.get(name), int) and not isinstance(merged.get(name), bool) and merged[name] > 0
                for name in ("window_ms", "max")
            ):
                raise ValidationError(
                    f"Rate limit for {route_class} needs a positive window_ms and max",
                    field_name="rate_limits"
                )
            changed_rules[route_class] = merged
            values[f"{RATE_LIMIT_PREFIX}{route_class}.window_ms"] = str(merged["window_ms"])
            values[f"{RATE_LIMIT_PREFIX}{route_class}.max"] = str(merged["max"])

        if anthropic_api_key is not None:
            if anthropic_api_key.strip():
                values[ANTHROPIC_KEY_SETTING] = anthropic_api_key.strip()
            else:
                await self.storage.delete_setting(ANTHROPIC_KEY_SETTING)

        if values:
            await self.storage.set_settings(values)
        if changed_rules:
            self.rate_limiter.configure(changed_rules)

        logger.info("Admin settings updated", extra_fields={
            "rate_limit_classes": sorted(changed_rules),
            "anthropic_api_key_changed": anthropic_api_key is not None
        })
        return await self.get_admin_settings()
