import yaml
import os
import copy
import asyncio
from typing import Dict, Any, Optional

from .logging import logger
from ..utils.deep_merge import deep_merge


DEFAULT_CONFIG: Dict[str, Any] = {
    "providers": {
        "anthropic": {
            "base_url": "https://api.anthropic.com/v1",
            "api_key_env": "ANTHROPIC_API_KEY",
            "default_model": "claude-3-7-sonnet-20250219",
            "timeout": 60.0,
            "headers": {"anthropic-version": "2023-06-01"},
        },
        "google": {
            "base_url": "https://generativelanguage.googleapis.com/v1beta",
            "api_key_env": "GOOGLE_AI_API_KEY",
            "default_model": "gemini-2.0-flash",
            "timeout": 60.0,
        },
        "openrouter": {
            "base_url": "https://openrouter.ai/api/v1",
            "api_key_env": "OPENROUTER_API_KEY",
            "default_model": "openai/gpt-3.5-turbo",
            "timeout": 60.0,
            "headers": {"X-Title": "botdesk"},
        },
    },
    "chat": {
        "max_message_length": 2000,
        "timeout_seconds": 60.0,
        "fallback_provider": "google",
    },
    "rate_limits": {
        "api": {"window_ms": 60000, "max": 100},
        "chat": {"window_ms": 60000, "max": 30},
        "admin": {"window_ms": 60000, "max": 20},
        "upload": {"window_ms": 60000, "max": 10},
    },
    "metrics": {
        "broadcast_interval_seconds": 5.0,
        "health_window_seconds": 3600,
    },
    "database": {
        "url": "sqlite+aiosqlite:///./botdesk.db",
    },
}


class ConfigManager:
    def __init__(self, config_dir: str = "config", overrides: Optional[Dict[str, Any]] = None):
        self.config_dir = config_dir
        self.settings_path = os.path.join(config_dir, "settings.yaml")
        self.overrides = overrides or {}
        self.config = self._load_config()
        self.last_mtimes = {}
        self._initialize_mtimes()
        self._reloader_task = None

        self.debug = os.getenv("DEBUG", "false").lower() == "true"
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        logger.info("Configuration manager initialized", extra_fields={
            "config_dir": config_dir,
            "debug_enabled": self.debug,
            "log_level": self.log_level,
            "settings_config_exists": os.path.exists(self.settings_path),
            "fallback_provider": self.fallback_provider
        })

    def _load_config(self) -> Dict[str, Any]:
        config = copy.deepcopy(DEFAULT_CONFIG)
        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
            config = deep_merge(config, loaded)
        except FileNotFoundError:
            logger.warning(f"Configuration file not found: {self.settings_path}, using defaults")
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML file: {e}", extra_fields={
                "error_type": "yaml_parse_error",
                "file_path": self.settings_path
            }, exc_info=True)

        if self.overrides:
            config = deep_merge(config, copy.deepcopy(self.overrides))

        database_url = os.getenv("DATABASE_URL")
        if database_url:
            config["database"]["url"] = database_url

        return config

    def provider_config(self, provider_name: str) -> Dict[str, Any]:
        return self.config.get("providers", {}).get(provider_name, {})

    @property
    def max_message_length(self) -> int:
        return int(self.config["chat"]["max_message_length"])

    @property
    def chat_timeout_seconds(self) -> Optional[float]:
        timeout = self.config["chat"].get("timeout_seconds")
        return float(timeout) if timeout else None

    @property
    def fallback_provider(self) -> Optional[str]:
        """Provider used for models that classify as unknown; None disables the fallback."""
        return self.config["chat"].get("fallback_provider")

    @property
    def rate_limit_defaults(self) -> Dict[str, Dict[str, int]]:
        return copy.deepcopy(self.config["rate_limits"])

    @property
    def database_url(self) -> str:
        return self.config["database"]["url"]

    @property
    def metrics_interval_seconds(self) -> float:
        return float(self.config["metrics"]["broadcast_interval_seconds"])

    @property
    def health_window_seconds(self) -> int:
        return int(self.config["metrics"]["health_window_seconds"])

    def reload_config(self):
        logger.info("Reloading configuration", extra_fields={"config_dir": self.config_dir})
        self.config = self._load_config()
        logger.info("Configuration reloaded", extra_fields={
            "providers_count": len(self.config.get('providers', {})),
            "fallback_provider": self.fallback_provider
        })

    def _initialize_mtimes(self):
        try:
            self.last_mtimes[self.settings_path] = os.path.getmtime(self.settings_path)
        except FileNotFoundError:
            pass

    async def _reload_config_task(self):
        while True:
            try:
                mtime = os.path.getmtime(self.settings_path)
                previous = self.last_mtimes.get(self.settings_path)
                if previous is None or previous < mtime:
                    self.last_mtimes[self.settings_path] = mtime
                    logger.debug("Configuration file changed, triggering reload")
                    self.reload_config()
            except FileNotFoundError:
                pass

            await asyncio.sleep(5)  # Check every 5 seconds

    def start_reloader_task(self):
        self._reloader_task = asyncio.create_task(self._reload_config_task())

    async def stop_reloader_task(self):
        if self._reloader_task is None:
            return
        self._reloader_task.cancel()
        try:
            await self._reloader_task
        except asyncio.CancelledError:
            pass
        self._reloader_task = None
