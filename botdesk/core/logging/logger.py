"""
Universal Logger facade for debugging and diagnostics.

Thin wrapper over the stdlib logger configured in ``config.setup_logging``.
Keyword arguments are passed through as ``extra`` fields.
"""

import logging
import json
from typing import Any
from .config import setup_logging


class Logger:
    """
    Simple Logger for request-scoped diagnostics.

    Verbose payload dumps only happen when LOG_LEVEL=DEBUG is enabled.
    """

    def __init__(self):
        self._logger = setup_logging()

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def is_debug_enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self._logger.isEnabledFor(logging.DEBUG)

    def info(self, message: str, **kwargs):
        if kwargs:
            self._logger.info(message, extra=kwargs)
        else:
            self._logger.info(message)

    def debug(self, message: str, **kwargs):
        if kwargs:
            self._logger.debug(message, extra=kwargs)
        else:
            self._logger.debug(message)

    def warning(self, message: str, **kwargs):
        if kwargs:
            self._logger.warning(message, extra=kwargs)
        else:
            self._logger.warning(message)

    def error(self, message: str, exc_info: bool = False, **kwargs):
        if kwargs:
            self._logger.error(message, extra=kwargs, exc_info=exc_info)
        else:
            self._logger.error(message, exc_info=exc_info)

    def request(self, operation: str, request_id: str, **kwargs):
        """Log a request with context."""
        message_parts = [f"Request: {operation}"]
        if 'bot_id' in kwargs:
            message_parts.append(f"bot={kwargs['bot_id']}")
        if 'model_id' in kwargs:
            message_parts.append(f"model={kwargs['model_id']}")
        if 'provider_name' in kwargs:
            message_parts.append(f"provider={kwargs['provider_name']}")

        message = " | ".join(message_parts)
        self.info(message, request_id=request_id, **kwargs)

    def response(self, operation: str, request_id: str, status_code: int = 200, **kwargs):
        """Log a response with context."""
        message_parts = [f"Response: {operation}", f"status={status_code}"]
        if 'processing_time_ms' in kwargs:
            message_parts.append(f"time={kwargs['processing_time_ms']}ms")

        message = " | ".join(message_parts)
        self.info(message, request_id=request_id, http_status_code=status_code, **kwargs)

    def debug_data(self, title: str, data: Any, request_id: str, **kwargs):
        """Log debug data with full details when LOG_LEVEL=DEBUG."""
        if not self.is_debug_enabled():
            return

        if isinstance(data, (dict, list)):
            data_str = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        else:
            data_str = str(data)

        message = f"DEBUG: {title}"
        if 'component' in kwargs:
            message += f" | component={kwargs['component']}"
        if 'data_flow' in kwargs:
            message += f" | flow={kwargs['data_flow']}"

        self.debug(f"{message}\n{data_str}", request_id=request_id, **kwargs)
