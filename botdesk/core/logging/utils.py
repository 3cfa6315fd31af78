"""
Debug logging helpers for vendor traffic.

Provider requests and responses are only dumped when DEBUG is enabled, and
credential-bearing headers and query parameters are masked before logging.
"""

import logging
from typing import Dict, Any, List, Optional, Union, Callable


SENSITIVE_HEADERS = {"authorization", "x-api-key", "x-goog-api-key", "api-key"}


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with credential values replaced."""
    masked = {}
    for key, value in (headers or {}).items():
        if key.lower() in SENSITIVE_HEADERS and value:
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def header_secrets(headers) -> List[str]:
    """Credential values carried by a request's headers, bearer prefix stripped."""
    secrets = []
    for key, value in (headers or {}).items():
        if key.lower() in SENSITIVE_HEADERS and value:
            secrets.append(value.split(" ", 1)[-1])
    return secrets


def _debug_enabled(logger) -> bool:
    # Accept both the raw logging.Logger and the Logger facade
    if hasattr(logger, 'isEnabledFor'):
        return logger.isEnabledFor(logging.DEBUG)
    if hasattr(logger, 'logger'):
        return logger.logger.isEnabledFor(logging.DEBUG)
    return False


class DebugLogger:
    """Debug logging with lazy evaluation of payloads."""

    @staticmethod
    def log_data_flow(
        logger,
        title: str,
        data: Union[Dict[str, Any], Callable[[], Dict[str, Any]]],
        data_flow: str,
        component: str,
        request_id: str,
        additional_data: Optional[Dict[str, Any]] = None
    ):
        """
        Log data flow for debugging.

        Args:
            logger: Logger instance to use
            title: Log title
            data: Data to log or callable that returns data
            data_flow: Data flow direction (to_provider/from_provider)
            component: Component name
            request_id: Request identifier
            additional_data: Additional data to include in log
        """
        if not _debug_enabled(logger):
            return

        debug_data = data() if callable(data) else data

        log_extra = {
            "debug_json_data": debug_data,
            "debug_data_flow": data_flow,
            "debug_component": component,
            "request_id": request_id
        }
        if additional_data:
            log_extra.update(additional_data)

        target = logger.logger if hasattr(logger, 'logger') else logger
        target.debug(f"{title}\n{debug_data}", extra=log_extra)

    @staticmethod
    def log_provider_request(
        logger,
        provider_name: str,
        url: str,
        headers: Dict[str, str],
        request_body: Dict[str, Any],
        request_id: str,
        additional_data: Optional[Dict[str, Any]] = None
    ):
        """Log provider request for debugging."""
        if not _debug_enabled(logger):
            return

        DebugLogger.log_data_flow(
            logger=logger,
            title=f"DEBUG: {provider_name.title()} Request",
            data={
                "url": url,
                "headers": mask_headers(headers),
                "request_body": request_body
            },
            data_flow="to_provider",
            component=f"{provider_name}_provider",
            request_id=request_id,
            additional_data=additional_data
        )

    @staticmethod
    def log_provider_response(
        logger,
        provider_name: str,
        response_data: Union[Dict[str, Any], Callable[[], Dict[str, Any]]],
        request_id: str,
        additional_data: Optional[Dict[str, Any]] = None
    ):
        """Log provider response for debugging."""
        if not _debug_enabled(logger):
            return

        DebugLogger.log_data_flow(
            logger=logger,
            title=f"DEBUG: {provider_name.title()} Response",
            data=response_data,
            data_flow="from_provider",
            component=f"{provider_name}_provider",
            request_id=request_id,
            additional_data=additional_data
        )
