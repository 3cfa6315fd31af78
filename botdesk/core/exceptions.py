from typing import Optional

from .logging import logger
from .sanitizer import CredentialSanitizer


class BotdeskError(Exception):
    """Base class for domain errors raised along the chat dispatch path."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BotdeskError):
    """Malformed or missing input. Raised before any side effect."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name

        logger.warning(f"Validation error: {message}", extra_fields={
            "type": "ValidationError",
            "field_name": field_name
        })


class NotFoundError(BotdeskError):
    """Unknown bot (or other resource) id."""

    def __init__(self, message: str, resource: str = "chatbot", resource_id: Optional[int] = None):
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id

        logger.warning(f"Not found: {message}", extra_fields={
            "type": "NotFoundError",
            "resource": resource,
            "resource_id": resource_id
        })


class ProviderError(BotdeskError):
    """Vendor call failed: auth, network, timeout or malformed response."""

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.provider_name = provider_name
        self.status_code = status_code
        self.original_exception = original_exception

        logger.error(f"Provider error: {CredentialSanitizer.scrub(message)}", extra_fields={
            "type": "ProviderError",
            "provider_name": provider_name,
            "status_code": status_code,
            "has_original_exception": original_exception is not None,
            "original_exception_type": type(original_exception).__name__ if original_exception else None
        })


class PersistenceError(BotdeskError):
    """Interaction log write failed. The dispatcher logs it with its traceback."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.original_exception = original_exception


class RateLimitError(BotdeskError):
    """Quota for a route class exceeded."""

    def __init__(self, message: str, route_class: str, retry_after_seconds: int):
        super().__init__(message)
        self.route_class = route_class
        self.retry_after_seconds = retry_after_seconds
