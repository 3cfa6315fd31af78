"""
Error Logging Utility

Centralized error logging so every error line carries the same extras.
"""

from typing import Dict, Any, Optional

from .error_types import ErrorType, ErrorContext
from ..logging import get_stdlib_logger
from ..sanitizer import CredentialSanitizer


class ErrorLogger:
    """Shared error logger on top of the project logging setup."""

    @staticmethod
    def log_error(
        error_type: ErrorType,
        context: ErrorContext,
        original_exception: Optional[Exception] = None,
        additional_data: Optional[Dict[str, Any]] = None
    ):
        logger = get_stdlib_logger()

        log_extra = context.to_log_extra()
        log_extra["error_code"] = error_type.code
        log_extra["http_status_code"] = error_type.status_code

        if additional_data:
            log_extra.update(additional_data)

        log_message = error_type.format_message(**context.__dict__)

        if original_exception:
            log_extra["original_exception"] = CredentialSanitizer.scrub(str(original_exception))
            log_extra["original_exception_type"] = type(original_exception).__name__
            logger.error(log_message, extra=log_extra, exc_info=original_exception)
        else:
            logger.error(log_message, extra=log_extra)

    @staticmethod
    def log_provider_error(
        provider_name: str,
        error_details: str,
        status_code: Optional[int],
        context: ErrorContext
    ):
        """Log provider-specific errors with the vendor body scrubbed."""
        logger = get_stdlib_logger()

        log_extra = context.to_log_extra()
        log_extra.update({
            "provider_name": provider_name,
            "provider_error_details": CredentialSanitizer.scrub(error_details),
            "provider_status_code": status_code,
            "error_code": "provider_error"
        })

        logger.error(
            f"Provider '{provider_name}' returned error {status_code}: {log_extra['provider_error_details']}",
            extra=log_extra
        )

    @staticmethod
    def log_rate_limit(error, context: ErrorContext):
        logger = get_stdlib_logger()

        log_extra = context.to_log_extra()
        log_extra.update({
            "log_type": "rate_limit",
            "route_class": error.route_class,
            "retry_after_seconds": error.retry_after_seconds
        })
        logger.warning(f"Rate limit exceeded for {error.route_class}", extra=log_extra)
