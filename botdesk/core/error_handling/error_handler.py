"""
Main Error Handler

Turns domain errors into standardized HTTPExceptions (or JSON responses for
middleware, which cannot raise) with proper logging.
"""

from typing import Optional, Dict, Iterable
from fastapi import HTTPException
from fastapi.responses import JSONResponse

from .error_types import ErrorType, ErrorContext
from .error_logger import ErrorLogger
from ..exceptions import ValidationError, NotFoundError, ProviderError, RateLimitError
from ..sanitizer import CredentialSanitizer


class ErrorHandler:
    """Centralized error handling utility."""

    @staticmethod
    def create_http_exception(
        error_type: ErrorType,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
        details: Optional[str] = None,
        log_error: bool = True,
        headers: Optional[Dict[str, str]] = None,
        **format_kwargs
    ) -> HTTPException:
        """
        Create a standardized HTTPException with proper logging.

        Args:
            error_type: The type of error to create
            context: Error context information
            original_exception: Original exception that caused this error
            details: Longer, already-scrubbed explanation for the client
            log_error: Whether to log the error
            headers: Extra response headers
            **format_kwargs: Additional kwargs for message formatting

        Returns:
            HTTPException whose detail is the flat error envelope
        """
        if context is None:
            context = ErrorContext()

        format_dict = {**context.__dict__, **format_kwargs}
        error_detail = error_type.create_error_detail(details=details, **format_dict)

        if log_error:
            ErrorLogger.log_error(
                error_type=error_type,
                context=context,
                original_exception=original_exception,
                additional_data={"error_detail": error_detail}
            )

        return HTTPException(
            status_code=error_type.status_code,
            detail=error_detail,
            headers=headers
        )

    @staticmethod
    def handle_validation_error(error: ValidationError, context: ErrorContext) -> HTTPException:
        """Validation failures keep their own message as the short error."""
        return HTTPException(
            status_code=ErrorType.INVALID_REQUEST_FORMAT.status_code,
            detail={"error": error.message}
        )

    @staticmethod
    def handle_not_found(error: NotFoundError, context: ErrorContext) -> HTTPException:
        """Handle unknown bot or knowledge base entry."""
        error_type = ErrorType.ENTRY_NOT_FOUND if error.resource == "knowledge_base" else ErrorType.BOT_NOT_FOUND
        return ErrorHandler.create_http_exception(
            error_type=error_type,
            context=context,
            log_error=False
        )

    @staticmethod
    def handle_provider_failure(
        error: ProviderError,
        context: ErrorContext,
        secrets: Iterable[Optional[str]] = ()
    ) -> HTTPException:
        """Handle a failed chat turn; raw vendor text goes to details, scrubbed."""
        if error.provider_name:
            context.provider_name = error.provider_name

        return ErrorHandler.create_http_exception(
            error_type=ErrorType.CHAT_FAILED,
            context=context,
            details=CredentialSanitizer.scrub(error.message, secrets),
            log_error=False  # Already logged when the ProviderError was created
        )

    @staticmethod
    def handle_internal_server_error(
        error_details: str,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        """Handle internal server errors."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.INTERNAL_SERVER_ERROR,
            context=context,
            original_exception=original_exception,
            details=CredentialSanitizer.scrub(error_details)
        )

    @staticmethod
    def handle_service_unavailable(
        error_details: str,
        context: ErrorContext,
        original_exception: Optional[Exception] = None
    ) -> HTTPException:
        """Handle service unavailable errors."""
        return ErrorHandler.create_http_exception(
            error_type=ErrorType.SERVICE_UNAVAILABLE,
            context=context,
            original_exception=original_exception,
            details=CredentialSanitizer.scrub(error_details)
        )

    @staticmethod
    def rate_limit_response(error: RateLimitError, context: ErrorContext) -> JSONResponse:
        """Build the 429 response directly; rate limiting runs in middleware."""
        ErrorLogger.log_rate_limit(error, context)
        return JSONResponse(
            status_code=ErrorType.RATE_LIMITED.status_code,
            content={
                "error": ErrorType.RATE_LIMITED.format_message(),
                "message": error.message,
                "retryAfter": error.retry_after_seconds
            },
            headers={"Retry-After": str(error.retry_after_seconds)}
        )
