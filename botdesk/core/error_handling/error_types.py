"""
Error Types and Context Definitions

Standardized error types and context information for consistent error
responses across botdesk. Every client-visible error body is a flat
envelope: ``{"error": <short message>, "details": <optional longer text>}``.
"""

from enum import Enum
from typing import Dict, Any, Optional
from fastapi import status


class ErrorType(Enum):
    """Enumeration of standard error types in the system."""

    # Validation Errors (400)
    INVALID_REQUEST_FORMAT = ("invalid_request_format", status.HTTP_400_BAD_REQUEST, "Invalid request format")
    MISSING_REQUIRED_FIELD = ("missing_required_field", status.HTTP_400_BAD_REQUEST, "Missing required field: {field_name}")
    MESSAGE_TOO_LONG = ("message_too_long", status.HTTP_400_BAD_REQUEST, "Message exceeds {max_length} characters")
    INVALID_BOT_ID = ("invalid_bot_id", status.HTTP_400_BAD_REQUEST, "Invalid chatbot id")

    # Not Found Errors (404)
    BOT_NOT_FOUND = ("bot_not_found", status.HTTP_404_NOT_FOUND, "Chatbot not found")
    ENTRY_NOT_FOUND = ("entry_not_found", status.HTTP_404_NOT_FOUND, "Knowledge base entry not found")

    # Rate limiting (429)
    RATE_LIMITED = ("rate_limited", status.HTTP_429_TOO_MANY_REQUESTS, "Too Many Requests")

    # Server Errors (500)
    CHAT_FAILED = ("chat_failed", status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process chat message")
    INTERNAL_SERVER_ERROR = ("internal_server_error", status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    # Service Unavailable (503)
    SERVICE_UNAVAILABLE = ("service_unavailable", status.HTTP_503_SERVICE_UNAVAILABLE, "Could not connect to service")

    def __init__(self, code: str, status_code: int, message_template: str):
        self.code = code
        self.status_code = status_code
        self.message_template = message_template

    def format_message(self, **kwargs) -> str:
        """Format the error message with provided parameters."""
        try:
            return self.message_template.format(**kwargs)
        except KeyError:
            return self.message_template

    def create_error_detail(self, details: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        """Create the client-visible error envelope."""
        detail = {"error": self.format_message(**kwargs)}
        if details:
            detail["details"] = details
        return detail


class ErrorContext:
    """Context information for error handling."""

    def __init__(
        self,
        request_id: Optional[str] = None,
        bot_id: Optional[int] = None,
        model_id: Optional[str] = None,
        provider_name: Optional[str] = None,
        client_host: Optional[str] = None,
        **additional_context
    ):
        self.request_id = request_id
        self.bot_id = bot_id
        self.model_id = model_id
        self.provider_name = provider_name
        self.client_host = client_host
        self.additional_context = additional_context

    def to_log_extra(self) -> Dict[str, Any]:
        """Convert context to logging extra dictionary."""
        extra = {
            "log_type": "error"
        }

        if self.request_id:
            extra["request_id"] = self.request_id
        if self.bot_id is not None:
            extra["bot_id"] = self.bot_id
        if self.model_id:
            extra["model_id"] = self.model_id
        if self.provider_name:
            extra["provider_name"] = self.provider_name
        if self.client_host:
            extra["client_host"] = self.client_host

        extra.update(self.additional_context)
        return extra
