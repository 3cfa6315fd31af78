"""
Logging infrastructure for botdesk.

Provides a single Logger facade shared by every component.
"""

from .config import setup_logging, get_stdlib_logger
from .logger import Logger
from .utils import DebugLogger, header_secrets

_logger_instance = None


def get_logger():
    """Return the shared Logger instance."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = Logger()
    return _logger_instance


logger = get_logger()

__all__ = ['logger', 'Logger', 'DebugLogger', 'header_secrets', 'setup_logging', 'get_stdlib_logger']
