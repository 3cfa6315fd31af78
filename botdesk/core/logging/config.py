"""
Logging configuration and setup for botdesk.

Plain text formatting with Unicode-escape decoding, a file handler that is
always present, a debug file when LOG_LEVEL=DEBUG and a console handler.
"""

import logging
import os
import json
import re


LOGGER_NAME = "botdesk"


class UnicodeFormatter(logging.Formatter):
    """
    Formatter that decodes Unicode escape sequences in log messages.

    Vendor error bodies often arrive as JSON with ``\\uXXXX`` escapes
    (Portuguese prompts in particular), which are unreadable in raw form.
    """

    def __init__(self, fmt=None, datefmt=None):
        super().__init__(fmt, datefmt)
        self.unicode_pattern = re.compile(r'\\u([0-9a-fA-F]{4})')

    def _decode_unicode_escapes(self, text):
        if not text:
            return text

        try:
            if '"error":' in text and '\\u' in text:
                decoded = json.loads(text)
                if isinstance(decoded, dict):
                    return json.dumps(decoded, ensure_ascii=False)
        except (json.JSONDecodeError, ValueError):
            pass

        def replace_unicode(match):
            hex_code = match.group(1)
            try:
                return chr(int(hex_code, 16))
            except ValueError:
                return match.group(0)

        return self.unicode_pattern.sub(replace_unicode, text)

    def format(self, record):
        formatted = super().format(record)
        return self._decode_unicode_escapes(formatted)


def setup_logging():
    """
    Configure the project logger.

    Returns:
        logging.Logger: Configured logger instance
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_dir = os.environ.get("LOG_DIR", "logs")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Repeated setup must not duplicate handlers
    logger.handlers.clear()

    os.makedirs(log_dir, exist_ok=True)

    formatter = UnicodeFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z"
    )

    file_handler = logging.FileHandler(os.path.join(log_dir, "app.log"), encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)
    logger.addHandler(file_handler)

    if log_level == "DEBUG":
        debug_handler = logging.FileHandler(os.path.join(log_dir, "debug.log"), encoding="utf-8")
        debug_handler.setFormatter(formatter)
        debug_handler.setLevel(logging.DEBUG)
        logger.addHandler(debug_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.DEBUG if log_level == "DEBUG" else logging.INFO)
    logger.addHandler(console_handler)

    return logger


def get_stdlib_logger() -> logging.Logger:
    """Return the configured project logger without reconfiguring it."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        return setup_logging()
    return logger
