"""
Logging utilities for the peakauth package.

This module provides the package logging configuration: a colored formatter
that renders structured key/value context, and a redaction filter that keeps
passwords, tokens and cookies out of every log record.

Context is attached with the standard ``extra`` mechanism:

    logger.info("Token intercepted", extra={"context": {"token_type": "Bearer"}})
"""

import logging
import re
import sys
import threading
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Mapping, Optional

from peakauth.core.immutables import SENSITIVE_LOG_KEYS

# Default logging configuration
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(levelname)-8s | %(name)s | %(message)s"
ROOT_LOGGER_NAME = "peakauth"
REDACTED = "***"

# Global lock for logger configuration
_logger_lock = threading.Lock()
_loggers: Dict[str, logging.Logger] = {}

_BEARER_PATTERN = re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-._~+/]+=*")
_SECRET_PAIR_PATTERN = re.compile(
    r"(?i)([\"']?(?:password|access_token|refresh_token|refreshToken|accessToken)[\"']?\s*[:=]\s*[\"']?)([^\"'&,\s}]+)"
)


def redact_text(text: str) -> str:
    """Mask bearer tokens and secret key/value pairs embedded in free text."""
    text = _BEARER_PATTERN.sub(lambda m: f"{m.group(1)} {REDACTED}", text)
    return _SECRET_PAIR_PATTERN.sub(lambda m: f"{m.group(1)}{REDACTED}", text)


def redact_mapping(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``values`` with sensitive keys masked, recursing into nested mappings."""
    redacted = {}
    for key, value in values.items():
        if str(key).lower().replace("-", "_") in SENSITIVE_LOG_KEYS and value is not None:
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_mapping(value)
        elif isinstance(value, str):
            redacted[key] = redact_text(value)
        else:
            redacted[key] = value
    return redacted


class RedactionFilter(logging.Filter):
    """Masks credentials in the message and the structured context of each record."""

    def filter(self, record: LogRecord) -> bool:
        context = getattr(record, "context", None)
        if isinstance(context, Mapping):
            record.context = redact_mapping(context)
        if isinstance(record.msg, str):
            record.msg = redact_text(record.msg)
        return True


class LogFormatter(logging.Formatter):
    """Custom log formatter with color support and structured output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def __init__(self, fmt: Optional[str] = None, use_color: bool = True):
        """Initialize the formatter with optional color support."""
        super().__init__(fmt or DEFAULT_LOG_FORMAT)
        self.use_color = use_color

    def format(self, record: LogRecord) -> str:
        """Format the log record with optional color and trailing key=value context."""
        orig_levelname = record.levelname

        try:
            if self.use_color and record.levelname in self.COLORS:
                record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

            message = super().format(record)
            context = getattr(record, "context", None)
            if context:
                pairs = " ".join(f"{key}={value}" for key, value in context.items())
                message = f"{message} | {pairs}"
            return message
        finally:
            record.levelname = orig_levelname


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Loggers outside the ``peakauth`` hierarchy are nested under it so that a
    single ``configure_logging`` call governs them all.

    Args:
        name: The name of the logger

    Returns:
        A logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    with _logger_lock:
        if name in _loggers:
            return _loggers[name]

        logger = logging.getLogger(name)
        if not any(isinstance(f, RedactionFilter) for f in logger.filters):
            logger.addFilter(RedactionFilter())
        _loggers[name] = logger
        return logger


def configure_logging(log_config=None, debug: bool = False) -> logging.Logger:
    """
    Configure handlers on the package root logger.

    Args:
        log_config: A LoggingConfig, or None for the defaults
        debug: Force DEBUG level regardless of the configured level

    Returns:
        The configured package root logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)

    with _logger_lock:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        level_name = getattr(log_config, "level", DEFAULT_LOG_LEVEL)
        format_str = getattr(log_config, "format", DEFAULT_LOG_FORMAT)
        use_color = getattr(log_config, "use_color", True)
        file_path = getattr(log_config, "file_path", None)

        root.setLevel(logging.DEBUG if debug else getattr(logging, str(level_name).upper(), logging.INFO))

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(LogFormatter(format_str, use_color=use_color))
        console_handler.addFilter(RedactionFilter())
        root.addHandler(console_handler)

        if file_path:
            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=log_config.max_size,
                backupCount=log_config.backup_count
            )
            file_handler.setFormatter(LogFormatter(format_str, use_color=False))
            file_handler.addFilter(RedactionFilter())
            root.addHandler(file_handler)

    return root
