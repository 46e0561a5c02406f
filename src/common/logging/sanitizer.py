"""
Log Sanitization

Redacts credentials from log records. Completion and vector-store errors
often echo request headers or key prefixes, so every record passes through
the filter before it is emitted.
"""

from __future__ import annotations

import logging
import re
from re import Pattern
from typing import Any

# Patterns for sensitive data that should be redacted
SENSITIVE_PATTERNS: list[tuple[str, Pattern[str]]] = [
    (
        "API_KEY",
        re.compile(r"(api[_-]?key|apikey)\s*[=:]\s*['\"]?[\w\-]{20,}['\"]?", re.IGNORECASE),
    ),
    (
        "SECRET",
        re.compile(r"(secret|password|passwd|pwd)\s*[=:]\s*['\"]?[^\s'\"]{8,}['\"]?", re.IGNORECASE),
    ),
    # OpenAI: sk-..., sk-proj-...
    ("OPENAI_KEY", re.compile(r"sk-[a-zA-Z0-9\-_]{20,}")),
    # Pinecone: pcsk_...
    ("PINECONE_KEY", re.compile(r"pcsk_[a-zA-Z0-9_]{20,}")),
    ("BEARER", re.compile(r"Bearer\s+[a-zA-Z0-9\-_\.]+", re.IGNORECASE)),
    ("API_KEY_HEADER", re.compile(r"Api-Key['\"]?\s*[=:]\s*['\"]?[\w\-]{16,}['\"]?", re.IGNORECASE)),
]

REDACTION_PLACEHOLDER = "[REDACTED]"


class SanitizingFilter(logging.Filter):
    """
    Logging filter that redacts API keys and tokens from messages and args.

    Usage:
        logger = logging.getLogger(__name__)
        logger.addFilter(SanitizingFilter())
    """

    def __init__(
        self,
        name: str = "",
        additional_patterns: list[tuple[str, Pattern[str]]] | None = None,
        redaction_placeholder: str = REDACTION_PLACEHOLDER,
    ):
        super().__init__(name)
        self._patterns = list(SENSITIVE_PATTERNS)
        if additional_patterns:
            self._patterns.extend(additional_patterns)
        self._placeholder = redaction_placeholder

    def filter(self, record: logging.LogRecord) -> bool:
        """Sanitize the record in place. Records are never dropped."""
        if record.msg:
            record.msg = self.sanitize(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._sanitize_value(arg) for arg in record.args)

        return True

    def sanitize(self, text: str) -> str:
        """Return text with every sensitive pattern replaced."""
        result = text
        for pattern_name, pattern in self._patterns:
            result = pattern.sub(f"{pattern_name}={self._placeholder}", result)
        return result

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.sanitize(value)
        if isinstance(value, Exception):
            return self.sanitize(str(value))
        return value


def configure_sanitized_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    additional_patterns: list[tuple[str, Pattern[str]]] | None = None,
) -> None:
    """
    Configure the root logger with sanitization enabled.

    Args:
        level: Logging level (name or number)
        format_string: Log format string (uses default if not specified)
        additional_patterns: Extra patterns to redact
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(level=level, format=format_string)

    root_logger = logging.getLogger()
    sanitizing_filter = SanitizingFilter(additional_patterns=additional_patterns)
    root_logger.addFilter(sanitizing_filter)

    # Records from child loggers skip root filters, handler filters catch them
    for handler in root_logger.handlers:
        handler.addFilter(sanitizing_filter)


def get_sanitized_logger(name: str) -> logging.Logger:
    """Get a logger with the sanitizing filter attached once."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, SanitizingFilter) for f in logger.filters):
        logger.addFilter(SanitizingFilter())
    return logger
