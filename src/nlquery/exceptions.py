"""
NLQuery Exception Hierarchy

Structured exception types for the query interpretation engine.
All engine-specific exceptions inherit from NLQueryError.

Usage:
    from src.nlquery.exceptions import MalformedResponseError

    try:
        payload = parse_classification_payload(text)
    except MalformedResponseError as e:
        logger.warning(f"Unparseable completion: {e}")
"""

from __future__ import annotations


class NLQueryError(Exception):
    """
    Base exception for all engine errors.

    Attributes:
        message: Human-readable error description
        code: Optional machine-readable error code for programmatic handling
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(NLQueryError):
    """Base class for configuration-related errors."""

    pass


class MissingConfigError(ConfigurationError):
    """Required configuration is missing."""

    def __init__(self, field: str, hint: str | None = None) -> None:
        message = f"Missing required configuration: '{field}'"
        if hint:
            message += f". {hint}"
        super().__init__(message, code="CONFIG_MISSING")
        self.field = field


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(NLQueryError):
    """Base class for completion service errors."""

    pass


class MalformedResponseError(LLMError):
    """Completion text was empty or not the expected structured object."""

    def __init__(self, reason: str, raw_text: str = "") -> None:
        super().__init__(reason, code="PARSE_ERROR")
        self.raw_text = raw_text


class RateLimitExhaustedError(LLMError):
    """Both credentials stayed rate limited for the whole attempt budget."""

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            f"Rate limited on all credentials, retry after {retry_after}s",
            code="RATE_LIMIT",
        )
        self.retry_after = retry_after


# =============================================================================
# Retrieval Errors
# =============================================================================


class VectorStoreError(NLQueryError):
    """Vector index operation failed."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(f"Vector store {operation} failed: {reason}", code="VECTOR_STORE")
        self.operation = operation
