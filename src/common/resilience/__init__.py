"""
Resilience Patterns

Retry with backoff and best-effort fallback for calls to hosted services.
"""

from src.common.resilience.fallback import best_effort
from src.common.resilience.retry import RetryConfig, retry_with_backoff

__all__ = [
    "best_effort",
    "retry_with_backoff",
    "RetryConfig",
]
