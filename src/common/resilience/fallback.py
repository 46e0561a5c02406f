"""
Best-Effort Fallback

Wraps an optional async step so any failure degrades to a default value
instead of failing the caller's whole request.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def best_effort(
    default: Callable[[], T],
    operation: str | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator returning `default()` when the wrapped coroutine raises.

    Cancellation is not swallowed. The failure is logged at warning level.

    Args:
        default: Factory for the fallback value (called per failure)
        operation: Name used in the log line (defaults to function name)

    Example:
        @best_effort(RAGContext, "context retrieval")
        async def retrieve_context(self, question: str) -> RAGContext:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = operation or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.warning(f"{name} failed, continuing without it: {e}")
                return default()

        return wrapper

    return decorator
