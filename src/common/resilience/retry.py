"""
Retry with Exponential Backoff

Retries failed async operations (embedding requests, vector index writes)
with a configurable backoff strategy.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given 1-based attempt."""
        delay = min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay,
        )
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        config: Retry configuration
        on_retry: Optional callback(attempt, error, delay) on each retry
        sleep: Awaitable sleep used between attempts
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful function call

    Raises:
        Exception: Last exception after all retries exhausted, or the first
            non-retryable exception

    Example:
        config = RetryConfig(max_attempts=5, base_delay=0.5)
        response = await retry_with_backoff(
            client.embeddings.create, config=config, model=model, input=texts
        )
    """
    config = config or RetryConfig()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt == config.max_attempts:
                logger.warning(f"Retry exhausted after {attempt} attempts: {e}")
                raise

            delay = config.delay_for(attempt)
            logger.info(
                f"Retry attempt {attempt}/{config.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )

            if on_retry:
                on_retry(attempt, e, delay)

            await sleep(delay)

    raise RuntimeError("Retry logic error")
