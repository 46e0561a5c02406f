"""
Tracing Utilities.

Provides the tracer, decorators and helpers for distributed tracing on top of
the OpenTelemetry API. Without an SDK configured (or with telemetry disabled)
every span is a no-op.
"""

from __future__ import annotations

import functools
import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Callable, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TELEMETRY_ENV_VAR = "NLQUERY_TELEMETRY_ENABLED"
INSTRUMENTATION_NAME = "nlquery"


def is_telemetry_enabled() -> bool:
    """Telemetry is on unless NLQUERY_TELEMETRY_ENABLED is false/0/no."""
    return os.environ.get(TELEMETRY_ENV_VAR, "true").lower() not in ("false", "0", "no")


def get_tracer(name: str = INSTRUMENTATION_NAME) -> trace.Tracer:
    """
    Get a tracer for the given instrumentation scope.

    Returns the API's NoOpTracer when telemetry is disabled.
    """
    if not is_telemetry_enabled():
        return trace.NoOpTracer()
    return trace.get_tracer(name)


def record_exception(exception: Exception, span: Any = None) -> None:
    """
    Record an exception on the current or specified span.

    Args:
        exception: The exception to record
        span: Optional span (uses current span if not provided)
    """
    if span is None:
        span = trace.get_current_span()

    if span.is_recording():
        span.record_exception(exception)
        span.set_status(Status(StatusCode.ERROR, str(exception)))


def add_span_attributes(attributes: dict[str, Any]) -> None:
    """
    Add attributes to the current span.

    Example:
        add_span_attributes({"classification.function": name})
    """
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(attributes)


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[Any, None, None]:
    """
    Context manager for creating a traced span.

    Args:
        name: Span name (e.g., "llm.classify", "rag.retrieve")
        attributes: Optional initial span attributes

    Yields:
        The active span (non-recording when telemetry is disabled)

    Example:
        with trace_span("rag.retrieve", {"rag.top_k": top_k}) as span:
            matches = await query(vector)
            span.set_attribute("rag.matches", len(matches))
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(name) as span:
        if attributes:
            span.set_attributes(attributes)
        try:
            yield span
        except Exception as e:
            record_exception(e, span)
            raise


def trace_async(
    name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[F], F]:
    """
    Decorator for tracing async functions.

    Args:
        name: Span name (defaults to function name)
        attributes: Static attributes to add to span

    Example:
        @trace_async("interpreter.interpret")
        async def interpret(question: str) -> InterpretationResult:
            ...
    """

    def decorator(func: F) -> F:
        span_name = name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name, attributes):
                return await func(*args, **kwargs)

        return wrapper  # type: ignore

    return decorator
