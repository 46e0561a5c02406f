"""
Telemetry Module.

OpenTelemetry tracing helpers shared by the engine.

Usage:
    from src.common.telemetry import trace_span

    with trace_span("llm.classify", {"llm.model": model}) as span:
        span.set_attribute("llm.attempts", attempts)
"""

from src.common.telemetry.tracing import (
    add_span_attributes,
    get_tracer,
    is_telemetry_enabled,
    record_exception,
    trace_async,
    trace_span,
)

__all__ = [
    "add_span_attributes",
    "get_tracer",
    "is_telemetry_enabled",
    "record_exception",
    "trace_async",
    "trace_span",
]
