"""
Observability utilities for orderflow.

Composition-based tracing and standard attribute names. OpenTelemetry is
optional; every utility here degrades to a no-op when it is not installed.

Example:
    >>> from orderflow.observability import create_tracer
    >>>
    >>> class MyGateway:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from orderflow.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from orderflow.observability.tracing import OTEL_AVAILABLE

__all__ = [
    "OTEL_AVAILABLE",
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "Tracer",
    "create_tracer",
]
