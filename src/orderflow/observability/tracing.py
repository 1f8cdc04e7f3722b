"""
OpenTelemetry availability check for orderflow.

OpenTelemetry is an optional dependency (``orderflow-py[telemetry]``).
This module is the single place that attempts the import.
"""

from __future__ import annotations

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


__all__ = ["OTEL_AVAILABLE"]
