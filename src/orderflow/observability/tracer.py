"""
Tracers injected into sagas, repositories and gateways.

Every traced component takes an optional ``Tracer`` and otherwise calls
``create_tracer(__name__, enable_tracing)``. Tracing is real only when
OpenTelemetry is installed; ``MockTracer`` records span names for tests.

Example:
    >>> class ShippoLabelGateway:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def create_label(self, order_id: str) -> Label:
    ...         with self._tracer.span_with_kind("orderflow.shippo.create_label",
    ...                                          SpanKindEnum.CLIENT):
    ...             ...
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from orderflow.observability.tracing import OTEL_AVAILABLE


class SpanKindEnum(Enum):
    """Span kinds used by orderflow; saga steps and storage calls are INTERNAL."""

    INTERNAL = "internal"
    PRODUCER = "producer"
    CLIENT = "client"


@runtime_checkable
class Tracer(Protocol):
    """Anything that opens spans as context managers yielding a Span or None."""

    @property
    def enabled(self) -> bool: ...

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]: ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]: ...


class NullTracer:
    """Tracer used when tracing is off. Spans yield None."""

    enabled = False

    @contextlib.contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[None]:
        yield None

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span(name, attributes)


class OpenTelemetryTracer:
    """Opens spans on the global OpenTelemetry tracer provider."""

    enabled = True

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        from opentelemetry.trace import SpanKind

        return self._tracer.start_as_current_span(
            name,
            kind=SpanKind[kind.name],
            attributes=attributes or {},
        )


class MockTracer:
    """
    Records ``(name, attributes)`` for every span opened, in opening order.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("orderflow.saga.step", {"saga.step": "authorize"}):
        ...     pass
        >>> tracer.span_names
        ['orderflow.saga.step']
    """

    enabled = True

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []

    @contextlib.contextmanager
    def span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[None]:
        self.spans.append((name, attributes))
        yield None

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span(name, attributes)

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetryTracer when enabled and installed, otherwise NullTracer."""
    if enable_tracing and OTEL_AVAILABLE:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "SpanKindEnum",
    "Tracer",
    "create_tracer",
]
