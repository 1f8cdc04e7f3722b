"""In-process event bus.

Delivers notification events to handlers registered in the same process.
Used by the test harness and by single-instance deployments where email
and dashboard hooks run alongside the sagas.
"""

import logging
import threading
from collections import defaultdict
from typing import Any

from orderflow.bus.adapter import HandlerAdapter
from orderflow.bus.interface import EventBus, EventSelector, routing_name
from orderflow.events.base import DomainEvent
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_COUNT,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
)

logger = logging.getLogger(__name__)


class InMemoryEventBus(EventBus):
    """
    Event bus that calls handlers directly.

    Handlers for one event run one after another in subscription order,
    routed handlers first, then wildcard handlers. A handler that raises is
    logged and counted; the remaining handlers still run and ``publish``
    does not raise.

    Example:
        >>> bus = InMemoryEventBus()
        >>> bus.subscribe(OrderShipped, send_shipped_email)
        >>> bus.subscribe("reconciliation/opened", page_operator)
        >>> await bus.publish([OrderShipped(...)])
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._routes: dict[str, list[HandlerAdapter]] = defaultdict(list)
        self._wildcards: list[HandlerAdapter] = []
        self._guard = threading.Lock()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._stats = {"events_published": 0, "handlers_invoked": 0, "handler_errors": 0}

    def _handlers_for(self, name: str) -> list[HandlerAdapter]:
        with self._guard:
            return [*self._routes.get(name, ()), *self._wildcards]

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            await self._deliver(event)
            self._stats["events_published"] += 1

    async def _deliver(self, event: DomainEvent) -> None:
        name = routing_name(event)
        handlers = self._handlers_for(name)
        if not handlers:
            logger.debug("Nobody subscribed to %s", name, extra={"event_name": name})
            return

        with self._tracer.span(
            "orderflow.event_bus.dispatch",
            {
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: str(event.event_id),
                ATTR_HANDLER_COUNT: len(handlers),
            },
        ):
            for adapter in handlers:
                await self._invoke(adapter, event)

    async def _invoke(self, adapter: HandlerAdapter, event: DomainEvent) -> None:
        with self._tracer.span(
            "orderflow.event_bus.handle",
            {
                ATTR_EVENT_TYPE: event.event_type,
                ATTR_EVENT_ID: str(event.event_id),
                ATTR_HANDLER_NAME: adapter.name,
            },
        ) as span:
            try:
                await adapter.handle(event)
            except Exception as e:
                self._stats["handler_errors"] += 1
                if span:
                    span.set_attribute(ATTR_HANDLER_SUCCESS, False)
                    span.record_exception(e)
                logger.error(
                    "Handler %s raised on %s: %s",
                    adapter.name,
                    routing_name(event),
                    e,
                    exc_info=True,
                    extra={
                        "handler": adapter.name,
                        "event_type": event.event_type,
                        "event_id": str(event.event_id),
                        "aggregate_id": str(event.aggregate_id),
                    },
                )
                return
            self._stats["handlers_invoked"] += 1
            if span:
                span.set_attribute(ATTR_HANDLER_SUCCESS, True)

    def subscribe(self, selector: EventSelector, handler: Any) -> None:
        adapter = HandlerAdapter(handler)
        name = routing_name(selector)
        with self._guard:
            self._routes[name].append(adapter)
        logger.debug("Subscribed %s to %s", adapter.name, name)

    def unsubscribe(self, selector: EventSelector, handler: Any) -> bool:
        name = routing_name(selector)
        with self._guard:
            adapters = self._routes.get(name, [])
            for adapter in adapters:
                if adapter.wraps(handler):
                    adapters.remove(adapter)
                    return True
        return False

    def subscribe_to_all_events(self, handler: Any) -> None:
        adapter = HandlerAdapter(handler)
        with self._guard:
            self._wildcards.append(adapter)
        logger.debug("Subscribed %s to all events", adapter.name)

    def clear_subscribers(self) -> None:
        with self._guard:
            self._routes.clear()
            self._wildcards.clear()

    def get_subscriber_count(self, selector: EventSelector | None = None) -> int:
        """Routed subscribers for one event, or for all events; wildcards excluded."""
        with self._guard:
            if selector is None:
                return sum(len(adapters) for adapters in self._routes.values())
            return len(self._routes.get(routing_name(selector), ()))

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)


__all__ = ["InMemoryEventBus"]
