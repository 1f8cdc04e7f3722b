"""
Event bus interface definitions.

The bus decouples the sagas from whatever reacts to their notifications
(emails, projections, operator dashboards). Subscriptions are keyed by
routing name, so a handler can be registered with either the event class
or its ``event_name`` (``"order/shipped"``).
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from orderflow.events.base import DomainEvent

EventHandlerFunc = Callable[[DomainEvent], Awaitable[None] | None]
"""Function-based handler; may be sync or async."""

EventSelector = type[DomainEvent] | str
"""An event class or its routing name."""


def routing_name(selector: EventSelector | DomainEvent) -> str:
    """Routing name for an event, event class or already-resolved name."""
    if isinstance(selector, str):
        return selector
    if isinstance(selector, DomainEvent):
        return selector.event_name or selector.event_type
    return selector.event_name or selector.__name__


class EventBus(ABC):
    """
    Abstract event bus for notification events.

    Publishing is awaited by the caller; running it off the request path
    is the side channel's job, not the bus's.
    """

    @abstractmethod
    async def publish(self, events: list[DomainEvent]) -> None:
        """Deliver events, in order, to everyone subscribed to them."""
        ...

    @abstractmethod
    def subscribe(self, selector: EventSelector, handler: Any) -> None: ...

    @abstractmethod
    def unsubscribe(self, selector: EventSelector, handler: Any) -> bool:
        """Remove a handler; returns True if it was subscribed."""
        ...

    @abstractmethod
    def subscribe_to_all_events(self, handler: Any) -> None: ...


__all__ = ["EventBus", "EventHandlerFunc", "EventSelector", "routing_name"]
