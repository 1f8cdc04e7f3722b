"""
Event bus for notification events.

Example:
    >>> from orderflow.bus import InMemoryEventBus
    >>> from orderflow.events import OrderShipped
    >>>
    >>> bus = InMemoryEventBus()
    >>> bus.subscribe(OrderShipped, send_shipped_email)
"""

from orderflow.bus.adapter import HandlerAdapter
from orderflow.bus.interface import EventBus, EventHandlerFunc, EventSelector, routing_name
from orderflow.bus.memory import InMemoryEventBus

__all__ = [
    "EventBus",
    "EventHandlerFunc",
    "EventSelector",
    "HandlerAdapter",
    "InMemoryEventBus",
    "routing_name",
]
