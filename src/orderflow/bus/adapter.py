"""
Wraps notification handlers behind one async ``handle(event)`` call.

A handler is either an object with a ``handle`` method or a plain callable.
Either may be sync or async; a sync callable that returns an awaitable is
awaited too.
"""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from orderflow.events.base import DomainEvent

AsyncHandlerFunc = Callable[[DomainEvent], Awaitable[None]]


def get_handler_name(handler: Any) -> str:
    if inspect.isfunction(handler) or inspect.ismethod(handler):
        return handler.__qualname__
    if inspect.isbuiltin(handler):
        return repr(handler)
    return type(handler).__name__


def _as_coroutine(handler: Any) -> AsyncHandlerFunc:
    target = getattr(handler, "handle", handler)
    if not callable(target):
        raise TypeError(f"Handler must be callable or define handle(), got {type(handler)}")
    if inspect.iscoroutinefunction(target):
        return target  # type: ignore[no-any-return]

    async def call(event: DomainEvent) -> None:
        result = target(event)
        if inspect.isawaitable(result):
            await result

    return call


class HandlerAdapter:
    """A registered handler plus the name it is logged under."""

    __slots__ = ("_handler", "_call", "name")

    def __init__(self, handler: Any) -> None:
        self._handler = handler
        self._call = _as_coroutine(handler)
        self.name = get_handler_name(handler)

    def wraps(self, handler: Any) -> bool:
        # Bound methods are recreated on each attribute access, so compare by equality.
        return self._handler is handler or self._handler == handler

    async def handle(self, event: DomainEvent) -> None:
        await self._call(event)

    def __repr__(self) -> str:
        return f"HandlerAdapter({self.name})"


__all__ = ["AsyncHandlerFunc", "HandlerAdapter", "get_handler_name"]
