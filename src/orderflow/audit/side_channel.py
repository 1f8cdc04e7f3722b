"""
Best-effort side channel for audit writes and notifications.

Audit events and notification events never decide the outcome of a saga.
The side channel runs them as tracked background tasks (or inline when
``background=False``), logs failures and swallows them. ``drain()`` waits
for everything scheduled so far; call it on shutdown and in tests.
"""

import asyncio
import logging
from collections.abc import Awaitable

from orderflow.bus.interface import EventBus
from orderflow.events.base import DomainEvent
from orderflow.models import AuditEvent
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_EVENT_TYPE
from orderflow.repositories.audit import AuditLogRepository

logger = logging.getLogger(__name__)


class SideChannel:
    """
    Non-blocking sink for audit events and notifications.

    Example:
        >>> side = SideChannel(audit_log, bus)
        >>> await side.record(AuditEvent.for_principal(principal, ...))
        >>> await side.publish(OrderShipped(...))
        >>> await side.drain()
    """

    def __init__(
        self,
        audit_log: AuditLogRepository,
        bus: EventBus | None = None,
        *,
        background: bool = True,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Args:
            audit_log: Audit sink
            bus: Event bus for notifications; notifications are dropped if None
            background: If False, ``record`` and ``publish`` await the write
                before returning. Either way they never raise.
            tracer: Optional custom Tracer instance
            enable_tracing: Ignored if tracer is explicitly provided
        """
        self._audit_log = audit_log
        self._bus = bus
        self._background = background
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._tasks: set[asyncio.Task[None]] = set()
        self._stats = {
            "audit_recorded": 0,
            "audit_failed": 0,
            "notifications_published": 0,
            "notifications_failed": 0,
        }

    @property
    def background(self) -> bool:
        return self._background

    async def record(self, event: AuditEvent) -> None:
        """Write an audit event. Failures are logged, never raised."""
        await self._dispatch(self._record(event))

    async def publish(self, event: DomainEvent) -> None:
        """Publish a notification. Failures are logged, never raised."""
        if self._bus is None:
            logger.debug("No event bus configured, dropping %s", type(event).__name__)
            return
        await self._dispatch(self._publish(event))

    async def _dispatch(self, work: Awaitable[None]) -> None:
        if self._background:
            task = asyncio.ensure_future(work)
            task.add_done_callback(self._on_task_done)
            self._tasks.add(task)
        else:
            await work

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)

    async def _record(self, event: AuditEvent) -> None:
        try:
            await self._audit_log.record(event)
            self._stats["audit_recorded"] += 1
        except Exception as e:
            self._stats["audit_failed"] += 1
            logger.warning(
                "Audit write failed for %s %s: %s",
                event.action.value,
                event.entity_id,
                e,
                exc_info=True,
                extra={
                    "audit_action": event.action.value,
                    "audit_result": event.result.value,
                    "entity_id": event.entity_id,
                },
            )

    async def _publish(self, event: DomainEvent) -> None:
        assert self._bus is not None
        with self._tracer.span(
            "orderflow.side_channel.publish", {ATTR_EVENT_TYPE: type(event).__name__}
        ):
            try:
                await self._bus.publish([event])
                self._stats["notifications_published"] += 1
            except Exception as e:
                self._stats["notifications_failed"] += 1
                logger.warning(
                    "Notification %s failed: %s",
                    type(event).__name__,
                    e,
                    exc_info=True,
                    extra={"event_type": type(event).__name__, "event_id": str(event.event_id)},
                )

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    def get_pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 30.0) -> None:
        """
        Wait for scheduled writes to finish.

        Tasks still running after ``timeout`` seconds are cancelled.
        """
        while self._tasks:
            pending = list(self._tasks)
            _, remaining = await asyncio.wait(pending, timeout=timeout)
            if remaining:
                logger.warning(
                    "Side channel drain: %d task(s) did not complete within timeout",
                    len(remaining),
                    extra={"remaining_tasks": len(remaining)},
                )
                for task in remaining:
                    task.cancel()
                    self._tasks.discard(task)
                return


__all__ = ["SideChannel"]
