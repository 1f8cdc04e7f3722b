"""
Append-only audit log storage.

Events are inserted and read back; there is no update or delete path.
"""

import asyncio
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from orderflow.models import AuditEvent
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_DB_OPERATION, ATTR_DB_SYSTEM
from orderflow.repositories._connection import as_utc, dialect_name, execute_with_connection
from orderflow.repositories.schema import audit_events
from orderflow.serialization import json_dumps, json_loads
from orderflow.types import ActorType, AuditAction, AuditEntityType, AuditResult


@runtime_checkable
class AuditLogRepository(Protocol):
    """Protocol for the audit sink."""

    async def record(self, event: AuditEvent) -> None:
        """Append an event."""
        ...

    async def list_for_entity(
        self, entity_type: AuditEntityType, entity_id: str
    ) -> list[AuditEvent]:
        """Events for one entity, oldest first."""
        ...

    async def list_events(
        self,
        *,
        action: AuditAction | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events first, optionally filtered by action."""
        ...


class InMemoryAuditLogRepository:
    """In-memory audit log for tests and development."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._lock = asyncio.Lock()

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def record(self, event: AuditEvent) -> None:
        async with self._lock:
            self._events.append(event)

    async def list_for_entity(
        self, entity_type: AuditEntityType, entity_id: str
    ) -> list[AuditEvent]:
        found = [
            e for e in self._events if e.entity_type is entity_type and e.entity_id == entity_id
        ]
        return sorted(found, key=lambda e: e.occurred_at)

    async def list_events(
        self,
        *,
        action: AuditAction | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        found = [e for e in self._events if action is None or e.action is action]
        found.sort(key=lambda e: e.occurred_at, reverse=True)
        return found[:limit]

    async def clear(self) -> None:
        async with self._lock:
            self._events.clear()


class SQLAlchemyAuditLogRepository:
    """Audit log backed by the ``audit_events`` table."""

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def record(self, event: AuditEvent) -> None:
        with self._tracer.span(
            "orderflow.repository.record_audit_event",
            {ATTR_DB_SYSTEM: dialect_name(self.conn), ATTR_DB_OPERATION: "INSERT"},
        ):
            async with execute_with_connection(self.conn) as conn:
                await conn.execute(
                    insert(audit_events).values(
                        id=event.id,
                        actor_user_id=event.actor_user_id,
                        actor_type=event.actor_type.value,
                        action=event.action.value,
                        entity_type=event.entity_type.value,
                        entity_id=event.entity_id,
                        result=event.result.value,
                        reason_code=event.reason_code,
                        # metadata may hold Decimal and UUID values
                        metadata=json_loads(json_dumps(event.metadata)),
                        occurred_at=event.occurred_at,
                    )
                )

    async def list_for_entity(
        self, entity_type: AuditEntityType, entity_id: str
    ) -> list[AuditEvent]:
        query = (
            select(audit_events)
            .where(
                audit_events.c.entity_type == entity_type.value,
                audit_events.c.entity_id == entity_id,
            )
            .order_by(audit_events.c.occurred_at)
        )
        async with execute_with_connection(self.conn, transactional=False) as conn:
            rows = (await conn.execute(query)).mappings().all()
        return [_event_from_row(row) for row in rows]

    async def list_events(
        self,
        *,
        action: AuditAction | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        query = select(audit_events).order_by(audit_events.c.occurred_at.desc()).limit(limit)
        if action is not None:
            query = query.where(audit_events.c.action == action.value)
        async with execute_with_connection(self.conn, transactional=False) as conn:
            rows = (await conn.execute(query)).mappings().all()
        return [_event_from_row(row) for row in rows]


def _event_from_row(row: Any) -> AuditEvent:
    return AuditEvent(
        id=row["id"],
        actor_user_id=row["actor_user_id"],
        actor_type=ActorType(row["actor_type"]),
        action=AuditAction(row["action"]),
        entity_type=AuditEntityType(row["entity_type"]),
        entity_id=row["entity_id"],
        result=AuditResult(row["result"]),
        reason_code=row["reason_code"],
        metadata=row["metadata"] or {},
        occurred_at=as_utc(row["occurred_at"]),
    )


__all__ = [
    "AuditLogRepository",
    "InMemoryAuditLogRepository",
    "SQLAlchemyAuditLogRepository",
]
