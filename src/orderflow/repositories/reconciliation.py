"""
Reconciliation queue.

Cases are opened by the sagas when a gateway side effect took place but the
saga could not reach its terminal state (authorized but not persisted,
captured but not labeled or not recorded). Operators resolve them out of
band. An open case for an order blocks shipping it again.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from orderflow.exceptions import ReconciliationCaseNotFoundError, ReconciliationCaseResolvedError
from orderflow.models import ReconciliationCase, utc_now
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_DB_OPERATION, ATTR_DB_SYSTEM
from orderflow.repositories._connection import as_utc, dialect_name, execute_with_connection
from orderflow.repositories.schema import reconciliation_cases
from orderflow.serialization import json_dumps, json_loads
from orderflow.types import ReconciliationKind


@runtime_checkable
class ReconciliationRepository(Protocol):
    """Protocol for the reconciliation queue."""

    async def open_case(self, case: ReconciliationCase) -> ReconciliationCase: ...

    async def get(self, case_id: UUID) -> ReconciliationCase | None: ...

    async def list_open(
        self, limit: int = 100, *, order_id: UUID | None = None
    ) -> list[ReconciliationCase]:
        """Open cases, oldest first, optionally only those for one order."""
        ...

    async def resolve(
        self,
        case_id: UUID,
        resolved_by: UUID,
        notes: str,
        resolved_at: datetime | None = None,
    ) -> ReconciliationCase:
        """
        Close a case.

        Raises:
            ReconciliationCaseNotFoundError: If the case does not exist
            ReconciliationCaseResolvedError: If the case is already closed
        """
        ...


class InMemoryReconciliationRepository:
    """In-memory reconciliation queue for tests and development."""

    def __init__(self) -> None:
        self._cases: dict[UUID, ReconciliationCase] = {}
        self._lock = asyncio.Lock()

    @property
    def cases(self) -> list[ReconciliationCase]:
        return list(self._cases.values())

    async def open_case(self, case: ReconciliationCase) -> ReconciliationCase:
        async with self._lock:
            self._cases[case.id] = case
        return case

    async def get(self, case_id: UUID) -> ReconciliationCase | None:
        return self._cases.get(case_id)

    async def list_open(
        self, limit: int = 100, *, order_id: UUID | None = None
    ) -> list[ReconciliationCase]:
        open_cases = sorted(
            (
                c
                for c in self._cases.values()
                if c.is_open and (order_id is None or c.order_id == order_id)
            ),
            key=lambda c: c.opened_at,
        )
        return open_cases[:limit]

    async def resolve(
        self,
        case_id: UUID,
        resolved_by: UUID,
        notes: str,
        resolved_at: datetime | None = None,
    ) -> ReconciliationCase:
        async with self._lock:
            case = self._cases.get(case_id)
            if case is None:
                raise ReconciliationCaseNotFoundError(case_id)
            if not case.is_open:
                raise ReconciliationCaseResolvedError(case_id)
            resolved = case.model_copy(
                update={
                    "resolved_at": resolved_at or utc_now(),
                    "resolved_by_user_id": resolved_by,
                    "resolution_notes": notes,
                }
            )
            self._cases[case_id] = resolved
        return resolved


class SQLAlchemyReconciliationRepository:
    """Reconciliation queue backed by the ``reconciliation_cases`` table."""

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def open_case(self, case: ReconciliationCase) -> ReconciliationCase:
        with self._tracer.span(
            "orderflow.repository.open_reconciliation_case",
            {ATTR_DB_SYSTEM: dialect_name(self.conn), ATTR_DB_OPERATION: "INSERT"},
        ):
            async with execute_with_connection(self.conn) as conn:
                await conn.execute(
                    insert(reconciliation_cases).values(
                        id=case.id,
                        kind=case.kind.value,
                        order_id=case.order_id,
                        transaction_id=case.transaction_id,
                        amount=case.amount,
                        reason_code=case.reason_code,
                        details=json_loads(json_dumps(case.details)),
                        opened_at=case.opened_at,
                        resolved_at=case.resolved_at,
                        resolved_by_user_id=case.resolved_by_user_id,
                        resolution_notes=case.resolution_notes,
                    )
                )
        return case

    async def get(self, case_id: UUID) -> ReconciliationCase | None:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            row = (
                (
                    await conn.execute(
                        select(reconciliation_cases).where(reconciliation_cases.c.id == case_id)
                    )
                )
                .mappings()
                .first()
            )
        return _case_from_row(row) if row else None

    async def list_open(
        self, limit: int = 100, *, order_id: UUID | None = None
    ) -> list[ReconciliationCase]:
        query = select(reconciliation_cases).where(reconciliation_cases.c.resolved_at.is_(None))
        if order_id is not None:
            query = query.where(reconciliation_cases.c.order_id == order_id)
        query = query.order_by(reconciliation_cases.c.opened_at).limit(limit)
        async with execute_with_connection(self.conn, transactional=False) as conn:
            rows = (await conn.execute(query)).mappings().all()
        return [_case_from_row(row) for row in rows]

    async def resolve(
        self,
        case_id: UUID,
        resolved_by: UUID,
        notes: str,
        resolved_at: datetime | None = None,
    ) -> ReconciliationCase:
        resolved_at = resolved_at or utc_now()
        async with execute_with_connection(self.conn) as conn:
            result = await conn.execute(
                update(reconciliation_cases)
                .where(
                    reconciliation_cases.c.id == case_id,
                    reconciliation_cases.c.resolved_at.is_(None),
                )
                .values(
                    resolved_at=resolved_at,
                    resolved_by_user_id=resolved_by,
                    resolution_notes=notes,
                )
            )
            if result.rowcount != 1:
                exists = (
                    await conn.execute(
                        select(reconciliation_cases.c.id).where(
                            reconciliation_cases.c.id == case_id
                        )
                    )
                ).scalar()
                if exists is None:
                    raise ReconciliationCaseNotFoundError(case_id)
                raise ReconciliationCaseResolvedError(case_id)
        case = await self.get(case_id)
        if case is None:
            raise ReconciliationCaseNotFoundError(case_id)
        return case


def _case_from_row(row: Any) -> ReconciliationCase:
    amount = row["amount"]
    return ReconciliationCase(
        id=row["id"],
        kind=ReconciliationKind(row["kind"]),
        order_id=row["order_id"],
        transaction_id=row["transaction_id"],
        amount=Decimal(amount) if amount is not None else None,
        reason_code=row["reason_code"],
        details=row["details"] or {},
        opened_at=as_utc(row["opened_at"]),
        resolved_at=as_utc(row["resolved_at"]),
        resolved_by_user_id=row["resolved_by_user_id"],
        resolution_notes=row["resolution_notes"],
    )


__all__ = [
    "InMemoryReconciliationRepository",
    "ReconciliationRepository",
    "SQLAlchemyReconciliationRepository",
]
