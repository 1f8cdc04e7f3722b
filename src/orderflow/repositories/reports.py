"""
Regulatory report storage.

Reports are write-once per (jurisdiction, period_start, period_end). A save
that collides with an existing key raises ``WriteOnceViolationError``; the
caller re-reads and returns the stored report.
"""

import asyncio
from datetime import date
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from orderflow.exceptions import WriteOnceViolationError
from orderflow.models import FileRef, RegulatoryReport
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_JURISDICTION,
)
from orderflow.repositories._connection import as_utc, dialect_name, execute_with_connection
from orderflow.repositories.schema import files, regulatory_reports


def report_key(jurisdiction: str, period_start: date, period_end: date) -> str:
    return f"{jurisdiction}:{period_start.isoformat()}:{period_end.isoformat()}"


@runtime_checkable
class ReportRepository(Protocol):
    """Protocol for regulatory report persistence."""

    async def find_covering(
        self, jurisdiction: str, period_start: date, period_end: date
    ) -> RegulatoryReport | None:
        """
        Return a stored report whose period fully contains the window.

        When several qualify, the most recently generated one wins.
        """
        ...

    async def get_by_key(
        self, jurisdiction: str, period_start: date, period_end: date
    ) -> RegulatoryReport | None: ...

    async def get(self, report_id: UUID) -> RegulatoryReport | None: ...

    async def save(self, report: RegulatoryReport) -> RegulatoryReport:
        """
        Persist a report and its file reference.

        Raises:
            WriteOnceViolationError: If a report with the same key exists
        """
        ...


class InMemoryReportRepository:
    """In-memory report store for tests and development."""

    def __init__(self) -> None:
        self._reports: dict[str, RegulatoryReport] = {}
        self._lock = asyncio.Lock()

    @property
    def reports(self) -> list[RegulatoryReport]:
        return list(self._reports.values())

    async def find_covering(
        self, jurisdiction: str, period_start: date, period_end: date
    ) -> RegulatoryReport | None:
        covering = [
            r
            for r in self._reports.values()
            if r.jurisdiction == jurisdiction and r.covers(period_start, period_end)
        ]
        if not covering:
            return None
        return max(covering, key=lambda r: r.generated_at)

    async def get_by_key(
        self, jurisdiction: str, period_start: date, period_end: date
    ) -> RegulatoryReport | None:
        return self._reports.get(report_key(jurisdiction, period_start, period_end))

    async def get(self, report_id: UUID) -> RegulatoryReport | None:
        for report in self._reports.values():
            if report.id == report_id:
                return report
        return None

    async def save(self, report: RegulatoryReport) -> RegulatoryReport:
        key = report_key(report.jurisdiction, report.period_start, report.period_end)
        async with self._lock:
            if key in self._reports:
                raise WriteOnceViolationError("RegulatoryReport", key)
            self._reports[key] = report
        return report


class SQLAlchemyReportRepository:
    """Reports backed by the ``regulatory_reports`` and ``files`` tables."""

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def _select(self) -> Any:
        return select(
            regulatory_reports,
            files.c.id.label("file_ref_id"),
            files.c.bucket,
            files.c.key,
            files.c.content_type,
            files.c.size_bytes,
            files.c.sha256,
            files.c.created_by_user_id,
            files.c.created_at.label("file_created_at"),
        ).join(files, files.c.id == regulatory_reports.c.file_id)

    async def find_covering(
        self, jurisdiction: str, period_start: date, period_end: date
    ) -> RegulatoryReport | None:
        query = (
            self._select()
            .where(
                regulatory_reports.c.jurisdiction == jurisdiction,
                regulatory_reports.c.period_start <= period_start,
                regulatory_reports.c.period_end >= period_end,
            )
            .order_by(regulatory_reports.c.generated_at.desc())
            .limit(1)
        )
        with self._tracer.span(
            "orderflow.repository.find_covering_report",
            {
                ATTR_JURISDICTION: jurisdiction,
                ATTR_DB_SYSTEM: dialect_name(self.conn),
                ATTR_DB_OPERATION: "SELECT",
            },
        ):
            async with execute_with_connection(self.conn, transactional=False) as conn:
                row = (await conn.execute(query)).mappings().first()
        return _report_from_row(row) if row else None

    async def get_by_key(
        self, jurisdiction: str, period_start: date, period_end: date
    ) -> RegulatoryReport | None:
        query = self._select().where(
            regulatory_reports.c.jurisdiction == jurisdiction,
            regulatory_reports.c.period_start == period_start,
            regulatory_reports.c.period_end == period_end,
        )
        async with execute_with_connection(self.conn, transactional=False) as conn:
            row = (await conn.execute(query)).mappings().first()
        return _report_from_row(row) if row else None

    async def get(self, report_id: UUID) -> RegulatoryReport | None:
        query = self._select().where(regulatory_reports.c.id == report_id)
        async with execute_with_connection(self.conn, transactional=False) as conn:
            row = (await conn.execute(query)).mappings().first()
        return _report_from_row(row) if row else None

    async def save(self, report: RegulatoryReport) -> RegulatoryReport:
        file = report.file
        with self._tracer.span(
            "orderflow.repository.save_report",
            {
                ATTR_JURISDICTION: report.jurisdiction,
                ATTR_DB_SYSTEM: dialect_name(self.conn),
                ATTR_DB_OPERATION: "INSERT",
            },
        ):
            try:
                async with execute_with_connection(self.conn) as conn:
                    await conn.execute(insert(files).values(**file.model_dump()))
                    await conn.execute(
                        insert(regulatory_reports).values(
                            id=report.id,
                            jurisdiction=report.jurisdiction,
                            period_start=report.period_start,
                            period_end=report.period_end,
                            file_id=file.id,
                            order_count=report.order_count,
                            row_count=report.row_count,
                            generated_by_user_id=report.generated_by_user_id,
                            generated_at=report.generated_at,
                        )
                    )
            except IntegrityError as e:
                raise WriteOnceViolationError(
                    "RegulatoryReport",
                    report_key(report.jurisdiction, report.period_start, report.period_end),
                ) from e
        return report


def _report_from_row(row: Any) -> RegulatoryReport:
    return RegulatoryReport(
        id=row["id"],
        jurisdiction=row["jurisdiction"],
        period_start=row["period_start"],
        period_end=row["period_end"],
        file=FileRef(
            id=row["file_ref_id"],
            bucket=row["bucket"],
            key=row["key"],
            content_type=row["content_type"],
            size_bytes=row["size_bytes"],
            sha256=row["sha256"],
            created_by_user_id=row["created_by_user_id"],
            created_at=as_utc(row["file_created_at"]),
        ),
        order_count=row["order_count"],
        row_count=row["row_count"],
        generated_by_user_id=row["generated_by_user_id"],
        generated_at=as_utc(row["generated_at"]),
    )


__all__ = [
    "InMemoryReportRepository",
    "ReportRepository",
    "SQLAlchemyReportRepository",
    "report_key",
]
