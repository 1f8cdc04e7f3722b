"""
PACT-style regulatory report generation.

One report per (jurisdiction, period). Generation is idempotent: a stored
report whose period contains the requested window is returned as-is, with
no recomputation and no storage write. New reports are serialized to CSV
with fixed columns and ``\\n`` line endings so identical input always yields
identical bytes, and are stored under a deterministic key.
"""

import csv
import io
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time

from pydantic import BaseModel, ConfigDict

from orderflow.audit.side_channel import SideChannel
from orderflow.config import OrderFlowConfig
from orderflow.events import RegulatoryReportGenerated
from orderflow.exceptions import (
    GatewayFailureError,
    InvalidInputError,
    PermissionDeniedError,
    SagaError,
    WriteOnceViolationError,
)
from orderflow.gateways.errors import GatewayError
from orderflow.gateways.interface import ObjectStorage
from orderflow.locks import LockAcquisitionError, LockManager, report_lock_key
from orderflow.models import AuditEvent, FileRef, Principal, RegulatoryReport
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_JURISDICTION,
    ATTR_REPORT_ID,
    ATTR_REPORT_REUSED,
    ATTR_ROW_COUNT,
)
from orderflow.repositories.orders import OrderRepository, ShippedOrder
from orderflow.repositories.reports import ReportRepository
from orderflow.sagas.base import (
    SagaContext,
    SagaRunner,
    SagaStep,
    StepFailed,
    StepResult,
    StepSucceeded,
)
from orderflow.types import AuditAction, AuditEntityType, AuditResult

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv"

PACT_COLUMNS = (
    "Recipient Name",
    "Recipient Address",
    "City",
    "State",
    "ZIP",
    "Product Brand",
    "SKU",
    "Quantity",
    "Net Weight (g)",
    "Shipment Date",
    "Carrier",
    "Tracking Number",
)

_JURISDICTION_PATTERN = re.compile(r"^[A-Z]{2}$")


class PactReportRow(BaseModel):
    """One shipped line item as it appears in the report."""

    model_config = ConfigDict(frozen=True)

    recipient_name: str
    recipient_address: str
    city: str
    state: str
    zip: str
    product_brand: str
    sku: str
    quantity: int
    net_weight_grams: str
    shipment_date: str
    carrier: str
    tracking_number: str

    def as_csv_row(self) -> list[str]:
        return [
            self.recipient_name,
            self.recipient_address,
            self.city,
            self.state,
            self.zip,
            self.product_brand,
            self.sku,
            str(self.quantity),
            self.net_weight_grams,
            self.shipment_date,
            self.carrier,
            self.tracking_number,
        ]


class ReportResult(BaseModel):
    """
    Outcome of a generate call.

    Attributes:
        report: The stored report, new or reused
        order_count: Shipped orders covered by the report
        row_count: Line-item rows in the artifact
        reused: True if an existing report was returned unchanged
    """

    model_config = ConfigDict(frozen=True)

    report: RegulatoryReport
    order_count: int
    row_count: int
    reused: bool = False


def flatten_shipments(shipments: Iterable[ShippedOrder]) -> list[PactReportRow]:
    """
    One row per line item of every shipment with complete shipping data.

    Orders missing carrier, tracking number or shipped_at are skipped.
    """
    rows: list[PactReportRow] = []
    for shipment in shipments:
        order = shipment.order
        if not order.shipped_at or not order.tracking_number or not order.carrier:
            continue
        address = shipment.shipping_address
        shipment_date = order.shipped_at.astimezone(UTC).date().isoformat()
        for item in order.items:
            rows.append(
                PactReportRow(
                    recipient_name=address.recipient_name,
                    recipient_address=address.street,
                    city=address.city,
                    state=address.state,
                    zip=address.postal_code,
                    product_brand=item.product_name,
                    sku=item.sku,
                    quantity=item.quantity,
                    net_weight_grams=str(item.net_weight_grams * item.quantity),
                    shipment_date=shipment_date,
                    carrier=order.carrier,
                    tracking_number=order.tracking_number,
                )
            )
    return rows


def render_csv(rows: Iterable[PactReportRow]) -> bytes:
    """Serialize rows under the fixed header as UTF-8 with ``\\n`` line endings."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(PACT_COLUMNS)
    for row in rows:
        writer.writerow(row.as_csv_row())
    return buffer.getvalue().encode("utf-8")


def report_file_key(prefix: str, jurisdiction: str, period_start: date, period_end: date) -> str:
    """Deterministic object key: ``<prefix>/<J>-<start>-<end>.csv``."""
    return f"{prefix}/{jurisdiction}-{period_start.isoformat()}-{period_end.isoformat()}.csv"


def period_bounds(period_start: date, period_end: date) -> tuple[datetime, datetime]:
    """UTC start of the first day and end of the last day, inclusive."""
    return (
        datetime.combine(period_start, time.min, tzinfo=UTC),
        datetime.combine(period_end, time.max, tzinfo=UTC),
    )


@dataclass
class ReportContext(SagaContext):
    """State carried between the report generation steps."""

    jurisdiction: str = field(default="", kw_only=True)
    period_start: date = field(default=date.min, kw_only=True)
    period_end: date = field(default=date.min, kw_only=True)
    shipments: list[ShippedOrder] = field(default_factory=list)
    rows: list[PactReportRow] = field(default_factory=list)
    file: FileRef | None = None
    report: RegulatoryReport | None = None
    reused: bool = False


class RegulatoryReportGenerator:
    """
    Idempotent PACT report generator.

    Example:
        >>> generator = RegulatoryReportGenerator(
        ...     orders=orders,
        ...     reports=reports,
        ...     storage=storage,
        ...     locks=locks,
        ...     side_channel=side_channel,
        ... )
        >>> result = await generator.generate("CA", date(2026, 1, 1), date(2026, 1, 31), admin)
        >>> result.report.file.key
        'pact-reports/CA-2026-01-01-2026-01-31.csv'
    """

    name = "pact_report"

    def __init__(
        self,
        *,
        orders: OrderRepository,
        reports: ReportRepository,
        storage: ObjectStorage,
        locks: LockManager,
        side_channel: SideChannel,
        config: OrderFlowConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._orders = orders
        self._reports = reports
        self._storage = storage
        self._locks = locks
        self._side_channel = side_channel
        self._config = config or OrderFlowConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        action = AuditAction.GENERATE_PACT_REPORT
        self._runner: SagaRunner[ReportContext] = SagaRunner(
            self.name,
            [
                SagaStep("query_orders", self._query_orders, action),
                SagaStep("flatten_rows", self._flatten_rows, action),
                SagaStep("store_artifact", self._store_artifact, action),
                SagaStep("persist_report", self._persist_report, action),
                SagaStep("publish_side_effects", self._publish_side_effects, action),
            ],
            side_channel,
            tracer=self._tracer,
        )

    async def generate(
        self,
        jurisdiction: str,
        period_start: date,
        period_end: date,
        principal: Principal,
    ) -> ReportResult:
        """
        Return the report for a jurisdiction and period, generating it if needed.

        Args:
            jurisdiction: Two-letter code, any case
            period_start: First day of the period (inclusive)
            period_end: Last day of the period (inclusive)
            principal: Caller; must be an ADMIN

        Raises:
            PermissionDeniedError: Caller is not an admin
            InvalidInputError: INVALID_DATE_RANGE, INVALID_JURISDICTION,
                NO_ORDERS_FOUND, NO_DATA_FOUND
            GatewayFailureError: REPORT_STORAGE_FAILED, REPORT_LOCKED
        """
        code = jurisdiction.strip().upper()
        context = ReportContext(
            principal=principal,
            entity_type=AuditEntityType.PACT_REPORT,
            jurisdiction=code,
            period_start=period_start,
            period_end=period_end,
        )

        error: SagaError | None = None
        if not principal.is_admin:
            error = PermissionDeniedError()
        elif period_start > period_end:
            error = InvalidInputError(
                "INVALID_DATE_RANGE", "period_start must not be after period_end"
            )
        elif not _JURISDICTION_PATTERN.match(code):
            error = InvalidInputError(
                "INVALID_JURISDICTION",
                f"Jurisdiction must be a two-letter code, got {jurisdiction!r}",
            )
        if error is not None:
            await self._runner.record_failure(
                context, "validate", AuditAction.GENERATE_PACT_REPORT, StepFailed(error)
            )
            raise error

        with self._tracer.span("orderflow.report.generate", {ATTR_JURISDICTION: code}) as span:
            try:
                async with self._locks.acquire(
                    report_lock_key(code, period_start, period_end),
                    timeout=self._config.lock_timeout,
                ):
                    existing = await self._reports.find_covering(code, period_start, period_end)
                    if existing is not None:
                        context.report = existing
                        context.reused = True
                    else:
                        await self._runner.run(context)
            except LockAcquisitionError as e:
                locked = GatewayFailureError(
                    "REPORT_LOCKED", "Report is being generated by another request, retry later"
                )
                await self._runner.record_failure(
                    context, "acquire_lock", AuditAction.GENERATE_PACT_REPORT, StepFailed(locked)
                )
                raise locked from e

            report = context.report
            assert report is not None
            if span:
                span.set_attribute(ATTR_REPORT_ID, str(report.id))
                span.set_attribute(ATTR_REPORT_REUSED, context.reused)
                span.set_attribute(ATTR_ROW_COUNT, report.row_count)

        if context.reused:
            logger.info(
                "Reusing report %s for %s %s..%s",
                report.id,
                code,
                period_start,
                period_end,
                extra={"report_id": str(report.id), "jurisdiction": code},
            )
        else:
            logger.info(
                "Generated report %s for %s %s..%s with %d rows",
                report.id,
                code,
                period_start,
                period_end,
                report.row_count,
                extra={"report_id": str(report.id), "jurisdiction": code},
            )
        return ReportResult(
            report=report,
            order_count=report.order_count,
            row_count=report.row_count,
            reused=context.reused,
        )

    async def _query_orders(self, ctx: ReportContext) -> StepResult:
        shipped_from, shipped_to = period_bounds(ctx.period_start, ctx.period_end)
        shipments = await self._orders.list_shipped_orders(
            ctx.jurisdiction, shipped_from, shipped_to
        )
        if not shipments:
            return StepFailed(
                InvalidInputError(
                    "NO_ORDERS_FOUND",
                    f"No shipped orders found for {ctx.jurisdiction} in the specified period",
                )
            )
        ctx.shipments = shipments
        return StepSucceeded(len(shipments))

    async def _flatten_rows(self, ctx: ReportContext) -> StepResult:
        rows = flatten_shipments(ctx.shipments)
        if not rows:
            return StepFailed(
                InvalidInputError(
                    "NO_DATA_FOUND", "No valid order data found for report generation"
                )
            )
        ctx.rows = rows
        return StepSucceeded(len(rows))

    async def _store_artifact(self, ctx: ReportContext) -> StepResult:
        key = report_file_key(
            self._config.report_key_prefix, ctx.jurisdiction, ctx.period_start, ctx.period_end
        )
        try:
            ctx.file = await self._storage.put(
                key,
                render_csv(ctx.rows),
                CSV_CONTENT_TYPE,
                ctx.principal.user_id if ctx.principal else None,
            )
        except GatewayError as e:
            return StepFailed(
                GatewayFailureError(
                    "REPORT_STORAGE_FAILED",
                    "Failed to store report artifact",
                    reason_code=e.code,
                    details={"key": key},
                )
            )
        return StepSucceeded(key)

    async def _persist_report(self, ctx: ReportContext) -> StepResult:
        assert ctx.file is not None
        report = RegulatoryReport(
            jurisdiction=ctx.jurisdiction,
            period_start=ctx.period_start,
            period_end=ctx.period_end,
            file=ctx.file,
            order_count=len(ctx.shipments),
            row_count=len(ctx.rows),
            generated_by_user_id=ctx.principal.user_id if ctx.principal else None,
            generated_at=self._clock(),
        )
        try:
            ctx.report = await self._reports.save(report)
        except WriteOnceViolationError:
            winner = await self._reports.get_by_key(
                ctx.jurisdiction, ctx.period_start, ctx.period_end
            )
            if winner is None:
                raise
            logger.info(
                "Report for %s %s..%s was stored concurrently, returning it",
                ctx.jurisdiction,
                ctx.period_start,
                ctx.period_end,
                extra={"report_id": str(winner.id), "jurisdiction": ctx.jurisdiction},
            )
            ctx.report = winner
            ctx.reused = True
        ctx.entity_id = ctx.report.id
        return StepSucceeded(ctx.report.id)

    async def _publish_side_effects(self, ctx: ReportContext) -> StepResult:
        assert ctx.report is not None
        if ctx.reused:
            return StepSucceeded()
        report = ctx.report

        await self._side_channel.record(
            AuditEvent.for_principal(
                ctx.principal,
                action=AuditAction.GENERATE_PACT_REPORT,
                entity_type=AuditEntityType.PACT_REPORT,
                entity_id=report.id,
                result=AuditResult.SUCCESS,
                metadata={
                    "jurisdiction": report.jurisdiction,
                    "period_start": report.period_start.isoformat(),
                    "period_end": report.period_end.isoformat(),
                    "order_count": report.order_count,
                    "row_count": report.row_count,
                    "file_key": report.file.key,
                },
            )
        )
        await self._side_channel.publish(
            RegulatoryReportGenerated(
                aggregate_id=report.id,
                actor_id=str(ctx.principal.user_id) if ctx.principal else None,
                jurisdiction=report.jurisdiction,
                period_start=report.period_start,
                period_end=report.period_end,
                file_key=report.file.key,
                order_count=report.order_count,
                row_count=report.row_count,
            )
        )
        return StepSucceeded()


__all__ = [
    "PACT_COLUMNS",
    "PactReportRow",
    "RegulatoryReportGenerator",
    "ReportContext",
    "ReportResult",
    "flatten_shipments",
    "period_bounds",
    "render_csv",
    "report_file_key",
]
