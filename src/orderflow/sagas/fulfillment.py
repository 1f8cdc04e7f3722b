"""
Fulfillment saga.

Takes a PAID order to SHIPPED under an exclusive per-order lock:

1. load_order: order, snapshot, authorized payment, STAKE calls, address
2. check_preconditions: every violated precondition is reported
3. capture_payment: capture the stored total
4. mark_payment_captured: AUTHORIZED -> CAPTURED, irreversible; a failed write
   opens a reconciliation case
5. purchase_label: adult-signature label; failure opens a reconciliation case
6. archive_label: copy the label PDF to object storage, best-effort
7. mark_shipped: PAID -> SHIPPED with carrier and tracking number; a failed
   write opens a reconciliation case
8. publish_side_effects: notification and audit, best-effort

Everything from capture onwards runs to a terminal state even if the caller
is cancelled, and the lock stays held until it does. An order with an open
reconciliation case is not shipped again until an operator resolves it.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from orderflow.audit.side_channel import SideChannel
from orderflow.config import OrderFlowConfig
from orderflow.events import OrderShipped, ReconciliationOpened
from orderflow.exceptions import (
    ComplianceBlockedError,
    GatewayFailureError,
    InvalidInputError,
    PermissionDeniedError,
    ReconciliationRequiredError,
)
from orderflow.gateways.errors import GatewayError
from orderflow.gateways.interface import (
    Capture,
    LabelDownloader,
    LabelGateway,
    ObjectStorage,
    PaymentGateway,
    ShippingAddress,
    ShippingLabel,
)
from orderflow.gateways.storage import sha256_hex
from orderflow.locks import LockAcquisitionError, LockManager, order_lock_key
from orderflow.models import (
    Address,
    AuditEvent,
    ComplianceSnapshot,
    FileRef,
    Order,
    Payment,
    Principal,
    ReconciliationCase,
    StakeCall,
)
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_ORDER_ID, ATTR_SAGA_NAME
from orderflow.repositories.catalog import CatalogRepository
from orderflow.repositories.orders import OrderRepository
from orderflow.repositories.reconciliation import ReconciliationRepository
from orderflow.sagas.base import (
    SagaContext,
    SagaRunner,
    SagaStep,
    StepFailed,
    StepResult,
    StepSkipped,
    StepSucceeded,
)
from orderflow.types import (
    AuditAction,
    AuditEntityType,
    AuditResult,
    ComplianceDecision,
    OrderStatus,
    ReconciliationKind,
)

logger = logging.getLogger(__name__)

LABEL_CONTENT_TYPE = "application/pdf"


class ShipmentResult(BaseModel):
    """
    Outcome of a successful shipment.

    Attributes:
        order_id: The order, now SHIPPED
        tracking_number: Carrier tracking number from the purchased label
        carrier: Carrier name, e.g. UPS
        label_url: Provider URL of the label PDF
        label_file: Archived copy of the label, None if archiving failed
        capture_transaction_id: Capture id from the payment gateway
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    tracking_number: str
    carrier: str
    label_url: str | None = None
    label_file: FileRef | None = None
    capture_transaction_id: str


@dataclass
class FulfillmentContext(SagaContext):
    """State carried between the fulfillment steps."""

    order: Order | None = None
    snapshot: ComplianceSnapshot | None = None
    payment: Payment | None = None
    stake_calls: list[StakeCall] = field(default_factory=list)
    shipping_address: Address | None = None
    open_cases: list[ReconciliationCase] = field(default_factory=list)
    capture: Capture | None = None
    label: ShippingLabel | None = None
    label_file: FileRef | None = None


def shipping_preconditions(
    order: Order,
    snapshot: ComplianceSnapshot | None,
    payment: Payment | None,
    stake_calls: list[StakeCall],
    shipping_address: Address,
    open_cases: list[ReconciliationCase] | None = None,
) -> list[str]:
    """
    Every reason the order may not ship, in a fixed order.

    An empty list means the order may ship.
    """
    failures: list[str] = []
    if order.status is not OrderStatus.PAID:
        failures.append("ORDER_NOT_PAID")
    if snapshot is None:
        failures.append("COMPLIANCE_SNAPSHOT_MISSING")
    elif snapshot.final_decision is not ComplianceDecision.ALLOW:
        failures.append("COMPLIANCE_NOT_ALLOWED")
    if shipping_address.is_po_box:
        failures.append("PO_BOX_NOT_ALLOWED")
    if payment is None:
        failures.append("PAYMENT_NOT_AUTHORIZED")
    if snapshot is not None and snapshot.stake_call_required and not stake_calls:
        failures.append("STAKE_CALL_MISSING")
    if open_cases:
        failures.append("RECONCILIATION_OPEN")
    return failures


def label_file_key(prefix: str, order_id: UUID, sha256: str) -> str:
    """Object key for an archived label: ``<prefix>/<order_id>-<sha256[:16]>.pdf``."""
    return f"{prefix}/{order_id}-{sha256[:16]}.pdf"


class FulfillmentSaga:
    """
    Ships PAID orders.

    Example:
        >>> saga = FulfillmentSaga(
        ...     orders=orders,
        ...     catalog=catalog,
        ...     reconciliation=reconciliation,
        ...     payments=authorizenet,
        ...     labels=shippo,
        ...     downloader=HttpLabelDownloader(),
        ...     storage=storage,
        ...     locks=InMemoryLockManager(),
        ...     side_channel=side_channel,
        ... )
        >>> result = await saga.ship(order_id, admin)
        >>> result.carrier
        'UPS'
    """

    name = "fulfillment"

    def __init__(
        self,
        *,
        orders: OrderRepository,
        catalog: CatalogRepository,
        reconciliation: ReconciliationRepository,
        payments: PaymentGateway,
        labels: LabelGateway,
        downloader: LabelDownloader,
        storage: ObjectStorage,
        locks: LockManager,
        side_channel: SideChannel,
        config: OrderFlowConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._orders = orders
        self._catalog = catalog
        self._reconciliation = reconciliation
        self._payments = payments
        self._labels = labels
        self._downloader = downloader
        self._storage = storage
        self._locks = locks
        self._side_channel = side_channel
        self._config = config or OrderFlowConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._runner: SagaRunner[FulfillmentContext] = SagaRunner(
            self.name,
            [
                SagaStep("load_order", self._load_order, AuditAction.SHIP_ORDER),
                SagaStep("check_preconditions", self._check_preconditions, AuditAction.SHIP_ORDER),
                SagaStep("capture_payment", self._capture_payment, AuditAction.SHIP_ORDER),
                SagaStep(
                    "mark_payment_captured", self._mark_payment_captured, AuditAction.SHIP_ORDER
                ),
                SagaStep("purchase_label", self._purchase_label, AuditAction.SHIP_ORDER),
                SagaStep("archive_label", self._archive_label, AuditAction.SHIP_ORDER),
                SagaStep("mark_shipped", self._mark_shipped, AuditAction.SHIP_ORDER),
                SagaStep(
                    "publish_side_effects", self._publish_side_effects, AuditAction.SHIP_ORDER
                ),
            ],
            side_channel,
            tracer=self._tracer,
        )

    @property
    def step_names(self) -> list[str]:
        return self._runner.step_names

    async def ship(self, order_id: UUID, principal: Principal) -> ShipmentResult:
        """
        Capture payment, buy a label and mark the order SHIPPED.

        Args:
            order_id: Order to ship
            principal: Caller; must be an ADMIN

        Returns:
            ShipmentResult with tracking details

        Raises:
            PermissionDeniedError: Caller is not an admin
            GatewayFailureError: ORDER_LOCKED, PAYMENT_CAPTURE_FAILED
            ComplianceBlockedError: SHIPPING_NOT_ALLOWED with every reason
            ReconciliationRequiredError: LABEL_PURCHASE_FAILED,
                CAPTURE_PERSISTENCE_FAILED or SHIPMENT_PERSISTENCE_FAILED after capture
        """
        context = FulfillmentContext(principal=principal, entity_id=order_id)

        if not principal.is_admin:
            error = PermissionDeniedError()
            await self._runner.record_failure(
                context, "authorize", AuditAction.SHIP_ORDER, StepFailed(error)
            )
            raise error

        with self._tracer.span(
            "orderflow.saga.fulfillment",
            {ATTR_SAGA_NAME: self.name, ATTR_ORDER_ID: str(order_id)},
        ):
            try:
                async with self._locks.acquire(
                    order_lock_key(order_id), timeout=self._config.lock_timeout
                ):
                    await self._runner.run(context, shield_from="capture_payment")
            except LockAcquisitionError as e:
                error = GatewayFailureError(
                    "ORDER_LOCKED",
                    "Order is being modified by another operation, retry later",
                    details={"lock_key": e.key},
                )
                await self._runner.record_failure(
                    context, "acquire_lock", AuditAction.SHIP_ORDER, StepFailed(error)
                )
                raise error from e

        assert context.order is not None
        assert context.label is not None
        assert context.capture is not None

        logger.info(
            "Order %s shipped",
            order_id,
            extra={
                "order_id": str(order_id),
                "carrier": context.label.carrier,
                "tracking_number": context.label.tracking_number,
            },
        )
        return ShipmentResult(
            order_id=order_id,
            tracking_number=context.label.tracking_number,
            carrier=context.label.carrier,
            label_url=context.label.label_url,
            label_file=context.label_file,
            capture_transaction_id=context.capture.transaction_id,
        )

    async def _load_order(self, ctx: FulfillmentContext) -> StepResult:
        order_id: UUID = ctx.entity_id
        order = await self._orders.get_order(order_id)
        if order is None:
            return StepFailed(InvalidInputError("ORDER_NOT_FOUND", "Order not found"))

        address = await self._catalog.get_address(order.shipping_address_id)
        if address is None:
            return StepFailed(
                InvalidInputError("SHIPPING_ADDRESS_NOT_FOUND", "Shipping address not found")
            )

        ctx.order = order
        ctx.shipping_address = address
        ctx.snapshot = await self._orders.get_compliance_snapshot(order_id)
        ctx.payment = await self._orders.get_authorized_payment(order_id)
        ctx.stake_calls = await self._orders.list_stake_calls(order_id)
        ctx.open_cases = await self._reconciliation.list_open(order_id=order_id)
        return StepSucceeded()

    async def _check_preconditions(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.order is not None
        assert ctx.shipping_address is not None

        failures = shipping_preconditions(
            ctx.order,
            ctx.snapshot,
            ctx.payment,
            ctx.stake_calls,
            ctx.shipping_address,
            ctx.open_cases,
        )
        if failures:
            return StepFailed(
                ComplianceBlockedError(
                    "SHIPPING_NOT_ALLOWED",
                    "Order cannot be shipped",
                    reasons=failures,
                )
            )
        return StepSucceeded()

    async def _capture_payment(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.order is not None
        assert ctx.payment is not None

        try:
            capture = await self._payments.capture(
                ctx.payment.transaction_id, ctx.order.capture_amount
            )
        except GatewayError as e:
            return StepFailed(
                GatewayFailureError(
                    "PAYMENT_CAPTURE_FAILED",
                    "Payment capture failed",
                    reason_code=e.code,
                ),
                audit_reason=f"PAYMENT_CAPTURE_FAILED:{e.code}",
            )

        ctx.capture = capture
        return StepSucceeded(capture.transaction_id)

    async def _mark_payment_captured(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.payment is not None
        assert ctx.capture is not None

        try:
            ctx.payment = await self._orders.mark_payment_captured(
                ctx.payment.id, ctx.capture.transaction_id, self._clock()
            )
        except Exception as e:
            case_id = await self._open_case(
                ctx,
                ReconciliationKind.CAPTURED_NOT_PERSISTED,
                "CAPTURE_PERSISTENCE_FAILED",
                {"payment_id": str(ctx.payment.id), "exception": type(e).__name__},
            )
            return StepFailed(
                ReconciliationRequiredError(
                    "CAPTURE_PERSISTENCE_FAILED",
                    "Payment was captured but the capture could not be recorded",
                    transaction_id=ctx.capture.transaction_id,
                    case_id=case_id,
                ),
                audit_metadata={
                    "capture_transaction_id": ctx.capture.transaction_id,
                    "exception": type(e).__name__,
                },
            )
        return StepSucceeded()

    async def _purchase_label(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.shipping_address is not None
        assert ctx.capture is not None

        try:
            label = await self._labels.create_label(
                self._config.ship_from,
                ShippingAddress.from_address(ctx.shipping_address),
                self._config.parcel,
            )
        except Exception as e:
            reason = e.code if isinstance(e, GatewayError) else type(e).__name__
            case_id = await self._open_case(ctx, ReconciliationKind.CAPTURED_NOT_LABELED, reason)
            return StepFailed(
                ReconciliationRequiredError(
                    "LABEL_PURCHASE_FAILED",
                    "Payment was captured but the shipping label could not be purchased",
                    transaction_id=ctx.capture.transaction_id,
                    case_id=case_id,
                    reason_code=reason,
                ),
                audit_result=AuditResult.FAIL,
                audit_reason=f"SHIPPO_ERROR:{reason}",
                audit_metadata={"capture_transaction_id": ctx.capture.transaction_id},
            )

        ctx.label = label
        return StepSucceeded(label.tracking_number)

    async def _open_case(
        self,
        ctx: FulfillmentContext,
        kind: ReconciliationKind,
        reason_code: str,
        details: dict[str, Any] | None = None,
    ) -> UUID | None:
        assert ctx.order is not None
        assert ctx.capture is not None
        case = ReconciliationCase(
            kind=kind,
            order_id=ctx.order.id,
            transaction_id=ctx.capture.transaction_id,
            amount=ctx.order.capture_amount,
            reason_code=reason_code,
            details=details or {},
        )
        logger.critical(
            "Captured payment %s for order %s needs reconciliation: %s",
            ctx.capture.transaction_id,
            ctx.order.id,
            kind.value,
            extra={
                "order_id": str(ctx.order.id),
                "transaction_id": ctx.capture.transaction_id,
                "reconciliation_kind": kind.value,
                "error_code": reason_code,
            },
        )
        try:
            await self._reconciliation.open_case(case)
        except Exception:
            logger.exception(
                "Failed to open reconciliation case for order %s",
                ctx.order.id,
                extra={"order_id": str(ctx.order.id)},
            )
            return None

        await self._side_channel.publish(
            ReconciliationOpened(
                aggregate_id=case.id,
                order_id=case.order_id,
                kind=case.kind,
                transaction_id=case.transaction_id,
                reason_code=case.reason_code,
            )
        )
        return case.id

    async def _archive_label(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.order is not None
        assert ctx.label is not None

        try:
            data = await self._downloader.download(ctx.label.label_url)
            digest = sha256_hex(data)
            ctx.label_file = await self._storage.put(
                label_file_key(self._config.label_key_prefix, ctx.order.id, digest),
                data,
                LABEL_CONTENT_TYPE,
                ctx.principal.user_id if ctx.principal else None,
            )
        except Exception as e:
            reason = e.code if isinstance(e, GatewayError) else type(e).__name__
            logger.warning(
                "Failed to archive label for order %s: %s",
                ctx.order.id,
                reason,
                exc_info=not isinstance(e, GatewayError),
                extra={"order_id": str(ctx.order.id), "error_code": reason},
            )
            return StepSkipped(f"label archive failed: {reason}")

        return StepSucceeded(ctx.label_file.key)

    async def _mark_shipped(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.order is not None
        assert ctx.label is not None
        assert ctx.capture is not None

        file_key = ctx.label_file.key if ctx.label_file else None
        try:
            ctx.order = await self._orders.mark_order_shipped(
                ctx.order.id,
                carrier=ctx.label.carrier,
                tracking_number=ctx.label.tracking_number,
                label_url=ctx.label.label_url,
                label_file_key=file_key,
                shipped_at=self._clock(),
            )
        except Exception as e:
            shipment = {
                "carrier": ctx.label.carrier,
                "tracking_number": ctx.label.tracking_number,
                "label_url": ctx.label.label_url,
                "label_file_key": file_key,
            }
            case_id = await self._open_case(
                ctx,
                ReconciliationKind.SHIPMENT_NOT_PERSISTED,
                "SHIPMENT_PERSISTENCE_FAILED",
                {**shipment, "exception": type(e).__name__},
            )
            return StepFailed(
                ReconciliationRequiredError(
                    "SHIPMENT_PERSISTENCE_FAILED",
                    "Label was purchased but the order could not be marked shipped",
                    transaction_id=ctx.capture.transaction_id,
                    case_id=case_id,
                    details=shipment,
                ),
                audit_metadata={
                    "capture_transaction_id": ctx.capture.transaction_id,
                    "tracking_number": ctx.label.tracking_number,
                    "exception": type(e).__name__,
                },
            )
        return StepSucceeded()

    async def _publish_side_effects(self, ctx: FulfillmentContext) -> StepResult:
        assert ctx.order is not None
        assert ctx.label is not None
        assert ctx.capture is not None
        order = ctx.order

        await self._side_channel.publish(
            OrderShipped(
                aggregate_id=order.id,
                actor_id=str(ctx.principal.user_id) if ctx.principal else None,
                user_id=order.user_id,
                tracking_number=ctx.label.tracking_number,
                carrier=ctx.label.carrier,
                label_url=ctx.label.label_url,
                capture_transaction_id=ctx.capture.transaction_id,
            )
        )
        await self._side_channel.record(
            AuditEvent.for_principal(
                ctx.principal,
                action=AuditAction.SHIP_ORDER,
                entity_type=AuditEntityType.ORDER,
                entity_id=order.id,
                result=AuditResult.SUCCESS,
                metadata={
                    "tracking_number": ctx.label.tracking_number,
                    "carrier": ctx.label.carrier,
                    "capture_transaction_id": ctx.capture.transaction_id,
                    "label_file_key": order.label_file_key,
                },
            )
        )
        return StepSucceeded()


__all__ = [
    "FulfillmentContext",
    "FulfillmentSaga",
    "ShipmentResult",
    "label_file_key",
    "shipping_preconditions",
]
