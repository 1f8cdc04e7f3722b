"""
Order repository.

Persists the order bundle (order, line items, payment, compliance snapshot,
age verification record) as one atomic commit and performs the forward-only
state transitions the fulfillment saga needs.

Write-once rules are enforced here: a second compliance snapshot or age
verification record for the same order raises ``WriteOnceViolationError``
and leaves storage unchanged.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from orderflow.exceptions import (
    InvalidStateTransitionError,
    OrderNotFoundError,
    WriteOnceViolationError,
)
from orderflow.models import (
    Address,
    AgeVerificationRecord,
    ComplianceSnapshot,
    Order,
    OrderItem,
    Payment,
    StakeCall,
)
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ITEM_COUNT,
    ATTR_ORDER_ID,
)
from orderflow.repositories._connection import as_utc, dialect_name, execute_with_connection
from orderflow.repositories.catalog import InMemoryCatalogRepository, _address_from_row
from orderflow.repositories.schema import (
    addresses,
    age_verifications,
    compliance_snapshots,
    order_items,
    orders,
    payments,
    stake_calls,
)
from orderflow.types import (
    CheckResult,
    ComplianceDecision,
    OrderStatus,
    PaymentStatus,
    VerificationStatus,
)


@dataclass(frozen=True)
class OrderBundle:
    """The four records written at the order creation commit point."""

    order: Order
    payment: Payment
    compliance_snapshot: ComplianceSnapshot
    age_verification: AgeVerificationRecord


@dataclass(frozen=True)
class ShippedOrder:
    """A shipped order joined with its shipping address, for reporting."""

    order: Order
    shipping_address: Address


@runtime_checkable
class OrderRepository(Protocol):
    """Protocol for order persistence."""

    async def create_order_bundle(self, bundle: OrderBundle) -> None:
        """
        Atomically persist order, items, payment, snapshot and age record.

        Raises:
            WriteOnceViolationError: If a snapshot or age record already
                exists for the order
        """
        ...

    async def get_order(self, order_id: UUID) -> Order | None: ...

    async def get_compliance_snapshot(self, order_id: UUID) -> ComplianceSnapshot | None: ...

    async def get_age_verification(self, order_id: UUID) -> AgeVerificationRecord | None: ...

    async def get_payments(self, order_id: UUID) -> list[Payment]:
        """Payments for the order, oldest first."""
        ...

    async def get_authorized_payment(self, order_id: UUID) -> Payment | None:
        """The most recent payment in AUTHORIZED status, if any."""
        ...

    async def mark_payment_captured(
        self, payment_id: UUID, capture_transaction_id: str, captured_at: datetime
    ) -> Payment:
        """
        Move a payment from AUTHORIZED to CAPTURED.

        Raises:
            InvalidStateTransitionError: If the payment is not AUTHORIZED
        """
        ...

    async def mark_order_shipped(
        self,
        order_id: UUID,
        *,
        carrier: str,
        tracking_number: str,
        label_url: str | None,
        label_file_key: str | None,
        shipped_at: datetime,
    ) -> Order:
        """
        Move an order from PAID to SHIPPED.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStateTransitionError: If the order is not PAID
        """
        ...

    async def add_stake_call(self, stake_call: StakeCall) -> StakeCall: ...

    async def list_stake_calls(self, order_id: UUID) -> list[StakeCall]: ...

    async def list_shipped_orders(
        self, jurisdiction: str, shipped_from: datetime, shipped_to: datetime
    ) -> list[ShippedOrder]:
        """
        SHIPPED orders to ``jurisdiction`` with shipped_at in the inclusive
        range, ordered by shipped_at ascending.
        """
        ...


class InMemoryOrderRepository:
    """
    In-memory order repository for tests and development.

    Shipping addresses for reporting are resolved through the given catalog.
    """

    def __init__(self, catalog: InMemoryCatalogRepository | None = None) -> None:
        self._catalog = catalog or InMemoryCatalogRepository()
        self._orders: dict[UUID, Order] = {}
        self._payments: dict[UUID, Payment] = {}
        self._snapshots: dict[UUID, ComplianceSnapshot] = {}
        self._age_verifications: dict[UUID, AgeVerificationRecord] = {}
        self._stake_calls: dict[UUID, list[StakeCall]] = {}
        self._lock = asyncio.Lock()

    async def create_order_bundle(self, bundle: OrderBundle) -> None:
        order_id = bundle.order.id
        async with self._lock:
            if order_id in self._orders:
                raise WriteOnceViolationError("Order", str(order_id))
            if order_id in self._snapshots:
                raise WriteOnceViolationError("ComplianceSnapshot", str(order_id))
            if order_id in self._age_verifications:
                raise WriteOnceViolationError("AgeVerification", str(order_id))
            self._orders[order_id] = bundle.order
            self._payments[bundle.payment.id] = bundle.payment
            self._snapshots[order_id] = bundle.compliance_snapshot
            self._age_verifications[order_id] = bundle.age_verification

    async def get_order(self, order_id: UUID) -> Order | None:
        return self._orders.get(order_id)

    async def get_compliance_snapshot(self, order_id: UUID) -> ComplianceSnapshot | None:
        return self._snapshots.get(order_id)

    async def get_age_verification(self, order_id: UUID) -> AgeVerificationRecord | None:
        return self._age_verifications.get(order_id)

    async def get_payments(self, order_id: UUID) -> list[Payment]:
        found = [p for p in self._payments.values() if p.order_id == order_id]
        return sorted(found, key=lambda p: p.created_at)

    async def get_authorized_payment(self, order_id: UUID) -> Payment | None:
        authorized = [
            p for p in await self.get_payments(order_id) if p.status is PaymentStatus.AUTHORIZED
        ]
        return authorized[-1] if authorized else None

    async def mark_payment_captured(
        self, payment_id: UUID, capture_transaction_id: str, captured_at: datetime
    ) -> Payment:
        async with self._lock:
            payment = self._payments[payment_id]
            captured = payment.mark_captured(capture_transaction_id, captured_at)
            self._payments[payment_id] = captured
        return captured

    async def mark_order_shipped(
        self,
        order_id: UUID,
        *,
        carrier: str,
        tracking_number: str,
        label_url: str | None,
        label_file_key: str | None,
        shipped_at: datetime,
    ) -> Order:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            shipped = order.mark_shipped(
                carrier=carrier,
                tracking_number=tracking_number,
                label_url=label_url,
                label_file_key=label_file_key,
                shipped_at=shipped_at,
            )
            self._orders[order_id] = shipped
        return shipped

    async def add_stake_call(self, stake_call: StakeCall) -> StakeCall:
        async with self._lock:
            if stake_call.order_id not in self._orders:
                raise OrderNotFoundError(stake_call.order_id)
            self._stake_calls.setdefault(stake_call.order_id, []).append(stake_call)
        return stake_call

    async def list_stake_calls(self, order_id: UUID) -> list[StakeCall]:
        return list(self._stake_calls.get(order_id, []))

    async def list_shipped_orders(
        self, jurisdiction: str, shipped_from: datetime, shipped_to: datetime
    ) -> list[ShippedOrder]:
        found: list[ShippedOrder] = []
        for order in self._orders.values():
            if order.status is not OrderStatus.SHIPPED or order.shipped_at is None:
                continue
            if not shipped_from <= order.shipped_at <= shipped_to:
                continue
            address = await self._catalog.get_address(order.shipping_address_id)
            if address is None or address.state.strip().upper() != jurisdiction:
                continue
            found.append(ShippedOrder(order=order, shipping_address=address))
        found.sort(key=lambda s: s.order.shipped_at)  # type: ignore[arg-type, return-value]
        return found

    async def put_order(self, order: Order) -> None:
        """Store an order directly, bypassing the creation bundle (test setup)."""
        async with self._lock:
            self._orders[order.id] = order

    async def put_payment(self, payment: Payment) -> None:
        async with self._lock:
            self._payments[payment.id] = payment

    async def put_compliance_snapshot(self, snapshot: ComplianceSnapshot) -> None:
        async with self._lock:
            if snapshot.order_id in self._snapshots:
                raise WriteOnceViolationError("ComplianceSnapshot", str(snapshot.order_id))
            self._snapshots[snapshot.order_id] = snapshot

    async def clear(self) -> None:
        async with self._lock:
            self._orders.clear()
            self._payments.clear()
            self._snapshots.clear()
            self._age_verifications.clear()
            self._stake_calls.clear()


class SQLAlchemyOrderRepository:
    """
    Order repository backed by SQL tables.

    ``create_order_bundle`` runs in a single transaction; a unique-key
    violation on the snapshot or age record rolls back every write.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._db_system = dialect_name(conn)

    async def create_order_bundle(self, bundle: OrderBundle) -> None:
        order = bundle.order
        with self._tracer.span(
            "orderflow.repository.create_order_bundle",
            {
                ATTR_ORDER_ID: str(order.id),
                ATTR_ITEM_COUNT: len(order.items),
                ATTR_DB_SYSTEM: self._db_system,
                ATTR_DB_OPERATION: "INSERT",
            },
        ):
            try:
                async with execute_with_connection(self.conn) as conn:
                    await conn.execute(insert(orders).values(**_order_values(order)))
                    if order.items:
                        await conn.execute(
                            insert(order_items),
                            [
                                _item_values(order.id, position, item)
                                for position, item in enumerate(order.items)
                            ],
                        )
                    await conn.execute(insert(payments).values(**_payment_values(bundle.payment)))
                    await conn.execute(
                        insert(compliance_snapshots).values(
                            **_snapshot_values(bundle.compliance_snapshot)
                        )
                    )
                    await conn.execute(
                        insert(age_verifications).values(
                            **_age_values(bundle.age_verification)
                        )
                    )
            except IntegrityError as e:
                raise WriteOnceViolationError("OrderBundle", str(order.id)) from e

    async def get_order(self, order_id: UUID) -> Order | None:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            row = (
                (await conn.execute(select(orders).where(orders.c.id == order_id)))
                .mappings()
                .first()
            )
            if row is None:
                return None
            items = (
                (
                    await conn.execute(
                        select(order_items)
                        .where(order_items.c.order_id == order_id)
                        .order_by(order_items.c.position)
                    )
                )
                .mappings()
                .all()
            )
        return _order_from_row(row, items)

    async def get_compliance_snapshot(self, order_id: UUID) -> ComplianceSnapshot | None:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            row = (
                (
                    await conn.execute(
                        select(compliance_snapshots).where(
                            compliance_snapshots.c.order_id == order_id
                        )
                    )
                )
                .mappings()
                .first()
            )
        if row is None:
            return None
        return ComplianceSnapshot(
            id=row["id"],
            order_id=row["order_id"],
            shipping_state=row["shipping_state"],
            age_verification_check=CheckResult(row["age_verification_check"]),
            ca_flavor_check=CheckResult(row["ca_flavor_check"]),
            ca_sensory_check=CheckResult(row["ca_sensory_check"]),
            ca_utl_check=CheckResult(row["ca_utl_check"]),
            po_box_check=CheckResult(row["po_box_check"]),
            stake_call_required=bool(row["stake_call_required"]),
            final_decision=ComplianceDecision(row["final_decision"]),
            reason_codes=tuple(row["reason_codes"] or ()),
            created_at=as_utc(row["created_at"]),
        )

    async def get_age_verification(self, order_id: UUID) -> AgeVerificationRecord | None:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            row = (
                (
                    await conn.execute(
                        select(age_verifications).where(age_verifications.c.order_id == order_id)
                    )
                )
                .mappings()
                .first()
            )
        if row is None:
            return None
        return AgeVerificationRecord(
            id=row["id"],
            order_id=row["order_id"],
            provider=row["provider"],
            status=VerificationStatus(row["status"]),
            reference_id=row["reference_id"],
            reason_code=row["reason_code"],
            verified_at=as_utc(row["verified_at"]),
        )

    async def get_payments(self, order_id: UUID) -> list[Payment]:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            rows = (
                (
                    await conn.execute(
                        select(payments)
                        .where(payments.c.order_id == order_id)
                        .order_by(payments.c.created_at)
                    )
                )
                .mappings()
                .all()
            )
        return [_payment_from_row(row) for row in rows]

    async def get_authorized_payment(self, order_id: UUID) -> Payment | None:
        authorized = [
            p for p in await self.get_payments(order_id) if p.status is PaymentStatus.AUTHORIZED
        ]
        return authorized[-1] if authorized else None

    async def mark_payment_captured(
        self, payment_id: UUID, capture_transaction_id: str, captured_at: datetime
    ) -> Payment:
        with self._tracer.span(
            "orderflow.repository.mark_payment_captured",
            {ATTR_DB_SYSTEM: self._db_system, ATTR_DB_OPERATION: "UPDATE"},
        ):
            async with execute_with_connection(self.conn) as conn:
                row = (
                    (await conn.execute(select(payments).where(payments.c.id == payment_id)))
                    .mappings()
                    .first()
                )
                if row is None:
                    raise InvalidStateTransitionError(
                        "Payment", payment_id, "MISSING", PaymentStatus.CAPTURED.value
                    )
                captured = _payment_from_row(row).mark_captured(
                    capture_transaction_id, captured_at
                )
                result = await conn.execute(
                    update(payments)
                    .where(
                        payments.c.id == payment_id,
                        payments.c.status == PaymentStatus.AUTHORIZED.value,
                    )
                    .values(
                        status=PaymentStatus.CAPTURED.value,
                        capture_transaction_id=capture_transaction_id,
                        captured_at=captured_at,
                    )
                )
                if result.rowcount != 1:
                    raise InvalidStateTransitionError(
                        "Payment", payment_id, row["status"], PaymentStatus.CAPTURED.value
                    )
        return captured

    async def mark_order_shipped(
        self,
        order_id: UUID,
        *,
        carrier: str,
        tracking_number: str,
        label_url: str | None,
        label_file_key: str | None,
        shipped_at: datetime,
    ) -> Order:
        with self._tracer.span(
            "orderflow.repository.mark_order_shipped",
            {
                ATTR_ORDER_ID: str(order_id),
                ATTR_DB_SYSTEM: self._db_system,
                ATTR_DB_OPERATION: "UPDATE",
            },
        ):
            async with execute_with_connection(self.conn) as conn:
                result = await conn.execute(
                    update(orders)
                    .where(orders.c.id == order_id, orders.c.status == OrderStatus.PAID.value)
                    .values(
                        status=OrderStatus.SHIPPED.value,
                        carrier=carrier,
                        tracking_number=tracking_number,
                        label_url=label_url,
                        label_file_key=label_file_key,
                        shipped_at=shipped_at,
                        updated_at=shipped_at,
                    )
                )
                if result.rowcount != 1:
                    current = (
                        await conn.execute(select(orders.c.status).where(orders.c.id == order_id))
                    ).scalar()
                    if current is None:
                        raise OrderNotFoundError(order_id)
                    raise InvalidStateTransitionError(
                        "Order", order_id, current, OrderStatus.SHIPPED.value
                    )
        shipped = await self.get_order(order_id)
        if shipped is None:
            raise OrderNotFoundError(order_id)
        return shipped

    async def add_stake_call(self, stake_call: StakeCall) -> StakeCall:
        try:
            async with execute_with_connection(self.conn) as conn:
                await conn.execute(insert(stake_calls).values(**stake_call.model_dump()))
        except IntegrityError as e:
            raise OrderNotFoundError(stake_call.order_id) from e
        return stake_call

    async def list_stake_calls(self, order_id: UUID) -> list[StakeCall]:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            rows = (
                (
                    await conn.execute(
                        select(stake_calls)
                        .where(stake_calls.c.order_id == order_id)
                        .order_by(stake_calls.c.called_at)
                    )
                )
                .mappings()
                .all()
            )
        return [
            StakeCall(
                id=row["id"],
                order_id=row["order_id"],
                admin_user_id=row["admin_user_id"],
                notes=row["notes"],
                called_at=as_utc(row["called_at"]),
            )
            for row in rows
        ]

    async def list_shipped_orders(
        self, jurisdiction: str, shipped_from: datetime, shipped_to: datetime
    ) -> list[ShippedOrder]:
        with self._tracer.span(
            "orderflow.repository.list_shipped_orders",
            {ATTR_DB_SYSTEM: self._db_system, ATTR_DB_OPERATION: "SELECT"},
        ):
            async with execute_with_connection(self.conn, transactional=False) as conn:
                order_rows = (
                    (
                        await conn.execute(
                            select(orders)
                            .join(addresses, addresses.c.id == orders.c.shipping_address_id)
                            .where(
                                and_(
                                    orders.c.status == OrderStatus.SHIPPED.value,
                                    orders.c.shipped_at >= shipped_from,
                                    orders.c.shipped_at <= shipped_to,
                                    func.upper(func.trim(addresses.c.state)) == jurisdiction,
                                )
                            )
                            .order_by(orders.c.shipped_at)
                        )
                    )
                    .mappings()
                    .all()
                )
                if not order_rows:
                    return []

                order_ids = [row["id"] for row in order_rows]
                address_ids = {row["shipping_address_id"] for row in order_rows}
                address_rows = (
                    (await conn.execute(select(addresses).where(addresses.c.id.in_(address_ids))))
                    .mappings()
                    .all()
                )
                item_rows = (
                    (
                        await conn.execute(
                            select(order_items)
                            .where(order_items.c.order_id.in_(order_ids))
                            .order_by(order_items.c.order_id, order_items.c.position)
                        )
                    )
                    .mappings()
                    .all()
                )

        addresses_by_id = {row["id"]: _address_from_row(row) for row in address_rows}
        items_by_order: dict[UUID, list[Any]] = {order_id: [] for order_id in order_ids}
        for item in item_rows:
            items_by_order[item["order_id"]].append(item)

        return [
            ShippedOrder(
                order=_order_from_row(row, items_by_order[row["id"]]),
                shipping_address=addresses_by_id[row["shipping_address_id"]],
            )
            for row in order_rows
        ]


def _order_values(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "shipping_address_id": order.shipping_address_id,
        "billing_address_id": order.billing_address_id,
        "status": order.status.value,
        "subtotal": order.subtotal,
        "tax_amount": order.tax_amount,
        "excise_tax_amount": order.excise_tax_amount,
        "total_amount": order.total_amount,
        "carrier": order.carrier,
        "tracking_number": order.tracking_number,
        "shipped_at": order.shipped_at,
        "label_url": order.label_url,
        "label_file_key": order.label_file_key,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def _item_values(order_id: UUID, position: int, item: OrderItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "order_id": order_id,
        "position": position,
        "product_id": item.product_id,
        "sku": item.sku,
        "product_name": item.product_name,
        "quantity": item.quantity,
        "unit_price": item.unit_price,
        "net_weight_grams": item.net_weight_grams,
    }


def _payment_values(payment: Payment) -> dict[str, Any]:
    values = payment.model_dump()
    values["status"] = payment.status.value
    return values


def _snapshot_values(snapshot: ComplianceSnapshot) -> dict[str, Any]:
    values = snapshot.model_dump()
    for name in (
        "age_verification_check",
        "ca_flavor_check",
        "ca_sensory_check",
        "ca_utl_check",
        "po_box_check",
    ):
        values[name] = getattr(snapshot, name).value
    values["final_decision"] = snapshot.final_decision.value
    values["reason_codes"] = list(snapshot.reason_codes)
    return values


def _age_values(record: AgeVerificationRecord) -> dict[str, Any]:
    values = record.model_dump()
    values["status"] = record.status.value
    return values


def _order_from_row(row: Any, item_rows: Any) -> Order:
    return Order(
        id=row["id"],
        user_id=row["user_id"],
        shipping_address_id=row["shipping_address_id"],
        billing_address_id=row["billing_address_id"],
        status=OrderStatus(row["status"]),
        subtotal=Decimal(row["subtotal"]),
        tax_amount=Decimal(row["tax_amount"]),
        excise_tax_amount=Decimal(row["excise_tax_amount"]),
        total_amount=Decimal(row["total_amount"]),
        items=tuple(
            OrderItem(
                id=item["id"],
                product_id=item["product_id"],
                sku=item["sku"],
                product_name=item["product_name"],
                quantity=item["quantity"],
                unit_price=Decimal(item["unit_price"]),
                net_weight_grams=Decimal(item["net_weight_grams"]),
            )
            for item in item_rows
        ),
        carrier=row["carrier"],
        tracking_number=row["tracking_number"],
        shipped_at=as_utc(row["shipped_at"]),
        label_url=row["label_url"],
        label_file_key=row["label_file_key"],
        created_at=as_utc(row["created_at"]),
        updated_at=as_utc(row["updated_at"]),
    )


def _payment_from_row(row: Any) -> Payment:
    return Payment(
        id=row["id"],
        order_id=row["order_id"],
        provider=row["provider"],
        status=PaymentStatus(row["status"]),
        amount=Decimal(row["amount"]),
        transaction_id=row["transaction_id"],
        capture_transaction_id=row["capture_transaction_id"],
        avs_result=row["avs_result"],
        cvv_result=row["cvv_result"],
        created_at=as_utc(row["created_at"]),
        captured_at=as_utc(row["captured_at"]),
    )


__all__ = [
    "InMemoryOrderRepository",
    "OrderBundle",
    "OrderRepository",
    "SQLAlchemyOrderRepository",
    "ShippedOrder",
]
