"""Notification events emitted by the sagas and the report generator."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from orderflow.events.base import DomainEvent
from orderflow.types import OrderStatus, ReconciliationKind


class OrderCreated(DomainEvent):
    """An order was persisted in PAID status."""

    event_name: ClassVar[str] = "order/created"

    aggregate_type: str = "Order"
    user_id: UUID | None = None
    status: OrderStatus = OrderStatus.PAID
    total_amount: Decimal
    stake_call_required: bool = False
    payment_transaction_id: str


class OrderShipped(DomainEvent):
    """Payment was captured, a label purchased and the order marked SHIPPED."""

    event_name: ClassVar[str] = "order/shipped"

    aggregate_type: str = "Order"
    user_id: UUID | None = None
    tracking_number: str
    carrier: str
    label_url: str | None = None
    capture_transaction_id: str


class StakeCallLogged(DomainEvent):
    """An operator logged a STAKE Act verification call for an order."""

    event_name: ClassVar[str] = "order/stake-call-logged"

    aggregate_type: str = "Order"
    stake_call_id: UUID
    admin_user_id: UUID


class RegulatoryReportGenerated(DomainEvent):
    """A new PACT report artifact was written."""

    event_name: ClassVar[str] = "report/generated"

    aggregate_type: str = "RegulatoryReport"
    jurisdiction: str
    period_start: date
    period_end: date
    file_key: str
    order_count: int
    row_count: int


class ReconciliationOpened(DomainEvent):
    """A saga opened a reconciliation case for operator follow-up."""

    event_name: ClassVar[str] = "reconciliation/opened"

    aggregate_type: str = "ReconciliationCase"
    order_id: UUID | None = None
    kind: ReconciliationKind
    transaction_id: str | None = None
    reason_code: str | None = None


__all__ = [
    "OrderCreated",
    "OrderShipped",
    "ReconciliationOpened",
    "RegulatoryReportGenerated",
    "StakeCallLogged",
]
