"""
Builders for order records used directly by repository and saga tests.

Each builder returns a valid record with sensible defaults; keyword
arguments override individual fields.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from orderflow.models import (
    Address,
    AgeVerificationRecord,
    ComplianceSnapshot,
    FileRef,
    Order,
    OrderItem,
    Payment,
    ReconciliationCase,
    RegulatoryReport,
)
from orderflow.repositories.orders import OrderBundle
from orderflow.types import (
    CheckResult,
    ComplianceDecision,
    OrderStatus,
    PaymentStatus,
    ReconciliationKind,
    VerificationStatus,
)

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def make_address(**overrides: Any) -> Address:
    values: dict[str, Any] = {
        "recipient_name": "Ada Lovelace",
        "line1": "1 Main St",
        "city": "Albany",
        "state": "NY",
        "postal_code": "12207",
    }
    values.update(overrides)
    return Address(**values)


def make_item(**overrides: Any) -> OrderItem:
    values: dict[str, Any] = {
        "product_id": uuid4(),
        "sku": "TOB-001",
        "product_name": "Classic Tobacco Pouches",
        "quantity": 2,
        "unit_price": Decimal("10.00"),
        "net_weight_grams": Decimal("15"),
    }
    values.update(overrides)
    return OrderItem(**values)


def make_order(
    shipping_address_id: UUID | None = None,
    *,
    status: OrderStatus = OrderStatus.PAID,
    **overrides: Any,
) -> Order:
    address_id = shipping_address_id or uuid4()
    values: dict[str, Any] = {
        "shipping_address_id": address_id,
        "billing_address_id": address_id,
        "status": status,
        "subtotal": Decimal("20.00"),
        "tax_amount": Decimal("0.00"),
        "excise_tax_amount": Decimal("0.00"),
        "total_amount": Decimal("20.00"),
        "items": (make_item(),),
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    values.update(overrides)
    return Order(**values)


def make_payment(order: Order, **overrides: Any) -> Payment:
    values: dict[str, Any] = {
        "order_id": order.id,
        "provider": "authorizenet",
        "status": PaymentStatus.AUTHORIZED,
        "amount": order.total_amount,
        "transaction_id": f"auth-{order.id.hex[:8]}",
        "avs_result": "Y",
        "cvv_result": "M",
        "created_at": FIXED_NOW,
    }
    values.update(overrides)
    return Payment(**values)


def make_snapshot(order: Order, **overrides: Any) -> ComplianceSnapshot:
    values: dict[str, Any] = {
        "order_id": order.id,
        "shipping_state": "NY",
        "age_verification_check": CheckResult.PASS,
        "ca_flavor_check": CheckResult.PASS,
        "ca_sensory_check": CheckResult.PASS,
        "ca_utl_check": CheckResult.PASS,
        "po_box_check": CheckResult.PASS,
        "stake_call_required": False,
        "final_decision": ComplianceDecision.ALLOW,
        "created_at": FIXED_NOW,
    }
    values.update(overrides)
    return ComplianceSnapshot(**values)


def make_age_record(order: Order, **overrides: Any) -> AgeVerificationRecord:
    values: dict[str, Any] = {
        "order_id": order.id,
        "provider": "veriff",
        "status": VerificationStatus.PASS,
        "reference_id": "veriff-session-1",
        "verified_at": FIXED_NOW,
    }
    values.update(overrides)
    return AgeVerificationRecord(**values)


def make_bundle(order: Order) -> OrderBundle:
    return OrderBundle(
        order=order,
        payment=make_payment(order),
        compliance_snapshot=make_snapshot(order),
        age_verification=make_age_record(order),
    )


def make_report(
    jurisdiction: str = "CA",
    period_start: date = date(2026, 1, 1),
    period_end: date = date(2026, 1, 31),
    **overrides: Any,
) -> RegulatoryReport:
    key = f"pact-reports/{jurisdiction}-{period_start.isoformat()}-{period_end.isoformat()}.csv"
    values: dict[str, Any] = {
        "jurisdiction": jurisdiction,
        "period_start": period_start,
        "period_end": period_end,
        "file": FileRef(
            bucket="lumi-files",
            key=key,
            content_type="text/csv",
            size_bytes=128,
            sha256="ab" * 32,
            created_at=FIXED_NOW,
        ),
        "order_count": 1,
        "row_count": 1,
        "generated_at": FIXED_NOW,
    }
    values.update(overrides)
    return RegulatoryReport(**values)


def make_case(
    kind: ReconciliationKind = ReconciliationKind.CAPTURED_NOT_LABELED, **overrides: Any
) -> ReconciliationCase:
    values: dict[str, Any] = {
        "kind": kind,
        "order_id": uuid4(),
        "transaction_id": "capture-2",
        "amount": Decimal("29.99"),
        "reason_code": "SHIPPO_NO_UPS_RATES",
        "details": {"step": "purchase_label"},
        "opened_at": FIXED_NOW,
    }
    values.update(overrides)
    return ReconciliationCase(**values)
