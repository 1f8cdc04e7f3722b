"""
Domain records for the order lifecycle.

All records are immutable pydantic models. State changes produce a new
instance through ``model_copy``; repositories replace the stored copy.
Monetary values are ``Decimal`` quantized to two places.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orderflow.exceptions import InvalidStateTransitionError
from orderflow.types import (
    ActorType,
    AuditAction,
    AuditEntityType,
    AuditResult,
    CheckResult,
    ComplianceDecision,
    FlavorType,
    OrderStatus,
    PaymentStatus,
    ReconciliationKind,
    Role,
    VerificationStatus,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


class Principal(BaseModel):
    """Authenticated caller supplied by the surrounding API layer."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class Address(BaseModel):
    """Postal address owned by a user (read-only collaborator entity)."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID | None = None
    recipient_name: str
    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str = "US"
    phone: str | None = None
    is_po_box: bool = False

    @property
    def street(self) -> str:
        """line1 and line2 joined the way report rows print them."""
        if self.line2:
            return f"{self.line1} {self.line2}"
        return self.line1


class Product(BaseModel):
    """Catalog product (read-only collaborator entity)."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    sku: str
    name: str
    flavor_type: FlavorType = FlavorType.TOBACCO
    nicotine_mg: Decimal = Decimal("0")
    net_weight_grams: Decimal = Decimal("0")
    price: Decimal | None = None
    ca_utl_approved: bool = False
    sensory_cooling: bool = False
    active: bool = True


class OrderItem(BaseModel):
    """
    Immutable order line.

    Price, name and weight are snapshots taken at order time and are never
    re-read from the product afterwards.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    product_id: UUID
    sku: str
    product_name: str
    quantity: int = Field(ge=1)
    unit_price: Decimal
    net_weight_grams: Decimal = Decimal("0")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Order(BaseModel):
    """
    Order aggregate.

    Created by the order creation saga in status PAID; status is changed
    only by the fulfillment saga. Orders are never deleted.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID | None = None
    shipping_address_id: UUID
    billing_address_id: UUID
    status: OrderStatus = OrderStatus.DRAFT
    subtotal: Decimal
    tax_amount: Decimal
    excise_tax_amount: Decimal
    total_amount: Decimal
    items: tuple[OrderItem, ...] = ()
    carrier: str | None = None
    tracking_number: str | None = None
    shipped_at: datetime | None = None
    label_url: str | None = None
    label_file_key: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def capture_amount(self) -> Decimal:
        """Amount to capture, recomputed from the stored rounded parts."""
        return self.subtotal + self.tax_amount + self.excise_tax_amount

    def mark_shipped(
        self,
        *,
        carrier: str,
        tracking_number: str,
        label_url: str | None,
        label_file_key: str | None,
        shipped_at: datetime,
    ) -> Order:
        """Return a copy in SHIPPED status. Only PAID orders may ship."""
        if self.status is not OrderStatus.PAID:
            raise InvalidStateTransitionError(
                "Order", self.id, self.status.value, OrderStatus.SHIPPED.value
            )
        return self.model_copy(
            update={
                "status": OrderStatus.SHIPPED,
                "carrier": carrier,
                "tracking_number": tracking_number,
                "label_url": label_url,
                "label_file_key": label_file_key,
                "shipped_at": shipped_at,
                "updated_at": shipped_at,
            }
        )


class Payment(BaseModel):
    """
    Payment against an order.

    Only gateway identifiers and AVS/CVV result codes are stored; card data
    is never persisted.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    provider: str
    status: PaymentStatus
    amount: Decimal
    transaction_id: str
    capture_transaction_id: str | None = None
    avs_result: str | None = None
    cvv_result: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    captured_at: datetime | None = None

    def mark_captured(self, capture_transaction_id: str, captured_at: datetime) -> Payment:
        """Return a copy in CAPTURED status. The transition is irreversible."""
        if self.status is not PaymentStatus.AUTHORIZED:
            raise InvalidStateTransitionError(
                "Payment", self.id, self.status.value, PaymentStatus.CAPTURED.value
            )
        return self.model_copy(
            update={
                "status": PaymentStatus.CAPTURED,
                "capture_transaction_id": capture_transaction_id,
                "captured_at": captured_at,
            }
        )


class ComplianceSnapshot(BaseModel):
    """
    Write-once legal record of why an order was allowed to exist.

    One per order. Per-rule results are derived from the reason codes the
    rule engine reported.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    shipping_state: str
    age_verification_check: CheckResult
    ca_flavor_check: CheckResult
    ca_sensory_check: CheckResult
    ca_utl_check: CheckResult
    po_box_check: CheckResult
    stake_call_required: bool
    final_decision: ComplianceDecision
    reason_codes: tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=utc_now)


class AgeVerificationRecord(BaseModel):
    """Write-once age verification outcome for an order."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    provider: str
    status: VerificationStatus
    reference_id: str
    reason_code: str | None = None
    verified_at: datetime = Field(default_factory=utc_now)


class StakeCall(BaseModel):
    """STAKE Act verification call logged by an operator."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    admin_user_id: UUID
    notes: str
    called_at: datetime = Field(default_factory=utc_now)

    @field_validator("notes")
    @classmethod
    def _notes_not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("notes must not be empty")
        return stripped


class FileRef(BaseModel):
    """Reference to an object written to object storage."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    bucket: str
    key: str
    content_type: str
    size_bytes: int = Field(ge=0)
    sha256: str
    created_by_user_id: UUID | None = None
    created_at: datetime = Field(default_factory=utc_now)


class RegulatoryReport(BaseModel):
    """
    PACT-style report for one jurisdiction and period.

    Write-once per (jurisdiction, period_start, period_end).
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    jurisdiction: str
    period_start: date
    period_end: date
    file: FileRef
    order_count: int = Field(ge=0)
    row_count: int = Field(ge=0)
    generated_by_user_id: UUID | None = None
    generated_at: datetime = Field(default_factory=utc_now)

    def covers(self, period_start: date, period_end: date) -> bool:
        """True if the stored period fully contains the requested window."""
        return self.period_start <= period_start and self.period_end >= period_end


class AuditEvent(BaseModel):
    """
    Append-only audit log entry.

    Never mutated or deleted.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    actor_user_id: UUID | None = None
    actor_type: ActorType = ActorType.SYSTEM
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: str | None = None
    result: AuditResult
    reason_code: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def for_principal(
        cls,
        principal: Principal | None,
        *,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: UUID | str | None,
        result: AuditResult,
        reason_code: str | None = None,
        metadata: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> AuditEvent:
        """
        Build an event attributed to a principal.

        A missing principal (guest checkout) is recorded as a SYSTEM actor.
        """
        return cls(
            actor_user_id=principal.user_id if principal else None,
            actor_type=ActorType.USER if principal else ActorType.SYSTEM,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            result=result,
            reason_code=reason_code,
            metadata=metadata or {},
            occurred_at=occurred_at or utc_now(),
        )


class ReconciliationCase(BaseModel):
    """Operator queue entry for a side effect the saga could not complete."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    kind: ReconciliationKind
    order_id: UUID | None = None
    transaction_id: str | None = None
    amount: Decimal | None = None
    reason_code: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    opened_at: datetime = Field(default_factory=utc_now)
    resolved_at: datetime | None = None
    resolved_by_user_id: UUID | None = None
    resolution_notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None


__all__ = [
    "Address",
    "AgeVerificationRecord",
    "AuditEvent",
    "ComplianceSnapshot",
    "FileRef",
    "Order",
    "OrderItem",
    "Payment",
    "Principal",
    "Product",
    "ReconciliationCase",
    "RegulatoryReport",
    "StakeCall",
    "utc_now",
]
