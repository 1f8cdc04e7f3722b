"""
Enumerations shared across the orderflow package.

Values are stable identifiers persisted in the database and audit log,
so members must never be renamed.
"""

from enum import Enum


class OrderStatus(Enum):
    """
    Lifecycle status of an order.

    Only PAID and SHIPPED carry engine logic. BLOCKED, HOLD and
    READY_TO_SHIP are valid members reserved for extension; blocked carts
    never become order rows.
    """

    DRAFT = "DRAFT"
    """Order exists but has not been paid."""

    PAID = "PAID"
    """Payment authorized; awaiting fulfillment."""

    BLOCKED = "BLOCKED"
    """Reserved: compliance gate refused the order."""

    HOLD = "HOLD"
    """Reserved: operator hold."""

    READY_TO_SHIP = "READY_TO_SHIP"
    """Reserved: staged for shipment."""

    SHIPPED = "SHIPPED"
    """Payment captured and label purchased."""


class PaymentStatus(Enum):
    """Status of a payment. AUTHORIZED -> CAPTURED is the only transition."""

    AUTHORIZED = "AUTHORIZED"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"


class ComplianceDecision(Enum):
    """Final decision of the compliance rule engine."""

    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


class CheckResult(Enum):
    """Outcome of a single compliance rule."""

    PASS = "PASS"
    FAIL = "FAIL"


class VerificationStatus(Enum):
    """Age verification outcome, already resolved by the caller."""

    PASS = "PASS"
    FAIL = "FAIL"


class FlavorType(Enum):
    """
    Flavor classification of a product.

    TOBACCO is the unrestricted baseline; every other value is a
    characterizing flavor for jurisdictions with flavor restrictions.
    """

    TOBACCO = "TOBACCO"
    MENTHOL = "MENTHOL"
    FRUIT = "FRUIT"
    DESSERT = "DESSERT"
    OTHER = "OTHER"


class Role(Enum):
    """Role of an authenticated principal."""

    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


class ActorType(Enum):
    """Who performed an audited action."""

    USER = "USER"
    """An authenticated user (customer or admin)."""

    SYSTEM = "SYSTEM"
    """The system itself, including guest checkout."""


class AuditAction(Enum):
    """
    Actions recorded in the append-only audit log.

    Attributes:
        AGE_VERIFICATION: Age verification gateway decision
        PAYMENT_AUTHORIZATION: Auth-only payment attempt
        CREATE_ORDER: Order creation saga outcome
        SHIP_ORDER: Fulfillment saga outcome
        STAKE_CALL: Operator logged a STAKE Act verification call
        GENERATE_PACT_REPORT: Regulatory report generation
    """

    AGE_VERIFICATION = "AGE_VERIFICATION"
    PAYMENT_AUTHORIZATION = "PAYMENT_AUTHORIZATION"
    CREATE_ORDER = "CREATE_ORDER"
    SHIP_ORDER = "SHIP_ORDER"
    STAKE_CALL = "STAKE_CALL"
    GENERATE_PACT_REPORT = "GENERATE_PACT_REPORT"


class AuditEntityType(Enum):
    """Kind of entity an audit event refers to."""

    ORDER = "ORDER"
    PACT_REPORT = "PACT_REPORT"


class AuditResult(Enum):
    """Result recorded on an audit event."""

    SUCCESS = "SUCCESS"
    FAIL = "FAIL"
    BLOCKED = "BLOCKED"
    ERROR = "ERROR"


class ReconciliationKind(Enum):
    """
    External side effect that succeeded while the saga could not complete.

    Cases of every kind must be resolved by an operator; blind retry of
    the saga would double-charge or double-ship.
    """

    AUTHORIZED_NOT_PERSISTED = "AUTHORIZED_NOT_PERSISTED"
    """Payment authorized but the order bundle could not be written."""

    CAPTURED_NOT_LABELED = "CAPTURED_NOT_LABELED"
    """Payment captured but the shipping label purchase failed."""

    CAPTURED_NOT_PERSISTED = "CAPTURED_NOT_PERSISTED"
    """Payment captured but the payment row could not be marked CAPTURED."""

    SHIPMENT_NOT_PERSISTED = "SHIPMENT_NOT_PERSISTED"
    """Payment captured and label bought but the order could not be marked SHIPPED."""


__all__ = [
    "ActorType",
    "AuditAction",
    "AuditEntityType",
    "AuditResult",
    "CheckResult",
    "ComplianceDecision",
    "FlavorType",
    "OrderStatus",
    "PaymentStatus",
    "ReconciliationKind",
    "Role",
    "VerificationStatus",
]
