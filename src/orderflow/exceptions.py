"""Library exceptions for the orderflow package."""

from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

from orderflow.types import AuditResult


class OrderFlowError(Exception):
    """Base exception for orderflow library."""

    pass


class ErrorCategory(Enum):
    """
    Classification of terminal saga errors.

    Attributes:
        INPUT: Not-found, invalid price/quantity, invalid date range.
            No side effect occurred; safe to retry with corrected input.
        COMPLIANCE: Blocked by rules, age verification, STAKE call, PO box.
            Terminal by design and never overridden.
        GATEWAY: Authorization, capture, label or storage failures and
            timeouts. Fail closed; the caller decides whether to retry.
        RECONCILIATION: A gateway side effect succeeded but a later step
            failed. Requires out-of-band resolution.
    """

    INPUT = "input"
    COMPLIANCE = "compliance"
    GATEWAY = "gateway"
    RECONCILIATION = "reconciliation"

    @property
    def retryable(self) -> bool:
        """Whether the caller may safely retry the whole operation."""
        return self in (ErrorCategory.INPUT, ErrorCategory.GATEWAY)

    @property
    def audit_result(self) -> AuditResult:
        """Audit result recorded for errors of this category."""
        if self is ErrorCategory.COMPLIANCE:
            return AuditResult.BLOCKED
        if self is ErrorCategory.RECONCILIATION:
            return AuditResult.ERROR
        return AuditResult.FAIL


class SagaError(OrderFlowError):
    """
    Terminal error raised by a saga or the report generator.

    Callers receive a stable code plus, where applicable, the full list of
    contributing reasons (compliance blocks, shipping blocks) rather than
    just the first.

    Attributes:
        code: Stable error code (e.g. ``ORDER_BLOCKED``)
        message: Human readable description
        reason_code: Underlying reason, usually a gateway code
        reasons: Every contributing reason code, in evaluation order
        details: Extra structured context (ids, SKUs)
    """

    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    def __init__(
        self,
        code: str,
        message: str,
        *,
        reason_code: str | None = None,
        reasons: tuple[str, ...] | list[str] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.reason_code = reason_code
        self.reasons = tuple(reasons)
        self.details = dict(details or {})
        super().__init__(f"{code}: {message}")

    @property
    def retryable(self) -> bool:
        return self.category.retryable

    @property
    def audit_result(self) -> AuditResult:
        return self.category.audit_result

    @property
    def audit_reason(self) -> str:
        """Reason string written to the audit log for this error."""
        if self.reasons:
            return "; ".join(self.reasons)
        return self.reason_code or self.code

    def to_dict(self) -> dict[str, Any]:
        """Structured payload suitable for an API error response."""
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.reason_code is not None:
            payload["reason_code"] = self.reason_code
        if self.reasons:
            payload["reasons"] = list(self.reasons)
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidInputError(SagaError):
    """Raised for not-found references and invalid request values."""

    category = ErrorCategory.INPUT


class PermissionDeniedError(SagaError):
    """Raised when the principal lacks the role an operation requires."""

    category = ErrorCategory.INPUT

    def __init__(self, message: str = "Admin role required") -> None:
        super().__init__("FORBIDDEN", message)


class ComplianceBlockedError(SagaError):
    """Raised when a legal or compliance gate refuses the operation."""

    category = ErrorCategory.COMPLIANCE


class GatewayFailureError(SagaError):
    """Raised when an external gateway declines, fails or times out."""

    category = ErrorCategory.GATEWAY


class ReconciliationRequiredError(SagaError):
    """
    Raised when a gateway side effect succeeded but the saga could not finish.

    Never masked as a clean failure: blind retry would double-charge or
    double-ship. A reconciliation case has been opened for an operator.

    Attributes:
        transaction_id: Gateway transaction that already took effect
        case_id: Reconciliation case opened for this condition, if any
    """

    category = ErrorCategory.RECONCILIATION

    def __init__(
        self,
        code: str,
        message: str,
        *,
        transaction_id: str | None,
        case_id: UUID | None = None,
        reason_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.transaction_id = transaction_id
        self.case_id = case_id
        merged = dict(details or {})
        if transaction_id is not None:
            merged.setdefault("transaction_id", transaction_id)
        if case_id is not None:
            merged.setdefault("case_id", str(case_id))
        super().__init__(code, message, reason_code=reason_code, details=merged)


class OrderNotFoundError(OrderFlowError):
    """Raised when an order cannot be found."""

    def __init__(self, order_id: UUID) -> None:
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class WriteOnceViolationError(OrderFlowError):
    """
    Raised when a write-once record would be written a second time.

    Compliance snapshots, age verification records and regulatory reports
    are created exactly once per key and never updated.

    Attributes:
        record_type: Kind of record (e.g. 'ComplianceSnapshot')
        key: Identity of the existing record
    """

    def __init__(self, record_type: str, key: str) -> None:
        self.record_type = record_type
        self.key = key
        super().__init__(f"{record_type} already exists for {key} and is write-once")


class InvalidStateTransitionError(OrderFlowError):
    """Raised when an order or payment would move along a forbidden edge."""

    def __init__(self, entity: str, entity_id: UUID, current: str, target: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(f"{entity} {entity_id} cannot transition from {current} to {target}")


class ReconciliationCaseNotFoundError(OrderFlowError):
    """Raised when a reconciliation case cannot be found."""

    def __init__(self, case_id: UUID) -> None:
        self.case_id = case_id
        super().__init__(f"Reconciliation case not found: {case_id}")


class ReconciliationCaseResolvedError(OrderFlowError):
    """Raised when resolving a reconciliation case that is already closed."""

    def __init__(self, case_id: UUID) -> None:
        self.case_id = case_id
        super().__init__(f"Reconciliation case {case_id} is already resolved")


__all__ = [
    "ComplianceBlockedError",
    "ErrorCategory",
    "GatewayFailureError",
    "InvalidInputError",
    "InvalidStateTransitionError",
    "OrderFlowError",
    "OrderNotFoundError",
    "PermissionDeniedError",
    "ReconciliationCaseNotFoundError",
    "ReconciliationCaseResolvedError",
    "ReconciliationRequiredError",
    "SagaError",
    "WriteOnceViolationError",
]
