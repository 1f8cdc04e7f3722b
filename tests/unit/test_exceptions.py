"""Unit tests for the orderflow exception hierarchy."""

from uuid import UUID

import pytest

from orderflow.exceptions import (
    ComplianceBlockedError,
    ErrorCategory,
    GatewayFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    OrderFlowError,
    OrderNotFoundError,
    PermissionDeniedError,
    ReconciliationCaseNotFoundError,
    ReconciliationCaseResolvedError,
    ReconciliationRequiredError,
    SagaError,
    WriteOnceViolationError,
)
from orderflow.types import AuditResult

CASE_ID = UUID("12345678-1234-5678-1234-567812345678")


class TestErrorCategory:
    @pytest.mark.parametrize(
        ("category", "retryable", "audit_result"),
        [
            (ErrorCategory.INPUT, True, AuditResult.FAIL),
            (ErrorCategory.COMPLIANCE, False, AuditResult.BLOCKED),
            (ErrorCategory.GATEWAY, True, AuditResult.FAIL),
            (ErrorCategory.RECONCILIATION, False, AuditResult.ERROR),
        ],
    )
    def test_category_properties(self, category, retryable, audit_result):
        assert category.retryable is retryable
        assert category.audit_result is audit_result


class TestSagaErrors:
    def test_all_inherit_from_base(self):
        for error_type in (
            InvalidInputError,
            PermissionDeniedError,
            ComplianceBlockedError,
            GatewayFailureError,
            ReconciliationRequiredError,
        ):
            assert issubclass(error_type, SagaError)
            assert issubclass(error_type, OrderFlowError)

    def test_message_includes_code(self):
        error = InvalidInputError("INVALID_QUANTITY", "Quantity must be positive")

        assert str(error) == "INVALID_QUANTITY: Quantity must be positive"

    def test_audit_reason_joins_every_reason(self):
        error = ComplianceBlockedError(
            "ORDER_BLOCKED", "Blocked", reasons=["CA_FLAVOR_BAN", "PO_BOX_NOT_ALLOWED"]
        )

        assert error.reasons == ("CA_FLAVOR_BAN", "PO_BOX_NOT_ALLOWED")
        assert error.audit_reason == "CA_FLAVOR_BAN; PO_BOX_NOT_ALLOWED"
        assert error.audit_result is AuditResult.BLOCKED

    def test_audit_reason_falls_back_to_reason_code_then_code(self):
        declined = GatewayFailureError("PAYMENT_DECLINED", "Declined", reason_code="2")

        assert declined.audit_reason == "2"
        assert InvalidInputError("ADDRESS_NOT_FOUND", "Missing").audit_reason == (
            "ADDRESS_NOT_FOUND"
        )

    def test_permission_denied(self):
        error = PermissionDeniedError()

        assert error.code == "FORBIDDEN"
        assert error.message == "Admin role required"
        assert error.retryable is True

    def test_to_dict_omits_empty_fields(self):
        assert InvalidInputError("INVALID_DATE_RANGE", "Bad range").to_dict() == {
            "code": "INVALID_DATE_RANGE",
            "message": "Bad range",
            "category": "input",
            "retryable": True,
        }

    def test_to_dict_full(self):
        error = ComplianceBlockedError(
            "SHIPPING_BLOCKED",
            "Cannot ship",
            reason_code="STAKE_CALL_MISSING",
            reasons=("STAKE_CALL_MISSING",),
            details={"order_id": "o-1"},
        )

        assert error.to_dict() == {
            "code": "SHIPPING_BLOCKED",
            "message": "Cannot ship",
            "category": "compliance",
            "retryable": False,
            "reason_code": "STAKE_CALL_MISSING",
            "reasons": ["STAKE_CALL_MISSING"],
            "details": {"order_id": "o-1"},
        }


class TestReconciliationRequiredError:
    def test_details_carry_transaction_and_case(self):
        error = ReconciliationRequiredError(
            "LABEL_FAILED_AFTER_CAPTURE",
            "Payment captured but no label",
            transaction_id="capture-2",
            case_id=CASE_ID,
            details={"step": "purchase_label"},
        )

        assert error.transaction_id == "capture-2"
        assert error.case_id == CASE_ID
        assert error.details == {
            "step": "purchase_label",
            "transaction_id": "capture-2",
            "case_id": str(CASE_ID),
        }
        assert error.retryable is False
        assert error.audit_result is AuditResult.ERROR

    def test_without_case(self):
        error = ReconciliationRequiredError("X", "y", transaction_id=None)

        assert error.details == {}
        assert error.case_id is None


class TestRepositoryErrors:
    def test_order_not_found(self):
        error = OrderNotFoundError(CASE_ID)

        assert error.order_id == CASE_ID
        assert str(CASE_ID) in str(error)

    def test_write_once_violation(self):
        error = WriteOnceViolationError("RegulatoryReport", "CA:2026-01-01:2026-01-31")

        assert error.record_type == "RegulatoryReport"
        assert str(error) == (
            "RegulatoryReport already exists for CA:2026-01-01:2026-01-31 and is write-once"
        )

    def test_invalid_state_transition(self):
        error = InvalidStateTransitionError("Order", CASE_ID, "SHIPPED", "SHIPPED")

        assert error.current == "SHIPPED"
        assert error.target == "SHIPPED"
        assert "cannot transition from SHIPPED to SHIPPED" in str(error)

    def test_reconciliation_case_errors(self):
        assert ReconciliationCaseNotFoundError(CASE_ID).case_id == CASE_ID
        assert "already resolved" in str(ReconciliationCaseResolvedError(CASE_ID))
