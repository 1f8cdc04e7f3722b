"""
Compliance rule engine.

``evaluate_compliance`` is a pure function: no I/O, no clock, no global
state. Identical inputs always produce identical results, so the rule
table can be tested exhaustively.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orderflow.compliance.rules import (
    DEFAULT_POLICIES,
    JurisdictionPolicies,
    ReasonCode,
    normalize_state,
)
from orderflow.types import CheckResult, ComplianceDecision, FlavorType, VerificationStatus


class ComplianceLineItem(BaseModel):
    """Compliance-relevant attributes of one order line."""

    model_config = ConfigDict(frozen=True)

    flavor_type: FlavorType
    ca_utl_approved: bool = False
    sensory_cooling: bool = False
    quantity: int = 1


class ComplianceInput(BaseModel):
    """Everything the rule engine looks at."""

    model_config = ConfigDict(frozen=True)

    shipping_state: str = Field(min_length=1)
    is_po_box: bool = False
    items: tuple[ComplianceLineItem, ...] = ()
    is_first_time_recipient: bool = False
    age_verification_status: VerificationStatus

    @field_validator("shipping_state")
    @classmethod
    def _normalize_state(cls, value: str) -> str:
        normalized = normalize_state(value)
        if not normalized:
            raise ValueError("shipping_state must not be blank")
        return normalized


class ComplianceResult(BaseModel):
    """
    Rule engine output.

    Attributes:
        decision: BLOCK iff reason_codes is non-empty
        reason_codes: Violated rules in evaluation order, de-duplicated
        stake_call_required: Verification call needed before shipping;
            never true for a blocked order
    """

    model_config = ConfigDict(frozen=True)

    decision: ComplianceDecision
    reason_codes: tuple[ReasonCode, ...] = ()
    stake_call_required: bool = False

    @property
    def allowed(self) -> bool:
        return self.decision is ComplianceDecision.ALLOW

    @property
    def reason_values(self) -> tuple[str, ...]:
        return tuple(code.value for code in self.reason_codes)


def evaluate_compliance(
    data: ComplianceInput,
    policies: JurisdictionPolicies = DEFAULT_POLICIES,
) -> ComplianceResult:
    """
    Evaluate an order against every compliance rule.

    All rules are evaluated and every violation is reported, not just the
    first one.

    Args:
        data: Destination, line items, recipient history and age outcome
        policies: Jurisdiction restrictions to apply

    Returns:
        ComplianceResult with decision, ordered reason codes and the
        STAKE call flag
    """
    policy = policies.for_state(data.shipping_state)
    fired: set[ReasonCode] = set()

    if data.age_verification_status is VerificationStatus.FAIL:
        fired.add(ReasonCode.AGE_VERIFICATION_FAILED)

    for item in data.items:
        if policy.restricts_flavors and item.flavor_type is not FlavorType.TOBACCO:
            fired.add(ReasonCode.CA_FLAVOR_BAN)
        if policy.restricts_sensory_additives and item.sensory_cooling:
            fired.add(ReasonCode.CA_SENSORY_BAN)
        if policy.requires_pre_approval and not item.ca_utl_approved:
            fired.add(ReasonCode.CA_UTL_REQUIRED)

    if data.is_po_box:
        fired.add(ReasonCode.PO_BOX_NOT_ALLOWED)

    reason_codes = tuple(code for code in ReasonCode if code in fired)
    decision = ComplianceDecision.BLOCK if reason_codes else ComplianceDecision.ALLOW

    return ComplianceResult(
        decision=decision,
        reason_codes=reason_codes,
        stake_call_required=(
            policy.requires_stake_call
            and data.is_first_time_recipient
            and decision is ComplianceDecision.ALLOW
        ),
    )


def derive_check_results(reason_codes: tuple[ReasonCode, ...]) -> dict[str, CheckResult]:
    """
    Map fired reason codes to per-rule PASS/FAIL for the compliance snapshot.

    Keys match the ``ComplianceSnapshot`` field names.
    """
    fired = set(reason_codes)

    def check(code: ReasonCode) -> CheckResult:
        return CheckResult.FAIL if code in fired else CheckResult.PASS

    return {
        "age_verification_check": check(ReasonCode.AGE_VERIFICATION_FAILED),
        "ca_flavor_check": check(ReasonCode.CA_FLAVOR_BAN),
        "ca_sensory_check": check(ReasonCode.CA_SENSORY_BAN),
        "ca_utl_check": check(ReasonCode.CA_UTL_REQUIRED),
        "po_box_check": check(ReasonCode.PO_BOX_NOT_ALLOWED),
    }


__all__ = [
    "ComplianceInput",
    "ComplianceLineItem",
    "ComplianceResult",
    "derive_check_results",
    "evaluate_compliance",
]
