"""
Compliance rule engine for age-restricted shipments.

Example:
    >>> from orderflow.compliance import ComplianceInput, evaluate_compliance
    >>> from orderflow.types import VerificationStatus
    >>>
    >>> result = evaluate_compliance(
    ...     ComplianceInput(
    ...         shipping_state="NY",
    ...         items=(),
    ...         age_verification_status=VerificationStatus.PASS,
    ...     )
    ... )
    >>> result.allowed
    True
"""

from orderflow.compliance.age import calculate_age
from orderflow.compliance.engine import (
    ComplianceInput,
    ComplianceLineItem,
    ComplianceResult,
    derive_check_results,
    evaluate_compliance,
)
from orderflow.compliance.rules import (
    CALIFORNIA,
    DEFAULT_POLICIES,
    JurisdictionPolicies,
    JurisdictionPolicy,
    ReasonCode,
    normalize_state,
)

__all__ = [
    "CALIFORNIA",
    "DEFAULT_POLICIES",
    "ComplianceInput",
    "ComplianceLineItem",
    "ComplianceResult",
    "JurisdictionPolicies",
    "JurisdictionPolicy",
    "ReasonCode",
    "calculate_age",
    "derive_check_results",
    "evaluate_compliance",
    "normalize_state",
]
