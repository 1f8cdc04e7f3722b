"""
Jurisdiction policies and reason codes for the compliance rule engine.

Policies are plain data passed into the engine explicitly; the engine never
looks up jurisdiction behavior from globals or configuration on its own.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum


class ReasonCode(Enum):
    """
    Stable identifiers for compliance rule violations.

    Declaration order is the evaluation order; reported reason lists are
    always sorted this way.
    """

    AGE_VERIFICATION_FAILED = "AGE_VERIFICATION_FAILED"
    """Age verification resolved to FAIL."""

    CA_FLAVOR_BAN = "CA_FLAVOR_BAN"
    """A line item has a characterizing (non-tobacco) flavor."""

    CA_SENSORY_BAN = "CA_SENSORY_BAN"
    """A line item carries a restricted sensory (cooling) additive."""

    CA_UTL_REQUIRED = "CA_UTL_REQUIRED"
    """A line item is missing jurisdiction pre-approval."""

    PO_BOX_NOT_ALLOWED = "PO_BOX_NOT_ALLOWED"
    """Destination is a PO box."""


@dataclass(frozen=True)
class JurisdictionPolicy:
    """
    Regulatory restrictions that apply to shipments into one jurisdiction.

    Attributes:
        code: Two-letter jurisdiction code, upper-case
        restricts_flavors: Only the baseline (tobacco) flavor may ship
        restricts_sensory_additives: Sensory cooling additives are banned
        requires_pre_approval: Every product must be on the approved list
        requires_stake_call: First shipments to a recipient need a
            verification phone call before they ship
    """

    code: str
    restricts_flavors: bool = False
    restricts_sensory_additives: bool = False
    requires_pre_approval: bool = False
    requires_stake_call: bool = False

    def __post_init__(self) -> None:
        if not self.code or self.code != self.code.strip().upper():
            raise ValueError(
                f"Jurisdiction code must be upper-case without whitespace, got {self.code!r}"
            )


CALIFORNIA = JurisdictionPolicy(
    code="CA",
    restricts_flavors=True,
    restricts_sensory_additives=True,
    requires_pre_approval=True,
    requires_stake_call=True,
)


@dataclass(frozen=True)
class JurisdictionPolicies:
    """
    Lookup table of jurisdiction policies.

    Jurisdictions without an entry are unrestricted.

    Example:
        >>> policies = JurisdictionPolicies.of([CALIFORNIA])
        >>> policies.for_state(" ca ").restricts_flavors
        True
        >>> policies.for_state("NY").restricts_flavors
        False
    """

    policies: Mapping[str, JurisdictionPolicy] = field(default_factory=dict)

    @classmethod
    def of(cls, policies: Iterable[JurisdictionPolicy]) -> JurisdictionPolicies:
        return cls({policy.code: policy for policy in policies})

    def for_state(self, state: str) -> JurisdictionPolicy:
        code = normalize_state(state)
        return self.policies.get(code) or JurisdictionPolicy(code=code)

    def __contains__(self, state: object) -> bool:
        return isinstance(state, str) and normalize_state(state) in self.policies


DEFAULT_POLICIES = JurisdictionPolicies.of([CALIFORNIA])


def normalize_state(state: str) -> str:
    return state.strip().upper()


__all__ = [
    "CALIFORNIA",
    "DEFAULT_POLICIES",
    "JurisdictionPolicies",
    "JurisdictionPolicy",
    "ReasonCode",
    "normalize_state",
]
