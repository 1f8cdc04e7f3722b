"""
Unit tests for the compliance rule engine.

Covers the rule table, reason ordering and de-duplication, the STAKE call
flag, jurisdiction policy lookup and age arithmetic. Property tests check
purity and rule coverage over generated carts.
"""

from datetime import date

import pytest
from hypothesis import given
from hypothesis import strategies as st

from orderflow.compliance import (
    CALIFORNIA,
    DEFAULT_POLICIES,
    ComplianceInput,
    ComplianceLineItem,
    JurisdictionPolicies,
    JurisdictionPolicy,
    ReasonCode,
    calculate_age,
    derive_check_results,
    evaluate_compliance,
)
from orderflow.types import CheckResult, ComplianceDecision, FlavorType, VerificationStatus

# =============================================================================
# Helpers
# =============================================================================


def tobacco(**overrides) -> ComplianceLineItem:
    values = {"flavor_type": FlavorType.TOBACCO, "ca_utl_approved": True}
    values.update(overrides)
    return ComplianceLineItem(**values)


def cart(state: str = "NY", *items: ComplianceLineItem, **overrides) -> ComplianceInput:
    values = {
        "shipping_state": state,
        "items": items or (tobacco(),),
        "age_verification_status": VerificationStatus.PASS,
    }
    values.update(overrides)
    return ComplianceInput(**values)


# =============================================================================
# Strategies
# =============================================================================

line_items = st.builds(
    ComplianceLineItem,
    flavor_type=st.sampled_from(list(FlavorType)),
    ca_utl_approved=st.booleans(),
    sensory_cooling=st.booleans(),
    quantity=st.integers(min_value=1, max_value=10),
)

compliance_inputs = st.builds(
    ComplianceInput,
    shipping_state=st.sampled_from(["CA", "ca", " Ca ", "NY", "TX", "WA"]),
    is_po_box=st.booleans(),
    items=st.lists(line_items, min_size=1, max_size=5).map(tuple),
    is_first_time_recipient=st.booleans(),
    age_verification_status=st.sampled_from(list(VerificationStatus)),
)

clean_items = st.builds(
    ComplianceLineItem,
    flavor_type=st.just(FlavorType.TOBACCO),
    ca_utl_approved=st.just(True),
    sensory_cooling=st.just(False),
    quantity=st.integers(min_value=1, max_value=10),
)


# =============================================================================
# Rule table
# =============================================================================


class TestRuleTable:
    """Each single disqualifying condition blocks with its own reason."""

    def test_clean_ny_cart_is_allowed(self):
        result = evaluate_compliance(cart("NY"))

        assert result.decision is ComplianceDecision.ALLOW
        assert result.reason_codes == ()
        assert result.allowed is True
        assert result.stake_call_required is False

    def test_clean_ca_cart_is_allowed(self):
        result = evaluate_compliance(cart("CA"))

        assert result.decision is ComplianceDecision.ALLOW
        assert result.reason_codes == ()

    @pytest.mark.parametrize(
        ("state", "item", "expected"),
        [
            ("CA", tobacco(flavor_type=FlavorType.FRUIT), ReasonCode.CA_FLAVOR_BAN),
            ("CA", tobacco(flavor_type=FlavorType.MENTHOL), ReasonCode.CA_FLAVOR_BAN),
            ("CA", tobacco(sensory_cooling=True), ReasonCode.CA_SENSORY_BAN),
            ("CA", tobacco(ca_utl_approved=False), ReasonCode.CA_UTL_REQUIRED),
        ],
    )
    def test_single_ca_violation(self, state, item, expected):
        result = evaluate_compliance(cart(state, item))

        assert result.decision is ComplianceDecision.BLOCK
        assert result.reason_codes == (expected,)

    @pytest.mark.parametrize(
        "item",
        [
            tobacco(flavor_type=FlavorType.FRUIT),
            tobacco(sensory_cooling=True),
            tobacco(ca_utl_approved=False),
        ],
    )
    def test_ca_rules_do_not_apply_outside_ca(self, item):
        result = evaluate_compliance(cart("NY", item))

        assert result.decision is ComplianceDecision.ALLOW

    def test_po_box_blocks_everywhere(self):
        result = evaluate_compliance(cart("NY", is_po_box=True))

        assert result.decision is ComplianceDecision.BLOCK
        assert result.reason_codes == (ReasonCode.PO_BOX_NOT_ALLOWED,)

    def test_failed_age_verification_blocks(self):
        result = evaluate_compliance(
            cart("NY", age_verification_status=VerificationStatus.FAIL)
        )

        assert result.decision is ComplianceDecision.BLOCK
        assert result.reason_codes == (ReasonCode.AGE_VERIFICATION_FAILED,)

    def test_multiple_violations_are_all_reported_in_order(self):
        result = evaluate_compliance(
            cart(
                "CA",
                tobacco(flavor_type=FlavorType.FRUIT, ca_utl_approved=False),
                tobacco(sensory_cooling=True),
                is_po_box=True,
                age_verification_status=VerificationStatus.FAIL,
            )
        )

        assert result.reason_codes == (
            ReasonCode.AGE_VERIFICATION_FAILED,
            ReasonCode.CA_FLAVOR_BAN,
            ReasonCode.CA_SENSORY_BAN,
            ReasonCode.CA_UTL_REQUIRED,
            ReasonCode.PO_BOX_NOT_ALLOWED,
        )

    def test_repeated_violations_are_deduplicated(self):
        result = evaluate_compliance(
            cart(
                "CA",
                tobacco(flavor_type=FlavorType.FRUIT),
                tobacco(flavor_type=FlavorType.DESSERT),
                tobacco(flavor_type=FlavorType.MENTHOL),
            )
        )

        assert result.reason_codes == (ReasonCode.CA_FLAVOR_BAN,)
        assert result.reason_values == ("CA_FLAVOR_BAN",)

    def test_state_is_normalized(self):
        result = evaluate_compliance(cart(" ca ", tobacco(flavor_type=FlavorType.FRUIT)))

        assert result.reason_codes == (ReasonCode.CA_FLAVOR_BAN,)

    def test_blank_state_is_rejected(self):
        with pytest.raises(ValueError):
            cart("   ")


class TestStakeCallFlag:
    def test_first_time_ca_recipient_requires_call(self):
        result = evaluate_compliance(cart("CA", is_first_time_recipient=True))

        assert result.stake_call_required is True

    def test_returning_ca_recipient_needs_no_call(self):
        result = evaluate_compliance(cart("CA", is_first_time_recipient=False))

        assert result.stake_call_required is False

    def test_first_time_recipient_outside_ca_needs_no_call(self):
        result = evaluate_compliance(cart("NY", is_first_time_recipient=True))

        assert result.stake_call_required is False

    def test_blocked_order_never_requires_call(self):
        result = evaluate_compliance(
            cart("CA", tobacco(flavor_type=FlavorType.FRUIT), is_first_time_recipient=True)
        )

        assert result.decision is ComplianceDecision.BLOCK
        assert result.stake_call_required is False


class TestJurisdictionPolicies:
    def test_unlisted_state_is_unrestricted(self):
        policy = DEFAULT_POLICIES.for_state("TX")

        assert policy == JurisdictionPolicy(code="TX")
        assert "TX" not in DEFAULT_POLICIES
        assert " ca " in DEFAULT_POLICIES

    def test_custom_policy_table(self):
        policies = JurisdictionPolicies.of(
            [CALIFORNIA, JurisdictionPolicy(code="UT", restricts_flavors=True)]
        )

        result = evaluate_compliance(cart("UT", tobacco(flavor_type=FlavorType.FRUIT)), policies)

        assert result.reason_codes == (ReasonCode.CA_FLAVOR_BAN,)

    def test_empty_table_lifts_ca_restrictions(self):
        result = evaluate_compliance(
            cart("CA", tobacco(flavor_type=FlavorType.FRUIT)), JurisdictionPolicies()
        )

        assert result.decision is ComplianceDecision.ALLOW

    @pytest.mark.parametrize("code", ["ca", " CA", ""])
    def test_policy_code_must_be_normalized(self, code):
        with pytest.raises(ValueError):
            JurisdictionPolicy(code=code)


class TestDeriveCheckResults:
    def test_all_pass_when_nothing_fired(self):
        checks = derive_check_results(())

        assert set(checks.values()) == {CheckResult.PASS}
        assert set(checks) == {
            "age_verification_check",
            "ca_flavor_check",
            "ca_sensory_check",
            "ca_utl_check",
            "po_box_check",
        }

    def test_fired_codes_fail_their_checks(self):
        checks = derive_check_results((ReasonCode.CA_FLAVOR_BAN, ReasonCode.PO_BOX_NOT_ALLOWED))

        assert checks["ca_flavor_check"] is CheckResult.FAIL
        assert checks["po_box_check"] is CheckResult.FAIL
        assert checks["ca_utl_check"] is CheckResult.PASS


class TestCalculateAge:
    @pytest.mark.parametrize(
        ("dob", "today", "expected"),
        [
            (date(2000, 6, 15), date(2021, 6, 15), 21),
            (date(2000, 6, 15), date(2021, 6, 14), 20),
            (date(2000, 6, 15), date(2021, 12, 31), 21),
            (date(2000, 2, 29), date(2021, 2, 28), 20),
            (date(2000, 2, 29), date(2021, 3, 1), 21),
        ],
    )
    def test_whole_years(self, dob, today, expected):
        assert calculate_age(dob, today) == expected


# =============================================================================
# Properties
# =============================================================================


class TestEngineProperties:
    @given(compliance_inputs)
    def test_engine_is_pure(self, data):
        assert evaluate_compliance(data) == evaluate_compliance(data)

    @given(compliance_inputs)
    def test_block_iff_reasons(self, data):
        result = evaluate_compliance(data)

        assert (result.decision is ComplianceDecision.BLOCK) == bool(result.reason_codes)

    @given(compliance_inputs)
    def test_blocked_never_requires_stake_call(self, data):
        result = evaluate_compliance(data)

        if result.decision is ComplianceDecision.BLOCK:
            assert result.stake_call_required is False

    @given(compliance_inputs)
    def test_reasons_are_unique_and_ordered(self, data):
        reasons = evaluate_compliance(data).reason_codes
        order = list(ReasonCode)

        assert len(set(reasons)) == len(reasons)
        assert list(reasons) == sorted(reasons, key=order.index)

    @given(
        st.lists(clean_items, min_size=1, max_size=5).map(tuple),
        st.sampled_from(["CA", "NY", "TX"]),
        st.booleans(),
    )
    def test_clean_carts_are_allowed(self, items, state, first_time):
        result = evaluate_compliance(
            ComplianceInput(
                shipping_state=state,
                items=items,
                is_first_time_recipient=first_time,
                age_verification_status=VerificationStatus.PASS,
            )
        )

        assert result.decision is ComplianceDecision.ALLOW
        assert result.reason_codes == ()

    @given(compliance_inputs)
    def test_po_box_always_reported(self, data):
        result = evaluate_compliance(data)

        assert (ReasonCode.PO_BOX_NOT_ALLOWED in result.reason_codes) == data.is_po_box

    @given(compliance_inputs)
    def test_age_failure_always_reported(self, data):
        result = evaluate_compliance(data)

        failed = data.age_verification_status is VerificationStatus.FAIL
        assert (ReasonCode.AGE_VERIFICATION_FAILED in result.reason_codes) == failed
