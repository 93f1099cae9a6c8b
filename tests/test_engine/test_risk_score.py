"""
Risk Score Tests.

Includes property-based tests via Hypothesis.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from fwaguard.engine.risk_score import (
    MAX_SCORE,
    affected_band,
    compliance_points,
    compute_risk_score,
    financial_band,
)
from fwaguard.schemas.incident import ComplianceImpactFlags, IncidentType, Severity

NO_FLAGS = ComplianceImpactFlags()


def test_worked_example_is_clamped():
    # 50 + 25 + 25 + 20 + 30 = 150
    score = compute_risk_score(
        Severity.HIGH,
        IncidentType.FRAUD,
        Decimal("150000"),
        150,
        ComplianceImpactFlags(false_claims_act=True),
    )
    assert score == 100


def test_minimal_incident():
    assert compute_risk_score(Severity.LOW, IncidentType.WASTE, Decimal("0"), 0, NO_FLAGS) == 15


def test_unlisted_type_uses_default_weight():
    score = compute_risk_score(Severity.MEDIUM, IncidentType.SUSPICIOUS_ACTIVITY, Decimal("0"), 0, NO_FLAGS)
    assert score == 25 + 10


@pytest.mark.parametrize("amount,points", [
    ("0", 0),
    ("1000", 0),
    ("1000.01", 5),
    ("10000", 5),
    ("10001", 15),
    ("100000", 15),
    ("100000.01", 25),
])
def test_financial_bands_are_exclusive(amount, points):
    assert financial_band(Decimal(amount)) == points


@pytest.mark.parametrize("count,points", [(0, 0), (1, 0), (2, 5), (10, 5), (11, 10), (100, 10), (101, 20)])
def test_affected_bands_are_exclusive(count, points):
    assert affected_band(count) == points


def test_compliance_flags_sum():
    flags = ComplianceImpactFlags(
        false_claims_act=True, anti_kickback=True, cms_violation=True, hipaa_violation=True,
    )
    assert compliance_points(flags) == 30 + 25 + 20 + 15


@given(
    st.sampled_from(list(Severity)),
    st.sampled_from(list(IncidentType)),
    st.decimals(min_value=0, max_value=10**12, places=2, allow_nan=False, allow_infinity=False),
    st.integers(min_value=0, max_value=10**6),
    st.builds(ComplianceImpactFlags, cms_violation=st.booleans(), hipaa_violation=st.booleans(),
              false_claims_act=st.booleans(), anti_kickback=st.booleans()),
)
@hyp_settings(max_examples=300)
def test_score_bounded_and_deterministic(severity, incident_type, amount, count, flags):
    score = compute_risk_score(severity, incident_type, amount, count, flags)
    assert 0 <= score <= MAX_SCORE
    assert score == compute_risk_score(severity, incident_type, amount, count, flags)


@given(st.sampled_from(list(IncidentType)), st.integers(min_value=0, max_value=500))
def test_higher_severity_never_lowers_score(incident_type, count):
    scores = [
        compute_risk_score(s, incident_type, Decimal("0"), count, NO_FLAGS)
        for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)
    ]
    assert scores == sorted(scores)
