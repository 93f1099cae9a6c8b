"""
Incident Risk Score — the single canonical formula.

    score = severity + type + financial band + affected band + compliance flags
    score = min(100, score)

Recomputed from the persisted attributes on every create and mutation;
never set by hand.
"""

from decimal import Decimal

from fwaguard.schemas.incident import ComplianceImpactFlags, IncidentType, Severity

MAX_SCORE: int = 100

SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.LOW: 10,
    Severity.MEDIUM: 25,
    Severity.HIGH: 50,
    Severity.CRITICAL: 75,
}

TYPE_WEIGHTS: dict[IncidentType, int] = {
    IncidentType.FRAUD: 25,
    IncidentType.IDENTITY_THEFT: 20,
    IncidentType.UNAUTHORIZED_DISCLOSURE: 20,
    IncidentType.BILLING_IRREGULARITY: 15,
    IncidentType.ENROLLMENT_MANIPULATION: 15,
    IncidentType.ABUSE: 10,
    IncidentType.WASTE: 5,
}
DEFAULT_TYPE_WEIGHT: int = 10

# (exclusive lower bound, points), checked top-down
FINANCIAL_BANDS: tuple[tuple[Decimal, int], ...] = (
    (Decimal("100000"), 25),
    (Decimal("10000"), 15),
    (Decimal("1000"), 5),
)
AFFECTED_BANDS: tuple[tuple[int, int], ...] = (
    (100, 20),
    (10, 10),
    (1, 5),
)

FALSE_CLAIMS_ACT_POINTS: int = 30
ANTI_KICKBACK_POINTS: int = 25
CMS_VIOLATION_POINTS: int = 20
HIPAA_VIOLATION_POINTS: int = 15


def financial_band(amount: Decimal) -> int:
    for bound, points in FINANCIAL_BANDS:
        if amount > bound:
            return points
    return 0


def affected_band(count: int) -> int:
    for bound, points in AFFECTED_BANDS:
        if count > bound:
            return points
    return 0


def compliance_points(flags: ComplianceImpactFlags) -> int:
    return (
        FALSE_CLAIMS_ACT_POINTS * flags.false_claims_act
        + ANTI_KICKBACK_POINTS * flags.anti_kickback
        + CMS_VIOLATION_POINTS * flags.cms_violation
        + HIPAA_VIOLATION_POINTS * flags.hipaa_violation
    )


def compute_risk_score(
    severity: Severity,
    incident_type: IncidentType,
    financial_impact: Decimal,
    affected_count: int,
    compliance: ComplianceImpactFlags,
) -> int:
    """Pure function of the five inputs, in [0, 100]."""
    score = (
        SEVERITY_WEIGHTS[severity]
        + TYPE_WEIGHTS.get(incident_type, DEFAULT_TYPE_WEIGHT)
        + financial_band(Decimal(financial_impact))
        + affected_band(affected_count)
        + compliance_points(compliance)
    )
    return min(MAX_SCORE, score)
