"""
Recommendation Generator & Indicators.

Pure functions of an analysis pass. Each evidence kind has its own rule set;
results are de-duplicated by action and ranked IMMEDIATE > HIGH > MEDIUM > LOW.
"""

from typing import Optional

from fwaguard.engine.fusion import FusionOutcome
from fwaguard.schemas.analysis import (
    EvidenceKind,
    Finding,
    FindingCategory,
    FindingFamily,
    Indicator,
    Recommendation,
    RecommendationPriority,
    RiskLevel,
)

COMPLIANCE_REVIEW_THRESHOLD: float = 0.7

P = RecommendationPriority

EMERGENCY = Recommendation(
    priority=P.IMMEDIATE,
    action="Initiate emergency investigation",
    description="Critical risk level detected - immediate action required",
)
COMPLIANCE_REVIEW = Recommendation(
    priority=P.MEDIUM,
    action="Flag for compliance review",
    description="High confidence FWA detection - requires human review",
)
BILLING_REVIEW = Recommendation(
    priority=P.HIGH,
    action="Review billing records",
    description="Billing irregularities detected - conduct detailed audit",
)
ENROLLMENT_REVIEW = Recommendation(
    priority=P.HIGH,
    action="Verify enrollment consent",
    description="Enrollment manipulation language detected - confirm beneficiary consent",
)
MARKETING_REVIEW = Recommendation(
    priority=P.HIGH,
    action="Review marketing statements",
    description="Possible benefit misrepresentation - compare statements against plan documents",
)
CALL_REVIEW = Recommendation(
    priority=P.MEDIUM,
    action="Review call recording",
    description="Classifier flagged the conversation - a reviewer should listen to the full call",
)
CLAIM_HOLD = Recommendation(
    priority=P.HIGH,
    action="Hold outlier claims",
    description="Statistical outliers in the batch - hold payment pending review",
)
DUPLICATE_AUDIT = Recommendation(
    priority=P.HIGH,
    action="Audit duplicate billing",
    description="Identical amounts billed more than once - check for duplicate claims",
)
REOBTAIN_CONSENT = Recommendation(
    priority=P.HIGH,
    action="Re-obtain beneficiary consent",
    description="Enrollment outside recorded consent scope",
)
REVERIFY_IDENTITY = Recommendation(
    priority=P.HIGH,
    action="Re-verify beneficiary identity",
    description="Identity verification missing or incomplete",
)
AGENT_REVIEW = Recommendation(
    priority=P.MEDIUM,
    action="Review enrollment agent activity",
    description="Known suspicious enrollment phrases in agent notes",
)
MONITOR = Recommendation(
    priority=P.LOW,
    action="Continue monitoring",
    description="No actionable FWA indicators",
)


def generate_recommendations(
    kind: EvidenceKind,
    outcome: FusionOutcome,
    findings: list[Finding],
) -> list[Recommendation]:
    categories = {f.category for f in findings}
    families = {c.family for c in categories}
    recs: list[Recommendation] = []

    if outcome.risk_level is RiskLevel.CRITICAL and outcome.reportable:
        recs.append(EMERGENCY)

    if kind is EvidenceKind.TRANSCRIPT:
        if FindingFamily.BILLING in families:
            recs.append(BILLING_REVIEW)
        if FindingFamily.ENROLLMENT in families:
            recs.append(ENROLLMENT_REVIEW)
        if FindingFamily.BENEFITS in families:
            recs.append(MARKETING_REVIEW)
        if FindingCategory.CLASSIFICATION in categories:
            recs.append(CALL_REVIEW)

    elif kind is EvidenceKind.BILLING:
        if FindingCategory.STATISTICAL_OUTLIER in categories:
            recs.append(CLAIM_HOLD)
        if FindingCategory.DUPLICATE_AMOUNTS in categories:
            recs.append(DUPLICATE_AUDIT)
        if categories:
            recs.append(BILLING_REVIEW)

    elif kind is EvidenceKind.ENROLLMENT:
        if FindingCategory.CONSENT_VIOLATION in categories:
            recs.append(REOBTAIN_CONSENT)
        if FindingCategory.IDENTITY_RISK in categories:
            recs.append(REVERIFY_IDENTITY)
        if FindingCategory.SUSPICIOUS_ENROLLMENT in categories:
            recs.append(AGENT_REVIEW)

    if outcome.overall_confidence > COMPLIANCE_REVIEW_THRESHOLD:
        recs.append(COMPLIANCE_REVIEW)

    if not recs:
        recs.append(MONITOR)

    return rank(recs)


def rank(recs: list[Recommendation]) -> list[Recommendation]:
    """De-duplicate by action (keep the most urgent), then order by priority."""
    best: dict[str, Recommendation] = {}
    for rec in recs:
        current = best.get(rec.action)
        if current is None or rec.priority.rank < current.priority.rank:
            best[rec.action] = rec
    return sorted(best.values(), key=lambda r: r.priority.rank)


# ── Indicators ─────────────────────────────────────────────────────────────

_PATTERN_CATEGORIES = frozenset({
    FindingCategory.BILLING_PATTERN,
    FindingCategory.ENROLLMENT_PATTERN,
    FindingCategory.BENEFITS_PATTERN,
    FindingCategory.KEYWORD_MATCH,
})


def _describe(finding: Finding) -> tuple[str, str]:
    c = finding.category
    d = finding.detail
    if c in _PATTERN_CATEGORIES:
        return "PATTERN_MATCH", f"Suspicious {c.value} pattern detected"
    if c is FindingCategory.CLASSIFICATION:
        return "AI_CLASSIFICATION", f"Classifier labelled content as {d.get('class', 'suspicious')}"
    if c is FindingCategory.STATISTICAL_OUTLIER:
        return "STATISTICAL_OUTLIER", (
            f"Record {finding.evidence_ref} amount {d.get('amount')} deviates from batch (z={d.get('z_score')})"
        )
    if c is FindingCategory.DUPLICATE_AMOUNTS:
        return "DUPLICATE_AMOUNTS", (
            f"Record {finding.evidence_ref} amount {d.get('amount')} appears {d.get('occurrences')} times"
        )
    if c is FindingCategory.CONSENT_VIOLATION:
        return "CONSENT_VIOLATION", f"Event {finding.evidence_ref}: {d.get('reason', 'consent violation')}"
    if c is FindingCategory.IDENTITY_RISK:
        return "IDENTITY_RISK", (
            f"Event {finding.evidence_ref}: identity verification {d.get('verification_status', 'missing')}"
        )
    return "SUSPICIOUS_ENROLLMENT", f"Event {finding.evidence_ref}: suspicious enrollment phrase"


def build_indicators(
    findings: list[Finding],
    sentiment: Optional[float] = None,
    sentiment_threshold: float = -0.3,
) -> list[Indicator]:
    indicators = []
    for finding in findings:
        kind, description = _describe(finding)
        indicators.append(Indicator(
            type=kind,
            confidence=finding.local_confidence,
            description=description,
            category=finding.category.value,
        ))
    if sentiment is not None and sentiment < sentiment_threshold:
        indicators.append(Indicator(
            type="SENTIMENT",
            confidence=round(abs(sentiment), 4),
            description="Negative sentiment detected in communication",
        ))
    return indicators
