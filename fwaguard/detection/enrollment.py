"""
Enrollment-Activity Extractor.

Three distinct finding categories, each contributing additively to the
pattern confidence of the batch (summed, then capped at 1.0 by fusion):

    CONSENT_VIOLATION       0.3 per event  (no consent recorded, or product outside scope)
    IDENTITY_RISK           0.4 per event  (identity verification not VERIFIED)
    SUSPICIOUS_ENROLLMENT   0.2 per phrase match in the event text
"""

import re

from fwaguard.detection.base import Extractor
from fwaguard.schemas.analysis import Finding, FindingCategory
from fwaguard.schemas.evidence import EnrollmentEvent, EnrollmentEvidence, VerificationStatus

CONSENT_VIOLATION_WEIGHT: float = 0.3
IDENTITY_RISK_WEIGHT: float = 0.4
SUSPICIOUS_ACTIVITY_WEIGHT: float = 0.2

SUSPICIOUS_ENROLLMENT_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"unauthorized\s+enrollment", re.I),
    re.compile(r"enroll(ed|ment)?\s+without\s+(their\s+|his\s+|her\s+)?consent", re.I),
    re.compile(r"sign(ed)?\s+(them|him|her)\s+up\s+without", re.I),
    re.compile(r"just\s+sign\s+here", re.I),
    re.compile(r"(don'?t|do\s+not)\s+need\s+to\s+read", re.I),
    re.compile(r"no\s+need\s+to\s+verify", re.I),
    re.compile(r"stolen\s+medicare\s+numbers?", re.I),
    re.compile(r"fake\s+beneficiar(y|ies)", re.I),
)


class EnrollmentActivityExtractor(Extractor):
    name = "enrollment"

    def __init__(self, patterns: tuple[re.Pattern, ...] = SUSPICIOUS_ENROLLMENT_PATTERNS):
        self.patterns = patterns

    async def detect(self, evidence: EnrollmentEvidence) -> list[Finding]:
        findings: list[Finding] = []
        for event in evidence.events:
            findings.extend(self.check_event(event))
        return findings

    def check_event(self, event: EnrollmentEvent) -> list[Finding]:
        findings = []

        violation = consent_violation(event)
        if violation:
            findings.append(self._finding(
                FindingCategory.CONSENT_VIOLATION, CONSENT_VIOLATION_WEIGHT, event, violation,
            ))

        status = event.identity_verification.status
        if status is not VerificationStatus.VERIFIED:
            findings.append(self._finding(
                FindingCategory.IDENTITY_RISK, IDENTITY_RISK_WEIGHT, event,
                {"verification_status": status.value, "method": event.identity_verification.method},
            ))

        if event.text:
            for regex in self.patterns:
                match = regex.search(event.text)
                if match:
                    findings.append(self._finding(
                        FindingCategory.SUSPICIOUS_ENROLLMENT, SUSPICIOUS_ACTIVITY_WEIGHT, event,
                        {"pattern": regex.pattern, "match": match.group(0)},
                    ))

        return findings

    def _finding(self, category: FindingCategory, confidence: float, event: EnrollmentEvent, detail: dict) -> Finding:
        return Finding(
            category=category,
            local_confidence=confidence,
            evidence_ref=event.event_id,
            detector=self.name,
            detail=detail,
        )


def consent_violation(event: EnrollmentEvent) -> dict | None:
    """Detail of the consent-scope violation, or None when the event is in scope."""
    if not event.consent_scope:
        return {"reason": "no_consent_recorded", "enrolled_products": list(event.enrolled_products)}
    scope = {p.strip().lower() for p in event.consent_scope}
    outside = [p for p in event.enrolled_products if p.strip().lower() not in scope]
    if outside:
        return {"reason": "outside_consent_scope", "products": outside}
    return None
