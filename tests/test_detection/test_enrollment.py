"""
Enrollment-Activity Extractor Tests.

Covers:
- Consent scope violations (missing consent, product outside scope)
- Identity verification risk
- Suspicious phrases in event text
- Clean events produce nothing
"""

import pytest

from fwaguard.detection.enrollment import (
    CONSENT_VIOLATION_WEIGHT,
    IDENTITY_RISK_WEIGHT,
    SUSPICIOUS_ACTIVITY_WEIGHT,
    EnrollmentActivityExtractor,
    consent_violation,
)
from fwaguard.schemas.analysis import FindingCategory
from fwaguard.schemas.evidence import (
    EnrollmentEvent,
    EnrollmentEvidence,
    IdentityVerification,
    VerificationStatus,
)


def _event(**overrides) -> EnrollmentEvent:
    values = dict(
        event_id="enr-1",
        consent_scope=["Plan A"],
        enrolled_products=["plan a"],
        identity_verification=IdentityVerification(status=VerificationStatus.VERIFIED, method="kba"),
        text="",
    )
    values.update(overrides)
    return EnrollmentEvent(**values)


class TestConsent:

    def test_in_scope_case_insensitive(self):
        assert consent_violation(_event()) is None

    def test_no_consent_recorded(self):
        detail = consent_violation(_event(consent_scope=[]))
        assert detail["reason"] == "no_consent_recorded"

    def test_product_outside_scope(self):
        detail = consent_violation(_event(enrolled_products=["Plan A", "Dental Rider"]))
        assert detail == {"reason": "outside_consent_scope", "products": ["Dental Rider"]}


class TestEventChecks:

    def setup_method(self):
        self.extractor = EnrollmentActivityExtractor()

    def test_clean_event(self):
        assert self.extractor.check_event(_event()) == []

    def test_unverified_identity(self):
        findings = self.extractor.check_event(
            _event(identity_verification=IdentityVerification(status=VerificationStatus.FAILED))
        )
        assert len(findings) == 1
        assert findings[0].category is FindingCategory.IDENTITY_RISK
        assert findings[0].local_confidence == IDENTITY_RISK_WEIGHT
        assert findings[0].detail["verification_status"] == "FAILED"

    def test_default_verification_is_a_risk(self):
        event = EnrollmentEvent(event_id="enr-9", consent_scope=["Plan A"], enrolled_products=["Plan A"])
        categories = [f.category for f in self.extractor.check_event(event)]
        assert categories == [FindingCategory.IDENTITY_RISK]

    def test_suspicious_phrases_each_counted(self):
        findings = self.extractor.check_event(
            _event(text="Just sign here, you don't need to read it")
        )
        suspicious = [f for f in findings if f.category is FindingCategory.SUSPICIOUS_ENROLLMENT]
        assert len(suspicious) == 2
        assert all(f.local_confidence == SUSPICIOUS_ACTIVITY_WEIGHT for f in suspicious)

    @pytest.mark.asyncio
    async def test_batch_findings_keyed_by_event(self):
        evidence = EnrollmentEvidence(events=[
            _event(event_id="e-1", consent_scope=[]),
            _event(event_id="e-2"),
            _event(event_id="e-3", enrolled_products=["Vision"]),
        ])
        findings = await self.extractor.detect(evidence)
        assert [(f.evidence_ref, f.category) for f in findings] == [
            ("e-1", FindingCategory.CONSENT_VIOLATION),
            ("e-3", FindingCategory.CONSENT_VIOLATION),
        ]
        assert all(f.local_confidence == CONSENT_VIOLATION_WEIGHT for f in findings)
