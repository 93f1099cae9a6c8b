"""
Pattern Extractor Tests.

Covers:
- Phrase patterns per category at fixed confidence
- Keyword density scaling and cap
- Clean text yields nothing
"""

import pytest

from fwaguard.detection.patterns import (
    KEYWORD_CAP,
    PATTERN_CONFIDENCE,
    PatternExtractor,
    keyword_confidence,
)
from fwaguard.schemas.analysis import FindingCategory
from fwaguard.schemas.evidence import TranscriptEvidence


class TestPhrasePatterns:

    def setup_method(self):
        self.extractor = PatternExtractor()

    def test_billing_phrases(self):
        findings = self.extractor.scan("They kept billing for services not provided and upcoding visits")
        billing = [f for f in findings if f.category is FindingCategory.BILLING_PATTERN]
        assert len(billing) == 2
        assert all(f.local_confidence == PATTERN_CONFIDENCE for f in billing)

    def test_enrollment_phrase(self):
        findings = self.extractor.scan("This was an unauthorized enrollment into a new plan")
        categories = {f.category for f in findings}
        assert FindingCategory.ENROLLMENT_PATTERN in categories

    def test_benefits_phrase_case_insensitive(self):
        findings = self.extractor.scan("The agent MISREPRESENTED BENEFITS to my mother")
        assert findings[0].category is FindingCategory.BENEFITS_PATTERN
        assert findings[0].detail["match"] == "MISREPRESENTED BENEFITS"

    def test_clean_text(self):
        assert self.extractor.scan("I would like to update my mailing address") == []

    @pytest.mark.asyncio
    async def test_detect_uses_call_id_as_ref(self):
        evidence = TranscriptEvidence(text="ghost patients everywhere", call_id="call-42")
        findings = await self.extractor.detect(evidence)
        assert findings
        assert all(f.evidence_ref == "call-42" for f in findings)
        assert all(f.detector == "pattern" for f in findings)


class TestKeywordDensity:

    def test_single_keyword(self):
        findings = PatternExtractor().scan("that sounds like a scam")
        kw = [f for f in findings if f.category is FindingCategory.KEYWORD_MATCH]
        assert len(kw) == 1
        assert kw[0].local_confidence == 0.2
        assert kw[0].detail["keywords"] == ["scam"]

    def test_distinct_keywords_counted_once(self):
        findings = PatternExtractor().scan("scam scam scam")
        kw = [f for f in findings if f.category is FindingCategory.KEYWORD_MATCH]
        assert kw[0].detail["count"] == 1

    def test_confidence_caps(self):
        assert keyword_confidence(3) == 0.6
        assert keyword_confidence(5) == KEYWORD_CAP
        assert keyword_confidence(12) == KEYWORD_CAP
