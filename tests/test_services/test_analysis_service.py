"""
FWA Analyzer Tests.

Covers:
- Transcript fusion with and without a classifier
- Extractor failure and timeout degrade instead of failing
- Evidence validation before any extractor runs
- Billing and enrollment batches end to end
- Cache hits skip the extractors
"""

import asyncio

import pytest

from fwaguard.detection.classifier import ClassLabel, Classification
from fwaguard.engine.recommendations import CALL_REVIEW, COMPLIANCE_REVIEW, MONITOR
from fwaguard.errors import ExtractorUnavailableError, ValidationError
from fwaguard.schemas.analysis import EvidenceKind, FindingCategory, RiskLevel
from fwaguard.schemas.evidence import BillingEvidence, BillingRecord, TranscriptEvidence
from fwaguard.schemas.incident import IncidentType
from fwaguard.services.analysis_service import FWAAnalyzer, parse_evidence
from fwaguard.services.cache import AnalysisCache

GHOST_TEXT = "They billed ghost patients and filed duplicate claims."


class StubClassifier:
    def __init__(self, label=ClassLabel.FRAUD, confidence=0.9, error=None, delay=0.0):
        self.result = Classification(label=label, confidence=confidence)
        self.error = error
        self.delay = delay
        self.calls = 0

    async def classify(self, text):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex

    async def aclose(self):
        pass


class TestTranscript:

    @pytest.mark.asyncio
    async def test_patterns_without_classifier(self):
        result = await FWAAnalyzer(classifier=None).analyze({"text": GHOST_TEXT}, "transcript")
        assert result.pattern_confidence == 0.85
        assert result.classification_confidence == 0.0
        assert result.sentiment == 0.0
        assert result.overall_confidence == 0.425
        assert result.risk_level is RiskLevel.LOW
        assert result.reportable is True
        assert result.incident_type is IncidentType.BILLING_IRREGULARITY
        assert result.degraded_detectors == []
        assert result.statistics == {"text_length": float(len(GHOST_TEXT))}

    @pytest.mark.asyncio
    async def test_classifier_raises_confidence(self):
        result = await FWAAnalyzer(classifier=StubClassifier()).analyze({"text": GHOST_TEXT}, "transcript")
        assert result.classification_confidence == 0.9
        assert result.overall_confidence == 0.785
        assert result.risk_level is RiskLevel.MEDIUM
        assert CALL_REVIEW in result.recommendations
        assert COMPLIANCE_REVIEW in result.recommendations

    @pytest.mark.asyncio
    async def test_negative_sentiment_bias(self):
        result = await FWAAnalyzer(classifier=None).analyze(
            TranscriptEvidence(text="This is a terrible scam, they lied and cheated me", call_id="c-9"),
            EvidenceKind.TRANSCRIPT,
        )
        assert result.sentiment == -1.0
        assert result.sentiment_bias == 0.2
        assert result.overall_confidence == 0.4
        assert result.incident_type is IncidentType.SUSPICIOUS_ACTIVITY
        assert result.evidence_id == "c-9"
        assert "SENTIMENT" in [i.type for i in result.indicators]

    @pytest.mark.asyncio
    async def test_clean_call_not_reportable(self):
        result = await FWAAnalyzer(classifier=None).analyze({"text": "Please update my address"}, "transcript")
        assert result.findings == []
        assert result.reportable is False
        assert result.recommendations == [MONITOR]

    @pytest.mark.asyncio
    async def test_metadata_carried(self):
        result = await FWAAnalyzer(classifier=None).analyze(
            {"text": GHOST_TEXT}, "transcript", metadata={"queue": "medicare"},
        )
        assert result.source_metadata == {"queue": "medicare"}


class TestDegradation:

    @pytest.mark.asyncio
    async def test_failing_classifier_is_dropped(self):
        classifier = StubClassifier(error=ExtractorUnavailableError("classifier", "model down"))
        result = await FWAAnalyzer(classifier=classifier).analyze({"text": GHOST_TEXT}, "transcript")
        assert result.degraded_detectors == ["classifier"]
        assert result.overall_confidence == 0.425

    @pytest.mark.asyncio
    async def test_unexpected_error_is_dropped(self):
        classifier = StubClassifier(error=RuntimeError("boom"))
        result = await FWAAnalyzer(classifier=classifier).analyze({"text": GHOST_TEXT}, "transcript")
        assert result.degraded_detectors == ["classifier"]

    @pytest.mark.asyncio
    async def test_slow_classifier_times_out(self):
        analyzer = FWAAnalyzer(classifier=StubClassifier(delay=2.0), timeout_seconds=0.05)
        result = await analyzer.analyze({"text": GHOST_TEXT}, "transcript")
        assert result.degraded_detectors == ["classifier"]
        assert result.classification_confidence == 0.0


class TestValidation:

    @pytest.mark.asyncio
    async def test_unknown_kind(self):
        with pytest.raises(ValidationError) as exc:
            await FWAAnalyzer(classifier=None).analyze({"text": "hi"}, "xray")
        assert exc.value.field == "evidence_kind"

    @pytest.mark.asyncio
    async def test_blank_transcript(self):
        classifier = StubClassifier()
        with pytest.raises(ValidationError):
            await FWAAnalyzer(classifier=classifier).analyze({"text": "   "}, "transcript")
        assert classifier.calls == 0

    def test_wrong_model_for_kind(self):
        batch = BillingEvidence(records=[BillingRecord(id="a", amount=1.0)])
        with pytest.raises(ValidationError):
            parse_evidence(batch, EvidenceKind.TRANSCRIPT)

    def test_duplicate_record_ids(self):
        with pytest.raises(ValidationError):
            parse_evidence({"records": [{"id": "a", "amount": 1}, {"id": "a", "amount": 2}]}, "billing")

    def test_negative_amount(self):
        with pytest.raises(ValidationError) as exc:
            parse_evidence({"records": [{"id": "a", "amount": -5}]}, "billing")
        assert exc.value.field == "records.0.amount"

    def test_kind_is_case_insensitive(self):
        _, kind = parse_evidence({"text": "hello"}, "TRANSCRIPT")
        assert kind is EvidenceKind.TRANSCRIPT


class TestBatches:

    @pytest.mark.asyncio
    async def test_billing_batch(self):
        evidence = {
            "batch_id": "batch-7",
            "records": [
                {"id": "c1", "amount": 100}, {"id": "c2", "amount": 100}, {"id": "c3", "amount": 105},
                {"id": "c4", "amount": 98}, {"id": "c5", "amount": 100}, {"id": "c6", "amount": 5000},
            ],
        }
        result = await FWAAnalyzer(classifier=None).analyze(evidence, "billing")
        outliers = [f.evidence_ref for f in result.findings if f.category is FindingCategory.STATISTICAL_OUTLIER]
        dups = [f.evidence_ref for f in result.findings if f.category is FindingCategory.DUPLICATE_AMOUNTS]
        assert outliers == ["c6"]
        assert dups == ["c1", "c2", "c5"]
        assert result.incident_type is IncidentType.BILLING_IRREGULARITY
        assert result.pattern_confidence == 0.9
        assert result.overall_confidence == 0.45
        assert result.evidence_id == "batch-7"
        assert result.statistics["mean"] == pytest.approx(917.1667, abs=1e-4)
        assert result.sentiment is None

    @pytest.mark.asyncio
    async def test_enrollment_batch(self):
        evidence = {
            "events": [{
                "event_id": "enr-1",
                "consent_scope": [],
                "enrolled_products": ["Plan B"],
                "identity_verification": {"status": "FAILED"},
                "text": "just sign here",
            }],
        }
        result = await FWAAnalyzer(classifier=None).analyze(evidence, "enrollment")
        assert result.pattern_confidence == 0.9
        assert result.overall_confidence == 0.45
        assert result.incident_type is IncidentType.ENROLLMENT_MANIPULATION
        assert result.statistics == {"event_count": 1.0}
        assert result.evidence_id.startswith("sha256:")


class TestCaching:

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self):
        redis = FakeRedis()
        classifier = StubClassifier()
        analyzer = FWAAnalyzer(classifier=classifier, cache=AnalysisCache(enabled=True, client=redis, ttl_seconds=60))

        first = await analyzer.analyze({"text": GHOST_TEXT}, "transcript")
        second = await analyzer.analyze({"text": GHOST_TEXT}, "transcript")

        assert classifier.calls == 1
        assert second == first
        assert list(redis.ttls.values()) == [60]

    @pytest.mark.asyncio
    async def test_degraded_result_not_cached(self):
        redis = FakeRedis()
        classifier = StubClassifier(error=ExtractorUnavailableError("classifier", "model down"))
        analyzer = FWAAnalyzer(classifier=classifier, cache=AnalysisCache(enabled=True, client=redis, ttl_seconds=60))

        first = await analyzer.analyze({"text": GHOST_TEXT}, "transcript")
        assert first.degraded_detectors == ["classifier"]
        assert redis.store == {}

        classifier.error = None
        second = await analyzer.analyze({"text": GHOST_TEXT}, "transcript")

        assert classifier.calls == 2
        assert second.degraded_detectors == []
        assert second.overall_confidence == 0.785
        assert len(redis.store) == 1
