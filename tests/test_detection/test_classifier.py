"""
Classifier Tests.

Covers:
- KeywordClassifier calibration and NORMAL fallback
- HttpClassifier success, HTTP failure, bad payload and open circuit
- ClassifierExtractor suppresses NORMAL verdicts
"""

import httpx
import pytest

from fwaguard.detection.classifier import (
    ClassLabel,
    Classification,
    ClassifierExtractor,
    HttpClassifier,
    KeywordClassifier,
)
from fwaguard.errors import ExtractorUnavailableError
from fwaguard.schemas.analysis import FindingCategory
from fwaguard.schemas.evidence import TranscriptEvidence
from fwaguard.services.resilience import CircuitBreaker, CircuitState

FRAUD_TEXT = "The agent mentioned a kickback, filed false claims and forged signatures."
NEUTRAL_TEXT = "I called to ask about my pharmacy coverage."


class TestKeywordClassifier:

    @pytest.mark.asyncio
    async def test_fraud_terms(self):
        result = await KeywordClassifier().classify(FRAUD_TEXT)
        assert result.label is ClassLabel.FRAUD
        # sigmoid(-2.5 + 2.0 + 2.0 + 1.5)
        assert result.confidence == pytest.approx(0.9526, abs=1e-4)

    @pytest.mark.asyncio
    async def test_neutral_is_normal(self):
        result = await KeywordClassifier().classify(NEUTRAL_TEXT)
        assert result.label is ClassLabel.NORMAL
        assert result.confidence == pytest.approx(0.9241, abs=1e-4)

    @pytest.mark.asyncio
    async def test_abuse_terms(self):
        result = await KeywordClassifier().classify(
            "She kept applying pressure and was misleading about what I had to pay"
        )
        assert result.label is ClassLabel.ABUSE

    def test_probabilities_cover_every_class(self):
        probs = KeywordClassifier().probabilities(NEUTRAL_TEXT)
        assert set(probs) == {ClassLabel.FRAUD, ClassLabel.WASTE, ClassLabel.ABUSE}
        assert all(0.0 < p < 0.5 for p in probs.values())

    def test_classification_accepts_wire_alias(self):
        parsed = Classification.model_validate({"class": "WASTE", "confidence": 0.6})
        assert parsed.label is ClassLabel.WASTE


def _http(handler, breaker=None) -> HttpClassifier:
    return HttpClassifier(
        "http://classifier.test/classify",
        api_key="secret",
        timeout=1.0,
        breaker=breaker or CircuitBreaker("test_classifier", failure_threshold=2, recovery_timeout=60),
        transport=httpx.MockTransport(handler),
    )


class TestHttpClassifier:

    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["api_key"] = request.headers.get("X-API-Key")
            return httpx.Response(200, json={"class": "FRAUD", "confidence": 0.8})

        result = await _http(handler).classify("text")
        assert result.label is ClassLabel.FRAUD
        assert result.confidence == 0.8
        assert seen["api_key"] == "secret"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        classifier = _http(lambda request: httpx.Response(503))
        with pytest.raises(ExtractorUnavailableError):
            await classifier.classify("text")

    @pytest.mark.asyncio
    async def test_bad_payload_is_unavailable(self):
        classifier = _http(lambda request: httpx.Response(200, json={"class": "MAYBE", "confidence": 2}))
        with pytest.raises(ExtractorUnavailableError):
            await classifier.classify("text")

    @pytest.mark.asyncio
    async def test_circuit_opens_after_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker("test_classifier", failure_threshold=2, recovery_timeout=60)
        classifier = _http(handler, breaker)
        for _ in range(3):
            with pytest.raises(ExtractorUnavailableError):
                await classifier.classify("text")

        assert breaker.state is CircuitState.OPEN
        assert len(calls) == 2


class _Fixed:
    def __init__(self, label: ClassLabel, confidence: float):
        self.result = Classification(label=label, confidence=confidence)

    async def classify(self, text: str) -> Classification:
        return self.result


class TestClassifierExtractor:

    @pytest.mark.asyncio
    async def test_normal_yields_nothing(self):
        extractor = ClassifierExtractor(_Fixed(ClassLabel.NORMAL, 0.99))
        assert await extractor.detect(TranscriptEvidence(text="hello")) == []

    @pytest.mark.asyncio
    async def test_label_becomes_classification_finding(self):
        extractor = ClassifierExtractor(_Fixed(ClassLabel.WASTE, 0.7))
        findings = await extractor.detect(TranscriptEvidence(text="hello", call_id="c-1"))
        assert len(findings) == 1
        assert findings[0].category is FindingCategory.CLASSIFICATION
        assert findings[0].local_confidence == 0.7
        assert findings[0].detail == {"class": "WASTE"}
        assert findings[0].evidence_ref == "c-1"
