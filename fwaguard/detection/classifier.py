"""
Classifier Extractor — pluggable text classifier behind a fixed contract.

Contract: ``classify(text) → {class ∈ {NORMAL, FRAUD, WASTE, ABUSE}, confidence ∈ [0, 1]}``.
The engine depends on this contract only. Two implementations ship:

- KeywordClassifier: deterministic lexicon scorer, logistic-calibrated (default)
- HttpClassifier: remote model service over HTTP, bounded timeout + circuit breaker

A NORMAL verdict produces no Finding.
"""

import math
import re
from enum import StrEnum
from typing import Optional, Protocol

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from fwaguard.config import settings
from fwaguard.detection.base import Extractor
from fwaguard.errors import ExtractorUnavailableError
from fwaguard.schemas.analysis import Finding, FindingCategory
from fwaguard.schemas.evidence import TranscriptEvidence
from fwaguard.services.resilience import CircuitBreaker, CircuitOpenError, classifier_breaker

logger = structlog.get_logger(__name__)


class ClassLabel(StrEnum):
    NORMAL = "NORMAL"
    FRAUD = "FRAUD"
    WASTE = "WASTE"
    ABUSE = "ABUSE"


class Classification(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: ClassLabel = Field(alias="class")
    confidence: float = Field(ge=0.0, le=1.0)


class TextClassifier(Protocol):
    async def classify(self, text: str) -> Classification:
        ...


# ── Lexicon classifier ─────────────────────────────────────────────────────

# Term prefixes → log-odds contribution. Each term counts once per text.
LEXICON: dict[ClassLabel, dict[str, float]] = {
    ClassLabel.FRAUD: {
        "fraud": 1.5, "fake": 1.0, "forged": 1.5, "stolen": 1.2,
        "identity theft": 2.0, "kickback": 2.0, "bribe": 1.8, "ghost": 1.2,
        "phantom": 1.2, "not provided": 1.0, "upcod": 1.5, "false claim": 2.0,
        "never received": 1.0, "unauthorized": 1.0, "without consent": 1.2,
    },
    ClassLabel.WASTE: {
        "unnecessary": 1.5, "duplicate": 1.2, "overuse": 1.5, "excessive": 1.3,
        "redundant": 1.2, "not medically necessary": 2.0, "repeat test": 1.0,
    },
    ClassLabel.ABUSE: {
        "pressure": 1.2, "threaten": 1.5, "misleading": 1.5, "misrepresent": 1.8,
        "exaggerat": 1.3, "coerc": 1.8, "switch plans": 1.0, "sign today": 1.0,
    },
}

LEXICON_BIAS: float = -2.5
DECISION_THRESHOLD: float = 0.5


def _sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


class KeywordClassifier:
    """
    Per-class logistic score over matched lexicon terms.

    p(class) = σ(bias + Σ weight(term) for distinct matched terms)
    Highest p wins if it clears the decision threshold, otherwise NORMAL
    with confidence 1 - p_max.
    """

    def __init__(
        self,
        lexicon: dict[ClassLabel, dict[str, float]] | None = None,
        bias: float = LEXICON_BIAS,
        threshold: float = DECISION_THRESHOLD,
    ):
        self.bias = bias
        self.threshold = threshold
        self._compiled = {
            label: [(re.compile(r"\b" + re.escape(term), re.I), weight) for term, weight in terms.items()]
            for label, terms in (lexicon or LEXICON).items()
        }

    def probabilities(self, text: str) -> dict[ClassLabel, float]:
        probs = {}
        for label, terms in self._compiled.items():
            logit = self.bias + sum(weight for regex, weight in terms if regex.search(text))
            probs[label] = _sigmoid(logit)
        return probs

    async def classify(self, text: str) -> Classification:
        probs = self.probabilities(text)
        if not probs:
            return Classification(label=ClassLabel.NORMAL, confidence=1.0)
        # Sort for a stable winner on ties
        label, p_max = max(sorted(probs.items()), key=lambda kv: kv[1])
        if p_max < self.threshold:
            return Classification(label=ClassLabel.NORMAL, confidence=round(1.0 - p_max, 4))
        return Classification(label=label, confidence=round(p_max, 4))


# ── Remote classifier ──────────────────────────────────────────────────────


class HttpClassifier:
    """
    Remote model service.

    POST {url} with ``{"text": ...}`` → ``{"class": ..., "confidence": ...}``.
    Any transport error, timeout, bad payload or open circuit becomes
    ExtractorUnavailableError.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float | None = None,
        breaker: CircuitBreaker | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout or settings.extractor_timeout_seconds
        self.breaker = breaker or classifier_breaker
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=self._transport)

    async def _post(self, text: str) -> Classification:
        async with self._client() as client:
            resp = await client.post(self.url, json={"text": text})
            resp.raise_for_status()
            return Classification.model_validate(resp.json())

    async def classify(self, text: str) -> Classification:
        try:
            return await self.breaker.call(self._post, text)
        except CircuitOpenError as e:
            raise ExtractorUnavailableError("classifier", str(e)) from e
        except httpx.TimeoutException as e:
            raise ExtractorUnavailableError("classifier", "timeout") from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExtractorUnavailableError("classifier", str(e)) from e


def build_default_classifier() -> TextClassifier:
    """Remote service when CLASSIFIER_URL is configured, lexicon otherwise."""
    if settings.classifier_url:
        logger.info("classifier_configured", kind="http", url=settings.classifier_url)
        return HttpClassifier(settings.classifier_url, api_key=settings.classifier_api_key)
    return KeywordClassifier()


class ClassifierExtractor(Extractor):
    name = "classifier"

    def __init__(self, classifier: TextClassifier):
        self.classifier = classifier

    async def detect(self, evidence: TranscriptEvidence) -> list[Finding]:
        result = await self.classifier.classify(evidence.text)
        if result.label is ClassLabel.NORMAL:
            return []
        return [Finding(
            category=FindingCategory.CLASSIFICATION,
            local_confidence=result.confidence,
            evidence_ref=evidence.call_id or "transcript",
            detector=self.name,
            detail={"class": result.label.value},
        )]
