"""
FWA Analysis Service — evidence in, AnalysisResult out.

Flow:
  1. Validate evidence against its kind (ValidationError before any extractor runs)
  2. Cache lookup by evidence fingerprint
  3. Run the kind's extractors concurrently, each under a timeout
  4. Fuse findings → overall confidence, risk level, incident type
  5. Derive indicators + recommendations, cache, return

A failing or slow extractor is dropped from the pass and listed in
``degraded_detectors``; the analysis still completes.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional

import pydantic
import structlog

from fwaguard.config import settings
from fwaguard.detection.base import Extractor
from fwaguard.detection.billing import StatisticalAnomalyExtractor
from fwaguard.detection.classifier import ClassifierExtractor, TextClassifier, build_default_classifier
from fwaguard.detection.enrollment import EnrollmentActivityExtractor
from fwaguard.detection.patterns import PatternExtractor
from fwaguard.detection.sentiment import SentimentAnalyzer
from fwaguard.engine.fusion import ConfidenceFusion
from fwaguard.engine.recommendations import build_indicators, generate_recommendations
from fwaguard.errors import ValidationError
from fwaguard.schemas.analysis import AnalysisResult, EvidenceKind, Finding
from fwaguard.schemas.evidence import (
    BillingEvidence,
    EnrollmentEvidence,
    Evidence,
    TranscriptEvidence,
    evidence_fingerprint,
    evidence_identity,
)
from fwaguard.services.cache import AnalysisCache

logger = structlog.get_logger(__name__)

EVIDENCE_MODELS: dict[EvidenceKind, type[pydantic.BaseModel]] = {
    EvidenceKind.TRANSCRIPT: TranscriptEvidence,
    EvidenceKind.BILLING: BillingEvidence,
    EvidenceKind.ENROLLMENT: EnrollmentEvidence,
}

_DEFAULT_CLASSIFIER: Any = object()


def parse_evidence(evidence: Any, kind: EvidenceKind | str) -> tuple[Evidence, EvidenceKind]:
    """Coerce raw input into the evidence model for ``kind``."""
    try:
        kind = EvidenceKind(str(kind).lower())
    except ValueError:
        raise ValidationError(f"Unknown evidence kind: {kind}", field="evidence_kind", value=kind) from None

    model = EVIDENCE_MODELS[kind]
    if isinstance(evidence, model):
        return evidence, kind
    if isinstance(evidence, pydantic.BaseModel):
        raise ValidationError(
            f"{type(evidence).__name__} is not valid {kind.value} evidence",
            field="evidence",
        )
    try:
        return model.model_validate(evidence), kind
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ValidationError(f"Invalid {kind.value} evidence: {first.get('msg')}", field=field) from e


class FWAAnalyzer:
    """
    Stateless apart from the optional cache. Pass ``classifier=None`` to run
    transcripts without a classifier.
    """

    def __init__(
        self,
        classifier: Optional[TextClassifier] = _DEFAULT_CLASSIFIER,
        cache: Optional[AnalysisCache] = None,
        fusion: Optional[ConfidenceFusion] = None,
        timeout_seconds: Optional[float] = None,
        pattern: Optional[PatternExtractor] = None,
        sentiment: Optional[SentimentAnalyzer] = None,
        statistical: Optional[StatisticalAnomalyExtractor] = None,
        enrollment: Optional[EnrollmentActivityExtractor] = None,
    ):
        if classifier is _DEFAULT_CLASSIFIER:
            classifier = build_default_classifier()
        self.classifier = ClassifierExtractor(classifier) if classifier is not None else None
        self.cache = cache
        self.fusion = fusion or ConfidenceFusion()
        self.timeout_seconds = timeout_seconds or settings.extractor_timeout_seconds
        self.pattern = pattern or PatternExtractor()
        self.sentiment = sentiment or SentimentAnalyzer()
        self.statistical = statistical or StatisticalAnomalyExtractor()
        self.enrollment = enrollment or EnrollmentActivityExtractor()

    def extractors_for(self, kind: EvidenceKind) -> list[Extractor]:
        if kind is EvidenceKind.TRANSCRIPT:
            return [self.pattern] + ([self.classifier] if self.classifier else [])
        if kind is EvidenceKind.BILLING:
            return [self.statistical]
        return [self.enrollment]

    async def analyze(
        self,
        evidence: Any,
        kind: EvidenceKind | str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AnalysisResult:
        evidence, kind = parse_evidence(evidence, kind)
        fingerprint = evidence_fingerprint(evidence)

        if self.cache is not None:
            cached = await self.cache.get(kind, fingerprint)
            if cached is not None:
                logger.debug("analysis_cache_hit", kind=kind.value, fingerprint=fingerprint[:12])
                return cached

        extractors = self.extractors_for(kind)
        tasks: list[Awaitable] = [self._run(e.name, e.detect(evidence)) for e in extractors]
        if kind is EvidenceKind.TRANSCRIPT:
            tasks.append(self._run(self.sentiment.name, self.sentiment.analyze(evidence)))

        outcomes = await asyncio.gather(*tasks)

        findings: list[Finding] = []
        degraded: list[str] = []
        for extractor, outcome in zip(extractors, outcomes):
            if outcome is None:
                degraded.append(extractor.name)
            else:
                findings.extend(outcome)

        sentiment: Optional[float] = None
        if kind is EvidenceKind.TRANSCRIPT:
            sentiment = outcomes[-1]
            if sentiment is None:
                degraded.append(self.sentiment.name)

        fused = self.fusion.fuse(findings, sentiment)
        result = AnalysisResult(
            evidence_kind=kind,
            evidence_id=evidence_identity(evidence),
            overall_confidence=fused.overall_confidence,
            risk_level=fused.risk_level,
            reportable=fused.reportable,
            pattern_confidence=fused.pattern_confidence,
            classification_confidence=fused.classification_confidence,
            sentiment=sentiment,
            sentiment_bias=fused.sentiment_bias,
            incident_type=fused.incident_type,
            findings=findings,
            indicators=build_indicators(findings, sentiment, self.fusion.sentiment_threshold),
            recommendations=generate_recommendations(kind, fused, findings),
            degraded_detectors=degraded,
            statistics=self._statistics(evidence, kind),
            analyzed_at=datetime.now(timezone.utc),
            source_metadata=dict(metadata or {}),
        )

        logger.info(
            "fwa_analysis_complete",
            kind=kind.value,
            evidence_id=result.evidence_id,
            risk_level=result.risk_level.value,
            confidence=result.overall_confidence,
            n_findings=len(findings),
            degraded=degraded or None,
        )

        # A degraded result would outlive the outage that produced it
        if self.cache is not None and not degraded:
            await self.cache.set(kind, fingerprint, result)
        return result

    async def _run(self, name: str, coro: Awaitable) -> Any:
        """Await one extractor; None means it failed or timed out."""
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("extractor_failed", detector=name, error="timeout", timeout=self.timeout_seconds)
        except Exception as e:
            logger.warning("extractor_failed", detector=name, error=str(e))
        return None

    def _statistics(self, evidence: Evidence, kind: EvidenceKind) -> dict[str, float]:
        if kind is EvidenceKind.BILLING:
            return self.statistical.statistics(evidence)
        if kind is EvidenceKind.TRANSCRIPT:
            return {"text_length": float(len(evidence.text))}
        return {"event_count": float(len(evidence.events))}
