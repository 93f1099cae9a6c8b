"""
Confidence Fusion & Risk Classification.

Given the findings of one analysis pass:

    pattern        = max(pattern findings, additive enrollment sum capped at 1)
    classification = max(classifier findings, default 0)
    bias           = 0.2 if sentiment < -0.3 else 0
    overall        = min(1, 0.5 × pattern + 0.4 × classification + bias)

Only max / sum over the finding set are used, so the result does not depend
on the order in which extractors completed.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from fwaguard.config import settings
from fwaguard.schemas.analysis import Finding, FindingCategory, FindingFamily, RiskLevel
from fwaguard.schemas.incident import IncidentType, Severity

logger = structlog.get_logger(__name__)

# Incident type precedence: first family present wins.
TYPE_PRECEDENCE: tuple[tuple[FindingFamily, IncidentType], ...] = (
    (FindingFamily.BILLING, IncidentType.BILLING_IRREGULARITY),
    (FindingFamily.ENROLLMENT, IncidentType.ENROLLMENT_MANIPULATION),
    (FindingFamily.BENEFITS, IncidentType.BENEFIT_MISREPRESENTATION),
)


@dataclass(frozen=True)
class RiskThresholds:
    """Inclusive lower bounds on overall confidence."""
    low: float = 0.3
    medium: float = 0.6
    high: float = 0.8
    critical: float = 0.9

    @classmethod
    def from_settings(cls) -> "RiskThresholds":
        return cls(
            low=settings.risk_threshold_low,
            medium=settings.risk_threshold_medium,
            high=settings.risk_threshold_high,
            critical=settings.risk_threshold_critical,
        )

    def classify(self, confidence: float) -> tuple[RiskLevel, bool]:
        """(risk level, reportable). Below the LOW floor nothing is reported."""
        if confidence >= self.critical:
            return RiskLevel.CRITICAL, True
        if confidence >= self.high:
            return RiskLevel.HIGH, True
        if confidence >= self.medium:
            return RiskLevel.MEDIUM, True
        if confidence >= self.low:
            return RiskLevel.LOW, True
        return RiskLevel.LOW, False


@dataclass(frozen=True)
class FusionOutcome:
    overall_confidence: float
    risk_level: RiskLevel
    reportable: bool
    pattern_confidence: float
    classification_confidence: float
    sentiment_bias: float
    incident_type: IncidentType


class ConfidenceFusion:
    """Weights and thresholds default to the configured values."""

    def __init__(
        self,
        weight_pattern: Optional[float] = None,
        weight_classifier: Optional[float] = None,
        sentiment_bias: Optional[float] = None,
        sentiment_threshold: Optional[float] = None,
        thresholds: Optional[RiskThresholds] = None,
    ):
        self.weight_pattern = settings.fusion_weight_pattern if weight_pattern is None else weight_pattern
        self.weight_classifier = settings.fusion_weight_classifier if weight_classifier is None else weight_classifier
        self.sentiment_bias = settings.sentiment_bias if sentiment_bias is None else sentiment_bias
        self.sentiment_threshold = (
            settings.sentiment_negative_threshold if sentiment_threshold is None else sentiment_threshold
        )
        self.thresholds = thresholds or RiskThresholds.from_settings()

    def fuse(self, findings: Iterable[Finding], sentiment: Optional[float] = None) -> FusionOutcome:
        findings = list(findings)
        pattern = pattern_confidence(findings)
        classification = classification_confidence(findings)
        bias = self.sentiment_bias if sentiment is not None and sentiment < self.sentiment_threshold else 0.0

        raw = math.fsum((self.weight_pattern * pattern, self.weight_classifier * classification, bias))
        overall = round(min(1.0, max(0.0, raw)), 4)
        risk_level, reportable = self.thresholds.classify(overall)

        logger.debug(
            "confidence_fused",
            n_findings=len(findings),
            pattern=pattern,
            classification=classification,
            sentiment_bias=bias,
            overall=overall,
            risk_level=risk_level.value,
        )

        return FusionOutcome(
            overall_confidence=overall,
            risk_level=risk_level,
            reportable=reportable,
            pattern_confidence=pattern,
            classification_confidence=classification,
            sentiment_bias=bias,
            incident_type=infer_incident_type(findings),
        )


def pattern_confidence(findings: list[Finding]) -> float:
    """
    Max over pattern findings. Additive categories (enrollment activity) are
    summed first, capped at 1.0, and enter the max as one contribution.
    """
    direct = [f.local_confidence for f in findings if f.category.is_pattern and not f.category.is_additive]
    additive = math.fsum(f.local_confidence for f in findings if f.category.is_additive)
    candidates = direct + ([min(1.0, additive)] if additive > 0 else [])
    return round(max(candidates, default=0.0), 4)


def classification_confidence(findings: list[Finding]) -> float:
    return max(
        (f.local_confidence for f in findings if f.category is FindingCategory.CLASSIFICATION),
        default=0.0,
    )


def infer_incident_type(findings: Iterable[Finding]) -> IncidentType:
    families = {f.category.family for f in findings}
    for family, incident_type in TYPE_PRECEDENCE:
        if family in families:
            return incident_type
    return IncidentType.SUSPICIOUS_ACTIVITY


def severity_for(risk_level: RiskLevel) -> Severity:
    """Risk level maps 1:1 onto incident severity."""
    return Severity(risk_level.value)
