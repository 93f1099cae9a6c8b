"""
Analysis Schemas — findings, fused results, and guidance.

A Finding is transient: produced by one extractor and consumed by fusion.
An AnalysisResult is immutable once produced and safe to cache as JSON.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from fwaguard.schemas.incident import IncidentType


class EvidenceKind(StrEnum):
    TRANSCRIPT = "transcript"
    BILLING = "billing"
    ENROLLMENT = "enrollment"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class FindingFamily(StrEnum):
    """Coarse grouping used to infer the incident type."""
    BILLING = "billing"
    ENROLLMENT = "enrollment"
    BENEFITS = "benefits"
    GENERAL = "general"


class FindingCategory(StrEnum):
    # Phrase patterns (text)
    BILLING_PATTERN = "billing"
    ENROLLMENT_PATTERN = "enrollment"
    BENEFITS_PATTERN = "benefits"
    KEYWORD_MATCH = "keyword_match"
    # Billing batches
    STATISTICAL_OUTLIER = "statistical_outlier"
    DUPLICATE_AMOUNTS = "duplicate_amounts"
    # Enrollment events
    CONSENT_VIOLATION = "consent_violation"
    IDENTITY_RISK = "identity_risk"
    SUSPICIOUS_ENROLLMENT = "suspicious_enrollment"
    # Classifier output
    CLASSIFICATION = "classification"

    @property
    def family(self) -> FindingFamily:
        return _FAMILIES[self]

    @property
    def is_pattern(self) -> bool:
        """Everything except the classifier contributes to pattern confidence."""
        return self is not FindingCategory.CLASSIFICATION

    @property
    def is_additive(self) -> bool:
        """Enrollment-activity categories sum instead of taking the max."""
        return self in _ADDITIVE


_FAMILIES: dict[FindingCategory, FindingFamily] = {
    FindingCategory.BILLING_PATTERN: FindingFamily.BILLING,
    FindingCategory.STATISTICAL_OUTLIER: FindingFamily.BILLING,
    FindingCategory.DUPLICATE_AMOUNTS: FindingFamily.BILLING,
    FindingCategory.ENROLLMENT_PATTERN: FindingFamily.ENROLLMENT,
    FindingCategory.CONSENT_VIOLATION: FindingFamily.ENROLLMENT,
    FindingCategory.IDENTITY_RISK: FindingFamily.ENROLLMENT,
    FindingCategory.SUSPICIOUS_ENROLLMENT: FindingFamily.ENROLLMENT,
    FindingCategory.BENEFITS_PATTERN: FindingFamily.BENEFITS,
    FindingCategory.KEYWORD_MATCH: FindingFamily.GENERAL,
    FindingCategory.CLASSIFICATION: FindingFamily.GENERAL,
}

_ADDITIVE: frozenset[FindingCategory] = frozenset({
    FindingCategory.CONSENT_VIOLATION,
    FindingCategory.IDENTITY_RISK,
    FindingCategory.SUSPICIOUS_ENROLLMENT,
})


class Finding(BaseModel):
    """One observation from one extractor."""
    model_config = ConfigDict(frozen=True)

    category: FindingCategory
    local_confidence: float = Field(ge=0.0, le=1.0)
    evidence_ref: str
    detector: str
    detail: dict[str, Any] = Field(default_factory=dict)


class RecommendationPriority(StrEnum):
    IMMEDIATE = "IMMEDIATE"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    RecommendationPriority.IMMEDIATE: 0,
    RecommendationPriority.HIGH: 1,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.LOW: 3,
}


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    priority: RecommendationPriority
    action: str
    description: str


class Indicator(BaseModel):
    """Human-readable evidence line shown to investigators."""
    model_config = ConfigDict(frozen=True)

    type: str
    confidence: float
    description: str
    category: Optional[str] = None


class AnalysisResult(BaseModel):
    """
    Output of one fusion pass.

    overall = min(1, w_p × pattern + w_c × classification + sentiment_bias)
    """
    model_config = ConfigDict(frozen=True)

    evidence_kind: EvidenceKind
    evidence_id: str
    overall_confidence: float = Field(ge=0.0, le=1.0)
    risk_level: RiskLevel
    reportable: bool
    pattern_confidence: float = 0.0
    classification_confidence: float = 0.0
    sentiment: Optional[float] = None
    sentiment_bias: float = 0.0
    incident_type: IncidentType
    findings: list[Finding] = Field(default_factory=list)
    indicators: list[Indicator] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    degraded_detectors: list[str] = Field(default_factory=list)
    statistics: dict[str, float] = Field(default_factory=dict)
    analyzed_at: datetime
    source_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def categories(self) -> list[str]:
        """Distinct finding categories, in first-seen order."""
        return list(dict.fromkeys(f.category.value for f in self.findings))
