"""Pydantic schemas for the FWA Incident aggregate."""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class IncidentType(StrEnum):
    FRAUD = "FRAUD"
    WASTE = "WASTE"
    ABUSE = "ABUSE"
    COMPLIANCE_VIOLATION = "COMPLIANCE_VIOLATION"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    IDENTITY_THEFT = "IDENTITY_THEFT"
    BILLING_IRREGULARITY = "BILLING_IRREGULARITY"
    ENROLLMENT_MANIPULATION = "ENROLLMENT_MANIPULATION"
    BENEFIT_MISREPRESENTATION = "BENEFIT_MISREPRESENTATION"
    UNAUTHORIZED_DISCLOSURE = "UNAUTHORIZED_DISCLOSURE"


class Severity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IncidentStatus(StrEnum):
    REPORTED = "REPORTED"
    UNDER_INVESTIGATION = "UNDER_INVESTIGATION"
    SUBSTANTIATED = "SUBSTANTIATED"
    UNSUBSTANTIATED = "UNSUBSTANTIATED"
    REFERRED_TO_OIG = "REFERRED_TO_OIG"
    REFERRED_TO_CMS = "REFERRED_TO_CMS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class DetectionMethod(StrEnum):
    AI_DETECTION = "AI_DETECTION"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    EMPLOYEE_REPORT = "EMPLOYEE_REPORT"
    BENEFICIARY_COMPLAINT = "BENEFICIARY_COMPLAINT"
    AUDIT_FINDING = "AUDIT_FINDING"
    SYSTEM_ALERT = "SYSTEM_ALERT"
    ANONYMOUS_TIP = "ANONYMOUS_TIP"
    REGULATORY_NOTICE = "REGULATORY_NOTICE"


class ReporterType(StrEnum):
    EMPLOYEE = "EMPLOYEE"
    BENEFICIARY = "BENEFICIARY"
    VENDOR = "VENDOR"
    ANONYMOUS = "ANONYMOUS"
    SYSTEM = "SYSTEM"
    AUDITOR = "AUDITOR"
    REGULATOR = "REGULATOR"


class TimelineAction(StrEnum):
    REPORTED = "REPORTED"
    INVESTIGATION_STARTED = "INVESTIGATION_STARTED"
    ESCALATED = "ESCALATED"
    SUBSTANTIATED = "SUBSTANTIATED"
    UNSUBSTANTIATED = "UNSUBSTANTIATED"
    REFERRED_TO_OIG = "REFERRED_TO_OIG"
    REFERRED_TO_CMS = "REFERRED_TO_CMS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    IMPACT_UPDATED = "IMPACT_UPDATED"
    EVIDENCE_ADDED = "EVIDENCE_ADDED"
    NOTE_ADDED = "NOTE_ADDED"


class ComplianceImpactFlags(BaseModel):
    cms_violation: bool = False
    hipaa_violation: bool = False
    false_claims_act: bool = False
    anti_kickback: bool = False


class RegulatoryReferral(BaseModel):
    oig: Optional[str] = None
    cms: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.oig is None and self.cms is None


class IncidentReport(BaseModel):
    """Input for ``create`` — a human report or an engine-built report."""
    incident_type: IncidentType
    severity: Severity = Severity.MEDIUM
    description: str = Field(min_length=1, max_length=10_000)
    detection_method: DetectionMethod
    reporter_type: ReporterType
    reporter_id: Optional[str] = Field(default=None, max_length=128)
    reporter_protected: bool = False
    incident_date: Optional[datetime] = None
    affected_beneficiaries: set[str] = Field(default_factory=set)
    financial_impact: Decimal = Field(default=Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    evidence_refs: list[str] = Field(default_factory=list)
    compliance_impact: ComplianceImpactFlags = Field(default_factory=ComplianceImpactFlags)
    ai_confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ai_analysis: Optional[dict[str, Any]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("evidence_refs")
    @classmethod
    def _no_blank_refs(cls, v: list[str]) -> list[str]:
        if any(not ref.strip() for ref in v):
            raise ValueError("evidence references must be non-empty")
        return v


class ImpactUpdate(BaseModel):
    """Fields that feed the risk score. ``None`` means unchanged."""
    financial_impact: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    affected_beneficiaries: Optional[set[str]] = None
    compliance_impact: Optional[ComplianceImpactFlags] = None


class TimelineEntryView(BaseModel):
    sequence: int
    action: str
    timestamp: datetime
    actor: str
    detail: dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class IncidentView(BaseModel):
    """The Incident aggregate: incident row + ordered timeline."""
    id: uuid.UUID
    incident_number: str
    incident_type: IncidentType
    severity: Severity
    status: IncidentStatus
    detection_method: DetectionMethod
    reporter_type: ReporterType
    reporter_id: Optional[str]
    reporter_protected: bool
    description: str
    incident_date: datetime
    reported_at: datetime
    affected_beneficiaries: list[str]
    affected_count: int
    financial_impact: Decimal
    evidence_refs: list[str]
    compliance_impact: ComplianceImpactFlags
    risk_score: int
    ai_confidence_score: Optional[float] = None
    investigator_id: Optional[str] = None
    investigation_started: Optional[datetime] = None
    investigation_completed: Optional[datetime] = None
    regulatory_referral: RegulatoryReferral
    regulatory_reported: bool
    regulatory_report_date: Optional[datetime] = None
    critical_alerted_at: Optional[datetime] = None
    timeline: list[TimelineEntryView]
    version: int


class IncidentPage(BaseModel):
    items: list[IncidentView]
    total: int
    offset: int
    limit: int
