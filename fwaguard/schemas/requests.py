"""Request and response bodies for the HTTP adapter."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from fwaguard.schemas.analysis import AnalysisResult, EvidenceKind
from fwaguard.schemas.incident import IncidentView


class AnalyzeRequest(BaseModel):
    evidence_kind: EvidenceKind
    evidence: dict[str, Any]
    metadata: dict[str, Any] = Field(default_factory=dict)


class ReportRequest(BaseModel):
    analysis: AnalysisResult
    source: str = Field(min_length=1, max_length=200)
    reporter_id: Optional[str] = Field(default=None, max_length=128)


class ReportOutcome(BaseModel):
    """``incident`` is null when the analysis was below the reporting floor."""
    created: bool
    incident: Optional[IncidentView] = None


class InvestigationRequest(BaseModel):
    investigator_id: str = Field(min_length=1, max_length=128)


class EscalateRequest(BaseModel):
    reason: str = Field(default="", max_length=2000)


class FindingRequest(BaseModel):
    finding: str = Field(default="", max_length=10_000)


class ReferralRequest(BaseModel):
    case_number: str = Field(min_length=1, max_length=64)


class ResolveRequest(BaseModel):
    resolution: str = Field(default="", max_length=10_000)


class CloseRequest(BaseModel):
    reason: str = Field(default="", max_length=10_000)


class EvidenceRequest(BaseModel):
    refs: list[str] = Field(min_length=1)


class NoteRequest(BaseModel):
    note: str = Field(min_length=1, max_length=10_000)
