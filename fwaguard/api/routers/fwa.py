"""FWA analysis and incident lifecycle endpoints. Delegates to the service layer only."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from fwaguard.api.deps import get_actor, get_analyzer, get_incident_service
from fwaguard.schemas.analysis import AnalysisResult
from fwaguard.schemas.incident import (
    ImpactUpdate,
    IncidentPage,
    IncidentReport,
    IncidentStatus,
    IncidentView,
    Severity,
)
from fwaguard.schemas.requests import (
    AnalyzeRequest,
    CloseRequest,
    EscalateRequest,
    EvidenceRequest,
    FindingRequest,
    InvestigationRequest,
    NoteRequest,
    ReferralRequest,
    ReportOutcome,
    ReportRequest,
    ResolveRequest,
)
from fwaguard.services.analysis_service import FWAAnalyzer
from fwaguard.services.incident_service import IncidentService

router = APIRouter(prefix="/api/v1/fwa", tags=["fwa"])


# ── Analysis ──────────────────────────────────────────────────────────────


@router.post("/analyze", response_model=AnalysisResult)
async def analyze(body: AnalyzeRequest, analyzer: FWAAnalyzer = Depends(get_analyzer)):
    return await analyzer.analyze(body.evidence, body.evidence_kind, body.metadata)


@router.post("/incidents/report", response_model=ReportOutcome)
async def report_incident(body: ReportRequest, service: IncidentService = Depends(get_incident_service)):
    incident = await service.report_incident(body.analysis, body.source, body.reporter_id)
    return ReportOutcome(created=incident is not None, incident=incident)


# ── Incidents: create + queries ───────────────────────────────────────────


@router.post("/incidents", response_model=IncidentView, status_code=201)
async def create_incident(body: IncidentReport, service: IncidentService = Depends(get_incident_service)):
    return await service.create(body)


@router.get("/incidents", response_model=IncidentPage)
async def list_incidents(
    status: Optional[IncidentStatus] = None,
    severity: Optional[Severity] = None,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.list(status=status, severity=severity, offset=offset, limit=limit)


@router.get("/incidents/active", response_model=list[IncidentView])
async def active_incidents(service: IncidentService = Depends(get_incident_service)):
    return await service.active()


@router.get("/incidents/high-risk", response_model=list[IncidentView])
async def high_risk_incidents(
    min_score: int = Query(default=70, ge=0, le=100),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.high_risk(min_score=min_score)


@router.get("/incidents/by-number/{incident_number}", response_model=IncidentView)
async def get_incident_by_number(incident_number: str, service: IncidentService = Depends(get_incident_service)):
    return await service.get_by_number(incident_number)


@router.get("/incidents/{incident_id}", response_model=IncidentView)
async def get_incident(incident_id: uuid.UUID, service: IncidentService = Depends(get_incident_service)):
    return await service.get(incident_id)


# ── Lifecycle ─────────────────────────────────────────────────────────────


@router.post("/incidents/{incident_id}/investigation", response_model=IncidentView)
async def begin_investigation(
    incident_id: uuid.UUID,
    body: InvestigationRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.begin_investigation(incident_id, actor, body.investigator_id)


@router.post("/incidents/{incident_id}/escalate", response_model=IncidentView)
async def escalate(
    incident_id: uuid.UUID,
    body: EscalateRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.escalate(incident_id, actor, body.reason)


@router.post("/incidents/{incident_id}/substantiate", response_model=IncidentView)
async def substantiate(
    incident_id: uuid.UUID,
    body: FindingRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.substantiate(incident_id, actor, body.finding)


@router.post("/incidents/{incident_id}/unsubstantiate", response_model=IncidentView)
async def unsubstantiate(
    incident_id: uuid.UUID,
    body: FindingRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.unsubstantiate(incident_id, actor, body.finding)


@router.post("/incidents/{incident_id}/referrals/oig", response_model=IncidentView)
async def refer_to_oig(
    incident_id: uuid.UUID,
    body: ReferralRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.refer_to_oig(incident_id, actor, body.case_number)


@router.post("/incidents/{incident_id}/referrals/cms", response_model=IncidentView)
async def refer_to_cms(
    incident_id: uuid.UUID,
    body: ReferralRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.refer_to_cms(incident_id, actor, body.case_number)


@router.post("/incidents/{incident_id}/resolve", response_model=IncidentView)
async def resolve(
    incident_id: uuid.UUID,
    body: ResolveRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.resolve(incident_id, actor, body.resolution)


@router.post("/incidents/{incident_id}/close", response_model=IncidentView)
async def close(
    incident_id: uuid.UUID,
    body: CloseRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.close(incident_id, actor, body.reason)


@router.patch("/incidents/{incident_id}/impact", response_model=IncidentView)
async def update_impact(
    incident_id: uuid.UUID,
    body: ImpactUpdate,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.update_impact(incident_id, actor, body)


@router.post("/incidents/{incident_id}/evidence", response_model=IncidentView)
async def add_evidence(
    incident_id: uuid.UUID,
    body: EvidenceRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.add_evidence(incident_id, actor, body.refs)


@router.post("/incidents/{incident_id}/notes", response_model=IncidentView)
async def add_note(
    incident_id: uuid.UUID,
    body: NoteRequest,
    actor: str = Depends(get_actor),
    service: IncidentService = Depends(get_incident_service),
):
    return await service.add_note(incident_id, actor, body.note)
