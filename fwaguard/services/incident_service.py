"""
Incident Service — the only writer of FWA incidents.

Every lifecycle operation runs as one transaction:
  1. Load the row under a per-incident lock (+ SELECT ... FOR UPDATE)
  2. Validate — raise before touching any field
  3. Apply field changes
  4. Recompute risk_score from the post-change attributes
  5. Append one timeline row
  6. Evaluate escalation, commit
Escalation alerts are scheduled for background delivery after the commit.

A rejected operation leaves status, risk_score and the timeline untouched.
"""

import asyncio
import uuid
import weakref
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from fwaguard.alerting.escalation import EscalationPolicy
from fwaguard.alerting.schemas import EscalationAlert
from fwaguard.db.models import FWAIncident, IncidentTimelineEntry, utcnow
from fwaguard.db.repositories.incident import HIGH_RISK_SCORE, incident_repo
from fwaguard.engine.fusion import RiskThresholds, severity_for
from fwaguard.engine.risk_score import compute_risk_score
from fwaguard.errors import ConcurrentModificationError, InvalidTransitionError, NotFoundError, ValidationError
from fwaguard.incidents.lifecycle import (
    COMPLETING_STATUSES,
    check_open,
    check_transition,
    generate_incident_number,
    next_severity,
)
from fwaguard.schemas.analysis import AnalysisResult, RiskLevel
from fwaguard.schemas.incident import (
    ComplianceImpactFlags,
    DetectionMethod,
    ImpactUpdate,
    IncidentPage,
    IncidentReport,
    IncidentStatus,
    IncidentType,
    IncidentView,
    RegulatoryReferral,
    ReporterType,
    Severity,
    TimelineAction,
    TimelineEntryView,
)

logger = structlog.get_logger(__name__)

SYSTEM_ACTOR = "system"
PROTECTED_ACTOR = "protected-reporter"
MAX_NOTE_LENGTH = 10_000
NUMBER_ATTEMPTS = 3

Mutation = Callable[[FWAIncident], tuple[TimelineAction, dict[str, Any]]]


# ── Read assembly ──────────────────────────────────────────────────────────


def compliance_flags(incident: FWAIncident) -> ComplianceImpactFlags:
    return ComplianceImpactFlags(
        cms_violation=incident.cms_violation,
        hipaa_violation=incident.hipaa_violation,
        false_claims_act=incident.false_claims_act,
        anti_kickback=incident.anti_kickback,
    )


def recompute_risk_score(incident: FWAIncident) -> int:
    incident.risk_score = compute_risk_score(
        Severity(incident.severity),
        IncidentType(incident.incident_type),
        Decimal(incident.financial_impact),
        incident.affected_count,
        compliance_flags(incident),
    )
    return incident.risk_score


def to_view(incident: FWAIncident) -> IncidentView:
    """Incident row + ordered timeline. A protected reporter's id is withheld."""
    return IncidentView(
        id=incident.id,
        incident_number=incident.incident_number,
        incident_type=IncidentType(incident.incident_type),
        severity=Severity(incident.severity),
        status=IncidentStatus(incident.status),
        detection_method=DetectionMethod(incident.detection_method),
        reporter_type=ReporterType(incident.reporter_type),
        reporter_id=None if incident.reporter_protected else incident.reporter_id,
        reporter_protected=incident.reporter_protected,
        description=incident.description,
        incident_date=incident.incident_date,
        reported_at=incident.reported_at,
        affected_beneficiaries=list(incident.affected_beneficiaries),
        affected_count=incident.affected_count,
        financial_impact=Decimal(incident.financial_impact),
        evidence_refs=list(incident.evidence_refs),
        compliance_impact=compliance_flags(incident),
        risk_score=incident.risk_score,
        ai_confidence_score=incident.ai_confidence_score,
        investigator_id=incident.investigator_id,
        investigation_started=incident.investigation_started,
        investigation_completed=incident.investigation_completed,
        regulatory_referral=RegulatoryReferral(oig=incident.oig_case_number, cms=incident.cms_case_number),
        regulatory_reported=incident.regulatory_reported,
        regulatory_report_date=incident.regulatory_report_date,
        critical_alerted_at=incident.critical_alerted_at,
        timeline=[TimelineEntryView.model_validate(e) for e in incident.timeline],
        version=incident.version_id,
    )


def describe_analysis(result: AnalysisResult, source: str, risk_level: RiskLevel) -> str:
    patterns = ", ".join(result.categories) or "none"
    return (
        f"AI-detected suspicious activity in {source}. "
        f"Confidence: {result.overall_confidence * 100:.1f}%. "
        f"Patterns: {patterns}. "
        f"Risk Level: {risk_level.value}."
    )


def summarize_analysis(result: AnalysisResult, risk_level: RiskLevel) -> dict[str, Any]:
    """Compact copy of the analysis stored on the incident."""
    return {
        "evidence_kind": result.evidence_kind.value,
        "evidence_id": result.evidence_id,
        "overall_confidence": result.overall_confidence,
        "risk_level": risk_level.value,
        "pattern_confidence": result.pattern_confidence,
        "classification_confidence": result.classification_confidence,
        "sentiment": result.sentiment,
        "categories": result.categories,
        "n_findings": len(result.findings),
        "degraded_detectors": result.degraded_detectors,
        "recommendations": [r.action for r in result.recommendations],
        "analyzed_at": result.analyzed_at.isoformat(),
    }


def is_number_collision(exc: IntegrityError) -> bool:
    """Unique violation on incident_number (PostgreSQL and SQLite both name the column)."""
    return "incident_number" in str(exc.orig)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _require_actor(actor: str) -> str:
    if not actor or not actor.strip():
        raise ValidationError("actor is required", field="actor")
    return actor.strip()


def _require_text(value: Optional[str], field: str, max_length: int = MAX_NOTE_LENGTH) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be blank", field=field)
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds {max_length} characters", field=field)
    return value.strip()


# ── Service ────────────────────────────────────────────────────────────────


class IncidentService:
    """
    Incidents are independent aggregates: there is no cross-incident lock.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        escalation: Optional[EscalationPolicy] = None,
        thresholds: Optional[RiskThresholds] = None,
    ):
        self.session_factory = session_factory
        self.escalation = escalation or EscalationPolicy()
        self.thresholds = thresholds or RiskThresholds.from_settings()
        self._locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, incident_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(incident_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[incident_id] = lock
        return lock

    # ── Creation ───────────────────────────────────────────────────────

    async def create(self, report: IncidentReport) -> IncidentView:
        """New incident in REPORTED with one REPORTED timeline entry."""
        for attempt in range(NUMBER_ATTEMPTS):
            try:
                view, alert = await self._insert(report)
                break
            except IntegrityError as e:
                if not is_number_collision(e) or attempt == NUMBER_ATTEMPTS - 1:
                    raise
                logger.warning("incident_number_collision", attempt=attempt + 1)

        logger.info(
            "incident_created",
            incident_id=str(view.id),
            incident_number=view.incident_number,
            incident_type=view.incident_type.value,
            severity=view.severity.value,
            risk_score=view.risk_score,
        )
        if alert is not None:
            self.escalation.schedule(alert)
        return view

    async def _insert(self, report: IncidentReport) -> tuple[IncidentView, Optional[EscalationAlert]]:
        now = utcnow()
        beneficiaries = sorted(report.affected_beneficiaries)
        incident = FWAIncident(
            id=uuid.uuid4(),
            incident_number=generate_incident_number(report.incident_type),
            incident_type=report.incident_type.value,
            severity=report.severity.value,
            status=IncidentStatus.REPORTED.value,
            detection_method=report.detection_method.value,
            reporter_type=report.reporter_type.value,
            reporter_id=report.reporter_id,
            reporter_protected=report.reporter_protected,
            description=report.description,
            incident_date=_naive_utc(report.incident_date) if report.incident_date else now,
            reported_at=now,
            affected_beneficiaries=beneficiaries,
            affected_count=len(beneficiaries),
            financial_impact=report.financial_impact,
            cms_violation=report.compliance_impact.cms_violation,
            hipaa_violation=report.compliance_impact.hipaa_violation,
            false_claims_act=report.compliance_impact.false_claims_act,
            anti_kickback=report.compliance_impact.anti_kickback,
            evidence_refs=list(report.evidence_refs),
            ai_confidence_score=report.ai_confidence_score,
            ai_analysis=report.ai_analysis,
            metadata_=dict(report.metadata),
            timeline_count=0,
            regulatory_reported=False,
        )
        recompute_risk_score(incident)

        if report.reporter_protected:
            actor = PROTECTED_ACTOR
        else:
            actor = report.reporter_id or SYSTEM_ACTOR
        self._append(incident, TimelineAction.REPORTED, actor, {
            "incident_type": incident.incident_type,
            "severity": incident.severity,
            "detection_method": incident.detection_method,
            "risk_score": incident.risk_score,
        }, now)

        async with self.session_factory() as session:
            async with session.begin():
                alert = self.escalation.evaluate(incident, previous=None)
                await incident_repo.add(session, incident)
        return to_view(incident), alert

    async def report_incident(
        self,
        result: AnalysisResult,
        source: str,
        reporter_id: Optional[str] = None,
    ) -> Optional[IncidentView]:
        """
        Engine-created incident, or None when the analysis is below the reporting floor.

        Severity is re-derived from ``overall_confidence``; the ``risk_level``
        carried by the result is not trusted.
        """
        risk_level, reportable = self.thresholds.classify(result.overall_confidence)
        if not reportable:
            logger.info(
                "analysis_below_reporting_floor",
                evidence_id=result.evidence_id,
                confidence=result.overall_confidence,
                floor=self.thresholds.low,
                source=source,
            )
            return None
        if risk_level is not result.risk_level:
            logger.warning(
                "analysis_risk_level_mismatch",
                evidence_id=result.evidence_id,
                confidence=result.overall_confidence,
                supplied=result.risk_level.value,
                derived=risk_level.value,
            )

        report = IncidentReport(
            incident_type=result.incident_type,
            severity=severity_for(risk_level),
            description=describe_analysis(result, source, risk_level),
            detection_method=DetectionMethod.AI_DETECTION,
            reporter_type=ReporterType.EMPLOYEE if reporter_id else ReporterType.SYSTEM,
            reporter_id=reporter_id,
            evidence_refs=[result.evidence_id],
            ai_confidence_score=result.overall_confidence,
            ai_analysis=summarize_analysis(result, risk_level),
            metadata={**result.source_metadata, "source": source},
        )
        return await self.create(report)

    # ── Lifecycle operations ───────────────────────────────────────────

    async def begin_investigation(self, incident_id: uuid.UUID, actor: str, investigator_id: str) -> IncidentView:
        investigator_id = _require_text(investigator_id, "investigator_id", 128)

        def apply(incident: FWAIncident):
            check_transition(IncidentStatus(incident.status), IncidentStatus.UNDER_INVESTIGATION, "begin investigation on")
            incident.status = IncidentStatus.UNDER_INVESTIGATION.value
            incident.investigator_id = investigator_id
            if incident.investigation_started is None:
                incident.investigation_started = utcnow()
            return TimelineAction.INVESTIGATION_STARTED, {"investigator_id": investigator_id}

        return await self._mutate(incident_id, actor, apply)

    async def escalate(self, incident_id: uuid.UUID, actor: str, reason: str = "") -> IncidentView:
        """One severity step up. At CRITICAL this is a logged no-op."""

        def apply(incident: FWAIncident):
            check_open(IncidentStatus(incident.status), "escalate")
            old = Severity(incident.severity)
            new = next_severity(old)
            incident.severity = new.value
            return TimelineAction.ESCALATED, {
                "from": old.value,
                "to": new.value,
                "reason": reason or None,
                "at_ceiling": old is new,
            }

        return await self._mutate(incident_id, actor, apply)

    async def substantiate(self, incident_id: uuid.UUID, actor: str, finding: str = "") -> IncidentView:
        return await self._move(
            incident_id, actor, IncidentStatus.SUBSTANTIATED, TimelineAction.SUBSTANTIATED,
            "substantiate", {"finding": finding or None},
        )

    async def unsubstantiate(self, incident_id: uuid.UUID, actor: str, finding: str = "") -> IncidentView:
        return await self._move(
            incident_id, actor, IncidentStatus.UNSUBSTANTIATED, TimelineAction.UNSUBSTANTIATED,
            "unsubstantiate", {"finding": finding or None},
        )

    async def refer_to_oig(self, incident_id: uuid.UUID, actor: str, case_number: str) -> IncidentView:
        return await self._refer(incident_id, actor, case_number, "oig")

    async def refer_to_cms(self, incident_id: uuid.UUID, actor: str, case_number: str) -> IncidentView:
        return await self._refer(incident_id, actor, case_number, "cms")

    async def resolve(self, incident_id: uuid.UUID, actor: str, resolution: str = "") -> IncidentView:
        return await self._move(
            incident_id, actor, IncidentStatus.RESOLVED, TimelineAction.RESOLVED,
            "resolve", {"resolution": resolution or None},
        )

    async def close(self, incident_id: uuid.UUID, actor: str, reason: str = "") -> IncidentView:
        return await self._move(
            incident_id, actor, IncidentStatus.CLOSED, TimelineAction.CLOSED,
            "close", {"reason": reason or None},
        )

    async def update_impact(self, incident_id: uuid.UUID, actor: str, update: ImpactUpdate) -> IncidentView:
        """Change risk-score inputs on an open incident."""
        if (
            update.financial_impact is None
            and update.affected_beneficiaries is None
            and update.compliance_impact is None
        ):
            raise ValidationError("impact update has no fields", field="update")

        def apply(incident: FWAIncident):
            check_open(IncidentStatus(incident.status), "update impact of")
            changes: dict[str, Any] = {"risk_score_before": incident.risk_score}
            if update.financial_impact is not None:
                incident.financial_impact = update.financial_impact
                changes["financial_impact"] = str(update.financial_impact)
            if update.affected_beneficiaries is not None:
                beneficiaries = sorted(update.affected_beneficiaries)
                incident.affected_beneficiaries = beneficiaries
                incident.affected_count = len(beneficiaries)
                changes["affected_count"] = len(beneficiaries)
            if update.compliance_impact is not None:
                flags = update.compliance_impact
                incident.cms_violation = flags.cms_violation
                incident.hipaa_violation = flags.hipaa_violation
                incident.false_claims_act = flags.false_claims_act
                incident.anti_kickback = flags.anti_kickback
                changes["compliance_impact"] = flags.model_dump()
            return TimelineAction.IMPACT_UPDATED, changes

        return await self._mutate(incident_id, actor, apply)

    async def add_evidence(self, incident_id: uuid.UUID, actor: str, refs: list[str]) -> IncidentView:
        """Append evidence references (any status). Already-known refs are skipped."""
        cleaned = [_require_text(ref, "evidence_ref", 512) for ref in refs]
        if not cleaned:
            raise ValidationError("at least one evidence reference is required", field="refs")

        def apply(incident: FWAIncident):
            known = set(incident.evidence_refs)
            added = [ref for ref in dict.fromkeys(cleaned) if ref not in known]
            incident.evidence_refs = list(incident.evidence_refs) + added
            return TimelineAction.EVIDENCE_ADDED, {"refs": added}

        return await self._mutate(incident_id, actor, apply)

    async def add_note(self, incident_id: uuid.UUID, actor: str, note: str) -> IncidentView:
        note = _require_text(note, "note")

        def apply(incident: FWAIncident):
            return TimelineAction.NOTE_ADDED, {"note": note}

        return await self._mutate(incident_id, actor, apply)

    # ── Queries ────────────────────────────────────────────────────────

    async def get(self, incident_id: uuid.UUID) -> IncidentView:
        async with self.session_factory() as session:
            incident = await incident_repo.get_by_id(session, incident_id)
            if incident is None:
                raise NotFoundError(f"Incident {incident_id} not found", resource_id=str(incident_id))
            return to_view(incident)

    async def get_by_number(self, incident_number: str) -> IncidentView:
        async with self.session_factory() as session:
            incident = await incident_repo.get_by_number(session, incident_number)
            if incident is None:
                raise NotFoundError(f"Incident {incident_number} not found", resource_id=incident_number)
            return to_view(incident)

    async def active(self) -> list[IncidentView]:
        async with self.session_factory() as session:
            return [to_view(r) for r in await incident_repo.active(session)]

    async def high_risk(self, min_score: int = HIGH_RISK_SCORE) -> list[IncidentView]:
        async with self.session_factory() as session:
            return [to_view(r) for r in await incident_repo.high_risk(session, min_score=min_score)]

    async def list(
        self,
        status: Optional[IncidentStatus] = None,
        severity: Optional[Severity] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> IncidentPage:
        if offset < 0 or not 1 <= limit <= 500:
            raise ValidationError("offset must be >= 0 and limit in [1, 500]", field="limit")
        async with self.session_factory() as session:
            rows, total = await incident_repo.list(session, status=status, severity=severity, offset=offset, limit=limit)
            return IncidentPage(items=[to_view(r) for r in rows], total=total, offset=offset, limit=limit)

    # ── Internals ──────────────────────────────────────────────────────

    async def _move(
        self,
        incident_id: uuid.UUID,
        actor: str,
        target: IncidentStatus,
        action: TimelineAction,
        verb: str,
        detail: dict[str, Any],
    ) -> IncidentView:
        """Plain status transition; terminal targets stamp investigation_completed once."""

        def apply(incident: FWAIncident):
            current = IncidentStatus(incident.status)
            check_transition(current, target, verb)
            incident.status = target.value
            if target in COMPLETING_STATUSES and incident.investigation_completed is None:
                incident.investigation_completed = utcnow()
            return action, {"from": current.value, **detail}

        return await self._mutate(incident_id, actor, apply)

    async def _refer(self, incident_id: uuid.UUID, actor: str, case_number: str, body: str) -> IncidentView:
        case_number = _require_text(case_number, "case_number", 64)
        target = IncidentStatus.REFERRED_TO_OIG if body == "oig" else IncidentStatus.REFERRED_TO_CMS
        action = TimelineAction.REFERRED_TO_OIG if body == "oig" else TimelineAction.REFERRED_TO_CMS
        column = f"{body}_case_number"

        def apply(incident: FWAIncident):
            current = IncidentStatus(incident.status)
            check_transition(current, target, f"refer to {body.upper()}")
            if getattr(incident, column) is not None:
                raise InvalidTransitionError(current.value, f"refer to {body.upper()}", "referral is already recorded")
            now = utcnow()
            setattr(incident, column, case_number)
            incident.status = target.value
            incident.regulatory_reported = True
            if incident.regulatory_report_date is None:
                incident.regulatory_report_date = now
            return action, {"from": current.value, "case_number": case_number}

        return await self._mutate(incident_id, actor, apply)

    async def _mutate(self, incident_id: uuid.UUID, actor: str, apply: Mutation) -> IncidentView:
        actor = _require_actor(actor)
        alert: Optional[EscalationAlert] = None

        async with self._lock_for(incident_id):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        incident = await incident_repo.get_by_id(session, incident_id, for_update=True)
                        if incident is None:
                            raise NotFoundError(f"Incident {incident_id} not found", resource_id=str(incident_id))

                        previous = Severity(incident.severity)
                        action, detail = apply(incident)
                        detail["risk_score"] = recompute_risk_score(incident)
                        self._append(incident, action, actor, detail)
                        alert = self.escalation.evaluate(incident, previous)
                    view = to_view(incident)
            except StaleDataError as e:
                raise ConcurrentModificationError(str(incident_id)) from e

        logger.info(
            "incident_transition",
            incident_number=view.incident_number,
            action=action.value,
            status=view.status.value,
            severity=view.severity.value,
            risk_score=view.risk_score,
        )
        if alert is not None:
            self.escalation.schedule(alert)
        return view

    @staticmethod
    def _append(incident: FWAIncident, action: TimelineAction, actor: str, detail: dict[str, Any], at=None) -> None:
        incident.timeline_count += 1
        incident.timeline.append(IncidentTimelineEntry(
            id=uuid.uuid4(),
            incident_id=incident.id,
            sequence=incident.timeline_count,
            action=action.value,
            timestamp=at or utcnow(),
            actor=actor,
            detail=detail,
        ))
