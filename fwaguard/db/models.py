"""
FWA Guard SQLAlchemy Models.

Two tables:
- fwa_incidents: one row per incident, optimistic version counter
- fwa_incident_timeline: append-only event log keyed by incident id

Incidents are never deleted (closure is a status). Timeline rows are never
updated or deleted. Both rules are enforced by mapper events below; the
Alembic revision adds matching triggers on PostgreSQL.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, object_session, relationship

from fwaguard.db.compat import json_type, uuid_type
from fwaguard.db.engine import Base
from fwaguard.errors import AppendOnlyViolationError


def _genuuid():
    return uuid.uuid4()


def utcnow() -> datetime:
    """Naive UTC, as stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FWAIncident(Base):
    """The incident row. Mutated only through IncidentService operations."""

    __tablename__ = "fwa_incidents"
    __table_args__ = (
        Index("ix_fwa_incidents_status", "status"),
        Index("ix_fwa_incidents_severity", "severity"),
        Index("ix_fwa_incidents_reported_at", "reported_at"),
        Index("ix_fwa_incidents_risk_score", "risk_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(uuid_type(), primary_key=True, default=_genuuid)
    incident_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    incident_type: Mapped[str] = mapped_column(String(40), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    detection_method: Mapped[str] = mapped_column(String(32), nullable=False)

    # Reporter (whistleblower protection hides reporter_id from every view)
    reporter_type: Mapped[str] = mapped_column(String(16), nullable=False)
    reporter_id: Mapped[Optional[str]] = mapped_column(String(128))
    reporter_protected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    incident_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reported_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Impact (risk score inputs)
    affected_beneficiaries: Mapped[list] = mapped_column(json_type(), default=list, nullable=False)
    affected_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    financial_impact: Mapped[Decimal] = mapped_column(Numeric(15, 2), default=Decimal("0"), nullable=False)
    cms_violation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hipaa_violation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    false_claims_act: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    anti_kickback: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)

    evidence_refs: Mapped[list] = mapped_column(json_type(), default=list, nullable=False)
    ai_confidence_score: Mapped[Optional[float]] = mapped_column(Float)
    ai_analysis: Mapped[Optional[dict]] = mapped_column(json_type())

    # Investigation
    investigator_id: Mapped[Optional[str]] = mapped_column(String(128))
    investigation_started: Mapped[Optional[datetime]] = mapped_column(DateTime)
    investigation_completed: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Regulatory referral: set once, never cleared
    oig_case_number: Mapped[Optional[str]] = mapped_column(String(64))
    cms_case_number: Mapped[Optional[str]] = mapped_column(String(64))
    regulatory_reported: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    regulatory_report_date: Mapped[Optional[datetime]] = mapped_column(DateTime)

    critical_alerted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    metadata_: Mapped[dict] = mapped_column("metadata", json_type(), default=dict, nullable=False)

    timeline_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    timeline: Mapped[list["IncidentTimelineEntry"]] = relationship(
        back_populates="incident",
        order_by="IncidentTimelineEntry.sequence",
        lazy="selectin",
        cascade="save-update, merge",
        passive_deletes="all",
    )

    __mapper_args__ = {"version_id_col": version_id}


class IncidentTimelineEntry(Base):
    """
    Immutable, append-only lifecycle event.

    NO UPDATE, NO DELETE on this table. Ever.
    """

    __tablename__ = "fwa_incident_timeline"
    __table_args__ = (
        UniqueConstraint("incident_id", "sequence", name="uq_fwa_timeline_incident_sequence"),
        Index("ix_fwa_timeline_incident", "incident_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(uuid_type(), primary_key=True, default=_genuuid)
    incident_id: Mapped[uuid.UUID] = mapped_column(uuid_type(), ForeignKey("fwa_incidents.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    actor: Mapped[str] = mapped_column(String(128), nullable=False)
    detail: Mapped[dict] = mapped_column(json_type(), default=dict, nullable=False)

    incident: Mapped["FWAIncident"] = relationship(back_populates="timeline")


# ── Storage-level guards ───────────────────────────────────────────────────


@event.listens_for(IncidentTimelineEntry, "before_update")
def _reject_timeline_update(mapper, connection, target):
    session = object_session(target)
    if session is None or session.is_modified(target, include_collections=False):
        raise AppendOnlyViolationError(IncidentTimelineEntry.__tablename__, "UPDATE")


@event.listens_for(IncidentTimelineEntry, "before_delete")
def _reject_timeline_delete(mapper, connection, target):
    raise AppendOnlyViolationError(IncidentTimelineEntry.__tablename__, "DELETE")


@event.listens_for(FWAIncident, "before_delete")
def _reject_incident_delete(mapper, connection, target):
    raise AppendOnlyViolationError(FWAIncident.__tablename__, "DELETE")
