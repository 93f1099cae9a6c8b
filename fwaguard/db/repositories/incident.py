"""Incident repository: lookups and the investigator work queues."""

from typing import Optional, Sequence

from sqlalchemy import case, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fwaguard.db.models import FWAIncident
from fwaguard.db.repositories.base import BaseRepository
from fwaguard.incidents.lifecycle import TERMINAL_STATUSES
from fwaguard.schemas.incident import IncidentStatus, Severity

HIGH_RISK_SCORE: int = 70

_SEVERITY_RANK = case(
    {
        Severity.CRITICAL.value: 0,
        Severity.HIGH.value: 1,
        Severity.MEDIUM.value: 2,
        Severity.LOW.value: 3,
    },
    value=FWAIncident.severity,
    else_=4,
)


class IncidentRepository(BaseRepository[FWAIncident]):
    def __init__(self):
        super().__init__(FWAIncident)

    async def get_by_number(self, db: AsyncSession, incident_number: str) -> Optional[FWAIncident]:
        result = await db.execute(
            select(FWAIncident).where(FWAIncident.incident_number == incident_number)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        db: AsyncSession,
        status: Optional[IncidentStatus] = None,
        severity: Optional[Severity] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[FWAIncident], int]:
        """Page ordered by reported date (newest first), plus the unfiltered-by-page total."""
        criteria = []
        if status is not None:
            criteria.append(FWAIncident.status == status.value)
        if severity is not None:
            criteria.append(FWAIncident.severity == severity.value)

        stmt = (
            select(FWAIncident)
            .where(*criteria)
            .order_by(FWAIncident.reported_at.desc(), FWAIncident.incident_number)
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return result.scalars().all(), await self.count(db, *criteria)

    async def active(self, db: AsyncSession, limit: int = 200) -> Sequence[FWAIncident]:
        """Open incidents, most severe first, then newest."""
        stmt = (
            select(FWAIncident)
            .where(FWAIncident.status.not_in([s.value for s in TERMINAL_STATUSES]))
            .order_by(_SEVERITY_RANK, FWAIncident.reported_at.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return result.scalars().all()

    async def high_risk(
        self,
        db: AsyncSession,
        min_score: int = HIGH_RISK_SCORE,
        limit: int = 100,
    ) -> Sequence[FWAIncident]:
        """HIGH/CRITICAL severity, risk score at or above ``min_score``, or a False Claims Act flag."""
        stmt = (
            select(FWAIncident)
            .where(or_(
                FWAIncident.severity.in_([Severity.HIGH.value, Severity.CRITICAL.value]),
                FWAIncident.risk_score >= min_score,
                FWAIncident.false_claims_act.is_(True),
            ))
            .order_by(FWAIncident.risk_score.desc(), FWAIncident.reported_at.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return result.scalars().all()


incident_repo = IncidentRepository()
