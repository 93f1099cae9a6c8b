"""Escalation alert schema."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fwaguard.schemas.incident import Severity


class EscalationAlert(BaseModel):
    """One 'entered CRITICAL' event for compliance officers."""
    alert_id: str = Field(default_factory=lambda: f"fwa_alert_{uuid.uuid4().hex[:12]}")
    incident_id: uuid.UUID
    incident_number: str
    severity: Severity
    previous_severity: Optional[Severity] = None
    risk_score: int
    summary: str
    triggered_at: datetime
