"""
Test fixtures for FWA Guard.

Provides:
- A fresh SQLite (aiosqlite) file database per test
- IncidentService wired to a recording notifier
- Incident report factory
"""

import os
import uuid
from decimal import Decimal

# Settings are read at import time
os.environ["ENVIRONMENT"] = "testing"
os.environ["CACHE_ENABLED"] = "false"
os.environ["CLASSIFIER_URL"] = ""
os.environ["ALERT_WEBHOOK_URL"] = ""
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from fwaguard.alerting.escalation import EscalationPolicy
from fwaguard.db.engine import create_tables, make_session_factory
from fwaguard.schemas.incident import (
    ComplianceImpactFlags,
    DetectionMethod,
    IncidentReport,
    IncidentType,
    ReporterType,
    Severity,
)
from fwaguard.services.incident_service import IncidentService


class RecordingNotifier:
    """Notifier double: records every call, optionally fails."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple[uuid.UUID, Severity, str]] = []
        self.fail = fail

    async def notify(self, incident_id, severity, summary):
        self.calls.append((incident_id, severity, summary))
        if self.fail:
            raise RuntimeError("notification service down")


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fwa.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def service(session_factory, notifier):
    svc = IncidentService(session_factory, EscalationPolicy(notifier))
    yield svc
    await svc.escalation.drain()


@pytest.fixture
def make_report():
    """Factory for manual incident reports with sensible defaults."""

    def _make(**overrides) -> IncidentReport:
        values = dict(
            incident_type=IncidentType.FRAUD,
            severity=Severity.MEDIUM,
            description="Beneficiary reports being billed for a visit that never happened",
            detection_method=DetectionMethod.BENEFICIARY_COMPLAINT,
            reporter_type=ReporterType.BENEFICIARY,
            reporter_id="ben-001",
            financial_impact=Decimal("0"),
            compliance_impact=ComplianceImpactFlags(),
        )
        values.update(overrides)
        return IncidentReport(**values)

    return _make
