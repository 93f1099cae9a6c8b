"""
Tests for escalation channels and the alert-once policy.

Covers:
- WebhookNotifier payload, retry and final failure
- LogNotifier never raises
- EscalationPolicy only fires on entry into CRITICAL
- Dispatch swallows channel failures
- Scheduled delivery is tracked until it finishes
"""

import uuid

import httpx
import pytest

from fwaguard.alerting.channels import LogNotifier, WebhookNotifier
from fwaguard.alerting.escalation import EscalationPolicy
from fwaguard.alerting.schemas import EscalationAlert
from fwaguard.db.models import FWAIncident, utcnow
from fwaguard.schemas.incident import Severity
from fwaguard.services.resilience import CircuitBreaker

INCIDENT_ID = uuid.UUID("7d0f3b8e-2a51-4d7c-9f55-0c7f2f4b6a10")


def _webhook(handler, retries: int = 1) -> WebhookNotifier:
    return WebhookNotifier(
        "https://alerts.example.test/fwa",
        timeout=1.0,
        retries=retries,
        base_delay=0,
        jitter=0,
        breaker=CircuitBreaker("test_webhook", failure_threshold=10),
        transport=httpx.MockTransport(handler),
    )


def _incident(severity: Severity) -> FWAIncident:
    return FWAIncident(
        id=INCIDENT_ID,
        incident_number="FRA-LZ4K2M1X-3F9A",
        incident_type="FRAUD",
        severity=severity.value,
        risk_score=100,
    )


# ── Webhook ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_webhook_posts_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    await _webhook(handler).notify(INCIDENT_ID, Severity.CRITICAL, "Incident is CRITICAL")

    assert len(received) == 1
    body = received[0].content
    assert b'"severity":"CRITICAL"' in body.replace(b" ", b"")
    assert str(INCIDENT_ID).encode() in body


@pytest.mark.asyncio
async def test_webhook_retries_then_succeeds():
    statuses = iter([503, 200])
    await _webhook(lambda request: httpx.Response(next(statuses))).notify(
        INCIDENT_ID, Severity.CRITICAL, "summary",
    )


@pytest.mark.asyncio
async def test_webhook_raises_when_exhausted():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(httpx.HTTPStatusError):
        await _webhook(handler, retries=2).notify(INCIDENT_ID, Severity.CRITICAL, "summary")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_log_notifier_never_raises():
    await LogNotifier().notify(INCIDENT_ID, Severity.CRITICAL, "summary")


# ── Policy ─────────────────────────────────────────────────────────────


class _Recorder:
    def __init__(self, error: Exception | None = None):
        self.calls = []
        self.error = error

    async def notify(self, incident_id, severity, summary):
        self.calls.append((incident_id, severity, summary))
        if self.error:
            raise self.error


class TestEscalationPolicy:

    @pytest.mark.parametrize("previous,current,expected", [
        (Severity.HIGH, Severity.CRITICAL, True),
        (None, Severity.CRITICAL, True),
        (Severity.CRITICAL, Severity.CRITICAL, False),
        (Severity.MEDIUM, Severity.HIGH, False),
        (None, Severity.LOW, False),
    ])
    def test_entered_critical(self, previous, current, expected):
        assert EscalationPolicy.entered_critical(previous, current) is expected

    def test_evaluate_stamps_incident(self):
        policy = EscalationPolicy(_Recorder())
        incident = _incident(Severity.CRITICAL)
        before = utcnow()

        alert = policy.evaluate(incident, previous=Severity.HIGH)

        assert alert is not None
        assert alert.incident_number == "FRA-LZ4K2M1X-3F9A"
        assert alert.previous_severity is Severity.HIGH
        assert incident.critical_alerted_at >= before
        assert "risk score 100" in alert.summary

    def test_evaluate_no_alert_at_ceiling(self):
        incident = _incident(Severity.CRITICAL)
        assert EscalationPolicy(_Recorder()).evaluate(incident, previous=Severity.CRITICAL) is None
        assert incident.critical_alerted_at is None

    @pytest.mark.asyncio
    async def test_dispatch_reports_success(self):
        recorder = _Recorder()
        alert = EscalationAlert(
            incident_id=INCIDENT_ID, incident_number="FRA-1-0000", severity=Severity.CRITICAL,
            risk_score=90, summary="s", triggered_at=utcnow(),
        )
        assert await EscalationPolicy(recorder).dispatch(alert) is True
        assert recorder.calls == [(INCIDENT_ID, Severity.CRITICAL, "s")]

    @pytest.mark.asyncio
    async def test_dispatch_swallows_failure(self):
        alert = EscalationAlert(
            incident_id=INCIDENT_ID, incident_number="FRA-1-0000", severity=Severity.CRITICAL,
            risk_score=90, summary="s", triggered_at=utcnow(),
        )
        policy = EscalationPolicy(_Recorder(error=ConnectionError("smtp down")))
        assert await policy.dispatch(alert) is False

    @pytest.mark.asyncio
    async def test_schedule_tracks_delivery_until_done(self):
        recorder = _Recorder()
        policy = EscalationPolicy(recorder)
        alert = EscalationAlert(
            incident_id=INCIDENT_ID, incident_number="FRA-1-0000", severity=Severity.CRITICAL,
            risk_score=90, summary="s", triggered_at=utcnow(),
        )

        task = policy.schedule(alert)
        assert policy.pending == 1
        assert recorder.calls == []

        await policy.drain()
        assert task.result() is True
        assert policy.pending == 0
        assert recorder.calls == [(INCIDENT_ID, Severity.CRITICAL, "s")]

    @pytest.mark.asyncio
    async def test_scheduled_failure_is_contained(self):
        policy = EscalationPolicy(_Recorder(error=ConnectionError("smtp down")))
        alert = EscalationAlert(
            incident_id=INCIDENT_ID, incident_number="FRA-1-0000", severity=Severity.CRITICAL,
            risk_score=90, summary="s", triggered_at=utcnow(),
        )
        task = policy.schedule(alert)
        await policy.drain()
        assert task.result() is False
        assert policy.pending == 0
