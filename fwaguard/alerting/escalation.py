"""
Escalation Policy — alert exactly once per transition into CRITICAL.

Evaluated inside the incident transaction (so ``critical_alerted_at`` commits
with the transition). Delivery runs as a background task scheduled after the
commit, so a slow channel never holds the lifecycle call open. Delivery
failures are logged, never raised, and never roll back the transition.
"""

import asyncio
from typing import Optional

import structlog

from fwaguard.alerting.channels import Notifier, build_default_notifier
from fwaguard.alerting.schemas import EscalationAlert
from fwaguard.db.models import FWAIncident, utcnow
from fwaguard.schemas.incident import Severity

logger = structlog.get_logger(__name__)


class EscalationPolicy:
    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier or build_default_notifier()
        self._pending: set[asyncio.Task] = set()

    @staticmethod
    def entered_critical(previous: Optional[Severity], current: Severity) -> bool:
        return current is Severity.CRITICAL and previous is not Severity.CRITICAL

    def evaluate(self, incident: FWAIncident, previous: Optional[Severity]) -> Optional[EscalationAlert]:
        """Stamp the incident and return the alert to send, or None."""
        current = Severity(incident.severity)
        if not self.entered_critical(previous, current):
            return None

        now = utcnow()
        incident.critical_alerted_at = now
        return EscalationAlert(
            incident_id=incident.id,
            incident_number=incident.incident_number,
            severity=current,
            previous_severity=previous,
            risk_score=incident.risk_score,
            summary=(
                f"Incident {incident.incident_number} ({incident.incident_type}) is CRITICAL, "
                f"risk score {incident.risk_score}"
            ),
            triggered_at=now,
        )

    async def dispatch(self, alert: EscalationAlert) -> bool:
        try:
            await self.notifier.notify(alert.incident_id, alert.severity, alert.summary)
        except Exception as e:
            logger.error(
                "escalation_alert_failed",
                alert_id=alert.alert_id,
                incident_number=alert.incident_number,
                error=str(e),
            )
            return False
        logger.info(
            "escalation_alert_sent",
            alert_id=alert.alert_id,
            incident_number=alert.incident_number,
            previous_severity=alert.previous_severity.value if alert.previous_severity else None,
        )
        return True

    def schedule(self, alert: EscalationAlert) -> asyncio.Task:
        """Fire-and-forget delivery. The task is held until it finishes."""
        task = asyncio.create_task(self.dispatch(alert), name=f"escalation-{alert.incident_number}")
        self._pending.add(task)
        task.add_done_callback(self._delivery_finished)
        return task

    def _delivery_finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("escalation_alert_cancelled", task=task.get_name())
        elif task.exception() is not None:
            logger.error("escalation_alert_crashed", task=task.get_name(), error=str(task.exception()))

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled delivery (used at shutdown)."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
