"""
Notification Channels — deliver escalation alerts to compliance officers.

Contract: ``notify(incident_id, severity, summary)``. Channels may raise;
the escalation policy logs the failure and never propagates it.

- WebhookNotifier: POST JSON to a configured URL (retry with backoff)
- LogNotifier: structured log line only (default when no URL is configured)
"""

import uuid
from typing import Optional, Protocol

import httpx
import structlog

from fwaguard.config import settings
from fwaguard.schemas.incident import Severity
from fwaguard.services.resilience import CircuitBreaker, retry_with_backoff, webhook_breaker

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    async def notify(self, incident_id: uuid.UUID, severity: Severity, summary: str) -> None:
        ...


class LogNotifier:
    async def notify(self, incident_id: uuid.UUID, severity: Severity, summary: str) -> None:
        logger.warning(
            "escalation_alert",
            incident_id=str(incident_id),
            severity=severity.value,
            summary=summary,
        )


class WebhookNotifier:
    """
    Posts ``{"incident_id", "severity", "summary"}`` to the webhook URL.

    Non-2xx responses count as failures and are retried.
    """

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        base_delay: float = 1.0,
        jitter: float = 0.5,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout or settings.alert_timeout_seconds
        self.retries = settings.alert_retry_attempts if retries is None else retries
        self.base_delay = base_delay
        self.jitter = jitter
        self.breaker = breaker or webhook_breaker
        self._transport = transport

    async def _post(self, payload: dict) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()

    async def notify(self, incident_id: uuid.UUID, severity: Severity, summary: str) -> None:
        payload = {
            "incident_id": str(incident_id),
            "severity": severity.value,
            "summary": summary,
        }
        await retry_with_backoff(
            lambda: self.breaker.call(self._post, payload),
            max_retries=self.retries,
            base_delay=self.base_delay,
            jitter=self.jitter,
            retry_on=(httpx.HTTPError,),
            operation_name="escalation_webhook",
        )
        logger.info("escalation_webhook_sent", incident_id=str(incident_id), severity=severity.value)


def build_default_notifier() -> Notifier:
    if settings.alert_webhook_url:
        return WebhookNotifier(settings.alert_webhook_url)
    return LogNotifier()
