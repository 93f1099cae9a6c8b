"""
Incident Lifecycle — the state table and pure transition rules.

    REPORTED → UNDER_INVESTIGATION → {SUBSTANTIATED, UNSUBSTANTIATED}
             → {REFERRED_TO_OIG, REFERRED_TO_CMS} → {RESOLVED, CLOSED}

Referral is also reachable straight from UNDER_INVESTIGATION. CLOSED is
reachable from every other status. Nothing returns to REPORTED.
"""

import secrets
import time
from typing import Optional

from fwaguard.errors import InvalidTransitionError
from fwaguard.schemas.incident import IncidentStatus, IncidentType, Severity

S = IncidentStatus

TRANSITIONS: dict[IncidentStatus, frozenset[IncidentStatus]] = {
    S.REPORTED: frozenset({S.UNDER_INVESTIGATION, S.CLOSED}),
    S.UNDER_INVESTIGATION: frozenset({
        S.SUBSTANTIATED, S.UNSUBSTANTIATED, S.REFERRED_TO_OIG, S.REFERRED_TO_CMS, S.CLOSED,
    }),
    S.SUBSTANTIATED: frozenset({S.REFERRED_TO_OIG, S.REFERRED_TO_CMS, S.RESOLVED, S.CLOSED}),
    S.UNSUBSTANTIATED: frozenset({S.CLOSED}),
    S.REFERRED_TO_OIG: frozenset({S.REFERRED_TO_CMS, S.RESOLVED, S.CLOSED}),
    S.REFERRED_TO_CMS: frozenset({S.REFERRED_TO_OIG, S.RESOLVED, S.CLOSED}),
    S.RESOLVED: frozenset({S.CLOSED}),
    S.CLOSED: frozenset(),
}

TERMINAL_STATUSES: frozenset[IncidentStatus] = frozenset({S.RESOLVED, S.CLOSED, S.UNSUBSTANTIATED})

# Statuses that stamp investigation_completed on entry
COMPLETING_STATUSES: frozenset[IncidentStatus] = TERMINAL_STATUSES

SEVERITY_ORDER: tuple[Severity, ...] = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)


def can_transition(current: IncidentStatus, target: IncidentStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: IncidentStatus, target: IncidentStatus, operation: str) -> None:
    """Raise InvalidTransitionError unless ``current → target`` is in the table."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, operation)


def check_open(current: IncidentStatus, operation: str) -> None:
    """Operations that change scored attributes are refused once terminal."""
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(current.value, operation, "incident is in a terminal status")


def next_severity(current: Severity) -> Severity:
    """One step up; CRITICAL is the ceiling."""
    idx = SEVERITY_ORDER.index(current)
    return SEVERITY_ORDER[min(idx + 1, len(SEVERITY_ORDER) - 1)]


_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(_BASE36[r])
    return "".join(reversed(digits))


def generate_incident_number(incident_type: IncidentType, now_ms: Optional[int] = None) -> str:
    """
    ``<TYP>-<base36 ms timestamp>-<4 hex>``, e.g. ``FRA-LZ4K2M1X-3F9A``.

    Uniqueness is finally enforced by the unique constraint on the column.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{incident_type.value[:3]}-{_base36(now_ms)}-{secrets.token_hex(2).upper()}"
