"""
FastAPI dependencies.

Services live on ``app.state`` (built in the lifespan, or injected by
``create_app`` for tests). Authentication is external; the caller's identity
arrives in the ``X-Actor`` header and is recorded on the timeline.
"""

from fastapi import Header, Request

from fwaguard.errors import ValidationError
from fwaguard.services.analysis_service import FWAAnalyzer
from fwaguard.services.incident_service import IncidentService


def get_analyzer(request: Request) -> FWAAnalyzer:
    return request.app.state.analyzer


def get_incident_service(request: Request) -> IncidentService:
    return request.app.state.incident_service


def get_actor(x_actor: str | None = Header(default=None)) -> str:
    if not x_actor or not x_actor.strip():
        raise ValidationError("X-Actor header is required", field="X-Actor")
    return x_actor.strip()
