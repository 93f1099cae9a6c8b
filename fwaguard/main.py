"""
FWA Guard — FastAPI Application.

Run: uvicorn fwaguard.main:app --host 0.0.0.0 --port 8001

  - POST /api/v1/fwa/analyze             ← evidence in, AnalysisResult out
  - POST /api/v1/fwa/incidents/report    ← engine-created incident from an analysis
  - /api/v1/fwa/incidents/...            ← manual reports, queries, lifecycle
  - GET  /health
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from fwaguard.alerting.escalation import EscalationPolicy
from fwaguard.api.routers.fwa import router as fwa_router
from fwaguard.config import settings
from fwaguard.db.engine import close_db, get_session_factory, init_db
from fwaguard.logging_config import configure_logging
from fwaguard.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from fwaguard.services.analysis_service import FWAAnalyzer
from fwaguard.services.cache import AnalysisCache
from fwaguard.services.incident_service import IncidentService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build whatever services were not injected; tear down what we built."""
    logger.info("fwaguard_starting", version=settings.app_version, environment=settings.environment)
    cache: Optional[AnalysisCache] = None
    owns_db = getattr(app.state, "incident_service", None) is None

    if getattr(app.state, "analyzer", None) is None:
        cache = AnalysisCache()
        app.state.analyzer = FWAAnalyzer(cache=cache)
    if owns_db:
        await init_db()
        app.state.incident_service = IncidentService(get_session_factory(), EscalationPolicy())

    yield

    await app.state.incident_service.escalation.drain()
    if cache is not None:
        await cache.close()
    if owns_db:
        await close_db()
    logger.info("fwaguard_shutdown")


def create_app(
    analyzer: Optional[FWAAnalyzer] = None,
    incident_service: Optional[IncidentService] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.analyzer = analyzer
    app.state.incident_service = incident_service

    register_exception_handlers(app)
    app.add_middleware(ErrorHandlerMiddleware)

    app.include_router(fwa_router)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": settings.app_version}

    return app


configure_logging()
app = create_app()
