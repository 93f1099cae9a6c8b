"""
Error handling for the HTTP adapter.

- Domain errors (FWAError) map to 4xx with their error code and an error_id
- Anything else is caught by the outermost middleware: generic 500 body,
  full traceback in the server log only, never in the response
"""

import traceback
import uuid

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from fwaguard.config import settings
from fwaguard.errors import (
    AppendOnlyViolationError,
    ConcurrentModificationError,
    FWAError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

STATUS_CODES: dict[type[FWAError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    ConcurrentModificationError: 409,
    AppendOnlyViolationError: 409,
}


def status_for(exc: FWAError) -> int:
    for exc_type, code in STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return code
    return 500


async def fwa_error_handler(request: Request, exc: FWAError) -> JSONResponse:
    error_id = str(uuid.uuid4())
    status_code = status_for(exc)
    logger.warning(
        "request_rejected",
        error_id=error_id,
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code.value,
        error=exc.message,
        status=status_code,
    )
    body = exc.to_dict()
    body["error_id"] = error_id
    body["status"] = status_code
    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FWAError, fwa_error_handler)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Last line of defence for errors no handler claimed.

    The client gets a generic 500 body with an ``error_id``; the traceback
    goes to the log under that same id and never into the response.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            body: dict = {
                "error": "Internal error while processing the request.",
                "error_id": error_id,
                "status": 500,
            }
            if settings.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=500, content=body)
