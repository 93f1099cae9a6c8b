"""
Custom exceptions for FWA Guard.

Error kinds:
- ValidationError: malformed evidence or out-of-range fields (rejected before analysis)
- NotFoundError: unknown incident id / number
- InvalidTransitionError: lifecycle transition not in the state table (no mutation)
- ExtractorUnavailableError: extractor failure, recovered locally by the analyzer
- AppendOnlyViolationError: attempted UPDATE/DELETE of audit rows
- ConcurrentModificationError: the incident row changed underneath a transition
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standard error codes."""
    UNKNOWN_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"

    NOT_FOUND = "E2000"

    EXTRACTOR_UNAVAILABLE = "E4000"

    INVALID_TRANSITION = "E5002"
    APPEND_ONLY_VIOLATION = "E5003"
    CONCURRENT_MODIFICATION = "E5004"


class FWAError(Exception):
    """Base exception for FWA Guard."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code.value,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


class ValidationError(FWAError):
    """Raised when evidence or incident input fails validation."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR)
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class NotFoundError(FWAError):
    """Raised when an incident does not exist."""

    def __init__(self, message: str, resource_id: str = ""):
        super().__init__(message, ErrorCode.NOT_FOUND)
        self.resource_id = resource_id


class InvalidTransitionError(FWAError):
    """Raised when a lifecycle operation is not allowed from the current status."""

    def __init__(self, current_status: str, attempted: str, reason: str = ""):
        message = f"Cannot {attempted} incident in status {current_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, ErrorCode.INVALID_TRANSITION)
        self.current_status = current_status
        self.attempted = attempted

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["current_status"] = self.current_status
        result["attempted"] = self.attempted
        return result


class ExtractorUnavailableError(FWAError):
    """Raised by an extractor that cannot produce findings (model down, timeout)."""

    def __init__(self, detector: str, reason: str = ""):
        super().__init__(
            f"Extractor '{detector}' unavailable" + (f": {reason}" if reason else ""),
            ErrorCode.EXTRACTOR_UNAVAILABLE,
        )
        self.detector = detector


class AppendOnlyViolationError(FWAError):
    """Raised when something tries to edit or remove an audit row."""

    def __init__(self, table: str, operation: str):
        super().__init__(
            f"{table} is append-only: {operation} is not permitted",
            ErrorCode.APPEND_ONLY_VIOLATION,
        )
        self.table = table
        self.operation = operation


class ConcurrentModificationError(FWAError):
    """Raised when the optimistic version check fails on commit."""

    def __init__(self, incident_id: str):
        super().__init__(
            f"Incident {incident_id} was modified concurrently; reload and retry",
            ErrorCode.CONCURRENT_MODIFICATION,
        )
        self.incident_id = incident_id
