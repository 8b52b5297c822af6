# jurisdiction/exceptions.py
"""
Error taxonomy for the hierarchy core.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
API layer renders it with. Internal details (tracebacks) are only attached when
the application runs in debug mode.
"""
import traceback
from typing import Any, Dict, Optional


class JurisdictionError(Exception):
    """Base exception for all hierarchy and authorization failures."""

    kind = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self, debug: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.context:
            body["details"] = self.context
        if debug:
            body["traceback"] = traceback.format_exception(
                type(self), self, self.__traceback__
            )
        return body

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r})"


class ValidationError(JurisdictionError):
    """Malformed or missing input. The caller can resubmit corrected data."""

    kind = "VALIDATION_ERROR"
    http_status = 400


class ConflictError(JurisdictionError):
    kind = "CONFLICT"
    http_status = 409


class AncestorDriftError(ConflictError):
    """A caller-supplied ancestor pointer disagrees with the derived one."""

    kind = "ANCESTOR_DRIFT"
    http_status = 400


class OptimisticLockError(ConflictError):
    kind = "OPTIMISTIC_LOCK_CONFLICT"
    http_status = 409

    def __init__(self, entity: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"The {entity} has been modified by another user. "
            "Please refresh and try again.",
            context,
        )


class NotFoundError(JurisdictionError):
    kind = "NOT_FOUND"
    http_status = 404


class ForbiddenError(JurisdictionError):
    kind = "FORBIDDEN"
    http_status = 403


class AdminPermissionError(ForbiddenError):
    """Raised when an admin tries to provision an admin they outrank or equal."""

    kind = "PERMISSION_DENIED"


class UnauthorizedError(JurisdictionError):
    kind = "UNAUTHORIZED"
    http_status = 401


class StoreUnavailableError(JurisdictionError):
    """Transient store connectivity failure that survived the retry policy."""

    kind = "STORE_UNAVAILABLE"
    http_status = 503
