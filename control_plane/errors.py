"""
Control plane error taxonomy.

Every error the service layer raises on purpose derives from ControlPlaneError
and carries the HTTP status, a stable machine-readable code and optional
details. The FastAPI exception handler in main.py renders them as:

    {"error": {"code": ..., "message": ..., "details": {...}}}
"""

from typing import Any, Dict, Optional


class ControlPlaneError(Exception):
    """Base exception for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class NotFoundError(ControlPlaneError):
    """App is absent, or belongs to another owner (never distinguished)."""
    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "App not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ForbiddenError(ControlPlaneError):
    status_code = 403
    code = "forbidden"


class SessionError(ControlPlaneError):
    status_code = 401
    code = "invalid_session"


class ValidationFailedError(ControlPlaneError):
    status_code = 400
    code = "validation_error"


class NamespaceViolationError(ControlPlaneError):
    """Image reference is outside the caller's {registry}/{owner}/{name} repository."""
    status_code = 400
    code = "invalid_image_namespace"


class ConflictError(ControlPlaneError):
    """
    A write lost an optimistic-concurrency race (stale resourceVersion, or a
    concurrent create). Retryable by the caller; never retried internally.
    """
    status_code = 409
    code = "conflict"


class ConsistencyError(ControlPlaneError):
    """More than one cluster object matched an identity lookup."""
    status_code = 500
    code = "consistency_error"


class BootstrapError(ControlPlaneError):
    """The Kubernetes client could not be initialized at startup."""
    status_code = 503
    code = "kubernetes_unavailable"


class AmbiguousContainerError(Exception):
    """
    The log API rejected the requested container name.

    Internal signal between the Kubernetes store and the log reader, which
    retries once without naming a container.
    """
    pass
