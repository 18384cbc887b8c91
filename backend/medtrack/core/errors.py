"""Module: errors.

Failure taxonomy shared by the session authority, the visit lifecycle
manager and the backend client. Every error carries the HTTP status the web
tier answers with; ``main.py`` registers the handlers.
"""

from typing import Any


class MedTrackError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        self.message = message
        self.extra = extra
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.message, "error": type(self).__name__, **self.extra}


class InvalidCredentials(MedTrackError):
    status_code = 401


class NetworkError(MedTrackError):
    """Transport-level failure; surfaced for manual retry, never retried here."""

    status_code = 502


class Unauthorized(MedTrackError):
    """The held session is no longer valid. Always forces a return to login."""

    status_code = 401


class SessionExpired(Unauthorized):
    pass


class Forbidden(MedTrackError):
    """Valid identity, insufficient role. Session is left untouched."""

    status_code = 403


class NotFound(MedTrackError):
    status_code = 404


class ValidationError(MedTrackError):
    status_code = 400


class ApiConflict(MedTrackError):
    """Raw 409 from the backend, before the caller gives it a meaning."""

    status_code = 409

    def __init__(self, message: str, body: dict | None = None):
        super().__init__(message)
        self.body = body or {}


class StaleResponse(MedTrackError):
    status_code = 409


class LifecycleError(MedTrackError):
    status_code = 409


class ActiveVisitExists(LifecycleError):
    def __init__(self, visit_id: int | None):
        super().__init__(
            "User already has an active visit. Please complete it before starting a new one.",
            visit_id=visit_id,
            visit_url=f"/visits/{visit_id}" if visit_id is not None else None,
        )
        self.visit_id = visit_id


class VisitNotActive(LifecycleError):
    def __init__(self, visit_id: int, status: str):
        super().__init__(
            f"Visit is not in progress. Current status: {status}",
            visit_id=visit_id,
            status=status,
        )
        self.visit_id = visit_id
        self.status = status
