"""Errors raised by the lifecycle and pricing services.

Each error is local to one user action. ``main`` registers a handler that
renders them as ``{"detail": ..., "code": ...}`` with the status code the
error carries.
"""

from workdesk.services.status import RejectionKind


class WorkDeskError(Exception):
    status_code = 400
    code = "Error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotAuthenticated(WorkDeskError):
    status_code = 401
    code = "NotAuthenticated"


class NotAuthorized(WorkDeskError):
    status_code = 403
    code = "NotAuthorized"


class ProjectNotFound(WorkDeskError):
    status_code = 404
    code = "ProjectNotFound"

    def __init__(self, detail: str = "Project not found"):
        super().__init__(detail)


class ValidationError(WorkDeskError):
    status_code = 422
    code = "ValidationError"


class TransitionConflict(WorkDeskError):
    """The project changed between reading it and writing the new status."""

    status_code = 409
    code = "TransitionConflict"


class TransitionRejected(WorkDeskError):
    _status_codes = {
        RejectionKind.UNKNOWN_TRANSITION: 409,
        RejectionKind.FORBIDDEN_FOR_ROLE: 403,
        RejectionKind.MISSING_PRECONDITION: 422,
    }

    def __init__(self, kind: RejectionKind, reason: str):
        super().__init__(reason)
        self.kind = kind
        self.code = kind.value
        self.status_code = self._status_codes[kind]


class BackendUnavailable(WorkDeskError):
    """Retryable: the database could not be reached."""

    status_code = 503
    code = "BackendUnavailable"
    retry_after = 5
