"""Typed scheduling failures.

Every failure raised by the scheduling core carries a stable ``code``, the
HTTP status the API layer answers with, and a ``context`` dict with enough
detail (conflicting interview, offending field) for the caller to render a
precise message. Nothing here is retried automatically.
"""

from typing import Any


class SchedulingError(Exception):
    code = "scheduling_error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        for key, value in self.context.items():
            payload[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
        return payload


class NotFound(SchedulingError):
    code = "not_found"
    status_code = 404


class Conflict(SchedulingError):
    code = "conflict"
    status_code = 409


class Unauthorized(SchedulingError):
    code = "unauthorized"
    status_code = 403


class InvalidState(SchedulingError):
    code = "invalid_state"
    status_code = 409


class InvalidRequest(SchedulingError):
    code = "invalid_request"
    status_code = 422


class LockUnavailable(SchedulingError):
    code = "lock_unavailable"
    status_code = 503
