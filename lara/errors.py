"""Typed failures raised by the live session core.

Each error carries the HTTP status the API layer renders it with, so routes
can let them propagate and the application handler turns them into JSON.
"""
from __future__ import annotations

from typing import Any


class LaraError(Exception):
    status_code = 500
    default_detail = "An error occurred while processing the request."

    def __init__(self, detail: str | None = None, **extra: Any):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail, **self.extra}


class StoreUnavailable(LaraError):
    status_code = 503
    default_detail = "Session storage unavailable."


class NotFound(LaraError):
    status_code = 404
    default_detail = "The requested resource was not found."


class InvalidTransition(LaraError):
    status_code = 409
    default_detail = "Status transition not allowed."


class InsufficientQuota(LaraError):
    status_code = 403
    default_detail = "Insufficient AI credits."

    def __init__(self, required: int, remaining: int):
        super().__init__(required=required, remaining=remaining)
        self.required = required
        self.remaining = remaining


class NotLive(LaraError):
    status_code = 409
    default_detail = "Session is not live."


class AlreadyPersisted(LaraError):
    """Informational: the session was already saved. Rendered as a 200 body."""

    status_code = 200
    default_detail = "Session data is already saved."


class SessionExpired(LaraError):
    status_code = 410
    default_detail = "Session data has expired and can no longer be saved."


class GenerationFailed(LaraError):
    status_code = 502
    default_detail = "Generation failed."


class NoSubmission(LaraError):
    status_code = 404
    default_detail = "No submission found."


class Unauthorized(LaraError):
    status_code = 403
    default_detail = "Unauthorized."


class LimitExceeded(LaraError):
    status_code = 403
    default_detail = "Limit exceeded for this tier."
