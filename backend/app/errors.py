"""
Error Taxonomy — Every externally-facing failure maps to one of these kinds.

Handlers in app.main turn a JourneyError into the JSON envelope
{"error": kind, "message": ..., "reason": ..., "details": {...}}.
"""
from typing import Any, Dict, Optional


class JourneyError(Exception):
    """Base class for failures surfaced to API callers."""

    kind = "internal_error"
    status_code = 500
    default_message = "Internal error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.reason = reason
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "reason": self.reason,
            "details": self.details,
        }


class ValidationFailed(JourneyError):
    kind = "validation_error"
    status_code = 400
    default_message = "Invalid input"


class NotFound(JourneyError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class Expired(JourneyError):
    kind = "expired"
    status_code = 410
    default_message = "Expired"


class RateLimited(JourneyError):
    kind = "rate_limited"
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        if retry_after is not None:
            self.details.setdefault("retry_after", retry_after)


class StepMismatch(JourneyError):
    """The action targets a step the journey is not at; client should redirect."""

    kind = "step_mismatch"
    status_code = 409
    default_message = "Journey is at a different step"

    def __init__(self, current_step: str, message: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.details.setdefault("current_step", current_step)


class Rejected(JourneyError):
    kind = "rejected"
    status_code = 403
    default_message = "Access unavailable"


class UpstreamUnavailable(JourneyError):
    kind = "upstream_unavailable"
    status_code = 503
    default_message = "External service unavailable, please retry"
