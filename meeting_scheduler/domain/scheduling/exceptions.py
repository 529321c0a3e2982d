"""
Scheduling error taxonomy.

Every failure a caller can act on carries a stable ``reason`` code so clients can
tell "pick another time" apart from "this link is no longer valid".
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    status_code = 400
    default_reason = "scheduling_error"

    def __init__(self, message: str, reason: str = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason}


class InvalidRequestError(SchedulingError):
    """Malformed input, rejected before storage is touched."""

    status_code = 400
    default_reason = "invalid_request"


class PolicyViolationError(SchedulingError):
    """Lead time, horizon or link limits were not met."""

    status_code = 422
    default_reason = "policy_violation"


class SlotUnavailableError(SchedulingError):
    """The requested interval overlaps an existing (buffered) commitment."""

    status_code = 409
    default_reason = "conflict"


class InvalidStateError(SchedulingError):
    """The event is in a state that does not allow the transition."""

    status_code = 409
    default_reason = "invalid_state"


class NotFoundError(SchedulingError):
    status_code = 404
    default_reason = "not_found"


class UnauthorizedError(SchedulingError):
    status_code = 401
    default_reason = "unauthorized"


# Reason codes surfaced to callers
REASON_LINK_EXPIRED = "link_expired"
REASON_LINK_EXHAUSTED = "link_exhausted"
REASON_LEAD_TIME = "lead_time"
REASON_HORIZON = "horizon"
REASON_CONFLICT = "conflict"
REASON_EVENT_CANCELLED = "event_cancelled"
REASON_SLUG_TAKEN = "slug_taken"
REASON_INVALID_TOKEN = "invalid_token"
REASON_INVALID_TIMESTAMP = "invalid_timestamp"
REASON_INVALID_TIMEZONE = "invalid_timezone"

REASON_EVENT_NOT_FOUND = "event_not_found"
REASON_LINK_NOT_FOUND = "link_not_found"
REASON_ATTENDEE_NOT_FOUND = "attendee_not_found"
REASON_EVENT_TYPE_NOT_FOUND = "event_type_not_found"
REASON_OVERRIDE_NOT_FOUND = "override_not_found"


class DuplicateError(SchedulingError):
    """A unique value (such as a link slug) is already taken."""

    status_code = 409
    default_reason = REASON_SLUG_TAKEN
