"""Scheduling error taxonomy.

Each error carries the HTTP status it maps to; the global handler in
``appointment_desk.main`` turns them into JSON responses.
"""


class SchedulingError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Missing or malformed input (empty field, bad "HH:MM", start >= end)."""

    status_code = 400


class NotFoundError(SchedulingError):
    status_code = 404


class SchedulingConflict(SchedulingError):
    """The candidate time range overlaps a confirmed appointment on the same day."""

    status_code = 409

    def __init__(self, conflicting_id: int | None, message: str | None = None) -> None:
        super().__init__(message or "The selected time is not free. Please choose another time.")
        self.conflicting_id = conflicting_id


class InvalidStateError(SchedulingError):
    """A request was acted on outside the pending state."""

    status_code = 400


class IntegrityFault(SchedulingError):
    """Stored appointments violate an invariant (negative-length range, broken numbering)."""

    status_code = 500
