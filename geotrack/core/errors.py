"""Error taxonomy for the location engine.

Business outcomes (a rejected ping, a suspicious history, a low confidence
score) are return values, not exceptions. These exceptions are for input the
engine refuses to process at all, and for attendance state-machine conflicts.
"""

from __future__ import annotations


class GeoTrackError(Exception):
    """Base class for all engine errors."""


class ValidationError(GeoTrackError, ValueError):
    """Malformed numeric input (NaN, out-of-range lat/lng, negative accuracy)."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class OrderingError(GeoTrackError):
    """Trail points were not sorted ascending by capture time."""

    def __init__(self, index: int, previous: object, current: object) -> None:
        super().__init__(
            f"point {index} captured at {current} precedes point {index - 1} captured at {previous}"
        )
        self.index = index


class AttendanceConflictError(GeoTrackError):
    """A clock event conflicts with the stored attendance record (HTTP 409)."""

    code = "attendance_conflict"


class AlreadyClockedInError(AttendanceConflictError):
    code = "already_clocked_in"

    def __init__(self, user_id: str, day: object) -> None:
        super().__init__(f"user {user_id} already clocked in on {day}")


class NotClockedInError(AttendanceConflictError):
    code = "not_clocked_in"

    def __init__(self, user_id: str, day: object) -> None:
        super().__init__(f"user {user_id} has not clocked in on {day}")


class AlreadyClockedOutError(AttendanceConflictError):
    code = "already_clocked_out"

    def __init__(self, user_id: str, day: object) -> None:
        super().__init__(f"user {user_id} already clocked out on {day}")
