"""Storage interface (port) for tracking state owned by the caller layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, ContextManager, Protocol

if TYPE_CHECKING:
    from datetime import date, datetime

    from geotrack.core.models import (
        AttendanceRecord,
        GeofenceRegion,
        LocationSample,
        MembershipState,
    )


class TrackingStore(Protocol):
    """Port: holds regions, membership, accepted samples and attendance records.

    Individual calls are atomic. Read-modify-write sequences for one user must
    be wrapped in ``user_lock(user_id)``.
    """

    def user_lock(self, user_id: str) -> ContextManager[object]: ...

    def put_region(self, region: GeofenceRegion) -> None: ...

    def get_region(self, region_id: str) -> GeofenceRegion | None: ...

    def delete_region(self, region_id: str) -> bool: ...

    def list_regions(self) -> list[GeofenceRegion]: ...

    def membership(self, user_id: str) -> dict[str, MembershipState]: ...

    def save_membership(self, user_id: str, states: dict[str, MembershipState]) -> None: ...

    def append_sample(self, user_id: str, sample: LocationSample) -> None: ...

    def samples(self, user_id: str, start: datetime | None = None,
                end: datetime | None = None, limit: int | None = None) -> list[LocationSample]:
        """Samples in [start, end], oldest first; ``limit`` keeps the newest ones."""
        ...

    def recent_samples(self, user_id: str, limit: int) -> list[LocationSample]: ...

    def get_attendance(self, user_id: str, day: date) -> AttendanceRecord | None: ...

    def save_attendance(self, record: AttendanceRecord) -> None: ...

    def attendance_records(self, user_id: str | None = None, start: date | None = None,
                           end: date | None = None) -> list[AttendanceRecord]: ...
