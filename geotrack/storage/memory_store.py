"""In-process implementation of TrackingStore.

Keeps everything in dictionaries guarded by a store lock, plus one lock per
user for callers that read-modify-write. Suitable for a single
server process and for tests; durable persistence belongs to a different
implementation of the same port.
"""

from __future__ import annotations

import bisect
import threading
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from datetime import date, datetime

    from geotrack.core.models import (
        AttendanceRecord,
        GeofenceRegion,
        LocationSample,
        MembershipState,
    )

log = structlog.get_logger()


def _captured_at(sample: LocationSample) -> datetime:
    return sample.captured_at


class InMemoryTrackingStore:
    """TrackingStore backed by plain dicts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._user_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._regions: dict[str, GeofenceRegion] = {}
        self._membership: dict[str, dict[str, MembershipState]] = {}
        # Per user, kept sorted ascending by captured_at.
        self._samples: dict[str, list[LocationSample]] = defaultdict(list)
        self._attendance: dict[tuple[str, date], AttendanceRecord] = {}

    def user_lock(self, user_id: str) -> threading.Lock:
        with self._lock:
            return self._user_locks[user_id]

    # Regions

    def put_region(self, region: GeofenceRegion) -> None:
        with self._lock:
            self._regions[region.id] = region
        log.debug("region_stored", region_id=region.id, active=region.active)

    def get_region(self, region_id: str) -> GeofenceRegion | None:
        with self._lock:
            return self._regions.get(region_id)

    def delete_region(self, region_id: str) -> bool:
        with self._lock:
            removed = self._regions.pop(region_id, None) is not None
            for states in self._membership.values():
                states.pop(region_id, None)
        return removed

    def list_regions(self) -> list[GeofenceRegion]:
        with self._lock:
            return list(self._regions.values())

    # Membership

    def membership(self, user_id: str) -> dict[str, MembershipState]:
        with self._lock:
            return dict(self._membership.get(user_id, {}))

    def save_membership(self, user_id: str, states: dict[str, MembershipState]) -> None:
        with self._lock:
            self._membership[user_id] = dict(states)

    # Samples

    def append_sample(self, user_id: str, sample: LocationSample) -> None:
        with self._lock:
            bisect.insort(self._samples[user_id], sample, key=_captured_at)

    def samples(self, user_id: str, start: datetime | None = None,
                end: datetime | None = None, limit: int | None = None) -> list[LocationSample]:
        with self._lock:
            selected = [
                s for s in self._samples.get(user_id, [])
                if (start is None or s.captured_at >= start)
                and (end is None or s.captured_at <= end)
            ]
        if limit is not None:
            selected = selected[-limit:] if limit > 0 else []
        return selected

    def recent_samples(self, user_id: str, limit: int) -> list[LocationSample]:
        if limit <= 0:
            return []
        with self._lock:
            return list(self._samples.get(user_id, [])[-limit:])

    # Attendance

    def get_attendance(self, user_id: str, day: date) -> AttendanceRecord | None:
        with self._lock:
            return self._attendance.get((user_id, day))

    def save_attendance(self, record: AttendanceRecord) -> None:
        with self._lock:
            self._attendance[(record.user_id, record.day)] = record

    def attendance_records(self, user_id: str | None = None, start: date | None = None,
                           end: date | None = None) -> list[AttendanceRecord]:
        with self._lock:
            records = [
                r for r in self._attendance.values()
                if (user_id is None or r.user_id == user_id)
                and (start is None or r.day >= start)
                and (end is None or r.day <= end)
            ]
        records.sort(key=lambda r: r.day, reverse=True)
        return records
