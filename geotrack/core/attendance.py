"""Attendance derivation — the per (user, day) clock-in/clock-out state machine.

    absent --clock-in--> pending (day is today)
                  or partial (day is past, no clock-out; missing_clock_out)
    pending/partial --clock-out--> present

Each operation takes the previous record and returns the next one; nothing is
mutated in place and nothing is stored. Status and anomalies are recomputed
from the clock events every time, so re-deriving a record is idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable

from geotrack.core.errors import AlreadyClockedInError, AlreadyClockedOutError, NotClockedInError
from geotrack.core.geofence import contains
from geotrack.core.models import (
    Anomaly,
    AttendanceRecord,
    AttendanceStatus,
    ClockEvent,
    GeofenceRegion,
)

# Clock-in hours in [LATE_FROM, LATE_UNTIL) are late.
LATE_FROM_HOUR = 9
LATE_UNTIL_HOUR = 12

# Clock-out hours strictly between these bounds are early.
EARLY_AFTER_HOUR = 6
EARLY_BEFORE_HOUR = 17


@dataclass(frozen=True)
class AttendanceSummary:
    total_records: int
    present_days: int
    partial_days: int
    absent_days: int
    total_hours: float
    average_hours: float
    attendance_rate: float


def new_record(user_id: str, day: date) -> AttendanceRecord:
    return AttendanceRecord(user_id=user_id, day=day)


def _total_hours(record: AttendanceRecord) -> float:
    if record.clock_in is None or record.clock_out is None:
        return 0.0
    elapsed = (record.clock_out.time - record.clock_in.time).total_seconds() / 3600.0
    return round(max(0.0, elapsed), 2)


def _status(record: AttendanceRecord, today: date) -> AttendanceStatus:
    if record.clock_in is None:
        return AttendanceStatus.ABSENT
    if record.clock_out is not None:
        return AttendanceStatus.PRESENT
    if record.day < today:
        return AttendanceStatus.PARTIAL
    return AttendanceStatus.PENDING


def _anomalies(
    record: AttendanceRecord,
    status: AttendanceStatus,
    site: GeofenceRegion | None,
) -> frozenset[Anomaly]:
    found: set[Anomaly] = set()

    if record.clock_in is not None:
        if LATE_FROM_HOUR <= record.clock_in.time.hour < LATE_UNTIL_HOUR:
            found.add(Anomaly.LATE_CLOCK_IN)
    if record.clock_out is not None:
        if EARLY_AFTER_HOUR < record.clock_out.time.hour < EARLY_BEFORE_HOUR:
            found.add(Anomaly.EARLY_CLOCK_OUT)
    if status is AttendanceStatus.PARTIAL:
        found.add(Anomaly.MISSING_CLOCK_OUT)

    if site is not None:
        events = [e for e in (record.clock_in, record.clock_out) if e is not None]
        if any(not contains(e.coordinate, site) for e in events):
            found.add(Anomaly.LOCATION_ANOMALY)

    return frozenset(found)


def derive(
    record: AttendanceRecord,
    *,
    today: date,
    site: GeofenceRegion | None = None,
) -> AttendanceRecord:
    """Recompute hours, status and anomalies from the record's clock events.

    Event times are read as given: callers localize them to the site's
    timezone before recording, so hour-of-day rules apply to local time.
    """
    status = _status(record, today)
    return replace(
        record,
        total_hours=_total_hours(record),
        status=status,
        anomalies=_anomalies(record, status, site),
    )


def record_clock_in(
    record: AttendanceRecord,
    event: ClockEvent,
    *,
    today: date,
    site: GeofenceRegion | None = None,
) -> AttendanceRecord:
    if record.clock_in is not None:
        raise AlreadyClockedInError(record.user_id, record.day)
    return derive(replace(record, clock_in=event), today=today, site=site)


def record_clock_out(
    record: AttendanceRecord,
    event: ClockEvent,
    *,
    today: date,
    site: GeofenceRegion | None = None,
) -> AttendanceRecord:
    if record.clock_in is None:
        raise NotClockedInError(record.user_id, record.day)
    if record.clock_out is not None:
        raise AlreadyClockedOutError(record.user_id, record.day)
    return derive(replace(record, clock_out=event), today=today, site=site)


def summarize(records: Iterable[AttendanceRecord]) -> AttendanceSummary:
    """Aggregate day counts and hours over a set of records.

    Days with a clock-in but no clock-out (pending or partial) count as partial.
    """
    total = present = partial = absent = 0
    hours = 0.0
    for r in records:
        total += 1
        if r.status is AttendanceStatus.PRESENT:
            present += 1
            hours += r.total_hours
        elif r.status is AttendanceStatus.ABSENT:
            absent += 1
        else:
            partial += 1

    return AttendanceSummary(
        total_records=total,
        present_days=present,
        partial_days=partial,
        absent_days=absent,
        total_hours=round(hours, 2),
        average_hours=round(hours / present, 2) if present else 0.0,
        attendance_rate=round(present / total * 100, 2) if total else 0.0,
    )
