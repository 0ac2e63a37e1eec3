"""Clock processor — applies clock-in/clock-out events to stored attendance."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

import structlog

from geotrack.core.attendance import (
    AttendanceSummary,
    derive,
    new_record,
    record_clock_in,
    record_clock_out,
    summarize,
)
from geotrack.core.errors import AttendanceConflictError
from geotrack.core.models import ClockEvent

if TYPE_CHECKING:
    from geotrack.core.models import AttendanceRecord, Coordinate, GeofenceRegion
    from geotrack.core.stats import TrackingStats
    from geotrack.storage.base import TrackingStore

log = structlog.get_logger()


class ClockProcessor:
    """Localizes clock events to the site timezone and runs the attendance state machine.

    The attendance day of an event is its calendar date in ``timezone``; a
    clock-out is matched against the record of its own local day.
    """

    def __init__(
        self,
        store: TrackingStore,
        stats: TrackingStats,
        timezone: str = "UTC",
        site_region_id: str = "",
    ) -> None:
        self._store = store
        self._stats = stats
        self._tz = ZoneInfo(timezone)
        self._site_region_id = site_region_id

    def _site(self) -> GeofenceRegion | None:
        if not self._site_region_id:
            return None
        return self._store.get_region(self._site_region_id)

    def local_day(self, moment: datetime) -> date:
        return moment.astimezone(self._tz).date()

    def clock_in(self, user_id: str, coordinate: Coordinate, at: datetime,
                 now: datetime) -> AttendanceRecord:
        return self._apply(user_id, coordinate, at, now, clock_out=False)

    def clock_out(self, user_id: str, coordinate: Coordinate, at: datetime,
                  now: datetime) -> AttendanceRecord:
        return self._apply(user_id, coordinate, at, now, clock_out=True)

    def _apply(self, user_id: str, coordinate: Coordinate, at: datetime,
               now: datetime, *, clock_out: bool) -> AttendanceRecord:
        local = at.astimezone(self._tz)
        event = ClockEvent(time=local, coordinate=coordinate)
        day = local.date()
        today = self.local_day(now)
        site = self._site()
        action = "clock_out" if clock_out else "clock_in"

        with self._store.user_lock(user_id):
            record = self._store.get_attendance(user_id, day) or new_record(user_id, day)
            try:
                if clock_out:
                    updated = record_clock_out(record, event, today=today, site=site)
                else:
                    updated = record_clock_in(record, event, today=today, site=site)
            except AttendanceConflictError as exc:
                self._stats.record_conflict()
                log.info("clock_conflict", user=user_id, day=day.isoformat(),
                         action=action, code=exc.code)
                raise
            self._store.save_attendance(updated)

        if clock_out:
            self._stats.record_clock_out()
        else:
            self._stats.record_clock_in()
        log.info(f"{action}_recorded", user=user_id, day=day.isoformat(),
                 status=updated.status.value, total_hours=updated.total_hours,
                 anomalies=sorted(a.value for a in updated.anomalies))
        return updated

    def record_for(self, user_id: str, day: date, now: datetime) -> AttendanceRecord:
        """Current view of a day's record, re-derived against today's date."""
        record = self._store.get_attendance(user_id, day) or new_record(user_id, day)
        return derive(record, today=self.local_day(now), site=self._site())

    def summary(self, user_id: str | None, start: date | None, end: date | None,
                now: datetime) -> tuple[AttendanceSummary, list[AttendanceRecord]]:
        today = self.local_day(now)
        site = self._site()
        records = [
            derive(r, today=today, site=site)
            for r in self._store.attendance_records(user_id, start, end)
        ]
        return summarize(records), records
