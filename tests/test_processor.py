"""Tests for the ping and clock processors."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from geotrack.core.clock import ClockProcessor
from geotrack.core.errors import AlreadyClockedInError, NotClockedInError
from geotrack.core.geo import destination
from geotrack.core.models import (
    Anomaly,
    AttendanceStatus,
    Circle,
    Coordinate,
    GeofenceRegion,
    LocationSample,
    TransitionKind,
)
from geotrack.core.processor import PingProcessor
from geotrack.core.stats import TrackingStats
from geotrack.core.validator import ValidationRules
from geotrack.storage.memory_store import InMemoryTrackingStore

NOW = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
SITE = Coordinate(6.9271, 79.8612)
HQ = GeofenceRegion("hq", Circle(SITE, 150.0))


@pytest.fixture
def store():
    store = InMemoryTrackingStore()
    store.put_region(HQ)
    return store


@pytest.fixture
def stats():
    return TrackingStats()


def ping(distance: float, seconds: float = 0, accuracy: float = 8.0,
         bearing: float = 90.0) -> LocationSample:
    return LocationSample(
        coordinate=destination(SITE, bearing, distance),
        accuracy_m=accuracy,
        captured_at=NOW + timedelta(seconds=seconds),
    )


def test_accepted_ping_enters_region(store, stats):
    processor = PingProcessor(store, stats)
    result = processor.process_ping("u1", ping(20), SITE, NOW)

    assert result.verdict.accepted
    assert [(e.region_id, e.kind) for e in result.events] == [("hq", TransitionKind.ENTER)]
    assert result.inside == ["hq"]
    assert store.membership("u1")["hq"].inside is True
    assert len(store.samples("u1")) == 1

    snap = stats.snapshot()
    assert snap["pings_accepted"] == 1
    assert snap["transitions_emitted"] == 1
    assert snap["active_users"]["inside_geofence"] == 1


def test_rejected_ping_is_not_stored(store, stats):
    processor = PingProcessor(store, stats)
    result = processor.process_ping("u1", ping(400), SITE, NOW)

    assert not result.verdict.accepted
    assert result.events == []
    assert store.samples("u1") == []
    assert store.membership("u1") == {}
    assert stats.snapshot()["pings_rejected"] == 1


def test_walk_out_emits_exit(store, stats):
    processor = PingProcessor(store, stats, rules=ValidationRules(max_distance_m=1000))
    processor.process_ping("u1", ping(20), SITE, NOW)
    result = processor.process_ping("u1", ping(300, seconds=120), SITE,
                                    NOW + timedelta(seconds=120))

    assert [e.kind for e in result.events] == [TransitionKind.EXIT]
    assert result.inside == []
    assert result.events[0].at == NOW + timedelta(seconds=120)


def test_deactivated_region_not_reported_inside(store, stats):
    processor = PingProcessor(store, stats)
    processor.process_ping("u1", ping(20), SITE, NOW)
    store.put_region(GeofenceRegion("hq", Circle(SITE, 150.0), active=False))

    result = processor.process_ping("u1", ping(25, seconds=60), SITE,
                                    NOW + timedelta(seconds=60))

    assert result.events == []
    assert result.inside == []
    assert store.membership("u1")["hq"].inside is True
    assert stats.snapshot()["active_users"]["inside_geofence"] == 0


def test_per_request_rules_override(store, stats):
    processor = PingProcessor(store, stats)
    strict = ValidationRules(max_distance_m=10)
    result = processor.process_ping("u1", ping(20), SITE, NOW, rules=strict)
    assert not result.verdict.accepted
    assert processor.rules.max_distance_m == 100.0


def test_teleport_is_reported_as_suspicious(store, stats):
    processor = PingProcessor(store, stats, rules=ValidationRules(max_distance_m=5000))
    processor.process_ping("u1", ping(10), SITE, NOW)
    result = processor.process_ping("u1", ping(3000, seconds=2), SITE,
                                    NOW + timedelta(seconds=2))

    assert result.spoofing.suspicious
    assert stats.snapshot()["pings_suspicious"] == 1


def test_report_stores_nothing(store, stats):
    processor = PingProcessor(store, stats)
    report = processor.report("u1", ping(20), SITE, NOW)
    assert report.verdict.accepted
    assert store.samples("u1") == []
    assert stats.snapshot()["pings_received"] == 0


def test_trail_for_splits_on_gap(store, stats):
    processor = PingProcessor(store, stats, max_gap=timedelta(minutes=30))
    for seconds in (0, 60, 3600, 3660):
        at = NOW + timedelta(seconds=seconds)
        processor.process_ping("u1", ping(10 + seconds / 600, seconds=seconds), SITE, at)

    trails = processor.trail_for("u1")
    assert [len(t.points) for t in trails] == [2, 2]
    newest = processor.trail_for("u1", limit=3)
    assert [len(t.points) for t in newest] == [1, 2]
    assert newest[-1].points[-1].captured_at == NOW + timedelta(seconds=3660)


# Clock processor

def test_clock_in_and_out_with_timezone(store, stats):
    clock = ClockProcessor(store, stats, timezone="Asia/Colombo")
    # 02:45 UTC is 08:15 in Colombo (UTC+05:30).
    clock_in = datetime(2024, 3, 1, 2, 45, tzinfo=timezone.utc)
    now = datetime(2024, 3, 2, 6, 0, tzinfo=timezone.utc)

    record = clock.clock_in("u1", SITE, clock_in, now)
    assert record.day == date(2024, 3, 1)
    assert record.clock_in.time.hour == 8
    assert record.status is AttendanceStatus.PARTIAL

    record = clock.clock_out("u1", SITE, clock_in + timedelta(hours=9, minutes=30), now)
    assert record.total_hours == 9.5
    assert record.status is AttendanceStatus.PRESENT
    assert record.anomalies == frozenset()
    assert stats.snapshot()["clock_outs"] == 1


def test_local_day_differs_from_utc_day(store, stats):
    clock = ClockProcessor(store, stats, timezone="Asia/Colombo")
    late_utc = datetime(2024, 3, 1, 20, 0, tzinfo=timezone.utc)
    assert clock.local_day(late_utc) == date(2024, 3, 2)


def test_conflicts_are_counted_and_raised(store, stats):
    clock = ClockProcessor(store, stats, timezone="UTC")
    with pytest.raises(NotClockedInError):
        clock.clock_out("u1", SITE, NOW, NOW)

    clock.clock_in("u1", SITE, NOW, NOW)
    with pytest.raises(AlreadyClockedInError):
        clock.clock_in("u1", SITE, NOW + timedelta(minutes=1), NOW)

    snap = stats.snapshot()
    assert snap["clock_conflicts"] == 2
    assert snap["clock_ins"] == 1


def test_site_region_flags_remote_clock_in(store, stats):
    clock = ClockProcessor(store, stats, timezone="UTC", site_region_id="hq")
    away = destination(SITE, 0, 2000.0)
    record = clock.clock_in("u1", away, NOW, NOW)
    assert Anomaly.LOCATION_ANOMALY in record.anomalies


def test_record_for_and_summary(store, stats):
    clock = ClockProcessor(store, stats, timezone="UTC")
    clock.clock_in("u1", SITE, NOW, NOW)
    later = NOW + timedelta(days=2)

    assert clock.record_for("u1", NOW.date(), later).status is AttendanceStatus.PARTIAL
    assert clock.record_for("u1", date(2024, 2, 1), later).status is AttendanceStatus.ABSENT

    summary, records = clock.summary("u1", None, None, later)
    assert summary.total_records == 1
    assert summary.partial_days == 1
    assert records[0].status is AttendanceStatus.PARTIAL
