"""GeoTrack — core internal data models.

These are plain dataclasses with no framework dependencies.
JSON request bodies are converted to/from these at the API boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationSample:
    coordinate: Coordinate
    accuracy_m: float
    captured_at: datetime
    battery_level: int | None = None
    speed_kmh: float | None = None


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ValidationVerdict:
    accepted: bool
    confidence: float
    tier: ConfidenceTier
    distance_m: float
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class Circle:
    center: Coordinate
    radius_m: float


@dataclass(frozen=True)
class Polygon:
    vertices: tuple[Coordinate, ...]


@dataclass(frozen=True)
class GeofenceRegion:
    id: str
    shape: Circle | Polygon
    active: bool = True
    name: str = ""


@dataclass(frozen=True)
class MembershipState:
    inside: bool
    since: datetime


class TransitionKind(str, Enum):
    ENTER = "enter"
    EXIT = "exit"


@dataclass(frozen=True)
class TransitionEvent:
    region_id: str
    kind: TransitionKind
    at: datetime


@dataclass(frozen=True)
class Trail:
    """A contiguous run of samples with no gap above the configured maximum."""

    points: tuple[LocationSample, ...]

    @property
    def started_at(self) -> datetime:
        return self.points[0].captured_at

    @property
    def ended_at(self) -> datetime:
        return self.points[-1].captured_at

    @property
    def duration(self) -> timedelta:
        return self.ended_at - self.started_at


@dataclass(frozen=True)
class ClockEvent:
    time: datetime
    coordinate: Coordinate


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    PARTIAL = "partial"
    PENDING = "pending"
    ABSENT = "absent"


class Anomaly(str, Enum):
    LATE_CLOCK_IN = "late_clock_in"
    EARLY_CLOCK_OUT = "early_clock_out"
    MISSING_CLOCK_OUT = "missing_clock_out"
    LOCATION_ANOMALY = "location_anomaly"


@dataclass(frozen=True)
class AttendanceRecord:
    user_id: str
    day: date
    clock_in: ClockEvent | None = None
    clock_out: ClockEvent | None = None
    total_hours: float = 0.0
    status: AttendanceStatus = AttendanceStatus.ABSENT
    anomalies: frozenset[Anomaly] = field(default_factory=frozenset)
