"""Input sanitation — rejects malformed numbers before the engine sees them.

Every function either returns a well-formed model or raises ValidationError.
Nothing downstream re-checks these invariants.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from geotrack.core.errors import ValidationError
from geotrack.core.models import Circle, Coordinate, GeofenceRegion, LocationSample


def _finite(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field, f"expected a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(field, "must be finite")
    return number


def check_coordinate(latitude: Any, longitude: Any) -> Coordinate:
    lat = _finite(latitude, "latitude")
    lon = _finite(longitude, "longitude")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError("latitude", "must be between -90 and 90")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError("longitude", "must be between -180 and 180")
    return Coordinate(latitude=lat, longitude=lon)


def check_sample(
    latitude: Any,
    longitude: Any,
    accuracy_m: Any,
    captured_at: datetime,
    battery_level: Any = None,
    speed_kmh: Any = None,
) -> LocationSample:
    """Build a LocationSample from raw values, rejecting anything malformed."""
    coordinate = check_coordinate(latitude, longitude)

    accuracy = _finite(accuracy_m, "accuracy_m")
    if accuracy < 0:
        raise ValidationError("accuracy_m", "must not be negative")

    if not isinstance(captured_at, datetime):
        raise ValidationError("captured_at", "expected a datetime")
    if captured_at.tzinfo is None:
        raise ValidationError("captured_at", "must be timezone-aware")

    battery: int | None = None
    if battery_level is not None:
        level = _finite(battery_level, "battery_level")
        if not 0 <= level <= 100:
            raise ValidationError("battery_level", "must be between 0 and 100")
        battery = int(level)

    speed: float | None = None
    if speed_kmh is not None:
        speed = _finite(speed_kmh, "speed_kmh")
        if speed < 0:
            raise ValidationError("speed_kmh", "must not be negative")

    return LocationSample(
        coordinate=coordinate,
        accuracy_m=accuracy,
        captured_at=captured_at,
        battery_level=battery,
        speed_kmh=speed,
    )


def check_region(region: GeofenceRegion) -> GeofenceRegion:
    """Reject geofence definitions the evaluator cannot reason about."""
    if not region.id or not region.id.strip():
        raise ValidationError("id", "geofence id is required")

    if isinstance(region.shape, Circle):
        check_coordinate(region.shape.center.latitude, region.shape.center.longitude)
        radius = _finite(region.shape.radius_m, "radius_m")
        if radius <= 0:
            raise ValidationError("radius_m", "circle geofence requires a positive radius")
    else:
        vertices = region.shape.vertices
        if len(vertices) < 3:
            raise ValidationError("vertices", "polygon geofence requires at least 3 vertices")
        for vertex in vertices:
            check_coordinate(vertex.latitude, vertex.longitude)
    return region
