"""Trail reconstruction — splits a time-ordered ping stream on inactivity gaps."""

from __future__ import annotations

from datetime import timedelta
from typing import Sequence

from geotrack.core.errors import OrderingError
from geotrack.core.geo import distance_m
from geotrack.core.models import LocationSample, Trail

DEFAULT_MAX_GAP = timedelta(minutes=30)


def build_trails(
    points: Sequence[LocationSample],
    max_gap: timedelta = DEFAULT_MAX_GAP,
) -> list[Trail]:
    """Group samples into trails, starting a new one after any gap > ``max_gap``.

    Input must already be sorted by ``captured_at``; equal timestamps are fine.
    A decreasing timestamp raises OrderingError instead of being re-sorted.
    Concatenating the returned trails reproduces ``points`` exactly.
    """
    trails: list[Trail] = []
    current: list[LocationSample] = []

    for i, point in enumerate(points):
        if current:
            prev = current[-1]
            if point.captured_at < prev.captured_at:
                raise OrderingError(i, prev.captured_at, point.captured_at)
            if point.captured_at - prev.captured_at > max_gap:
                trails.append(Trail(points=tuple(current)))
                current = []
        current.append(point)

    if current:
        trails.append(Trail(points=tuple(current)))
    return trails


def trail_distance_m(trail: Trail) -> float:
    """Path length along consecutive points."""
    return sum(
        distance_m(a.coordinate, b.coordinate)
        for a, b in zip(trail.points, trail.points[1:])
    )


def trail_to_feature(trail: Trail) -> dict:
    return {
        "type": "Feature",
        "geometry": {
            "type": "LineString",
            "coordinates": [
                [round(p.coordinate.longitude, 6), round(p.coordinate.latitude, 6)]
                for p in trail.points
            ],
        },
        "properties": {
            "started_at": trail.started_at.isoformat(),
            "ended_at": trail.ended_at.isoformat(),
            "duration_seconds": trail.duration.total_seconds(),
            "distance_m": round(trail_distance_m(trail), 1),
            "points": len(trail.points),
            "speeds_kmh": [p.speed_kmh for p in trail.points],
        },
    }


def trails_to_geojson(trails: Sequence[Trail]) -> dict:
    """Convert trails to a GeoJSON FeatureCollection of LineStrings."""
    return {
        "type": "FeatureCollection",
        "features": [trail_to_feature(t) for t in trails],
    }
