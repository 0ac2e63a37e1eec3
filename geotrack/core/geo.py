"""Great-circle geometry on a spherical Earth."""

from __future__ import annotations

import math

from geotrack.core.models import Coordinate

# Earth radius in meters (for Haversine).
EARTH_RADIUS_M = 6_371_000.0


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two points."""
    rlat1, rlat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def bearing_deg(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from ``a`` to ``b`` in degrees, clockwise from north, in [0, 360)."""
    rlat1, rlat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)
    x = math.sin(dlon) * math.cos(rlat2)
    y = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(dlon)
    return math.degrees(math.atan2(x, y)) % 360.0


def destination(origin: Coordinate, bearing: float, distance: float) -> Coordinate:
    """Point reached by travelling ``distance`` meters from ``origin`` along ``bearing``."""
    delta = distance / EARTH_RADIUS_M
    theta = math.radians(bearing)
    rlat1 = math.radians(origin.latitude)
    rlon1 = math.radians(origin.longitude)

    rlat2 = math.asin(
        math.sin(rlat1) * math.cos(delta) + math.cos(rlat1) * math.sin(delta) * math.cos(theta)
    )
    rlon2 = rlon1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(rlat1),
        math.cos(delta) - math.sin(rlat1) * math.sin(rlat2),
    )
    lon = (math.degrees(rlon2) + 540.0) % 360.0 - 180.0
    return Coordinate(latitude=math.degrees(rlat2), longitude=lon)
