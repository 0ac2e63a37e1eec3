"""Geofence containment and enter/exit transition detection.

Polygons are evaluated in the latitude/longitude plane, which is accurate for
site-sized regions away from the poles and the antimeridian.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Sequence

from geotrack.core.geo import distance_m
from geotrack.core.models import (
    Circle,
    Coordinate,
    GeofenceRegion,
    MembershipState,
    TransitionEvent,
    TransitionKind,
)

# Slack (meters) so a point placed exactly on a circle boundary counts as inside.
CIRCLE_TOLERANCE_M = 1e-6

# Slack (degrees) for the on-edge test of polygon boundaries.
EDGE_TOLERANCE_DEG = 1e-12


@dataclass(frozen=True)
class TransitionResult:
    events: list[TransitionEvent]
    states: dict[str, MembershipState]


def _on_segment(p: Coordinate, a: Coordinate, b: Coordinate) -> bool:
    cross = (b.longitude - a.longitude) * (p.latitude - a.latitude) - (
        b.latitude - a.latitude
    ) * (p.longitude - a.longitude)
    if abs(cross) > EDGE_TOLERANCE_DEG:
        return False
    return (
        min(a.latitude, b.latitude) - EDGE_TOLERANCE_DEG <= p.latitude <= max(a.latitude, b.latitude) + EDGE_TOLERANCE_DEG
        and min(a.longitude, b.longitude) - EDGE_TOLERANCE_DEG <= p.longitude <= max(a.longitude, b.longitude) + EDGE_TOLERANCE_DEG
    )


def _in_polygon(point: Coordinate, vertices: Sequence[Coordinate]) -> bool:
    """Ray casting with an inclusive boundary."""
    n = len(vertices)
    for i in range(n):
        if _on_segment(point, vertices[i], vertices[i - 1]):
            return True

    inside = False
    lat, lon = point.latitude, point.longitude
    j = n - 1
    for i in range(n):
        vi, vj = vertices[i], vertices[j]
        if (vi.latitude > lat) != (vj.latitude > lat):
            crossing = (vj.longitude - vi.longitude) * (lat - vi.latitude) / (
                vj.latitude - vi.latitude
            ) + vi.longitude
            if lon < crossing:
                inside = not inside
        j = i
    return inside


def contains(point: Coordinate, region: GeofenceRegion) -> bool:
    shape = region.shape
    if isinstance(shape, Circle):
        return distance_m(point, shape.center) <= shape.radius_m + CIRCLE_TOLERANCE_M
    return _in_polygon(point, shape.vertices)


def regions_containing(point: Coordinate, regions: Sequence[GeofenceRegion]) -> list[GeofenceRegion]:
    """Active regions the point is currently inside, in caller order."""
    return [r for r in regions if r.active and contains(point, r)]


def evaluate_transitions(
    point: Coordinate,
    regions: Sequence[GeofenceRegion],
    prior_states: Mapping[str, MembershipState],
    at: datetime,
) -> TransitionResult:
    """Compare current containment against prior membership for each active region.

    Events come out in the order of ``regions``. A region with no prior state
    is treated as "outside", so a first sample inside it yields an enter event.
    ``prior_states`` is never mutated; the returned ``states`` is a new mapping
    the caller is expected to persist.
    """
    events: list[TransitionEvent] = []
    states = dict(prior_states)

    for region in regions:
        if not region.active:
            continue
        inside = contains(point, region)
        prior = prior_states.get(region.id)

        if prior is None:
            if inside:
                events.append(TransitionEvent(region.id, TransitionKind.ENTER, at))
            states[region.id] = MembershipState(inside=inside, since=at)
        elif prior.inside != inside:
            kind = TransitionKind.ENTER if inside else TransitionKind.EXIT
            events.append(TransitionEvent(region.id, kind, at))
            states[region.id] = MembershipState(inside=inside, since=at)

    return TransitionResult(events=events, states=states)
