"""JSON <-> model conversion for the HTTP adapter.

Parsing functions raise ValidationError on anything malformed; the routers
turn that into a 422 response. Coordinates travel as ``{"lat", "lng"}`` and
timestamps as epoch milliseconds, matching the mobile clients.
"""

from __future__ import annotations

import json
import math
from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from geotrack.core.errors import ValidationError
from geotrack.core.models import (
    AttendanceRecord,
    Circle,
    ClockEvent,
    Coordinate,
    GeofenceRegion,
    LocationSample,
    Polygon,
    TransitionEvent,
    Trail,
    ValidationVerdict,
)
from geotrack.core.sanitize import check_coordinate, check_region, check_sample
from geotrack.core.trails import trail_distance_m
from geotrack.core.validator import SpoofingReport, ValidationRules


class InvalidJSON(Exception):
    pass


async def read_json(request: Request) -> dict:
    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidJSON("invalid JSON") from exc
    if not isinstance(body, dict):
        raise InvalidJSON("expected a JSON object")
    return body


def error_response(status_code: int, error: str, detail: str = "", **extra: Any) -> JSONResponse:
    content = {"error": error, "detail": detail}
    content.update(extra)
    return JSONResponse(content=content, status_code=status_code)


def _object(data: Any, field: str) -> dict:
    if not isinstance(data, dict):
        raise ValidationError(field, "expected an object")
    return data


def parse_user_id(body: dict) -> str:
    user_id = body.get("user_id")
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id", "is required")
    return user_id


def parse_coordinate(data: Any, field: str = "location") -> Coordinate:
    data = _object(data, field)
    return check_coordinate(data.get("lat"), data.get("lng"))


def ms_to_datetime(value: Any, field: str) -> datetime:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(field, "expected epoch milliseconds")
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValidationError(field, "timestamp out of range") from exc


def datetime_to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def parse_day(value: str, field: str = "day") -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(field, "expected YYYY-MM-DD") from exc


def parse_sample(data: Any, field: str = "location") -> LocationSample:
    """Parse ``{"lat", "lng", "accuracy_m", "captured_at_ms", ...}`` into a sample."""
    data = _object(data, field)
    return check_sample(
        data.get("lat"),
        data.get("lng"),
        data.get("accuracy_m"),
        ms_to_datetime(data.get("captured_at_ms"), "captured_at_ms"),
        battery_level=data.get("battery_level"),
        speed_kmh=data.get("speed_kmh"),
    )


def parse_ping_sample(body: dict) -> LocationSample:
    location = _object(body.get("location"), "location")
    return parse_sample({
        **location,
        "captured_at_ms": body.get("captured_at_ms"),
        "battery_level": body.get("battery_level"),
        "speed_kmh": body.get("speed_kmh"),
    })


def parse_rules(data: Any, base: ValidationRules) -> ValidationRules:
    """Apply per-request rule overrides on top of the configured defaults."""
    if data is None:
        return base
    data = _object(data, "rules")
    overrides: dict[str, Any] = {}
    for f in fields(ValidationRules):
        if f.name not in data:
            continue
        value = data[f.name]
        if isinstance(getattr(base, f.name), bool):
            if not isinstance(value, bool):
                raise ValidationError(f"rules.{f.name}", "expected a boolean")
        elif isinstance(value, bool) or not isinstance(value, (int, float)) \
                or not math.isfinite(value) or value < 0:
            raise ValidationError(f"rules.{f.name}", "expected a non-negative number")
        overrides[f.name] = value
    for name in ("max_distance_m", "max_speed_kmh"):
        if overrides.get(name, getattr(base, name)) <= 0:
            raise ValidationError(f"rules.{name}", "must be positive")
    return replace(base, **overrides)


def parse_region(region_id: str, body: dict) -> GeofenceRegion:
    shape: Circle | Polygon
    if "circle" in body:
        circle = _object(body["circle"], "circle")
        radius = circle.get("radius_m")
        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            raise ValidationError("radius_m", "expected a number")
        shape = Circle(center=parse_coordinate(circle.get("center"), "center"), radius_m=float(radius))
    elif "polygon" in body:
        vertices = body["polygon"]
        if not isinstance(vertices, list):
            raise ValidationError("polygon", "expected a list of vertices")
        shape = Polygon(vertices=tuple(parse_coordinate(v, "polygon") for v in vertices))
    else:
        raise ValidationError("shape", "either 'circle' or 'polygon' is required")

    active = body.get("active", True)
    if not isinstance(active, bool):
        raise ValidationError("active", "expected a boolean")
    return check_region(GeofenceRegion(
        id=region_id,
        shape=shape,
        active=active,
        name=str(body.get("name", "")),
    ))


def coordinate_to_dict(c: Coordinate) -> dict:
    return {"lat": c.latitude, "lng": c.longitude}


def region_to_dict(region: GeofenceRegion) -> dict:
    result: dict[str, Any] = {"id": region.id, "name": region.name, "active": region.active}
    if isinstance(region.shape, Circle):
        result["circle"] = {
            "center": coordinate_to_dict(region.shape.center),
            "radius_m": region.shape.radius_m,
        }
    else:
        result["polygon"] = [coordinate_to_dict(v) for v in region.shape.vertices]
    return result


def verdict_to_dict(verdict: ValidationVerdict) -> dict:
    return {
        "accepted": verdict.accepted,
        "confidence": round(verdict.confidence, 3),
        "tier": verdict.tier.value,
        "distance_m": round(verdict.distance_m, 1),
        "reasons": list(verdict.reasons),
    }


def spoofing_to_dict(report: SpoofingReport) -> dict:
    return {
        "suspicious": report.suspicious,
        "score": round(report.score, 3),
        "reasons": list(report.reasons),
    }


def event_to_dict(event: TransitionEvent) -> dict:
    return {
        "region_id": event.region_id,
        "kind": event.kind.value,
        "at_ms": datetime_to_ms(event.at),
    }


def trail_to_dict(trail: Trail) -> dict:
    return {
        "started_at_ms": datetime_to_ms(trail.started_at),
        "ended_at_ms": datetime_to_ms(trail.ended_at),
        "distance_m": round(trail_distance_m(trail), 1),
        "points": [
            {
                "lat": p.coordinate.latitude,
                "lng": p.coordinate.longitude,
                "captured_at_ms": datetime_to_ms(p.captured_at),
                "speed_kmh": p.speed_kmh,
            }
            for p in trail.points
        ],
    }


def _clock_to_dict(event: ClockEvent | None) -> dict | None:
    if event is None:
        return None
    return {
        "time": event.time.isoformat(),
        "time_ms": datetime_to_ms(event.time),
        "location": coordinate_to_dict(event.coordinate),
    }


def record_to_dict(record: AttendanceRecord) -> dict:
    return {
        "user_id": record.user_id,
        "date": record.day.isoformat(),
        "clock_in": _clock_to_dict(record.clock_in),
        "clock_out": _clock_to_dict(record.clock_out),
        "total_hours": record.total_hours,
        "status": record.status.value,
        "anomalies": sorted(a.value for a in record.anomalies),
    }
