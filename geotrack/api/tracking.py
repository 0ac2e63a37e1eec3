"""Location ping and trail API endpoints.

Thin FastAPI adapter: parses JSON into core models, calls the ping
processor, and renders the outcome. Malformed payloads are counted and
answered with 422; unparseable bodies with 400.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from geotrack.api.payloads import (
    InvalidJSON,
    error_response,
    event_to_dict,
    ms_to_datetime,
    parse_coordinate,
    parse_ping_sample,
    parse_rules,
    parse_sample,
    parse_user_id,
    read_json,
    spoofing_to_dict,
    trail_to_dict,
    verdict_to_dict,
)
from geotrack.core.errors import OrderingError, ValidationError
from geotrack.core.trails import build_trails, trails_to_geojson

router = APIRouter(prefix="/api/v1")


async def _parse_ping(request: Request):
    """Returns ``(user_id, sample, target, rules)`` or an error Response."""
    from geotrack.main import get_ping_processor, get_stats

    try:
        body = await read_json(request)
    except InvalidJSON as exc:
        get_stats().record_malformed()
        return error_response(400, "invalid_json", str(exc))

    try:
        user_id = parse_user_id(body)
        sample = parse_ping_sample(body)
        if "target" not in body:
            raise ValidationError("target", "is required")
        target = parse_coordinate(body["target"], "target")
        rules = parse_rules(body.get("rules"), get_ping_processor().rules)
    except ValidationError as exc:
        get_stats().record_malformed()
        return error_response(422, "invalid_ping", str(exc), field=exc.field)
    return user_id, sample, target, rules


@router.post("/tracking/ping")
async def receive_ping(request: Request) -> Response:
    """Validate a location ping and update the user's geofence membership.

    Body::

        {"user_id": "u1",
         "location": {"lat": 6.9, "lng": 79.8, "accuracy_m": 12},
         "captured_at_ms": 1700000000000,
         "target": {"lat": 6.9, "lng": 79.8},
         "rules": {"max_distance_m": 150}}      # optional overrides

    A rejected ping is still a 200: rejection is a verdict, not an error.
    """
    from geotrack.main import get_ping_processor

    parsed = await _parse_ping(request)
    if isinstance(parsed, Response):
        return parsed
    user_id, sample, target, rules = parsed

    result = get_ping_processor().process_ping(
        user_id, sample, target, datetime.now(timezone.utc), rules,
    )

    payload = verdict_to_dict(result.verdict)
    payload["spoofing"] = spoofing_to_dict(result.spoofing)
    payload["events"] = [event_to_dict(e) for e in result.events]
    payload["inside"] = sorted(result.inside)
    return JSONResponse(content=payload)


@router.post("/tracking/report")
async def validation_report(request: Request) -> Response:
    """Trust report for a ping (same body as /tracking/ping). Nothing is stored."""
    from geotrack.main import get_ping_processor

    parsed = await _parse_ping(request)
    if isinstance(parsed, Response):
        return parsed
    user_id, sample, target, rules = parsed

    report = get_ping_processor().report(
        user_id, sample, target, datetime.now(timezone.utc), rules,
    )
    return JSONResponse(content={
        "verdict": verdict_to_dict(report.verdict),
        "spoofing": spoofing_to_dict(report.spoofing),
        "score": {k: round(v, 3) for k, v in asdict(report.score).items()},
        "trusted": report.trusted,
        "recommendations": list(report.recommendations),
    })


@router.post("/tracking/trails")
async def segment_trails(request: Request) -> Response:
    """Split an ordered list of points into trails.

    Consecutive points more than ``max_gap_minutes`` apart start a new trail.
    Points must be in non-decreasing time order.
    """
    from geotrack.main import get_config

    try:
        body = await read_json(request)
    except InvalidJSON as exc:
        return error_response(400, "invalid_json", str(exc))

    try:
        points = body.get("points")
        if not isinstance(points, list):
            raise ValidationError("points", "expected a list")
        samples = [parse_sample(p, "points") for p in points]
        gap_minutes = body.get("max_gap_minutes", get_config().trails.max_gap_minutes)
        if isinstance(gap_minutes, bool) or not isinstance(gap_minutes, (int, float)) \
                or gap_minutes <= 0:
            raise ValidationError("max_gap_minutes", "expected a positive number")
        trails = build_trails(samples, timedelta(minutes=gap_minutes))
    except ValidationError as exc:
        return error_response(422, "invalid_points", str(exc), field=exc.field)
    except OrderingError as exc:
        return error_response(422, "unordered_points", str(exc), index=exc.index)

    return JSONResponse(content={"trails": [trail_to_dict(t) for t in trails]})


@router.get("/tracking/trail/{user_id}")
async def user_trail(user_id: str, start_ms: int | None = None,
                     end_ms: int | None = None) -> Response:
    """Stored trail of a user as a GeoJSON FeatureCollection of LineStrings."""
    from geotrack.main import get_config, get_ping_processor

    try:
        start = ms_to_datetime(start_ms, "start_ms") if start_ms is not None else None
        end = ms_to_datetime(end_ms, "end_ms") if end_ms is not None else None
    except ValidationError as exc:
        return error_response(422, "invalid_range", str(exc), field=exc.field)

    trails = get_ping_processor().trail_for(
        user_id, start=start, end=end, limit=get_config().limits.max_trail_points,
    )
    return JSONResponse(content=trails_to_geojson(trails), media_type="application/geo+json")
