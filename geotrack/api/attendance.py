"""Attendance endpoints: clock-in/clock-out, day records and summaries."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from geotrack.api.payloads import (
    InvalidJSON,
    error_response,
    ms_to_datetime,
    parse_coordinate,
    parse_day,
    parse_user_id,
    read_json,
    record_to_dict,
)
from geotrack.core.errors import AttendanceConflictError, ValidationError

router = APIRouter(prefix="/api/v1")


async def _clock(request: Request, *, clock_out: bool) -> Response:
    from geotrack.main import get_clock_processor

    try:
        body = await read_json(request)
    except InvalidJSON as exc:
        return error_response(400, "invalid_json", str(exc))

    now = datetime.now(timezone.utc)
    try:
        user_id = parse_user_id(body)
        coordinate = parse_coordinate(body.get("location"))
        at = ms_to_datetime(body["time_ms"], "time_ms") if "time_ms" in body else now
    except ValidationError as exc:
        return error_response(422, "invalid_clock_event", str(exc), field=exc.field)

    processor = get_clock_processor()
    try:
        if clock_out:
            record = processor.clock_out(user_id, coordinate, at, now)
        else:
            record = processor.clock_in(user_id, coordinate, at, now)
    except AttendanceConflictError as exc:
        return error_response(409, exc.code, str(exc))

    return JSONResponse(content=record_to_dict(record))


@router.post("/attendance/clock-in")
async def clock_in(request: Request) -> Response:
    """Body: ``{"user_id", "location": {"lat", "lng"}, "time_ms"?}``.

    ``time_ms`` defaults to the server clock. A second clock-in on the same
    local day is a 409 ``already_clocked_in``.
    """
    return await _clock(request, clock_out=False)


@router.post("/attendance/clock-out")
async def clock_out(request: Request) -> Response:
    """Same body as clock-in; 409 if not clocked in or already clocked out."""
    return await _clock(request, clock_out=True)


@router.post("/attendance/summary")
async def attendance_summary(request: Request) -> Response:
    """Aggregate records, optionally filtered by ``user_id`` and a date range.

    Body: ``{"user_id"?, "start"?: "YYYY-MM-DD", "end"?: "YYYY-MM-DD"}``.
    """
    from geotrack.main import get_clock_processor

    try:
        body = await read_json(request)
    except InvalidJSON as exc:
        return error_response(400, "invalid_json", str(exc))

    try:
        user_id = parse_user_id(body) if "user_id" in body else None
        start = parse_day(body["start"], "start") if "start" in body else None
        end = parse_day(body["end"], "end") if "end" in body else None
    except ValidationError as exc:
        return error_response(422, "invalid_range", str(exc), field=exc.field)

    summary, records = get_clock_processor().summary(
        user_id, start, end, datetime.now(timezone.utc),
    )
    return JSONResponse(content={
        "summary": asdict(summary),
        "records": [record_to_dict(r) for r in records],
    })


@router.get("/attendance/{user_id}/{day}")
async def attendance_day(user_id: str, day: str) -> Response:
    """Record for one local day; a day without clock events reads as absent."""
    from geotrack.main import get_clock_processor

    try:
        parsed = parse_day(day)
    except ValidationError as exc:
        return error_response(422, "invalid_day", str(exc), field=exc.field)

    record = get_clock_processor().record_for(user_id, parsed, datetime.now(timezone.utc))
    return JSONResponse(content=record_to_dict(record))
