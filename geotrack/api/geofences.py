"""Geofence region management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from geotrack.api.payloads import (
    InvalidJSON,
    error_response,
    parse_region,
    read_json,
    region_to_dict,
)
from geotrack.core.errors import ValidationError

router = APIRouter(prefix="/api/v1")


@router.put("/geofences/{region_id}")
async def put_geofence(region_id: str, request: Request) -> Response:
    """Create or replace a region.

    Body is either ``{"circle": {"center": {"lat", "lng"}, "radius_m"}}`` or
    ``{"polygon": [{"lat", "lng"}, ...]}``, plus optional ``name`` and ``active``.
    """
    from geotrack.main import get_store

    try:
        body = await read_json(request)
    except InvalidJSON as exc:
        return error_response(400, "invalid_json", str(exc))

    try:
        region = parse_region(region_id, body)
    except ValidationError as exc:
        return error_response(422, "invalid_region", str(exc), field=exc.field)

    get_store().put_region(region)
    return JSONResponse(content=region_to_dict(region))


@router.get("/geofences")
async def list_geofences() -> dict:
    from geotrack.main import get_store

    regions = sorted(get_store().list_regions(), key=lambda r: r.id)
    return {"regions": [region_to_dict(r) for r in regions]}


@router.get("/geofences/{region_id}")
async def get_geofence(region_id: str) -> Response:
    from geotrack.main import get_store

    region = get_store().get_region(region_id)
    if region is None:
        return error_response(404, "not_found", f"no region {region_id}")
    return JSONResponse(content=region_to_dict(region))


@router.delete("/geofences/{region_id}")
async def delete_geofence(region_id: str) -> Response:
    """Remove a region. Users' membership in it is forgotten as well."""
    from geotrack.main import get_store

    if not get_store().delete_region(region_id):
        return error_response(404, "not_found", f"no region {region_id}")
    return Response(status_code=204)
