"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from geotrack.main import get_stats, get_store

    snapshot = get_stats().snapshot()
    return {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": snapshot["uptime_seconds"],
        "regions": len(get_store().list_regions()),
    }


@router.get("/stats")
async def stats() -> dict:
    """Ping, transition and attendance counters plus active user counts.

    The ``active_users`` section shows:
    - ``total``: users that sent a ping in the last N seconds
    - ``inside_geofence``: of those, users whose last accepted ping was inside a region
    - ``outside_geofence``: the rest
    - ``window_seconds``: the time window used for "active" calculation
    """
    from geotrack.main import get_stats

    return get_stats().snapshot()


@router.get("/config")
async def get_client_config() -> dict:
    """Configuration endpoint for mobile clients.

    Clients call this on startup to learn the rules their pings are held to.
    """
    from geotrack.main import get_config

    config = get_config()
    rules = config.validation
    return {
        "max_distance_m": rules.max_distance_m,
        "min_accuracy_m": rules.min_accuracy_m,
        "time_window_minutes": rules.time_window_minutes,
        "allow_fallback": rules.allow_fallback,
        "strict_mode": rules.strict_mode,
        "trail_max_gap_minutes": config.trails.max_gap_minutes,
        "timezone": config.attendance.timezone,
        "site_region_id": config.attendance.site_region_id or None,
    }
