"""GeoTrack server — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, storage, and API layers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from geotrack.api.attendance import router as attendance_router
from geotrack.api.geofences import router as geofences_router
from geotrack.api.monitoring import router as monitoring_router
from geotrack.api.tracking import router as tracking_router
from geotrack.config import AppConfig, load_config
from geotrack.core.clock import ClockProcessor
from geotrack.core.processor import PingProcessor
from geotrack.core.stats import TrackingStats
from geotrack.storage.memory_store import InMemoryTrackingStore

log = structlog.get_logger()

# Module-level singletons (set during startup)
_ping_processor: PingProcessor | None = None
_clock_processor: ClockProcessor | None = None
_store: InMemoryTrackingStore | None = None
_stats: TrackingStats | None = None
_config: AppConfig | None = None


def get_ping_processor() -> PingProcessor:
    assert _ping_processor is not None, "Server not initialized"
    return _ping_processor


def get_clock_processor() -> ClockProcessor:
    assert _clock_processor is not None, "Server not initialized"
    return _clock_processor


def get_store() -> InMemoryTrackingStore:
    assert _store is not None, "Server not initialized"
    return _store


def get_stats() -> TrackingStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def build_components(config: AppConfig) -> tuple[InMemoryTrackingStore, TrackingStats,
                                                 PingProcessor, ClockProcessor]:
    """Create the store, stats and processors described by ``config``."""
    store = InMemoryTrackingStore()
    stats = TrackingStats(active_window_seconds=config.limits.active_window_seconds)
    ping_processor = PingProcessor(
        store=store,
        stats=stats,
        rules=config.validation.to_rules(),
        thresholds=config.spoofing.to_thresholds(),
        history_size=config.spoofing.history_size,
        max_gap=config.trails.max_gap,
    )
    clock_processor = ClockProcessor(
        store=store,
        stats=stats,
        timezone=config.attendance.timezone,
        site_region_id=config.attendance.site_region_id,
    )
    return store, stats, ping_processor, clock_processor


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=not config.logging.file))

    logger_factory = None
    if config.logging.file:
        logger_factory = structlog.WriteLoggerFactory(file=open(config.logging.file, "a"))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
        logger_factory=logger_factory or structlog.PrintLoggerFactory(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _ping_processor, _clock_processor, _store, _stats, _config

    _config = load_config()
    _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             timezone=_config.attendance.timezone,
             strict_mode=_config.validation.strict_mode)

    _store, _stats, _ping_processor, _clock_processor = build_components(_config)

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port)

    yield

    log.info("server_stopped")


app = FastAPI(
    title="GeoTrack",
    description="Location validation, geofencing, trails and attendance derivation",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(tracking_router)
app.include_router(geofences_router)
app.include_router(attendance_router)
app.include_router(monitoring_router)
