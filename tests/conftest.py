"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

import geotrack.main as main_module
from geotrack.config import AppConfig


@pytest.fixture
def config():
    config = AppConfig()
    config.logging.level = "warning"
    config.attendance.timezone = "UTC"
    return config


@pytest.fixture(autouse=True)
def _init_server(config):
    """Initialize server singletons for every test."""
    store, stats, ping_processor, clock_processor = main_module.build_components(config)

    # Patch module-level singletons
    main_module._config = config
    main_module._store = store
    main_module._stats = stats
    main_module._ping_processor = ping_processor
    main_module._clock_processor = clock_processor

    yield

    # Cleanup
    main_module._config = None
    main_module._store = None
    main_module._stats = None
    main_module._ping_processor = None
    main_module._clock_processor = None


@pytest.fixture
async def client():
    from geotrack.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
