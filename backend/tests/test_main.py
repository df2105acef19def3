"""Tests for the FastAPI main application factory and health checks.

This module validates that:
    - The FastAPI app is correctly instantiated via main.create_app,
    - OpenAPI metadata (title, version) matches the project contract,
    - The mosaic and tile routers are registered,
    - The /health endpoint returns the expected response,
    - The package logger is configured from settings.

See Also:
    - backend/cogmosaic/main.py for the application factory.
"""

from __future__ import annotations

import logging
from typing import cast

from fastapi import testclient

from cogmosaic import main


def test_create_app() -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app()
    assert app is not None
    assert app.title == "COG Mosaic"
    assert app.version == "0.1.0"


def test_health_endpoint() -> None:
    """Test the health check endpoint returns ok status."""
    app = main.create_app()
    client = testclient.TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_routes_registered() -> None:
    """Test that the mosaic and tile routes are exposed."""
    app = main.create_app()
    paths = {cast("str", getattr(route, "path", "")) for route in app.routes}
    assert "/api/mosaics" in paths
    assert "/api/mosaics/{mosaic_id}" in paths
    assert "/tiles/mosaic/{mosaic_id}/{z}/{x}/{y}.bin" in paths
    assert "/tiles/mosaic/{mosaic_id}/{z}/{x}/{y}.png" in paths
    assert "/health" in paths


def test_create_app_configures_logging() -> None:
    """Test that the package logger gets a single handler."""
    main.create_app()
    main.create_app()
    logger = logging.getLogger("cogmosaic")
    assert len(logger.handlers) == 1
    assert logger.propagate is False
