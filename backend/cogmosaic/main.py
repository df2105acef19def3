"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that configures
logging, sets up CORS middleware, includes the API routers for mosaics and
tiles, and exposes a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn cogmosaic.main:app --reload

    Or imported and used programmatically:
        >>> from cogmosaic.main import app
        >>> # Use app in ASGI server
"""

import fastapi
from fastapi.middleware import cors

from cogmosaic.api import mosaics, tiles
from cogmosaic.core import config
from cogmosaic.core import logging as mosaic_logging


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Configures the ``cogmosaic`` logger, includes the mosaic and tile
    routers and adds a health check endpoint. CORS origins are configured
    from settings so web map clients on other domains can fetch tiles.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    mosaic_logging.configure_logging(settings.log_level, settings.log_json)

    app = fastapi.FastAPI(title="COG Mosaic", version="0.1.0")

    app.include_router(mosaics.router)
    app.include_router(tiles.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Band-Count", "X-Tile-Width", "X-Tile-Height", "X-Data-Type"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
