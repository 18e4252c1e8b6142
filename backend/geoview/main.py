"""FastAPI application entrypoint and configuration.

This module provides the application factory that configures logging,
sets up CORS middleware, includes the map, export and tile routers, and
exposes a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn geoview.main:app --reload

    Or imported and used programmatically:
        >>> from geoview.main import app
        >>> # Use app in ASGI server
"""

import logging

import fastapi
from fastapi.middleware import cors

from geoview.api import exports, maps, tiles
from geoview.core import config


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Applies the configured log level, includes the API routers and adds
    CORS middleware with origins from settings.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = fastapi.FastAPI(title="GeoTIFF Overlay Viewer", version="0.1.0")

    app.include_router(maps.router)
    app.include_router(exports.router)
    app.include_router(tiles.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
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
