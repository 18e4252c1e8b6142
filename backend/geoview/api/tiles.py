"""XYZ tile endpoint for the overlay attached to a map surface.

Tiles are rendered on demand from the in-memory raster with rio-tiler and
served as PNG in EPSG:3857 tile coordinates, at the overlay's configured
tile size.

Example:
    Use in Leaflet:
        >>> L.tileLayer('/tiles/overlay/main/{z}/{x}/{y}.png', {
        ...     opacity: overlay.opacity,
        ...     tileSize: overlay.resolution,
        ... }).addTo(map);
"""

import fastapi
import rio_tiler.errors
from fastapi import responses

from geoview.api import maps
from geoview.core import errors
from geoview.db import database

router = fastapi.APIRouter(prefix="/tiles", tags=["tiles"])


@router.get("/overlay/{surface_id}/{z}/{x}/{y}.png")
def overlay_tile(
    surface_id: str,
    z: int,
    x: int,
    y: int,
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(maps._get_repo),  # noqa: B008
) -> responses.Response:
    """Render one tile of the surface's overlay.

    Runs in FastAPI's threadpool since rio-tiler reads are blocking.

    Raises:
        HTTPException: 404 if there is no overlay, the tile lies outside
            it, or the overlay was replaced while rendering.
    """
    manager = maps._get_manager(surface_id, repo)
    handle = manager.current()
    if handle is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="No overlay attached",
        )

    try:
        content = handle.tile(x, y, z)
    except rio_tiler.errors.TileOutsideBounds as exc:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Tile outside overlay bounds",
        ) from exc
    except errors.AttachFailureError as exc:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Overlay was replaced",
        ) from exc

    return responses.Response(content=content, media_type="image/png")
