"""Export endpoints for the overlay attached to a map surface.

The raster bytes behind the attached overlay are handed to the generator
for the requested format and the result is returned as an attachment so
the browser downloads it under the derived file name.

Example:
    Download MBTiles for zoom 8-12:
        >>> response = client.post(
        ...     "/api/maps/main/exports/mbtiles",
        ...     params={"output_name": "dem", "min_zoom": 8, "max_zoom": 12},
        ... )
        >>> response.headers["content-disposition"]
        'attachment; filename="dem.mbtiles"'
"""

from __future__ import annotations

import asyncio

import fastapi
from fastapi import responses

from geoview.api import maps
from geoview.core import config
from geoview.db import database
from geoview.services import export
from geoview.utils import gdal_helpers

router = fastapi.APIRouter(prefix="/api/maps", tags=["exports"])


@router.post("/{surface_id}/exports/{fmt}")
async def export_overlay(
    surface_id: str,
    fmt: export.ExportFormat,
    output_name: str | None = None,
    min_zoom: int | None = None,
    max_zoom: int | None = None,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(maps._get_repo),  # noqa: B008
) -> responses.Response:
    """Convert the attached raster and return it as a download.

    Options left out fall back to the configured defaults.

    Raises:
        HTTPException: 404 if there is no surface or no attached overlay,
            400 for invalid options, 502 if the tiling tool fails.
    """
    manager = maps._get_manager(surface_id, repo)
    handle = manager.current()
    if handle is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="No GeoTIFF data available for export",
        )

    try:
        options = export.ExportOptions(
            output_name=output_name or settings.default_export_name,
            min_zoom=(
                settings.default_min_zoom if min_zoom is None else min_zoom
            ),
            max_zoom=(
                settings.default_max_zoom if max_zoom is None else max_zoom
            ),
        )
    except ValueError as exc:
        raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        blob = await asyncio.to_thread(
            export.export_raster,
            fmt,
            handle.source.data,
            options,
            settings.export_work_dir,
            handle.bounds,
        )
    except gdal_helpers.CommandError as exc:
        raise fastapi.HTTPException(
            status_code=502,
            detail=f"Export failed: {exc}",
        ) from exc

    return responses.Response(
        content=blob.content,
        media_type=blob.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{blob.filename}"'
        },
    )
