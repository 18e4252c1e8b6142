"""Map surface and overlay API endpoints.

This module exposes the overlay lifecycle of a map surface over HTTP. The
web client uploads a GeoTIFF to a surface, the surface's overlay manager
validates it and swaps it onto the map, and the client reads back the
overlay description and fitted viewport to draw it with the tile endpoint.

The upload endpoint is the file-picker collaborator: it enforces the
accepted extensions and the size cap before any bytes reach the overlay
manager. Each classified failure is returned with its own reason tag so
the client can show distinct guidance.

Example:
    Upload a raster to surface "main":
        >>> response = client.post(
        ...     "/api/maps/main/overlay",
        ...     files={"file": ("dem.tif", open("dem.tif", "rb"))},
        ... )
        >>> response.json()["bounds"]
        [15.0, 45.488, 15.512, 46.0]

    A raster without georeferencing:
        >>> response.status_code, response.json()["detail"]["reason"]
        (422, 'missing_georeferencing')
"""

from __future__ import annotations

import dataclasses
import pathlib
from typing import Any

import fastapi

from geoview.core import config
from geoview.db import database
from geoview.db import models as db_models
from geoview.services import overlay

router = fastapi.APIRouter(prefix="/api/maps", tags=["maps"])

CHUNK_SIZE = 1024 * 1024


def _get_repo() -> database.SurfaceRepositoryProtocol:
    """Resolve the surface store dependency."""
    return database.get_surface_repository()


def _get_manager(
    surface_id: str,
    repo: database.SurfaceRepositoryProtocol,
) -> overlay.OverlayLayerManager:
    manager = repo.get(surface_id)
    if manager is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Map surface not found",
        )
    return manager


def _validate_extension(filename: str | None, allowed: list[str]) -> None:
    """Reject uploads whose suffix is not an accepted raster suffix.

    Raises:
        HTTPException: 415 if the suffix is not in ``allowed``.
    """
    suffix = pathlib.PurePath(filename or "").suffix.lower()
    if suffix not in {ext.lower() for ext in allowed}:
        raise fastapi.HTTPException(
            status_code=415,
            detail=f"Please upload a GeoTIFF file ({', '.join(allowed)})",
        )


async def _read_upload(file: fastapi.UploadFile, max_size: int) -> bytes:
    """Read an upload into memory with size validation.

    Raises:
        HTTPException: 413 if the file exceeds ``max_size`` bytes.
    """
    chunks: list[bytes] = []
    size = 0
    while chunk := await file.read(CHUNK_SIZE):
        size += len(chunk)
        if size > max_size:
            raise fastapi.HTTPException(
                status_code=413,
                detail="Upload too large",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/{surface_id}/overlay")
async def submit_overlay(
    surface_id: str,
    file: fastapi.UploadFile,
    opacity: float | None = fastapi.Query(None, ge=0.0, le=1.0),  # noqa: B008
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Upload a raster and make it the surface's overlay.

    Creates the surface on first use. A newer upload to the same surface
    supersedes this one while it is still being processed. ``opacity``
    overrides the configured overlay opacity for this upload.

    Returns:
        The attached overlay description.

    Raises:
        HTTPException: 415 for an unaccepted suffix, 413 for an oversized
            file, 422 with ``{reason, message, checks}`` for a classified
            ingestion failure, 409 if a later upload superseded this one.
    """
    _validate_extension(file.filename, settings.allowed_extensions)
    data = await _read_upload(file, settings.max_upload_size_bytes)

    manager = repo.get_or_create(surface_id)
    options = None
    if opacity is not None:
        options = dataclasses.replace(manager.options, opacity=opacity)
    result = await manager.submit(
        db_models.RasterSource(data=data, filename=file.filename),
        options,
    )

    match result:
        case overlay.Attached(handle=handle):
            return handle.to_dict()
        case overlay.Failed(reason=reason, message=message, checks=checks):
            raise fastapi.HTTPException(
                status_code=422,
                detail={
                    "reason": str(reason),
                    "message": message,
                    "checks": list(checks),
                },
            )
        case overlay.Superseded():
            raise fastapi.HTTPException(
                status_code=409,
                detail="Superseded by a newer upload",
            )


@router.get("/{surface_id}/overlay")
async def get_overlay(
    surface_id: str,
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Describe the overlay currently attached to the surface.

    Raises:
        HTTPException: 404 if the surface or its overlay does not exist.
    """
    manager = _get_manager(surface_id, repo)
    handle = manager.current()
    if handle is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="No overlay attached",
        )
    return {**handle.to_dict(), "state": str(manager.state)}


@router.patch("/{surface_id}/overlay")
async def update_overlay(
    surface_id: str,
    opacity: float = fastapi.Query(..., ge=0.0, le=1.0),  # noqa: B008
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, Any]:
    """Change the opacity of the attached overlay.

    Raises:
        HTTPException: 404 if the surface or its overlay does not exist,
            422 if opacity is outside [0, 1].
    """
    manager = _get_manager(surface_id, repo)
    handle = manager.set_opacity(opacity)
    if handle is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="No overlay attached",
        )
    return {**handle.to_dict(), "state": str(manager.state)}


@router.delete("/{surface_id}/overlay")
async def clear_overlay(
    surface_id: str,
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, str]:
    """Detach and release the surface's overlay."""
    manager = _get_manager(surface_id, repo)
    manager.clear()
    return {"state": str(manager.state)}


@router.get("/{surface_id}/viewport")
async def get_viewport(
    surface_id: str,
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, list[float] | None]:
    """Bounds the map was last fitted to, as [west, south, east, north].

    Use with Leaflet:
        >>> map.fitBounds([[bbox[1], bbox[0]], [bbox[3], bbox[2]]]);
    """
    manager = _get_manager(surface_id, repo)
    viewport = getattr(manager.surface, "viewport", None)
    return {"bounds": list(viewport) if viewport else None}


@router.delete("/{surface_id}")
async def delete_surface(
    surface_id: str,
    repo: database.SurfaceRepositoryProtocol = fastapi.Depends(_get_repo),  # noqa: B008
) -> dict[str, bool]:
    """Tear down a map surface and release its overlay."""
    if not repo.remove(surface_id):
        raise fastapi.HTTPException(
            status_code=404,
            detail="Map surface not found",
        )
    return {"removed": True}
