"""Overlay rendering with rasterio and rio-tiler.

The overlay manager treats rendering as a collaborator: once a raster has
passed validation and its coordinate system is registered, the renderer
opens it, works out where it sits on the map and hands back a
PreparedOverlay that can draw XYZ tiles until it is released.

RioTilerRenderer keeps the upload in memory (rasterio MemoryFile) and
serves tiles through a rio-tiler Reader, so nothing is written to disk.
Map bounds come from the header's tie-point and pixel scale, transformed
to WGS84 with the registered pyproj CRS; rasters that only carry a
transformation rio-tiler understands fall back to the reader's own
geographic bounds.

Example:
    Prepare an overlay and render one tile:
        >>> renderer = RioTilerRenderer()
        >>> overlay = await renderer.prepare(source, meta, options, crs)
        >>> png = overlay.tile(8, 139, 88)
        >>> overlay.release()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Protocol

import pyproj
import pyproj.exceptions
import rasterio.errors
import rasterio.io
import rio_tiler.errors
from rio_tiler import io as rio_tiler_io

from geoview.core import errors

if TYPE_CHECKING:
    from geoview.db import models as db_models
    from geoview.services import overlay

    BBox = tuple[float, float, float, float]

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"


class PreparedOverlay(Protocol):
    """Decoded raster ready to be drawn on a map surface."""

    bounds: BBox

    def tile(self, x: int, y: int, z: int) -> bytes: ...

    def release(self) -> None: ...


class OverlayRenderer(Protocol):
    """Turns a validated raster into a PreparedOverlay."""

    async def prepare(
        self,
        source: db_models.RasterSource,
        metadata: db_models.RasterMetadata,
        options: overlay.OverlayOptions,
        crs: pyproj.CRS,
    ) -> PreparedOverlay: ...


def compute_bounds(
    metadata: db_models.RasterMetadata,
    crs: pyproj.CRS,
) -> BBox | None:
    """Transform the raster's native bounds to WGS84 longitude/latitude.

    Args:
        metadata: Parsed header with tie-point and pixel-scale tags.
        crs: Registered coordinate system the raster is expressed in.

    Returns:
        (west, south, east, north) in degrees, or None when the header
        has no tie-point/pixel-scale pair to derive bounds from.
    """
    native = metadata.native_bounds
    if native is None:
        return None
    transformer = pyproj.Transformer.from_crs(crs, WGS84, always_xy=True)
    west, south, east, north = transformer.transform_bounds(*native)
    return (west, south, east, north)


class RioTilerOverlay:
    """In-memory raster served through a rio-tiler Reader."""

    def __init__(
        self,
        memfile: rasterio.io.MemoryFile,
        reader: rio_tiler_io.Reader,
        bounds: BBox,
        tilesize: int,
    ) -> None:
        self.bounds = bounds
        self._memfile = memfile
        self._reader = reader
        self._tilesize = tilesize
        self._lock = threading.Lock()
        self._released = False
        self._renders = 0

    @property
    def released(self) -> bool:
        return self._released

    def tile(self, x: int, y: int, z: int) -> bytes:
        """Render one XYZ tile as PNG.

        Raises:
            AttachFailureError: If the overlay was already released.
            TileOutsideBounds: If the tile does not intersect the raster.
        """
        with self._lock:
            if self._released:
                raise errors.AttachFailureError("Overlay has been released")
            self._renders += 1
        try:
            image = self._reader.tile(x, y, z, tilesize=self._tilesize)
        finally:
            with self._lock:
                self._renders -= 1
                close = self._released and self._renders == 0
            if close:
                self._close()
        return image.render(img_format="PNG")

    def release(self) -> None:
        """Mark the overlay released without waiting for tile renders.

        The reader is closed here when idle, otherwise by the last
        in-flight render.
        """
        with self._lock:
            if self._released:
                return
            self._released = True
            close = self._renders == 0
        if close:
            self._close()

    def _close(self) -> None:
        self._reader.close()
        self._memfile.close()


class RioTilerRenderer:
    """Default renderer used by every map surface."""

    async def prepare(
        self,
        source: db_models.RasterSource,
        metadata: db_models.RasterMetadata,
        options: overlay.OverlayOptions,
        crs: pyproj.CRS,
    ) -> RioTilerOverlay:
        """Open the raster off the event loop.

        Raises:
            AttachFailureError: If rasterio cannot open the bytes or the
                bounds cannot be computed.
        """
        return await asyncio.to_thread(
            self._open, source, metadata, options, crs
        )

    def _open(
        self,
        source: db_models.RasterSource,
        metadata: db_models.RasterMetadata,
        options: overlay.OverlayOptions,
        crs: pyproj.CRS,
    ) -> RioTilerOverlay:
        memfile = rasterio.io.MemoryFile(source.data)
        try:
            reader = rio_tiler_io.Reader(input=memfile.name)
        except (
            rasterio.errors.RasterioError,
            rio_tiler.errors.RioTilerError,
            MemoryError,
        ) as exc:
            memfile.close()
            raise errors.AttachFailureError(
                f"Failed to decode raster: {exc}"
            ) from exc

        try:
            bounds = compute_bounds(metadata, crs)
            if bounds is None:
                bounds = tuple(reader.geographic_bounds)  # type: ignore[assignment]
        except (
            pyproj.exceptions.ProjError,
            rio_tiler.errors.RioTilerError,
            rasterio.errors.RasterioError,
        ) as exc:
            reader.close()
            memfile.close()
            raise errors.AttachFailureError(
                f"Failed to compute overlay bounds: {exc}"
            ) from exc

        logger.info("Prepared overlay %s with bounds %s", source.name, bounds)
        return RioTilerOverlay(
            memfile=memfile,
            reader=reader,
            bounds=bounds,  # type: ignore[arg-type]
            tilesize=options.resolution,
        )
