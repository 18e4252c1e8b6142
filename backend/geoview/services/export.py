"""Export generators for the validated raster.

Each generator is a function of the raw raster bytes plus ExportOptions
that returns the output bytes and their media type. export_raster() picks
the generator for a format and names the download the way the viewer
always has:

    mbtiles -> {name}.mbtiles                (application/octet-stream)
    tiles   -> {name}_tiles_{min}-{max}.zip  (application/zip)
    wmts    -> {name}_wmts.xml               (application/xml)
    wms     -> {name}_wms.xml                (application/xml)

Generator output is passed through as is.

Example:
    >>> blob = export_raster(
    ...     ExportFormat.WMTS,
    ...     data,
    ...     ExportOptions(output_name="dem", min_zoom=8, max_zoom=12),
    ...     settings.export_work_dir,
    ... )
    >>> blob.filename, blob.media_type
    ('dem_wmts.xml', 'application/xml')
"""

from __future__ import annotations

import dataclasses
import enum
import io
import logging
import pathlib
import sqlite3
import tempfile
import zipfile
from typing import TYPE_CHECKING

from geoview.services import capabilities, tiling

if TYPE_CHECKING:
    from collections.abc import Callable

    BBox = tuple[float, float, float, float]

logger = logging.getLogger(__name__)

MAX_ZOOM_LEVEL = 24


class ExportFormat(enum.StrEnum):
    MBTILES = "mbtiles"
    TILE_DIRECTORY = "tiles"
    WMTS = "wmts"
    WMS = "wms"


@dataclasses.dataclass(frozen=True)
class ExportOptions:
    """Options shared by every export generator.

    Raises:
        ValueError: If the name is blank or the zoom range is not
            ``0 <= min_zoom <= max_zoom <= 24``.
    """

    output_name: str = "export"
    min_zoom: int = 10
    max_zoom: int = 16

    def __post_init__(self) -> None:
        if not self.output_name.strip():
            raise ValueError("output_name must not be empty")
        if not 0 <= self.min_zoom <= self.max_zoom <= MAX_ZOOM_LEVEL:
            raise ValueError(
                f"Invalid zoom range {self.min_zoom}-{self.max_zoom}"
            )


@dataclasses.dataclass(frozen=True)
class ExportBlob:
    content: bytes
    media_type: str
    filename: str


@dataclasses.dataclass(frozen=True)
class _Generated:
    content: bytes
    media_type: str


def derive_filename(fmt: ExportFormat, options: ExportOptions) -> str:
    """Download file name for ``fmt``."""
    name = options.output_name
    match fmt:
        case ExportFormat.MBTILES:
            return f"{name}.mbtiles"
        case ExportFormat.TILE_DIRECTORY:
            return f"{name}_tiles_{options.min_zoom}-{options.max_zoom}.zip"
        case ExportFormat.WMTS:
            return f"{name}_wmts.xml"
        case ExportFormat.WMS:
            return f"{name}_wms.xml"


def _cut_pyramid(
    data: bytes,
    options: ExportOptions,
    scratch: pathlib.Path,
) -> pathlib.Path:
    source_path = scratch / "source.tif"
    source_path.write_bytes(data)
    return tiling.build_pyramid(
        source_path, scratch / "tiles", options.min_zoom, options.max_zoom
    )


def _write_mbtiles(
    tiles_dir: pathlib.Path,
    target: pathlib.Path,
    options: ExportOptions,
    bounds: BBox | None,
) -> None:
    metadata = {
        "name": options.output_name,
        "format": "png",
        "type": "overlay",
        "version": "1.3",
        "minzoom": str(options.min_zoom),
        "maxzoom": str(options.max_zoom),
    }
    if bounds is not None:
        metadata["bounds"] = ",".join(str(v) for v in bounds)

    conn = sqlite3.connect(target)
    try:
        with conn:
            conn.execute("CREATE TABLE metadata (name TEXT, value TEXT)")
            conn.execute(
                "CREATE TABLE tiles (zoom_level INTEGER, tile_column INTEGER,"
                " tile_row INTEGER, tile_data BLOB)"
            )
            conn.execute(
                "CREATE UNIQUE INDEX tile_index ON tiles"
                " (zoom_level, tile_column, tile_row)"
            )
            conn.executemany(
                "INSERT INTO metadata (name, value) VALUES (?, ?)",
                metadata.items(),
            )
            for z, x, y, path in tiling.iter_tiles(tiles_dir):
                # MBTiles rows count from the bottom (TMS).
                conn.execute(
                    "INSERT INTO tiles VALUES (?, ?, ?, ?)",
                    (z, x, (1 << z) - 1 - y, path.read_bytes()),
                )
    finally:
        conn.close()


def generate_mbtiles(
    data: bytes,
    options: ExportOptions,
    work_dir: pathlib.Path,
    bounds: BBox | None = None,
) -> _Generated:
    """Package the tile pyramid as an MBTiles 1.3 SQLite database."""
    with tempfile.TemporaryDirectory(dir=work_dir) as tmp:
        scratch = pathlib.Path(tmp)
        tiles_dir = _cut_pyramid(data, options, scratch)
        target = scratch / "out.mbtiles"
        _write_mbtiles(tiles_dir, target, options, bounds)
        return _Generated(target.read_bytes(), "application/octet-stream")


def generate_tile_directory(
    data: bytes,
    options: ExportOptions,
    work_dir: pathlib.Path,
    bounds: BBox | None = None,
) -> _Generated:
    """Package the tile pyramid as a zip of ``{z}/{x}/{y}.png``."""
    buffer = io.BytesIO()
    with tempfile.TemporaryDirectory(dir=work_dir) as tmp:
        tiles_dir = _cut_pyramid(data, options, pathlib.Path(tmp))
        with zipfile.ZipFile(
            buffer, "w", compression=zipfile.ZIP_DEFLATED
        ) as archive:
            for z, x, y, path in tiling.iter_tiles(tiles_dir):
                archive.write(path, f"{z}/{x}/{y}.png")
    return _Generated(buffer.getvalue(), "application/zip")


def generate_wmts(
    data: bytes,
    options: ExportOptions,
    work_dir: pathlib.Path,
    bounds: BBox | None = None,
) -> _Generated:
    xml = capabilities.wmts_capabilities(
        options.output_name, options.min_zoom, options.max_zoom, bounds
    )
    return _Generated(xml, "application/xml")


def generate_wms(
    data: bytes,
    options: ExportOptions,
    work_dir: pathlib.Path,
    bounds: BBox | None = None,
) -> _Generated:
    xml = capabilities.wms_capabilities(
        options.output_name, options.min_zoom, options.max_zoom, bounds
    )
    return _Generated(xml, "application/xml")


GENERATORS: dict[
    ExportFormat,
    Callable[
        [bytes, ExportOptions, pathlib.Path, BBox | None], _Generated
    ],
] = {
    ExportFormat.MBTILES: generate_mbtiles,
    ExportFormat.TILE_DIRECTORY: generate_tile_directory,
    ExportFormat.WMTS: generate_wmts,
    ExportFormat.WMS: generate_wms,
}


def export_raster(
    fmt: ExportFormat,
    data: bytes,
    options: ExportOptions,
    work_dir: pathlib.Path,
    bounds: BBox | None = None,
) -> ExportBlob:
    """Run the generator for ``fmt`` and name its output.

    Args:
        fmt: Requested export format.
        data: Raw bytes of the validated raster.
        options: Output name and zoom range.
        work_dir: Scratch directory for tiling (must exist).
        bounds: Optional WGS84 extent of the overlay, recorded in metadata.

    Returns:
        ExportBlob with content, media type and download file name.

    Raises:
        CommandError: If the tiling tool fails (tile based formats only).
    """
    generated = GENERATORS[fmt](data, options, work_dir, bounds)
    filename = derive_filename(fmt, options)
    logger.info("Exported %s (%d bytes)", filename, len(generated.content))
    return ExportBlob(
        content=generated.content,
        media_type=generated.media_type,
        filename=filename,
    )
