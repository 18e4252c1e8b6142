"""XYZ tile pyramid generation with gdal2tiles.

Both tile based export formats start from the same pyramid: the raster is
written to a scratch directory and cut by ``gdal2tiles.py`` into
``{z}/{x}/{y}.png`` tiles (XYZ row order) for the requested zoom range.
The resampling itself is GDAL's; this module only drives the tool and
walks its output.

Example:
    Cut zoom levels 10 to 12 and list them:
        >>> tiles_dir = build_pyramid(source_path, work_dir / "tiles", 10, 12)
        >>> for z, x, y, path in iter_tiles(tiles_dir):
        ...     print(z, x, y, path.name)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from geoview.utils import gdal_helpers

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


def build_pyramid(
    source_path: pathlib.Path,
    output_dir: pathlib.Path,
    min_zoom: int,
    max_zoom: int,
) -> pathlib.Path:
    """Cut ``source_path`` into an XYZ PNG tile pyramid.

    Args:
        source_path: GeoTIFF on disk.
        output_dir: Directory receiving ``{z}/{x}/{y}.png`` (created).
        min_zoom: Lowest zoom level to render.
        max_zoom: Highest zoom level to render.

    Returns:
        ``output_dir``.

    Raises:
        CommandError: If gdal2tiles fails.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    command = (
        "gdal2tiles.py",
        "--xyz",
        f"--zoom={min_zoom}-{max_zoom}",
        "--webviewer=none",
        "--resampling=average",
        "--processes=1",
        str(source_path),
        str(output_dir),
    )
    gdal_helpers.run_command(command)
    logger.info(
        "Cut %s into zoom %d-%d at %s",
        source_path.name,
        min_zoom,
        max_zoom,
        output_dir,
    )
    return output_dir


def iter_tiles(
    tiles_dir: pathlib.Path,
) -> Iterator[tuple[int, int, int, pathlib.Path]]:
    """Yield ``(z, x, y, path)`` for every PNG tile under ``tiles_dir``.

    Directories or files whose names are not integers are skipped, which
    leaves out anything gdal2tiles writes next to the pyramid.
    """
    for path in sorted(tiles_dir.glob("*/*/*.png")):
        try:
            z = int(path.parent.parent.name)
            x = int(path.parent.name)
            y = int(path.stem)
        except ValueError:
            continue
        yield z, x, y, path
