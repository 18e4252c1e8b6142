"""Raster header parsing with tifffile.

This module turns the raw bytes of an upload into RasterMetadata. Only the
first image file directory is inspected: tifffile reads tag values lazily
and the pixel strips or tiles are never decoded, so validating a large
GeoTIFF costs a few header reads rather than a full decode.

A buffer that is not a structurally valid TIFF raises ParseError. A valid
TIFF without any georeferencing tags parses fine; deciding whether it can
be placed on a map is the validator's job.

Example:
    Read the header of an uploaded GeoTIFF:
        >>> from geoview.services import raster_metadata
        >>> meta = raster_metadata.read(pathlib.Path("dem.tif").read_bytes())
        >>> meta.width, meta.height, meta.epsg
        (512, 512, 32633)
"""

from __future__ import annotations

import io
import logging
import struct
from typing import TYPE_CHECKING, Any

import tifffile

from geoview.core import errors
from geoview.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

GEO_KEY_DIRECTORY_TAG = "GeoKeyDirectoryTag"
MODEL_TIEPOINT_TAG = "ModelTiepointTag"
MODEL_PIXEL_SCALE_TAG = "ModelPixelScaleTag"


def _tag_value(tags: Any, name: str) -> Any:
    tag = tags.get(name)
    if tag is None:
        return None
    return tag.value


def _as_ints(values: Sequence[Any] | None) -> tuple[int, ...] | None:
    if values is None:
        return None
    return tuple(int(v) for v in values)


def _as_floats(values: Sequence[Any] | None) -> tuple[float, ...] | None:
    if values is None:
        return None
    return tuple(float(v) for v in values)


def _first(value: Any, default: int) -> int:
    """Collapse per-sample tag values (e.g. BitsPerSample) to one int."""
    if value is None:
        return default
    if isinstance(value, tuple | list):
        return int(value[0]) if value else default
    return int(value)


def read(data: bytes) -> db_models.RasterMetadata:
    """Parse structural metadata from raw raster bytes.

    Args:
        data: Complete content of the uploaded file.

    Returns:
        RasterMetadata for the first image in the file.

    Raises:
        ParseError: If the bytes are not a TIFF container, the header is
            corrupt, the image directory is truncated or the file holds
            no image at all.
    """
    if not data:
        raise errors.ParseError("Empty file")

    try:
        with tifffile.TiffFile(io.BytesIO(data)) as tif:
            if not len(tif.pages):
                raise errors.ParseError("File contains no image directory")
            tags = tif.pages[0].tags
            metadata = db_models.RasterMetadata(
                width=_first(_tag_value(tags, "ImageWidth"), 0),
                height=_first(_tag_value(tags, "ImageLength"), 0),
                samples_per_pixel=_first(
                    _tag_value(tags, "SamplesPerPixel"), 1
                ),
                bits_per_sample=_first(_tag_value(tags, "BitsPerSample"), 1),
                sample_format=_first(_tag_value(tags, "SampleFormat"), 1),
                geo_key_directory=_as_ints(
                    _tag_value(tags, GEO_KEY_DIRECTORY_TAG)
                ),
                tie_points=_as_floats(_tag_value(tags, MODEL_TIEPOINT_TAG)),
                pixel_scale=_as_floats(
                    _tag_value(tags, MODEL_PIXEL_SCALE_TAG)
                ),
            )
    except errors.ParseError:
        raise
    except (
        tifffile.TiffFileError,
        ValueError,
        IndexError,
        KeyError,
        struct.error,
        EOFError,
        OSError,
    ) as exc:
        logger.debug("Raster header parse failed: %s", exc)
        raise errors.ParseError(str(exc) or type(exc).__name__) from exc

    logger.debug(
        "Parsed raster header: %sx%s, %s band(s), epsg=%s",
        metadata.width,
        metadata.height,
        metadata.samples_per_pixel,
        metadata.epsg,
    )
    return metadata
