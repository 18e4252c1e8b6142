"""Data models for uploaded rasters and their structural metadata.

This module defines the records passed between the ingestion stages: the
raw upload (RasterSource), the header facts parsed from it
(RasterMetadata) and the coordinate system entries held by the CRS
registry (CrsDefinition). All of them are immutable; a new upload produces
new records rather than mutating existing ones.

Example:
    Describe a GeoTIFF that uses the tie-point/pixel-scale convention:
        >>> from geoview.db.models import RasterMetadata
        >>> meta = RasterMetadata(
        ...     width=512,
        ...     height=512,
        ...     samples_per_pixel=3,
        ...     bits_per_sample=8,
        ...     sample_format=1,
        ...     geo_key_directory=None,
        ...     tie_points=(0.0, 0.0, 0.0, 15.0, 46.0, 0.0),
        ...     pixel_scale=(0.001, 0.001, 0.0),
        ... )
        >>> meta.native_bounds
        (15.0, 45.488, 15.512, 46.0)
"""

from __future__ import annotations

import dataclasses
import pathlib

BBox = tuple[float, float, float, float]

GT_MODEL_TYPE_GEO_KEY = 1024
PROJECTED_CS_TYPE_GEO_KEY = 3072
GEOGRAPHIC_TYPE_GEO_KEY = 2048
USER_DEFINED_GEO_KEY_VALUE = 32767
MODEL_TYPE_PROJECTED = 1
MODEL_TYPE_GEOGRAPHIC = 2


@dataclasses.dataclass(frozen=True)
class RasterSource:
    """Raw bytes of one uploaded raster file.

    Attributes:
        data: The file content exactly as uploaded.
        filename: Client supplied file name, if any.
    """

    data: bytes
    filename: str | None = None

    @property
    def name(self) -> str:
        """Filename stem used for overlay and export naming."""
        if not self.filename:
            return "raster"
        return pathlib.PurePath(self.filename).stem or "raster"

    def __len__(self) -> int:
        return len(self.data)


@dataclasses.dataclass(frozen=True)
class RasterMetadata:
    """Structural facts read from a raster header.

    Georeferencing tags are kept exactly as stored in the file so the
    validator can decide which referencing convention is present.

    Attributes:
        width: Pixel width (ImageWidth).
        height: Pixel height (ImageLength).
        samples_per_pixel: Number of bands.
        bits_per_sample: Bit depth of the first band.
        sample_format: TIFF SampleFormat code (1 uint, 2 int, 3 float).
        geo_key_directory: Raw GeoKeyDirectoryTag values, None if absent.
        tie_points: Raw ModelTiepointTag values, None if absent.
        pixel_scale: Raw ModelPixelScaleTag values, None if absent.
    """

    width: int
    height: int
    samples_per_pixel: int
    bits_per_sample: int
    sample_format: int
    geo_key_directory: tuple[int, ...] | None
    tie_points: tuple[float, ...] | None
    pixel_scale: tuple[float, ...] | None

    @property
    def epsg(self) -> int | None:
        """EPSG code declared in the geo-key directory, if any.

        GTModelTypeGeoKey selects which CRS key applies. Without a model
        type the projected key wins over the geographic one. User defined
        codes are ignored since they carry no registry entry.
        """
        keys = self.geo_keys()
        candidates = {
            MODEL_TYPE_PROJECTED: (PROJECTED_CS_TYPE_GEO_KEY,),
            MODEL_TYPE_GEOGRAPHIC: (GEOGRAPHIC_TYPE_GEO_KEY,),
        }.get(
            keys.get(GT_MODEL_TYPE_GEO_KEY),
            (PROJECTED_CS_TYPE_GEO_KEY, GEOGRAPHIC_TYPE_GEO_KEY),
        )
        for key_id in candidates:
            value = keys.get(key_id)
            if value is not None and value != USER_DEFINED_GEO_KEY_VALUE:
                return value
        return None

    @property
    def is_projected(self) -> bool:
        """Whether GTModelTypeGeoKey declares a projected model."""
        model_type = self.geo_keys().get(GT_MODEL_TYPE_GEO_KEY)
        return model_type == MODEL_TYPE_PROJECTED

    def geo_keys(self) -> dict[int, int]:
        """Return the short-valued geo keys stored inline in the directory."""
        raw = self.geo_key_directory
        if not raw or len(raw) < 4:
            return {}
        keys: dict[int, int] = {}
        idx = 4
        for _ in range(raw[3]):
            if idx + 3 >= len(raw):
                break
            key_id, location, count, value = raw[idx : idx + 4]
            idx += 4
            if location == 0 and count == 1:
                keys[key_id] = value
        return keys

    @property
    def native_bounds(self) -> BBox | None:
        """Bounding box in the raster's own CRS from tie-point and scale."""
        tie = self.tie_points
        scale = self.pixel_scale
        if not tie or not scale or len(tie) < 6 or len(scale) < 2:
            return None
        i, j, _k, x, y, _z = tie[:6]
        scale_x, scale_y = scale[0], scale[1]
        minx = x - i * scale_x
        maxy = y + j * scale_y
        return (
            minx,
            maxy - self.height * scale_y,
            minx + self.width * scale_x,
            maxy,
        )


@dataclasses.dataclass(frozen=True)
class CrsDefinition:
    """A named coordinate system registered with the CRS registry.

    Attributes:
        code: Authority code, e.g. "EPSG:4326".
        proj4: PROJ string defining the system.
    """

    code: str
    proj4: str
