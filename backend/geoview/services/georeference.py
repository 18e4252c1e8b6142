"""Georeferencing validation over parsed raster metadata.

Real world GeoTIFFs carry their spatial referencing in one of two ways:
a full GeoKey directory naming the coordinate system, or the older
tie-point plus pixel-scale pair that only fixes an affine pixel-to-world
mapping. Both are accepted. The verdict is a tagged union so callers
handle Valid and Invalid explicitly instead of testing a boolean.

Checks run in this order:
    1. Non-positive width or height -> Invalid(DEGENERATE_DIMENSIONS).
       Georeferencing presence never short-circuits this check.
    2. GeoKey directory present -> Valid.
    3. Tie-point and pixel-scale both present -> Valid.
    4. Otherwise -> Invalid(MISSING_GEOREFERENCING).

Example:
    >>> from geoview.services import georeference
    >>> verdict = georeference.validate(meta)
    >>> match verdict:
    ...     case georeference.Valid(method=method):
    ...         print("placed via", method)
    ...     case georeference.Invalid(reason=reason, detail=detail):
    ...         print(reason, detail)
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Literal

from geoview.core import errors

if TYPE_CHECKING:
    from geoview.db import models as db_models

GeoreferenceMethod = Literal["geo_key_directory", "tie_point_pixel_scale"]

CHECK_DIMENSIONS = "positive width and height"
CHECK_GEO_KEYS = "GeoKeyDirectoryTag"
CHECK_TIE_POINT_SCALE = "ModelTiepointTag + ModelPixelScaleTag"


@dataclasses.dataclass(frozen=True)
class Valid:
    """The raster can be placed on a map.

    Attributes:
        method: Which referencing convention made it placeable.
    """

    method: GeoreferenceMethod


@dataclasses.dataclass(frozen=True)
class Invalid:
    """The raster cannot be placed on a map.

    Attributes:
        reason: MISSING_GEOREFERENCING or DEGENERATE_DIMENSIONS.
        detail: Human readable explanation.
        checks: Every check attempted before giving up.
    """

    reason: errors.FailureReason
    detail: str
    checks: tuple[str, ...] = ()


GeoreferenceVerdict = Valid | Invalid


def validate(meta: db_models.RasterMetadata) -> GeoreferenceVerdict:
    """Decide whether raster metadata carries usable georeferencing.

    Args:
        meta: Header facts produced by the metadata reader.

    Returns:
        Valid with the matching convention, or Invalid with a reason and
        the list of checks that were attempted.
    """
    if meta.width <= 0 or meta.height <= 0:
        return Invalid(
            reason=errors.FailureReason.DEGENERATE_DIMENSIONS,
            detail=(
                f"Raster dimensions {meta.width}x{meta.height} "
                "must both be positive"
            ),
            checks=(CHECK_DIMENSIONS,),
        )

    if meta.geo_key_directory:
        return Valid(method="geo_key_directory")

    if meta.tie_points and meta.pixel_scale:
        return Valid(method="tie_point_pixel_scale")

    checks = (CHECK_DIMENSIONS, CHECK_GEO_KEYS, CHECK_TIE_POINT_SCALE)
    return Invalid(
        reason=errors.FailureReason.MISSING_GEOREFERENCING,
        detail="Missing georeferencing information; checked "
        + ", ".join(checks[1:]),
        checks=checks,
    )
