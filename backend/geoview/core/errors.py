"""Failure taxonomy for raster ingestion and overlay attachment.

Every way a submission can fail is named by a FailureReason. Exceptions
raised inside the pipeline carry their reason so the overlay manager can
turn them into a tagged result without inspecting messages, and the HTTP
layer can show distinct guidance for each case.

Example:
    Classify a failure raised by the metadata reader:
        >>> from geoview.core import errors
        >>> try:
        ...     raise errors.ParseError("not a TIFF file")
        ... except errors.OverlayError as exc:
        ...     print(exc.reason, exc)
        parse_error not a TIFF file
"""

import enum


class FailureReason(enum.StrEnum):
    """Tag identifying why a submission did not produce an overlay."""

    PARSE_ERROR = "parse_error"
    MISSING_GEOREFERENCING = "missing_georeferencing"
    DEGENERATE_DIMENSIONS = "degenerate_dimensions"
    REGISTRY_UNAVAILABLE = "registry_unavailable"
    ATTACH_FAILURE = "attach_failure"


GUIDANCE: dict[FailureReason, str] = {
    FailureReason.PARSE_ERROR: "Unsupported or corrupt raster file",
    FailureReason.MISSING_GEOREFERENCING: "No georeferencing found in raster",
    FailureReason.DEGENERATE_DIMENSIONS: "Raster has zero-size dimensions",
    FailureReason.REGISTRY_UNAVAILABLE: (
        "Coordinate system registry is unavailable"
    ),
    FailureReason.ATTACH_FAILURE: "Raster could not be rendered on the map",
}


class OverlayError(RuntimeError):
    """Base class for classified ingestion failures."""

    reason: FailureReason = FailureReason.ATTACH_FAILURE


class ParseError(OverlayError):
    """The byte buffer is not a structurally valid raster container."""

    reason = FailureReason.PARSE_ERROR


class RegistryUnavailableError(OverlayError):
    """The CRS registry host is missing or broken even after repair."""

    reason = FailureReason.REGISTRY_UNAVAILABLE


class AttachFailureError(OverlayError):
    """Overlay preparation failed after the raster passed validation."""

    reason = FailureReason.ATTACH_FAILURE
