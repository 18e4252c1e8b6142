"""Overlay layer lifecycle for one map surface.

OverlayLayerManager owns the single overlay shown on a map surface. Each
submit() runs the ingestion pipeline:

    EMPTY --submit--> VALIDATING --valid--> ATTACHING --ok--> ATTACHED

VALIDATING reads the raster header and validates its georeferencing.
ATTACHING registers the coordinate systems, lets the renderer prepare the
overlay, then swaps it onto the surface: the previous overlay is detached
before the new one is attached, so a surface never shows two overlays.
A failure in either stage is reported as a tagged Failed result and
leaves the surface as it was before the submission.

Submissions are ordered by a per-surface generation counter. A newer
submit() supersedes older ones: their work is not interrupted, but after
every await the generation is compared and a stale submission stops,
releases whatever it prepared and returns Superseded without touching the
surface.

Example:
    Show an uploaded GeoTIFF on an in-memory surface:
        >>> manager = create_manager(settings)
        >>> result = await manager.submit(RasterSource(data, "dem.tif"))
        >>> match result:
        ...     case Attached(handle=handle):
        ...         print(handle.bounds)
        ...     case Failed(reason=reason, message=message):
        ...         print(reason, message)
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import uuid
from typing import TYPE_CHECKING, Any, Protocol

from geoview.core import errors
from geoview.services import crs_registry, georeference, raster_metadata
from geoview.services import rendering

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from geoview.core import config
    from geoview.db import models as db_models

    BBox = tuple[float, float, float, float]

logger = logging.getLogger(__name__)

# Rasters georeferenced only by tie-point/pixel-scale are read as lon/lat.
DEFAULT_CRS_CODE = "EPSG:4326"


@dataclasses.dataclass(frozen=True)
class OverlayOptions:
    """Rendering parameters for an overlay.

    Attributes:
        opacity: Overlay opacity between 0 and 1.
        resolution: Tile size in pixels, strictly positive.

    Raises:
        ValueError: If either value is out of range.
    """

    opacity: float = 0.8
    resolution: int = 256

    def __post_init__(self) -> None:
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError(f"opacity must be in [0, 1], got {self.opacity}")
        if isinstance(self.resolution, bool) or not isinstance(
            self.resolution, int
        ):
            raise ValueError("resolution must be an integer")
        if self.resolution <= 0:
            raise ValueError(
                f"resolution must be positive, got {self.resolution}"
            )


class OverlayState(enum.StrEnum):
    EMPTY = "empty"
    VALIDATING = "validating"
    ATTACHING = "attaching"
    ATTACHED = "attached"


@dataclasses.dataclass(eq=False)
class OverlayHandle:
    """An overlay attached to a map surface.

    The handle owns its prepared rendering resource; release() frees it
    and is safe to call more than once.
    """

    id: str
    name: str
    bounds: BBox
    crs_code: str
    options: OverlayOptions
    generation: int
    source: db_models.RasterSource
    overlay: rendering.PreparedOverlay
    released: bool = False

    def tile(self, x: int, y: int, z: int) -> bytes:
        return self.overlay.tile(x, y, z)

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.overlay.release()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "bounds": list(self.bounds),
            "crs": self.crs_code,
            "opacity": self.options.opacity,
            "resolution": self.options.resolution,
            "generation": self.generation,
        }


class MapSurface(Protocol):
    """Map the overlays are drawn on; owns neither base map nor overlay."""

    def attach(self, handle: OverlayHandle) -> None: ...

    def detach(self, handle: OverlayHandle) -> None: ...

    def fit_bounds(self, bounds: BBox) -> None: ...


class InMemoryMapSurface:
    """Surface state kept server side and read back by the web client."""

    def __init__(self) -> None:
        self.attached: list[OverlayHandle] = []
        self.viewport: BBox | None = None

    def attach(self, handle: OverlayHandle) -> None:
        self.attached.append(handle)

    def detach(self, handle: OverlayHandle) -> None:
        if handle in self.attached:
            self.attached.remove(handle)

    def fit_bounds(self, bounds: BBox) -> None:
        self.viewport = bounds


@dataclasses.dataclass(frozen=True)
class Attached:
    handle: OverlayHandle


@dataclasses.dataclass(frozen=True)
class Failed:
    reason: errors.FailureReason
    message: str
    checks: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class Superseded:
    generation: int


SubmitResult = Attached | Failed | Superseded


class OverlayLayerManager:
    """Owns the single overlay of one map surface.

    Args:
        surface: Map surface overlays are attached to.
        registry: Process-wide CRS registry checked before every attach.
        renderer: Collaborator that decodes a validated raster.
        options: Rendering options given to every new overlay.
        crs_definitions: Base definition set registered before attach.
        reader: Header parser, raster_metadata.read unless overridden.
    """

    def __init__(
        self,
        surface: MapSurface,
        registry: crs_registry.CrsRegistry,
        renderer: rendering.OverlayRenderer,
        *,
        options: OverlayOptions | None = None,
        crs_definitions: Iterable[db_models.CrsDefinition] = (),
        reader: Callable[[bytes], db_models.RasterMetadata] = (
            raster_metadata.read
        ),
    ) -> None:
        self.surface = surface
        self._registry = registry
        self._renderer = renderer
        self._options = options or OverlayOptions()
        self._definitions = list(crs_definitions)
        self._reader = reader
        self._generation = 0
        self._state = OverlayState.EMPTY
        self._handle: OverlayHandle | None = None

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def options(self) -> OverlayOptions:
        return self._options

    def current(self) -> OverlayHandle | None:
        return self._handle

    def source(self) -> db_models.RasterSource | None:
        """Raw upload behind the attached overlay, kept for export."""
        return self._handle.source if self._handle else None

    async def submit(
        self,
        source: db_models.RasterSource,
        options: OverlayOptions | None = None,
    ) -> SubmitResult:
        """Turn raw raster bytes into the surface's overlay.

        Supersedes any submission still in flight on this surface. Never
        raises for classified failures; every outcome is a SubmitResult.

        Args:
            source: The uploaded raster.
            options: Rendering options for this overlay only, the
                manager's defaults when omitted.

        Returns:
            Attached with the new handle, Failed with a reason tag and
            message, or Superseded if a newer submission arrived first.
        """
        self._generation += 1
        generation = self._generation
        options = options or self._options
        self._state = OverlayState.VALIDATING
        logger.info(
            "Submission %d: %s (%d bytes)", generation, source.name, len(source)
        )

        try:
            metadata = await asyncio.to_thread(self._reader, source.data)
        except errors.ParseError as exc:
            return self._fail(generation, exc.reason, str(exc))
        if self._is_stale(generation):
            return self._superseded(generation)

        verdict = georeference.validate(metadata)
        if isinstance(verdict, georeference.Invalid):
            return self._fail(
                generation, verdict.reason, verdict.detail, verdict.checks
            )

        self._state = OverlayState.ATTACHING
        if metadata.epsg is None and metadata.is_projected:
            return self._fail(
                generation,
                errors.FailureReason.REGISTRY_UNAVAILABLE,
                "User defined projected coordinate systems are not supported",
            )
        crs_code = (
            f"EPSG:{metadata.epsg}" if metadata.epsg else DEFAULT_CRS_CODE
        )
        try:
            definitions = self._definitions_for(crs_code, metadata)
            await asyncio.to_thread(
                self._registry.ensure_registered, definitions
            )
            crs = self._registry.lookup(crs_code)
        except errors.RegistryUnavailableError as exc:
            return self._fail(generation, exc.reason, str(exc))
        if self._is_stale(generation):
            return self._superseded(generation)

        try:
            prepared = await self._renderer.prepare(
                source, metadata, options, crs
            )
        except errors.OverlayError as exc:
            return self._fail(generation, exc.reason, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Submission %d: renderer crashed", generation)
            return self._fail(
                generation, errors.FailureReason.ATTACH_FAILURE, str(exc)
            )
        if self._is_stale(generation):
            prepared.release()
            return self._superseded(generation)

        handle = OverlayHandle(
            id=str(uuid.uuid4()),
            name=source.name,
            bounds=prepared.bounds,
            crs_code=crs_code,
            options=options,
            generation=generation,
            source=source,
            overlay=prepared,
        )
        return self._swap(handle)

    def set_opacity(self, opacity: float) -> OverlayHandle | None:
        """Change the attached overlay's opacity.

        Returns:
            The updated handle, or None when no overlay is attached.

        Raises:
            ValueError: If opacity is outside [0, 1].
        """
        handle = self._handle
        if handle is not None:
            handle.options = dataclasses.replace(
                handle.options, opacity=opacity
            )
            logger.info("Overlay %s opacity set to %s", handle.id, opacity)
        return handle

    def clear(self) -> None:
        """Detach and release the overlay; in-flight submissions go stale."""
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is not None:
            self.surface.detach(handle)
            handle.release()
            logger.info("Cleared overlay %s", handle.id)
        self._state = OverlayState.EMPTY

    def close(self) -> None:
        """Tear down for a destroyed map surface."""
        self.clear()

    def _definitions_for(
        self,
        crs_code: str,
        metadata: db_models.RasterMetadata,
    ) -> list[db_models.CrsDefinition]:
        definitions = list(self._definitions)
        if metadata.epsg and all(d.code != crs_code for d in definitions):
            definitions.append(crs_registry.definition_for_epsg(metadata.epsg))
        return definitions

    def _swap(self, handle: OverlayHandle) -> SubmitResult:
        # No await from here on: the swap is atomic for the event loop.
        previous = self._handle
        detached = False
        try:
            if previous is not None:
                self.surface.detach(previous)
                detached = True
            self.surface.attach(handle)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Submission %d: attach failed", handle.generation)
            handle.release()
            if detached:
                self._restore(previous)  # type: ignore[arg-type]
            return self._fail(
                handle.generation,
                errors.FailureReason.ATTACH_FAILURE,
                f"Failed to attach overlay: {exc}",
            )

        self._handle = handle
        if previous is not None:
            previous.release()
        self.surface.fit_bounds(handle.bounds)
        self._state = OverlayState.ATTACHED
        logger.info(
            "Submission %d attached as %s", handle.generation, handle.id
        )
        return Attached(handle=handle)

    def _restore(self, previous: OverlayHandle) -> None:
        """Put the prior overlay back after a rejected replacement.

        If the surface refuses it as well, the prior overlay is released
        and the manager drops to EMPTY so it matches the surface.
        """
        try:
            self.surface.attach(previous)
        except Exception:  # noqa: BLE001
            logger.exception("Could not restore overlay %s", previous.id)
            self._handle = None
            previous.release()

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _settle(self) -> None:
        self._state = (
            OverlayState.ATTACHED if self._handle else OverlayState.EMPTY
        )

    def _superseded(self, generation: int) -> Superseded:
        logger.info("Submission %d superseded; result discarded", generation)
        return Superseded(generation=generation)

    def _fail(
        self,
        generation: int,
        reason: errors.FailureReason,
        message: str,
        checks: tuple[str, ...] = (),
    ) -> SubmitResult:
        if self._is_stale(generation):
            return self._superseded(generation)
        logger.warning(
            "Submission %d failed (%s): %s", generation, reason, message
        )
        self._settle()
        return Failed(
            reason=reason,
            message=f"{errors.GUIDANCE[reason]}: {message}",
            checks=checks,
        )


def create_manager(
    settings: config.Settings,
    registry: crs_registry.CrsRegistry | None = None,
    renderer: rendering.OverlayRenderer | None = None,
) -> OverlayLayerManager:
    """Build a manager for a new in-memory map surface from settings."""
    return OverlayLayerManager(
        surface=InMemoryMapSurface(),
        registry=registry or crs_registry.get_registry(),
        renderer=renderer or rendering.RioTilerRenderer(),
        options=OverlayOptions(
            opacity=settings.overlay_opacity,
            resolution=settings.overlay_resolution,
        ),
        crs_definitions=crs_registry.definitions_from_settings(settings),
    )
