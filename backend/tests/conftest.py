"""Shared fixtures: real GeoTIFF bytes and fake overlay collaborators.

GeoTIFFs are written with tifffile so the header parser runs against real
files. The fake renderer stands in for rio-tiler: it derives bounds from
the parsed header and can hold a submission at the rendering step until
the test releases it, which is how supersession races are staged.
"""

from __future__ import annotations

import asyncio
import io
from typing import TYPE_CHECKING, Any

import numpy
import pytest
import tifffile

from geoview.core import config
from geoview.services import crs_registry, overlay

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Callable

    import pyproj

    from geoview.db import models as db_models

GEO_KEY_DIRECTORY = 34735
MODEL_PIXEL_SCALE = 33550
MODEL_TIEPOINT = 33922


def make_geotiff(
    width: int = 512,
    height: int = 512,
    *,
    geo_keys: bool = True,
    tie_point_scale: bool = True,
    epsg: int = 4326,
    origin: tuple[float, float] = (15.0, 46.0),
    pixel_size: float = 0.001,
) -> bytes:
    """Write a single band uint8 GeoTIFF to memory."""
    extratags: list[tuple[int, str, int, Any, bool]] = []
    if geo_keys:
        geographic = epsg == 4326
        directory = (
            1, 1, 0, 2,
            1024, 0, 1, 2 if geographic else 1,
            2048 if geographic else 3072, 0, 1, epsg,
        )  # fmt: skip
        extratags.append(
            (GEO_KEY_DIRECTORY, "H", len(directory), directory, True)
        )
    if tie_point_scale:
        extratags.append(
            (MODEL_PIXEL_SCALE, "d", 3, (pixel_size, pixel_size, 0.0), True)
        )
        extratags.append(
            (
                MODEL_TIEPOINT,
                "d",
                6,
                (0.0, 0.0, 0.0, origin[0], origin[1], 0.0),
                True,
            )
        )
    buffer = io.BytesIO()
    tifffile.imwrite(
        buffer,
        numpy.zeros((height, width), dtype=numpy.uint8),
        extratags=extratags,
    )
    return buffer.getvalue()


class FakeOverlay:
    """Prepared overlay that records whether it was released."""

    def __init__(self, bounds: tuple[float, float, float, float]) -> None:
        self.bounds = bounds
        self.released = False

    def tile(self, x: int, y: int, z: int) -> bytes:
        return b"pngbytes"

    def release(self) -> None:
        self.released = True


class FakeRenderer:
    """Renderer that can park a submission until the test opens its gate.

    Attributes:
        prepared: Every overlay handed out, in order.
        gates: filename -> event awaited before preparing that file.
        entered: filename -> event set once preparation started.
        fail_with: Exception raised instead of preparing, if set.
    """

    def __init__(self) -> None:
        self.prepared: list[FakeOverlay] = []
        self.gates: dict[str | None, asyncio.Event] = {}
        self.entered: dict[str | None, asyncio.Event] = {}
        self.fail_with: Exception | None = None

    async def prepare(
        self,
        source: db_models.RasterSource,
        metadata: db_models.RasterMetadata,
        options: overlay.OverlayOptions,
        crs: pyproj.CRS,
    ) -> FakeOverlay:
        entered = self.entered.get(source.filename)
        if entered is not None:
            entered.set()
        gate = self.gates.get(source.filename)
        if gate is not None:
            await gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        bounds = metadata.native_bounds or (0.0, 0.0, 1.0, 1.0)
        prepared = FakeOverlay(bounds)
        self.prepared.append(prepared)
        return prepared


class FlakySurface(overlay.InMemoryMapSurface):
    """Surface whose attach() fails on demand.

    Attributes:
        broken: Every attach() fails while set.
        failures: Number of upcoming attach() calls that fail.
    """

    def __init__(self) -> None:
        super().__init__()
        self.broken = False
        self.failures = 0

    def attach(self, handle: overlay.OverlayHandle) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("surface rejected overlay")
        if self.broken:
            raise RuntimeError("surface rejected overlay")
        super().attach(handle)


@pytest.fixture
def geotiff() -> Callable[..., bytes]:
    return make_geotiff


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> config.Settings:
    settings = config.Settings(export_work_dir=tmp_path / "exports")
    settings.ensure_directories()
    return settings


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def registry() -> crs_registry.CrsRegistry:
    return crs_registry.CrsRegistry()


@pytest.fixture
def make_manager(
    settings: config.Settings,
    registry: crs_registry.CrsRegistry,
    renderer: FakeRenderer,
) -> Callable[..., overlay.OverlayLayerManager]:
    """Factory for managers wired to the fake renderer."""

    def _make(
        surface: overlay.MapSurface | None = None,
        **kwargs: Any,
    ) -> overlay.OverlayLayerManager:
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("renderer", renderer)
        kwargs.setdefault(
            "crs_definitions",
            crs_registry.definitions_from_settings(settings),
        )
        return overlay.OverlayLayerManager(
            surface=surface or overlay.InMemoryMapSurface(),
            **kwargs,
        )

    return _make


@pytest.fixture
def flaky_surface() -> FlakySurface:
    return FlakySurface()
