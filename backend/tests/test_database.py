"""Tests for the in-memory map surface store.

Validates that InMemorySurfaceRepository creates one manager per surface
id, hands back the same manager on later lookups and releases a
surface's overlay when the surface is removed.

See Also:
    - backend/geoview/db/database.py
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from geoview.db import database
from geoview.db import models as db_models
from geoview.services import overlay


def test_get_or_create_reuses_manager(
    make_manager: Callable[..., overlay.OverlayLayerManager],
) -> None:
    repo = database.InMemorySurfaceRepository(make_manager)
    assert repo.get("main") is None

    manager = repo.get_or_create("main")

    assert repo.get_or_create("main") is manager
    assert repo.get("main") is manager
    assert repo.get_or_create("other") is not manager
    assert sorted(repo.all()) == ["main", "other"]


def test_remove_releases_overlay(
    make_manager: Callable[..., overlay.OverlayLayerManager],
    geotiff: Callable[..., bytes],
) -> None:
    repo = database.InMemorySurfaceRepository(make_manager)
    manager = repo.get_or_create("main")
    result = asyncio.run(manager.submit(db_models.RasterSource(geotiff())))
    assert isinstance(result, overlay.Attached)

    assert repo.remove("main") is True

    assert result.handle.released
    assert manager.current() is None
    assert repo.get("main") is None
    assert repo.remove("main") is False
