"""Per-process store of map surfaces and their overlay managers."""

from __future__ import annotations

import functools
import logging
import threading
from typing import TYPE_CHECKING, Protocol

from geoview.core import config
from geoview.services import overlay

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


class SurfaceRepositoryProtocol(Protocol):
    """Protocol interface for looking up map surfaces by id.

    Each surface id maps to exactly one OverlayLayerManager, which owns
    that surface's overlay for as long as the surface exists.
    """

    def get(self, surface_id: str) -> overlay.OverlayLayerManager | None: ...

    def get_or_create(self, surface_id: str) -> overlay.OverlayLayerManager: ...

    def remove(self, surface_id: str) -> bool: ...

    def all(self) -> Iterable[str]: ...


class InMemorySurfaceRepository(SurfaceRepositoryProtocol):
    """Dictionary backed surface store.

    Surfaces live as long as the process; their overlays hold decoded
    rasters in memory, so a surface is torn down explicitly via remove().
    """

    def __init__(
        self,
        factory: Callable[[], overlay.OverlayLayerManager],
    ) -> None:
        """Initialize an empty store.

        Args:
            factory: Builds the manager for a newly seen surface id.
        """
        self._factory = factory
        self._lock = threading.Lock()
        self._store: dict[str, overlay.OverlayLayerManager] = {}

    def get(self, surface_id: str) -> overlay.OverlayLayerManager | None:
        return self._store.get(surface_id)

    def get_or_create(self, surface_id: str) -> overlay.OverlayLayerManager:
        with self._lock:
            manager = self._store.get(surface_id)
            if manager is None:
                manager = self._factory()
                self._store[surface_id] = manager
                logger.info("Created map surface %s", surface_id)
            return manager

    def remove(self, surface_id: str) -> bool:
        """Tear down a surface, releasing its overlay.

        Returns:
            True if the surface existed.
        """
        with self._lock:
            manager = self._store.pop(surface_id, None)
        if manager is None:
            return False
        manager.close()
        logger.info("Removed map surface %s", surface_id)
        return True

    def all(self) -> Iterable[str]:
        return list(self._store)


@functools.lru_cache
def get_surface_repository() -> SurfaceRepositoryProtocol:
    """Process-wide surface store built from the cached settings."""
    settings = config.get_settings()
    return InMemorySurfaceRepository(
        functools.partial(overlay.create_manager, settings)
    )
