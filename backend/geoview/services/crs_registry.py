"""Process-wide coordinate reference system registry.

Overlays in a projected CRS cannot be placed until their coordinate system
is known to the renderer. The registry keeps parsed pyproj.CRS objects on a
host object (ProjHost) and upserts definitions by code, so registering the
same set any number of times, from any number of map surfaces, leaves the
same table behind.

The host is replaceable: unrelated code may swap it out or reset it. Every
ensure_registered() call therefore checks the host before trusting it and,
when it is missing or broken, rebuilds it once from the host factory and
replays every definition registered so far. If that single repair pass does
not produce a working host, RegistryUnavailableError is raised.

Example:
    Register the default systems and look one up:
        >>> from geoview.services import crs_registry
        >>> registry = crs_registry.get_registry()
        >>> registry.ensure_registered(
        ...     crs_registry.definitions_from_settings(settings)
        ... )
        >>> registry.lookup("EPSG:3857").is_projected
        True
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import TYPE_CHECKING

import pyproj
import pyproj.exceptions

from geoview.core import errors
from geoview.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from geoview.core import config

logger = logging.getLogger(__name__)


class ProjHost:
    """Table of parsed coordinate systems keyed by code."""

    def __init__(self) -> None:
        self.defs: dict[str, pyproj.CRS] = {}

    def define(self, code: str, crs: pyproj.CRS) -> None:
        self.defs[code] = crs

    def lookup(self, code: str) -> pyproj.CRS | None:
        return self.defs.get(code)


class CrsRegistry:
    """Idempotent, self-repairing registry of CRS definitions.

    Attributes:
        host: The object currently holding parsed definitions. May be
            replaced or emptied by other code; the registry detects this.
    """

    def __init__(
        self,
        host_factory: Callable[[], ProjHost] = ProjHost,
    ) -> None:
        self._host_factory = host_factory
        self._lock = threading.Lock()
        self._known: dict[str, db_models.CrsDefinition] = {}
        self.host: ProjHost | None = None

    def _host_functional(self) -> bool:
        host = self.host
        if host is None:
            return False
        if not callable(getattr(host, "define", None)):
            return False
        if not callable(getattr(host, "lookup", None)):
            return False
        try:
            return all(host.lookup(code) is not None for code in self._known)
        except Exception:  # noqa: BLE001
            logger.warning("CRS host lookup raised; treating as broken")
            return False

    def _upsert(self, definition: db_models.CrsDefinition) -> None:
        assert self.host is not None
        try:
            crs = pyproj.CRS.from_user_input(definition.proj4)
        except pyproj.exceptions.CRSError as exc:
            raise errors.RegistryUnavailableError(
                f"Invalid definition for {definition.code}: {exc}"
            ) from exc
        self.host.define(definition.code, crs)
        self._known[definition.code] = definition

    def _repair(self) -> None:
        logger.warning(
            "CRS registry host missing or reset; reinitializing %d definitions",
            len(self._known),
        )
        self.host = self._host_factory()
        for definition in list(self._known.values()):
            self._upsert(definition)

    def ensure_registered(
        self,
        defs: Iterable[db_models.CrsDefinition],
    ) -> None:
        """Make sure every definition in ``defs`` is registered.

        Safe to call repeatedly and from several threads. Codes already
        registered with the same PROJ string are left untouched.

        Args:
            defs: Definitions to upsert, keyed by their code.

        Raises:
            RegistryUnavailableError: If the host is still not functional
                after one repair pass, or a definition cannot be parsed.
        """
        wanted = list(defs)
        with self._lock:
            if not self._host_functional():
                self._repair()
                if not self._host_functional():
                    raise errors.RegistryUnavailableError(
                        "CRS registry host is not functional after repair"
                    )

            for definition in wanted:
                if self._known.get(definition.code) == definition:
                    continue
                self._upsert(definition)
                logger.debug("Registered %s", definition.code)

            if not self._host_functional():
                raise errors.RegistryUnavailableError(
                    "CRS registry host lost definitions during registration"
                )

    def is_ready(self) -> bool:
        """Report whether the host is present and holds every known code."""
        with self._lock:
            return bool(self._known) and self._host_functional()

    def lookup(self, code: str) -> pyproj.CRS:
        """Return the registered CRS for ``code``.

        Raises:
            RegistryUnavailableError: If the code is not registered or the
                host no longer resolves it.
        """
        host = self.host
        crs = host.lookup(code) if host is not None else None
        if crs is None:
            raise errors.RegistryUnavailableError(f"{code} is not registered")
        return crs

    def codes(self) -> list[str]:
        """Codes registered so far, in registration order."""
        return list(self._known)


def definitions_from_settings(
    settings: config.Settings,
) -> list[db_models.CrsDefinition]:
    """Build the default definition set from configuration."""
    return [
        db_models.CrsDefinition(code=code, proj4=proj4)
        for code, proj4 in settings.crs_definitions.items()
    ]


def definition_for_epsg(epsg: int) -> db_models.CrsDefinition:
    """Build a definition for an EPSG code from pyproj's database.

    Raises:
        RegistryUnavailableError: If pyproj does not know the code.
    """
    try:
        crs = pyproj.CRS.from_epsg(epsg)
    except pyproj.exceptions.CRSError as exc:
        raise errors.RegistryUnavailableError(
            f"Unknown coordinate system EPSG:{epsg}"
        ) from exc
    return db_models.CrsDefinition(code=f"EPSG:{epsg}", proj4=crs.srs)


@functools.lru_cache
def get_registry() -> CrsRegistry:
    """Return the process-wide registry shared by every map surface."""
    return CrsRegistry()
