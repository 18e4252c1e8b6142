"""End-to-end API flow tests for the overlay viewer.

This module drives the HTTP surface the way the web client does: upload
a GeoTIFF to a map surface, read back the overlay and fitted viewport,
fetch a tile, export the raster in each format, then clear the overlay
and tear the surface down. Failure paths check that each classified
ingestion failure comes back with its own reason tag and leaves the
previous overlay in place.

Uses FastAPI TestClient with dependency overrides for settings and the
surface store; the store's managers use the fake renderer from conftest
and gdal2tiles is replaced by a fake pyramid writer.

See Also:
    - backend/geoview/api/maps.py
    - backend/geoview/api/exports.py
    - backend/geoview/api/tiles.py
"""

from __future__ import annotations

import io
import pathlib
import zipfile
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

import pytest
import rio_tiler.errors
from fastapi import testclient

from geoview import main
from geoview.api import maps
from geoview.core import config
from geoview.db import database
from geoview.services import overlay, tiling

if TYPE_CHECKING:
    import httpx
    from conftest import FakeRenderer


@pytest.fixture
def repo(
    make_manager: Callable[..., overlay.OverlayLayerManager],
) -> database.InMemorySurfaceRepository:
    return database.InMemorySurfaceRepository(make_manager)


@pytest.fixture
def client(
    settings: config.Settings,
    repo: database.InMemorySurfaceRepository,
) -> Iterator[testclient.TestClient]:
    app = main.create_app()
    app.dependency_overrides[config.get_settings] = lambda: settings
    app.dependency_overrides[maps._get_repo] = lambda: repo
    with testclient.TestClient(app) as test_client:
        yield test_client


def _upload(
    client: testclient.TestClient,
    data: bytes,
    filename: str = "dem.tif",
    surface_id: str = "main",
) -> httpx.Response:
    return client.post(
        f"/api/maps/{surface_id}/overlay",
        files={"file": (filename, data, "image/tiff")},
    )


def test_full_overlay_lifecycle(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    """Upload, inspect, tile, clear and delete a surface."""
    response = _upload(client, geotiff())
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "dem"
    assert body["crs"] == "EPSG:4326"
    assert body["opacity"] == 0.8
    assert body["resolution"] == 256
    assert body["bounds"] == pytest.approx([15.0, 45.488, 15.512, 46.0])

    current = client.get("/api/maps/main/overlay")
    assert current.status_code == 200
    assert current.json()["id"] == body["id"]
    assert current.json()["state"] == "attached"

    viewport = client.get("/api/maps/main/viewport")
    assert viewport.json()["bounds"] == pytest.approx(body["bounds"])

    tile = client.get("/tiles/overlay/main/12/2218/1459.png")
    assert tile.status_code == 200
    assert tile.headers["content-type"] == "image/png"
    assert tile.content == b"pngbytes"

    cleared = client.delete("/api/maps/main/overlay")
    assert cleared.json() == {"state": "empty"}
    assert client.get("/api/maps/main/overlay").status_code == 404
    assert client.get("/tiles/overlay/main/1/1/1.png").status_code == 404

    assert client.delete("/api/maps/main").json() == {"removed": True}
    assert client.delete("/api/maps/main").status_code == 404
    assert client.get("/api/maps/main/viewport").status_code == 404


def test_second_upload_replaces_first(
    client: testclient.TestClient,
    renderer: FakeRenderer,
    geotiff: Callable[..., bytes],
) -> None:
    first = _upload(client, geotiff(), "first.tif").json()
    second = _upload(client, geotiff(origin=(10.0, 50.0)), "second.tif")

    assert second.status_code == 200
    assert second.json()["id"] != first["id"]
    assert second.json()["generation"] == 2
    assert renderer.prepared[0].released
    assert client.get("/api/maps/main/overlay").json()["name"] == "second"


def test_rejects_wrong_extension(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    response = _upload(client, geotiff(), "notes.png")
    assert response.status_code == 415


def test_rejects_oversized_upload(
    settings: config.Settings,
    repo: database.InMemorySurfaceRepository,
    geotiff: Callable[..., bytes],
) -> None:
    app = main.create_app()
    small = settings.model_copy(update={"max_upload_size_bytes": 64})
    app.dependency_overrides[config.get_settings] = lambda: small
    app.dependency_overrides[maps._get_repo] = lambda: repo
    client = testclient.TestClient(app)

    response = _upload(client, geotiff())

    assert response.status_code == 413
    assert repo.get("main") is None


def test_corrupt_upload_keeps_previous_overlay(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    good = _upload(client, geotiff()).json()

    response = _upload(client, b"garbage bytes", "broken.tif")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["reason"] == "parse_error"
    assert detail["message"].startswith("Unsupported or corrupt raster file")
    assert client.get("/api/maps/main/overlay").json()["id"] == good["id"]


def test_missing_georeferencing_reports_checks(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    response = _upload(
        client, geotiff(geo_keys=False, tie_point_scale=False), "plain.tif"
    )

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["reason"] == "missing_georeferencing"
    assert "GeoKeyDirectoryTag" in detail["checks"]
    assert client.get("/api/maps/main/overlay").status_code == 404


def test_tile_outside_bounds(
    client: testclient.TestClient,
    renderer: FakeRenderer,
    geotiff: Callable[..., bytes],
) -> None:
    _upload(client, geotiff())

    def outside(x: int, y: int, z: int) -> bytes:
        raise rio_tiler.errors.TileOutsideBounds(f"{z}/{x}/{y}")

    renderer.prepared[0].tile = outside  # type: ignore[method-assign]
    assert client.get("/tiles/overlay/main/0/0/0.png").status_code == 404


def test_export_capabilities_download(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    _upload(client, geotiff())

    response = client.post(
        "/api/maps/main/exports/wms",
        params={"output_name": "dem", "min_zoom": 8, "max_zoom": 12},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    assert response.headers["content-disposition"] == (
        'attachment; filename="dem_wms.xml"'
    )
    assert b"<Name>dem</Name>" in response.content


def test_export_defaults_from_settings(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Omitted options fall back to name "export" and zoom 10-16."""
    zooms: list[tuple[int, int]] = []

    def build(
        source_path: pathlib.Path,
        output_dir: pathlib.Path,
        min_zoom: int,
        max_zoom: int,
    ) -> pathlib.Path:
        zooms.append((min_zoom, max_zoom))
        tile = output_dir / str(min_zoom) / "0" / "0.png"
        tile.parent.mkdir(parents=True)
        tile.write_bytes(b"png")
        return output_dir

    monkeypatch.setattr(tiling, "build_pyramid", build)
    _upload(client, geotiff())

    response = client.post("/api/maps/main/exports/tiles")

    assert response.status_code == 200
    assert response.headers["content-disposition"] == (
        'attachment; filename="export_tiles_10-16.zip"'
    )
    assert zooms == [(10, 16)]
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert archive.namelist() == ["10/0/0.png"]


def test_export_errors(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    assert client.post("/api/maps/nowhere/exports/wmts").status_code == 404

    client.post("/api/maps/main/overlay", files={"file": ("x.tif", b"bad")})
    assert client.post("/api/maps/main/exports/wmts").status_code == 404

    _upload(client, geotiff())
    bad_range = client.post(
        "/api/maps/main/exports/mbtiles",
        params={"min_zoom": 12, "max_zoom": 3},
    )
    assert bad_range.status_code == 400
    assert client.post("/api/maps/main/exports/geojson").status_code == 422


def test_overlay_opacity_on_upload_and_patch(
    client: testclient.TestClient,
    geotiff: Callable[..., bytes],
) -> None:
    response = client.post(
        "/api/maps/main/overlay",
        params={"opacity": 0.4},
        files={"file": ("dem.tif", geotiff(), "image/tiff")},
    )
    assert response.status_code == 200
    assert response.json()["opacity"] == 0.4

    patched = client.patch("/api/maps/main/overlay", params={"opacity": 0.6})
    assert patched.status_code == 200
    assert patched.json()["opacity"] == 0.6
    assert client.get("/api/maps/main/overlay").json()["opacity"] == 0.6

    too_high = client.patch("/api/maps/main/overlay", params={"opacity": 2})
    assert too_high.status_code == 422

    client.delete("/api/maps/main/overlay")
    missing = client.patch("/api/maps/main/overlay", params={"opacity": 0.5})
    assert missing.status_code == 404
