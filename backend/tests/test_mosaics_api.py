"""API endpoint tests for mosaic registration and lookup.

This module provides tests for the /api/mosaics endpoints, covering:
    - Registering ready mosaics and mosaics whose configuration failed,
    - Request validation,
    - Listing and retrieving registered mosaics,
    - The optional HEAD probe feeding catalog options.

The registry and the COG transport are always injected using dependency
overrides; catalogs and tiles come from the in-memory transport.

See Also:
    - backend/cogmosaic/api/mosaics.py for API implementation,
    - backend/cogmosaic/mosaic/registry.py for the registry protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import factories
from fastapi import testclient

from cogmosaic import main
from cogmosaic.api import mosaics
from cogmosaic.core import errors
from cogmosaic.mosaic import catalog, registry
from cogmosaic.services import head_info

if TYPE_CHECKING:
    import pytest


def _client(
    transport: catalog.InMemoryCatalogTransport,
    store: registry.InMemoryMosaicRegistry,
) -> testclient.TestClient:
    app = main.create_app()
    app.dependency_overrides[mosaics._get_registry] = lambda: store
    app.dependency_overrides[mosaics._get_transport] = lambda: transport
    return testclient.TestClient(app)


def _transport() -> catalog.InMemoryCatalogTransport:
    transport = catalog.InMemoryCatalogTransport()
    transport.add_catalog(
        "mem://pan.tif",
        factories.make_catalog("mem://pan.tif", (1.0, 2.0), bits_per_sample=16),
    )
    transport.add_catalog(
        "mem://rgb.tif",
        factories.make_catalog(
            "mem://rgb.tif", (1.0, 2.0), band_count=3, nodata=(0.0, 0.0, 0.0)
        ),
    )
    return transport


def test_create_mosaic_ready() -> None:
    """Test registering a mosaic whose sources line up."""
    store = registry.InMemoryMosaicRegistry()
    client = _client(_transport(), store)

    response = client.post(
        "/api/mosaics",
        json={
            "name": "scene",
            "sources": [
                {"url": "mem://rgb.tif"},
                {"url": "mem://pan.tif", "min": 100, "max": 2047},
            ],
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "scene"
    assert body["state"] == "ready"
    assert body["sources"] == 2
    assert body["view"]["band_count"] == 5
    assert body["view"]["min_zoom"] == 0
    assert body["view"]["resolutions"] == [2.0, 1.0]
    assert body["view"]["projection"] == "EPSG:3857"
    assert "error" not in body
    assert store.get(body["id"]) is not None


def test_create_mosaic_failed_configuration() -> None:
    """Test that a failed configuration is registered in error state."""
    store = registry.InMemoryMosaicRegistry()
    client = _client(_transport(), store)

    response = client.post(
        "/api/mosaics",
        json={"sources": [{"url": "mem://pan.tif"}, {"url": "mem://gone.tif"}]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["state"] == "error"
    assert "mem://gone.tif" in body["error"]
    assert "view" not in body
    record = store.get(body["id"])
    assert record is not None
    assert isinstance(record.engine.get_error(), errors.FetchError)


def test_create_mosaic_unsupported_source() -> None:
    """Test that explicit overview lists are reported as unsupported."""
    client = _client(_transport(), registry.InMemoryMosaicRegistry())

    response = client.post(
        "/api/mosaics",
        json={"sources": [{"overviews": ["mem://ovr1.tif", "mem://ovr2.tif"]}]},
    )

    assert response.status_code == 201
    assert response.json()["state"] == "error"
    assert "overview lists" in response.json()["error"]


def test_create_mosaic_validation() -> None:
    """Test that empty source lists and invalid bands are rejected."""
    client = _client(_transport(), registry.InMemoryMosaicRegistry())

    assert client.post("/api/mosaics", json={"sources": []}).status_code == 422
    response = client.post(
        "/api/mosaics",
        json={"sources": [{"url": "mem://rgb.tif", "bands": [0, 1]}]},
    )
    assert response.status_code == 422


def test_list_and_get_mosaics() -> None:
    """Test listing and retrieving registered mosaics."""
    store = registry.InMemoryMosaicRegistry()
    client = _client(_transport(), store)
    assert client.get("/api/mosaics").json() == []

    first = client.post(
        "/api/mosaics", json={"sources": [{"url": "mem://pan.tif"}]}
    ).json()
    second = client.post(
        "/api/mosaics", json={"sources": [{"url": "mem://rgb.tif"}]}
    ).json()

    listed = client.get("/api/mosaics").json()
    assert {mosaic["id"] for mosaic in listed} == {first["id"], second["id"]}

    response = client.get(f"/api/mosaics/{second['id']}")
    assert response.status_code == 200
    assert response.json()["view"]["band_count"] == 4


def test_get_mosaic_not_found() -> None:
    """Test that unknown mosaics return 404."""
    client = _client(_transport(), registry.InMemoryMosaicRegistry())
    response = client.get("/api/mosaics/missing")
    assert response.status_code == 404
    assert response.json()["detail"] == "Mosaic not found"


def test_probe_headers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that the HEAD probe feeds the catalog options."""
    probed: list[str] = []

    async def fake_head_info(url: str, **kwargs: object) -> head_info.HeadInfo:
        probed.append(url)
        return head_info.HeadInfo(
            header_size=16384,
            tile_byte_count=131072,
            file_size=1048576,
        )

    monkeypatch.setattr(head_info, "get_head_info", fake_head_info)
    store = registry.InMemoryMosaicRegistry()
    client = _client(_transport(), store)

    body = client.post(
        "/api/mosaics",
        json={"sources": [{"url": "mem://pan.tif"}], "probe_headers": True},
    ).json()

    assert probed == ["mem://pan.tif"]
    record = store.get(body["id"])
    assert record is not None
    assert record.engine.options.header_size == 16384
    assert record.engine.options.tile_byte_count == 131072


def test_probe_headers_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that a failed HEAD probe returns 502."""

    async def fake_head_info(url: str, **kwargs: object) -> head_info.HeadInfo:
        raise errors.FetchError(f"Error fetching HEAD url={url}, status=403")

    monkeypatch.setattr(head_info, "get_head_info", fake_head_info)
    client = _client(_transport(), registry.InMemoryMosaicRegistry())

    response = client.post(
        "/api/mosaics",
        json={"sources": [{"url": "mem://pan.tif"}], "probe_headers": True},
    )

    assert response.status_code == 502
    assert "status=403" in response.json()["detail"]
