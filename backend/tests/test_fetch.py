"""Tests for the concurrent tile fetch orchestrator."""

from __future__ import annotations

import asyncio

import factories
import pytest

from cogmosaic.core import errors
from cogmosaic.mosaic import alignment, catalog, fetch, models


def _pyramid(
    catalogs: list[list[models.ImageLevel]],
) -> models.UnifiedPyramid:
    sources = [models.SourceDescriptor(url=levels[0].url) for levels in catalogs]
    return alignment.reconcile(sources, catalogs, alignment.Tolerances())


def test_gather_all_keeps_order() -> None:
    """Test that results come back in submission order."""

    async def delayed(value: int, delay: float) -> int:
        await asyncio.sleep(delay)
        return value

    result = asyncio.run(
        fetch.gather_all([delayed(1, 0.02), delayed(2, 0.0), delayed(3, 0.01)])
    )
    assert result == [1, 2, 3]


def test_gather_all_cancels_siblings() -> None:
    """Test that the first failure is raised and siblings are cancelled."""
    cancelled: list[bool] = []

    async def slow() -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    async def failing() -> None:
        await asyncio.sleep(0)
        raise errors.FetchError("tile unavailable")

    with pytest.raises(errors.FetchError, match="tile unavailable"):
        asyncio.run(fetch.gather_all([slow(), failing()]))
    assert cancelled == [True]


def test_levels_at_bounds() -> None:
    """Test that levels outside the pyramid are rejected."""
    pyramid = _pyramid(
        [
            factories.make_catalog("mem://a.tif", (1.0, 2.0, 4.0)),
            factories.make_catalog("mem://b.tif", (1.0, 2.0)),
        ]
    )
    assert [level.url for level in fetch.levels_at(pyramid, 2)] == [
        "mem://a.tif",
        "mem://b.tif",
    ]
    for z in (0, 3, -1):
        with pytest.raises(errors.CompositionError, match=f"Level {z} outside"):
            fetch.levels_at(pyramid, z)


def test_fetch_tile_samples_merges_masks() -> None:
    """Test that mask bytes are attached to the matching source sample."""
    rgb = factories.make_catalog("mem://rgb.tif", (1.0, 2.0), band_count=3)
    pan = factories.make_catalog("mem://pan.tif", (1.0, 2.0), masks=True)
    pyramid = _pyramid([rgb, pan])
    transport = catalog.InMemoryCatalogTransport()
    rgb_sample = factories.make_sample([(1, 2, 3)] * 4)
    pan_sample = factories.make_sample([4, 5, 6, 7])
    factories.fill_tiles(transport, rgb, rgb_sample, x=1)
    factories.fill_tiles(transport, pan, pan_sample, x=1)
    transport.add_mask(pan[2], 1, 0, b"\x00\xff\xff\xff")

    samples = asyncio.run(
        fetch.fetch_tile_samples(
            pyramid, models.TileCoordinate(z=1, x=1, y=0), transport
        )
    )

    assert samples[0] == rgb_sample
    assert samples[1].data == pan_sample.data
    assert samples[1].mask == b"\x00\xff\xff\xff"


def test_fetch_tile_samples_missing_tile() -> None:
    """Test that a missing source tile fails the whole tile."""
    levels = factories.make_catalog("mem://a.tif", (1.0,))
    pyramid = _pyramid([levels])
    transport = catalog.InMemoryCatalogTransport()

    with pytest.raises(errors.FetchError, match="No tile 5/5"):
        asyncio.run(
            fetch.fetch_tile_samples(
                pyramid, models.TileCoordinate(z=0, x=5, y=5), transport
            )
        )


def test_fetch_wraps_transport_errors() -> None:
    """Test that unexpected transport errors surface as FetchError."""

    class BrokenTransport(catalog.InMemoryCatalogTransport):
        async def fetch_raw_tile(
            self,
            level: models.ImageLevel,
            x: int,
            y: int,
            tile_size: models.Size,
        ) -> models.RawTileSample:
            raise TimeoutError("read timed out")

    pyramid = _pyramid([factories.make_catalog("mem://a.tif", (1.0,))])
    with pytest.raises(errors.FetchError, match="read timed out"):
        asyncio.run(
            fetch.fetch_tile_samples(
                pyramid, models.TileCoordinate(z=0, x=0, y=0), BrokenTransport()
            )
        )
