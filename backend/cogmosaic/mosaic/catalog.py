"""Pyramid catalog reader and the transport interface it relies on.

A transport knows how to reach the bytes of a cloud optimized GeoTIFF: it
lists the image levels stored in the file, and reads raw tiles and mask
tiles of a level. The production transport lives in
``cogmosaic.services.cog_transport``; ``InMemoryCatalogTransport`` serves
tests and local development.

Example:
    Read the catalog of one source:
        >>> from cogmosaic.mosaic import catalog, models
        >>> transport = catalog.InMemoryCatalogTransport()
        >>> transport.add_catalog("mem://scene.tif", levels)
        >>> levels = await catalog.fetch_catalog(
        ...     models.SourceDescriptor(url="mem://scene.tif"),
        ...     models.CatalogOptions(),
        ...     transport,
        ... )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from cogmosaic.core import errors

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cogmosaic.mosaic import models

logger = logging.getLogger(__name__)

TileKey = tuple[str, int, int, int]


class CatalogTransportProtocol(Protocol):
    """Protocol interface for reaching image levels and their tiles.

    Implementations read catalogs once per configuration and tiles on every
    tile request. They own concurrency limits and cancellation of the
    underlying I/O.
    """

    async def fetch_catalog(
        self,
        url: str,
        options: models.CatalogOptions,
    ) -> list[models.ImageLevel]: ...

    async def fetch_raw_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> models.RawTileSample: ...

    async def fetch_mask_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> bytes | None: ...


class InMemoryCatalogTransport(CatalogTransportProtocol):
    """Simple in-memory transport for tests and local development.

    Catalogs and tiles are registered up front; unknown catalogs and tiles
    fail with ``FetchError`` like an unreachable remote file would.
    """

    def __init__(self) -> None:
        """Initialize an empty transport."""
        self._catalogs: dict[str, list[models.ImageLevel]] = {}
        self._tiles: dict[TileKey, models.RawTileSample] = {}
        self._masks: dict[TileKey, bytes] = {}

    @staticmethod
    def _key(level: models.ImageLevel, x: int, y: int) -> TileKey:
        return level.url, level.image_index, x, y

    def add_catalog(self, url: str, levels: Iterable[models.ImageLevel]) -> None:
        """Register the levels of a file, finest first."""
        self._catalogs[url] = list(levels)

    def add_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        sample: models.RawTileSample,
    ) -> None:
        self._tiles[self._key(level, x, y)] = sample

    def add_mask(self, level: models.ImageLevel, x: int, y: int, mask: bytes) -> None:
        self._masks[self._key(level, x, y)] = mask

    async def fetch_catalog(
        self,
        url: str,
        options: models.CatalogOptions,
    ) -> list[models.ImageLevel]:
        try:
            return list(self._catalogs[url])
        except KeyError:
            raise errors.FetchError(f"No catalog found for {url}") from None

    async def fetch_raw_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> models.RawTileSample:
        try:
            return self._tiles[self._key(level, x, y)]
        except KeyError:
            raise errors.FetchError(
                f"No tile {x}/{y} in image {level.image_index} of {level.url}"
            ) from None

    async def fetch_mask_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> bytes | None:
        return self._masks.get(self._key(level, x, y))


async def fetch_catalog(
    source: models.SourceDescriptor,
    options: models.CatalogOptions,
    transport: CatalogTransportProtocol,
) -> list[models.ImageLevel]:
    """Fetch the image levels of one source, finest level first.

    Args:
        source: Source to read.
        options: Header and tile size hints passed to the transport.
        transport: Transport used to reach the file.

    Returns:
        Levels as stored in the file, including mask levels.

    Raises:
        UnsupportedSourceError: if the source is a blob, an explicit
            overview list or has no URL.
        FetchError: if the transport cannot reach or parse the header.
    """
    if source.blob is not None:
        raise errors.UnsupportedSourceError(
            "Reading sources from in-memory blobs is not implemented"
        )
    if source.overviews:
        raise errors.UnsupportedSourceError(
            "Reading sources from explicit overview lists is not implemented"
        )
    if not source.url:
        raise errors.UnsupportedSourceError("Source has no url")

    try:
        levels = await transport.fetch_catalog(source.url, options)
    except errors.MosaicError:
        raise
    except Exception as exc:
        raise errors.FetchError(
            f"Unable to read catalog of {source.url}: {exc}"
        ) from exc

    logger.debug("Read %d image levels from %s", len(levels), source.url)
    return levels


def suggest_bands(band_count: int) -> tuple[int, ...] | None:
    """Suggest a natural color band selection for multispectral imagery.

    Gray and RGB imagery need no selection. Eight band imagery (coastal,
    blue, green, yellow, red, ...) maps to red, green, blue as bands 5, 3, 2;
    other imagery with more than three bands uses the first three, reversed.

    Args:
        band_count: Number of bands in the image.

    Returns:
        1-based band numbers, or None when every band should be read.
    """
    if band_count <= 3:
        return None
    if band_count == 8:
        return 5, 3, 2

    return 3, 2, 1
