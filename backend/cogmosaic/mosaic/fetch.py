"""Concurrent fan-out of the raw tile requests behind one output tile.

For a tile coordinate the orchestrator requests one data tile per source and
one mask tile per source that has a mask pyramid, all at once, and waits for
every request. The first failure cancels the requests still in flight and
fails the whole tile: partial tiles are never returned.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from cogmosaic.core import errors

if TYPE_CHECKING:
    from collections.abc import Coroutine, Iterable

    from cogmosaic.mosaic import catalog, models

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _first_error(group: BaseExceptionGroup) -> BaseException:
    error: BaseException = group
    while isinstance(error, BaseExceptionGroup):
        error = error.exceptions[0]
    return error


async def gather_all(coroutines: Iterable[Coroutine[Any, Any, T]]) -> list[T]:
    """Run coroutines concurrently and return their results in order.

    Raises:
        The first exception raised by any coroutine; the others are
        cancelled.
    """
    tasks: list[asyncio.Task[T]] = []
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coroutine) for coroutine in coroutines]
    except BaseExceptionGroup as group_error:
        raise _first_error(group_error) from None

    return [task.result() for task in tasks]


async def _fetch_data(
    transport: catalog.CatalogTransportProtocol,
    level: models.ImageLevel,
    coordinate: models.TileCoordinate,
    tile_size: models.Size,
) -> models.RawTileSample:
    try:
        return await transport.fetch_raw_tile(
            level, coordinate.x, coordinate.y, tile_size
        )
    except errors.FetchError:
        raise
    except Exception as exc:
        raise errors.FetchError(
            f"Unable to read tile {coordinate.x}/{coordinate.y} of image "
            f"{level.image_index} in {level.url}: {exc}"
        ) from exc


async def _fetch_mask(
    transport: catalog.CatalogTransportProtocol,
    mask: models.ImageLevel | None,
    coordinate: models.TileCoordinate,
    tile_size: models.Size,
) -> bytes | None:
    if mask is None:
        return None

    try:
        return await transport.fetch_mask_tile(
            mask, coordinate.x, coordinate.y, tile_size
        )
    except errors.FetchError:
        raise
    except Exception as exc:
        raise errors.FetchError(
            f"Unable to read mask tile {coordinate.x}/{coordinate.y} of image "
            f"{mask.image_index} in {mask.url}: {exc}"
        ) from exc


def levels_at(
    pyramid: models.UnifiedPyramid,
    z: int,
) -> list[models.ImageLevel]:
    """Return the level of every source at unified level ``z``.

    Raises:
        CompositionError: if ``z`` is outside the pyramid or a source has no
            level there.
    """
    if not pyramid.min_zoom <= z <= pyramid.max_zoom:
        raise errors.CompositionError(
            f"Level {z} outside of pyramid levels "
            f"{pyramid.min_zoom}..{pyramid.max_zoom}"
        )

    levels: list[models.ImageLevel] = []
    for index, source_levels in enumerate(pyramid.levels):
        level = source_levels[z]
        if level is None:
            raise errors.CompositionError(f"Source {index} has no level {z}")
        levels.append(level)
    return levels


async def fetch_tile_samples(
    pyramid: models.UnifiedPyramid,
    coordinate: models.TileCoordinate,
    transport: catalog.CatalogTransportProtocol,
) -> list[models.RawTileSample]:
    """Fetch the raw tiles of every source for one coordinate.

    Args:
        pyramid: Reconciled pyramid of the mosaic.
        coordinate: Tile to fetch.
        transport: Transport shared by the sources.

    Returns:
        One sample per source, in configuration order, carrying its mask
        bytes when the source has a mask at this level.

    Raises:
        CompositionError: if the level is outside the pyramid.
        FetchError: if any data or mask request fails.
    """
    levels = levels_at(pyramid, coordinate.z)
    masks = [source_masks[coordinate.z] for source_masks in pyramid.masks]
    tile_size = pyramid.tile_size(coordinate.z)

    requests: list[Coroutine[Any, Any, Any]] = [
        _fetch_data(transport, level, coordinate, tile_size) for level in levels
    ]
    # requests after the data requests are for mask data (if any)
    requests += [
        _fetch_mask(transport, mask, coordinate, tile_size) for mask in masks
    ]
    results = await gather_all(requests)

    source_count = len(levels)
    samples: list[models.RawTileSample] = []
    for sample, mask in zip(
        results[:source_count], results[source_count:], strict=True
    ):
        if mask is not None:
            sample = dataclasses.replace(sample, mask=mask)
        samples.append(sample)

    logger.debug(
        "Fetched %d source tiles",
        source_count,
        extra={"tile": str(coordinate)},
    )
    return samples
