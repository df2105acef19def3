"""Reconcile the pyramids of several sources into one tile pyramid.

Sources can only be composited when they share an origin, a resolution
ladder (after scaling by a per-source factor) and a tile layout. The
reconciler validates those conditions and folds every source into a single
immutable ``UnifiedPyramid``. It performs no I/O: the catalogs are fetched
beforehand by the catalog reader.

The first source is the baseline. A later source may have a shallower
pyramid; its levels are aligned with the finest end of the baseline ladder
and ``min_zoom`` records the largest shortfall.

Example:
    >>> from cogmosaic.mosaic import alignment
    >>> pyramid = alignment.reconcile(
    ...     sources=[rgb_source, pan_source],
    ...     catalogs=[rgb_levels, pan_levels],
    ...     tolerances=alignment.Tolerances(),
    ... )
    >>> pyramid.resolutions
    (4.0, 2.0, 1.0)
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from cogmosaic.core import errors
from cogmosaic.mosaic import models

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cogmosaic.core import config


@dataclasses.dataclass(frozen=True)
class Tolerances:
    """Relative tolerances and block size used while reconciling."""

    resolution: float = 0.02
    render_tile_size: float = 0.01
    source_tile_size: float = 0.0
    default_block_size: int = 256

    @classmethod
    def from_settings(cls, settings: config.Settings) -> Tolerances:
        return cls(
            resolution=settings.resolution_tolerance,
            render_tile_size=settings.render_tile_size_tolerance,
            source_tile_size=settings.source_tile_size_tolerance,
            default_block_size=settings.default_block_size,
        )


@dataclasses.dataclass(frozen=True)
class _SourceLadder:
    """One source's levels, coarse first, with derived per-level values."""

    images: tuple[models.ImageLevel, ...]
    masks: tuple[models.ImageLevel, ...]
    resolutions: tuple[float, ...]
    source_tile_sizes: tuple[models.Size, ...]
    render_tile_sizes: tuple[models.RenderSize, ...]


def assert_close(
    expected: object,
    got: object,
    tolerance: float,
    message: str,
) -> None:
    """Compare numbers or nested sequences within a relative tolerance.

    Raises:
        AlignmentError: with ``message`` when lengths differ or any element
            differs by more than ``tolerance * |expected|``.
    """
    if isinstance(expected, (list, tuple)):
        if not isinstance(got, (list, tuple)) or len(expected) != len(got):
            raise errors.AlignmentError(message)
        for expected_item, got_item in zip(expected, got, strict=True):
            assert_close(expected_item, got_item, tolerance, message)
        return

    expected_value = float(expected)  # type: ignore[arg-type]
    got_value = float(got)  # type: ignore[arg-type]
    if abs(expected_value - got_value) > tolerance * abs(expected_value):
        raise errors.AlignmentError(message)


def source_tile_size(
    level: models.ImageLevel,
    default_block_size: int,
) -> models.Size:
    """Return the tile size to request for a level.

    Untiled (strip) layouts report a full-width, short tile; those are
    requested as square blocks of ``default_block_size`` instead.
    """
    width, height = level.tile_width, level.tile_height
    if width != height and height < default_block_size:
        return default_block_size, default_block_size

    return width, height


def render_tile_size(
    tile_size: models.Size,
    resolution: models.Point,
) -> models.RenderSize:
    """Return the tile size at which a level renders visually square."""
    aspect_ratio = resolution[0] / abs(resolution[1])
    return float(tile_size[0]), tile_size[1] / aspect_ratio


def _intersect(first: models.BBox, second: models.BBox) -> models.BBox:
    return (
        max(first[0], second[0]),
        max(first[1], second[1]),
        min(first[2], second[2]),
        min(first[3], second[3]),
    )


def _format(values: Sequence[object]) -> str:
    return ",".join(str(value) for value in values)


def _ladder(
    index: int,
    catalog: Sequence[models.ImageLevel],
    default_block_size: int,
) -> _SourceLadder:
    images = [level for level in catalog if not level.is_mask]
    masks = [level for level in catalog if level.is_mask]
    if not images:
        raise errors.AlignmentError(f"Source {index} has no image levels")
    if masks and len(masks) != len(images):
        raise errors.AlignmentError(
            f"Expected one mask per image for source {index}, "
            f"found {len(masks)} masks and {len(images)} images"
        )

    images.reverse()
    masks.reverse()
    tile_sizes = tuple(source_tile_size(level, default_block_size) for level in images)
    return _SourceLadder(
        images=tuple(images),
        masks=tuple(masks),
        resolutions=tuple(level.resolution[0] for level in images),
        source_tile_sizes=tile_sizes,
        render_tile_sizes=tuple(
            render_tile_size(size, level.resolution)
            for size, level in zip(tile_sizes, images, strict=True)
        ),
    )


def _samples_per_pixel(
    index: int,
    source: models.SourceDescriptor,
    finest: models.ImageLevel,
) -> int:
    if not source.bands:
        return finest.band_count

    for band in source.bands:
        if not 0 < band <= finest.band_count:
            raise errors.AlignmentError(
                f"Band {band} out of range for source {index} "
                f"with {finest.band_count} bands"
            )
    return len(source.bands)


def _projection(ladder: _SourceLadder) -> str | None:
    for level in reversed(ladder.images):
        if level.epsg:
            return f"EPSG:{level.epsg}"

    return None


def reconcile(
    sources: Sequence[models.SourceDescriptor],
    catalogs: Sequence[Sequence[models.ImageLevel]],
    tolerances: Tolerances,
) -> models.UnifiedPyramid:
    """Validate source catalogs and build the unified pyramid.

    Args:
        sources: Source descriptors in configuration order.
        catalogs: Levels of each source as stored (finest first), masks
            flagged with ``is_mask``.
        tolerances: Comparison tolerances and default block size.

    Returns:
        The reconciled, immutable pyramid.

    Raises:
        AlignmentError: if the sources disagree on origin, resolution ladder,
            tile size, mask count or band selection.
    """
    if not sources or len(sources) != len(catalogs):
        raise errors.AlignmentError(
            f"Expected one catalog per source, got {len(catalogs)} catalogs "
            f"for {len(sources)} sources"
        )

    ladders = [
        _ladder(index, catalog, tolerances.default_block_size)
        for index, catalog in enumerate(catalogs)
    ]
    baseline = ladders[0]
    depth = len(baseline.images)

    extent = baseline.images[-1].bbox
    origin = baseline.images[-1].origin
    min_zoom = 0
    factors = [1.0]
    offsets = [0]

    for index, ladder in enumerate(ladders[1:], start=1):
        finest = ladder.images[-1]
        extent = _intersect(extent, finest.bbox)

        if finest.origin != origin:
            raise errors.AlignmentError(
                f"Origin mismatch for source {index}, got "
                f"[{_format(finest.origin)}] but expected [{_format(origin)}]"
            )

        offset = depth - len(ladder.images)
        if offset < 0:
            raise errors.AlignmentError(
                f"Resolution mismatch for source {index}, got "
                f"[{_format(ladder.resolutions)}] but expected "
                f"[{_format(baseline.resolutions)}]"
            )
        min_zoom = max(min_zoom, offset)

        factor = baseline.resolutions[-1] / ladder.resolutions[-1]
        scaled = tuple(resolution * factor for resolution in ladder.resolutions)
        assert_close(
            baseline.resolutions[offset:],
            scaled,
            tolerances.resolution,
            f"Resolution mismatch for source {index}, got [{_format(scaled)}] "
            f"but expected [{_format(baseline.resolutions)}]",
        )
        assert_close(
            baseline.render_tile_sizes[offset:],
            ladder.render_tile_sizes,
            tolerances.render_tile_size,
            f"Tile size mismatch for source {index}, got "
            f"[{_format(ladder.render_tile_sizes)}] but expected "
            f"[{_format(baseline.render_tile_sizes[offset:])}]",
        )
        assert_close(
            baseline.source_tile_sizes[offset:],
            ladder.source_tile_sizes,
            tolerances.source_tile_size,
            f"Tile size mismatch for source {index}, got "
            f"[{_format(ladder.source_tile_sizes)}] but expected "
            f"[{_format(baseline.source_tile_sizes[offset:])}]",
        )
        factors.append(factor)
        offsets.append(offset)

    levels = tuple(
        (None,) * offset + ladder.images
        for offset, ladder in zip(offsets, ladders, strict=True)
    )
    masks = tuple(
        ((None,) * offset + ladder.masks) if ladder.masks else (None,) * depth
        for offset, ladder in zip(offsets, ladders, strict=True)
    )
    samples_per_pixel = tuple(
        _samples_per_pixel(index, source, ladder.images[-1])
        for index, (source, ladder) in enumerate(zip(sources, ladders, strict=True))
    )

    return models.UnifiedPyramid(
        extent=extent,
        origin=origin,
        resolutions=baseline.resolutions,
        render_tile_sizes=baseline.render_tile_sizes,
        source_tile_sizes=baseline.source_tile_sizes,
        min_zoom=min_zoom,
        resolution_factors=tuple(factors),
        levels=levels,
        masks=masks,
        samples_per_pixel=samples_per_pixel,
        projection=_projection(baseline),
    )
