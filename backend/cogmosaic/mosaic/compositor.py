"""Compose raw source tiles into one band-interleaved-by-pixel buffer.

Every source writes its selected bands, in configuration order, into its own
contiguous slot of output bands. When the configuration requires alpha, the
last output band holds 0 (transparent) or 255 (opaque).

A source marks a pixel transparent when its first channels (the gray
channel, or red, green and blue) all equal the unrounded stretched value of
a raw 0 sample, or when its mask byte is 0. A pixel is transparent in the
output when any source marks it transparent.

Example:
    >>> from cogmosaic.mosaic import compositor
    >>> buffer = compositor.compose_tile(
    ...     tile_size=(256, 256),
    ...     samples=[sample],
    ...     sources=[source],
    ...     levels=[level],
    ...     finest=[level],
    ...     config=composite_config,
    ... )
    >>> buffer.dtype, buffer.size
    (dtype('uint8'), 65536)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from cogmosaic.core import errors
from cogmosaic.mosaic import encoding as mosaic_encoding
from cogmosaic.mosaic import normalize

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cogmosaic.mosaic import models

logger = logging.getLogger(__name__)

OPAQUE = 255
TRANSPARENT = 0
# channels inspected when deciding transparency (gray or red/green/blue)
ALPHA_CHANNELS = 3


def _pixels(
    index: int,
    sample: models.RawTileSample,
    pixel_count: int,
) -> tuple[mosaic_encoding.SampleEncoding, np.ndarray]:
    """Decode one source's bytes into a ``(pixels, bands)`` array."""
    encoding = mosaic_encoding.resolve_encoding(
        sample.sample_format,
        sample.bits_per_sample,
    )
    view = mosaic_encoding.decode(sample.data, encoding, sample.byte_order)
    needed = pixel_count * sample.band_count
    if view.size < needed:
        raise errors.CompositionError(
            f"Source {index} returned {view.size} samples, "
            f"expected {needed} ({pixel_count} pixels x {sample.band_count} bands)"
        )

    return encoding, view[:needed].reshape(pixel_count, sample.band_count)


def _select_bands(
    index: int,
    pixels: np.ndarray,
    source: models.SourceDescriptor,
    expected: int,
) -> np.ndarray:
    if source.bands:
        band_count = pixels.shape[1]
        if any(not 0 < band <= band_count for band in source.bands):
            raise errors.CompositionError(
                f"Source {index} selects bands {list(source.bands)} "
                f"from a tile with {band_count} bands"
            )
        pixels = pixels[:, [band - 1 for band in source.bands]]

    if pixels.shape[1] != expected:
        raise errors.CompositionError(
            f"Band count mismatch for source {index}, "
            f"got {pixels.shape[1]} but expected {expected}"
        )
    return pixels


def _mask(index: int, mask: bytes, pixel_count: int) -> np.ndarray:
    if len(mask) < pixel_count:
        raise errors.CompositionError(
            f"Mask of source {index} has {len(mask)} bytes, "
            f"expected {pixel_count}"
        )

    return np.frombuffer(mask, dtype=np.uint8, count=pixel_count) == 0


def compose_tile(
    tile_size: models.Size,
    samples: Sequence[models.RawTileSample],
    sources: Sequence[models.SourceDescriptor],
    levels: Sequence[models.ImageLevel | None],
    finest: Sequence[models.ImageLevel],
    config: models.CompositeConfig,
) -> np.ndarray:
    """Compose one output tile.

    Args:
        tile_size: Raw source tile size ``(width, height)`` of the level.
        samples: One raw tile per source, in configuration order.
        sources: Source descriptors in configuration order.
        levels: Level of each source the samples were read from.
        finest: Full resolution level of each source (statistics fallback).
        config: Output band layout.

    Returns:
        Flat array of ``width * height * band_count`` values, ``uint8`` when
        normalizing and ``float32`` otherwise, band-interleaved-by-pixel.

    Raises:
        CompositionError: if a buffer is too short, a band selection does
            not fit the tile or a normalization range is empty.
    """
    if len(samples) != len(sources):
        raise errors.CompositionError(
            f"Expected {len(sources)} source tiles, got {len(samples)}"
        )

    width, height = tile_size
    pixel_count = width * height
    dtype = np.uint8 if config.normalize else np.float32
    data = np.zeros((pixel_count, config.band_count), dtype=dtype)
    transparent = np.zeros(pixel_count, dtype=bool)

    for index, sample in enumerate(samples):
        source = sources[index]
        band_count = config.samples_per_pixel[index]
        encoding, pixels = _pixels(index, sample, pixel_count)
        pixels = _select_bands(index, pixels, source, band_count)

        if config.normalize:
            minimum, maximum = normalize.resolve_range(
                source,
                levels[index],
                finest[index],
                encoding,
            )
            stretch = normalize.Stretch.from_range(minimum, maximum)
            stretched = stretch.scale(pixels)
            values = np.rint(stretched)
            threshold = stretch.transparent
        else:
            stretched = values = pixels
            threshold = 0.0

        offset = config.band_offsets[index]
        data[:, offset : offset + band_count] = values

        if config.add_alpha:
            # compared before rounding so dark samples stay opaque
            channels = stretched[:, : min(band_count, ALPHA_CHANNELS)]
            transparent |= np.all(channels == threshold, axis=1)
            if sample.mask is not None:
                transparent |= _mask(index, sample.mask, pixel_count)

    if config.add_alpha:
        data[:, -1] = np.where(transparent, TRANSPARENT, OPAQUE)

    logger.debug(
        "Composed %dx%d tile with %d bands from %d sources",
        width,
        height,
        config.band_count,
        len(samples),
    )
    return data.reshape(-1)
