"""Builders for catalog levels and raw tiles shared by the test modules.

Levels describe a square 512 x 512 map unit extent with its origin at the
top-left corner ``(0, 512)``; a level at resolution ``r`` is ``512 / r``
pixels wide.
"""

from __future__ import annotations

import dataclasses
from typing import Any

import numpy as np

from cogmosaic.mosaic import catalog, models
from cogmosaic.mosaic import encoding as mosaic_encoding

EXTENT = 512.0


def make_level(
    url: str = "mem://a.tif",
    image_index: int = 0,
    resolution: float = 1.0,
    tile: int = 2,
    **overrides: Any,
) -> models.ImageLevel:
    size = int(EXTENT / resolution)
    values: dict[str, Any] = {
        "url": url,
        "image_index": image_index,
        "width": size,
        "height": size,
        "bbox": (0.0, 0.0, EXTENT, EXTENT),
        "origin": (0.0, EXTENT),
        "resolution": (resolution, -resolution),
        "tile_width": tile,
        "tile_height": tile,
        "band_count": 1,
        "bits_per_sample": 8,
        "sample_format": 1,
        "epsg": 3857,
    }
    values.update(overrides)
    return models.ImageLevel(**values)


def make_catalog(
    url: str = "mem://a.tif",
    resolutions: tuple[float, ...] = (1.0, 2.0, 4.0),
    masks: bool = False,
    **overrides: Any,
) -> list[models.ImageLevel]:
    """Build the levels of one file, finest first, optionally with masks."""
    levels = [
        make_level(url, index, resolution, **overrides)
        for index, resolution in enumerate(resolutions)
    ]
    if masks:
        levels += [
            dataclasses.replace(
                level, band_count=1, bits_per_sample=8, sample_format=1, is_mask=True
            )
            for level in levels
        ]
    return levels


def make_sample(
    values: Any,
    dtype: str = "uint8",
    mask: bytes | None = None,
) -> models.RawTileSample:
    """Encode a ``(pixels, bands)`` array as a little endian raw tile."""
    array = np.asarray(values, dtype=dtype)
    if array.ndim == 1:
        array = array[:, np.newaxis]
    encoding = mosaic_encoding.SampleEncoding.from_dtype(dtype)
    return models.RawTileSample(
        data=array.astype(encoding.dtype("<")).tobytes(),
        sample_format=encoding.sample_format,
        bits_per_sample=encoding.bits_per_sample,
        band_count=array.shape[1],
        mask=mask,
    )


def fill_tiles(
    transport: catalog.InMemoryCatalogTransport,
    levels: list[models.ImageLevel],
    sample: models.RawTileSample,
    x: int = 0,
    y: int = 0,
) -> None:
    """Serve ``sample`` as tile ``x, y`` of every image level."""
    for level in levels:
        if not level.is_mask:
            transport.add_tile(level, x, y, sample)
