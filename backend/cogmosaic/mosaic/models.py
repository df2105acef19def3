"""Data models shared by the mosaic engine.

This module defines the immutable values passed between the catalog reader,
the alignment reconciler, the fetch orchestrator and the pixel compositor.
Every model is a frozen dataclass: once a mosaic is configured, its
``UnifiedPyramid`` and ``CompositeConfig`` are shared read-only by all tile
loads.

Example:
    Describe a three band source that only reads red, green and blue:
        >>> from cogmosaic.mosaic.models import SourceDescriptor
        >>> source = SourceDescriptor(
        ...     url="https://example.com/scene.tif",
        ...     bands=(5, 3, 2),
        ...     min=100.0,
        ...     max=2047.0,
        ... )

    Describe the full resolution level of that source:
        >>> level = ImageLevel(
        ...     url=source.url,
        ...     image_index=0,
        ...     width=8192,
        ...     height=8192,
        ...     bbox=(0.0, 0.0, 4096.0, 4096.0),
        ...     origin=(0.0, 4096.0),
        ...     resolution=(0.5, -0.5),
        ...     tile_width=256,
        ...     tile_height=256,
        ...     band_count=8,
        ...     bits_per_sample=16,
        ...     sample_format=1,
        ... )
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Literal

BBox = tuple[float, float, float, float]
Point = tuple[float, float]
Size = tuple[int, int]
RenderSize = tuple[float, float]

STATISTICS_MINIMUM = "STATISTICS_MINIMUM"
STATISTICS_MAXIMUM = "STATISTICS_MAXIMUM"


@dataclasses.dataclass(frozen=True)
class SourceDescriptor:
    """Identity and rendering options of one raster source.

    Attributes:
        url: Location of the cloud optimized GeoTIFF.
        blob: In-memory GeoTIFF bytes (reserved, not readable yet).
        overviews: Explicit overview URLs (reserved, not readable yet).
        min: Explicit minimum sample value for the linear stretch.
        max: Explicit maximum sample value for the linear stretch.
        nodata: Nodata override; forces an alpha band when set.
        bands: 1-based band numbers to read, in output order. All bands
            are read when omitted.
        normalize: Stretch samples to 0-255. The source set is normalized
            only when every source enables it.
    """

    url: str | None = None
    blob: bytes | None = None
    overviews: tuple[str, ...] | None = None
    min: float | None = None
    max: float | None = None
    nodata: float | None = None
    bands: tuple[int, ...] | None = None
    normalize: bool = True


@dataclasses.dataclass(frozen=True)
class CatalogOptions:
    """Access hints handed to the catalog transport.

    Attributes:
        headers: Extra HTTP headers (e.g. an ``Authorization`` header).
        header_size: Byte count of the TIFF header to fetch up front.
        tile_byte_count: Nominal byte size of one compressed tile.
    """

    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    header_size: int | None = None
    tile_byte_count: int | None = None


@dataclasses.dataclass(frozen=True)
class ImageLevel:
    """One resolution level (or mask level) of one source's pyramid.

    ``image_index`` is the position of the level as stored in the file,
    0 being the full resolution image.
    """

    url: str
    image_index: int
    width: int
    height: int
    bbox: BBox
    origin: Point
    resolution: Point
    tile_width: int
    tile_height: int
    band_count: int
    bits_per_sample: int
    sample_format: int
    nodata: tuple[float | None, ...] | None = None
    statistics: Mapping[str, str] | None = None
    epsg: int | None = None
    is_mask: bool = False

    @property
    def block_byte_size(self) -> int:
        """Uncompressed byte size of one tile of this level."""
        return (
            self.tile_width
            * self.tile_height
            * self.band_count
            * max(1, self.bits_per_sample // 8)
        )


@dataclasses.dataclass(frozen=True)
class TileCoordinate:
    """Integer coordinate of one tile in the unified pyramid."""

    z: int
    x: int
    y: int

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclasses.dataclass(frozen=True)
class RawTileSample:
    """Undecoded tile bytes of one source, plus how to decode them.

    Attributes:
        data: Band-interleaved-by-pixel sample bytes.
        sample_format: 1 unsigned integer, 2 signed integer, 3 float.
        bits_per_sample: Bit depth of one sample.
        band_count: Samples per pixel stored in ``data``.
        mask: Optional mask bytes, one per pixel, 0 meaning masked out.
        byte_order: numpy byte order character of ``data``.
    """

    data: bytes
    sample_format: int
    bits_per_sample: int
    band_count: int
    mask: bytes | None = None
    byte_order: Literal["<", ">"] = "<"


@dataclasses.dataclass(frozen=True)
class UnifiedPyramid:
    """Reconciled pyramid shared by every source of a mosaic.

    Per-level sequences are ordered coarse to fine. ``levels`` and ``masks``
    hold one list per source, padded at the coarse end with ``None`` so that
    index ``z`` addresses the same level in every source.
    """

    extent: BBox
    origin: Point
    resolutions: tuple[float, ...]
    render_tile_sizes: tuple[RenderSize, ...]
    source_tile_sizes: tuple[Size, ...]
    min_zoom: int
    resolution_factors: tuple[float, ...]
    levels: tuple[tuple[ImageLevel | None, ...], ...]
    masks: tuple[tuple[ImageLevel | None, ...], ...]
    samples_per_pixel: tuple[int, ...]
    projection: str | None = None

    @property
    def max_zoom(self) -> int:
        return len(self.resolutions) - 1

    def tile_size(self, z: int) -> Size:
        """Return the raw source tile size ``(width, height)`` at level z."""
        return self.source_tile_sizes[z]

    def finest_level(self, source_index: int) -> ImageLevel:
        """Return the full resolution level of a source."""
        level = self.levels[source_index][-1]
        if level is None:
            raise ValueError(f"Source {source_index} has no levels")

        return level


@dataclasses.dataclass(frozen=True)
class CompositeConfig:
    """Output band layout derived once per configuration."""

    samples_per_pixel: tuple[int, ...]
    add_alpha: bool
    normalize: bool

    @property
    def band_count(self) -> int:
        return sum(self.samples_per_pixel) + (1 if self.add_alpha else 0)

    @property
    def band_offsets(self) -> tuple[int, ...]:
        """First output band of each source."""
        offsets: list[int] = []
        offset = 0
        for count in self.samples_per_pixel:
            offsets.append(offset)
            offset += count
        return tuple(offsets)


@dataclasses.dataclass(frozen=True)
class ViewDescription:
    """Synchronously readable description consumed by the host framework."""

    extent: BBox
    origin: Point
    resolutions: tuple[float, ...]
    render_tile_sizes: tuple[RenderSize, ...]
    band_count: int
    min_zoom: int
    projection: str | None
    center: Point
    view_resolutions: tuple[float, ...]
    zoom: int = 1
