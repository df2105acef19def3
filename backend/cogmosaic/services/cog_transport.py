"""Cloud Optimized GeoTIFF transport backed by rio-tiler and rasterio.

This module implements the catalog transport protocol for local paths and
remote COGs (``https://``, ``s3://``, ``/vsicurl/``...). The full resolution
image is opened with rio-tiler's ``Reader`` and each internal overview with
``rasterio.open(..., overview_level=i)``, so every level reports its own
size, transform and block layout.

Raw tiles are read window by window, clipped to the image and zero padded at
the right and bottom edges, then emitted band-interleaved-by-pixel in little
endian byte order. Datasets with a per-dataset mask (GDAL internal masks)
expose a parallel mask pyramid read with ``read_masks``.

When the catalog options carry no nominal tile byte count, remote reads are
chunked by the uncompressed block size of the full resolution image.

All reads are blocking and run in worker threads.

Example:
    >>> from cogmosaic.core.config import get_settings
    >>> from cogmosaic.services.cog_transport import CogTransport
    >>> transport = CogTransport(get_settings())
    >>> levels = await transport.fetch_catalog(
    ...     "https://example.com/scene_cog.tif",
    ...     models.CatalogOptions(),
    ... )
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any

import numpy as np
import rasterio
import rio_tiler.io as rio_tiler_io
from rasterio import enums as rasterio_enums
from rasterio import windows

from cogmosaic.mosaic import catalog, models
from cogmosaic.mosaic import encoding as mosaic_encoding

if TYPE_CHECKING:
    from cogmosaic.core import config

logger = logging.getLogger(__name__)


def gdal_options(options: models.CatalogOptions) -> dict[str, str]:
    """Translate catalog hints into GDAL configuration options.

    Args:
        options: Catalog access hints.

    Returns:
        Mapping suitable for ``rasterio.Env``.
    """
    gdal_config: dict[str, str] = {}
    if options.headers:
        gdal_config["GDAL_HTTP_HEADERS"] = "\r\n".join(
            f"{name}: {value}" for name, value in options.headers.items()
        )
    if options.header_size:
        gdal_config["GDAL_INGESTED_BYTES_AT_OPEN"] = str(options.header_size)
    if options.tile_byte_count:
        gdal_config["CPL_VSIL_CURL_CHUNK_SIZE"] = str(options.tile_byte_count)
    return gdal_config


def _statistics(dataset: Any) -> dict[str, str] | None:
    tags = dataset.tags(1)
    statistics = {
        key: tags[key]
        for key in (models.STATISTICS_MINIMUM, models.STATISTICS_MAXIMUM)
        if key in tags
    }
    return statistics or None


def _image_level(
    url: str,
    image_index: int,
    dataset: Any,
    full_size: models.Size,
    statistics: dict[str, str] | None,
) -> models.ImageLevel:
    """Describe one opened level of a GeoTIFF."""
    transform = dataset.transform
    if transform.is_identity:
        # no georeferencing: fall back to pixel space
        bbox: models.BBox = (0.0, 0.0, float(dataset.width), float(dataset.height))
        origin: models.Point = (0.0, float(dataset.height))
        resolution: models.Point = (
            full_size[0] / dataset.width,
            full_size[1] / dataset.height,
        )
    else:
        bounds = dataset.bounds
        bbox = (bounds.left, bounds.bottom, bounds.right, bounds.top)
        origin = (transform.c, transform.f)
        resolution = (transform.a, transform.e)

    block_height, block_width = dataset.block_shapes[0]
    encoding = mosaic_encoding.SampleEncoding.from_dtype(dataset.dtypes[0])
    nodata = tuple(dataset.nodatavals)
    return models.ImageLevel(
        url=url,
        image_index=image_index,
        width=dataset.width,
        height=dataset.height,
        bbox=bbox,
        origin=origin,
        resolution=resolution,
        tile_width=block_width,
        tile_height=block_height,
        band_count=dataset.count,
        bits_per_sample=encoding.bits_per_sample,
        sample_format=encoding.sample_format,
        nodata=nodata if any(value is not None for value in nodata) else None,
        statistics=statistics,
        epsg=dataset.crs.to_epsg() if dataset.crs else None,
    )


def _mask_level(level: models.ImageLevel) -> models.ImageLevel:
    return dataclasses.replace(
        level,
        band_count=1,
        bits_per_sample=8,
        sample_format=mosaic_encoding.UNSIGNED_INT,
        nodata=None,
        statistics=None,
        is_mask=True,
    )


def tile_window(
    dataset: Any,
    x: int,
    y: int,
    tile_size: models.Size,
) -> windows.Window | None:
    """Return the window of tile ``x, y`` clipped to the image, if any."""
    width, height = tile_size
    col_off = x * width
    row_off = y * height
    if x < 0 or y < 0 or col_off >= dataset.width or row_off >= dataset.height:
        return None

    return windows.Window(
        col_off,
        row_off,
        min(width, dataset.width - col_off),
        min(height, dataset.height - row_off),
    )


class CogTransport(catalog.CatalogTransportProtocol):
    """Read COG catalogs and tiles with rio-tiler and rasterio."""

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the transport.

        Args:
            settings: Application settings (access token for remote reads).
        """
        self.settings = settings
        self._gdal_options: dict[str, dict[str, str]] = {}

    def _env(self, url: str) -> rasterio.Env:
        return rasterio.Env(**self._gdal_options.get(url, {}))

    @staticmethod
    def _open(level: models.ImageLevel) -> Any:
        if level.image_index == 0:
            return rasterio.open(level.url)

        return rasterio.open(level.url, overview_level=level.image_index - 1)

    def _read_catalog(
        self,
        url: str,
        options: models.CatalogOptions,
    ) -> list[models.ImageLevel]:
        headers = {**self.settings.auth_headers(), **options.headers}
        self._gdal_options[url] = gdal_options(
            dataclasses.replace(options, headers=headers)
        )

        with self._env(url):
            with rio_tiler_io.Reader(input=url) as reader:
                dataset = reader.dataset
                full_size = (dataset.width, dataset.height)
                overview_count = len(dataset.overviews(1))
                has_mask = (
                    rasterio_enums.MaskFlags.per_dataset
                    in dataset.mask_flag_enums[0]
                )
                levels = [
                    _image_level(url, 0, dataset, full_size, _statistics(dataset))
                ]

            for image_index in range(1, overview_count + 1):
                with rasterio.open(url, overview_level=image_index - 1) as overview:
                    levels.append(
                        _image_level(url, image_index, overview, full_size, None)
                    )

        if not options.tile_byte_count:
            # one uncompressed block per request
            self._gdal_options[url].setdefault(
                "CPL_VSIL_CURL_CHUNK_SIZE", str(levels[0].block_byte_size)
            )

        if has_mask:
            levels += [_mask_level(level) for level in levels]

        logger.info(
            "Catalog of %s: %d levels%s",
            url,
            overview_count + 1,
            " with masks" if has_mask else "",
        )
        return levels

    def _read_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> models.RawTileSample:
        width, height = tile_size
        encoding = mosaic_encoding.SampleEncoding.from_tiff(
            level.sample_format,
            level.bits_per_sample,
        )
        data = np.zeros((level.band_count, height, width), dtype=encoding.dtype())
        with self._env(level.url), self._open(level) as dataset:
            window = tile_window(dataset, x, y, tile_size)
            if window is not None:
                block = dataset.read(window=window)
                data[:, : block.shape[1], : block.shape[2]] = block

        interleaved = np.ascontiguousarray(
            np.moveaxis(data, 0, -1),
            dtype=encoding.dtype("<"),
        )
        return models.RawTileSample(
            data=interleaved.tobytes(),
            sample_format=level.sample_format,
            bits_per_sample=level.bits_per_sample,
            band_count=level.band_count,
        )

    def _read_mask(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> bytes:
        width, height = tile_size
        mask = np.zeros((height, width), dtype=np.uint8)
        with self._env(level.url), self._open(level) as dataset:
            window = tile_window(dataset, x, y, tile_size)
            if window is not None:
                block = dataset.read_masks(1, window=window)
                mask[: block.shape[0], : block.shape[1]] = block
        return mask.tobytes()

    async def fetch_catalog(
        self,
        url: str,
        options: models.CatalogOptions,
    ) -> list[models.ImageLevel]:
        return await asyncio.to_thread(self._read_catalog, url, options)

    async def fetch_raw_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> models.RawTileSample:
        return await asyncio.to_thread(self._read_tile, level, x, y, tile_size)

    async def fetch_mask_tile(
        self,
        level: models.ImageLevel,
        x: int,
        y: int,
        tile_size: models.Size,
    ) -> bytes | None:
        return await asyncio.to_thread(self._read_mask, level, x, y, tile_size)


def get_transport(settings: config.Settings) -> catalog.CatalogTransportProtocol:
    """Factory function to create a transport.

    Args:
        settings: Application settings.

    Returns:
        CogTransport instance for production use.
    """
    return CogTransport(settings)
