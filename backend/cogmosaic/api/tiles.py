"""Tile serving endpoints for configured mosaics.

Tiles are addressed in the mosaic's own pyramid: ``z`` is a unified level
index (``min_zoom`` to the finest level, coarse to fine) and ``x``/``y`` are
tile column and row of the source tile grid at that level. Every tile is
composed on demand from the raw tiles of all sources; nothing is cached.

Two encodings are served:

- ``.bin``: the composed band-interleaved-by-pixel buffer as is. Response
  headers describe its layout (band count, tile width and height, data type).
- ``.png``: the composed tile rendered by rio-tiler. The alpha band, when the
  mosaic has one, becomes the PNG mask. Only normalized (8 bit) mosaics can
  be rendered. A single source with more than three bands and no band
  selection renders in natural color.

Example:
    Request a raw tile:
        >>> response = client.get("/tiles/mosaic/abc-123/2/0/0.bin")
        >>> response.headers["X-Band-Count"]
        '5'

    Use the PNG tiles in OpenLayers with the mosaic's view description:
        >>> new TileImage({
        ...     tileGrid: new TileGrid({extent, origin, resolutions, tileSizes}),
        ...     tileUrlFunction: ([z, x, y]) =>
        ...         `/tiles/mosaic/abc-123/${z}/${x}/${y}.png`,
        ... })
"""

from collections.abc import Sequence

import fastapi
import numpy as np
from fastapi import responses
from rio_tiler import models as rio_tiler_models

from cogmosaic.api import mosaics
from cogmosaic.core import errors
from cogmosaic.mosaic import catalog, registry
from cogmosaic.mosaic import engine as mosaic_engine

router = fastapi.APIRouter(prefix="/tiles", tags=["tiles"])

# bands rendered into a PNG: gray or red/green/blue
PNG_CHANNELS = 3


def _get_engine(
    mosaic_id: str,
    store: registry.MosaicRegistryProtocol = fastapi.Depends(mosaics._get_registry),  # noqa: B008
) -> mosaic_engine.MosaicEngine:
    """Resolve the engine of a ready mosaic.

    Args:
        mosaic_id: Unique identifier for the mosaic.
        store: Mosaic registry (injected via FastAPI Depends).

    Returns:
        The mosaic engine.

    Raises:
        HTTPException: If the mosaic is not found (404) or is not ready (409).
    """
    record = store.get(mosaic_id)
    if record is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Mosaic not found",
        )

    if record.engine.state is not mosaic_engine.MosaicState.READY:
        raise fastapi.HTTPException(
            status_code=409,
            detail=f"Mosaic is {record.engine.state}",
        )

    return record.engine


async def _compose(
    engine: mosaic_engine.MosaicEngine,
    z: int,
    x: int,
    y: int,
) -> np.ndarray:
    """Compose a tile, mapping tile errors to HTTP errors."""
    try:
        return await engine.loader(z, x, y)
    except errors.CompositionError as exc:
        raise fastapi.HTTPException(status_code=404, detail=str(exc)) from exc
    except errors.FetchError as exc:
        raise fastapi.HTTPException(status_code=502, detail=str(exc)) from exc


def png_bands(engine: mosaic_engine.MosaicEngine) -> tuple[int, ...] | None:
    """Pick the bands rendered into PNG tiles.

    A single multispectral source without an explicit band selection is
    rendered in natural color; every other mosaic renders its first bands.
    """
    source, *others = engine.sources
    if others or source.bands:
        return None

    return catalog.suggest_bands(engine.composite_config.samples_per_pixel[0])


def render_png(
    data: np.ndarray,
    tile_size: tuple[int, int],
    band_count: int,
    add_alpha: bool,
    bands: Sequence[int] | None = None,
) -> bytes:
    """Render a composed 8 bit tile as PNG.

    Args:
        data: Flat band-interleaved-by-pixel buffer.
        tile_size: Tile ``(width, height)``.
        band_count: Bands per pixel in ``data``, alpha included.
        add_alpha: Whether the last band is alpha.
        bands: 1-based bands to render as red, green and blue. Defaults to
            the first three color bands, or the first one when fewer exist.

    Returns:
        PNG bytes; RGB when three color bands are rendered, gray otherwise.
    """
    width, height = tile_size
    planes = np.moveaxis(data.reshape(height, width, band_count), -1, 0)
    if add_alpha:
        color, alpha = planes[:-1], planes[-1]
    else:
        color, alpha = planes, None

    if bands:
        color = color[[band - 1 for band in bands]]
    else:
        color = color[:PNG_CHANNELS] if len(color) >= PNG_CHANNELS else color[:1]
    mask = np.zeros(color.shape, dtype=bool)
    if alpha is not None:
        mask[:] = alpha == 0

    image = rio_tiler_models.ImageData(np.ma.MaskedArray(color, mask=mask))
    return image.render(img_format="PNG")


@router.get("/mosaic/{mosaic_id}/{z}/{x}/{y}.bin")
async def raw_tile(
    z: int,
    x: int,
    y: int,
    engine: mosaic_engine.MosaicEngine = fastapi.Depends(_get_engine),  # noqa: B008
) -> responses.Response:
    """Serve a composed tile as raw band-interleaved-by-pixel bytes.

    Args:
        z: Unified level index.
        x: Tile column.
        y: Tile row.
        engine: Engine of a ready mosaic (injected via FastAPI Depends).

    Returns:
        ``application/octet-stream`` response with ``X-Band-Count``,
        ``X-Tile-Width``, ``X-Tile-Height`` and ``X-Data-Type`` headers.

    Raises:
        HTTPException: If the mosaic is unknown (404), not ready (409), the
            tile cannot be composed (404) or a source tile cannot be read
            (502).
    """
    data = await _compose(engine, z, x, y)
    width, height = engine.pyramid.tile_size(z)
    return responses.Response(
        content=data.tobytes(),
        media_type="application/octet-stream",
        headers={
            "X-Band-Count": str(engine.composite_config.band_count),
            "X-Tile-Width": str(width),
            "X-Tile-Height": str(height),
            "X-Data-Type": data.dtype.name,
        },
    )


@router.get("/mosaic/{mosaic_id}/{z}/{x}/{y}.png")
async def png_tile(
    z: int,
    x: int,
    y: int,
    engine: mosaic_engine.MosaicEngine = fastapi.Depends(_get_engine),  # noqa: B008
) -> responses.Response:
    """Serve a composed tile rendered as PNG with rio-tiler.

    Args:
        z: Unified level index.
        x: Tile column.
        y: Tile row.
        engine: Engine of a ready mosaic (injected via FastAPI Depends).

    Returns:
        PNG image response. Content-Type is image/png.

    Raises:
        HTTPException: If the mosaic is unknown (404), not ready (409), not
            normalized (422), the tile cannot be composed (404) or a source
            tile cannot be read (502).

    Example:
        Use in MapLibre GL JS for a mosaic whose tiles are 256 px squares:
            >>> map.addSource('scene', {
            ...     type: 'raster',
            ...     tiles: ['http://api/tiles/mosaic/abc-123/{z}/{x}/{y}.png'],
            ...     tileSize: 256
            ... });
    """
    config = engine.composite_config
    if not config.normalize:
        raise fastapi.HTTPException(
            status_code=422,
            detail="Only normalized mosaics can be rendered as PNG",
        )

    data = await _compose(engine, z, x, y)
    return responses.Response(
        content=render_png(
            data,
            engine.pyramid.tile_size(z),
            config.band_count,
            config.add_alpha,
            png_bands(engine),
        ),
        media_type="image/png",
    )
