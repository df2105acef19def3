"""Mosaic registration and lookup API endpoints.

A mosaic combines one or more Cloud Optimized GeoTIFFs into a single tile
pyramid. Registering a mosaic reads the catalog of every source, checks that
the sources line up (origin, resolution ladder, tile sizes) and derives the
output band layout. The mosaic is registered even when configuration fails,
so the error stays available to clients.

Example:
    Register an RGB scene with a panchromatic band:
        >>> response = client.post(
        ...     "/api/mosaics",
        ...     json={
        ...         "name": "scene",
        ...         "sources": [
        ...             {"url": "https://host/rgb.tif", "nodata": 0},
        ...             {"url": "https://host/pan.tif"},
        ...         ],
        ...     },
        ... )
        >>> mosaic = response.json()
        >>> # Returns: {"id": "uuid-here", "state": "ready",
        >>> #           "view": {"band_count": 5, "min_zoom": 0, ...}, ...}

    List registered mosaics:
        >>> response = client.get("/api/mosaics")
"""

import dataclasses
import logging
import uuid
from typing import Any

import fastapi
import pydantic

from cogmosaic.core import config, errors
from cogmosaic.mosaic import alignment, catalog, models, registry
from cogmosaic.mosaic import engine as mosaic_engine
from cogmosaic.services import cog_transport, head_info

logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/api/mosaics", tags=["mosaics"])


class SourceRequest(pydantic.BaseModel):
    """One raster source of a mosaic."""

    url: str | None = None
    overviews: list[str] | None = None
    min: float | None = None
    max: float | None = None
    nodata: float | None = None
    bands: list[pydantic.PositiveInt] | None = None

    def to_descriptor(self, normalize: bool) -> models.SourceDescriptor:
        return models.SourceDescriptor(
            url=self.url,
            overviews=tuple(self.overviews) if self.overviews else None,
            min=self.min,
            max=self.max,
            nodata=self.nodata,
            bands=tuple(self.bands) if self.bands else None,
            normalize=normalize,
        )


class MosaicRequest(pydantic.BaseModel):
    """Body of a mosaic registration.

    Attributes:
        name: Human-readable mosaic name.
        sources: Sources in band order; the first one is the baseline.
        normalize: Stretch samples to 8 bit (required for PNG tiles).
        probe_headers: Issue a HEAD request against the first source to
            read the TIFF header length and nominal tile byte count.
    """

    name: str = "mosaic"
    sources: list[SourceRequest] = pydantic.Field(min_length=1)
    normalize: bool = True
    probe_headers: bool = False


def _get_registry() -> registry.MosaicRegistryProtocol:
    """Resolve the mosaic registry dependency.

    Returns:
        MosaicRegistryProtocol implementation (process-wide in-memory store).
    """
    return registry.get_mosaic_registry()


def _get_transport(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> catalog.CatalogTransportProtocol:
    """Resolve the COG transport dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        CatalogTransportProtocol implementation (CogTransport in production).
    """
    return cog_transport.get_transport(settings)


def mosaic_summary(record: registry.MosaicRecord) -> dict[str, Any]:
    """Serialize a registered mosaic for API responses.

    Ready mosaics carry their view description, failed mosaics their error
    message.
    """
    engine = record.engine
    summary: dict[str, Any] = {
        "id": record.id,
        "name": record.name,
        "state": str(engine.state),
        "sources": len(engine.sources),
        "created_at": record.created_at.isoformat(),
    }
    if engine.state is mosaic_engine.MosaicState.READY:
        summary["view"] = dataclasses.asdict(engine.get_view())
    elif engine.state is mosaic_engine.MosaicState.ERROR:
        summary["error"] = str(engine.get_error())
    return summary


async def _catalog_options(
    request: MosaicRequest,
    settings: config.Settings,
) -> models.CatalogOptions:
    first_url = request.sources[0].url
    if not request.probe_headers or not first_url:
        return models.CatalogOptions()

    try:
        info = await head_info.get_head_info(
            first_url,
            token=settings.access_token,
            timeout=settings.http_timeout_seconds,
        )
    except errors.FetchError as exc:
        raise fastapi.HTTPException(status_code=502, detail=str(exc)) from exc

    return models.CatalogOptions(
        header_size=info.header_size,
        tile_byte_count=info.tile_byte_count,
    )


@router.post("", status_code=201)
async def create_mosaic(
    request: MosaicRequest,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    store: registry.MosaicRegistryProtocol = fastapi.Depends(_get_registry),  # noqa: B008
    transport: catalog.CatalogTransportProtocol = fastapi.Depends(_get_transport),  # noqa: B008
) -> dict[str, Any]:
    """Configure and register a mosaic.

    Reads every source catalog concurrently and reconciles the pyramids.
    Configuration failures (unreachable source, unsupported source,
    misaligned sources) do not fail the request: the mosaic is registered
    in the ``error`` state and the response carries the error message.

    Args:
        request: Mosaic sources and options.
        settings: Application settings (injected via FastAPI Depends).
        store: Mosaic registry (injected via FastAPI Depends).
        transport: COG transport (injected via FastAPI Depends).

    Returns:
        Mosaic summary with ``id``, ``state`` and ``view`` or ``error``.

    Raises:
        HTTPException: If the header probe fails (502 status code).

    Example:
        Register a single 16 bit source with an explicit stretch:
            >>> response = client.post(
            ...     "/api/mosaics",
            ...     json={"sources": [
            ...         {"url": "https://host/pan.tif", "min": 100, "max": 2047}
            ...     ]},
            ... )
            >>> # Returns 201: {"id": "...", "state": "ready",
            >>> #               "view": {"band_count": 1, ...}}
    """
    engine = mosaic_engine.MosaicEngine(
        sources=[source.to_descriptor(request.normalize) for source in request.sources],
        transport=transport,
        options=await _catalog_options(request, settings),
        tolerances=alignment.Tolerances.from_settings(settings),
    )
    try:
        await engine.configure()
    except errors.MosaicError:
        # kept on the engine and reported in the summary
        pass

    record = store.add(
        registry.MosaicRecord(id=str(uuid.uuid4()), name=request.name, engine=engine)
    )
    logger.info("Registered mosaic %s (%s)", record.id, engine.state)
    return mosaic_summary(record)


@router.get("")
async def list_mosaics(
    store: registry.MosaicRegistryProtocol = fastapi.Depends(_get_registry),  # noqa: B008
) -> list[dict[str, Any]]:
    """List registered mosaics, newest first.

    Args:
        store: Mosaic registry (injected via FastAPI Depends).

    Returns:
        List of mosaic summaries.
    """
    return [mosaic_summary(record) for record in store.all()]


@router.get("/{mosaic_id}")
async def get_mosaic(
    mosaic_id: str,
    store: registry.MosaicRegistryProtocol = fastapi.Depends(_get_registry),  # noqa: B008
) -> dict[str, Any]:
    """Get one registered mosaic.

    Args:
        mosaic_id: Unique identifier for the mosaic.
        store: Mosaic registry (injected via FastAPI Depends).

    Returns:
        Mosaic summary.

    Raises:
        HTTPException: If the mosaic is not found (404 status code).
    """
    record = store.get(mosaic_id)
    if record is None:
        raise fastapi.HTTPException(
            status_code=404,
            detail="Mosaic not found",
        )

    return mosaic_summary(record)
