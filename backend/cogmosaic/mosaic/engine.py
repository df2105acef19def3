"""Mosaic engine: configuration state machine and tile loader.

A ``MosaicEngine`` is built from source descriptors and a transport. Its
``configure`` coroutine reads every source catalog concurrently, reconciles
the pyramids and derives the output band layout. From then on it only
composes tiles; the configuration is never recomputed.

States:
    ``loading`` (catalog fetch) -> ``configuring`` (reconcile) -> ``ready``,
    or ``error`` on any failure. ``error`` is terminal: build a new engine
    to retry.

Example:
    Configure a mosaic and compose a tile:
        >>> from cogmosaic.mosaic import engine, models
        >>> mosaic = engine.MosaicEngine(
        ...     sources=[models.SourceDescriptor(url="https://host/a.tif")],
        ...     transport=transport,
        ... )
        >>> await mosaic.configure()
        >>> view = mosaic.get_view()
        >>> data = await mosaic.loader(view.min_zoom, 0, 0)
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from cogmosaic.core import errors
from cogmosaic.mosaic import alignment, alpha, catalog, compositor, fetch, models

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    import numpy as np

logger = logging.getLogger(__name__)


class MosaicState(enum.StrEnum):
    LOADING = "loading"
    CONFIGURING = "configuring"
    READY = "ready"
    ERROR = "error"


def view_resolutions(resolutions: Sequence[float]) -> tuple[float, ...]:
    """Pad a short resolution ladder so a map view can zoom around it."""
    if len(resolutions) == 1:
        return resolutions[0] * 2, resolutions[0], resolutions[0] / 2
    if len(resolutions) == 2:
        return resolutions[0], resolutions[1], resolutions[1] / 2

    return tuple(resolutions)


class MosaicEngine:
    """Composite several COG sources into one tile pyramid."""

    def __init__(
        self,
        sources: Sequence[models.SourceDescriptor],
        transport: catalog.CatalogTransportProtocol,
        options: models.CatalogOptions | None = None,
        tolerances: alignment.Tolerances | None = None,
    ) -> None:
        """Initialize an engine in the ``loading`` state.

        Args:
            sources: Source descriptors; the first one is the baseline.
            transport: Transport used for catalogs and tiles.
            options: Header and tile size hints for catalog reads.
            tolerances: Alignment tolerances (defaults when omitted).

        Raises:
            ValueError: if no source is given.
        """
        if not sources:
            raise ValueError("A mosaic needs at least one source")

        self.sources = tuple(sources)
        self.transport = transport
        self.options = options or models.CatalogOptions()
        self.tolerances = tolerances or alignment.Tolerances()
        self._state = MosaicState.LOADING
        self._started = False
        self._error: Exception | None = None
        self._pyramid: models.UnifiedPyramid | None = None
        self._config: models.CompositeConfig | None = None
        self._finest: tuple[models.ImageLevel, ...] = ()

    @property
    def state(self) -> MosaicState:
        return self._state

    @property
    def normalize(self) -> bool:
        """Whether the source set is stretched to 8 bit."""
        return all(source.normalize for source in self.sources)

    @property
    def pyramid(self) -> models.UnifiedPyramid:
        self._require_ready()
        assert self._pyramid is not None
        return self._pyramid

    @property
    def composite_config(self) -> models.CompositeConfig:
        self._require_ready()
        assert self._config is not None
        return self._config

    @property
    def loader(self) -> Callable[[int, int, int], Awaitable[np.ndarray]]:
        """Per-tile data loader ``(z, x, y) -> buffer`` for the host."""
        return self.compose_tile

    def get_error(self) -> Exception | None:
        """Return the configuration error once the state is ``error``."""
        return self._error

    def _require_ready(self) -> None:
        if self._state is not MosaicState.READY:
            raise errors.MosaicStateError(
                f"Mosaic is in state '{self._state}', expected 'ready'"
            )

    async def configure(self) -> models.UnifiedPyramid:
        """Read every catalog, reconcile them and enter ``ready``.

        Calling it again returns the same pyramid, or re-raises the stored
        error when configuration failed.

        Returns:
            The unified pyramid.

        Raises:
            UnsupportedSourceError: if a source uses an unsupported transport.
            FetchError: if any catalog cannot be read.
            AlignmentError: if the sources cannot be composited.
            MosaicStateError: if configuration is already in progress.
        """
        if self._state is MosaicState.READY:
            return self.pyramid
        if self._state is MosaicState.ERROR:
            assert self._error is not None
            raise self._error
        if self._started:
            raise errors.MosaicStateError("Mosaic configuration already running")

        self._started = True
        try:
            catalogs = await fetch.gather_all(
                catalog.fetch_catalog(source, self.options, self.transport)
                for source in self.sources
            )
            self._state = MosaicState.CONFIGURING
            pyramid = alignment.reconcile(self.sources, catalogs, self.tolerances)
            config = models.CompositeConfig(
                samples_per_pixel=pyramid.samples_per_pixel,
                add_alpha=alpha.requires_alpha(self.sources, pyramid),
                normalize=self.normalize,
            )
        except Exception as exc:
            logger.error("Mosaic configuration failed: %s", exc)
            self._error = exc
            self._state = MosaicState.ERROR
            raise

        self._pyramid = pyramid
        self._config = config
        self._finest = tuple(
            pyramid.finest_level(index) for index in range(len(self.sources))
        )
        self._state = MosaicState.READY
        logger.info(
            "Mosaic ready: %d sources, %d levels, %d bands%s",
            len(self.sources),
            len(pyramid.resolutions),
            config.band_count,
            " with alpha" if config.add_alpha else "",
        )
        return pyramid

    async def compose_tile(self, z: int, x: int, y: int) -> np.ndarray:
        """Fetch and compose one tile of the unified pyramid.

        Failures are scoped to the tile: the engine stays ``ready``.

        Returns:
            Flat band-interleaved-by-pixel buffer (see
            ``compositor.compose_tile``).

        Raises:
            MosaicStateError: if the engine is not ``ready``.
            FetchError: if a source tile cannot be read.
            CompositionError: if the tile cannot be composed.
        """
        pyramid = self.pyramid
        config = self.composite_config
        coordinate = models.TileCoordinate(z=z, x=x, y=y)
        try:
            samples = await fetch.fetch_tile_samples(
                pyramid, coordinate, self.transport
            )
            return compositor.compose_tile(
                pyramid.tile_size(z),
                samples,
                self.sources,
                fetch.levels_at(pyramid, z),
                self._finest,
                config,
            )
        except errors.MosaicError as exc:
            logger.warning("Tile failed: %s", exc, extra={"tile": str(coordinate)})
            raise

    def get_view(self) -> models.ViewDescription:
        """Describe the configured pyramid for the host map view.

        Raises:
            MosaicStateError: if the engine is not ``ready``.
        """
        pyramid = self.pyramid
        extent = pyramid.extent
        return models.ViewDescription(
            extent=extent,
            origin=pyramid.origin,
            resolutions=pyramid.resolutions,
            render_tile_sizes=pyramid.render_tile_sizes,
            band_count=self.composite_config.band_count,
            min_zoom=pyramid.min_zoom,
            projection=pyramid.projection,
            center=((extent[0] + extent[2]) / 2, (extent[1] + extent[3]) / 2),
            view_resolutions=view_resolutions(pyramid.resolutions),
        )
