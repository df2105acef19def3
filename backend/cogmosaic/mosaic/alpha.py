"""Decide whether composed tiles carry a synthetic alpha band."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cogmosaic.mosaic import models


def _selected_nodata(
    source: models.SourceDescriptor,
    finest: models.ImageLevel,
) -> list[float | None]:
    values = finest.nodata or ()
    if source.bands:
        return [
            values[band - 1] if 0 < band <= len(values) else None
            for band in source.bands
        ]

    return list(values)


def requires_alpha(
    sources: Sequence[models.SourceDescriptor],
    pyramid: models.UnifiedPyramid,
) -> bool:
    """Return True when any source needs transparency.

    Checked per source, stopping at the first match:
        1. the descriptor overrides nodata,
        2. the source has a mask pyramid,
        3. a selected band (all bands when none are selected) declares a
           nodata value in the full resolution level.

    Args:
        sources: Source descriptors in configuration order.
        pyramid: Reconciled pyramid of the same sources.

    Returns:
        Whether an alpha band is appended to every composed tile.
    """
    for index, source in enumerate(sources):
        if source.nodata is not None:
            return True

        if any(mask is not None for mask in pyramid.masks[index]):
            return True

        finest = pyramid.finest_level(index)
        if any(value is not None for value in _selected_nodata(source, finest)):
            return True

    return False
