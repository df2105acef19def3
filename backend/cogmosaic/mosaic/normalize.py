"""Radiometric normalization of source samples to the 0-255 display range.

Each source resolves an effective ``(min, max)`` range, turns it into a
linear ``gain``/``bias`` pair and stretches every sample with
``clip(gain * value + bias, 0, 255)``.

Range precedence:
    1. explicit ``min``/``max`` on the source descriptor,
    2. ``STATISTICS_MINIMUM``/``STATISTICS_MAXIMUM`` tags of the level being
       composed, falling back to the full resolution level,
    3. the value range of the sample encoding.

Example:
    >>> from cogmosaic.mosaic import normalize
    >>> stretch = normalize.Stretch.from_range(100.0, 2047.0)
    >>> stretch.apply(np.array([100, 2047]))
    array([  0., 255.])
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

import numpy as np

from cogmosaic.core import errors
from cogmosaic.mosaic import models

if TYPE_CHECKING:
    from cogmosaic.mosaic import encoding as mosaic_encoding


def _statistic(level: models.ImageLevel | None, key: str) -> float | None:
    if level is None or not level.statistics or key not in level.statistics:
        return None

    try:
        return float(level.statistics[key])
    except ValueError:
        return None


def resolve_range(
    source: models.SourceDescriptor,
    level: models.ImageLevel | None,
    finest: models.ImageLevel | None,
    encoding: mosaic_encoding.SampleEncoding,
) -> tuple[float, float]:
    """Resolve the effective ``(min, max)`` of one source for one tile.

    Args:
        source: Source descriptor, possibly carrying explicit min/max.
        level: Level being composed (its statistics tags take precedence).
        finest: Full resolution level of the source.
        encoding: Decoded sample encoding of the tile.

    Returns:
        Tuple of ``(min, max)`` as floats.
    """
    type_min, type_max = encoding.value_range()

    minimum = source.min
    if minimum is None:
        minimum = _statistic(level, models.STATISTICS_MINIMUM)
    if minimum is None:
        minimum = _statistic(finest, models.STATISTICS_MINIMUM)
    if minimum is None:
        minimum = type_min

    maximum = source.max
    if maximum is None:
        maximum = _statistic(level, models.STATISTICS_MAXIMUM)
    if maximum is None:
        maximum = _statistic(finest, models.STATISTICS_MAXIMUM)
    if maximum is None:
        maximum = type_max

    return float(minimum), float(maximum)


@dataclasses.dataclass(frozen=True)
class Stretch:
    """Linear ``gain``/``bias`` transform onto 0-255."""

    gain: float
    bias: float

    @classmethod
    def from_range(cls, minimum: float, maximum: float) -> Stretch:
        """Build the stretch mapping ``minimum`` to 0 and ``maximum`` to 255.

        Raises:
            CompositionError: if the range is empty.
        """
        if maximum == minimum:
            raise errors.CompositionError(
                f"Empty normalization range [{minimum}, {maximum}]"
            )

        gain = 255.0 / (maximum - minimum)
        return cls(gain=gain, bias=-minimum * gain)

    @property
    def transparent(self) -> float:
        """Stretched value of a raw 0 sample, before rounding."""
        return float(np.clip(self.bias, 0.0, 255.0))

    def scale(self, values: np.ndarray) -> np.ndarray:
        """Stretch and clamp samples onto 0-255 without rounding."""
        stretched = values.astype(np.float64) * self.gain + self.bias
        # NaN samples (float nodata) render as black
        stretched = np.nan_to_num(stretched, nan=0.0)
        return np.clip(stretched, 0.0, 255.0)

    def apply(self, values: np.ndarray) -> np.ndarray:
        """Stretch and clamp samples, rounded to whole 8-bit levels.

        Values are rounded to the nearest level (halves to even) rather than
        truncated, so ``max`` always lands on 255 in the written tile.
        Transparency is decided on :meth:`scale` output instead.
        """
        return np.rint(self.scale(values))
