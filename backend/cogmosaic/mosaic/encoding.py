"""Sample encodings of raw TIFF tiles.

TIFF describes samples with a ``SampleFormat`` tag (1 unsigned integer,
2 signed integer, 3 IEEE float) and a ``BitsPerSample`` tag. This module maps
that pair onto the ``SampleEncoding`` enum, decodes raw tile bytes into numpy
views and exposes the value range used when a source carries neither an
explicit min/max nor raster statistics.
"""

from __future__ import annotations

import enum
import logging

import numpy as np

from cogmosaic.core import errors

logger = logging.getLogger(__name__)

UNSIGNED_INT = 1
SIGNED_INT = 2
FLOAT = 3


class SampleEncoding(enum.Enum):
    """Supported sample encodings, valued by numpy type code."""

    UINT8 = "u1"
    UINT16 = "u2"
    UINT32 = "u4"
    INT8 = "i1"
    INT16 = "i2"
    INT32 = "i4"
    FLOAT32 = "f4"
    FLOAT64 = "f8"

    @classmethod
    def from_tiff(cls, sample_format: int, bits_per_sample: int) -> SampleEncoding:
        """Resolve a TIFF sample format / bit depth pair.

        Raises:
            SampleFormatError: if the pair is not a supported encoding.
        """
        try:
            return _TIFF_ENCODINGS[(sample_format, bits_per_sample)]
        except KeyError:
            raise errors.SampleFormatError(
                f"Unknown pixel format: sample format {sample_format} "
                f"with {bits_per_sample} bits per sample"
            ) from None

    @classmethod
    def from_dtype(cls, dtype: str | np.dtype) -> SampleEncoding:
        """Resolve a numpy / rasterio dtype name such as ``"uint16"``."""
        try:
            return cls(np.dtype(dtype).newbyteorder("=").str[1:])
        except (TypeError, ValueError):
            raise errors.SampleFormatError(
                f"Unsupported data type {dtype}"
            ) from None

    @property
    def sample_format(self) -> int:
        if self.value[0] == "u":
            return UNSIGNED_INT
        if self.value[0] == "i":
            return SIGNED_INT
        return FLOAT

    @property
    def bits_per_sample(self) -> int:
        return int(self.value[1]) * 8

    def dtype(self, byte_order: str = "<") -> np.dtype:
        return np.dtype(f"{byte_order}{self.value}")

    def value_range(self) -> tuple[float, float]:
        """Return the stretch range used when nothing better is known.

        Integers use their full range. Float32 uses an approximate
        epsilon-to-max range; Float64 falls back to 0-255.
        """
        match self:
            case SampleEncoding.FLOAT32:
                return 1.2e-38, 3.4e38
            case SampleEncoding.FLOAT64:
                return 0.0, 255.0
            case _:
                info = np.iinfo(self.dtype())
                return float(info.min), float(info.max)


_TIFF_ENCODINGS: dict[tuple[int, int], SampleEncoding] = {
    (UNSIGNED_INT, 8): SampleEncoding.UINT8,
    (UNSIGNED_INT, 16): SampleEncoding.UINT16,
    (UNSIGNED_INT, 32): SampleEncoding.UINT32,
    (SIGNED_INT, 8): SampleEncoding.INT8,
    (SIGNED_INT, 16): SampleEncoding.INT16,
    (SIGNED_INT, 32): SampleEncoding.INT32,
    (FLOAT, 32): SampleEncoding.FLOAT32,
    (FLOAT, 64): SampleEncoding.FLOAT64,
}


def resolve_encoding(sample_format: int, bits_per_sample: int) -> SampleEncoding:
    """Resolve an encoding, falling back to UInt8 for unknown pairs.

    The fallback keeps tile composition total: a warning is logged and the
    buffer is read byte by byte.
    """
    try:
        return SampleEncoding.from_tiff(sample_format, bits_per_sample)
    except errors.SampleFormatError as exc:
        logger.warning("%s, decoding as unsigned 8-bit", exc)
        return SampleEncoding.UINT8


def decode(
    data: bytes,
    encoding: SampleEncoding,
    byte_order: str = "<",
) -> np.ndarray:
    """Decode raw bytes into a flat numpy view of ``encoding`` samples.

    Trailing bytes that do not fill a whole sample are ignored.
    """
    dtype = encoding.dtype(byte_order)
    usable = len(data) - len(data) % dtype.itemsize
    return np.frombuffer(data, dtype=dtype, count=usable // dtype.itemsize)
