"""Error taxonomy for mosaic configuration and tile composition.

Configuration errors (``UnsupportedSourceError``, ``FetchError`` raised while
reading catalogs, ``AlignmentError``) are fatal for a configured engine: it
enters its terminal error state and must be rebuilt to retry. Tile errors
(``FetchError`` raised while reading tiles, ``CompositionError``) only fail the
tile being composed. ``SampleFormatError`` never escapes the compositor; it
is logged and the buffer is decoded as unsigned 8-bit samples.

Example:
    Handle a failed configuration:
        >>> from cogmosaic.core import errors
        >>> try:
        ...     await engine.configure()
        ... except errors.AlignmentError as exc:
        ...     print(f"Sources do not line up: {exc}")
"""


class MosaicError(RuntimeError):
    """Base class for every error raised by the mosaic engine."""


class UnsupportedSourceError(MosaicError):
    """Raised when a source uses a transport mode that is not implemented.

    In-memory blobs and explicit overview URL lists are reserved extension
    points; only single-URL sources are read.
    """


class FetchError(MosaicError):
    """Raised when a catalog header or a raw tile cannot be fetched or parsed.

    Example:
        Wrap a transport failure:
            >>> raise FetchError("Unable to read catalog for s3://bucket/a.tif")
    """


class AlignmentError(MosaicError):
    """Raised when sources disagree on origin, resolution or tile size.

    The message names the offending source index and the compared values.
    """


class SampleFormatError(MosaicError):
    """Raised for an unrecognized sample format / bit depth combination."""


class CompositionError(MosaicError):
    """Raised when a tile cannot be composed, e.g. a short raw buffer."""


class MosaicStateError(MosaicError):
    """Raised when an engine operation is called in the wrong state."""
