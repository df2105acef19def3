"""HTTP probes run before opening a remote COG.

Tiling services in front of a COG can advertise the size of the TIFF header
and the nominal byte count of one compressed tile in response headers. Both
values tune how much GDAL reads up front and per request (see
``cog_transport.gdal_options``).

Example:
    Probe a COG before registering a mosaic:
        >>> info = await get_head_info("https://host/geotiff/scene.tif")
        >>> options = models.CatalogOptions(
        ...     header_size=info.header_size,
        ...     tile_byte_count=info.tile_byte_count,
        ... )
"""

from __future__ import annotations

import contextlib
import dataclasses
from typing import TYPE_CHECKING

import httpx

from cogmosaic.core import errors

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

CONTENT_LENGTH = "content-length"
HEADER_LENGTH = "x-tiff-header-length"
TILE_BYTE_COUNT = "x-tiff-nominal-tile-byte-count"

DEFAULT_TIMEOUT = 30.0


@dataclasses.dataclass(frozen=True)
class HeadInfo:
    """Sizes advertised by a COG endpoint.

    Attributes:
        header_size: Byte length of the TIFF header.
        tile_byte_count: Nominal byte count of one compressed tile.
        file_size: Total byte length of the file.
    """

    header_size: int
    tile_byte_count: int
    file_size: int


def _headers(token: str | None) -> dict[str, str]:
    if token is None:
        return {}

    return {"Authorization": f"Bearer {token}"}


@contextlib.asynccontextmanager
async def _client(
    client: httpx.AsyncClient | None,
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return

    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def _int_header(response: httpx.Response, name: str) -> int:
    value = response.headers.get(name)
    if value is None:
        raise ValueError(f"missing header {name}")

    return int(value)


async def get_head_info(
    url: str,
    token: str | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> HeadInfo:
    """Read header and tile sizes with a HEAD request.

    Args:
        url: COG URL.
        token: Optional bearer token.
        client: Shared client; a short-lived one is created when omitted.
        timeout: Timeout in seconds for the short-lived client.

    Returns:
        HeadInfo parsed from the response headers.

    Raises:
        FetchError: if the request fails, the status is not 2xx, or a size
            header is missing or malformed.
    """
    async with _client(client, timeout) as http:
        try:
            response = await http.head(url, headers=_headers(token))
        except httpx.HTTPError as exc:
            raise errors.FetchError(
                f"Error fetching HEAD url={url}, error={exc}"
            ) from exc

    if not response.is_success:
        raise errors.FetchError(
            f"Error fetching HEAD url={url}, "
            f"status={response.status_code}, text={response.reason_phrase}"
        )

    try:
        return HeadInfo(
            header_size=_int_header(response, HEADER_LENGTH),
            tile_byte_count=_int_header(response, TILE_BYTE_COUNT),
            file_size=_int_header(response, CONTENT_LENGTH),
        )
    except ValueError as exc:
        raise errors.FetchError(
            f"Error fetching HEAD url={url}, error={exc}"
        ) from exc
