"""Registry of configured mosaics."""

from __future__ import annotations

import dataclasses
import datetime
import functools
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cogmosaic.mosaic import engine


def _now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


@dataclasses.dataclass
class MosaicRecord:
    """A registered mosaic and the engine serving its tiles.

    Attributes:
        id: Unique identifier for the mosaic (UUID string).
        name: Human-readable mosaic name.
        engine: Engine holding the configuration state.
        created_at: Timestamp when the mosaic was registered.
    """

    id: str
    name: str
    engine: engine.MosaicEngine
    created_at: datetime.datetime = dataclasses.field(default_factory=_now)


class MosaicRegistryProtocol(Protocol):
    """Protocol interface for storing and retrieving mosaics."""

    def add(self, record: MosaicRecord) -> MosaicRecord: ...

    def get(self, mosaic_id: str) -> MosaicRecord | None: ...

    def all(self) -> Iterable[MosaicRecord]: ...


class InMemoryMosaicRegistry(MosaicRegistryProtocol):
    """Simple in-memory store of mosaics.

    Engines are kept in a dictionary and lost when the process exits.
    Composed tiles are never stored.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._store: dict[str, MosaicRecord] = {}

    def add(self, record: MosaicRecord) -> MosaicRecord:
        """Add or replace a mosaic.

        Args:
            record: Mosaic to store.

        Returns:
            The stored record.
        """
        self._store[record.id] = record
        return record

    def get(self, mosaic_id: str) -> MosaicRecord | None:
        """Retrieve a mosaic by ID.

        Args:
            mosaic_id: Unique identifier for the mosaic.

        Returns:
            MosaicRecord if found, None otherwise.
        """
        return self._store.get(mosaic_id)

    def all(self) -> Iterable[MosaicRecord]:
        """Get all stored mosaics, newest first."""
        return sorted(
            self._store.values(),
            key=lambda record: record.created_at,
            reverse=True,
        )


@functools.lru_cache
def get_mosaic_registry() -> MosaicRegistryProtocol:
    """Return the process-wide mosaic registry."""
    return InMemoryMosaicRegistry()
