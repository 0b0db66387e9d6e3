"""
This module defines the core domain models for the history server.

These classes represent the pure, technology-agnostic entities and data
structures that the synchronization and lifecycle logic operate on, plus the
ports (interfaces) implemented by the infrastructure adapters.
"""

import dataclasses
import enum
from pathlib import Path

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Tuple


# --- Domain Models ---

class LifecycleState(enum.Enum):
    """States of the history server lifecycle. STOPPED is terminal."""

    NEW = "new"
    RUNNING = "running"
    STOPPED = "stopped"


class SynchronizerState(enum.Enum):
    """States of the archive synchronizer's background loop."""

    IDLE = "idle"
    CYCLE_RUNNING = "cycle_running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclasses.dataclass(frozen=True)
class RefreshLocation:
    """A normalized remote location together with the store that reads it."""

    uri: str
    store: "ArchiveStore"


@dataclasses.dataclass(frozen=True)
class ArchivedJson:
    """A single REST response captured inside a job archive."""

    path: str
    json: str


@dataclasses.dataclass(frozen=True)
class ArchivedJob:
    """A decoded job archive: the responses to materialize into the mirror."""

    entries: Tuple[ArchivedJson, ...]
    overview: Optional[Any] = None


@dataclasses.dataclass(frozen=True)
class ArchiveRecord:
    """
    An archive currently present in the mirror.

    `last_synced` is the number of the refresh cycle that last observed the
    archive at `location`.
    """

    archive_id: str
    location: str
    last_synced: int
    overview: Optional[Any] = None


@dataclasses.dataclass(frozen=True)
class CycleReport:
    """Summary of one refresh cycle."""

    cycle: int
    added: int = 0
    removed: int = 0
    failed: int = 0
    abandoned: bool = False


# --- Ports (Interfaces) ---

class ArchiveStore(ABC):
    """A port for any storage backend that holds job archives."""

    @abstractmethod
    async def list_archives(self) -> List[str]:
        """
        Lists the identifiers of the archives currently at the location.
        Raises StoreError if the location cannot be listed.
        """
        pass

    @abstractmethod
    async def read_archive(self, archive_id: str) -> bytes:
        """
        Reads the raw payload of one archive.
        Raises FetchError if it cannot be read.
        """
        pass


class ArchiveDecoder(ABC):
    """A port for turning a raw archive payload into an ArchivedJob."""

    @abstractmethod
    async def decode(self, payload: bytes) -> ArchivedJob:
        """
        Decodes an archive payload.
        Raises ArchiveFormatError if the payload is corrupt.
        """
        pass


class ArchiveMirror(ABC):
    """A port for the local, serving-ready copy of the archives."""

    root: Path

    @abstractmethod
    async def create(self):
        """Creates the mirror directory. Raises MirrorError on failure."""
        pass

    @abstractmethod
    async def write_dashboard_config(self, refresh_interval_ms: int):
        """Writes the static dashboard configuration artifact."""
        pass

    @abstractmethod
    async def materialize(self, archive_id: str, job: ArchivedJob):
        """Atomically places an archive's contents into the mirror."""
        pass

    @abstractmethod
    async def remove(self, archive_id: str):
        """Deletes an archive's contents from the mirror."""
        pass

    @abstractmethod
    async def prune(self, keep: Iterable[str]):
        """Deletes every mirrored archive directory not listed in `keep`."""
        pass

    @abstractmethod
    async def write_index(self, records: Iterable[ArchiveRecord]):
        """Atomically replaces the overview index with `records`."""
        pass

    @abstractmethod
    async def destroy(self):
        """Recursively deletes the mirror directory."""
        pass


class StoreResolver(ABC):
    """A port for resolving a normalized location URI to an ArchiveStore."""

    @abstractmethod
    def resolve(self, uri: str) -> ArchiveStore:
        """
        Returns the store able to list and read `uri`.
        Raises ConfigurationError if no backend handles it.
        """
        pass


class WebFrontend(ABC):
    """A port for the layer serving the mirror over HTTP."""

    @abstractmethod
    async def start(self, root: Path):
        """Starts serving `root` read-only."""
        pass

    @abstractmethod
    async def stop(self):
        """Stops serving and releases the listening socket."""
        pass
