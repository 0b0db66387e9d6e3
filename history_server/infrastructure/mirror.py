"""Filesystem implementation of the ArchiveMirror port."""

import asyncio
import contextlib
import importlib.metadata
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Generator, Iterable, Set

from ..application.domain import ArchivedJob, ArchiveMirror, ArchiveRecord
from ..application.exceptions import MirrorError

from .models import DashboardConfig, IndexEntry, OverviewIndex

CONFIG_FILE = "config.json"
INDEX_FILE = "overview.json"

_RESERVED_NAMES = frozenset({CONFIG_FILE, INDEX_FILE})
_STAGING_PREFIX = ".staging-"
_TRASH_PREFIX = ".trash-"
_DISTRIBUTION = "history-server"


def _server_version() -> str:
    try:
        return importlib.metadata.version(_DISTRIBUTION)
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _is_printable_utf8(name: str) -> bool:
    """False for names with control characters or undecodable bytes."""
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return not any(ord(char) < 0x20 or ord(char) == 0x7F for char in name)


class LocalMirror(ArchiveMirror):
    """
    The mirror directory served by the web frontend.

    Readers never observe a partial write: files are replaced through a
    temporary '.part' file and archive directories appear through a rename
    of a fully written staging directory.
    """

    def __init__(self, root: Path):
        """Initializes the mirror adapter for `root`."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.root = Path(root)

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILE

    def archive_path(self, archive_id: str) -> Path:
        """
        Returns the directory holding an archive's contents.

        Raises:
            MirrorError: If the identifier cannot name a mirror directory.
        """
        if (
            not archive_id
            or archive_id.startswith(".")
            or "/" in archive_id
            or "\\" in archive_id
            or archive_id in _RESERVED_NAMES
            or not _is_printable_utf8(archive_id)
        ):
            raise MirrorError(f"Invalid archive identifier {archive_id!r}.")
        return self.root / archive_id

    # --- Atomic file primitives ---

    @contextlib.contextmanager
    def _atomic_target(self, destination: Path) -> Generator[Path, None, None]:
        """Provides a temporary '.part' path and ensures cleanup."""
        part_path = destination.with_name(
            f".{destination.name}.{uuid.uuid4().hex}.part"
        )
        try:
            yield part_path
        finally:
            part_path.unlink(missing_ok=True)

    def _write_atomically(self, destination: Path, content: str):
        with self._atomic_target(destination) as part_path:
            part_path.write_text(content, encoding="utf-8")
            os.replace(part_path, destination)

    def _delete_tree(self, path: Path):
        """Deletes a directory no longer visible to readers."""
        try:
            shutil.rmtree(path)
        except OSError as e:
            self.logger.warning(
                f"Failed to delete {path.name}: {e}. Will retry on next prune."
            )

    def _discard(self, path: Path):
        """Moves `path` out of the served namespace, then deletes it."""
        trash = self.root / f"{_TRASH_PREFIX}{path.name}-{uuid.uuid4().hex}"
        path.rename(trash)
        self._delete_tree(trash)

    # --- Blocking operations ---

    def _blocking_materialize(self, archive_id: str, job: ArchivedJob):
        target = self.archive_path(archive_id)
        staging = self.root / f"{_STAGING_PREFIX}{archive_id}-{uuid.uuid4().hex}"

        try:
            staging.mkdir(parents=True)
            for entry in job.entries:
                file_path = staging / f"{entry.path.lstrip('/')}.json"
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_path.write_text(entry.json, encoding="utf-8")

            if target.exists():
                self._discard(target)
            staging.rename(target)
        except (OSError, UnicodeError) as e:
            raise MirrorError(
                f"Failed to materialize archive {archive_id}: {e}"
            ) from e
        finally:
            if staging.exists():
                self._delete_tree(staging)

    def _blocking_remove(self, archive_id: str):
        target = self.archive_path(archive_id)
        if not target.exists():
            return
        try:
            self._discard(target)
        except OSError as e:
            raise MirrorError(f"Failed to remove archive {archive_id}: {e}") from e

    def _blocking_prune(self, keep: Set[str]):
        try:
            entries = list(self.root.iterdir())
        except OSError as e:
            self.logger.warning(f"Failed to scan {self.root} for pruning: {e}")
            return

        for entry in entries:
            if entry.name in _RESERVED_NAMES or entry.name in keep:
                continue

            self.logger.info(f"Pruning stale mirror entry {entry.name}.")
            if entry.is_dir() and not entry.is_symlink():
                self._delete_tree(entry)
                continue
            try:
                entry.unlink()
            except OSError as e:
                self.logger.warning(f"Failed to delete {entry.name}: {e}")

    def _blocking_write_index(self, records: Iterable[ArchiveRecord]):
        index = OverviewIndex(
            archives=[
                IndexEntry(
                    id=record.archive_id,
                    location=record.location,
                    last_synced=record.last_synced,
                    overview=record.overview,
                )
                for record in sorted(records, key=lambda r: r.archive_id)
            ]
        )
        try:
            self._write_atomically(
                self.index_path, index.model_dump_json(indent=2)
            )
        # PydanticSerializationError is a ValueError.
        except (OSError, ValueError) as e:
            raise MirrorError(f"Failed to write {INDEX_FILE}: {e}") from e

    def _blocking_write_config(self, refresh_interval_ms: int):
        local_time = time.localtime()
        config = DashboardConfig(
            refresh_interval=refresh_interval_ms,
            timezone_offset=local_time.tm_gmtoff * 1000,
            timezone_name=time.strftime("%Z", local_time),
            version=_server_version(),
        )
        try:
            self._write_atomically(
                self.config_path, config.model_dump_json(by_alias=True)
            )
        except OSError as e:
            self.logger.error(f"Failed to write {CONFIG_FILE}.")
            raise MirrorError(f"Failed to write {CONFIG_FILE}: {e}") from e

    # --- Port implementation ---

    async def create(self):
        """
        Creates the mirror directory, including missing parents.

        Raises:
            MirrorError: If the directory cannot be created.
        """
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise MirrorError(
                f"Failed to create local directory {self.root.absolute()}: {e}"
            ) from e

    async def write_dashboard_config(self, refresh_interval_ms: int):
        await asyncio.to_thread(self._blocking_write_config, refresh_interval_ms)

    async def materialize(self, archive_id: str, job: ArchivedJob):
        """
        Writes every entry of `job` below `<root>/<archive_id>/`.

        The directory is assembled under a hidden staging name and renamed
        into place, replacing any previous copy.

        Raises:
            MirrorError: If the identifier is invalid or writing fails.
        """
        await asyncio.to_thread(self._blocking_materialize, archive_id, job)

    async def remove(self, archive_id: str):
        """
        Removes an archive's directory. A missing directory is not an error.

        Raises:
            MirrorError: If the directory cannot be moved out of place.
        """
        await asyncio.to_thread(self._blocking_remove, archive_id)

    async def prune(self, keep: Iterable[str]):
        await asyncio.to_thread(self._blocking_prune, set(keep))

    async def write_index(self, records: Iterable[ArchiveRecord]):
        await asyncio.to_thread(self._blocking_write_index, list(records))

    async def destroy(self):
        """
        Recursively deletes the mirror directory.

        Raises:
            MirrorError: If the directory exists but cannot be deleted.
        """
        try:
            await asyncio.to_thread(shutil.rmtree, self.root)
        except FileNotFoundError:
            return
        except OSError as e:
            raise MirrorError(f"Failed to delete {self.root}: {e}") from e
