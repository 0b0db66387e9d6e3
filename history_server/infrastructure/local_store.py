"""Local filesystem implementation of the ArchiveStore port."""

import asyncio
import logging
from pathlib import Path
from typing import Dict, List

from ..application.domain import ArchiveStore
from ..application.exceptions import FetchError, StoreError

COMPRESSED_SUFFIX = ".zst"


class LocalArchiveStore(ArchiveStore):
    """
    A store reading archives from a directory.

    Every regular, non-hidden file is an archive; its identifier is the file
    name without a trailing '.zst'.
    """

    def __init__(self, directory: Path):
        """Initializes the store adapter."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.directory = Path(directory)

    def _archive_files(self) -> Dict[str, Path]:
        """Maps archive identifiers to their files."""
        files: Dict[str, Path] = {}
        for path in sorted(self.directory.iterdir()):
            if path.name.startswith(".") or not path.is_file():
                continue
            archive_id = path.name
            if archive_id.endswith(COMPRESSED_SUFFIX):
                archive_id = archive_id[: -len(COMPRESSED_SUFFIX)]
            if archive_id:
                files.setdefault(archive_id, path)
        return files

    def _blocking_read(self, archive_id: str) -> bytes:
        for name in (archive_id, archive_id + COMPRESSED_SUFFIX):
            path = self.directory / name
            if path.is_file():
                return path.read_bytes()
        raise FileNotFoundError(f"No archive named {archive_id}")

    async def list_archives(self) -> List[str]:
        """
        Lists the archives in the directory.

        Raises:
            StoreError: If the directory cannot be listed.
        """
        try:
            files = await asyncio.to_thread(self._archive_files)
        except OSError as e:
            raise StoreError(f"Failed to list {self.directory}: {e}") from e

        self.logger.debug(f"Found {len(files)} archive(s) in {self.directory}.")
        return list(files)

    async def read_archive(self, archive_id: str) -> bytes:
        """
        Reads one archive file.

        Raises:
            FetchError: If the file cannot be read.
        """
        try:
            return await asyncio.to_thread(self._blocking_read, archive_id)
        except OSError as e:
            raise FetchError(
                f"Failed to read archive {archive_id} from {self.directory}: {e}"
            ) from e
