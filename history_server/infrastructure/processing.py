"""
Infrastructure adapter for decoding job archive payloads.
"""

import asyncio
import io
import json
import logging
from typing import Any, List, Optional

import pydantic
import zstandard

from ..application.domain import ArchivedJob, ArchivedJson, ArchiveDecoder
from ..application.exceptions import ArchiveFormatError

from .models import ArchiveDocument

_ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"
_OVERVIEW_PATHS = ("/joboverview", "/jobs/overview")


class JsonArchiveDecoder(ArchiveDecoder):
    """
    An adapter that implements the ArchiveDecoder port for JSON archives,
    transparently decompressing Zstandard-compressed payloads.
    """

    def __init__(self):
        """Initializes the decoder."""
        self.logger = logging.getLogger(self.__class__.__name__)

    def _decompress(self, payload: bytes) -> bytes:
        """Decompresses a Zstandard frame of unknown content size."""
        decompressor = zstandard.ZstdDecompressor()
        with decompressor.stream_reader(io.BytesIO(payload)) as reader:
            return reader.read()

    @staticmethod
    def _check_path(path: str):
        """Rejects entry paths that would escape the archive directory."""
        if not path.startswith("/"):
            raise ArchiveFormatError(f"Entry path '{path}' is not absolute.")

        segments = path[1:].split("/")
        if any(segment in ("", ".", "..") for segment in segments):
            raise ArchiveFormatError(f"Entry path '{path}' is not canonical.")

    @staticmethod
    def _parse_overview(entry: ArchivedJson) -> Any:
        try:
            overview = json.loads(entry.json)
            # Lone surrogate escapes parse but cannot be written to the index.
            json.dumps(overview, ensure_ascii=False).encode("utf-8")
        except ValueError as e:
            raise ArchiveFormatError(
                f"Overview entry '{entry.path}' is not valid JSON: {e}"
            ) from e
        return overview

    def _blocking_decode(self, payload: bytes) -> ArchivedJob:
        """Decompresses (if needed), validates and maps one archive."""
        try:
            if payload.startswith(_ZSTD_MAGIC):
                payload = self._decompress(payload)
            document = ArchiveDocument.model_validate_json(payload)
        except (zstandard.ZstdError, pydantic.ValidationError) as e:
            raise ArchiveFormatError(f"Malformed archive: {e}") from e

        entries: List[ArchivedJson] = []
        overview: Optional[Any] = None

        for item in document.archive:
            self._check_path(item.path)
            entry = ArchivedJson(path=item.path, json=item.content)
            entries.append(entry)
            if item.path in _OVERVIEW_PATHS:
                overview = self._parse_overview(entry)

        if not entries:
            raise ArchiveFormatError("Archive contains no entries.")

        self.logger.debug(f"Decoded archive with {len(entries)} entries.")
        return ArchivedJob(entries=tuple(entries), overview=overview)

    async def decode(self, payload: bytes) -> ArchivedJob:
        """
        Decodes a raw archive payload.

        This public method fulfills the ArchiveDecoder port contract. The
        decompression and validation work runs in a separate thread to avoid
        blocking the event loop.

        Args:
            payload: The bytes read from the refresh location.

        Returns:
            The decoded archive.

        Raises:
            ArchiveFormatError: If the payload is not a valid archive.
        """
        return await asyncio.to_thread(self._blocking_decode, payload)
