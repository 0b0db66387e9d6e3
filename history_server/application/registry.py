"""Validation and construction of the set of refresh locations."""

import logging
import posixpath
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple
from urllib.parse import urlsplit, urlunsplit

from .domain import RefreshLocation, StoreResolver
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_DEFAULT_DELIMITER = ","
_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def normalize_location(raw: str) -> str:
    """
    Normalizes a configured location into a canonical URI.

    Bare paths become absolute `file://` URIs; schemes and hosts are
    lower-cased, and redundant, relative and trailing slashes are collapsed.

    Args:
        raw: A single entry of the configured location list.

    Returns:
        The normalized URI.

    Raises:
        ValueError: If the entry is not a usable location.
    """
    value = raw.strip()
    if not value:
        raise ValueError("location is empty")

    parsed = urlsplit(value)
    scheme = parsed.scheme.lower()

    # A single letter is a Windows drive, not a scheme.
    if len(scheme) <= 1:
        return Path(value).expanduser().resolve().as_uri()

    if parsed.query or parsed.fragment:
        raise ValueError("query strings and fragments are not supported")

    path = _DUPLICATE_SLASHES.sub("/", parsed.path)
    if path:
        path = posixpath.normpath(path)

    if scheme == "file":
        if parsed.netloc not in ("", "localhost"):
            raise ValueError(f"remote file host '{parsed.netloc}' is not supported")
        if not path.startswith("/"):
            raise ValueError("file location must be an absolute path")
        return urlunsplit(("file", "", path, "", ""))

    if not parsed.netloc:
        raise ValueError(f"{scheme} location has no host")

    path = path.rstrip("/")
    if path == ".":
        path = ""
    return urlunsplit((scheme, parsed.netloc.lower(), path, "", ""))


class RefreshLocationRegistry:
    """The immutable set of locations the synchronizer mirrors."""

    def __init__(self, locations: Iterable[RefreshLocation]):
        self._locations: Tuple[RefreshLocation, ...] = tuple(locations)

    @classmethod
    def build(
        cls,
        raw_locations: str,
        resolver: StoreResolver,
        delimiter: str = _DEFAULT_DELIMITER,
    ) -> "RefreshLocationRegistry":
        """
        Builds the registry from the configured location list.

        Each entry is normalized and resolved to a storage backend. Entries
        failing either step are logged and dropped; duplicates are dropped.

        Args:
            raw_locations: The delimited list of locations.
            resolver: Resolves a normalized URI to its ArchiveStore.
            delimiter: The list separator.

        Returns:
            A registry holding at least one location.

        Raises:
            ConfigurationError: If no location survives validation.
        """
        if not raw_locations or not raw_locations.strip():
            raise ConfigurationError("No refresh locations were configured.")

        locations: List[RefreshLocation] = []
        seen = set()

        for entry in raw_locations.split(delimiter or _DEFAULT_DELIMITER):
            if not entry.strip():
                continue

            try:
                uri = normalize_location(entry)
                store = resolver.resolve(uri)
            except (ValueError, ConfigurationError) as e:
                logger.warning(
                    f"Failed to validate refresh location '{entry.strip()}': "
                    f"{e}. Location will not be monitored."
                )
                continue

            if uri in seen:
                logger.warning(f"Ignoring duplicate refresh location {uri}.")
                continue

            seen.add(uri)
            locations.append(RefreshLocation(uri=uri, store=store))

        if not locations:
            raise ConfigurationError(
                "Failed to validate any of the configured refresh locations."
            )

        logger.info(
            f"Monitoring {len(locations)} refresh location(s): "
            f"{', '.join(location.uri for location in locations)}"
        )
        return cls(locations)

    @property
    def locations(self) -> Tuple[RefreshLocation, ...]:
        return self._locations

    def __iter__(self) -> Iterator[RefreshLocation]:
        return iter(self._locations)

    def __len__(self) -> int:
        return len(self._locations)
