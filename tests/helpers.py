"""Test doubles and helpers shared by the history server tests."""

import asyncio
import json
from pathlib import Path
from typing import Callable, Dict, List, Optional

from history_server.application.domain import (
    ArchiveStore,
    StoreResolver,
    WebFrontend,
)
from history_server.application.exceptions import (
    ConfigurationError,
    FetchError,
    StoreError,
)


def archive_payload(archive_id: str, overview: Optional[dict] = None) -> bytes:
    """Builds a minimal job archive document."""
    entries = [
        {
            "path": f"/jobs/{archive_id}",
            "json": json.dumps({"jid": archive_id, "state": "FINISHED"}),
        },
        {
            "path": f"/jobs/{archive_id}/vertices",
            "json": json.dumps({"vertices": []}),
        },
    ]
    if overview is not None:
        entries.append({"path": "/joboverview", "json": json.dumps(overview)})
    return json.dumps({"archive": entries}).encode()


def write_archive(directory: Path, archive_id: str) -> Path:
    path = directory / archive_id
    path.write_bytes(archive_payload(archive_id))
    return path


def read_index(mirror_root: Path) -> List[str]:
    """Returns the archive ids listed in the mirror's overview index."""
    document = json.loads((mirror_root / "overview.json").read_text())
    return [entry["id"] for entry in document["archives"]]


def index_ids_or_none(mirror_root: Path) -> Optional[List[str]]:
    try:
        return read_index(mirror_root)
    except FileNotFoundError:
        return None


async def eventually(
    predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02
):
    """Polls `predicate` until it holds or `timeout` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition was not met in time.")
        await asyncio.sleep(interval)


class InMemoryStore(ArchiveStore):
    """An archive store backed by a dict, with switchable failures."""

    def __init__(self, archives: Optional[Dict[str, bytes]] = None):
        self.archives = dict(archives or {})
        self.reachable = True
        self.broken = set()
        self.listings = 0
        self.reads: List[str] = []

    async def list_archives(self) -> List[str]:
        self.listings += 1
        if not self.reachable:
            raise StoreError("location unreachable")
        return list(self.archives)

    async def read_archive(self, archive_id: str) -> bytes:
        self.reads.append(archive_id)
        if archive_id in self.broken or archive_id not in self.archives:
            raise FetchError(f"cannot read {archive_id}")
        return self.archives[archive_id]


class GatedStore(InMemoryStore):
    """A store whose listing blocks until `release` is set."""

    def __init__(self, archives: Optional[Dict[str, bytes]] = None):
        super().__init__(archives)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def list_archives(self) -> List[str]:
        self.entered.set()
        await self.release.wait()
        return await super().list_archives()


class StubResolver(StoreResolver):
    """Resolves `mem://<name>` URIs to pre-registered stores."""

    def __init__(self, stores: Optional[Dict[str, ArchiveStore]] = None):
        self.stores = dict(stores or {})

    def resolve(self, uri: str) -> ArchiveStore:
        try:
            return self.stores[uri]
        except KeyError:
            raise ConfigurationError(f"unknown location {uri}") from None


class RecordingFrontend(WebFrontend):
    """A web frontend that records its lifecycle calls."""

    def __init__(self, fail_on_start: bool = False, fail_on_stop: bool = False):
        self.fail_on_start = fail_on_start
        self.fail_on_stop = fail_on_stop
        self.started_with: Optional[Path] = None
        self.stop_calls = 0

    async def start(self, root: Path):
        if self.fail_on_start:
            raise OSError("address already in use")
        self.started_with = root

    async def stop(self):
        self.stop_calls += 1
        if self.fail_on_stop:
            raise RuntimeError("frontend refused to stop")
