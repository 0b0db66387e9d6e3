"""
The archive synchronizer: the background loop keeping the mirror in step
with the refresh locations.

Each cycle reconciles every location independently against the known
ArchiveRecords and then rewrites the overview index, so one unreachable
location or one corrupt archive never hides the rest.
"""

import asyncio
import dataclasses
import logging
from typing import Dict, Optional, Tuple

from .domain import *
from .exceptions import (
    DomainError,
    InfrastructureError,
    LifecycleError,
    MirrorError,
    StoreError,
)
from .registry import RefreshLocationRegistry


class ArchiveSynchronizer:
    """Periodically mirrors the archives of all registered locations."""

    def __init__(
        self,
        registry: RefreshLocationRegistry,
        mirror: ArchiveMirror,
        decoder: ArchiveDecoder,
        refresh_interval: float,
    ):
        """
        Initializes the synchronizer.

        Args:
            registry: The locations to mirror.
            mirror: The local mirror to materialize archives into.
            decoder: Turns raw payloads into ArchivedJobs.
            refresh_interval: Seconds between the end of one cycle and the
                              start of the next.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.registry = registry
        self.mirror = mirror
        self.decoder = decoder
        self.refresh_interval = refresh_interval

        self._records: Dict[str, ArchiveRecord] = {}
        self._cycle = 0
        self._state = SynchronizerState.IDLE
        self._cancelled = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SynchronizerState:
        return self._state

    @property
    def cycle(self) -> int:
        """Number of the most recently started cycle."""
        return self._cycle

    @property
    def records(self) -> Dict[str, ArchiveRecord]:
        """A snapshot of the archives currently in the mirror."""
        return dict(self._records)

    # --- Lifecycle ---

    def start(self):
        """
        Schedules the recurring refresh cycles on the running event loop.

        The first cycle starts immediately.

        Raises:
            LifecycleError: If the synchronizer was already started.
        """
        if self._task is not None or self._state is not SynchronizerState.IDLE:
            raise LifecycleError("Archive synchronizer was already started.")

        self._task = asyncio.create_task(
            self._run_loop(), name="archive-synchronizer"
        )
        self.logger.info(
            f"Started archive synchronizer with a refresh interval of "
            f"{self.refresh_interval:.3f}s."
        )

    async def stop(self):
        """
        Requests cancellation and waits for the background loop to exit.

        An in-flight cycle finishes the location it is processing, rewrites
        the index and then exits. No timeout is applied.
        """
        if self._task is None:
            self._state = SynchronizerState.STOPPED
            return

        if self._state is not SynchronizerState.STOPPED:
            self._state = SynchronizerState.STOPPING
        self._cancelled.set()

        await self._task

    async def _run_loop(self):
        """Runs cycles until cancellation is requested."""
        try:
            while not self._cancelled.is_set():
                try:
                    await self.refresh()
                except Exception:
                    self.logger.exception(
                        f"Unexpected failure in refresh cycle {self._cycle}."
                    )

                if await self._wait_for_cancellation():
                    break
        finally:
            self._state = SynchronizerState.STOPPED
            self.logger.info("Archive synchronizer stopped.")

    async def _wait_for_cancellation(self) -> bool:
        """Sleeps for one interval; returns True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(
                self._cancelled.wait(), timeout=self.refresh_interval
            )
        except asyncio.TimeoutError:
            return False
        return True

    # --- Refresh cycle ---

    async def refresh(self) -> CycleReport:
        """
        Runs one refresh cycle over all registered locations.

        Cancellation is checked before each location. Whether the cycle
        completes or is abandoned, the mirror is pruned and the overview
        index is rewritten to match the known records.

        Returns:
            A report of what the cycle changed.
        """
        self._cycle += 1
        cycle = self._cycle
        if self._state is SynchronizerState.IDLE:
            self._state = SynchronizerState.CYCLE_RUNNING

        added = removed = failed = 0
        abandoned = False

        try:
            for location in self.registry:
                if self._cancelled.is_set():
                    self.logger.info(
                        f"Cancellation requested; abandoning cycle {cycle}."
                    )
                    abandoned = True
                    break

                try:
                    counts = await self._refresh_location(location, cycle)
                except Exception:
                    self.logger.exception(
                        f"Unexpected failure refreshing {location.uri}; "
                        f"skipping location for this cycle."
                    )
                    counts = (0, 0, 1)
                added += counts[0]
                removed += counts[1]
                failed += counts[2]
        finally:
            await self._publish_index()
            if self._state is SynchronizerState.CYCLE_RUNNING:
                self._state = SynchronizerState.IDLE

        report = CycleReport(
            cycle=cycle,
            added=added,
            removed=removed,
            failed=failed,
            abandoned=abandoned,
        )
        if added or removed or failed:
            self.logger.info(
                f"Cycle {cycle}: {added} added, {removed} removed, "
                f"{failed} failed; {len(self._records)} archive(s) mirrored."
            )
        return report

    async def _refresh_location(
        self, location: RefreshLocation, cycle: int
    ) -> Tuple[int, int, int]:
        """Reconciles one location. Returns (added, removed, failed)."""
        try:
            listed = set(await location.store.list_archives())
        except StoreError as e:
            self.logger.error(
                f"Failed to list archives at {location.uri}: {e}. "
                f"Skipping location for this cycle."
            )
            return 0, 0, 1

        added = removed = failed = 0

        for archive_id in sorted(listed):
            record = self._records.get(archive_id)
            if record is None:
                if await self._fetch_archive(location, archive_id, cycle):
                    added += 1
                else:
                    failed += 1
            elif record.location == location.uri:
                self._records[archive_id] = dataclasses.replace(
                    record, last_synced=cycle
                )
            else:
                self.logger.debug(
                    f"Archive {archive_id} at {location.uri} is already "
                    f"mirrored from {record.location}."
                )

        vanished = [
            record.archive_id
            for record in self._records.values()
            if record.location == location.uri
            and record.archive_id not in listed
        ]
        for archive_id in vanished:
            if await self._remove_archive(archive_id):
                removed += 1
            else:
                failed += 1

        return added, removed, failed

    async def _fetch_archive(
        self, location: RefreshLocation, archive_id: str, cycle: int
    ) -> bool:
        """Reads, decodes and materializes a new archive."""
        try:
            payload = await location.store.read_archive(archive_id)
            job = await self.decoder.decode(payload)
            await self.mirror.materialize(archive_id, job)
        except (InfrastructureError, DomainError) as e:
            self.logger.error(
                f"Failed to mirror archive {archive_id} from {location.uri}: "
                f"{e}. Will retry next cycle."
            )
            return False
        except Exception:
            self.logger.exception(
                f"Unexpected failure mirroring archive {archive_id} from "
                f"{location.uri}. Will retry next cycle."
            )
            return False

        self._records[archive_id] = ArchiveRecord(
            archive_id=archive_id,
            location=location.uri,
            last_synced=cycle,
            overview=job.overview,
        )
        self.logger.info(f"Mirrored archive {archive_id} from {location.uri}.")
        return True

    async def _remove_archive(self, archive_id: str) -> bool:
        """Deletes a vanished archive; its record stays until this succeeds."""
        try:
            await self.mirror.remove(archive_id)
        except MirrorError as e:
            self.logger.warning(
                f"Failed to remove archive {archive_id} from the mirror: "
                f"{e}. Will retry next cycle."
            )
            return False

        del self._records[archive_id]
        self.logger.info(f"Removed archive {archive_id} from the mirror.")
        return True

    async def _publish_index(self):
        """Prunes unknown mirror entries and rewrites the overview index."""
        records = list(self._records.values())
        try:
            await self.mirror.prune(set(self._records))
            await self.mirror.write_index(records)
        except MirrorError as e:
            self.logger.error(
                f"Failed to update the overview index: {e}. "
                f"Will retry next cycle."
            )
        except Exception:
            self.logger.exception(
                "Unexpected failure updating the overview index. "
                "Will retry next cycle."
            )
