"""
The lifecycle controller of the history server.

This module defines the HistoryServer, the single entry and exit point of
the application. It brings the local mirror into existence, starts the
ArchiveSynchronizer and the web frontend, and guarantees that the stop
sequence runs exactly once, whether it is triggered by an explicit call or by
a termination signal.
"""

import asyncio
import logging
import signal
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from .domain import *
from .exceptions import LifecycleError, ShutdownError
from .registry import RefreshLocationRegistry
from .synchronizer import ArchiveSynchronizer

logger = logging.getLogger(__name__)

_TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)
_MIRROR_PREFIX = "history-server-"


def default_web_dir() -> Path:
    """A fresh, unique mirror location under the system temp directory."""
    return Path(tempfile.gettempdir()) / f"{_MIRROR_PREFIX}{uuid.uuid4()}"


class HistoryServer:
    """Orchestrates startup and shutdown of the mirror and its services."""

    def __init__(
        self,
        archive_dirs: str,
        resolver: StoreResolver,
        mirror_factory: Callable[[Path], ArchiveMirror],
        decoder: ArchiveDecoder,
        frontend: WebFrontend,
        refresh_interval_ms: int,
        web_refresh_interval_ms: int,
        web_dir: Optional[str] = None,
        delimiter: str = ",",
        handle_signals: bool = True,
    ):
        """
        Initializes the history server. Nothing is validated or created
        until `start()`.

        Args:
            archive_dirs: Delimited list of refresh locations.
            resolver: Resolves each location to its ArchiveStore.
            mirror_factory: Builds the ArchiveMirror for a root directory.
            decoder: Decodes archive payloads for the synchronizer.
            frontend: Serves the mirror once it exists.
            refresh_interval_ms: Interval between synchronizer cycles.
            web_refresh_interval_ms: Dashboard refresh interval, written to
                                     the mirror's config artifact.
            web_dir: The mirror root; a temporary path when empty.
            delimiter: Separator of `archive_dirs`.
            handle_signals: Whether to install SIGINT/SIGTERM handlers.
        """
        self.archive_dirs = archive_dirs
        self.resolver = resolver
        self.mirror_factory = mirror_factory
        self.decoder = decoder
        self.frontend = frontend
        self.refresh_interval_ms = refresh_interval_ms
        self.web_refresh_interval_ms = web_refresh_interval_ms
        self.web_dir = Path(web_dir) if web_dir else default_web_dir()
        self.delimiter = delimiter
        self.handle_signals = handle_signals

        self._state = LifecycleState.NEW
        self._lifecycle_lock = asyncio.Lock()
        # One-shot gate shared by the explicit and signal-triggered stop paths.
        self._shutdown_gate = threading.Lock()
        self._terminated = asyncio.Event()
        self._stopped = asyncio.Event()

        self._mirror: Optional[ArchiveMirror] = None
        self._synchronizer: Optional[ArchiveSynchronizer] = None
        self._frontend_started = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed_signals: List[signal.Signals] = []
        self._hook_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def mirror_root(self) -> Path:
        return self.web_dir

    @property
    def synchronizer(self) -> Optional[ArchiveSynchronizer]:
        return self._synchronizer

    # --- Public API ---

    async def run(self):
        """
        Starts the server, waits for a termination request, then stops.

        Startup errors propagate after cleanup. Returns only once the stop
        sequence has completed, whichever path executed it.
        """
        try:
            await self.start()
            await self._terminated.wait()
        finally:
            await self.stop()
            await self._stopped.wait()

    async def start(self):
        """
        Brings the mirror up and starts all background services.

        In order: validates the refresh locations, creates the mirror
        directory, writes the dashboard config, starts the synchronizer,
        starts the web frontend and registers the termination hook. If any
        step fails, the stop sequence cleans up before the error propagates.

        Raises:
            ConfigurationError: If no refresh location is usable.
            MirrorError: If the mirror directory cannot be created.
            LifecycleError: If the server was already started or stopped.
        """
        async with self._lifecycle_lock:
            if self._state is not LifecycleState.NEW:
                raise LifecycleError(
                    f"Cannot start a history server that is {self._state.value}."
                )

            logger.info("Starting history server.")
            try:
                await self._start_sequence()
            except BaseException:
                logger.error("Failed to start history server.")
                if self._claim_shutdown():
                    await self._stop_sequence()
                raise

            self._state = LifecycleState.RUNNING
            logger.info(f"History server is serving {self.web_dir}.")

    async def stop(self):
        """
        Stops the server. Only the first call does any work.

        Every step (web frontend, synchronizer, mirror directory, signal
        handlers) is attempted even if an earlier one fails; failures are
        logged as ShutdownErrors and never raised.
        """
        if not self._claim_shutdown():
            logger.debug("Stop of history server was already requested.")
            return

        async with self._lifecycle_lock:
            await self._stop_sequence()

    # --- Sequences ---

    def _claim_shutdown(self) -> bool:
        """Atomically test-and-set the one-shot shutdown gate."""
        return self._shutdown_gate.acquire(blocking=False)

    async def _start_sequence(self):
        registry = RefreshLocationRegistry.build(
            self.archive_dirs, self.resolver, self.delimiter
        )

        mirror = self.mirror_factory(self.web_dir)
        await mirror.create()
        self._mirror = mirror
        logger.info(f"Using directory {self.web_dir} as local cache.")

        await mirror.write_dashboard_config(self.web_refresh_interval_ms)

        self._synchronizer = ArchiveSynchronizer(
            registry=registry,
            mirror=mirror,
            decoder=self.decoder,
            refresh_interval=self.refresh_interval_ms / 1000,
        )
        self._synchronizer.start()

        await self.frontend.start(mirror.root)
        self._frontend_started = True

        self._install_termination_hook()

    async def _stop_sequence(self):
        logger.info("Stopping history server.")
        try:
            if self._frontend_started:
                await self._shutdown_step(
                    "stop the web frontend", self.frontend.stop
                )
            if self._synchronizer is not None:
                await self._shutdown_step(
                    "stop the archive synchronizer", self._synchronizer.stop
                )
            if self._mirror is not None:
                logger.info(f"Removing local cache directory {self.web_dir}.")
                await self._shutdown_step(
                    f"remove the local cache directory {self.web_dir}",
                    self._mirror.destroy,
                )
            self._remove_termination_hook()
        finally:
            self._state = LifecycleState.STOPPED
            self._terminated.set()
            self._stopped.set()
        logger.info("Stopped history server.")

    async def _shutdown_step(
        self, description: str, step: Callable[[], Awaitable[None]]
    ):
        """Runs one stop step, logging instead of raising on failure."""
        try:
            await step()
        except Exception as e:
            error = ShutdownError(f"Failed to {description}: {e}")
            error.__cause__ = e
            logger.warning(str(error), exc_info=error)

    # --- Termination hook ---

    def _install_termination_hook(self):
        if not self.handle_signals:
            return

        self._loop = asyncio.get_running_loop()
        for sig in _TERMINATION_SIGNALS:
            try:
                self._loop.add_signal_handler(
                    sig, self._on_termination_signal, sig
                )
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Not on the main thread, or the platform lacks support.
                logger.debug(f"Unable to install handler for {sig.name}: {e}")
                continue
            self._installed_signals.append(sig)

    def _on_termination_signal(self, sig: signal.Signals):
        logger.info(f"Received {sig.name}; shutting down history server.")
        self._terminated.set()
        if self._hook_task is None:
            self._hook_task = asyncio.get_running_loop().create_task(
                self.stop(), name="history-server-shutdown"
            )

    def _remove_termination_hook(self):
        """Deregisters the signal handlers, unless running inside the hook."""
        if self._hook_task is not None and asyncio.current_task() is self._hook_task:
            logger.debug(
                "Stopping from the termination hook; keeping signal handlers."
            )
            return

        for sig in self._installed_signals:
            try:
                self._loop.remove_signal_handler(sig)
            except (RuntimeError, ValueError) as e:
                # The loop is already being torn down.
                logger.debug(f"Unable to remove handler for {sig.name}: {e}")
        self._installed_signals.clear()
