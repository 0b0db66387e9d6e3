"""aiohttp implementation of the WebFrontend port."""

import asyncio
import logging
import ssl
from pathlib import Path
from typing import Optional

from aiohttp import web

from ..application.domain import WebFrontend
from ..application.exceptions import ConfigurationError, LifecycleError

logger = logging.getLogger(__name__)

_JSON_SUFFIX = ".json"


def build_ssl_context(
    enabled: bool, certfile: str = "", keyfile: str = ""
) -> Optional[ssl.SSLContext]:
    """
    Creates the server-side TLS context for the web frontend.

    Returns:
        The context, or None when TLS is disabled.

    Raises:
        ConfigurationError: If TLS is enabled without a usable certificate.
    """
    if not enabled:
        return None

    if not certfile or not keyfile:
        raise ConfigurationError(
            "TLS is enabled but web.ssl_certfile/web.ssl_keyfile are not set."
        )

    logger.info("Enabling TLS for the web frontend.")
    try:
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        context.load_cert_chain(certfile, keyfile)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(
            f"Failed to initialize the TLS context for the web frontend: {e}"
        ) from e
    return context


class StaticFileFrontend(WebFrontend):
    """
    Serves the mirror directory read-only.

    REST-style paths map onto the mirror's JSON files: a request for
    `/jobs/<id>` is answered with `jobs/<id>.json` when no exact file exists.
    Only the JSON artifacts are served; dashboard assets are deployed
    separately, so the bare root path is a 404.
    """

    def __init__(
        self,
        address: str,
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        """Initializes the frontend; nothing is bound until `start()`."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.address = address
        self.port = port
        self.ssl_context = ssl_context
        self.root: Optional[Path] = None
        self._runner: Optional[web.AppRunner] = None

    @property
    def bound_port(self) -> Optional[int]:
        """The port actually listened on, useful when configured as 0."""
        if self._runner is None or not self._runner.addresses:
            return None
        return self._runner.addresses[0][1]

    def resolve(self, request_path: str) -> Optional[Path]:
        """Maps a request path to a file inside the root, if there is one."""
        relative = request_path.strip("/")
        if not relative:
            return None

        exact = (self.root / relative).resolve()
        candidates = [exact, exact.with_name(exact.name + _JSON_SUFFIX)]

        for candidate in candidates:
            if candidate.is_relative_to(self.root) and candidate.is_file():
                return candidate
        return None

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        path = await asyncio.to_thread(self.resolve, request.match_info["tail"])
        if path is None:
            raise web.HTTPNotFound()
        return web.FileResponse(path, headers={"Cache-Control": "no-cache"})

    async def start(self, root: Path):
        """
        Binds the listening socket and starts serving `root`.

        Raises:
            LifecycleError: If the frontend is already serving.
        """
        if self._runner is not None:
            raise LifecycleError("Web frontend is already running.")

        self.root = Path(root).resolve()

        app = web.Application()
        app.router.add_get("/{tail:.*}", self._handle)

        runner = web.AppRunner(app)
        await runner.setup()
        try:
            site = web.TCPSite(
                runner, self.address, self.port, ssl_context=self.ssl_context
            )
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        self._runner = runner

        scheme = "https" if self.ssl_context else "http"
        self.logger.info(
            f"Web frontend listening at {scheme}://{self.address}:{self.bound_port}."
        )

    async def stop(self):
        """Stops serving. Safe to call when not running."""
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        self.logger.info("Web frontend stopped.")
