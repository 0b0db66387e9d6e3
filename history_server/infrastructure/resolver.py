"""Resolution of refresh location URIs to storage backends."""

from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit
from urllib.request import url2pathname

import httpx

from ..application.domain import ArchiveStore, StoreResolver
from ..application.exceptions import ConfigurationError

from .http_store import HttpArchiveStore
from .local_store import LocalArchiveStore


class SchemeStoreResolver(StoreResolver):
    """Picks the ArchiveStore implementation from the URI scheme."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: Optional[str] = None,
        timeout: float = 30,
    ):
        self.client = client
        self.token = token
        self.timeout = timeout

    def resolve(self, uri: str) -> ArchiveStore:
        scheme = urlsplit(uri).scheme

        if scheme == "file":
            return LocalArchiveStore(Path(url2pathname(urlsplit(uri).path)))

        if scheme in ("http", "https"):
            return HttpArchiveStore(
                self.client, uri, token=self.token, timeout=self.timeout
            )

        raise ConfigurationError(f"No archive store supports scheme '{scheme}'.")
