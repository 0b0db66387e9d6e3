"""HTTP implementation of the ArchiveStore port."""

from typing import List, Optional
from urllib.parse import quote

import httpx
import pydantic

from ..application.domain import ArchiveStore
from ..application.exceptions import FetchError, StoreError

from .base_client import BaseClient
from .decorators import retry_on_network_error
from .models import ArchiveListing


class HttpArchiveStore(BaseClient, ArchiveStore):
    """
    A store reading archives from an HTTP location.

    `GET <base_url>/` must return an ArchiveListing document and
    `GET <base_url>/<archive_id>` the archive payload.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30,
    ):
        """Initializes the store adapter."""
        super().__init__(client, token)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @retry_on_network_error
    async def _get(self, url: str) -> httpx.Response:
        """Executes the raw HTTP GET request."""
        response = await self.client.get(
            url, headers=self.headers, timeout=self.timeout
        )
        response.raise_for_status()
        return response

    async def list_archives(self) -> List[str]:
        """
        Fetches and validates the archive listing of the location.

        Raises:
            StoreError: If the listing cannot be fetched or is malformed.
        """
        try:
            response = await self._get(f"{self.base_url}/")
            listing = ArchiveListing.model_validate_json(response.content)
        except (httpx.HTTPError, pydantic.ValidationError) as e:
            raise StoreError(f"Failed to list {self.base_url}: {e}") from e

        self.logger.debug(
            f"Found {len(listing.archives)} archive(s) at {self.base_url}."
        )
        return listing.archives

    async def read_archive(self, archive_id: str) -> bytes:
        """
        Downloads one archive payload.

        Raises:
            FetchError: If the archive cannot be downloaded.
        """
        url = f"{self.base_url}/{quote(archive_id, safe='')}"
        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download {url}: {e}") from e
        return response.content
