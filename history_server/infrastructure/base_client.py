"""Base class for async HTTP clients."""

import logging
from typing import Dict, Optional

import httpx

from ..application.exceptions import ConfigurationError


class BaseClient:
    """A base client that handles an async client and optional token."""

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None):
        """
        Initializes the base client.

        Args:
            client: An instance of httpx.AsyncClient.
            token: An optional bearer token; requests are anonymous without.

        Raises:
            ConfigurationError: If the token appears to be a placeholder.
        """

        if token and "YOUR_" in token.upper():
            raise ConfigurationError(
                f"Authentication token for {self.__class__.__name__} is "
                f"a placeholder. Please check your config files."
            )

        self.client = client
        self.token = token or None
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def headers(self) -> Dict[str, str]:
        if self.token is None:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
