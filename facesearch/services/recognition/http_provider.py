"""
Shared plumbing for providers reached over plain HTTPS.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import httpx

from facesearch.core.exceptions import ProviderUnavailableError
from facesearch.core.logging import get_logger
from facesearch.core.utils.http import default_timeout
from facesearch.domain.entities.provider import ProviderConfig
from facesearch.domain.interfaces.recognition import FaceProviderClient

logger = get_logger(__name__)


class HttpFaceProvider(FaceProviderClient):
    """Base class for providers using an httpx client.

    A client passed in is shared and left open; otherwise the provider lazily
    opens its own client and closes it in ``aclose``.
    """

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(config)
        self._client = client
        self._owns_client = client is None

    @asynccontextmanager
    async def _get_client(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        if self._client is None:
            logger.debug("Initializing HTTP client", provider=self.provider_type.value)
            self._client = httpx.AsyncClient(timeout=default_timeout())
            self._owns_client = True
        yield self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> httpx.Response:
        """Send a request, translating transport failures into ProviderUnavailableError."""
        try:
            async with self._get_client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(
                "Provider request timed out",
                provider=self.provider_type.value,
                operation=operation
            )
            raise ProviderUnavailableError(
                f"{self.provider_type.value} {operation} timed out",
                provider=self.provider_type.value
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "Provider request failed",
                provider=self.provider_type.value,
                operation=operation,
                error=str(e)
            )
            raise ProviderUnavailableError(
                f"{self.provider_type.value} {operation} failed: {e}",
                provider=self.provider_type.value
            ) from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """Decode a JSON body, returning None for empty or non-JSON bodies."""
        try:
            return response.json()
        except ValueError:
            return None
