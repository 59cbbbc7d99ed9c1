"""Image loading for face recognition requests."""
from typing import Optional

import httpx

from facesearch.core.config import settings
from facesearch.core.exceptions import ImageDecodeError, ImageFetchError, ImageTooLargeError
from facesearch.core.logging import get_logger
from facesearch.core.utils.http import http_client
from facesearch.core.utils.image import (
    decode_base64_image,
    is_data_url,
    is_http_url,
    split_data_url,
)

logger = get_logger(__name__)


class ImageLoader:
    """Normalizes an image reference into raw bytes.

    Accepted references:
    1. ``data:image/...;base64,<payload>`` URLs
    2. HTTP(S) URLs, fetched fully into memory
    3. Bare base64 strings

    Images larger than ``max_bytes`` are rejected rather than truncated.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_bytes: Optional[int] = None,
    ) -> None:
        """Initialize the loader.

        Args:
            client: HTTP client to fetch URLs with; a short-lived one is used per call otherwise
            max_bytes: Largest image accepted, defaults to settings.MAX_IMAGE_BYTES
        """
        self._client = client
        self.max_bytes = settings.MAX_IMAGE_BYTES if max_bytes is None else max_bytes

    async def load(self, reference: str) -> bytes:
        """
        Load an image reference into bytes.

        Args:
            reference: Data URL, HTTP(S) URL or bare base64 string

        Returns:
            Raw image bytes

        Raises:
            ImageFetchError: If an HTTP fetch fails or returns a non-success status
            ImageDecodeError: If inline data cannot be decoded
            ImageTooLargeError: If the image exceeds the maximum size
        """
        reference = (reference or "").strip()
        if not reference:
            raise ImageDecodeError("Empty image reference")

        if is_http_url(reference):
            return await self._fetch(reference)
        if is_data_url(reference):
            return decode_base64_image(split_data_url(reference), self.max_bytes)
        return decode_base64_image(reference, self.max_bytes)

    async def _fetch(self, url: str) -> bytes:
        try:
            async with http_client(self._client) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        logger.warning(
                            "Image fetch returned non-success status",
                            url=url,
                            status_code=response.status_code
                        )
                        raise ImageFetchError(
                            f"Failed to fetch image: HTTP {response.status_code}",
                            details={"status_code": response.status_code}
                        )

                    content_length = response.headers.get("content-length")
                    if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
                        raise self._too_large(url)

                    buffer = bytearray()
                    async for chunk in response.aiter_bytes():
                        buffer.extend(chunk)
                        if len(buffer) > self.max_bytes:
                            raise self._too_large(url)
        except httpx.HTTPError as e:
            logger.warning("Image fetch failed", url=url, error=str(e))
            raise ImageFetchError(f"Failed to fetch image: {e}") from e

        if not buffer:
            raise ImageFetchError("Fetched image is empty")
        return bytes(buffer)

    def _too_large(self, url: str) -> ImageTooLargeError:
        logger.warning("Image exceeds maximum size", url=url, max_bytes=self.max_bytes)
        return ImageTooLargeError(
            f"Image exceeds maximum size of {self.max_bytes} bytes",
            details={"max_bytes": self.max_bytes}
        )
