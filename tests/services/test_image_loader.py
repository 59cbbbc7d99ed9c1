"""Tests for image reference loading."""
import base64

import httpx
import pytest

from facesearch.core.exceptions import ImageDecodeError, ImageFetchError, ImageTooLargeError
from facesearch.services.image_loader import ImageLoader

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg-bytes"


def make_loader(handler, max_bytes=1024) -> ImageLoader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageLoader(client=client, max_bytes=max_bytes)


class TestImageLoader:
    """Test suite for ImageLoader."""

    async def test_loads_data_url(self):
        """Should decode the payload of a base64 data URL."""
        loader = ImageLoader()
        reference = "data:image/jpeg;base64," + base64.b64encode(IMAGE).decode()

        assert await loader.load(reference) == IMAGE

    async def test_loads_bare_base64_with_whitespace_and_missing_padding(self):
        """Should tolerate line breaks and stripped padding."""
        encoded = base64.b64encode(IMAGE).decode().rstrip("=")
        wrapped = "\n".join(encoded[i:i + 8] for i in range(0, len(encoded), 8))

        assert await ImageLoader().load(wrapped) == IMAGE

    async def test_loads_urlsafe_base64(self):
        """Should accept the URL-safe alphabet."""
        data = b"\xfb\xff\xfe" * 4
        assert await ImageLoader().load(base64.urlsafe_b64encode(data).decode()) == data

    async def test_invalid_base64_raises_decode_error(self):
        with pytest.raises(ImageDecodeError):
            await ImageLoader().load("@@@@")

    @pytest.mark.parametrize("reference", [
        "C:/photos/a_b.jpg",
        "photos/a-b.jpg",
        "partner_face.jpg",
        "ab-c+def",
    ])
    async def test_path_like_text_is_not_decoded(self, reference):
        """Should refuse text outside the base64 alphabets instead of dropping characters."""
        with pytest.raises(ImageDecodeError):
            await ImageLoader().load(reference)

    async def test_empty_reference_raises_decode_error(self):
        with pytest.raises(ImageDecodeError):
            await ImageLoader().load("  ")

    async def test_data_url_without_base64_raises_decode_error(self):
        with pytest.raises(ImageDecodeError):
            await ImageLoader().load("data:image/png,rawbytes")

    async def test_oversized_inline_image_raises(self):
        """Should reject inline images larger than the limit."""
        loader = ImageLoader(max_bytes=4)
        with pytest.raises(ImageTooLargeError):
            await loader.load(base64.b64encode(IMAGE).decode())

    async def test_fetches_http_url(self):
        """Should fetch the whole body of an HTTP(S) URL."""
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=IMAGE)

        loader = make_loader(handler)

        assert await loader.load("https://photos.example.com/a.jpg") == IMAGE
        assert requested == ["https://photos.example.com/a.jpg"]

    async def test_non_success_status_raises_fetch_error(self):
        loader = make_loader(lambda request: httpx.Response(404))

        with pytest.raises(ImageFetchError) as exc_info:
            await loader.load("https://photos.example.com/missing.jpg")
        assert exc_info.value.details["status_code"] == 404

    async def test_transport_error_raises_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        loader = make_loader(handler)

        with pytest.raises(ImageFetchError):
            await loader.load("https://photos.example.com/a.jpg")

    async def test_oversized_download_raises(self):
        """Should refuse bodies above the limit instead of truncating them."""
        loader = make_loader(lambda request: httpx.Response(200, content=b"x" * 64), max_bytes=16)

        with pytest.raises(ImageTooLargeError):
            await loader.load("https://photos.example.com/big.jpg")

    async def test_empty_body_raises_fetch_error(self):
        loader = make_loader(lambda request: httpx.Response(200, content=b""))

        with pytest.raises(ImageFetchError):
            await loader.load("https://photos.example.com/empty.jpg")
