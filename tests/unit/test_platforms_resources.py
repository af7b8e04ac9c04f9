"""Unit tests for bounded resource downloads."""

import httpx
import pytest

from inkbridge.platforms.exceptions import BridgeError, ContentTooLargeError
from inkbridge.platforms.resources import download_resource


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDownloadResource:
    """Tests for download_resource."""

    @pytest.mark.asyncio
    async def test_download(self):
        """Test a body within the limit."""
        client = client_for(
            lambda request: httpx.Response(
                200, content=b"image-bytes", headers={"content-type": "image/png; charset=binary"}
            )
        )

        attachment = await download_resource(client, "https://files.test/a", 1024, filename="a.png")

        assert attachment.data == b"image-bytes"
        assert attachment.mime == "image/png"
        assert attachment.filename == "a.png"

    @pytest.mark.asyncio
    async def test_default_mime(self):
        """Test the fallback content type."""
        client = client_for(lambda request: httpx.Response(200, content=b"x"))

        attachment = await download_resource(client, "https://files.test/a", 10)

        assert attachment.mime == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_declared_size_too_large(self):
        """Test rejection by Content-Length."""
        client = client_for(
            lambda request: httpx.Response(200, content=b"0123456789", headers={"content-length": "10"})
        )

        with pytest.raises(ContentTooLargeError) as exc_info:
            await download_resource(client, "https://files.test/a", 5)

        assert exc_info.value.size == 10
        assert exc_info.value.max_bytes == 5

    @pytest.mark.asyncio
    async def test_streamed_size_too_large(self):
        """Test rejection while reading a body without Content-Length."""

        async def chunks():
            for _ in range(4):
                yield b"abc"

        client = client_for(lambda request: httpx.Response(200, content=chunks()))

        with pytest.raises(ContentTooLargeError):
            await download_resource(client, "https://files.test/a", 8)

    @pytest.mark.asyncio
    async def test_exact_limit_accepted(self):
        """Test that a body of exactly max_bytes is accepted."""
        client = client_for(lambda request: httpx.Response(200, content=b"12345"))

        attachment = await download_resource(client, "https://files.test/a", 5)

        assert len(attachment.data) == 5

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test that non-2xx responses raise BridgeError with status and body."""
        client = client_for(lambda request: httpx.Response(403, text="Forbidden"))

        with pytest.raises(BridgeError, match="HTTP 403: Forbidden"):
            await download_resource(client, "https://files.test/a", 5)
