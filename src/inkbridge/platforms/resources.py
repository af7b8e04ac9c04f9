"""Size-bounded download of platform-hosted files."""

import logging
from typing import Optional

import httpx

from inkbridge.platforms.exceptions import BridgeError, ContentTooLargeError
from inkbridge.platforms.models import Attachment

logger = logging.getLogger(__name__)


async def download_resource(
    client: httpx.AsyncClient,
    url: str,
    max_bytes: int,
    filename: Optional[str] = None,
    timeout: float = 120.0,
) -> Attachment:
    """Download a file into memory without exceeding ``max_bytes``.

    The declared Content-Length is checked before reading; the body is then
    read in chunks and abandoned as soon as it grows past the ceiling.

    Args:
        client: Client carrying the platform's authentication
        url: Absolute or client-relative resource URL
        max_bytes: Largest accepted body
        filename: Name recorded on the attachment
        timeout: Download timeout in seconds

    Returns:
        Attachment with the body and the response's MIME type

    Raises:
        ContentTooLargeError: If the declared or actual size exceeds the ceiling
        BridgeError: If the server answers with a non-2xx status
    """
    async with client.stream("GET", url, timeout=timeout) as response:
        if not 200 <= response.status_code < 300:
            body = (await response.aread()).decode("utf-8", errors="replace")
            raise BridgeError(f"HTTP {response.status_code}: {body[:200]}")

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            raise ContentTooLargeError(int(declared), max_bytes)

        chunks: list[bytes] = []
        size = 0
        async for chunk in response.aiter_bytes():
            size += len(chunk)
            if size > max_bytes:
                raise ContentTooLargeError(size, max_bytes)
            chunks.append(chunk)

        content_type = response.headers.get("content-type", "")

    mime = content_type.split(";")[0].strip() or "application/octet-stream"
    logger.debug(f"Downloaded {size} bytes ({mime}) from {url}")
    return Attachment(filename=filename, mime=mime, data=b"".join(chunks))
