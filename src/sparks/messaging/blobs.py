"""
HTTP blob store for encrypted media.

Uploads and downloads opaque ``nonce || ciphertext`` byte arrays over
plain HTTP(S):
- PUT <base_url>/<path> with ``application/octet-stream`` body
- GET <url> returns the stored bytes

The store never sees plaintext or content keys.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from sparks.core.defaults import BLOB_REQUEST_TIMEOUT
from sparks.messaging.stores import BlobStoreError

logger = logging.getLogger(__name__)


class HttpBlobStore:
    """:class:`~sparks.messaging.stores.BlobStore` over HTTP via aiohttp."""

    def __init__(
        self,
        base_url: str,
        request_timeout: float = BLOB_REQUEST_TIMEOUT,
        headers: Optional[dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.headers = dict(headers or {})

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def upload(self, path: str, data: bytes) -> str:
        """PUT *data* at *path*.

        Returns:
            The URL the blob can be downloaded from.

        Raises:
            BlobStoreError: On non-2xx responses, connection errors or timeouts.
        """
        url = self.url_for(path)
        headers = {**self.headers, "Content-Type": "application/octet-stream"}
        try:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.put(url, data=data, headers=headers) as resp:
                    if resp.status not in (200, 201, 204):
                        raise BlobStoreError(
                            f"Upload to {url} returned HTTP {resp.status}: {await resp.text()}"
                        )
        except aiohttp.ClientError as e:
            raise BlobStoreError(f"Upload connection error: {e}") from e
        except asyncio.TimeoutError:
            raise BlobStoreError(f"Upload to {url} timed out")

        logger.debug(f"Uploaded {len(data)} encrypted bytes to {url}")
        return url

    async def download(self, url: str) -> bytes:
        """GET the blob at *url*.

        Raises:
            BlobStoreError: On non-200 responses, connection errors or timeouts.
        """
        try:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=self.headers) as resp:
                    if resp.status != 200:
                        raise BlobStoreError(
                            f"Download from {url} returned HTTP {resp.status}"
                        )
                    data = await resp.read()
        except aiohttp.ClientError as e:
            raise BlobStoreError(f"Download connection error: {e}") from e
        except asyncio.TimeoutError:
            raise BlobStoreError(f"Download from {url} timed out")

        logger.debug(f"Downloaded {len(data)} encrypted bytes from {url}")
        return data
