"""Tests for store interfaces, in-memory stores and the HTTP blob store."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from sparks.messaging.blobs import HttpBlobStore
from sparks.messaging.records import MessageRecord, RecordFormatError
from sparks.messaging.stores import (
    BlobStore,
    BlobStoreError,
    InMemoryBlobStore,
    InMemoryKeyDirectory,
    InMemoryMessageStore,
    KeyDirectory,
    MessageStore,
)


def _mock_session(method: str, resp) -> AsyncMock:
    """Build an aiohttp.ClientSession mock whose *method* yields *resp*."""
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    setattr(
        session,
        method,
        MagicMock(return_value=AsyncMock(
            __aenter__=AsyncMock(return_value=resp),
            __aexit__=AsyncMock(return_value=False),
        )),
    )
    return session


# =========================================================================
# Protocol conformance
# =========================================================================


class TestProtocols:

    def test_in_memory_implementations(self) -> None:
        assert isinstance(InMemoryMessageStore(), MessageStore)
        assert isinstance(InMemoryKeyDirectory(), KeyDirectory)
        assert isinstance(InMemoryBlobStore(), BlobStore)
        assert isinstance(HttpBlobStore("https://blobs.example"), BlobStore)


# =========================================================================
# In-memory stores
# =========================================================================


class TestInMemoryStores:

    @pytest.mark.asyncio
    async def test_messages_ordered_by_timestamp(self) -> None:
        store = InMemoryMessageStore()
        await store.put_message("c1", MessageRecord("b", "u", "t", timestamp=20))
        await store.put_message("c1", MessageRecord("a", "u", "t", timestamp=10))
        await store.put_message("c2", MessageRecord("z", "u", "t", timestamp=5))

        assert [r.id for r in await store.list_messages("c1")] == ["a", "b"]
        assert await store.list_messages("missing") == []

    @pytest.mark.asyncio
    async def test_key_directory(self) -> None:
        directory = InMemoryKeyDirectory({"alice": "KEY-A"})
        assert await directory.get_public_key("alice") == "KEY-A"
        assert await directory.get_public_key("bob") is None
        await directory.publish_public_key("bob", "KEY-B")
        assert await directory.get_public_key("bob") == "KEY-B"

    @pytest.mark.asyncio
    async def test_summary_merges(self) -> None:
        store = InMemoryMessageStore()
        assert await store.get_summary("c1") == {}
        await store.update_summary("c1", "🔒 Encrypted Message", 10)
        await store.update_summary("c1", "📷 Photo", 20)
        assert await store.get_summary("c1") == {"lastMessage": "📷 Photo", "timestamp": 20}

    @pytest.mark.asyncio
    async def test_key_directory_reads_profiles(self) -> None:
        directory = InMemoryKeyDirectory(
            profiles={
                "alice": {"firstName": "Alice", "publicKey": "KEY-A"},
                "bob": {"firstName": "Bob", "publicKey": ""},
                "odd": {"publicKey": 12},
            }
        )
        assert await directory.get_public_key("alice") == "KEY-A"
        assert await directory.get_public_key("bob") is None
        with pytest.raises(RecordFormatError):
            await directory.get_public_key("odd")

        await directory.publish_public_key("bob", "KEY-B")
        assert await directory.get_public_key("bob") == "KEY-B"

    @pytest.mark.asyncio
    async def test_blob_round_trip(self) -> None:
        blobs = InMemoryBlobStore()
        url = await blobs.upload("chat_images/c1/1_enc.jpg", b"\x00\x01")
        assert url == "memory://chat_images/c1/1_enc.jpg"
        assert await blobs.download(url) == b"\x00\x01"

    @pytest.mark.asyncio
    async def test_blob_missing(self) -> None:
        with pytest.raises(BlobStoreError):
            await InMemoryBlobStore().download("memory://nope")


# =========================================================================
# HTTP blob store
# =========================================================================


class TestHttpBlobStore:

    def test_url_for(self) -> None:
        store = HttpBlobStore("https://blobs.example/")
        assert store.url_for("/chat_audio/c1/x.mp3") == "https://blobs.example/chat_audio/c1/x.mp3"

    @pytest.mark.asyncio
    async def test_upload_success(self) -> None:
        resp = AsyncMock()
        resp.status = 201
        session = _mock_session("put", resp)

        store = HttpBlobStore("https://blobs.example", headers={"Authorization": "Bearer t"})
        with patch("aiohttp.ClientSession", return_value=session):
            url = await store.upload("chat_images/c1/1_enc.jpg", b"cipher")

        assert url == "https://blobs.example/chat_images/c1/1_enc.jpg"
        args, kwargs = session.put.call_args
        assert args[0] == url
        assert kwargs["data"] == b"cipher"
        assert kwargs["headers"]["Content-Type"] == "application/octet-stream"
        assert kwargs["headers"]["Authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_upload_http_error(self) -> None:
        resp = AsyncMock()
        resp.status = 403
        resp.text = AsyncMock(return_value="forbidden")
        session = _mock_session("put", resp)

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(BlobStoreError, match="403"):
                await HttpBlobStore("https://blobs.example").upload("p", b"x")

    @pytest.mark.asyncio
    async def test_download_success(self) -> None:
        resp = AsyncMock()
        resp.status = 200
        resp.read = AsyncMock(return_value=b"encrypted-bytes")
        session = _mock_session("get", resp)

        with patch("aiohttp.ClientSession", return_value=session):
            data = await HttpBlobStore("https://blobs.example").download(
                "https://blobs.example/p"
            )

        assert data == b"encrypted-bytes"

    @pytest.mark.asyncio
    async def test_download_not_found(self) -> None:
        resp = AsyncMock()
        resp.status = 404
        session = _mock_session("get", resp)

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(BlobStoreError, match="404"):
                await HttpBlobStore("https://blobs.example").download("https://blobs.example/p")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        session = AsyncMock()
        session.__aenter__ = AsyncMock(side_effect=aiohttp.ClientError("Connection refused"))
        session.__aexit__ = AsyncMock(return_value=False)

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(BlobStoreError, match="connection error"):
                await HttpBlobStore("https://blobs.example").download("https://blobs.example/p")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        session = AsyncMock()
        session.__aenter__ = AsyncMock(side_effect=asyncio.TimeoutError())
        session.__aexit__ = AsyncMock(return_value=False)

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(BlobStoreError, match="timed out"):
                await HttpBlobStore("https://blobs.example").upload("p", b"x")
