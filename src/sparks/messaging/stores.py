"""Store interfaces for the services the encryption core plugs into.

Design goals:
* Pure protocols, so backends (a hosted document store, a test double)
  never need to inherit from a shared base.
* Async-first: every operation that may touch the network is a coroutine.
* The stores only ever see ciphertext, wrapped keys and public keys.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Optional, Protocol, runtime_checkable

from sparks.messaging.records import MessageRecord, UserKeyRecord


class BlobStoreError(Exception):
    """Raised when a blob upload or download fails."""


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class MessageStore(Protocol):
    """Document store holding ``chats/<chat_id>/messages``."""

    async def put_message(self, chat_id: str, record: MessageRecord) -> None:
        """Write *record* into *chat_id*."""
        ...

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        """Return every message in *chat_id*, ordered by timestamp."""
        ...

    async def update_summary(self, chat_id: str, last_message: str, timestamp: int) -> None:
        """Merge ``lastMessage`` and ``timestamp`` into the conversation summary.

        *last_message* is a fixed placeholder, never message plaintext.
        """
        ...


@runtime_checkable
class KeyDirectory(Protocol):
    """Directory of published public keys (the ``publicKey`` profile field)."""

    async def get_public_key(self, user_id: str) -> Optional[str]:
        """Return *user_id*'s published key, or ``None``."""
        ...

    async def publish_public_key(self, user_id: str, public_key: str) -> None:
        """Publish (or replace) *user_id*'s key."""
        ...


@runtime_checkable
class BlobStore(Protocol):
    """Binary object store for encrypted media."""

    async def upload(self, path: str, data: bytes) -> str:
        """Store *data* under *path* and return a URL for download."""
        ...

    async def download(self, url: str) -> bytes:
        """Fetch the bytes previously stored at *url*."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryMessageStore:
    """Message store backed by a dict of lists."""

    def __init__(self) -> None:
        self._chats: dict[str, list[MessageRecord]] = defaultdict(list)
        self._summaries: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def put_message(self, chat_id: str, record: MessageRecord) -> None:
        async with self._lock:
            self._chats[chat_id].append(record)

    async def list_messages(self, chat_id: str) -> list[MessageRecord]:
        async with self._lock:
            return sorted(self._chats.get(chat_id, []), key=lambda r: r.timestamp)

    async def update_summary(self, chat_id: str, last_message: str, timestamp: int) -> None:
        async with self._lock:
            summary = self._summaries.setdefault(chat_id, {})
            summary.update({"lastMessage": last_message, "timestamp": timestamp})

    async def get_summary(self, chat_id: str) -> dict[str, Any]:
        async with self._lock:
            return dict(self._summaries.get(chat_id, {}))


class InMemoryKeyDirectory:
    """Key directory over in-memory user profile documents.

    *keys* seeds ``publicKey`` fields; *profiles* seeds whole documents.
    Reads go through :class:`UserKeyRecord`, so a mistyped ``publicKey``
    raises :class:`~sparks.messaging.records.RecordFormatError`.
    """

    def __init__(
        self,
        keys: Optional[dict[str, str]] = None,
        profiles: Optional[dict[str, dict[str, Any]]] = None,
    ) -> None:
        self._profiles: dict[str, dict[str, Any]] = {
            user_id: dict(doc) for user_id, doc in (profiles or {}).items()
        }
        for user_id, public_key in (keys or {}).items():
            self._profiles.setdefault(user_id, {})["publicKey"] = public_key

    async def get_public_key(self, user_id: str) -> Optional[str]:
        return UserKeyRecord.from_document(user_id, self._profiles.get(user_id)).public_key

    async def publish_public_key(self, user_id: str, public_key: str) -> None:
        self._profiles.setdefault(user_id, {})["publicKey"] = public_key


class InMemoryBlobStore:
    """Blob store backed by a dict; URLs use the ``memory://`` scheme."""

    SCHEME = "memory://"

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes) -> str:
        url = f"{self.SCHEME}{path}"
        self._blobs[url] = bytes(data)
        return url

    async def download(self, url: str) -> bytes:
        try:
            return self._blobs[url]
        except KeyError:
            raise BlobStoreError(f"No blob at {url}") from None
