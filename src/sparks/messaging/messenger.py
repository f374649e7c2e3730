"""
Secure messenger: send and read flows on top of the encryption service.

SecureMessenger wires the injected EncryptionService to the message store,
key directory and blob store for one signed-in user:

- publish_identity: ensure the device key pair and publish its public key
- send_text / send_media: encrypt for the chat's members, then store the
  record and a placeholder conversation summary; refuse when nobody
  (not even the sender) could decrypt
- read_message / load_chat: decrypt what this device can read
- resolve_media: download and decrypt a media blob

All cryptography runs on an executor so the event loop is never blocked
by RSA operations.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
import uuid
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Iterable, Optional, TypeVar

from sparks.core import defaults
from sparks.crypto.codec import MessageCodec
from sparks.crypto.service import (
    DecryptionFailure,
    DecryptionResult,
    EncryptionService,
    FailureReason,
    SkippedRecipient,
)
from sparks.messaging.records import MessageRecord, MessageType, RecordFormatError
from sparks.messaging.stores import BlobStore, KeyDirectory, MessageStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MessageState(StrEnum):
    """Decryption state of a message on this device."""

    ENCRYPTED = "encrypted"
    PLAINTEXT = "plaintext"
    UNREADABLE = "unreadable"


@dataclass
class ReadableMessage:
    """A stored message together with what this device could make of it."""

    record: MessageRecord
    state: MessageState
    text: str
    failure: Optional[DecryptionFailure] = None


@dataclass
class SendReceipt:
    """Result of a send: the stored record and who cannot read it."""

    record: MessageRecord
    skipped_recipients: list[SkippedRecipient] = field(default_factory=list)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SecureMessenger:
    """Encrypted send/read flows for one signed-in user."""

    def __init__(
        self,
        service: EncryptionService,
        messages: MessageStore,
        directory: KeyDirectory,
        blobs: BlobStore,
        user_id: str,
        executor: Optional[Executor] = None,
    ):
        self.service = service
        self.messages = messages
        self.directory = directory
        self.blobs = blobs
        self.user_id = user_id
        self._executor = executor

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))

    # -------------------------------------------------------------------------
    # Identity and keys
    # -------------------------------------------------------------------------

    async def publish_identity(self) -> str:
        """Ensure this device has a key pair and publish its public key."""
        public_key = await self._run(self.service.identity.ensure_key_pair)
        await self.directory.publish_public_key(self.user_id, public_key)
        logger.info(f"Published identity key for {self.user_id}")
        return public_key

    async def fetch_member_keys(self, member_ids: Iterable[str]) -> dict[str, Optional[str]]:
        """Look up published keys for every member other than ourselves."""
        keys: dict[str, Optional[str]] = {}
        for member_id in member_ids:
            if member_id == self.user_id or member_id in keys:
                continue
            try:
                keys[member_id] = await self.directory.get_public_key(member_id)
            except RecordFormatError as e:
                logger.warning(f"Ignoring unusable profile for {member_id}: {e}")
                keys[member_id] = None
        return keys

    # -------------------------------------------------------------------------
    # Send
    # -------------------------------------------------------------------------

    async def send_text(
        self,
        chat_id: str,
        text: str,
        member_ids: Iterable[str],
        ttl_ms: int = 0,
        reply_to_id: Optional[str] = None,
    ) -> SendReceipt:
        """Encrypt *text* for the chat members (and ourselves) and store it."""
        recipients = await self.fetch_member_keys(member_ids)
        result = await self._run(
            self.service.encrypt_for_recipients,
            text.encode("utf-8"),
            recipients,
            self.user_id,
        )
        self._require_readers(chat_id, result.wrapped_keys, result.skipped_ids)
        record = self._new_record(
            text=result.payload,
            message_type=MessageType.TEXT,
            encryption_keys=result.wrapped_keys,
            ttl_ms=ttl_ms,
            reply_to_id=reply_to_id,
        )
        await self.messages.put_message(chat_id, record)
        await self.messages.update_summary(
            chat_id, defaults.CONVERSATION_PREVIEW, record.timestamp
        )
        if result.skipped_recipients:
            logger.warning(
                f"Message {record.id} in {chat_id} unreadable for {result.skipped_ids}"
            )
        return SendReceipt(record=record, skipped_recipients=result.skipped_recipients)

    async def send_media(
        self,
        chat_id: str,
        data: bytes,
        kind: MessageType,
        member_ids: Iterable[str],
        ttl_ms: int = 0,
    ) -> SendReceipt:
        """Encrypt a media blob, upload it and store a message pointing at it."""
        if kind == MessageType.TEXT:
            raise ValueError("send_media requires a media message type")

        recipients = await self.fetch_member_keys(member_ids)
        caption = defaults.MEDIA_CAPTIONS[kind.value].encode("utf-8")
        result = await self._run(
            self.service.encrypt_media,
            data,
            recipients,
            self.user_id,
            caption=caption,
        )
        self._require_readers(chat_id, result.wrapped_keys, result.skipped_ids)

        ext = defaults.MEDIA_EXTENSIONS[kind.value]
        path = f"chat_{kind.value}s/{chat_id}/{_now_ms()}_enc.{ext}"
        url = await self.blobs.upload(path, result.blob)

        record = self._new_record(
            text=result.caption_payload or "",
            message_type=kind,
            encryption_keys=result.wrapped_keys,
            ttl_ms=ttl_ms,
            media_url=url,
        )
        await self.messages.put_message(chat_id, record)
        await self.messages.update_summary(
            chat_id, defaults.MEDIA_SUMMARIES[kind.value], record.timestamp
        )
        return SendReceipt(record=record, skipped_recipients=result.skipped_recipients)

    @staticmethod
    def _require_readers(chat_id: str, wrapped_keys: dict[str, str], skipped: list[str]) -> None:
        if not wrapped_keys:
            raise ValueError(
                f"Refusing to send to {chat_id}: no reader has a usable public key"
                f" (skipped {skipped})"
            )

    def _new_record(
        self,
        text: str,
        message_type: MessageType,
        encryption_keys: dict[str, str],
        ttl_ms: int = 0,
        media_url: Optional[str] = None,
        reply_to_id: Optional[str] = None,
    ) -> MessageRecord:
        now = _now_ms()
        return MessageRecord(
            id=uuid.uuid4().hex,
            sender_id=self.user_id,
            text=text,
            timestamp=now,
            type=message_type,
            media_url=media_url,
            encryption_keys=encryption_keys,
            expires_at=now + ttl_ms if ttl_ms > 0 else None,
            reply_to_id=reply_to_id,
        )

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def read_message(self, record: MessageRecord) -> ReadableMessage:
        """Decrypt one message for this device; never raises on bad ciphertext."""
        if not record.is_encrypted:
            if MessageCodec.looks_sealed(record.text):
                return self._unreadable(
                    record,
                    DecryptionFailure(
                        FailureReason.NO_KEY_FOR_RECIPIENT, "sealed payload without wrapped keys"
                    ),
                )
            # Plain system messages predate encryption.
            return ReadableMessage(record, MessageState.PLAINTEXT, record.text)

        result = await self._run(
            self.service.decrypt_for_me, record.text, record.encryption_keys, self.user_id
        )
        if isinstance(result, DecryptionFailure):
            return self._unreadable(record, result)
        try:
            text = result.decode("utf-8")
        except UnicodeDecodeError:
            return self._unreadable(
                record, DecryptionFailure(FailureReason.MALFORMED_PAYLOAD, "not UTF-8 text")
            )
        return ReadableMessage(record, MessageState.PLAINTEXT, text)

    def _unreadable(self, record: MessageRecord, failure: DecryptionFailure) -> ReadableMessage:
        logger.warning(f"Message {record.id} unreadable: {failure.reason}")
        return ReadableMessage(
            record, MessageState.UNREADABLE, defaults.UNREADABLE_PLACEHOLDER, failure
        )

    async def load_chat(self, chat_id: str) -> list[ReadableMessage]:
        """Read every unexpired message in *chat_id*, oldest first."""
        now = _now_ms()
        records = await self.messages.list_messages(chat_id)
        return [
            await self.read_message(record)
            for record in records
            if not record.is_expired(now)
        ]

    async def resolve_media(self, record: MessageRecord) -> DecryptionResult:
        """Download and decrypt the blob a media message points at."""
        if not record.media_url:
            return DecryptionFailure(FailureReason.MALFORMED_PAYLOAD, "message has no media")
        if self.user_id not in record.encryption_keys:
            return DecryptionFailure(
                FailureReason.NO_KEY_FOR_RECIPIENT, f"media not encrypted for {self.user_id}"
            )
        blob = await self.blobs.download(record.media_url)
        return await self._run(
            self.service.decrypt_media, blob, record.encryption_keys, self.user_id
        )
