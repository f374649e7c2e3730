"""
Typed records parsed at the document-store boundary.

The store hands back loosely-typed documents. Everything here validates
field types once, so the encryption core only ever sees a ``str`` payload
and a ``dict[str, str]`` wrapped key map.

MessageRecord: a chat message (payload + wrapped keys + metadata)
UserKeyRecord: a user's published public key
PushPayload: the data fields of an incoming push notification
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from sparks.core.defaults import DEFAULT_SENDER_NAME


class RecordFormatError(ValueError):
    """A store document or push payload has missing or mistyped fields."""


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


class MessageStatus(StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


def _require_str(doc: dict[str, Any], name: str, default: Optional[str] = None) -> str:
    value = doc.get(name, default)
    if not isinstance(value, str):
        raise RecordFormatError(f"Field {name!r} must be a string, got {type(value).__name__}")
    return value


def _optional_str(doc: dict[str, Any], name: str) -> Optional[str]:
    value = doc.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RecordFormatError(f"Field {name!r} must be a string, got {type(value).__name__}")
    return value


def _optional_int(doc: dict[str, Any], name: str) -> Optional[int]:
    value = doc.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordFormatError(f"Field {name!r} must be an integer, got {type(value).__name__}")
    return value


def _enum_value(enum_cls, doc: dict[str, Any], name: str, default):
    raw = doc.get(name, default.value)
    if not isinstance(raw, str):
        raise RecordFormatError(f"Field {name!r} must be a string")
    try:
        return enum_cls(raw.lower())
    except ValueError as e:
        raise RecordFormatError(f"Unknown {name} {raw!r}") from e


def parse_wrapped_keys(value: Any) -> dict[str, str]:
    """Validate a wrapped key map: recipient id -> base64 wrapped key."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RecordFormatError(
            f"encryptionKeys must be a map, got {type(value).__name__}"
        )
    keys: dict[str, str] = {}
    for recipient_id, wrapped in value.items():
        if not isinstance(recipient_id, str) or not isinstance(wrapped, str):
            raise RecordFormatError("encryptionKeys entries must map strings to strings")
        keys[recipient_id] = wrapped
    return keys


@dataclass
class MessageRecord:
    """A message as stored in ``chats/<chat_id>/messages``.

    ``text`` holds the encrypted payload and ``encryption_keys`` the wrapped
    key map. Both are written once when the message is created.
    """

    id: str
    sender_id: str
    text: str
    timestamp: int
    type: MessageType = MessageType.TEXT
    status: MessageStatus = MessageStatus.SENT
    media_url: Optional[str] = None
    encryption_keys: dict[str, str] = field(default_factory=dict)
    expires_at: Optional[int] = None
    reply_to_id: Optional[str] = None

    @property
    def is_encrypted(self) -> bool:
        return bool(self.encryption_keys)

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        """Whether a disappearing message has passed its expiry time."""
        if self.expires_at is None:
            return False
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return self.expires_at <= now_ms

    def to_document(self) -> dict[str, Any]:
        """Serialize using the store's field names."""
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "text": self.text,
            "timestamp": self.timestamp,
            "type": self.type.value.upper(),
            "status": self.status.value.upper(),
            "imageUrl": self.media_url,
            "encryptionKeys": dict(self.encryption_keys),
            "expiresAt": self.expires_at,
            "replyToId": self.reply_to_id,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "MessageRecord":
        """Parse and validate a store document.

        Raises:
            RecordFormatError: If a field is missing or has the wrong type.
        """
        if not isinstance(doc, dict):
            raise RecordFormatError(f"Message document must be a map, got {type(doc).__name__}")
        timestamp = _optional_int(doc, "timestamp")
        return cls(
            id=_require_str(doc, "id", ""),
            sender_id=_require_str(doc, "senderId", ""),
            text=_require_str(doc, "text", ""),
            timestamp=timestamp if timestamp is not None else 0,
            type=_enum_value(MessageType, doc, "type", MessageType.TEXT),
            status=_enum_value(MessageStatus, doc, "status", MessageStatus.SENT),
            media_url=_optional_str(doc, "imageUrl"),
            encryption_keys=parse_wrapped_keys(doc.get("encryptionKeys")),
            expires_at=_optional_int(doc, "expiresAt"),
            reply_to_id=_optional_str(doc, "replyToId"),
        )


@dataclass
class UserKeyRecord:
    """The public key field of a user profile document."""

    user_id: str
    public_key: Optional[str] = None

    @classmethod
    def from_document(cls, user_id: str, doc: Optional[dict[str, Any]]) -> "UserKeyRecord":
        if not doc:
            return cls(user_id=user_id)
        public_key = _optional_str(doc, "publicKey")
        return cls(user_id=user_id, public_key=public_key or None)


@dataclass
class PushPayload:
    """Data fields of a chat push notification.

    ``encrypted_key`` is the single wrapped key addressed to the notified
    recipient, not the full map.
    """

    chat_id: str
    sender_id: str
    sender_name: str = DEFAULT_SENDER_NAME
    encrypted_content: str = ""
    encrypted_key: str = ""

    def to_data(self) -> dict[str, str]:
        return {
            "chatId": self.chat_id,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "encryptedContent": self.encrypted_content,
            "encryptedKey": self.encrypted_key,
        }

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "PushPayload":
        """Parse a push data map; ``chatId`` and ``senderId`` are required."""
        chat_id = data.get("chatId")
        sender_id = data.get("senderId")
        if not chat_id or not sender_id:
            raise RecordFormatError("Push payload requires chatId and senderId")
        return cls(
            chat_id=_require_str(data, "chatId"),
            sender_id=_require_str(data, "senderId"),
            sender_name=_optional_str(data, "senderName") or DEFAULT_SENDER_NAME,
            encrypted_content=_optional_str(data, "encryptedContent") or "",
            encrypted_key=_optional_str(data, "encryptedKey") or "",
        )

    @classmethod
    def for_recipient(
        cls, chat_id: str, record: MessageRecord, recipient_id: str, sender_name: str
    ) -> "PushPayload":
        """Build the payload a relay would send to *recipient_id* for *record*."""
        return cls(
            chat_id=chat_id,
            sender_id=record.sender_id,
            sender_name=sender_name or DEFAULT_SENDER_NAME,
            encrypted_content=record.text,
            encrypted_key=record.encryption_keys.get(recipient_id, ""),
        )
