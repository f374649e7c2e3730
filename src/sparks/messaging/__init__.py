"""
Sparks messaging - collaborators around the encryption core.

This module provides typed store records, store interfaces and the
send/read/notification flows that consume
:class:`~sparks.crypto.service.EncryptionService`.
"""

from sparks.messaging.blobs import HttpBlobStore
from sparks.messaging.messenger import (
    MessageState,
    ReadableMessage,
    SecureMessenger,
    SendReceipt,
)
from sparks.messaging.notifications import (
    NotificationDecryptor,
    NotificationPreview,
    SuppressionRules,
)
from sparks.messaging.records import (
    MessageRecord,
    MessageStatus,
    MessageType,
    PushPayload,
    RecordFormatError,
    UserKeyRecord,
    parse_wrapped_keys,
)
from sparks.messaging.stores import (
    BlobStore,
    BlobStoreError,
    InMemoryBlobStore,
    InMemoryKeyDirectory,
    InMemoryMessageStore,
    KeyDirectory,
    MessageStore,
)

__all__ = [
    # Records
    "MessageRecord",
    "MessageStatus",
    "MessageType",
    "PushPayload",
    "RecordFormatError",
    "UserKeyRecord",
    "parse_wrapped_keys",
    # Stores
    "MessageStore",
    "KeyDirectory",
    "BlobStore",
    "BlobStoreError",
    "InMemoryMessageStore",
    "InMemoryKeyDirectory",
    "InMemoryBlobStore",
    "HttpBlobStore",
    # Flows
    "SecureMessenger",
    "SendReceipt",
    "ReadableMessage",
    "MessageState",
    "NotificationDecryptor",
    "NotificationPreview",
    "SuppressionRules",
]
