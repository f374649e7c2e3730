"""Cryptographic core for Sparks end-to-end encrypted messaging.

This package provides:
- AsymmetricIdentity: per-device RSA key pair backed by a SecureKeyStore
- SymmetricEnvelope: one-time AES-256-GCM content keys
- KeyWrapper: per-recipient RSA wrapping of content keys
- MessageCodec: ``base64(nonce):base64(ciphertext)`` payload strings
- EncryptionService: the orchestrator consumers use
"""

from sparks.crypto.codec import MessageCodec
from sparks.crypto.envelope import SymmetricEnvelope
from sparks.crypto.errors import (
    AuthenticationError,
    FormatError,
    KeyFormatError,
    KeyStoreError,
    NoKeyForRecipient,
    SparksCryptoError,
    UnwrapError,
)
from sparks.crypto.identity import AsymmetricIdentity, encode_public_key
from sparks.crypto.keystore import FileKeyStore, MemoryKeyStore, SecureKeyStore
from sparks.crypto.service import (
    DecryptionFailure,
    DecryptionResult,
    EncryptionResult,
    EncryptionService,
    FailureReason,
    MediaEncryptionResult,
    SkippedRecipient,
    is_failure,
)
from sparks.crypto.wrapper import KeyWrapper

__all__ = [
    # Components
    "AsymmetricIdentity",
    "SymmetricEnvelope",
    "KeyWrapper",
    "MessageCodec",
    "EncryptionService",
    "encode_public_key",
    # Key stores
    "SecureKeyStore",
    "MemoryKeyStore",
    "FileKeyStore",
    # Results
    "EncryptionResult",
    "MediaEncryptionResult",
    "SkippedRecipient",
    "DecryptionFailure",
    "DecryptionResult",
    "FailureReason",
    "is_failure",
    # Exceptions
    "SparksCryptoError",
    "KeyFormatError",
    "AuthenticationError",
    "FormatError",
    "NoKeyForRecipient",
    "UnwrapError",
    "KeyStoreError",
]
