"""
One-time content keys for messages and media.

Every message or media object gets its own random AES-256 key. The key
only exists in memory while the sender wraps it for recipients, and while
a recipient decrypts.

Two output forms share the same cipher:
- text: ``base64(nonce):base64(ciphertext)`` via :class:`MessageCodec`
- media: ``nonce || ciphertext`` raw bytes, for compact blob storage

AES-GCM appends its 16-byte tag to the ciphertext, so any bit flip in
either form fails authentication instead of yielding altered plaintext.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sparks.core.defaults import CONTENT_KEY_SIZE, NONCE_SIZE, TAG_SIZE
from sparks.crypto.codec import MessageCodec
from sparks.crypto.errors import AuthenticationError, FormatError, KeyFormatError


def _validate_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != CONTENT_KEY_SIZE:
        raise KeyFormatError(f"Content key must be exactly {CONTENT_KEY_SIZE} bytes")


class SymmetricEnvelope:
    """Generate and apply one-time AES-256-GCM content keys."""

    @staticmethod
    def generate_key() -> bytes:
        """Generate a fresh random 256-bit content key."""
        return AESGCM.generate_key(bit_length=CONTENT_KEY_SIZE * 8)

    @staticmethod
    def seal(plaintext: bytes, key: bytes) -> str:
        """Encrypt *plaintext* under a fresh nonce and encode it as a payload string."""
        _validate_key(key)
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
        return MessageCodec.encode(nonce, ciphertext)

    @staticmethod
    def open(payload: str, key: bytes) -> bytes:
        """Authenticate and decrypt a payload string.

        Raises:
            FormatError: If the payload does not split into a 12-byte nonce
                and a ciphertext.
            AuthenticationError: If the tag does not verify under *key*.
        """
        _validate_key(key)
        nonce, ciphertext = MessageCodec.decode(payload)
        if len(nonce) != NONCE_SIZE:
            raise FormatError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
        return _decrypt(key, nonce, ciphertext)

    @staticmethod
    def seal_bytes(data: bytes, key: bytes) -> bytes:
        """Encrypt a binary blob, returning ``nonce || ciphertext``."""
        _validate_key(key)
        nonce = os.urandom(NONCE_SIZE)
        return nonce + AESGCM(key).encrypt(nonce, data, None)

    @staticmethod
    def open_bytes(blob: bytes, key: bytes) -> bytes:
        """Decrypt a blob produced by :meth:`seal_bytes`.

        Raises:
            FormatError: If the blob is too short to hold a nonce and a tag.
            AuthenticationError: If the tag does not verify under *key*.
        """
        _validate_key(key)
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise FormatError(
                f"Encrypted blob too short ({len(blob)} bytes) for nonce and tag"
            )
        return _decrypt(key, blob[:NONCE_SIZE], blob[NONCE_SIZE:])


def _decrypt(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise AuthenticationError(
            "Authentication failed: wrong key or tampered ciphertext"
        ) from e
