"""RSA wrapping of content keys for individual recipients."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from sparks.core.defaults import (
    CONTENT_KEY_SIZE,
    DEFAULT_WRAP_PADDING,
    WRAP_PADDING_OAEP,
    WRAP_PADDING_PKCS1V15,
)
from sparks.crypto.errors import KeyFormatError

logger = logging.getLogger(__name__)


def _make_padding(name: str) -> padding.AsymmetricPadding:
    if name == WRAP_PADDING_OAEP:
        return padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        )
    if name == WRAP_PADDING_PKCS1V15:
        return padding.PKCS1v15()
    raise ValueError(f"Unknown wrap padding: {name!r}")


class KeyWrapper:
    """Transport a content key to one recipient without exposing it to the relay.

    ``padding_name`` selects OAEP with SHA-256 (default) or PKCS#1 v1.5 for
    exchanging keys with clients that only speak the older scheme. Both
    sides of a conversation must agree on it.
    """

    def __init__(self, padding_name: str = DEFAULT_WRAP_PADDING):
        self.padding_name = padding_name
        self._padding = _make_padding(padding_name)

    def wrap(self, key: bytes, recipient_public_key: RSAPublicKey) -> str:
        """Encrypt the raw content key for a recipient; returns base64 ciphertext."""
        if len(key) != CONTENT_KEY_SIZE:
            raise KeyFormatError(f"Content key must be exactly {CONTENT_KEY_SIZE} bytes")
        wrapped = recipient_public_key.encrypt(bytes(key), self._padding)
        return base64.b64encode(wrapped).decode("ascii")

    def unwrap(self, wrapped: str, my_private_key: Optional[RSAPrivateKey]) -> Optional[bytes]:
        """Recover a content key with the local private key.

        Returns ``None`` rather than raising when there is no usable private
        key or the wrapped key cannot be decrypted. Callers treat ``None`` as
        "cannot read this message".
        """
        if my_private_key is None:
            logger.debug("Unwrap skipped: no local identity key")
            return None
        try:
            ciphertext = base64.b64decode(wrapped, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            logger.debug(f"Unwrap failed: wrapped key is not base64 ({e})")
            return None

        try:
            key = my_private_key.decrypt(ciphertext, self._padding)
        except ValueError as e:
            logger.debug(f"Unwrap failed: {e}")
            return None

        if len(key) != CONTENT_KEY_SIZE:
            logger.debug(f"Unwrap produced a {len(key)}-byte key, expected {CONTENT_KEY_SIZE}")
            return None
        return key
