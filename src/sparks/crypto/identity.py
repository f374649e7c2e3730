"""
Device identity key pair.

Each installation owns one long-lived RSA key pair. The public half is
published to the key directory as base64 of its DER SubjectPublicKeyInfo;
the private half stays in the :class:`SecureKeyStore` and is only handed
out as a key object, never as raw bytes.

The identity is never rotated. Every message uses a fresh content key, but
compromise of the identity key exposes every content key ever wrapped for
it (no forward secrecy).
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from sparks.core.defaults import (
    DEFAULT_KEY_ALIAS,
    DEFAULT_RSA_KEY_SIZE,
    MIN_RSA_KEY_SIZE,
    RSA_PUBLIC_EXPONENT,
)
from sparks.crypto.errors import KeyFormatError, KeyStoreError
from sparks.crypto.keystore import SecureKeyStore

logger = logging.getLogger(__name__)


def encode_public_key(public_key: RSAPublicKey) -> str:
    """Encode a public key as base64 DER SubjectPublicKeyInfo (no line breaks)."""
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


class AsymmetricIdentity:
    """Own the device's key pair and expose its public half."""

    def __init__(
        self,
        store: SecureKeyStore,
        alias: str = DEFAULT_KEY_ALIAS,
        key_size: int = DEFAULT_RSA_KEY_SIZE,
    ):
        if key_size < MIN_RSA_KEY_SIZE:
            raise ValueError(f"key_size must be at least {MIN_RSA_KEY_SIZE}")
        self.store = store
        self.alias = alias
        self.key_size = key_size
        self._lock = threading.Lock()
        self._cached: Optional[RSAPrivateKey] = None

    def has_key_pair(self) -> bool:
        """Whether an identity key pair exists in the store."""
        return self._cached is not None or self.store.contains(self.alias)

    def ensure_key_pair(self) -> str:
        """Create the key pair if absent and return the encoded public key.

        Safe to call on every login and from several threads at once: only
        one key pair is ever persisted, and every caller gets its public key.
        """
        with self._lock:
            key = self._load()
            if key is None:
                candidate = rsa.generate_private_key(
                    public_exponent=RSA_PUBLIC_EXPONENT,
                    key_size=self.key_size,
                )
                if self.store.create(self.alias, candidate):
                    logger.info(
                        f"Generated {self.key_size}-bit identity key pair {self.alias!r}"
                    )
                # Another process may have won the create; the store is authoritative.
                key = self._load()
                if key is None:
                    raise KeyStoreError(f"Identity {self.alias!r} missing after creation")
            return encode_public_key(key.public_key())

    def export_public_key(self) -> Optional[str]:
        """Return the encoded public key, or ``None`` if no identity exists yet."""
        key = self.private_key()
        if key is None:
            return None
        return encode_public_key(key.public_key())

    def private_key(self) -> Optional[RSAPrivateKey]:
        """Return the private key handle, or ``None`` if no identity exists yet."""
        if self._cached is not None:
            return self._cached
        with self._lock:
            return self._load()

    def _load(self) -> Optional[RSAPrivateKey]:
        if self._cached is None:
            self._cached = self.store.load(self.alias)
        return self._cached

    @staticmethod
    def import_public_key(encoded: Optional[str]) -> RSAPublicKey:
        """Parse a peer's published public key string.

        Raises:
            KeyFormatError: If the string is empty, not base64, not a DER
                SubjectPublicKeyInfo, not RSA, or shorter than 2048 bits.
        """
        if not encoded or not isinstance(encoded, str):
            raise KeyFormatError("Public key is empty")
        try:
            der = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyFormatError(f"Public key is not valid base64: {e}") from e

        try:
            key = serialization.load_der_public_key(der)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyFormatError(f"Public key is not a valid DER key: {e}") from e

        if not isinstance(key, RSAPublicKey):
            raise KeyFormatError(f"Public key is {type(key).__name__}, expected RSA")
        if key.key_size < MIN_RSA_KEY_SIZE:
            raise KeyFormatError(
                f"Public key is {key.key_size} bits, minimum is {MIN_RSA_KEY_SIZE}"
            )
        return key
