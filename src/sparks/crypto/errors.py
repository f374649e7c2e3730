"""Exception hierarchy for the Sparks encryption core."""

from __future__ import annotations


class SparksCryptoError(Exception):
    """Base exception for all encryption core errors."""


class KeyFormatError(SparksCryptoError):
    """A public key, wrapped key or content key is malformed."""


class AuthenticationError(SparksCryptoError):
    """AEAD tag verification failed: tampered ciphertext or wrong key."""


class FormatError(SparksCryptoError):
    """Payload does not have the expected nonce/ciphertext shape."""


class NoKeyForRecipient(SparksCryptoError):
    """The wrapped key map has no entry for the requesting identity."""


class UnwrapError(SparksCryptoError):
    """The wrapped content key could not be recovered with the local identity."""


class KeyStoreError(SparksCryptoError):
    """The secure key store could not be read or written."""
