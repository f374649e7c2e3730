"""Two-part payload codec.

A sealed text payload travels through the message store as a single
string::

    base64(nonce) ":" base64(ciphertext || tag)

Standard base64 alphabet with padding and no line breaks, so payloads
written by older clients decode unchanged.
"""

from __future__ import annotations

import base64
import binascii

from sparks.core.defaults import NONCE_SIZE, PAYLOAD_DELIMITER, TAG_SIZE
from sparks.crypto.errors import FormatError


class MessageCodec:
    """Pure serialization of ``(nonce, ciphertext)`` pairs.

    All methods are static; the class is a namespace that mirrors the
    other core components.
    """

    @staticmethod
    def encode(nonce: bytes, ciphertext: bytes) -> str:
        """Join nonce and ciphertext into one transportable string."""
        return (
            base64.b64encode(nonce).decode("ascii")
            + PAYLOAD_DELIMITER
            + base64.b64encode(ciphertext).decode("ascii")
        )

    @staticmethod
    def decode(payload: str) -> tuple[bytes, bytes]:
        """Split a payload string into ``(nonce, ciphertext)``.

        Raises:
            FormatError: If the delimiter is missing or repeated, a part is
                empty, or a part is not valid base64.
        """
        if not isinstance(payload, str):
            raise FormatError(f"Payload must be a string, got {type(payload).__name__}")

        parts = payload.split(PAYLOAD_DELIMITER)
        if len(parts) != 2:
            raise FormatError(
                f"Payload must contain exactly one {PAYLOAD_DELIMITER!r} delimiter, "
                f"found {len(parts) - 1}"
            )

        nonce_b64, ciphertext_b64 = parts
        if not nonce_b64 or not ciphertext_b64:
            raise FormatError("Payload has an empty nonce or ciphertext part")

        try:
            nonce = base64.b64decode(nonce_b64, validate=True)
            ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise FormatError(f"Invalid base64 in payload: {e}") from e

        return nonce, ciphertext

    @staticmethod
    def looks_sealed(payload: str) -> bool:
        """Whether *payload* has the shape of a sealed message.

        True for a well-formed ``nonce:ciphertext`` pair with a 12-byte nonce
        and room for the tag. Says nothing about whether it decrypts.
        """
        try:
            nonce, ciphertext = MessageCodec.decode(payload)
        except FormatError:
            return False
        return len(nonce) == NONCE_SIZE and len(ciphertext) >= TAG_SIZE
