"""
Encryption service: the single entry point for message and media crypto.

Send path:
1. Generate one content key
2. Seal the plaintext (or media blob) with it
3. Wrap the content key for every recipient plus the sender
4. Return payload + wrapped key map; the key is dropped

Receive path:
1. Look up the caller's wrapped key
2. Unwrap it with the local identity
3. Open the payload

Decryption never raises past this module. Every failure comes back as a
:class:`DecryptionFailure` whose reason separates "not encrypted for you"
from tampering, so callers can render a placeholder and move on.

Encryption is best-effort across recipients: a missing or malformed public
key skips that recipient and is reported in ``skipped_recipients``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Mapping, Optional, Union

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from sparks.core.config import CryptoConfig
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
from sparks.crypto.identity import AsymmetricIdentity
from sparks.crypto.wrapper import KeyWrapper

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================


class FailureReason(StrEnum):
    """Why a message could not be decrypted on this device."""

    NO_KEY_FOR_RECIPIENT = "no-key-for-recipient"
    UNWRAP_FAILED = "unwrap-failed"
    AUTH_FAILED = "auth-failed"
    MALFORMED_PAYLOAD = "malformed-payload"


_FAILURE_ERRORS: dict[FailureReason, type[SparksCryptoError]] = {
    FailureReason.NO_KEY_FOR_RECIPIENT: NoKeyForRecipient,
    FailureReason.UNWRAP_FAILED: UnwrapError,
    FailureReason.AUTH_FAILED: AuthenticationError,
    FailureReason.MALFORMED_PAYLOAD: FormatError,
}


@dataclass(frozen=True)
class DecryptionFailure:
    """Tagged failure returned instead of plaintext."""

    reason: FailureReason
    detail: str = ""

    def to_exception(self) -> SparksCryptoError:
        """Map this failure onto the exception taxonomy."""
        message = self.detail or self.reason.value
        return _FAILURE_ERRORS[self.reason](message)


DecryptionResult = Union[bytes, DecryptionFailure]


def is_failure(result: DecryptionResult) -> bool:
    """Whether a decrypt call returned a :class:`DecryptionFailure`."""
    return isinstance(result, DecryptionFailure)


@dataclass(frozen=True)
class SkippedRecipient:
    """A recipient that will not be able to read the message."""

    recipient_id: str
    reason: str


@dataclass
class EncryptionResult:
    """Output of :meth:`EncryptionService.encrypt_for_recipients`."""

    payload: str
    wrapped_keys: dict[str, str]
    skipped_recipients: list[SkippedRecipient] = field(default_factory=list)

    @property
    def skipped_ids(self) -> list[str]:
        return [s.recipient_id for s in self.skipped_recipients]


@dataclass
class MediaEncryptionResult:
    """Output of :meth:`EncryptionService.encrypt_media`."""

    blob: bytes
    wrapped_keys: dict[str, str]
    skipped_recipients: list[SkippedRecipient] = field(default_factory=list)
    caption_payload: Optional[str] = None

    @property
    def skipped_ids(self) -> list[str]:
        return [s.recipient_id for s in self.skipped_recipients]


# =============================================================================
# SERVICE
# =============================================================================


class EncryptionService:
    """Compose identity, envelope, wrapper and codec into message operations.

    Construct once per process and pass it to the messaging and
    notification collaborators. Calls are synchronous and CPU-bound; run
    them off any latency-sensitive thread (see
    :class:`sparks.messaging.messenger.SecureMessenger`).
    """

    def __init__(
        self,
        identity: AsymmetricIdentity,
        envelope: Optional[SymmetricEnvelope] = None,
        wrapper: Optional[KeyWrapper] = None,
        config: Optional[CryptoConfig] = None,
    ):
        self.config = (config or CryptoConfig()).validate()
        self.identity = identity
        self.envelope = envelope or SymmetricEnvelope()
        self.wrapper = wrapper or KeyWrapper(self.config.wrap_padding)

    # -------------------------------------------------------------------------
    # Send
    # -------------------------------------------------------------------------

    def encrypt_for_recipients(
        self,
        plaintext: bytes,
        recipients: Mapping[str, Optional[str]],
        self_id: str,
        self_public_key: Optional[str] = None,
    ) -> EncryptionResult:
        """Seal *plaintext* once and wrap its content key for every reader.

        Args:
            plaintext: Message bytes.
            recipients: Recipient id -> published public key (or ``None``).
            self_id: The sender's id; always receives a wrapped key so the
                sender can re-read the message on any of their devices.
            self_public_key: The sender's public key; defaults to the local
                identity's key.

        Returns:
            EncryptionResult with the payload string, the wrapped key map and
            any recipients that were skipped.
        """
        content_key = self.envelope.generate_key()
        payload = self.envelope.seal(plaintext, content_key)
        wrapped, skipped = self._wrap_for_all(content_key, recipients, self_id, self_public_key)
        logger.info(
            f"Encrypted {len(plaintext)}-byte message for {len(wrapped)} readers"
            f" ({len(skipped)} skipped)"
        )
        return EncryptionResult(payload=payload, wrapped_keys=wrapped, skipped_recipients=skipped)

    def encrypt_media(
        self,
        data: bytes,
        recipients: Mapping[str, Optional[str]],
        self_id: str,
        self_public_key: Optional[str] = None,
        caption: Optional[bytes] = None,
    ) -> MediaEncryptionResult:
        """Encrypt a binary blob as ``nonce || ciphertext`` for every reader.

        An optional *caption* is sealed as a text payload with the same
        content key, so the message record's text field is readable with
        the same wrapped key as the blob.
        """
        content_key = self.envelope.generate_key()
        blob = self.envelope.seal_bytes(data, content_key)
        caption_payload = None
        if caption is not None:
            caption_payload = self.envelope.seal(caption, content_key)
        wrapped, skipped = self._wrap_for_all(content_key, recipients, self_id, self_public_key)
        logger.info(
            f"Encrypted {len(data)}-byte media blob for {len(wrapped)} readers"
            f" ({len(skipped)} skipped)"
        )
        return MediaEncryptionResult(
            blob=blob,
            wrapped_keys=wrapped,
            skipped_recipients=skipped,
            caption_payload=caption_payload,
        )

    def _wrap_for_all(
        self,
        content_key: bytes,
        recipients: Mapping[str, Optional[str]],
        self_id: str,
        self_public_key: Optional[str],
    ) -> tuple[dict[str, str], list[SkippedRecipient]]:
        if self_public_key is None:
            self_public_key = self.identity.export_public_key()

        targets = dict(recipients)
        targets[self_id] = self_public_key

        items = sorted(targets.items())
        if self.config.wrap_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.config.wrap_workers) as pool:
                outcomes = list(
                    pool.map(lambda item: self._wrap_one(content_key, *item), items)
                )
        else:
            outcomes = [self._wrap_one(content_key, rid, pub) for rid, pub in items]

        wrapped: dict[str, str] = {}
        skipped: list[SkippedRecipient] = []
        for recipient_id, outcome in zip((rid for rid, _ in items), outcomes):
            if isinstance(outcome, SkippedRecipient):
                skipped.append(outcome)
            else:
                wrapped[recipient_id] = outcome
        return wrapped, skipped

    def _wrap_one(
        self, content_key: bytes, recipient_id: str, public_key: Optional[str]
    ) -> Union[str, SkippedRecipient]:
        if not public_key:
            logger.warning(f"Skipping recipient {recipient_id}: no published public key")
            return SkippedRecipient(recipient_id, "missing-public-key")
        try:
            recipient_key = AsymmetricIdentity.import_public_key(public_key)
        except KeyFormatError as e:
            logger.warning(f"Skipping recipient {recipient_id}: {e}")
            return SkippedRecipient(recipient_id, "invalid-public-key")
        return self.wrapper.wrap(content_key, recipient_key)

    # -------------------------------------------------------------------------
    # Receive
    # -------------------------------------------------------------------------

    def decrypt_for_me(
        self,
        payload: str,
        wrapped_keys: Mapping[str, str],
        my_id: str,
    ) -> DecryptionResult:
        """Decrypt a message payload with this device's entry in the key map."""
        wrapped = wrapped_keys.get(my_id)
        if not wrapped:
            logger.debug(f"No wrapped key for {my_id} among {len(wrapped_keys)} entries")
            return DecryptionFailure(
                FailureReason.NO_KEY_FOR_RECIPIENT, f"message not encrypted for {my_id}"
            )
        return self.decrypt_single(payload, wrapped)

    def decrypt_single(self, payload: str, wrapped_key: str) -> DecryptionResult:
        """Decrypt a payload given the one wrapped key meant for this device.

        This is the push-notification path, where the relay forwards only the
        recipient's own wrapped key instead of the whole map.
        """
        if not wrapped_key:
            return DecryptionFailure(FailureReason.NO_KEY_FOR_RECIPIENT, "empty wrapped key")

        content_key = self.wrapper.unwrap(wrapped_key, self._my_private_key())
        if content_key is None:
            return DecryptionFailure(FailureReason.UNWRAP_FAILED, "cannot unwrap content key")

        try:
            return self.envelope.open(payload, content_key)
        except FormatError as e:
            logger.warning(f"Unreadable payload: {e}")
            return DecryptionFailure(FailureReason.MALFORMED_PAYLOAD, str(e))
        except AuthenticationError as e:
            logger.warning(f"Unreadable payload: {e}")
            return DecryptionFailure(FailureReason.AUTH_FAILED, str(e))

    def decrypt_media(
        self,
        blob: bytes,
        wrapped_keys: Mapping[str, str],
        my_id: str,
    ) -> DecryptionResult:
        """Decrypt a ``nonce || ciphertext`` media blob."""
        wrapped = wrapped_keys.get(my_id)
        if not wrapped:
            return DecryptionFailure(
                FailureReason.NO_KEY_FOR_RECIPIENT, f"media not encrypted for {my_id}"
            )

        content_key = self.wrapper.unwrap(wrapped, self._my_private_key())
        if content_key is None:
            return DecryptionFailure(FailureReason.UNWRAP_FAILED, "cannot unwrap media key")

        try:
            return self.envelope.open_bytes(blob, content_key)
        except FormatError as e:
            logger.warning(f"Unreadable media blob: {e}")
            return DecryptionFailure(FailureReason.MALFORMED_PAYLOAD, str(e))
        except AuthenticationError as e:
            logger.warning(f"Unreadable media blob: {e}")
            return DecryptionFailure(FailureReason.AUTH_FAILED, str(e))

    def _my_private_key(self) -> Optional[RSAPrivateKey]:
        try:
            return self.identity.private_key()
        except KeyStoreError as e:
            logger.warning(f"Identity key unavailable: {e}")
            return None
