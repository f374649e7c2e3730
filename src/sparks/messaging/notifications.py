"""Decrypt push-notification previews before the app UI is loaded.

The relay forwards the message payload plus the single wrapped key meant
for the notified recipient. Unless the sender is blocked or the chat is
muted, a preview is always produced: failures fall back to fixed
placeholder strings, never to partial or garbled text.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Optional

from sparks.core import defaults
from sparks.crypto.errors import KeyStoreError
from sparks.crypto.service import DecryptionFailure, EncryptionService
from sparks.messaging.records import PushPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuppressionRules:
    """Senders and chats the signed-in user does not want notifications from."""

    blocked_sender_ids: frozenset[str] = field(default_factory=frozenset)
    muted_chat_ids: frozenset[str] = field(default_factory=frozenset)

    def suppresses(self, payload: PushPayload) -> bool:
        return (
            payload.sender_id in self.blocked_sender_ids
            or payload.chat_id in self.muted_chat_ids
        )


@dataclass(frozen=True)
class NotificationPreview:
    """What the notification shows."""

    chat_id: str
    title: str
    body: str
    decrypted: bool = False


class NotificationDecryptor:
    """Turn a :class:`PushPayload` into a :class:`NotificationPreview`."""

    def __init__(
        self,
        service: EncryptionService,
        executor: Optional[Executor] = None,
        rules: Optional[SuppressionRules] = None,
    ):
        self.service = service
        self._executor = executor
        self.rules = rules or SuppressionRules()

    def preview(self, payload: PushPayload) -> Optional[NotificationPreview]:
        """Build the preview, or ``None`` when the notification is suppressed."""
        try:
            signed_in = self.service.identity.has_key_pair()
        except KeyStoreError as e:
            logger.warning(f"Identity unavailable for notification: {e}")
            signed_in = False

        if not signed_in:
            return NotificationPreview(
                payload.chat_id, defaults.NOTIFICATION_TITLE, defaults.NOTIFICATION_SIGNED_OUT
            )

        if self.rules.suppresses(payload):
            logger.debug(f"Notification for chat {payload.chat_id} suppressed")
            return None

        if not payload.encrypted_content or not payload.encrypted_key:
            return NotificationPreview(
                payload.chat_id, payload.sender_name, defaults.NOTIFICATION_NO_KEY
            )

        result = self.service.decrypt_single(payload.encrypted_content, payload.encrypted_key)
        if isinstance(result, DecryptionFailure):
            logger.warning(f"Notification for chat {payload.chat_id} unreadable: {result.reason}")
            return NotificationPreview(
                payload.chat_id, payload.sender_name, defaults.NOTIFICATION_UNREADABLE
            )

        try:
            body = result.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Notification for chat {payload.chat_id} is not UTF-8 text")
            return NotificationPreview(
                payload.chat_id, payload.sender_name, defaults.NOTIFICATION_UNREADABLE
            )
        return NotificationPreview(payload.chat_id, payload.sender_name, body, decrypted=True)

    async def apreview(self, payload: PushPayload) -> Optional[NotificationPreview]:
        """Run :meth:`preview` on the executor so the event loop stays free."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.preview, payload)
