"""Tests for SecureMessenger send/read flows.

These tests verify:
- Identity publication to the key directory
- Text sends encrypted for members plus self
- Reads across devices and the unreadable placeholder
- Media upload, caption and resolution
- Disappearing messages
- Refused sends nobody could read, and placeholder conversation summaries
"""

from __future__ import annotations

import pytest

from sparks.crypto.envelope import SymmetricEnvelope
from sparks.crypto.service import DecryptionFailure, FailureReason
from sparks.messaging.messenger import MessageState, SecureMessenger
from sparks.messaging.records import MessageRecord, MessageType
from sparks.messaging.stores import (
    InMemoryBlobStore,
    InMemoryKeyDirectory,
    InMemoryMessageStore,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def backend(public_keys):
    """Shared stores, as if every device talked to the same backend."""
    return {
        "messages": InMemoryMessageStore(),
        "directory": InMemoryKeyDirectory(
            {"me": public_keys["self"], "alice": public_keys["alice"], "bob": public_keys["bob"]}
        ),
        "blobs": InMemoryBlobStore(),
    }


@pytest.fixture
def make_messenger(make_service, backend):
    def _make(user_id: str, key_name: str | None) -> SecureMessenger:
        return SecureMessenger(
            make_service(key_name),
            backend["messages"],
            backend["directory"],
            backend["blobs"],
            user_id,
        )

    return _make


@pytest.fixture
def users(make_messenger):
    """me, alice and bob, whose keys are already in the directory."""
    return {
        "me": make_messenger("me", "self"),
        "alice": make_messenger("alice", "alice"),
        "bob": make_messenger("bob", "bob"),
    }


# =============================================================================
# Identity
# =============================================================================


class TestPublishIdentity:

    @pytest.mark.asyncio
    async def test_publishes_public_key(self, make_messenger, backend, public_keys) -> None:
        messenger = make_messenger("eve", "eve")
        assert await backend["directory"].get_public_key("eve") is None
        assert await messenger.publish_identity() == public_keys["eve"]
        assert await backend["directory"].get_public_key("eve") == public_keys["eve"]

    @pytest.mark.asyncio
    async def test_publish_generates_missing_key(self, make_service, backend) -> None:
        service = make_service(None)
        messenger = SecureMessenger(
            service, backend["messages"], backend["directory"], backend["blobs"], "fresh"
        )

        published = await messenger.publish_identity()

        assert service.identity.has_key_pair()
        assert await backend["directory"].get_public_key("fresh") == published

    @pytest.mark.asyncio
    async def test_fetch_member_keys_excludes_self(self, users) -> None:
        keys = await users["me"].fetch_member_keys(["me", "alice", "bob", "nobody", "alice"])
        assert set(keys) == {"alice", "bob", "nobody"}
        assert keys["nobody"] is None


# =============================================================================
# Text
# =============================================================================


class TestSendText:

    @pytest.mark.asyncio
    async def test_every_member_reads_it(self, users) -> None:
        receipt = await users["me"].send_text("c1", "hello", ["me", "alice", "bob"])

        assert set(receipt.record.encryption_keys) == {"me", "alice", "bob"}
        assert receipt.record.text != "hello"
        for user_id, messenger in users.items():
            [message] = await messenger.load_chat("c1")
            assert message.state == MessageState.PLAINTEXT, user_id
            assert message.text == "hello"

    @pytest.mark.asyncio
    async def test_member_without_key_is_reported(self, users) -> None:
        receipt = await users["me"].send_text("c1", "hi", ["alice", "newbie"])
        assert [s.recipient_id for s in receipt.skipped_recipients] == ["newbie"]
        assert "newbie" not in receipt.record.encryption_keys

    @pytest.mark.asyncio
    async def test_outsider_sees_placeholder(self, users, make_messenger) -> None:
        await users["me"].send_text("c1", "members only", ["alice"])
        outsider = make_messenger("bob", "bob")

        [message] = await outsider.load_chat("c1")

        assert message.state == MessageState.UNREADABLE
        assert message.text == "🔒 Decryption Failed"
        assert message.failure.reason == FailureReason.NO_KEY_FOR_RECIPIENT

    @pytest.mark.asyncio
    async def test_tampered_record_is_unreadable(self, users) -> None:
        receipt = await users["me"].send_text("c1", "x", ["alice"])
        nonce, ciphertext = receipt.record.text.split(":")
        flipped = ("A" if ciphertext[0] != "A" else "B") + ciphertext[1:]
        tampered = MessageRecord(
            id="t",
            sender_id="me",
            text=f"{nonce}:{flipped}",
            timestamp=1,
            encryption_keys=receipt.record.encryption_keys,
        )

        message = await users["alice"].read_message(tampered)

        assert message.state == MessageState.UNREADABLE
        assert message.failure.reason in (
            FailureReason.AUTH_FAILED,
            FailureReason.MALFORMED_PAYLOAD,
        )

    @pytest.mark.asyncio
    async def test_unencrypted_record_passes_through(self, users) -> None:
        record = MessageRecord(id="s", sender_id="system", text="Alice joined", timestamp=1)
        message = await users["alice"].read_message(record)
        assert message.state == MessageState.PLAINTEXT
        assert message.text == "Alice joined"

    @pytest.mark.asyncio
    async def test_expired_messages_hidden(self, users, backend) -> None:
        await users["me"].send_text("c1", "stays", ["alice"])
        await users["me"].send_text("c1", "gone", ["alice"], ttl_ms=1)
        records = await backend["messages"].list_messages("c1")
        [record_gone] = [r for r in records if r.expires_at is not None]
        record_gone.expires_at = 0

        messages = await users["alice"].load_chat("c1")

        assert [m.text for m in messages] == ["stays"]

    @pytest.mark.asyncio
    async def test_send_nobody_can_read_is_refused(self, make_messenger, backend) -> None:
        """No local identity and no member keys: nothing may be stored."""
        ghost = make_messenger("ghost", None)

        with pytest.raises(ValueError, match="no reader"):
            await ghost.send_text("c1", "secret", ["carol"])

        assert await backend["messages"].list_messages("c1") == []
        assert await backend["messages"].get_summary("c1") == {}

    @pytest.mark.asyncio
    async def test_keyless_sealed_record_is_unreadable(self, users) -> None:
        key = SymmetricEnvelope.generate_key()
        record = MessageRecord(
            id="k",
            sender_id="ghost",
            text=SymmetricEnvelope.seal(b"secret", key),
            timestamp=1,
        )

        message = await users["alice"].read_message(record)

        assert message.state == MessageState.UNREADABLE
        assert message.text == "🔒 Decryption Failed"
        assert message.failure.reason == FailureReason.NO_KEY_FOR_RECIPIENT

    @pytest.mark.asyncio
    async def test_summary_never_holds_plaintext(self, users, backend) -> None:
        receipt = await users["me"].send_text("c1", "hello", ["alice"])
        summary = await backend["messages"].get_summary("c1")
        assert summary == {
            "lastMessage": "🔒 Encrypted Message",
            "timestamp": receipt.record.timestamp,
        }

    @pytest.mark.asyncio
    async def test_mistyped_profile_is_skipped(self, users) -> None:
        users["me"].directory = InMemoryKeyDirectory(profiles={"odd": {"publicKey": 12}})

        receipt = await users["me"].send_text("c1", "hi", ["odd"])

        assert [(s.recipient_id, s.reason) for s in receipt.skipped_recipients] == [
            ("odd", "missing-public-key")
        ]
        assert set(receipt.record.encryption_keys) == {"me"}

    @pytest.mark.asyncio
    async def test_reply_to_is_recorded(self, users) -> None:
        first = await users["me"].send_text("c1", "q", ["alice"])
        reply = await users["alice"].send_text("c1", "a", ["me"], reply_to_id=first.record.id)
        assert reply.record.reply_to_id == first.record.id


# =============================================================================
# Media
# =============================================================================


class TestMedia:

    @pytest.mark.asyncio
    async def test_image_round_trip(self, users, backend) -> None:
        image = bytes(range(256)) * 40
        receipt = await users["me"].send_media("c1", image, MessageType.IMAGE, ["alice"])

        record = receipt.record
        assert record.type == MessageType.IMAGE
        assert record.media_url.startswith("memory://chat_images/c1/")
        assert record.media_url.endswith("_enc.jpg")
        assert await backend["blobs"].download(record.media_url) != image

        assert await users["alice"].resolve_media(record) == image
        [message] = await users["alice"].load_chat("c1")
        assert message.text == "📷 Encrypted Photo"
        summary = await backend["messages"].get_summary("c1")
        assert summary["lastMessage"] == "📷 Photo"

    @pytest.mark.asyncio
    async def test_audio_path(self, users) -> None:
        receipt = await users["me"].send_media("c1", b"ID3...", MessageType.AUDIO, ["bob"])
        assert "/chat_audios/c1/" in receipt.record.media_url
        assert receipt.record.media_url.endswith(".mp3")

    @pytest.mark.asyncio
    async def test_outsider_cannot_resolve(self, users) -> None:
        receipt = await users["me"].send_media("c1", b"img", MessageType.IMAGE, ["alice"])
        result = await users["bob"].resolve_media(receipt.record)
        assert isinstance(result, DecryptionFailure)
        assert result.reason == FailureReason.NO_KEY_FOR_RECIPIENT

    @pytest.mark.asyncio
    async def test_record_without_media(self, users) -> None:
        record = MessageRecord(id="x", sender_id="me", text="", timestamp=1)
        result = await users["alice"].resolve_media(record)
        assert result.reason == FailureReason.MALFORMED_PAYLOAD

    @pytest.mark.asyncio
    async def test_media_nobody_can_read_is_refused(self, make_messenger, backend) -> None:
        ghost = make_messenger("ghost", None)

        with pytest.raises(ValueError):
            await ghost.send_media("c1", b"img", MessageType.IMAGE, ["carol"])

        assert await backend["messages"].list_messages("c1") == []

    @pytest.mark.asyncio
    async def test_text_kind_rejected(self, users) -> None:
        with pytest.raises(ValueError):
            await users["me"].send_media("c1", b"x", MessageType.TEXT, ["alice"])
