"""Shared fixtures for Sparks tests.

RSA key generation is slow, so a small pool of 2048-bit keys is generated
once per session and handed out to identities through in-memory stores.
"""

from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from sparks.core.config import CryptoConfig
from sparks.crypto.identity import AsymmetricIdentity, encode_public_key
from sparks.crypto.keystore import MemoryKeyStore
from sparks.crypto.service import EncryptionService


@pytest.fixture(scope="session")
def rsa_keys():
    """Four pre-generated RSA private keys: self, alice, bob, eve."""
    return {
        name: rsa.generate_private_key(public_exponent=65537, key_size=2048)
        for name in ("self", "alice", "bob", "eve")
    }


@pytest.fixture
def make_identity(rsa_keys):
    """Build an identity whose store already holds one of the pooled keys."""

    def _make(name: str | None = None) -> AsymmetricIdentity:
        store = MemoryKeyStore()
        if name is not None:
            store.create("sparks-identity", rsa_keys[name])
        return AsymmetricIdentity(store)

    return _make


@pytest.fixture
def make_service(make_identity):
    """Build an EncryptionService for one of the pooled identities."""

    def _make(name: str | None = None, config: CryptoConfig | None = None) -> EncryptionService:
        return EncryptionService(make_identity(name), config=config)

    return _make


@pytest.fixture
def public_keys(rsa_keys):
    """Encoded public keys for every pooled identity."""
    return {name: encode_public_key(key.public_key()) for name, key in rsa_keys.items()}
