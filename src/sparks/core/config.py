"""Runtime configuration for the encryption core."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from sparks.core import defaults


@dataclass
class CryptoConfig:
    """Configuration handed to :class:`~sparks.crypto.service.EncryptionService`.

    Every field has a sensible default so callers can start with
    ``CryptoConfig()`` and override as needed.
    """

    # Identity key pair
    rsa_key_size: int = defaults.DEFAULT_RSA_KEY_SIZE
    key_alias: str = defaults.DEFAULT_KEY_ALIAS

    # Key wrapping ("oaep-sha256" or "pkcs1v15")
    wrap_padding: str = defaults.DEFAULT_WRAP_PADDING
    wrap_workers: int = defaults.DEFAULT_WRAP_WORKERS

    # File key store
    keystore_dir: str = defaults.DEFAULT_KEYSTORE_DIR
    keystore_passphrase: Optional[str] = None

    def validate(self) -> "CryptoConfig":
        """Check field values, returning ``self`` so calls can be chained.

        Raises:
            ValueError: If any field is out of range.
        """
        if self.rsa_key_size < defaults.MIN_RSA_KEY_SIZE:
            raise ValueError(
                f"rsa_key_size must be at least {defaults.MIN_RSA_KEY_SIZE}, "
                f"got {self.rsa_key_size}"
            )
        if self.wrap_padding not in defaults.WRAP_PADDINGS:
            raise ValueError(
                f"Unknown wrap_padding {self.wrap_padding!r}; "
                f"expected one of {', '.join(defaults.WRAP_PADDINGS)}"
            )
        if self.wrap_workers < 1:
            raise ValueError(f"wrap_workers must be >= 1, got {self.wrap_workers}")
        if not self.key_alias:
            raise ValueError("key_alias must not be empty")
        return self

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "CryptoConfig":
        """Build a config from ``SPARKS_*`` environment variables."""
        env = os.environ if environ is None else environ
        config = cls(
            rsa_key_size=int(env.get("SPARKS_RSA_KEY_SIZE", defaults.DEFAULT_RSA_KEY_SIZE)),
            key_alias=env.get("SPARKS_KEY_ALIAS", defaults.DEFAULT_KEY_ALIAS),
            wrap_padding=env.get("SPARKS_WRAP_PADDING", defaults.DEFAULT_WRAP_PADDING),
            wrap_workers=int(env.get("SPARKS_WRAP_WORKERS", defaults.DEFAULT_WRAP_WORKERS)),
            keystore_dir=env.get("SPARKS_KEYSTORE_DIR", defaults.DEFAULT_KEYSTORE_DIR),
            keystore_passphrase=env.get("SPARKS_KEYSTORE_PASSPHRASE") or None,
        )
        return config.validate()
