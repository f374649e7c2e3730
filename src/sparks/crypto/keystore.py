"""Secure storage for the device identity's private key.

The store is written once (when the identity is created) and read many
times. ``create`` is create-if-absent in both implementations so that two
callers racing at startup end up sharing one key pair.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from sparks.crypto.errors import KeyStoreError

logger = logging.getLogger(__name__)

_ALIAS_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@runtime_checkable
class SecureKeyStore(Protocol):
    """Protocol every private-key backend must implement."""

    def load(self, alias: str) -> Optional[RSAPrivateKey]:
        """Return the private key stored under *alias*, or ``None``."""
        ...

    def create(self, alias: str, key: RSAPrivateKey) -> bool:
        """Store *key* under *alias* unless one exists. Returns ``True`` if written."""
        ...

    def contains(self, alias: str) -> bool:
        """Whether a key is stored under *alias*."""
        ...


class MemoryKeyStore:
    """Process-local key store. Keys are lost when the process exits."""

    def __init__(self) -> None:
        self._keys: dict[str, RSAPrivateKey] = {}
        self._lock = threading.Lock()

    def load(self, alias: str) -> Optional[RSAPrivateKey]:
        with self._lock:
            return self._keys.get(alias)

    def create(self, alias: str, key: RSAPrivateKey) -> bool:
        with self._lock:
            if alias in self._keys:
                return False
            self._keys[alias] = key
            return True

    def contains(self, alias: str) -> bool:
        with self._lock:
            return alias in self._keys


class FileKeyStore:
    """PKCS#8 PEM files in a private directory.

    Each alias maps to ``<directory>/<alias>.pem``. The PEM is written and
    fsynced to a mode ``0o600`` temp file, then hard-linked into place, so
    the alias appears atomically and only ever with complete contents.
    When *passphrase* is given the PEM is encrypted with it; otherwise
    protection relies on file permissions alone.
    """

    def __init__(self, directory: str | Path, passphrase: Optional[str] = None):
        self.directory = Path(directory)
        self._passphrase = passphrase.encode("utf-8") if passphrase else None

    def _path(self, alias: str) -> Path:
        if not _ALIAS_RE.match(alias):
            raise KeyStoreError(f"Invalid key alias: {alias!r}")
        return self.directory / f"{alias}.pem"

    def contains(self, alias: str) -> bool:
        return self._path(alias).exists()

    def load(self, alias: str) -> Optional[RSAPrivateKey]:
        path = self._path(alias)
        try:
            pem = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise KeyStoreError(f"Cannot read key file {path}: {e}") from e

        try:
            key = serialization.load_pem_private_key(pem, password=self._passphrase)
        except (ValueError, TypeError) as e:
            raise KeyStoreError(f"Cannot load private key {alias!r}: {e}") from e

        if not isinstance(key, RSAPrivateKey):
            raise KeyStoreError(f"Key {alias!r} is not an RSA private key")
        return key

    def create(self, alias: str, key: RSAPrivateKey) -> bool:
        path = self._path(alias)
        if self._passphrase:
            encryption = serialization.BestAvailableEncryption(self._passphrase)
        else:
            encryption = serialization.NoEncryption()
        pem = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )

        try:
            self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{alias}.", suffix=".tmp")
        except OSError as e:
            raise KeyStoreError(f"Cannot create key file {path}: {e}") from e

        # The PEM is complete on disk before the alias becomes visible.
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(pem)
                f.flush()
                os.fsync(f.fileno())
            os.link(tmp, path)
        except FileExistsError:
            logger.debug(f"Key {alias!r} already present in {self.directory}")
            return False
        except OSError as e:
            raise KeyStoreError(f"Cannot create key file {path}: {e}") from e
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)

        logger.info(f"Stored identity key {alias!r} in {self.directory}")
        return True
