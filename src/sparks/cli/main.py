#!/usr/bin/env python3
"""
Sparks CLI - inspect and exercise the local encryption identity.

Commands:
  sparks init                         Create the device identity if needed
  sparks pubkey                       Print the published public key
  sparks encrypt --self-id ID --to ID=KEY ...
                                      Encrypt stdin, print JSON message fields
  sparks decrypt --me ID              Decrypt JSON message fields from stdin

Configuration comes from SPARKS_* environment variables (see
``sparks.core.config.CryptoConfig.from_env``).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from sparks.core.config import CryptoConfig
from sparks.crypto.errors import SparksCryptoError
from sparks.crypto.identity import AsymmetricIdentity
from sparks.crypto.keystore import FileKeyStore
from sparks.crypto.service import DecryptionFailure, EncryptionService
from sparks.messaging.records import RecordFormatError, parse_wrapped_keys

logger = logging.getLogger(__name__)


def build_service(config: CryptoConfig) -> EncryptionService:
    """Create the process-wide service over the file key store."""
    logger.debug(f"Using key store at {config.keystore_dir}")
    store = FileKeyStore(config.keystore_dir, passphrase=config.keystore_passphrase)
    identity = AsymmetricIdentity(store, alias=config.key_alias, key_size=config.rsa_key_size)
    return EncryptionService(identity, config=config)


def _parse_recipient(arg: str) -> tuple[str, str]:
    """Parse ``ID=KEY`` or ``ID=@path/to/keyfile``."""
    if "=" not in arg:
        raise ValueError(f"Recipient must be ID=KEY, got {arg!r}")
    recipient_id, key = arg.split("=", 1)
    if key.startswith("@"):
        key = Path(key[1:]).read_text().strip()
    return recipient_id, key


def cmd_init(service: EncryptionService, args: argparse.Namespace) -> int:
    """Create the identity if absent and print its public key."""
    print(service.identity.ensure_key_pair())
    return 0


def cmd_pubkey(service: EncryptionService, args: argparse.Namespace) -> int:
    """Print the public key, or fail if no identity exists."""
    public_key = service.identity.export_public_key()
    if public_key is None:
        print("No identity key pair; run `sparks init` first", file=sys.stderr)
        return 1
    print(public_key)
    return 0


def cmd_encrypt(service: EncryptionService, args: argparse.Namespace) -> int:
    """Encrypt stdin for the given recipients."""
    plaintext = sys.stdin.buffer.read()
    recipients = dict(_parse_recipient(arg) for arg in args.to or [])
    result = service.encrypt_for_recipients(plaintext, recipients, args.self_id)
    out = {
        "text": result.payload,
        "encryptionKeys": result.wrapped_keys,
        "skipped": [
            {"recipientId": s.recipient_id, "reason": s.reason}
            for s in result.skipped_recipients
        ],
    }
    print(json.dumps(out, indent=2))
    return 0


def cmd_decrypt(service: EncryptionService, args: argparse.Namespace) -> int:
    """Decrypt the JSON produced by ``encrypt``."""
    try:
        doc = json.loads(sys.stdin.read())
        payload = doc["text"]
        wrapped_keys = parse_wrapped_keys(doc.get("encryptionKeys"))
    except (json.JSONDecodeError, KeyError, TypeError, RecordFormatError) as e:
        print(f"Invalid message JSON: {e}", file=sys.stderr)
        return 2

    result = service.decrypt_for_me(payload, wrapped_keys, args.me)
    if isinstance(result, DecryptionFailure):
        print(f"Cannot decrypt: {result.reason}", file=sys.stderr)
        return 2
    sys.stdout.buffer.write(result)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sparks",
        description="Sparks end-to-end encryption tools",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # init
    subparsers.add_parser("init", help="Create the device identity if needed")

    # pubkey
    subparsers.add_parser("pubkey", help="Print the public key")

    # encrypt
    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt stdin for recipients")
    encrypt_parser.add_argument("--self-id", required=True, help="Sender id")
    encrypt_parser.add_argument(
        "--to", action="append", metavar="ID=KEY",
        help="Recipient id and base64 public key (or @file); repeatable",
    )

    # decrypt
    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt message JSON from stdin")
    decrypt_parser.add_argument("--me", required=True, help="Recipient id to decrypt as")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "init": cmd_init,
        "pubkey": cmd_pubkey,
        "encrypt": cmd_encrypt,
        "decrypt": cmd_decrypt,
    }

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = CryptoConfig.from_env()
        service = build_service(config)
        handler = commands[args.command]
        return handler(service, args)
    except (ValueError, OSError, SparksCryptoError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
