"""Centralized configurable defaults for Sparks.

All tunable parameters in one place. Values that operators may need to
change per deployment can be overridden through ``SPARKS_*`` environment
variables; see :class:`sparks.core.config.CryptoConfig` for the runtime view.
"""

from __future__ import annotations

import os

# Symmetric content keys (AES-256-GCM)
CONTENT_KEY_SIZE = 32  # bytes
NONCE_SIZE = 12  # bytes, GCM standard nonce
TAG_SIZE = 16  # bytes, appended to every ciphertext

# Two-part text payload: base64(nonce) + DELIMITER + base64(ciphertext)
PAYLOAD_DELIMITER = ":"

# Identity key pair
MIN_RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537
DEFAULT_RSA_KEY_SIZE = int(os.environ.get("SPARKS_RSA_KEY_SIZE", "2048"))
DEFAULT_KEY_ALIAS = os.environ.get("SPARKS_KEY_ALIAS", "sparks-identity")

# Key wrapping
WRAP_PADDING_OAEP = "oaep-sha256"
WRAP_PADDING_PKCS1V15 = "pkcs1v15"
WRAP_PADDINGS = (WRAP_PADDING_OAEP, WRAP_PADDING_PKCS1V15)
DEFAULT_WRAP_PADDING = os.environ.get("SPARKS_WRAP_PADDING", WRAP_PADDING_OAEP)
DEFAULT_WRAP_WORKERS = int(os.environ.get("SPARKS_WRAP_WORKERS", "1"))

# Local key store
DEFAULT_KEYSTORE_DIR = os.environ.get(
    "SPARKS_KEYSTORE_DIR", os.path.join(os.path.expanduser("~"), ".sparks", "keys")
)

# User-visible placeholders
UNREADABLE_PLACEHOLDER = "🔒 Decryption Failed"
CONVERSATION_PREVIEW = "🔒 Encrypted Message"
NOTIFICATION_TITLE = "Sparks"
NOTIFICATION_SIGNED_OUT = "You have a new message"
NOTIFICATION_NO_KEY = "🔒 New Message"
NOTIFICATION_UNREADABLE = "🔒 Encrypted Message"
DEFAULT_SENDER_NAME = "Someone"

# Media captions, sealed with the media content key
MEDIA_CAPTIONS = {
    "image": "📷 Encrypted Photo",
    "audio": "🎤 Encrypted Audio",
    "video": "🎥 Encrypted Video",
}
# Conversation list previews; never derived from plaintext
MEDIA_SUMMARIES = {
    "image": "📷 Photo",
    "audio": "🎤 Voice Message",
    "video": "🎥 Video",
}
MEDIA_EXTENSIONS = {
    "image": "jpg",
    "audio": "mp3",
    "video": "mp4",
}

# Blob transport
BLOB_REQUEST_TIMEOUT = float(os.environ.get("SPARKS_BLOB_TIMEOUT", "30.0"))
