"""
Secret storage helpers (AES-256-GCM).

The key is `APP_ENCRYPTION_KEY`: 32 bytes encoded as 64 hex characters.
Ciphertext is stored as base64(iv || tag || ciphertext) with a 12 byte IV
and a 16 byte authentication tag.
"""
from __future__ import annotations

import base64
import logging
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

IV_LENGTH = 12
TAG_LENGTH = 16


class EncryptionNotConfigured(RuntimeError):
    pass


def _configured_key_hex() -> str:
    if has_app_context():
        return (current_app.config.get("APP_ENCRYPTION_KEY") or "").strip()
    return (os.environ.get("APP_ENCRYPTION_KEY") or "").strip()


def get_encryption_key(key_hex: str | None = None) -> bytes | None:
    raw = _configured_key_hex() if key_hex is None else key_hex.strip()
    if not raw:
        return None
    if len(raw) != 64:
        logger.error("APP_ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
        return None
    try:
        return bytes.fromhex(raw)
    except ValueError:
        logger.error("APP_ENCRYPTION_KEY is not valid hex")
        return None


def is_encryption_configured(key_hex: str | None = None) -> bool:
    return get_encryption_key(key_hex) is not None


def generate_key_hex() -> str:
    return secrets.token_hex(32)


def encrypt_secret(plaintext: str, key_hex: str | None = None) -> str:
    key = get_encryption_key(key_hex)
    if key is None:
        raise EncryptionNotConfigured("Encryption not configured. Set APP_ENCRYPTION_KEY.")
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    # cryptography appends the tag; the stored layout puts it before the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(iv + tag + ciphertext).decode("ascii")


def decrypt_secret(token: str, key_hex: str | None = None) -> str:
    key = get_encryption_key(key_hex)
    if key is None:
        raise EncryptionNotConfigured("Encryption not configured. Set APP_ENCRYPTION_KEY.")
    try:
        combined = base64.b64decode(token, validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError("Failed to decrypt secret") from e
    if len(combined) < IV_LENGTH + TAG_LENGTH + 1:
        raise ValueError("Failed to decrypt secret")
    iv = combined[:IV_LENGTH]
    tag = combined[IV_LENGTH : IV_LENGTH + TAG_LENGTH]
    ciphertext = combined[IV_LENGTH + TAG_LENGTH :]
    try:
        plain = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        logger.error("Secret decryption failed (wrong key or corrupted value)")
        raise ValueError("Failed to decrypt secret") from e
    return plain.decode("utf-8")
