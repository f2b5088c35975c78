from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.crypto import decrypt_secret, encrypt_secret, is_encryption_configured
from app.flock.errors import BadRequest, PreconditionFailed

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.ai.models import AiSettings

logger = logging.getLogger(__name__)

_MISSING = object()


def _load(s: "Session", tenant_id: str) -> "AiSettings | None":
    from app.flock.modules.ai.models import AiSettings

    return s.query(AiSettings).filter(AiSettings.tenant_id == tenant_id).one_or_none()


def _get_or_create(s: "Session", tenant_id: str) -> "AiSettings":
    from app.flock.modules.ai.models import AiSettings

    row = _load(s, tenant_id)
    if row is None:
        row = AiSettings(tenant_id=tenant_id, provider="openai", enabled=False)
        s.add(row)
        s.flush()
    return row


def serialize_settings(row: "AiSettings | None") -> dict:
    if row is None:
        return {"provider": "openai", "enabled": False, "has_key": False, "key_last4": None}
    return {
        "provider": row.provider,
        "enabled": bool(row.enabled),
        "has_key": bool(row.api_key_encrypted),
        "key_last4": row.key_last4 if row.api_key_encrypted else None,
    }


def get_ai_settings(s: "Session", tenant_id: str) -> dict:
    return serialize_settings(_load(s, tenant_id))


def update_ai_settings(s: "Session", tenant_id: str, payload: dict, user: "User") -> dict:
    """
    `api_key` absent keeps the stored key, null clears it (and disables AI),
    a string replaces it. AI can only be enabled while a key is stored.
    """
    enabled = payload.get("enabled")
    if enabled is not None and not isinstance(enabled, bool):
        raise BadRequest("enabled must be a boolean")
    api_key = payload.get("api_key", _MISSING)
    if api_key is not _MISSING and api_key is not None and not isinstance(api_key, str):
        raise BadRequest("api_key must be a string or null")

    row = _get_or_create(s, tenant_id)
    changes: dict[str, object] = {}

    if api_key is None:
        row.api_key_encrypted = None
        row.key_last4 = None
        row.enabled = False
        changes["api_key"] = "cleared"
    elif api_key is not _MISSING:
        key = api_key.strip()
        if not key:
            raise BadRequest("api_key must not be empty")
        if not is_encryption_configured():
            raise PreconditionFailed(
                "Encryption is not configured. Set APP_ENCRYPTION_KEY before storing an API key."
            )
        row.api_key_encrypted = encrypt_secret(key)
        row.key_last4 = key[-4:]
        changes["api_key"] = "replaced"

    if enabled is not None:
        if enabled and not row.api_key_encrypted:
            raise BadRequest("Cannot enable AI without an API key")
        row.enabled = enabled
        changes["enabled"] = row.enabled

    row.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="ai_settings.update",
        entity_type="AiSettings",
        entity_id=str(row.id),
        metadata=changes,
    )
    return serialize_settings(row)


def get_api_key(s: "Session", tenant_id: str) -> str | None:
    """The decrypted provider key, or None when AI is disabled or no key is usable."""
    row = _load(s, tenant_id)
    if row is None or not row.enabled or not row.api_key_encrypted:
        return None
    if not is_encryption_configured():
        logger.error("AI key stored for tenant %s but APP_ENCRYPTION_KEY is not configured", tenant_id)
        return None
    try:
        return decrypt_secret(row.api_key_encrypted)
    except ValueError:
        logger.error("Stored AI key for tenant %s could not be decrypted", tenant_id)
        return None
