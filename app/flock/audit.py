"""
Audit trail for church data changes.

Services call `record_event` inside their own transaction, so an event is
only kept when the change it describes is committed.
"""
import json
from typing import Any

from flask import g, has_app_context, has_request_context, request
from sqlalchemy.orm import Session

from app.flock.models import AuditEvent, User


def _client_ip() -> str | None:
    if not has_request_context():
        return None
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or request.remote_addr


def _event_tenant(s: Session, actor: User | None, explicit: str | None) -> str | None:
    # explicit wins (tenant creation), then the session binding, then the actor
    return explicit or s.info.get("tenant_id") or (actor.tenant_id if actor else None)


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
    tenant_id: str | None = None,
) -> AuditEvent:
    """Add one audit row (e.g. `bulletin.lock`) to the session; the caller commits."""
    if request_id is None and has_app_context():
        request_id = getattr(g, "request_id", None)
    payload = json.dumps(metadata, sort_keys=True, default=str) if metadata else None
    ev = AuditEvent(
        request_id=request_id,
        tenant_id=_event_tenant(s, actor, tenant_id),
        actor_user_id=actor.id if actor else None,
        actor_user_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        metadata_json=payload,
        client_ip=_client_ip(),
    )
    s.add(ev)
    return ev
