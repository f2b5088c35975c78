from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import case, or_

from app.flock.audit import record_event
from app.flock.errors import BadRequest, not_found, raise_if_errors
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_bool, parse_datetime

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.announcements.models import Announcement


PRIORITIES = ("Urgent", "High", "Normal")
TITLE_MAX = 60
BODY_MAX = 300
ACTIVE_LIMIT = 20
_FIELDS = ("title", "body", "priority", "category", "is_active", "starts_at", "expires_at")


def validate_announcement_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=TITLE_MAX)
    if not partial or "body" in payload:
        check_length(errors, "Body", clean_str(payload.get("body")), min_len=1, max_len=BODY_MAX)
    check_choice(errors, "priority", clean_str(payload.get("priority")), PRIORITIES)
    if "category" in payload:
        check_length(errors, "Category", clean_str(payload.get("category")), max_len=50)
    starts = parse_datetime(payload.get("starts_at"))
    expires = parse_datetime(payload.get("expires_at"))
    if starts and expires and expires <= starts:
        errors.append("Expiry must be after the start time.")
    return errors


def serialize_announcement(a: "Announcement") -> dict:
    return {
        "id": a.id,
        "title": a.title,
        "body": a.body,
        "priority": a.priority,
        "category": a.category,
        "is_active": a.is_active,
        "starts_at": iso(a.starts_at),
        "expires_at": iso(a.expires_at),
        "submitted_by": a.submitted_by_user_id,
        "approved_by": a.approved_by_user_id,
        "approved_at": iso(a.approved_at),
        "created_at": iso(a.created_at),
        "updated_at": iso(a.updated_at),
    }


def _ordered(q):
    from app.flock.modules.announcements.models import Announcement

    rank = case({"Urgent": 1, "High": 2, "Normal": 3}, value=Announcement.priority, else_=4)
    return q.order_by(rank, Announcement.starts_at.desc(), Announcement.id.desc())


def _unexpired(q, now: datetime):
    from app.flock.modules.announcements.models import Announcement

    return q.filter(or_(Announcement.expires_at.is_(None), Announcement.expires_at > now))


def _base_query(s: "Session", tenant_id: str):
    from app.flock.modules.announcements.models import Announcement

    return s.query(Announcement).filter(Announcement.tenant_id == tenant_id, Announcement.deleted_at.is_(None))


def list_active(s: "Session", tenant_id: str, *, now: datetime | None = None) -> list["Announcement"]:
    """Active, unexpired announcements by priority then newest start (at most 20)."""
    from app.flock.modules.announcements.models import Announcement

    q = _base_query(s, tenant_id).filter(Announcement.is_active.is_(True))
    q = _unexpired(q, now or datetime.utcnow())
    return _ordered(q).limit(ACTIVE_LIMIT).all()


def list_announcements(
    s: "Session", tenant_id: str, *, include_expired: bool = False, limit: int = 50
) -> list["Announcement"]:
    q = _base_query(s, tenant_id)
    if not include_expired:
        q = _unexpired(q, datetime.utcnow())
    return _ordered(q).limit(limit).all()


def get_announcement(s: "Session", tenant_id: str, announcement_id: int) -> "Announcement":
    from app.flock.modules.announcements.models import Announcement

    a = _base_query(s, tenant_id).filter(Announcement.id == announcement_id).one_or_none()
    if a is None:
        raise not_found("Announcement")
    return a


def _apply(a: "Announcement", payload: dict) -> None:
    for key in _FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key in ("starts_at", "expires_at"):
            value = parse_datetime(raw)
            if key == "starts_at" and value is None:
                continue
        elif key == "is_active":
            value = bool(parse_bool(raw)) if raw is not None else True
        else:
            value = clean_str(raw)
            if key == "priority" and value is None:
                value = "Normal"
        setattr(a, key, value)


def create_announcement(s: "Session", tenant_id: str, payload: dict, user: "User") -> "Announcement":
    from app.flock.modules.announcements.models import Announcement

    raise_if_errors(validate_announcement_payload(payload))
    now = datetime.utcnow()
    a = Announcement(
        tenant_id=tenant_id,
        priority="Normal",
        is_active=True,
        starts_at=now,
        submitted_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    _apply(a, payload)
    s.add(a)
    s.flush()
    record_event(
        s,
        actor=user,
        action="announcement.create",
        entity_type="Announcement",
        entity_id=str(a.id),
        metadata={"title": a.title, "priority": a.priority},
    )
    return a


def update_announcement(s: "Session", tenant_id: str, announcement_id: int, payload: dict, user: "User") -> "Announcement":
    a = get_announcement(s, tenant_id, announcement_id)
    if not any(k in payload for k in _FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_announcement_payload(payload, partial=True))
    _apply(a, payload)
    if a.expires_at and a.expires_at <= a.starts_at:
        raise BadRequest("Expiry must be after the start time.")
    a.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="announcement.edit", entity_type="Announcement", entity_id=str(a.id))
    return a


def delete_announcement(s: "Session", tenant_id: str, announcement_id: int, user: "User") -> None:
    a = get_announcement(s, tenant_id, announcement_id)
    a.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="announcement.delete", entity_type="Announcement", entity_id=str(a.id))


def approve_announcement(s: "Session", tenant_id: str, announcement_id: int, user: "User") -> "Announcement":
    a = get_announcement(s, tenant_id, announcement_id)
    now = datetime.utcnow()
    a.approved_by_user_id = user.id
    a.approved_at = now
    a.updated_at = now
    record_event(s, actor=user, action="announcement.approve", entity_type="Announcement", entity_id=str(a.id))
    return a
