from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.errors import BadRequest, not_found, raise_if_errors
from app.flock.utils import check_length, clean_str, iso, parse_bool, parse_datetime

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.events.models import Event


_FIELDS = ("title", "description", "start_at", "end_at", "location", "is_public", "external_uid")


def validate_event_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=200)
    if (not partial or "start_at" in payload) and parse_datetime(payload.get("start_at")) is None:
        errors.append("Start time is required.")
    if "location" in payload:
        check_length(errors, "Location", clean_str(payload.get("location")), max_len=255)
    return errors


def serialize_event(e: "Event") -> dict:
    return {
        "id": e.id,
        "title": e.title,
        "description": e.description,
        "start_at": iso(e.start_at),
        "end_at": iso(e.end_at),
        "location": e.location,
        "is_public": e.is_public,
        "created_at": iso(e.created_at),
        "updated_at": iso(e.updated_at),
    }


def _base_query(s: "Session", tenant_id: str):
    from app.flock.modules.events.models import Event

    return s.query(Event).filter(Event.tenant_id == tenant_id, Event.deleted_at.is_(None))


def list_events(
    s: "Session",
    tenant_id: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
) -> dict:
    from app.flock.modules.events.models import Event

    q = _base_query(s, tenant_id)
    if start:
        q = q.filter(Event.start_at >= start)
    if end:
        q = q.filter(Event.start_at <= end)
    total = q.count()
    rows = q.order_by(Event.start_at.asc(), Event.id.asc()).limit(limit).all()
    return {"events": [serialize_event(e) for e in rows], "total": total}


def upcoming_events(
    s: "Session",
    tenant_id: str,
    *,
    days: int = 30,
    limit: int = 10,
    public_only: bool = False,
    now: datetime | None = None,
) -> list["Event"]:
    """Events starting within the next `days` days, soonest first."""
    from app.flock.modules.events.models import Event

    now = now or datetime.utcnow()
    q = _base_query(s, tenant_id).filter(Event.start_at >= now, Event.start_at <= now + timedelta(days=days))
    if public_only:
        q = q.filter(Event.is_public.is_(True))
    return q.order_by(Event.start_at.asc(), Event.id.asc()).limit(limit).all()


def get_event(s: "Session", tenant_id: str, event_id: int) -> "Event":
    from app.flock.modules.events.models import Event

    e = _base_query(s, tenant_id).filter(Event.id == event_id).one_or_none()
    if e is None:
        raise not_found("Event")
    return e


def _apply(e: "Event", payload: dict) -> None:
    for key in _FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key in ("start_at", "end_at"):
            value = parse_datetime(raw)
        elif key == "is_public":
            value = bool(parse_bool(raw)) if raw is not None else True
        else:
            value = clean_str(raw)
        setattr(e, key, value)
    if e.end_at and e.start_at and e.end_at < e.start_at:
        raise BadRequest("End time cannot be before start time.")


def create_event(s: "Session", tenant_id: str, payload: dict, user: "User") -> "Event":
    from app.flock.modules.events.models import Event

    raise_if_errors(validate_event_payload(payload))
    now = datetime.utcnow()
    e = Event(tenant_id=tenant_id, is_public=True, created_at=now, updated_at=now)
    _apply(e, payload)
    s.add(e)
    s.flush()
    record_event(
        s,
        actor=user,
        action="event.create",
        entity_type="Event",
        entity_id=str(e.id),
        metadata={"title": e.title, "start_at": iso(e.start_at)},
    )
    return e


def update_event(s: "Session", tenant_id: str, event_id: int, payload: dict, user: "User") -> "Event":
    e = get_event(s, tenant_id, event_id)
    if not any(k in payload for k in _FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_event_payload(payload, partial=True))
    _apply(e, payload)
    e.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="event.edit", entity_type="Event", entity_id=str(e.id))
    return e


def delete_event(s: "Session", tenant_id: str, event_id: int, user: "User") -> None:
    e = get_event(s, tenant_id, event_id)
    e.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="event.delete", entity_type="Event", entity_id=str(e.id))
