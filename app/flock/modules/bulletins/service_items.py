from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.errors import BadRequest, NotFound, forbidden, raise_if_errors
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.bulletins.models import BulletinIssue, ServiceItem


ITEM_TYPES = (
    "song",
    "scripture",
    "prayer",
    "communion",
    "announcement",
    "offering",
    "sermon",
    "transition",
    "note",
)

# Older clients send PascalCase names
LEGACY_TYPE_MAP = {
    "Welcome": "note",
    "CallToWorship": "scripture",
    "Song": "song",
    "Prayer": "prayer",
    "Scripture": "scripture",
    "Sermon": "sermon",
    "Offering": "offering",
    "Communion": "communion",
    "Benediction": "prayer",
    "Announcement": "announcement",
    "Other": "note",
}

_TEXT_LIMITS = {
    "title": 255,
    "leader_name": 150,
    "scripture_reference": 255,
    "ccli_number": 32,
    "artist": 255,
    "marker": 8,
}
_LONG_TEXT = ("content", "printed_text")
_FIELDS = (
    ("item_type",) + tuple(_TEXT_LIMITS) + _LONG_TEXT + ("song_id", "sermon_id", "sequence", "duration_minutes")
)


def normalize_item_type(value) -> str | None:
    v = clean_str(value)
    if v is None:
        return None
    return LEGACY_TYPE_MAP.get(v, v)


def validate_item_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    item_type = normalize_item_type(payload.get("item_type") or payload.get("type"))
    if not partial and item_type is None:
        errors.append("item_type is required.")
    check_choice(errors, "item_type", item_type, ITEM_TYPES)
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=_TEXT_LIMITS["title"])
    for key, max_len in _TEXT_LIMITS.items():
        if key != "title" and key in payload:
            check_length(errors, key, clean_str(payload.get(key)), max_len=max_len)
    if "sequence" in payload:
        seq = parse_int(payload.get("sequence"))
        if seq is None or seq < 0:
            errors.append("sequence must be a non-negative integer.")
    if payload.get("duration_minutes") is not None:
        minutes = parse_int(payload.get("duration_minutes"))
        if minutes is None or not 0 <= minutes <= 600:
            errors.append("duration_minutes must be between 0 and 600.")
    return errors


def serialize_item(item: "ServiceItem") -> dict:
    return {
        "id": item.id,
        "bulletin_issue_id": item.bulletin_issue_id,
        "item_type": item.item_type,
        "title": item.title,
        "content": item.content,
        "leader_name": item.leader_name,
        "scripture_reference": item.scripture_reference,
        "ccli_number": item.ccli_number,
        "artist": item.artist,
        "song_id": item.song_id,
        "sermon_id": item.sermon_id,
        "sequence": item.sequence,
        "printed_text": item.printed_text,
        "marker": item.marker,
        "duration_minutes": item.duration_minutes,
        "created_at": iso(item.created_at),
        "updated_at": iso(item.updated_at),
    }


def load_bulletin(s: "Session", tenant_id: str, bulletin_id: int) -> "BulletinIssue":
    from app.flock.modules.bulletins.models import BulletinIssue

    b = (
        s.query(BulletinIssue)
        .filter(
            BulletinIssue.id == bulletin_id,
            BulletinIssue.tenant_id == tenant_id,
            BulletinIssue.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if b is None:
        raise NotFound("Bulletin not found")
    return b


def _assert_unlocked(b: "BulletinIssue") -> None:
    if b.status == "locked":
        raise forbidden("modify", "locked bulletin")


def active_items(s: "Session", tenant_id: str, bulletin_id: int) -> list["ServiceItem"]:
    from app.flock.modules.bulletins.models import ServiceItem

    return (
        s.query(ServiceItem)
        .filter(
            ServiceItem.tenant_id == tenant_id,
            ServiceItem.bulletin_issue_id == bulletin_id,
            ServiceItem.deleted_at.is_(None),
        )
        .order_by(ServiceItem.sequence.asc(), ServiceItem.id.asc())
        .all()
    )


def list_items(s: "Session", tenant_id: str, bulletin_id: int) -> list[dict]:
    load_bulletin(s, tenant_id, bulletin_id)
    return [serialize_item(i) for i in active_items(s, tenant_id, bulletin_id)]


def get_item(s: "Session", tenant_id: str, item_id: int) -> "ServiceItem":
    from app.flock.modules.bulletins.models import ServiceItem

    item = (
        s.query(ServiceItem)
        .filter(ServiceItem.id == item_id, ServiceItem.tenant_id == tenant_id, ServiceItem.deleted_at.is_(None))
        .one_or_none()
    )
    if item is None:
        raise NotFound("Service item not found")
    return item


def _apply(item: "ServiceItem", payload: dict) -> None:
    for key in _FIELDS:
        if key == "item_type":
            raw = payload.get("item_type") or payload.get("type")
            if raw is not None:
                item.item_type = normalize_item_type(raw)
            continue
        if key not in payload:
            continue
        raw = payload.get(key)
        if key in ("song_id", "sermon_id", "duration_minutes"):
            value = parse_int(raw)
        elif key == "sequence":
            value = parse_int(raw, 0)
        else:
            value = clean_str(raw)
        setattr(item, key, value)
    if item.item_type == "song" and not item.ccli_number:
        raise BadRequest("CCLI number required for songs")


def _next_sequence(s: "Session", tenant_id: str, bulletin_id: int) -> int:
    items = active_items(s, tenant_id, bulletin_id)
    return (max(i.sequence for i in items) + 1) if items else 0


def create_item(s: "Session", tenant_id: str, bulletin_id: int, payload: dict, user: "User | None") -> "ServiceItem":
    from app.flock.modules.bulletins.models import ServiceItem

    b = load_bulletin(s, tenant_id, bulletin_id)
    _assert_unlocked(b)
    raise_if_errors(validate_item_payload(payload))
    now = datetime.utcnow()
    item = ServiceItem(tenant_id=tenant_id, bulletin_issue_id=b.id, created_at=now, updated_at=now)
    if "sequence" not in payload:
        item.sequence = _next_sequence(s, tenant_id, b.id)
    _apply(item, payload)
    s.add(item)
    s.flush()
    record_event(
        s,
        actor=user,
        action="service_item.create",
        entity_type="ServiceItem",
        entity_id=str(item.id),
        metadata={"bulletin_id": b.id, "item_type": item.item_type},
    )
    return item


def update_item(s: "Session", tenant_id: str, item_id: int, payload: dict, user: "User") -> "ServiceItem":
    item = get_item(s, tenant_id, item_id)
    _assert_unlocked(load_bulletin(s, tenant_id, item.bulletin_issue_id))
    if not any(k in payload for k in _FIELDS + ("type",)):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_item_payload(payload, partial=True))
    _apply(item, payload)
    item.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="service_item.edit", entity_type="ServiceItem", entity_id=str(item.id))
    return item


def delete_item(s: "Session", tenant_id: str, item_id: int, user: "User") -> None:
    item = get_item(s, tenant_id, item_id)
    _assert_unlocked(load_bulletin(s, tenant_id, item.bulletin_issue_id))
    item.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="service_item.delete", entity_type="ServiceItem", entity_id=str(item.id))


def reorder_items(s: "Session", tenant_id: str, bulletin_id: int, order, user: "User") -> list[dict]:
    """`order` is a list of `{id, sequence}`; ids must belong to the bulletin."""
    b = load_bulletin(s, tenant_id, bulletin_id)
    _assert_unlocked(b)
    if not isinstance(order, list) or not order:
        raise BadRequest("items must be a non-empty list of {id, sequence}")
    by_id = {i.id: i for i in active_items(s, tenant_id, b.id)}
    now = datetime.utcnow()
    for entry in order:
        if not isinstance(entry, dict):
            raise BadRequest("items must be a non-empty list of {id, sequence}")
        item_id = parse_int(entry.get("id"))
        seq = parse_int(entry.get("sequence"))
        if item_id not in by_id:
            raise NotFound("Service item not found")
        if seq is None or seq < 0:
            raise BadRequest("sequence must be a non-negative integer.")
        by_id[item_id].sequence = seq
        by_id[item_id].updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="service_item.reorder",
        entity_type="BulletinIssue",
        entity_id=str(b.id),
        metadata={"count": len(order)},
    )
    return [serialize_item(i) for i in active_items(s, tenant_id, b.id)]
