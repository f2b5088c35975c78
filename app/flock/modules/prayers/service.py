from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.flock.audit import record_event
from app.flock.errors import BadRequest, not_found, raise_if_errors
from app.flock.modules.people.service import get_person
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.prayers.models import PrayerRequest


STATUSES = ("active", "answered", "archived")
VISIBILITIES = ("public", "leaders_only", "private")
_UPDATE_FIELDS = ("title", "description", "status", "visibility", "is_urgent", "answer_note", "requester_name")


def validate_prayer_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=255)
    if not partial or "description" in payload:
        check_length(errors, "Description", clean_str(payload.get("description")), min_len=1)
    check_choice(errors, "status", clean_str(payload.get("status")), STATUSES)
    check_choice(errors, "visibility", clean_str(payload.get("visibility")), VISIBILITIES)
    return errors


def serialize_prayer(p: "PrayerRequest", prayer_count: int = 0) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "person_id": p.person_id,
        "requester_name": p.requester_name or (p.person.full_name if p.person else None),
        "status": p.status,
        "visibility": p.visibility,
        "is_urgent": p.is_urgent,
        "answered_at": iso(p.answered_at),
        "answer_note": p.answer_note,
        "prayer_count": prayer_count,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def _prayer_counts(s: "Session", tenant_id: str, ids: list[int]) -> dict[int, int]:
    from app.flock.modules.prayers.models import PrayerRecord

    if not ids:
        return {}
    rows = (
        s.query(PrayerRecord.prayer_request_id, func.count(PrayerRecord.id))
        .filter(PrayerRecord.tenant_id == tenant_id, PrayerRecord.prayer_request_id.in_(ids))
        .group_by(PrayerRecord.prayer_request_id)
        .all()
    )
    return {rid: int(n) for rid, n in rows}


def list_prayer_requests(
    s: "Session",
    tenant_id: str,
    *,
    status: str | None = None,
    visibility: str | None = None,
    is_urgent: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Urgent first, then newest."""
    from app.flock.modules.prayers.models import PrayerRequest

    errors: list[str] = []
    check_choice(errors, "status", status, STATUSES)
    check_choice(errors, "visibility", visibility, VISIBILITIES)
    raise_if_errors(errors)

    q = s.query(PrayerRequest).filter(PrayerRequest.tenant_id == tenant_id, PrayerRequest.deleted_at.is_(None))
    if status:
        q = q.filter(PrayerRequest.status == status)
    if visibility:
        q = q.filter(PrayerRequest.visibility == visibility)
    if is_urgent is not None:
        q = q.filter(PrayerRequest.is_urgent.is_(is_urgent))
    total = q.count()
    rows = (
        q.order_by(PrayerRequest.is_urgent.desc(), PrayerRequest.created_at.desc(), PrayerRequest.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    counts = _prayer_counts(s, tenant_id, [r.id for r in rows])
    return {"prayer_requests": [serialize_prayer(r, counts.get(r.id, 0)) for r in rows], "total": total}


def get_prayer_request(s: "Session", tenant_id: str, request_id: int) -> "PrayerRequest":
    from app.flock.modules.prayers.models import PrayerRequest

    p = (
        s.query(PrayerRequest)
        .filter(PrayerRequest.id == request_id, PrayerRequest.tenant_id == tenant_id, PrayerRequest.deleted_at.is_(None))
        .one_or_none()
    )
    if p is None:
        raise not_found("Prayer request")
    return p


def get_prayer_request_detail(s: "Session", tenant_id: str, request_id: int) -> dict:
    p = get_prayer_request(s, tenant_id, request_id)
    prayers = list_prayers(s, tenant_id, request_id)
    data = serialize_prayer(p, len(prayers))
    data["prayers"] = prayers
    return data


def create_prayer_request(s: "Session", tenant_id: str, payload: dict, user: "User") -> "PrayerRequest":
    from app.flock.modules.prayers.models import PrayerRequest

    raise_if_errors(validate_prayer_payload(payload))
    person_id = parse_int(payload.get("person_id"))
    if person_id is not None:
        get_person(s, tenant_id, person_id)
    now = datetime.utcnow()
    p = PrayerRequest(
        tenant_id=tenant_id,
        title=clean_str(payload.get("title")),
        description=clean_str(payload.get("description")),
        person_id=person_id,
        requester_name=clean_str(payload.get("requester_name")),
        status=clean_str(payload.get("status")) or "active",
        visibility=clean_str(payload.get("visibility")) or "public",
        is_urgent=bool(parse_bool(payload.get("is_urgent"))),
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    if p.status == "answered":
        p.answered_at = now
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="prayer_request.create",
        entity_type="PrayerRequest",
        entity_id=str(p.id),
        metadata={"title": p.title, "visibility": p.visibility, "is_urgent": p.is_urgent},
    )
    return p


def update_prayer_request(s: "Session", tenant_id: str, request_id: int, payload: dict, user: "User") -> "PrayerRequest":
    p = get_prayer_request(s, tenant_id, request_id)
    present = [k for k in _UPDATE_FIELDS if k in payload]
    if not present:
        raise BadRequest("No fields to update")
    raise_if_errors(validate_prayer_payload(payload, partial=True))

    changes = {}
    for key in present:
        new = parse_bool(payload.get(key)) if key == "is_urgent" else clean_str(payload.get(key))
        if key == "is_urgent":
            new = bool(new)
        if key in ("status", "visibility") and new is None:
            continue
        old = getattr(p, key)
        if new != old:
            changes[key] = {"old": old, "new": new}
            setattr(p, key, new)
    if "status" in changes:
        # Only the transition into answered stamps the time.
        p.answered_at = datetime.utcnow() if p.status == "answered" else None
    p.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="prayer_request.edit",
        entity_type="PrayerRequest",
        entity_id=str(p.id),
        metadata={"changes": changes},
    )
    return p


def delete_prayer_request(s: "Session", tenant_id: str, request_id: int, user: "User") -> None:
    p = get_prayer_request(s, tenant_id, request_id)
    p.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="prayer_request.delete", entity_type="PrayerRequest", entity_id=str(p.id))


def record_prayer(s: "Session", tenant_id: str, request_id: int, person_id: int, note: str | None, user: "User") -> dict:
    """
    Record that a person prayed. Praying again updates the existing row.
    """
    from app.flock.modules.prayers.models import PrayerRecord

    p = get_prayer_request(s, tenant_id, request_id)
    person = get_person(s, tenant_id, person_id)
    now = datetime.utcnow()
    rec = (
        s.query(PrayerRecord)
        .filter(PrayerRecord.prayer_request_id == p.id, PrayerRecord.person_id == person.id)
        .one_or_none()
    )
    if rec is None:
        rec = PrayerRecord(tenant_id=tenant_id, prayer_request_id=p.id, person_id=person.id, note=clean_str(note), prayed_at=now)
        s.add(rec)
    else:
        rec.note = clean_str(note)
        rec.prayed_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="prayer_request.prayed",
        entity_type="PrayerRequest",
        entity_id=str(p.id),
        metadata={"person_id": person.id},
    )
    return {"id": rec.id, "prayer_request_id": p.id, "person_id": person.id, "note": rec.note, "prayed_at": iso(rec.prayed_at)}


def list_prayers(s: "Session", tenant_id: str, request_id: int) -> list[dict]:
    from app.flock.modules.prayers.models import PrayerRecord

    rows = (
        s.query(PrayerRecord)
        .filter(PrayerRecord.tenant_id == tenant_id, PrayerRecord.prayer_request_id == request_id)
        .order_by(PrayerRecord.prayed_at.desc())
        .all()
    )
    return [
        {
            "id": r.id,
            "person_id": r.person_id,
            "person_name": r.person.full_name if r.person else None,
            "note": r.note,
            "prayed_at": iso(r.prayed_at),
        }
        for r in rows
    ]


def get_stats(s: "Session", tenant_id: str) -> dict:
    from app.flock.modules.prayers.models import PrayerRecord, PrayerRequest

    base = s.query(PrayerRequest).filter(PrayerRequest.tenant_id == tenant_id, PrayerRequest.deleted_at.is_(None))
    active = base.filter(PrayerRequest.status == "active").count()
    answered = base.filter(PrayerRequest.status == "answered").count()
    urgent = base.filter(PrayerRequest.status == "active", PrayerRequest.is_urgent.is_(True)).count()
    total_prayers = (
        s.query(func.count(PrayerRecord.id))
        .join(PrayerRequest, PrayerRequest.id == PrayerRecord.prayer_request_id)
        .filter(PrayerRecord.tenant_id == tenant_id, PrayerRequest.deleted_at.is_(None))
        .scalar()
    )
    return {"active": active, "answered": answered, "urgent": urgent, "total_prayers": int(total_prayers or 0)}


def public_prayer_requests(s: "Session", tenant_id: str, limit: int = 4) -> list["PrayerRequest"]:
    """Active, public requests for printed bulletins."""
    from app.flock.modules.prayers.models import PrayerRequest

    return (
        s.query(PrayerRequest)
        .filter(
            PrayerRequest.tenant_id == tenant_id,
            PrayerRequest.deleted_at.is_(None),
            PrayerRequest.status == "active",
            PrayerRequest.visibility == "public",
        )
        .order_by(PrayerRequest.is_urgent.desc(), PrayerRequest.created_at.desc())
        .limit(limit)
        .all()
    )
