from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.errors import BadRequest, Conflict, NotFound, not_found, raise_if_errors
from app.flock.modules.people.service import get_person
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_date, parse_int, parse_time

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.attendance.models import AttendanceSession


CATEGORIES = ("SundayService", "SmallGroup", "Event", "Class", "Meeting", "Other")
_SESSION_FIELDS = ("name", "category", "event_id", "group_id", "session_date", "session_time", "notes")


def validate_session_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "name" in payload:
        check_length(errors, "Name", clean_str(payload.get("name")), min_len=1, max_len=255)
    if not partial or "category" in payload:
        category = clean_str(payload.get("category"))
        if not category:
            errors.append("Category is required.")
        check_choice(errors, "category", category, CATEGORIES)
    if (not partial or "session_date" in payload) and parse_date(payload.get("session_date")) is None:
        errors.append("Session date is required.")
    return errors


def _is_visitor(r) -> bool:
    return bool(r.is_visitor) or bool(r.person and r.person.membership_status == "visitor")


def session_counts(session: "AttendanceSession") -> dict:
    """Members, visitors (including guests) and total headcount."""
    members = sum(1 for r in session.records if not _is_visitor(r) and r.person and r.person.membership_status == "member")
    guests = sum(r.guest_count for r in session.records)
    visitors = sum(1 for r in session.records if _is_visitor(r)) + guests
    total = len(session.records) + guests
    return {"member_count": members, "visitor_count": visitors, "total_count": total}


def serialize_session(a: "AttendanceSession", *, include_records: bool = False) -> dict:
    data = {
        "id": a.id,
        "name": a.name,
        "category": a.category,
        "event_id": a.event_id,
        "group_id": a.group_id,
        "session_date": iso(a.session_date),
        "session_time": iso(a.session_time),
        "notes": a.notes,
        "created_at": iso(a.created_at),
    }
    data.update(session_counts(a))
    if include_records:
        data["records"] = [
            {
                "id": r.id,
                "person_id": r.person_id,
                "person_name": r.person.full_name if r.person else None,
                "membership_status": r.person.membership_status if r.person else None,
                "guest_count": r.guest_count,
                "is_visitor": r.is_visitor,
                "notes": r.notes,
                "checked_in_at": iso(r.checked_in_at),
            }
            for r in a.records
        ]
    return data


def _session_query(s: "Session", tenant_id: str, *, category: str | None, start_date: date | None, end_date: date | None):
    from app.flock.modules.attendance.models import AttendanceSession

    errors: list[str] = []
    check_choice(errors, "category", category, CATEGORIES)
    raise_if_errors(errors)
    q = s.query(AttendanceSession).filter(AttendanceSession.tenant_id == tenant_id, AttendanceSession.deleted_at.is_(None))
    if category:
        q = q.filter(AttendanceSession.category == category)
    if start_date:
        q = q.filter(AttendanceSession.session_date >= start_date)
    if end_date:
        q = q.filter(AttendanceSession.session_date <= end_date)
    return q


def list_sessions(
    s: "Session",
    tenant_id: str,
    *,
    category: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    from app.flock.modules.attendance.models import AttendanceSession

    q = _session_query(s, tenant_id, category=category, start_date=start_date, end_date=end_date)
    total = q.count()
    rows = q.order_by(AttendanceSession.session_date.desc(), AttendanceSession.id.desc()).limit(limit).offset(offset).all()
    return {"sessions": [serialize_session(a) for a in rows], "total": total}


def get_session(s: "Session", tenant_id: str, session_id: int) -> "AttendanceSession":
    from app.flock.modules.attendance.models import AttendanceSession

    a = (
        s.query(AttendanceSession)
        .filter(AttendanceSession.id == session_id, AttendanceSession.tenant_id == tenant_id, AttendanceSession.deleted_at.is_(None))
        .one_or_none()
    )
    if a is None:
        raise not_found("Attendance session")
    return a


def _apply_session(a: "AttendanceSession", payload: dict) -> None:
    for key in _SESSION_FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key == "session_date":
            value = parse_date(raw)
        elif key == "session_time":
            value = parse_time(raw)
        elif key in ("event_id", "group_id"):
            value = parse_int(raw)
        else:
            value = clean_str(raw)
        setattr(a, key, value)


def create_session(s: "Session", tenant_id: str, payload: dict, user: "User") -> "AttendanceSession":
    from app.flock.modules.attendance.models import AttendanceSession

    raise_if_errors(validate_session_payload(payload))
    now = datetime.utcnow()
    a = AttendanceSession(tenant_id=tenant_id, created_at=now, updated_at=now)
    _apply_session(a, payload)
    s.add(a)
    s.flush()
    record_event(
        s,
        actor=user,
        action="attendance_session.create",
        entity_type="AttendanceSession",
        entity_id=str(a.id),
        metadata={"name": a.name, "category": a.category, "session_date": iso(a.session_date)},
    )
    return a


def update_session(s: "Session", tenant_id: str, session_id: int, payload: dict, user: "User") -> "AttendanceSession":
    a = get_session(s, tenant_id, session_id)
    if not any(k in payload for k in _SESSION_FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_session_payload(payload, partial=True))
    _apply_session(a, payload)
    a.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="attendance_session.edit", entity_type="AttendanceSession", entity_id=str(a.id))
    return a


def delete_session(s: "Session", tenant_id: str, session_id: int, user: "User") -> None:
    a = get_session(s, tenant_id, session_id)
    a.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="attendance_session.delete", entity_type="AttendanceSession", entity_id=str(a.id))


def check_in(
    s: "Session",
    tenant_id: str,
    session_id: int,
    person_id: int,
    user: "User",
    *,
    guest_count: int = 0,
    is_visitor: bool = False,
    notes: str | None = None,
) -> dict:
    from app.flock.modules.attendance.models import AttendanceRecord

    if guest_count < 0:
        raise BadRequest("guest_count must be >= 0")
    a = get_session(s, tenant_id, session_id)
    person = get_person(s, tenant_id, person_id)
    existing = (
        s.query(AttendanceRecord)
        .filter(AttendanceRecord.session_id == a.id, AttendanceRecord.person_id == person.id)
        .one_or_none()
    )
    if existing is not None:
        raise Conflict("Person already checked in to this session")
    rec = AttendanceRecord(
        tenant_id=tenant_id,
        session_id=a.id,
        person_id=person.id,
        guest_count=guest_count,
        is_visitor=is_visitor,
        notes=clean_str(notes),
        checked_in_by_user_id=user.id,
    )
    a.records.append(rec)
    s.flush()
    record_event(
        s,
        actor=user,
        action="attendance.check_in",
        entity_type="AttendanceSession",
        entity_id=str(a.id),
        metadata={"person_id": person.id, "guest_count": guest_count, "is_visitor": is_visitor},
    )
    return {
        "id": rec.id,
        "session_id": a.id,
        "person_id": person.id,
        "guest_count": guest_count,
        "is_visitor": is_visitor,
        "checked_in_at": iso(rec.checked_in_at),
    }


def check_out(s: "Session", tenant_id: str, session_id: int, person_id: int, user: "User") -> None:
    from app.flock.modules.attendance.models import AttendanceRecord

    rec = (
        s.query(AttendanceRecord)
        .filter(
            AttendanceRecord.tenant_id == tenant_id,
            AttendanceRecord.session_id == session_id,
            AttendanceRecord.person_id == person_id,
        )
        .one_or_none()
    )
    if rec is None:
        raise NotFound("Attendance record not found")
    s.delete(rec)
    record_event(
        s,
        actor=user,
        action="attendance.check_out",
        entity_type="AttendanceSession",
        entity_id=str(session_id),
        metadata={"person_id": person_id},
    )


def get_stats(
    s: "Session",
    tenant_id: str,
    *,
    category: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    sessions = _session_query(s, tenant_id, category=category, start_date=start_date, end_date=end_date).all()
    counts = [session_counts(a) for a in sessions]
    total = sum(c["total_count"] for c in counts)
    return {
        "session_count": len(sessions),
        "total_attendance": total,
        "total_members": sum(c["member_count"] for c in counts),
        "total_visitors": sum(c["visitor_count"] for c in counts),
        "avg_attendance": round(total / len(sessions)) if sessions else 0,
    }
