from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.flock.audit import record_event
from app.flock.errors import BadRequest, not_found, raise_if_errors
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.people.models import Person


MEMBERSHIP_STATUSES = ("member", "attendee", "visitor")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "date_of_birth",
    "gender",
    "household_id",
    "member_since",
    "membership_status",
    "envelope_number",
)
_DATE_FIELDS = ("date_of_birth", "member_since")


def validate_person_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate person creation/update payload. Returns list of errors."""
    errors: list[str] = []
    for key, label in (("first_name", "First name"), ("last_name", "Last name")):
        if not partial or key in payload:
            check_length(errors, label, clean_str(payload.get(key)), min_len=1, max_len=100)
    email = clean_str(payload.get("email"))
    if email and not EMAIL_RE.match(email):
        errors.append("Invalid email address.")
    check_choice(errors, "membership status", clean_str(payload.get("membership_status")), MEMBERSHIP_STATUSES)
    return errors


def serialize_person(p: "Person") -> dict:
    return {
        "id": p.id,
        "first_name": p.first_name,
        "last_name": p.last_name,
        "full_name": p.full_name,
        "email": p.email,
        "phone": p.phone,
        "date_of_birth": iso(p.date_of_birth),
        "gender": p.gender,
        "household_id": p.household_id,
        "member_since": iso(p.member_since),
        "membership_status": p.membership_status,
        "envelope_number": p.envelope_number,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def _coerce(key: str, value):
    if key in _DATE_FIELDS:
        return parse_date(value)
    if key == "email":
        v = clean_str(value)
        return v.lower() if v else None
    return clean_str(value)


def list_people(s: "Session", tenant_id: str, *, search: str | None = None, limit: int = 50, offset: int = 0) -> dict:
    from app.flock.modules.people.models import Person

    q = s.query(Person).filter(Person.tenant_id == tenant_id, Person.deleted_at.is_(None))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            or_(
                Person.first_name.ilike(like),
                Person.last_name.ilike(like),
                Person.email.ilike(like),
                (Person.first_name + " " + Person.last_name).ilike(like),
            )
        )
    total = q.count()
    rows = q.order_by(Person.last_name.asc(), Person.first_name.asc()).limit(limit).offset(offset).all()
    return {"people": [serialize_person(p) for p in rows], "total": total, "limit": limit, "offset": offset}


def get_person(s: "Session", tenant_id: str, person_id: int) -> "Person":
    from app.flock.modules.people.models import Person

    p = (
        s.query(Person)
        .filter(Person.id == person_id, Person.tenant_id == tenant_id, Person.deleted_at.is_(None))
        .one_or_none()
    )
    if p is None:
        raise not_found("Person")
    return p


def create_person(s: "Session", tenant_id: str, payload: dict, user: "User") -> "Person":
    """Create a new person record."""
    from app.flock.modules.people.models import Person

    raise_if_errors(validate_person_payload(payload))
    now = datetime.utcnow()
    person = Person(tenant_id=tenant_id, created_at=now, updated_at=now)
    for key in _FIELDS:
        if key in payload:
            setattr(person, key, _coerce(key, payload.get(key)))
    person.membership_status = person.membership_status or "member"
    s.add(person)
    s.flush()

    record_event(
        s,
        actor=user,
        action="person.create",
        entity_type="Person",
        entity_id=str(person.id),
        metadata={"name": person.full_name, "membership_status": person.membership_status},
    )
    return person


def update_person(s: "Session", tenant_id: str, person_id: int, payload: dict, user: "User") -> "Person":
    """Update only the fields present in the payload."""
    person = get_person(s, tenant_id, person_id)
    present = [k for k in _FIELDS if k in payload]
    if not present:
        raise BadRequest("No fields to update")
    raise_if_errors(validate_person_payload(payload, partial=True))

    changes = {}
    for key in present:
        new = _coerce(key, payload.get(key))
        if key == "membership_status" and new is None:
            new = "member"
        old = getattr(person, key)
        if new != old:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(person, key, new)
    person.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="person.edit",
        entity_type="Person",
        entity_id=str(person.id),
        metadata={"changes": changes},
    )
    return person


def delete_person(s: "Session", tenant_id: str, person_id: int, user: "User") -> None:
    person = get_person(s, tenant_id, person_id)
    person.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="person.delete", entity_type="Person", entity_id=str(person.id))
