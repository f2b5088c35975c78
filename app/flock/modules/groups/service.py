from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import case, func

from app.flock.audit import record_event
from app.flock.errors import BadRequest, Conflict, NotFound, not_found, raise_if_errors
from app.flock.modules.people.service import get_person
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.groups.models import Group


MEMBER_ROLES = ("leader", "member")
_FIELDS = ("name", "description", "category", "leader_id")


def validate_group_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "name" in payload:
        check_length(errors, "Name", clean_str(payload.get("name")), min_len=1, max_len=255)
    check_length(errors, "Category", clean_str(payload.get("category")), max_len=100)
    return errors


def serialize_group(g: "Group", member_count: int | None = None) -> dict:
    return {
        "id": g.id,
        "name": g.name,
        "description": g.description,
        "category": g.category,
        "leader_id": g.leader_id,
        "leader_name": g.leader.full_name if g.leader else None,
        "member_count": member_count,
        "created_at": iso(g.created_at),
        "updated_at": iso(g.updated_at),
    }


def _member_counts(s: "Session", tenant_id: str, group_ids: list[int]) -> dict[int, int]:
    from app.flock.modules.groups.models import GroupMember

    if not group_ids:
        return {}
    rows = (
        s.query(GroupMember.group_id, func.count(GroupMember.id))
        .filter(
            GroupMember.tenant_id == tenant_id,
            GroupMember.group_id.in_(group_ids),
            GroupMember.deleted_at.is_(None),
        )
        .group_by(GroupMember.group_id)
        .all()
    )
    return {gid: int(n) for gid, n in rows}


def list_groups(s: "Session", tenant_id: str, *, category: str | None = None, limit: int = 50, offset: int = 0) -> dict:
    from app.flock.modules.groups.models import Group

    q = s.query(Group).filter(Group.tenant_id == tenant_id, Group.deleted_at.is_(None))
    if category:
        q = q.filter(Group.category == category)
    total = q.count()
    rows = q.order_by(Group.name.asc()).limit(limit).offset(offset).all()
    counts = _member_counts(s, tenant_id, [g.id for g in rows])
    return {"groups": [serialize_group(g, counts.get(g.id, 0)) for g in rows], "total": total}


def get_group(s: "Session", tenant_id: str, group_id: int) -> "Group":
    from app.flock.modules.groups.models import Group

    g = s.query(Group).filter(Group.id == group_id, Group.tenant_id == tenant_id, Group.deleted_at.is_(None)).one_or_none()
    if g is None:
        raise not_found("Group")
    return g


def _apply(s: "Session", tenant_id: str, group: "Group", payload: dict) -> dict:
    changes = {}
    for key in _FIELDS:
        if key not in payload:
            continue
        if key == "leader_id":
            new = parse_int(payload.get(key))
            if new is not None:
                get_person(s, tenant_id, new)
        else:
            new = clean_str(payload.get(key))
        old = getattr(group, key)
        if new != old:
            changes[key] = {"old": old, "new": new}
            setattr(group, key, new)
    return changes


def create_group(s: "Session", tenant_id: str, payload: dict, user: "User") -> "Group":
    from app.flock.modules.groups.models import Group

    raise_if_errors(validate_group_payload(payload))
    now = datetime.utcnow()
    group = Group(tenant_id=tenant_id, created_at=now, updated_at=now)
    _apply(s, tenant_id, group, payload)
    s.add(group)
    s.flush()
    record_event(s, actor=user, action="group.create", entity_type="Group", entity_id=str(group.id), metadata={"name": group.name})
    return group


def update_group(s: "Session", tenant_id: str, group_id: int, payload: dict, user: "User") -> "Group":
    group = get_group(s, tenant_id, group_id)
    if not any(k in payload for k in _FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_group_payload(payload, partial=True))
    changes = _apply(s, tenant_id, group, payload)
    group.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="group.edit", entity_type="Group", entity_id=str(group.id), metadata={"changes": changes})
    return group


def delete_group(s: "Session", tenant_id: str, group_id: int, user: "User") -> None:
    group = get_group(s, tenant_id, group_id)
    group.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="group.delete", entity_type="Group", entity_id=str(group.id))


def list_members(s: "Session", tenant_id: str, group_id: int) -> list[dict]:
    """Leaders first, then by last/first name."""
    from app.flock.modules.groups.models import GroupMember
    from app.flock.modules.people.models import Person

    get_group(s, tenant_id, group_id)
    rows = (
        s.query(GroupMember)
        .join(Person, Person.id == GroupMember.person_id)
        .filter(
            GroupMember.tenant_id == tenant_id,
            GroupMember.group_id == group_id,
            GroupMember.deleted_at.is_(None),
        )
        .order_by(case((GroupMember.role == "leader", 0), else_=1), Person.last_name.asc(), Person.first_name.asc())
        .all()
    )
    return [
        {
            "id": m.id,
            "person_id": m.person_id,
            "first_name": m.person.first_name,
            "last_name": m.person.last_name,
            "email": m.person.email,
            "role": m.role,
            "joined_at": iso(m.joined_at),
        }
        for m in rows
    ]


def add_member(s: "Session", tenant_id: str, group_id: int, person_id: int, role: str, user: "User") -> dict:
    from app.flock.modules.groups.models import GroupMember

    errors: list[str] = []
    check_choice(errors, "role", role, MEMBER_ROLES)
    raise_if_errors(errors)
    group = get_group(s, tenant_id, group_id)
    person = get_person(s, tenant_id, person_id)
    existing = (
        s.query(GroupMember)
        .filter(
            GroupMember.tenant_id == tenant_id,
            GroupMember.group_id == group.id,
            GroupMember.person_id == person.id,
            GroupMember.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if existing is not None:
        raise Conflict("Person is already a member of this group")
    member = GroupMember(tenant_id=tenant_id, group_id=group.id, person_id=person.id, role=role)
    s.add(member)
    s.flush()
    record_event(
        s,
        actor=user,
        action="group.member_add",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"person_id": person.id, "role": role},
    )
    return {"id": member.id, "group_id": group.id, "person_id": person.id, "role": role}


def remove_member(s: "Session", tenant_id: str, group_id: int, person_id: int, user: "User") -> None:
    from app.flock.modules.groups.models import GroupMember

    member = (
        s.query(GroupMember)
        .filter(
            GroupMember.tenant_id == tenant_id,
            GroupMember.group_id == group_id,
            GroupMember.person_id == person_id,
            GroupMember.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if member is None:
        raise NotFound("Member not found")
    member.deleted_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="group.member_remove",
        entity_type="Group",
        entity_id=str(group_id),
        metadata={"person_id": person_id},
    )
