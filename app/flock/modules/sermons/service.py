from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.flock.audit import record_event
from app.flock.errors import BadRequest, NotFound, not_found, raise_if_errors
from app.flock.utils import check_choice, check_length, clean_str, iso, parse_bool, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.sermons.models import Sermon, SermonPlan, SermonPlanTemplate, SermonSeries

logger = logging.getLogger(__name__)

STATUSES = ("idea", "planning", "draft", "ready", "preached")
PATH_STAGES = ("text_setup", "big_idea", "outline", "finalize")
STYLE_PROFILES = ("story_first_3_point", "expository_verse_by_verse", "topical_teaching")
ELEMENT_TYPES = ("section", "point", "scripture", "hymn", "illustration", "note")
# element type -> field that must be present
_ELEMENT_REQUIRED = {
    "section": "title",
    "point": "text",
    "note": "text",
    "illustration": "title",
    "scripture": "reference",
    "hymn": "title",
}

_SERIES_FIELDS = ("title", "description", "slug", "start_date", "end_date", "is_active")
_SERMON_FIELDS = (
    "title",
    "sermon_date",
    "series_id",
    "preacher",
    "primary_scripture",
    "additional_scripture",
    "manuscript",
    "audio_url",
    "video_url",
    "tags",
    "outline",
    "path_stage",
    "status",
    "style_profile",
)


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


def validate_series_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=200)
    if "slug" in payload:
        check_length(errors, "Slug", clean_str(payload.get("slug")), max_len=100)
    start = parse_date(payload.get("start_date"))
    end = parse_date(payload.get("end_date"))
    if start and end and end < start:
        errors.append("End date cannot be before start date.")
    return errors


def serialize_series(x: "SermonSeries", *, sermon_count: int | None = None) -> dict:
    data = {
        "id": x.id,
        "title": x.title,
        "description": x.description,
        "slug": x.slug,
        "start_date": iso(x.start_date),
        "end_date": iso(x.end_date),
        "is_active": x.is_active,
        "created_at": iso(x.created_at),
    }
    if sermon_count is not None:
        data["sermon_count"] = sermon_count
    return data


def list_series(s: "Session", tenant_id: str, *, limit: int = 50, offset: int = 0) -> dict:
    from app.flock.modules.sermons.models import Sermon, SermonSeries

    q = s.query(SermonSeries).filter(SermonSeries.tenant_id == tenant_id, SermonSeries.deleted_at.is_(None))
    total = q.count()
    rows = q.order_by(SermonSeries.created_at.desc(), SermonSeries.id.desc()).limit(limit).offset(offset).all()
    counts = dict(
        s.query(Sermon.series_id, func.count(Sermon.id))
        .filter(Sermon.tenant_id == tenant_id, Sermon.deleted_at.is_(None), Sermon.series_id.in_([r.id for r in rows]))
        .group_by(Sermon.series_id)
        .all()
    ) if rows else {}
    return {"series": [serialize_series(r, sermon_count=counts.get(r.id, 0)) for r in rows], "total": total}


def get_series(s: "Session", tenant_id: str, series_id: int) -> "SermonSeries":
    from app.flock.modules.sermons.models import SermonSeries

    x = (
        s.query(SermonSeries)
        .filter(SermonSeries.id == series_id, SermonSeries.tenant_id == tenant_id, SermonSeries.deleted_at.is_(None))
        .one_or_none()
    )
    if x is None:
        raise not_found("Sermon series")
    return x


def _apply_series(x: "SermonSeries", payload: dict) -> None:
    for key in _SERIES_FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key in ("start_date", "end_date"):
            value = parse_date(raw)
        elif key == "is_active":
            value = bool(parse_bool(raw)) if raw is not None else True
        else:
            value = clean_str(raw)
        setattr(x, key, value)


def create_series(s: "Session", tenant_id: str, payload: dict, user: "User") -> "SermonSeries":
    from app.flock.modules.sermons.models import SermonSeries

    raise_if_errors(validate_series_payload(payload))
    now = datetime.utcnow()
    x = SermonSeries(tenant_id=tenant_id, is_active=True, created_at=now, updated_at=now)
    _apply_series(x, payload)
    s.add(x)
    s.flush()
    record_event(s, actor=user, action="sermon_series.create", entity_type="SermonSeries", entity_id=str(x.id))
    return x


def update_series(s: "Session", tenant_id: str, series_id: int, payload: dict, user: "User") -> "SermonSeries":
    x = get_series(s, tenant_id, series_id)
    if not any(k in payload for k in _SERIES_FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_series_payload(payload, partial=True))
    _apply_series(x, payload)
    x.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="sermon_series.edit", entity_type="SermonSeries", entity_id=str(x.id))
    return x


def delete_series(s: "Session", tenant_id: str, series_id: int, user: "User") -> None:
    x = get_series(s, tenant_id, series_id)
    x.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="sermon_series.delete", entity_type="SermonSeries", entity_id=str(x.id))


# ---------------------------------------------------------------------------
# Sermons
# ---------------------------------------------------------------------------


def validate_sermon_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=200)
    if (not partial or "sermon_date" in payload) and parse_date(payload.get("sermon_date")) is None:
        errors.append("Sermon date is required.")
    if "preacher" in payload:
        check_length(errors, "Preacher", clean_str(payload.get("preacher")), max_len=150)
    if "primary_scripture" in payload:
        check_length(errors, "Primary scripture", clean_str(payload.get("primary_scripture")), max_len=100)
    check_choice(errors, "status", clean_str(payload.get("status")), STATUSES)
    check_choice(errors, "path_stage", clean_str(payload.get("path_stage")), PATH_STAGES)
    check_choice(errors, "style_profile", clean_str(payload.get("style_profile")), STYLE_PROFILES)
    tags = payload.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        errors.append("tags must be a list of strings.")
    outline = payload.get("outline")
    if outline is not None and not isinstance(outline, dict):
        errors.append("outline must be an object.")
    return errors


def serialize_sermon(x: "Sermon") -> dict:
    return {
        "id": x.id,
        "title": x.title,
        "sermon_date": iso(x.sermon_date),
        "series_id": x.series_id,
        "series_title": x.series.title if x.series and x.series.deleted_at is None else None,
        "preacher": x.preacher,
        "primary_scripture": x.primary_scripture,
        "additional_scripture": x.additional_scripture,
        "manuscript": x.manuscript,
        "audio_url": x.audio_url,
        "video_url": x.video_url,
        "tags": x.tags or [],
        "outline": x.outline,
        "path_stage": x.path_stage,
        "status": x.status,
        "style_profile": x.style_profile,
        "created_at": iso(x.created_at),
        "updated_at": iso(x.updated_at),
    }


def _sermon_query(s: "Session", tenant_id: str):
    from app.flock.modules.sermons.models import Sermon

    return s.query(Sermon).filter(Sermon.tenant_id == tenant_id, Sermon.deleted_at.is_(None))


def list_sermons(
    s: "Session",
    tenant_id: str,
    *,
    series_id: int | None = None,
    preacher: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    from app.flock.modules.sermons.models import Sermon

    q = _sermon_query(s, tenant_id)
    if series_id is not None:
        q = q.filter(Sermon.series_id == series_id)
    if preacher:
        q = q.filter(Sermon.preacher.ilike(f"%{preacher}%"))
    if start_date:
        q = q.filter(Sermon.sermon_date >= start_date)
    if end_date:
        q = q.filter(Sermon.sermon_date <= end_date)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Sermon.title.ilike(like), Sermon.primary_scripture.ilike(like)))
    total = q.count()
    rows = q.order_by(Sermon.sermon_date.desc(), Sermon.id.desc()).limit(limit).offset(offset).all()
    return {"sermons": [serialize_sermon(x) for x in rows], "total": total}


def list_for_select(s: "Session", tenant_id: str, *, search: str | None = None, limit: int = 20) -> list[dict]:
    from app.flock.modules.sermons.models import Sermon

    q = _sermon_query(s, tenant_id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Sermon.title.ilike(like), Sermon.preacher.ilike(like)))
    rows = q.order_by(Sermon.sermon_date.desc()).limit(limit).all()
    return [
        {
            "id": x.id,
            "title": x.title,
            "sermon_date": iso(x.sermon_date),
            "preacher": x.preacher,
            "primary_scripture": x.primary_scripture,
            "status": x.status,
        }
        for x in rows
    ]


def get_sermon(s: "Session", tenant_id: str, sermon_id: int) -> "Sermon":
    from app.flock.modules.sermons.models import Sermon

    x = _sermon_query(s, tenant_id).filter(Sermon.id == sermon_id).one_or_none()
    if x is None:
        raise not_found("Sermon")
    return x


def sermon_for_date(s: "Session", tenant_id: str, service_date: date) -> "Sermon | None":
    from app.flock.modules.sermons.models import Sermon

    return _sermon_query(s, tenant_id).filter(Sermon.sermon_date == service_date).order_by(Sermon.id.asc()).first()


def _apply_sermon(s: "Session", tenant_id: str, x: "Sermon", payload: dict) -> None:
    for key in _SERMON_FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key == "sermon_date":
            value = parse_date(raw)
        elif key == "series_id":
            value = parse_int(raw)
            # keep the relationship in step; serialize_sermon reads x.series
            x.series = get_series(s, tenant_id, value) if value is not None else None
        elif key in ("tags", "outline"):
            value = raw
        else:
            value = clean_str(raw)
        if key in ("status", "path_stage") and value is None:
            continue
        setattr(x, key, value)


def create_sermon(s: "Session", tenant_id: str, payload: dict, user: "User") -> "Sermon":
    from app.flock.modules.sermons.models import Sermon

    raise_if_errors(validate_sermon_payload(payload))
    now = datetime.utcnow()
    x = Sermon(tenant_id=tenant_id, status="idea", path_stage="text_setup", created_at=now, updated_at=now)
    _apply_sermon(s, tenant_id, x, payload)
    s.add(x)
    s.flush()
    record_event(
        s,
        actor=user,
        action="sermon.create",
        entity_type="Sermon",
        entity_id=str(x.id),
        metadata={"title": x.title, "sermon_date": iso(x.sermon_date)},
    )
    return x


def update_sermon(s: "Session", tenant_id: str, sermon_id: int, payload: dict, user: "User") -> "Sermon":
    x = get_sermon(s, tenant_id, sermon_id)
    if not any(k in payload for k in _SERMON_FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_sermon_payload(payload, partial=True))
    _apply_sermon(s, tenant_id, x, payload)
    x.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="sermon.edit",
        entity_type="Sermon",
        entity_id=str(x.id),
        metadata={"fields": sorted(k for k in payload if k in _SERMON_FIELDS)},
    )
    return x


def delete_sermon(s: "Session", tenant_id: str, sermon_id: int, user: "User") -> None:
    x = get_sermon(s, tenant_id, sermon_id)
    x.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="sermon.delete", entity_type="Sermon", entity_id=str(x.id))


def set_ready_and_sync(s: "Session", tenant_id: str, sermon_id: int, user: "User") -> dict:
    """Mark a sermon ready and push its title, scripture and preacher onto linked service items."""
    from app.flock.modules.bulletins.models import ServiceItem

    x = get_sermon(s, tenant_id, sermon_id)
    now = datetime.utcnow()
    x.status = "ready"
    x.updated_at = now
    items = (
        s.query(ServiceItem)
        .filter(ServiceItem.tenant_id == tenant_id, ServiceItem.sermon_id == x.id, ServiceItem.deleted_at.is_(None))
        .all()
    )
    for item in items:
        item.title = x.title or item.title
        item.scripture_reference = x.primary_scripture or item.scripture_reference
        item.leader_name = x.preacher or item.leader_name
        item.updated_at = now
    record_event(
        s,
        actor=user,
        action="sermon.ready",
        entity_type="Sermon",
        entity_id=str(x.id),
        metadata={"synced_service_items": len(items)},
    )
    return {"sermon": serialize_sermon(x), "synced_service_items": len(items)}


def get_stats(s: "Session", tenant_id: str, *, start_date: date | None = None, end_date: date | None = None) -> dict:
    from app.flock.modules.sermons.models import Sermon, SermonSeries

    q = _sermon_query(s, tenant_id)
    if start_date:
        q = q.filter(Sermon.sermon_date >= start_date)
    if end_date:
        q = q.filter(Sermon.sermon_date <= end_date)
    year_start = date(date.today().year, 1, 1)
    preachers = {
        p.strip().lower()
        for (p,) in q.with_entities(Sermon.preacher).filter(Sermon.preacher.isnot(None)).all()
        if p and p.strip()
    }
    series_count = (
        s.query(func.count(SermonSeries.id))
        .filter(SermonSeries.tenant_id == tenant_id, SermonSeries.deleted_at.is_(None))
        .scalar()
    )
    return {
        "total": q.count(),
        "this_year": _sermon_query(s, tenant_id).filter(Sermon.sermon_date >= year_start).count(),
        "series_count": int(series_count or 0),
        "preachers": len(preachers),
    }


# ---------------------------------------------------------------------------
# Plans and templates
# ---------------------------------------------------------------------------


def validate_elements(elements) -> list[str]:
    if not isinstance(elements, list):
        return ["elements must be a list."]
    errors: list[str] = []
    for i, el in enumerate(elements):
        if not isinstance(el, dict) or not el.get("id"):
            errors.append(f"Element {i + 1} must be an object with an id.")
            continue
        kind = el.get("type")
        if kind not in ELEMENT_TYPES:
            errors.append(f"Element {i + 1} has invalid type {kind!r}.")
            continue
        field = _ELEMENT_REQUIRED[kind]
        if not isinstance(el.get(field), str):
            errors.append(f"Element {i + 1} ({kind}) requires {field}.")
    return errors


def _string_list(errors: list[str], label: str, value) -> None:
    if value is not None and (not isinstance(value, list) or not all(isinstance(v, str) for v in value)):
        errors.append(f"{label} must be a list of strings.")


def validate_plan_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=200)
    check_length(errors, "Big idea", payload.get("big_idea") or "", max_len=500)
    check_length(errors, "Primary text", payload.get("primary_text") or "", max_len=100)
    _string_list(errors, "supporting_texts", payload.get("supporting_texts"))
    _string_list(errors, "tags", payload.get("tags"))
    errors.extend(validate_elements(payload.get("elements") or []))
    check_choice(errors, "style_profile", clean_str(payload.get("style_profile")), STYLE_PROFILES)
    return errors


def serialize_plan(p: "SermonPlan") -> dict:
    return {
        "id": p.id,
        "sermon_id": p.sermon_id,
        "title": p.title,
        "big_idea": p.big_idea or "",
        "primary_text": p.primary_text or "",
        "supporting_texts": p.supporting_texts or [],
        "elements": p.elements or [],
        "tags": p.tags or [],
        "notes": p.notes,
        "template_id": p.template_id,
        "style_profile": p.style_profile,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def find_plan(s: "Session", tenant_id: str, sermon_id: int) -> "SermonPlan | None":
    from app.flock.modules.sermons.models import SermonPlan

    return (
        s.query(SermonPlan)
        .filter(SermonPlan.tenant_id == tenant_id, SermonPlan.sermon_id == sermon_id)
        .one_or_none()
    )


def get_plan(s: "Session", tenant_id: str, sermon_id: int) -> "SermonPlan | None":
    get_sermon(s, tenant_id, sermon_id)
    return find_plan(s, tenant_id, sermon_id)


def save_plan(s: "Session", tenant_id: str, sermon_id: int, payload: dict, user: "User") -> "SermonPlan":
    """Create or replace the plan for a sermon."""
    from app.flock.modules.sermons.models import SermonPlan

    sermon = get_sermon(s, tenant_id, sermon_id)
    raise_if_errors(validate_plan_payload(payload))
    template_id = parse_int(payload.get("template_id"))
    if template_id is not None:
        get_template(s, tenant_id, template_id)
    now = datetime.utcnow()
    plan = find_plan(s, tenant_id, sermon.id)
    created = plan is None
    if plan is None:
        plan = SermonPlan(tenant_id=tenant_id, sermon_id=sermon.id, created_at=now)
        s.add(plan)
    plan.title = clean_str(payload.get("title"))
    plan.big_idea = clean_str(payload.get("big_idea"))
    plan.primary_text = clean_str(payload.get("primary_text"))
    plan.supporting_texts = list(payload.get("supporting_texts") or [])
    plan.elements = list(payload.get("elements") or [])
    plan.tags = list(payload.get("tags") or [])
    plan.notes = clean_str(payload.get("notes"))
    plan.template_id = template_id
    plan.style_profile = clean_str(payload.get("style_profile"))
    plan.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="sermon_plan.create" if created else "sermon_plan.edit",
        entity_type="Sermon",
        entity_id=str(sermon.id),
        metadata={"elements": len(plan.elements)},
    )
    return plan


def serialize_template(t: "SermonPlanTemplate", *, summary: bool = False) -> dict:
    data = {
        "id": t.id,
        "name": t.name,
        "default_title": t.default_title or "",
        "default_primary_text": t.default_primary_text or "",
        "tags": t.tags or [],
        "style_profile": t.style_profile,
        "created_at": iso(t.created_at),
    }
    if not summary:
        data.update(
            {
                "default_big_idea": t.default_big_idea or "",
                "default_supporting_texts": t.default_supporting_texts or [],
                "structure": t.structure or [],
                "updated_at": iso(t.updated_at),
            }
        )
    return data


def list_templates(s: "Session", tenant_id: str) -> list[dict]:
    from app.flock.modules.sermons.models import SermonPlanTemplate

    rows = (
        s.query(SermonPlanTemplate)
        .filter(SermonPlanTemplate.tenant_id == tenant_id)
        .order_by(SermonPlanTemplate.created_at.desc(), SermonPlanTemplate.id.desc())
        .all()
    )
    return [serialize_template(t, summary=True) for t in rows]


def get_template(s: "Session", tenant_id: str, template_id: int) -> "SermonPlanTemplate":
    from app.flock.modules.sermons.models import SermonPlanTemplate

    t = (
        s.query(SermonPlanTemplate)
        .filter(SermonPlanTemplate.id == template_id, SermonPlanTemplate.tenant_id == tenant_id)
        .one_or_none()
    )
    if t is None:
        raise NotFound("Template not found")
    return t


def create_template_from_plan(
    s: "Session",
    tenant_id: str,
    sermon_id: int,
    name: str,
    user: "User",
    *,
    tags: list[str] | None = None,
    style_profile: str | None = None,
    inherit_style: bool = True,
) -> "SermonPlanTemplate":
    """
    Snapshot a sermon's plan as a reusable template.

    Empty `tags` fall back to the plan's tags; the plan's style profile is
    inherited unless `inherit_style` is False.
    """
    from app.flock.modules.sermons.models import SermonPlanTemplate

    errors: list[str] = []
    check_length(errors, "Name", clean_str(name), min_len=1, max_len=200)
    _string_list(errors, "tags", tags)
    check_choice(errors, "style_profile", style_profile, STYLE_PROFILES)
    raise_if_errors(errors)

    plan = find_plan(s, tenant_id, sermon_id)
    if plan is None:
        raise NotFound("No plan found for this sermon. Please save a plan first.")
    effective_style = plan.style_profile if inherit_style else style_profile
    now = datetime.utcnow()
    t = SermonPlanTemplate(
        tenant_id=tenant_id,
        name=clean_str(name),
        default_title=plan.title,
        default_big_idea=plan.big_idea,
        default_primary_text=plan.primary_text,
        default_supporting_texts=list(plan.supporting_texts or []),
        structure=list(plan.elements or []),
        tags=list(tags) if tags else list(plan.tags or []),
        style_profile=effective_style,
        created_at=now,
        updated_at=now,
    )
    s.add(t)
    s.flush()
    logger.info("Sermon template %s created from plan of sermon %s (tenant %s)", t.id, sermon_id, tenant_id)
    record_event(
        s,
        actor=user,
        action="sermon_template.create",
        entity_type="SermonPlanTemplate",
        entity_id=str(t.id),
        metadata={"sermon_id": sermon_id, "name": t.name},
    )
    return t
