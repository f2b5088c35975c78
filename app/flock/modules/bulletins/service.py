from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.errors import BadRequest, Conflict, NotFound, PreconditionFailed, forbidden, raise_if_errors
from app.flock.models import new_uuid
from app.flock.modules.bulletins import service_items as items_service
from app.flock.modules.bulletins.booklet import impose_booklet
from app.flock.modules.bulletins.render import FORMATS, render_bulletin_pdf
from app.flock.modules.bulletins.validation import validate_bulletin
from app.flock.modules.bulletins.view_model import build_view_model
from app.flock.utils import check_choice, clean_str, iso, parse_bool, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.bulletins.models import BulletinIssue
    from app.flock.storage import Storage

logger = logging.getLogger(__name__)

STATUSES = ("draft", "approved", "built", "locked")
LIST_FILTERS = ("active", "drafts", "deleted", "all")
PDF_FORMATS = FORMATS + ("booklet",)

SERVICE_TEMPLATES = [
    {
        "key": "default-sunday",
        "name": "Sunday Morning Service",
        "description": "Standard Sunday morning worship service order",
        "items": [
            {"item_type": "note", "title": "Prelude"},
            {"item_type": "scripture", "title": "Call to Worship"},
            {"item_type": "song", "title": "Opening Hymn"},
            {"item_type": "prayer", "title": "Prayer"},
            {"item_type": "scripture", "title": "Scripture Reading"},
            {"item_type": "sermon", "title": "Sermon"},
            {"item_type": "song", "title": "Closing Hymn"},
            {"item_type": "prayer", "title": "Benediction"},
        ],
    }
]

_JSON_FIELDS = ("canvas_layout", "design_options")


def serialize_bulletin(b: "BulletinIssue", *, detail: bool = False) -> dict:
    data = {
        "id": b.id,
        "service_date": iso(b.service_date),
        "status": b.status,
        "brand_pack_id": b.brand_pack_id,
        "is_public": b.is_public,
        "is_published": b.is_published,
        "locked_at": iso(b.locked_at),
        "locked_by": b.locked_by_user_id,
        "created_at": iso(b.created_at),
        "updated_at": iso(b.updated_at),
        "deleted_at": iso(b.deleted_at),
    }
    if detail:
        data.update(
            {
                "template_key": b.template_key,
                "design_options": b.design_options or {},
                "canvas_layout": b.canvas_layout,
                "use_canvas_layout": b.use_canvas_layout,
                "public_token": b.public_token,
                "published_at": iso(b.published_at),
                "pdf_storage_key": b.pdf_storage_key,
            }
        )
    return data


def _base_query(s: "Session", tenant_id: str):
    from app.flock.modules.bulletins.models import BulletinIssue

    return s.query(BulletinIssue).filter(BulletinIssue.tenant_id == tenant_id)


def list_bulletins(
    s: "Session",
    tenant_id: str,
    *,
    list_filter: str = "active",
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """
    `list_filter`: active (approved/built/locked), drafts, deleted, all (non-deleted).
    A legacy `status` overrides the filter.
    """
    from app.flock.modules.bulletins.models import BulletinIssue

    errors: list[str] = []
    check_choice(errors, "filter", list_filter, LIST_FILTERS)
    check_choice(errors, "status", status, STATUSES)
    raise_if_errors(errors)

    q = _base_query(s, tenant_id)
    if status:
        q = q.filter(BulletinIssue.deleted_at.is_(None), BulletinIssue.status == status)
    elif list_filter == "drafts":
        q = q.filter(BulletinIssue.deleted_at.is_(None), BulletinIssue.status == "draft")
    elif list_filter == "deleted":
        q = q.filter(BulletinIssue.deleted_at.is_not(None))
    elif list_filter == "all":
        q = q.filter(BulletinIssue.deleted_at.is_(None))
    else:
        q = q.filter(BulletinIssue.deleted_at.is_(None), BulletinIssue.status.in_(("approved", "built", "locked")))
    total = q.count()
    rows = q.order_by(BulletinIssue.service_date.desc(), BulletinIssue.id.desc()).limit(limit).offset(offset).all()
    return {
        "bulletins": [serialize_bulletin(b) for b in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "filter": list_filter,
    }


def get_bulletin(s: "Session", tenant_id: str, bulletin_id: int) -> "BulletinIssue":
    return items_service.load_bulletin(s, tenant_id, bulletin_id)


def _assert_date_free(s: "Session", tenant_id: str, service_date: date, *, exclude_id: int | None = None) -> None:
    from app.flock.modules.bulletins.models import BulletinIssue

    q = _base_query(s, tenant_id).filter(
        BulletinIssue.service_date == service_date, BulletinIssue.deleted_at.is_(None)
    )
    if exclude_id is not None:
        q = q.filter(BulletinIssue.id != exclude_id)
    if q.first() is not None:
        raise Conflict("Bulletin already exists for this service date")


def _require_date(value) -> date:
    d = parse_date(value)
    if d is None:
        raise BadRequest("service_date is required")
    return d


def _new_issue(tenant_id: str, service_date: date, **fields) -> "BulletinIssue":
    from app.flock.modules.bulletins.models import BulletinIssue

    now = datetime.utcnow()
    return BulletinIssue(
        tenant_id=tenant_id,
        service_date=service_date,
        status="draft",
        public_token=new_uuid(),
        is_public=False,
        is_published=False,
        use_canvas_layout=bool(fields.pop("use_canvas_layout", False)),
        created_at=now,
        updated_at=now,
        **fields,
    )


def create_bulletin(s: "Session", tenant_id: str, payload: dict, user: "User") -> "BulletinIssue":
    service_date = _require_date(payload.get("service_date"))
    _assert_date_free(s, tenant_id, service_date)
    brand_pack_id = parse_int(payload.get("brand_pack_id"))
    if brand_pack_id is not None:
        from app.flock.modules.org.service import get_brand_pack

        if get_brand_pack(s, tenant_id, brand_pack_id) is None:
            raise NotFound("Brand pack not found")
    b = _new_issue(
        tenant_id,
        service_date,
        template_key=clean_str(payload.get("template_key")),
        brand_pack_id=brand_pack_id,
    )
    s.add(b)
    s.flush()
    record_event(
        s,
        actor=user,
        action="bulletin.create",
        entity_type="BulletinIssue",
        entity_id=str(b.id),
        metadata={"service_date": iso(service_date)},
    )
    return b


def _assert_editable(b: "BulletinIssue", action: str = "update") -> None:
    if b.status == "locked":
        raise forbidden(action, "locked bulletin")


def update_bulletin(s: "Session", tenant_id: str, bulletin_id: int, payload: dict, user: "User") -> "BulletinIssue":
    b = get_bulletin(s, tenant_id, bulletin_id)
    _assert_editable(b)
    changed: list[str] = []

    if "status" in payload:
        status = clean_str(payload.get("status"))
        errors: list[str] = []
        check_choice(errors, "status", status, STATUSES)
        raise_if_errors(errors)
        if status == "locked":
            raise BadRequest("Use the lock endpoint to lock a bulletin")
        if status:
            b.status = status
            changed.append("status")
    if "service_date" in payload:
        d = _require_date(payload.get("service_date"))
        _assert_date_free(s, tenant_id, d, exclude_id=b.id)
        b.service_date = d
        changed.append("service_date")
    for key in _JSON_FIELDS:
        if key in payload:
            value = payload.get(key)
            if value is not None and not isinstance(value, dict):
                raise BadRequest(f"{key} must be an object")
            setattr(b, key, value)
            changed.append(key)
    if "template_key" in payload:
        b.template_key = clean_str(payload.get("template_key"))
        changed.append("template_key")
    for key in ("use_canvas_layout", "is_public", "is_published"):
        if key in payload:
            setattr(b, key, bool(parse_bool(payload.get(key))))
            changed.append(key)
    if "is_published" in changed:
        b.published_at = datetime.utcnow() if b.is_published else None
    if not changed:
        raise BadRequest("No fields to update")

    b.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="bulletin.edit",
        entity_type="BulletinIssue",
        entity_id=str(b.id),
        metadata={"fields": changed},
    )
    return b


def delete_bulletin(s: "Session", tenant_id: str, bulletin_id: int, user: "User") -> None:
    b = get_bulletin(s, tenant_id, bulletin_id)
    _assert_editable(b, "delete")
    now = datetime.utcnow()
    b.deleted_at = now
    b.status = "deleted"
    b.updated_at = now
    record_event(s, actor=user, action="bulletin.delete", entity_type="BulletinIssue", entity_id=str(b.id))


def _songs_missing_ccli(s: "Session", tenant_id: str, bulletin_id: int) -> list:
    return [
        i
        for i in items_service.active_items(s, tenant_id, bulletin_id)
        if i.item_type == "song" and not (i.ccli_number or "").strip()
    ]


def lock_bulletin(s: "Session", tenant_id: str, bulletin_id: int, user: "User") -> "BulletinIssue":
    b = get_bulletin(s, tenant_id, bulletin_id)
    if b.status == "locked":
        raise Conflict("Bulletin is already locked")
    if _songs_missing_ccli(s, tenant_id, b.id):
        raise PreconditionFailed("All songs must have CCLI numbers before locking")
    now = datetime.utcnow()
    b.status = "locked"
    b.locked_at = now
    b.locked_by_user_id = user.id if user else None
    b.updated_at = now
    record_event(s, actor=user, action="bulletin.lock", entity_type="BulletinIssue", entity_id=str(b.id))
    return b


def get_by_public_token(s: "Session", token: str) -> dict:
    """Public view of a published bulletin; binds the session to its tenant."""
    from app.flock.db import bind_tenant
    from app.flock.models import Tenant
    from app.flock.modules.bulletins.models import BulletinIssue
    from app.flock.modules.org.service import get_active_brand_pack, get_brand_pack

    b = (
        s.query(BulletinIssue)
        .filter(
            BulletinIssue.public_token == token,
            BulletinIssue.is_public.is_(True),
            BulletinIssue.is_published.is_(True),
            BulletinIssue.deleted_at.is_(None),
        )
        .one_or_none()
    )
    if b is None:
        raise NotFound("Bulletin not found or not publicly accessible")
    bind_tenant(s, b.tenant_id)

    bp = get_brand_pack(s, b.tenant_id, b.brand_pack_id) if b.brand_pack_id else None
    bp = bp or get_active_brand_pack(s, b.tenant_id)
    if bp is not None:
        name = bp.church_name or bp.legal_name or bp.name
        branding = {"church_name": name, "legal_name": bp.legal_name or name, "website": bp.website, "logo_url": bp.logo_url}
    else:
        tenant = s.get(Tenant, b.tenant_id)
        name = tenant.name if tenant else None
        branding = {"church_name": name, "legal_name": name, "website": None, "logo_url": None}

    return {
        "bulletin": {
            "id": b.id,
            "service_date": iso(b.service_date),
            "status": b.status,
            "design_options": b.design_options or {},
            "published_at": iso(b.published_at),
        },
        "service_items": [
            {
                "id": i.id,
                "item_type": i.item_type,
                "title": i.title,
                "content": i.content,
                "leader_name": i.leader_name,
                "scripture_reference": i.scripture_reference,
                "ccli_number": i.ccli_number,
                "sequence": i.sequence,
            }
            for i in items_service.active_items(s, b.tenant_id, b.id)
        ],
        "org_branding": branding,
    }


def get_generator_payload(s: "Session", tenant_id: str, bulletin_id: int) -> dict:
    b = get_bulletin(s, tenant_id, bulletin_id)
    payload = b.generator_payload or {}
    return {
        "view_model": payload.get("view_model") or {},
        "marker_legend": payload.get("marker_legend") or [],
        "design_options": b.design_options or {},
    }


def preflight_validation(s: "Session", tenant_id: str, bulletin_id: int) -> dict:
    get_bulletin(s, tenant_id, bulletin_id)
    missing = len(_songs_missing_ccli(s, tenant_id, bulletin_id))
    count = len(items_service.active_items(s, tenant_id, bulletin_id))
    return {
        "is_valid": missing == 0 and count > 0,
        "errors": [f"{missing} song(s) are missing CCLI numbers"] if missing else [],
        "warnings": ["No service items added to this bulletin"] if count == 0 else [],
    }


def save_generator_payload(s: "Session", tenant_id: str, bulletin_id: int, payload: dict, user: "User") -> dict:
    b = get_bulletin(s, tenant_id, bulletin_id)
    _assert_editable(b)
    view_model = payload.get("view_model")
    marker_legend = payload.get("marker_legend")
    design_options = payload.get("design_options")
    if view_model is not None and not isinstance(view_model, dict):
        raise BadRequest("view_model must be an object")
    if marker_legend is not None and not isinstance(marker_legend, list):
        raise BadRequest("marker_legend must be a list")
    if design_options is not None and not isinstance(design_options, dict):
        raise BadRequest("design_options must be an object")

    b.generator_payload = {"view_model": view_model or {}, "marker_legend": marker_legend or []}
    if design_options is not None:
        b.design_options = design_options
    b.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="bulletin.generator.save", entity_type="BulletinIssue", entity_id=str(b.id))
    s.flush()
    return {"success": True, "preflight": preflight_validation(s, tenant_id, b.id)}


def generate_from_service(s: "Session", tenant_id: str, bulletin_id: int, user: "User") -> dict:
    b = get_bulletin(s, tenant_id, bulletin_id)
    _assert_editable(b, "generate for")
    view_model = build_view_model(s, b)
    preflight = validate_bulletin(view_model)
    stored = dict(b.generator_payload or {})
    stored["view_model"] = view_model
    b.generator_payload = stored
    if preflight["is_valid"]:
        b.status = "built"
    b.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="bulletin.generate",
        entity_type="BulletinIssue",
        entity_id=str(b.id),
        metadata={"is_valid": preflight["is_valid"], "errors": len(preflight["errors"])},
    )
    logger.info("Generated bulletin %s valid=%s warnings=%s", b.id, preflight["is_valid"], len(preflight["warnings"]))
    return {
        "success": True,
        "bulletin_id": b.id,
        "generated_at": iso(datetime.utcnow()),
        "view_model": view_model,
        "preflight": preflight,
    }


def list_service_templates() -> list[dict]:
    return [
        {
            "key": t["key"],
            "name": t["name"],
            "description": t["description"],
            "default_items": [dict(i) for i in t["items"]],
        }
        for t in SERVICE_TEMPLATES
    ]


def apply_template(s: "Session", tenant_id: str, bulletin_id: int, template_key: str, user: "User") -> list[dict]:
    """Append the template's items to the bulletin. Template songs still need CCLI numbers before locking."""
    from app.flock.modules.bulletins.models import ServiceItem

    template = next((t for t in SERVICE_TEMPLATES if t["key"] == template_key), None)
    if template is None:
        raise NotFound("Service template not found")
    b = get_bulletin(s, tenant_id, bulletin_id)
    _assert_editable(b, "modify")
    existing = items_service.active_items(s, tenant_id, b.id)
    start = (max(i.sequence for i in existing) + 1) if existing else 0
    now = datetime.utcnow()
    for offset, entry in enumerate(template["items"]):
        s.add(
            ServiceItem(
                tenant_id=tenant_id,
                bulletin_issue_id=b.id,
                item_type=entry["item_type"],
                title=entry["title"],
                sequence=start + offset,
                created_at=now,
                updated_at=now,
            )
        )
    b.template_key = template_key
    b.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="bulletin.template.apply",
        entity_type="BulletinIssue",
        entity_id=str(b.id),
        metadata={"template_key": template_key},
    )
    return items_service.list_items(s, tenant_id, b.id)


def _load_or(s: "Session", tenant_id: str, bulletin_id: int, message: str) -> "BulletinIssue":
    try:
        return get_bulletin(s, tenant_id, bulletin_id)
    except NotFound:
        raise NotFound(message) from None


def create_from_previous(s: "Session", tenant_id: str, source_id: int, service_date, user: "User") -> "BulletinIssue":
    prev = _load_or(s, tenant_id, source_id, "Previous bulletin not found")
    new_date = _require_date(service_date)
    _assert_date_free(s, tenant_id, new_date)
    b = _new_issue(
        tenant_id,
        new_date,
        brand_pack_id=prev.brand_pack_id,
        template_key=prev.template_key,
        design_options=dict(prev.design_options) if prev.design_options else None,
        use_canvas_layout=prev.use_canvas_layout,
    )
    s.add(b)
    s.flush()
    record_event(
        s,
        actor=user,
        action="bulletin.create_from_previous",
        entity_type="BulletinIssue",
        entity_id=str(b.id),
        metadata={"source_id": prev.id, "service_date": iso(new_date)},
    )
    return b


def copy_from_bulletin(
    s: "Session", tenant_id: str, target_id: int, source_id: int, *, copy_service_items: bool, user: "User"
) -> dict:
    from app.flock.modules.bulletins.models import ServiceItem

    target = _load_or(s, tenant_id, target_id, "Target bulletin not found")
    _assert_editable(target, "modify")
    source = _load_or(s, tenant_id, source_id, "Source bulletin not found")

    target.brand_pack_id = source.brand_pack_id
    target.template_key = source.template_key
    target.design_options = dict(source.design_options) if source.design_options else None
    target.use_canvas_layout = source.use_canvas_layout
    target.canvas_layout = source.canvas_layout
    now = datetime.utcnow()
    target.updated_at = now

    copied = 0
    if copy_service_items:
        for item in items_service.active_items(s, tenant_id, source.id):
            s.add(
                ServiceItem(
                    tenant_id=tenant_id,
                    bulletin_issue_id=target.id,
                    item_type=item.item_type,
                    title=item.title,
                    content=item.content,
                    leader_name=item.leader_name,
                    scripture_reference=item.scripture_reference,
                    ccli_number=item.ccli_number,
                    artist=item.artist,
                    song_id=item.song_id,
                    sermon_id=item.sermon_id,
                    sequence=item.sequence,
                    printed_text=item.printed_text,
                    marker=item.marker,
                    duration_minutes=item.duration_minutes,
                    created_at=now,
                    updated_at=now,
                )
            )
            copied += 1
    s.flush()
    record_event(
        s,
        actor=user,
        action="bulletin.copy",
        entity_type="BulletinIssue",
        entity_id=str(target.id),
        metadata={"source_id": source.id, "items_copied": copied},
    )
    return {"success": True, "items_copied": copied}


def generate_pdf(
    s: "Session", tenant_id: str, bulletin_id: int, fmt: str, *, storage: "Storage | None" = None
) -> bytes:
    """
    Render the bulletin to PDF (standard, large-print or booklet). The file is
    also stored under bulletins/{tenant}/{bulletin}/{format}.pdf when a
    storage backend is given.
    """
    from app.flock.storage import bulletin_pdf_key

    if fmt not in PDF_FORMATS:
        raise BadRequest(f"format must be one of: {', '.join(PDF_FORMATS)}")
    b = get_bulletin(s, tenant_id, bulletin_id)
    view_model = build_view_model(s, b)
    pdf = render_bulletin_pdf(view_model, fmt="standard" if fmt == "booklet" else fmt)
    if fmt == "booklet":
        pdf = impose_booklet(pdf)
    if storage is not None:
        key = bulletin_pdf_key(tenant_id, b.id, fmt)
        storage.put_bytes(key, pdf, content_type="application/pdf")
        b.pdf_storage_key = key
        logger.info("Stored bulletin pdf %s (%s bytes)", key, len(pdf))
    return pdf
