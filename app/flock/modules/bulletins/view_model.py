"""
Assembles the printable view of a bulletin from its service items and the
tenant's branding, announcements, events and prayer requests.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.flock.modules.bulletins.service_items import active_items
from app.flock.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.modules.bulletins.models import BulletinIssue, ServiceItem

DEFAULT_SERVICE_LABEL = "Sunday Morning Worship"
DEFAULT_LAYOUT_KEY = "standard"
UPCOMING_EVENT_DAYS = 30


def _item_view(item: "ServiceItem") -> dict:
    return {
        "id": item.id,
        "type": item.item_type,
        "title": item.title,
        "content": item.content,
        "leader": item.leader_name,
        "scripture_reference": item.scripture_reference,
        "ccli_number": item.ccli_number,
        "artist": item.artist,
        "sequence": item.sequence,
        "printed_text": item.printed_text,
        "marker": item.marker,
    }


def _sermon_view(s: "Session", tenant_id: str, b: "BulletinIssue", items: list["ServiceItem"]) -> dict | None:
    from app.flock.modules.sermons.service import sermon_for_date
    from app.flock.modules.sermons.models import Sermon

    sermon = None
    linked = next((i for i in items if i.item_type == "sermon" and i.sermon_id), None)
    if linked is not None:
        sermon = (
            s.query(Sermon)
            .filter(Sermon.id == linked.sermon_id, Sermon.tenant_id == tenant_id, Sermon.deleted_at.is_(None))
            .one_or_none()
        )
    if sermon is None:
        sermon = sermon_for_date(s, tenant_id, b.service_date)
    if sermon is None:
        return None
    return {
        "id": sermon.id,
        "title": sermon.title,
        "preacher": sermon.preacher,
        "primary_scripture": sermon.primary_scripture,
        "series_title": sermon.series.title if sermon.series and sermon.series.deleted_at is None else None,
    }


def _contact_info(branding: dict) -> dict | None:
    contact = {
        "address": branding.get("formatted_address"),
        "phone": branding.get("phone"),
        "email": branding.get("email"),
        "website": branding.get("website"),
    }
    return contact if any(contact.values()) else None


def _giving_info(branding: dict) -> dict | None:
    url = branding.get("giving_url")
    if not url:
        return None
    return {"url": url, "text": f"Give online at {url}"}


def _branding_for(s: "Session", tenant_id: str, b: "BulletinIssue") -> dict:
    from app.flock.modules.org.service import branding_from_pack, get_active_brand_pack, get_brand_pack

    bp = get_brand_pack(s, tenant_id, b.brand_pack_id) if b.brand_pack_id else None
    return branding_from_pack(bp or get_active_brand_pack(s, tenant_id))


def build_view_model(s: "Session", b: "BulletinIssue", *, now: datetime | None = None) -> dict:
    from app.flock.models import Tenant
    from app.flock.modules.announcements.service import list_active
    from app.flock.modules.events.service import upcoming_events
    from app.flock.modules.prayers.service import public_prayer_requests

    tenant_id = b.tenant_id
    branding = _branding_for(s, tenant_id, b)
    tenant = s.get(Tenant, tenant_id)
    design = dict(b.design_options or {})
    items = active_items(s, tenant_id, b.id)
    payload = b.generator_payload or {}

    church_name = branding.get("church_name") or (tenant.name if tenant else None)
    return {
        "bulletin_id": b.id,
        "status": b.status,
        "church_info": {
            "church_name": church_name,
            "service_label": design.get("service_label") or DEFAULT_SERVICE_LABEL,
            "service_date": iso(b.service_date),
            "service_time": branding.get("service_time"),
            "tagline": branding.get("tagline"),
            "logo_url": branding.get("logo_url"),
        },
        "service_items": [_item_view(i) for i in items],
        "sermon": _sermon_view(s, tenant_id, b, items),
        "announcements": [
            {"id": a.id, "title": a.title, "body": a.body, "priority": a.priority}
            for a in list_active(s, tenant_id, now=now)
        ],
        "upcoming_events": [
            {"id": e.id, "title": e.title, "start_at": iso(e.start_at), "location": e.location}
            for e in upcoming_events(s, tenant_id, days=UPCOMING_EVENT_DAYS, public_only=True, now=now)
        ],
        "prayer_requests": [
            {"id": p.id, "title": p.title, "is_urgent": p.is_urgent} for p in public_prayer_requests(s, tenant_id)
        ],
        "contact_info": _contact_info(branding),
        "giving_info": _giving_info(branding),
        "layout_key": design.get("layout_key") or DEFAULT_LAYOUT_KEY,
        "marker_legend": payload.get("marker_legend") or design.get("marker_legend") or [],
        "design_options": design,
    }
