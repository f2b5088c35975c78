from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.errors import NotFound, raise_if_errors
from app.flock.utils import check_choice, check_length, clean_str, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.org.models import BrandPack


DEFAULT_THEOLOGY_PROFILE = {
    "tradition": "Non-denominational evangelical",
    "bible_translation": "ESV",
    "sermon_style": "expository",
    "sensitivity": "moderate",
    "restricted_topics": [],
    "preferred_tone": "warm and pastoral",
}
SENSITIVITIES = ("conservative", "moderate", "progressive")
SERMON_STYLES = ("expository", "topical", "narrative", "textual")
LAYOUT_MODES = ("template", "canvas")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)

# field -> max length
_TEXT_FIELDS = {
    "church_name": 255,
    "address_line1": 255,
    "address_line2": 255,
    "city": 100,
    "state": 50,
    "postal_code": 20,
    "country": 50,
    "phone": 50,
    "email": 255,
    "website": 255,
    "ein": 20,
    "logo_url": 2000,
    "tax_statement_footer": 1000,
    "giving_url": 2000,
    "tagline": 255,
    "service_time": 100,
}


def normalize_website(value) -> str | None:
    """Bare hostnames such as `mychurch.org` become `https://mychurch.org`."""
    v = clean_str(value)
    if v is None:
        return None
    if not re.match(r"^[a-z][a-z0-9+.-]*://", v, re.IGNORECASE):
        v = f"https://{v}"
    return v


def get_active_brand_pack(s: "Session", tenant_id: str) -> "BrandPack | None":
    from app.flock.modules.org.models import BrandPack

    return (
        s.query(BrandPack)
        .filter(BrandPack.tenant_id == tenant_id, BrandPack.is_active.is_(True), BrandPack.deleted_at.is_(None))
        .order_by(BrandPack.id.asc())
        .first()
    )


def get_brand_pack(s: "Session", tenant_id: str, brand_pack_id: int) -> "BrandPack | None":
    from app.flock.modules.org.models import BrandPack

    return (
        s.query(BrandPack)
        .filter(BrandPack.id == brand_pack_id, BrandPack.tenant_id == tenant_id, BrandPack.deleted_at.is_(None))
        .one_or_none()
    )


def theology_profile_of(bp: "BrandPack | None") -> dict:
    stored = (bp.theology_profile if bp is not None else None) or {}
    profile = dict(DEFAULT_THEOLOGY_PROFILE)
    for key, default in DEFAULT_THEOLOGY_PROFILE.items():
        value = stored.get(key)
        profile[key] = value if value else (list(default) if isinstance(default, list) else default)
    return profile


def format_address(branding: dict) -> str | None:
    """Multi-line postal address, or None when no part is known."""
    parts: list[str] = []
    for key in ("address_line1", "address_line2"):
        if branding.get(key):
            parts.append(branding[key])
    city, state, postal = branding.get("city"), branding.get("state"), branding.get("postal_code")
    if city and state:
        parts.append(f"{city}, {state} {postal or ''}".strip())
    elif city or state or postal:
        parts.append(" ".join(p for p in (city, state, postal) if p))
    country = branding.get("country")
    if country and country != "US":
        parts.append(country)
    return "\n".join(parts) if parts else None


def branding_from_pack(bp: "BrandPack | None") -> dict:
    if bp is None:
        data = {
            "brand_pack_id": None,
            "legal_name": "Organization",
            "display_name": None,
            "country": "US",
            "bulletin_default_layout_mode": "template",
            "bulletin_ai_enabled": False,
            "bulletin_default_canvas_grid_size": 16,
            "bulletin_default_canvas_show_grid": True,
            "bulletin_default_pages": 4,
        }
        for key in _TEXT_FIELDS:
            data.setdefault(key, None)
    else:
        data = {
            "brand_pack_id": bp.id,
            "legal_name": bp.legal_name or bp.church_name or "Organization",
            "display_name": bp.name or None,
            "bulletin_default_layout_mode": bp.bulletin_default_layout_mode or "template",
            "bulletin_ai_enabled": bool(bp.bulletin_ai_enabled),
            "bulletin_default_canvas_grid_size": bp.bulletin_default_canvas_grid_size or 16,
            "bulletin_default_canvas_show_grid": (
                True if bp.bulletin_default_canvas_show_grid is None else bp.bulletin_default_canvas_show_grid
            ),
            "bulletin_default_pages": bp.bulletin_default_pages or 4,
        }
        for key in _TEXT_FIELDS:
            data[key] = getattr(bp, key) or None
        data["country"] = data["country"] or "US"
    data["theology_profile"] = theology_profile_of(bp)
    data["formatted_address"] = format_address(data)
    return data


def get_branding(s: "Session", tenant_id: str) -> dict:
    """Branding of the active brand pack, falling back to empty defaults."""
    return branding_from_pack(get_active_brand_pack(s, tenant_id))


def validate_branding_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    check_length(errors, "Legal name", clean_str(payload.get("legal_name")), min_len=1, max_len=255)
    for key, max_len in _TEXT_FIELDS.items():
        if key in payload:
            check_length(errors, key, clean_str(payload.get(key)), max_len=max_len)
    email = clean_str(payload.get("email"))
    if email and not _EMAIL_RE.match(email):
        errors.append("Invalid email address.")
    for key in ("logo_url", "giving_url"):
        url = clean_str(payload.get(key))
        if url and not _URL_RE.match(url):
            errors.append(f"Invalid {key}.")
    check_choice(errors, "bulletin_default_layout_mode", clean_str(payload.get("bulletin_default_layout_mode")), LAYOUT_MODES)
    pages = payload.get("bulletin_default_pages")
    if pages not in (None, ""):
        n = parse_int(pages)
        if n < 1 or n > 4:
            errors.append("bulletin_default_pages must be between 1 and 4.")
    grid = payload.get("bulletin_default_canvas_grid_size")
    if grid not in (None, "") and parse_int(grid) <= 0:
        errors.append("bulletin_default_canvas_grid_size must be positive.")
    return errors


def update_branding(s: "Session", tenant_id: str, payload: dict, user: "User") -> dict:
    """Replace the active brand pack's fields, creating the pack when none is active."""
    from app.flock.modules.org.models import BrandPack

    raise_if_errors(validate_branding_payload(payload))
    now = datetime.utcnow()
    bp = get_active_brand_pack(s, tenant_id)
    created = bp is None
    if bp is None:
        bp = BrandPack(tenant_id=tenant_id, name="Default", is_active=True, created_at=now)
        s.add(bp)
    bp.legal_name = clean_str(payload.get("legal_name"))
    for key in _TEXT_FIELDS:
        setattr(bp, key, clean_str(payload.get(key)))
    bp.website = normalize_website(payload.get("website"))
    bp.country = bp.country or "US"
    bp.bulletin_default_layout_mode = clean_str(payload.get("bulletin_default_layout_mode")) or "template"
    ai = parse_bool(payload.get("bulletin_ai_enabled"))
    bp.bulletin_ai_enabled = bool(ai) if ai is not None else False
    bp.bulletin_default_canvas_grid_size = parse_int(payload.get("bulletin_default_canvas_grid_size"), 16)
    show_grid = parse_bool(payload.get("bulletin_default_canvas_show_grid"))
    bp.bulletin_default_canvas_show_grid = True if show_grid is None else show_grid
    bp.bulletin_default_pages = parse_int(payload.get("bulletin_default_pages"), 4)
    bp.updated_at = now
    s.flush()
    record_event(
        s,
        actor=user,
        action="org.branding.create" if created else "org.branding.update",
        entity_type="BrandPack",
        entity_id=str(bp.id),
    )
    return branding_from_pack(bp)


def get_theology_profile(s: "Session", tenant_id: str) -> dict:
    return theology_profile_of(get_active_brand_pack(s, tenant_id))


def validate_theology_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    check_choice(errors, "sensitivity", clean_str(payload.get("sensitivity")), SENSITIVITIES)
    check_choice(errors, "sermon_style", clean_str(payload.get("sermon_style")), SERMON_STYLES)
    for key in ("tradition", "bible_translation", "preferred_tone"):
        if key in payload:
            check_length(errors, key, clean_str(payload.get(key)), max_len=100)
    topics = payload.get("restricted_topics")
    if topics is not None:
        if not isinstance(topics, list) or not all(isinstance(t, str) for t in topics):
            errors.append("restricted_topics must be a list of strings.")
        elif len(topics) > 20:
            errors.append("At most 20 restricted topics are allowed.")
        elif any(len(t) > 100 for t in topics):
            errors.append("Restricted topics must be at most 100 characters.")
    return errors


def update_theology_profile(s: "Session", tenant_id: str, payload: dict, user: "User") -> dict:
    bp = get_active_brand_pack(s, tenant_id)
    if bp is None:
        raise NotFound("No active brand pack found. Please set up organization settings first.")
    raise_if_errors(validate_theology_payload(payload))
    keys = [k for k in DEFAULT_THEOLOGY_PROFILE if k in payload]
    if not keys:
        return theology_profile_of(bp)
    profile = dict(bp.theology_profile or {})
    for key in keys:
        if key == "restricted_topics":
            profile[key] = [t.strip() for t in payload[key] if t and t.strip()]
        else:
            profile[key] = clean_str(payload.get(key))
    bp.theology_profile = profile
    bp.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="org.theology.update",
        entity_type="BrandPack",
        entity_id=str(bp.id),
        metadata={"fields": keys},
    )
    return theology_profile_of(bp)
