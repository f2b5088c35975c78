from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from app.flock.audit import record_event
from app.flock.db import bind_tenant
from app.flock.errors import conflict, raise_if_errors
from app.flock.models import Tenant
from app.flock.modules.ai.plans import apply_plan_defaults_to_tenant
from app.flock.utils import check_length, clean_str, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9-]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_tenant_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    slug = clean_str(payload.get("slug")) or ""
    if len(slug) < 3:
        errors.append("Slug must be at least 3 characters")
    elif len(slug) > 50:
        errors.append("Slug must be at most 50 characters")
    elif not SLUG_RE.match(slug):
        errors.append("Slug must contain only lowercase letters, numbers, and hyphens")
    name = clean_str(payload.get("name"))
    if not name:
        errors.append("Name is required")
    else:
        check_length(errors, "Name", name, max_len=255)
    email = clean_str(payload.get("primary_email"))
    if not email or not _EMAIL_RE.match(email):
        errors.append("Invalid email address")
    return errors


def serialize_tenant(t: Tenant, *, include_contact: bool = True) -> dict:
    data = {
        "id": t.id,
        "slug": t.slug,
        "name": t.name,
        "status": t.status,
        "timezone": t.timezone,
        "locale": t.locale,
        "created_at": iso(t.created_at),
    }
    if include_contact:
        data["primary_email"] = t.primary_email
        data["plan"] = t.plan
    return data


def _find_by_slug(s: "Session", slug: str) -> Tenant | None:
    return s.query(Tenant).filter(Tenant.slug == slug).one_or_none()


def create_tenant(s: "Session", payload: dict, user: "User") -> Tenant:
    raise_if_errors(validate_tenant_payload(payload))
    slug = clean_str(payload.get("slug"))
    if _find_by_slug(s, slug) is not None:
        raise conflict(f'Tenant with slug "{slug}"')

    now = datetime.utcnow()
    tenant = Tenant(
        slug=slug,
        name=clean_str(payload.get("name")),
        status="active",
        primary_email=clean_str(payload.get("primary_email")).lower(),
        timezone=clean_str(payload.get("timezone")) or "America/New_York",
        locale=clean_str(payload.get("locale")) or "en-US",
        plan="core",
        created_at=now,
        updated_at=now,
    )
    s.add(tenant)
    s.flush()
    apply_plan_defaults_to_tenant(s, tenant.id)
    record_event(
        s,
        actor=user,
        action="tenant.create",
        entity_type="Tenant",
        entity_id=tenant.id,
        metadata={"slug": slug},
        tenant_id=tenant.id,
    )
    logger.info("Tenant created id=%s slug=%s by user=%s", tenant.id, slug, user.id)
    return tenant


def seed_new_tenant(s: "Session", tenant_id: str) -> dict | None:
    """
    Seed the default song library for a freshly committed tenant.
    Failures are logged and rolled back; the tenant itself stays.
    """
    from app.flock.modules.songs.library import seed_songs_for_tenant

    previous = s.info.get("tenant_id")
    bind_tenant(s, tenant_id)
    try:
        result = seed_songs_for_tenant(s, tenant_id)
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        logger.warning("Song seeding failed for tenant %s: %s", tenant_id, e)
        return None
    finally:
        bind_tenant(s, previous)
    logger.info(
        "Songs seeded for tenant %s created=%s updated=%s errors=%s",
        tenant_id,
        result["created"],
        result["updated"],
        result["errors"],
    )
    return result


def get_by_slug(s: "Session", slug: str) -> dict | None:
    tenant = _find_by_slug(s, slug)
    if tenant is None or tenant.deleted_at is not None:
        return None
    return serialize_tenant(tenant, include_contact=False)


def check_slug_availability(s: "Session", slug: str) -> dict:
    return {"available": _find_by_slug(s, slug) is None, "slug": slug}
