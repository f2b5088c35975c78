from flask import Blueprint, jsonify, request

from app.flock.auth import current_user
from app.flock.db import db_session
from app.flock.errors import BadRequest
from app.flock.modules.tenants import service as tenants_service
from app.flock.rbac import require_permission
from app.flock.utils import json_body

bp = Blueprint("tenants_api", __name__)


@bp.get("/public/tenants/slug-available")
def tenants_slug_available():
    slug = (request.args.get("slug") or "").strip()
    if not slug:
        raise BadRequest("slug is required")
    s = db_session()
    return jsonify(tenants_service.check_slug_availability(s, slug))


@bp.get("/public/tenants/<slug>")
def tenants_get_by_slug(slug: str):
    s = db_session()
    return jsonify(tenants_service.get_by_slug(s, slug))


@bp.post("/platform/tenants")
@require_permission("tenants.create", tenant_required=False)
def tenants_create():
    s = db_session()
    tenant = tenants_service.create_tenant(s, json_body(), current_user())
    s.commit()
    tenants_service.seed_new_tenant(s, tenant.id)
    return jsonify(tenants_service.serialize_tenant(tenant)), 201
