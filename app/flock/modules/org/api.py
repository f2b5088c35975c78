from flask import Blueprint, jsonify

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.org import service as org_service
from app.flock.rbac import require_permission
from app.flock.utils import json_body

bp = Blueprint("org_api", __name__)


@bp.get("/org/branding")
@require_permission("org.view")
def branding_get():
    s = db_session()
    return jsonify(org_service.get_branding(s, current_tenant_id()))


@bp.put("/org/branding")
@require_permission("org.edit")
def branding_update():
    s = db_session()
    branding = org_service.update_branding(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(branding)
