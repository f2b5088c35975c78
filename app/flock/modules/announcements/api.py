from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.announcements import service as announcements_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_bool

bp = Blueprint("announcements_api", __name__)


def _many(rows) -> dict:
    return {"announcements": [announcements_service.serialize_announcement(a) for a in rows]}


@bp.get("/announcements/active")
@require_permission("announcements.view")
def announcements_active():
    s = db_session()
    return jsonify(_many(announcements_service.list_active(s, current_tenant_id())))


@bp.get("/announcements")
@require_permission("announcements.view")
def announcements_list():
    s = db_session()
    rows = announcements_service.list_announcements(
        s,
        current_tenant_id(),
        include_expired=bool(parse_bool(request.args.get("include_expired"))),
        limit=clamp_limit(request.args.get("limit")),
    )
    return jsonify(_many(rows))


@bp.get("/announcements/<int:announcement_id>")
@require_permission("announcements.view")
def announcements_get(announcement_id: int):
    s = db_session()
    a = announcements_service.get_announcement(s, current_tenant_id(), announcement_id)
    return jsonify(announcements_service.serialize_announcement(a))


@bp.post("/announcements")
@require_permission("announcements.submit")
def announcements_create():
    s = db_session()
    a = announcements_service.create_announcement(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(announcements_service.serialize_announcement(a)), 201


@bp.patch("/announcements/<int:announcement_id>")
@require_permission("announcements.edit")
def announcements_update(announcement_id: int):
    s = db_session()
    a = announcements_service.update_announcement(s, current_tenant_id(), announcement_id, json_body(), current_user())
    s.commit()
    return jsonify(announcements_service.serialize_announcement(a))


@bp.delete("/announcements/<int:announcement_id>")
@require_permission("announcements.edit")
def announcements_delete(announcement_id: int):
    s = db_session()
    announcements_service.delete_announcement(s, current_tenant_id(), announcement_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.post("/announcements/<int:announcement_id>/approve")
@require_permission("announcements.approve")
def announcements_approve(announcement_id: int):
    s = db_session()
    a = announcements_service.approve_announcement(s, current_tenant_id(), announcement_id, current_user())
    s.commit()
    return jsonify(announcements_service.serialize_announcement(a))
