from flask import Blueprint, jsonify

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.preach import service as preach_service
from app.flock.rbac import require_permission
from app.flock.utils import json_body, parse_int

bp = Blueprint("preach_api", __name__)


@bp.get("/bulletins/<int:bulletin_id>/preach-sessions")
@require_permission("bulletins.view")
def preach_sessions_list(bulletin_id: int):
    s = db_session()
    return jsonify(preach_service.list_sessions(s, current_tenant_id(), bulletin_id))


@bp.post("/bulletins/<int:bulletin_id>/preach-sessions")
@require_permission("bulletins.view")
def preach_sessions_start(bulletin_id: int):
    s = db_session()
    p = preach_service.start_session(s, current_tenant_id(), bulletin_id, current_user())
    s.commit()
    return jsonify({"session_id": p.id, "started_at": preach_service.serialize_session(p)["started_at"]}), 201


@bp.get("/preach-sessions/<int:session_id>")
@require_permission("bulletins.view")
def preach_sessions_summary(session_id: int):
    s = db_session()
    return jsonify(preach_service.get_session_summary(s, current_tenant_id(), session_id))


@bp.post("/preach-sessions/<int:session_id>/end")
@require_permission("bulletins.view")
def preach_sessions_end(session_id: int):
    s = db_session()
    result = preach_service.end_session(s, current_tenant_id(), session_id)
    s.commit()
    return jsonify(result)


@bp.post("/preach-sessions/<int:session_id>/timings")
@require_permission("bulletins.view")
def preach_sessions_timing(session_id: int):
    s = db_session()
    payload = json_body()
    preach_service.record_item_timing(
        s,
        current_tenant_id(),
        session_id,
        parse_int(payload.get("service_item_id")),
        payload.get("event"),
    )
    s.commit()
    return jsonify({"success": True})
