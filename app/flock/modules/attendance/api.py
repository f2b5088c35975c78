from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.errors import BadRequest
from app.flock.modules.attendance import service as attendance_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_bool, parse_date, parse_int, parse_offset

bp = Blueprint("attendance_api", __name__)


def _filters() -> dict:
    args = request.args
    return {
        "category": (args.get("category") or "").strip() or None,
        "start_date": parse_date(args.get("start_date")),
        "end_date": parse_date(args.get("end_date")),
    }


@bp.get("/attendance/sessions")
@require_permission("attendance.view")
def sessions_list():
    s = db_session()
    result = attendance_service.list_sessions(
        s,
        current_tenant_id(),
        limit=clamp_limit(request.args.get("limit")),
        offset=parse_offset(request.args.get("offset")),
        **_filters(),
    )
    return jsonify(result)


@bp.get("/attendance/stats")
@require_permission("attendance.view")
def attendance_stats():
    s = db_session()
    return jsonify(attendance_service.get_stats(s, current_tenant_id(), **_filters()))


@bp.get("/attendance/sessions/<int:session_id>")
@require_permission("attendance.view")
def sessions_get(session_id: int):
    s = db_session()
    a = attendance_service.get_session(s, current_tenant_id(), session_id)
    return jsonify(attendance_service.serialize_session(a, include_records=True))


@bp.post("/attendance/sessions")
@require_permission("attendance.edit")
def sessions_create():
    s = db_session()
    a = attendance_service.create_session(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(attendance_service.serialize_session(a)), 201


@bp.patch("/attendance/sessions/<int:session_id>")
@require_permission("attendance.edit")
def sessions_update(session_id: int):
    s = db_session()
    a = attendance_service.update_session(s, current_tenant_id(), session_id, json_body(), current_user())
    s.commit()
    return jsonify(attendance_service.serialize_session(a))


@bp.delete("/attendance/sessions/<int:session_id>")
@require_permission("attendance.edit")
def sessions_delete(session_id: int):
    s = db_session()
    attendance_service.delete_session(s, current_tenant_id(), session_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.post("/attendance/sessions/<int:session_id>/check-in")
@require_permission("attendance.checkin")
def check_in(session_id: int):
    s = db_session()
    payload = json_body()
    person_id = parse_int(payload.get("person_id"))
    if person_id is None:
        raise BadRequest("person_id is required")
    rec = attendance_service.check_in(
        s,
        current_tenant_id(),
        session_id,
        person_id,
        current_user(),
        guest_count=parse_int(payload.get("guest_count"), 0),
        is_visitor=bool(parse_bool(payload.get("is_visitor"))),
        notes=payload.get("notes"),
    )
    s.commit()
    return jsonify(rec), 201


@bp.delete("/attendance/sessions/<int:session_id>/check-in/<int:person_id>")
@require_permission("attendance.checkin")
def check_out(session_id: int, person_id: int):
    s = db_session()
    attendance_service.check_out(s, current_tenant_id(), session_id, person_id, current_user())
    s.commit()
    return jsonify({"success": True})
