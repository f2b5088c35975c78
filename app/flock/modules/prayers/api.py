from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.errors import BadRequest
from app.flock.modules.prayers import service as prayers_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_bool, parse_int, parse_offset

bp = Blueprint("prayers_api", __name__)


@bp.get("/prayers")
@require_permission("prayers.view")
def prayers_list():
    s = db_session()
    result = prayers_service.list_prayer_requests(
        s,
        current_tenant_id(),
        status=(request.args.get("status") or "").strip() or None,
        visibility=(request.args.get("visibility") or "").strip() or None,
        is_urgent=parse_bool(request.args.get("is_urgent")),
        limit=clamp_limit(request.args.get("limit")),
        offset=parse_offset(request.args.get("offset")),
    )
    return jsonify(result)


@bp.get("/prayers/stats")
@require_permission("prayers.view")
def prayers_stats():
    s = db_session()
    return jsonify(prayers_service.get_stats(s, current_tenant_id()))


@bp.get("/prayers/<int:request_id>")
@require_permission("prayers.view")
def prayers_get(request_id: int):
    s = db_session()
    return jsonify(prayers_service.get_prayer_request_detail(s, current_tenant_id(), request_id))


@bp.post("/prayers")
@require_permission("prayers.submit")
def prayers_create():
    s = db_session()
    p = prayers_service.create_prayer_request(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(prayers_service.serialize_prayer(p)), 201


@bp.patch("/prayers/<int:request_id>")
@require_permission("prayers.edit")
def prayers_update(request_id: int):
    s = db_session()
    p = prayers_service.update_prayer_request(s, current_tenant_id(), request_id, json_body(), current_user())
    s.commit()
    return jsonify(prayers_service.serialize_prayer(p))


@bp.delete("/prayers/<int:request_id>")
@require_permission("prayers.edit")
def prayers_delete(request_id: int):
    s = db_session()
    prayers_service.delete_prayer_request(s, current_tenant_id(), request_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.post("/prayers/<int:request_id>/pray")
@require_permission("prayers.view")
def prayers_record(request_id: int):
    s = db_session()
    payload = json_body()
    person_id = parse_int(payload.get("person_id"))
    if person_id is None:
        raise BadRequest("person_id is required")
    result = prayers_service.record_prayer(s, current_tenant_id(), request_id, person_id, payload.get("note"), current_user())
    s.commit()
    return jsonify(result), 201


@bp.get("/prayers/<int:request_id>/prayers")
@require_permission("prayers.view")
def prayers_list_prayers(request_id: int):
    s = db_session()
    tenant_id = current_tenant_id()
    prayers_service.get_prayer_request(s, tenant_id, request_id)
    return jsonify({"prayers": prayers_service.list_prayers(s, tenant_id, request_id)})
