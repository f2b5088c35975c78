from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.errors import BadRequest
from app.flock.modules.groups import service as groups_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_int, parse_offset

bp = Blueprint("groups_api", __name__)


@bp.get("/groups")
@require_permission("groups.view")
def groups_list():
    s = db_session()
    result = groups_service.list_groups(
        s,
        current_tenant_id(),
        category=(request.args.get("category") or "").strip() or None,
        limit=clamp_limit(request.args.get("limit")),
        offset=parse_offset(request.args.get("offset")),
    )
    return jsonify(result)


@bp.get("/groups/<int:group_id>")
@require_permission("groups.view")
def groups_get(group_id: int):
    s = db_session()
    tenant_id = current_tenant_id()
    group = groups_service.get_group(s, tenant_id, group_id)
    members = groups_service.list_members(s, tenant_id, group_id)
    return jsonify(groups_service.serialize_group(group, len(members)))


@bp.post("/groups")
@require_permission("groups.edit")
def groups_create():
    s = db_session()
    group = groups_service.create_group(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(groups_service.serialize_group(group, 0)), 201


@bp.patch("/groups/<int:group_id>")
@require_permission("groups.edit")
def groups_update(group_id: int):
    s = db_session()
    group = groups_service.update_group(s, current_tenant_id(), group_id, json_body(), current_user())
    s.commit()
    return jsonify(groups_service.serialize_group(group))


@bp.delete("/groups/<int:group_id>")
@require_permission("groups.edit")
def groups_delete(group_id: int):
    s = db_session()
    groups_service.delete_group(s, current_tenant_id(), group_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.get("/groups/<int:group_id>/members")
@require_permission("groups.view")
def groups_members(group_id: int):
    s = db_session()
    return jsonify({"members": groups_service.list_members(s, current_tenant_id(), group_id)})


@bp.post("/groups/<int:group_id>/members")
@require_permission("groups.edit")
def groups_add_member(group_id: int):
    s = db_session()
    payload = json_body()
    person_id = parse_int(payload.get("person_id"))
    if person_id is None:
        raise BadRequest("person_id is required")
    result = groups_service.add_member(
        s, current_tenant_id(), group_id, person_id, (payload.get("role") or "member").strip(), current_user()
    )
    s.commit()
    return jsonify(result), 201


@bp.delete("/groups/<int:group_id>/members/<int:person_id>")
@require_permission("groups.edit")
def groups_remove_member(group_id: int, person_id: int):
    s = db_session()
    groups_service.remove_member(s, current_tenant_id(), group_id, person_id, current_user())
    s.commit()
    return jsonify({"success": True})
