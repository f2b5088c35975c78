from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.people import service as people_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_offset

bp = Blueprint("people_api", __name__)


@bp.get("/people")
@require_permission("people.view")
def people_list():
    s = db_session()
    result = people_service.list_people(
        s,
        current_tenant_id(),
        search=(request.args.get("search") or "").strip() or None,
        limit=clamp_limit(request.args.get("limit")),
        offset=parse_offset(request.args.get("offset")),
    )
    return jsonify(result)


@bp.get("/people/<int:person_id>")
@require_permission("people.view")
def people_get(person_id: int):
    s = db_session()
    person = people_service.get_person(s, current_tenant_id(), person_id)
    return jsonify(people_service.serialize_person(person))


@bp.post("/people")
@require_permission("people.edit")
def people_create():
    s = db_session()
    person = people_service.create_person(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(people_service.serialize_person(person)), 201


@bp.patch("/people/<int:person_id>")
@require_permission("people.edit")
def people_update(person_id: int):
    s = db_session()
    person = people_service.update_person(s, current_tenant_id(), person_id, json_body(), current_user())
    s.commit()
    return jsonify(people_service.serialize_person(person))


@bp.delete("/people/<int:person_id>")
@require_permission("people.edit")
def people_delete(person_id: int):
    s = db_session()
    people_service.delete_person(s, current_tenant_id(), person_id, current_user())
    s.commit()
    return jsonify({"success": True})
