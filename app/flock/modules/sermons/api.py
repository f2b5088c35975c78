from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.sermons import service as sermons_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, clean_str, json_body, parse_date, parse_int, parse_offset

bp = Blueprint("sermons_api", __name__)


@bp.get("/sermons/series")
@require_permission("sermons.view")
def series_list():
    s = db_session()
    result = sermons_service.list_series(
        s,
        current_tenant_id(),
        limit=clamp_limit(request.args.get("limit")),
        offset=parse_offset(request.args.get("offset")),
    )
    return jsonify(result)


@bp.get("/sermons/series/<int:series_id>")
@require_permission("sermons.view")
def series_get(series_id: int):
    s = db_session()
    return jsonify(sermons_service.serialize_series(sermons_service.get_series(s, current_tenant_id(), series_id)))


@bp.post("/sermons/series")
@require_permission("sermons.edit")
def series_create():
    s = db_session()
    x = sermons_service.create_series(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(sermons_service.serialize_series(x)), 201


@bp.patch("/sermons/series/<int:series_id>")
@require_permission("sermons.edit")
def series_update(series_id: int):
    s = db_session()
    x = sermons_service.update_series(s, current_tenant_id(), series_id, json_body(), current_user())
    s.commit()
    return jsonify(sermons_service.serialize_series(x))


@bp.delete("/sermons/series/<int:series_id>")
@require_permission("sermons.edit")
def series_delete(series_id: int):
    s = db_session()
    sermons_service.delete_series(s, current_tenant_id(), series_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.get("/sermons")
@require_permission("sermons.view")
def sermons_list():
    s = db_session()
    args = request.args
    result = sermons_service.list_sermons(
        s,
        current_tenant_id(),
        series_id=parse_int(args.get("series_id")),
        preacher=clean_str(args.get("preacher")),
        start_date=parse_date(args.get("start_date")),
        end_date=parse_date(args.get("end_date")),
        search=clean_str(args.get("search")),
        limit=clamp_limit(args.get("limit")),
        offset=parse_offset(args.get("offset")),
    )
    return jsonify(result)


@bp.get("/sermons/select")
@require_permission("sermons.view")
def sermons_for_select():
    s = db_session()
    rows = sermons_service.list_for_select(
        s,
        current_tenant_id(),
        search=clean_str(request.args.get("search")),
        limit=clamp_limit(request.args.get("limit"), default=20, maximum=50),
    )
    return jsonify({"sermons": rows})


@bp.get("/sermons/stats")
@require_permission("sermons.view")
def sermons_stats():
    s = db_session()
    return jsonify(
        sermons_service.get_stats(
            s,
            current_tenant_id(),
            start_date=parse_date(request.args.get("start_date")),
            end_date=parse_date(request.args.get("end_date")),
        )
    )


@bp.get("/sermons/templates")
@require_permission("sermons.view")
def templates_list():
    s = db_session()
    return jsonify({"templates": sermons_service.list_templates(s, current_tenant_id())})


@bp.get("/sermons/templates/<int:template_id>")
@require_permission("sermons.view")
def templates_get(template_id: int):
    s = db_session()
    return jsonify(sermons_service.serialize_template(sermons_service.get_template(s, current_tenant_id(), template_id)))


@bp.get("/sermons/<int:sermon_id>")
@require_permission("sermons.view")
def sermons_get(sermon_id: int):
    s = db_session()
    return jsonify(sermons_service.serialize_sermon(sermons_service.get_sermon(s, current_tenant_id(), sermon_id)))


@bp.post("/sermons")
@require_permission("sermons.edit")
def sermons_create():
    s = db_session()
    x = sermons_service.create_sermon(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(sermons_service.serialize_sermon(x)), 201


@bp.patch("/sermons/<int:sermon_id>")
@require_permission("sermons.edit")
def sermons_update(sermon_id: int):
    s = db_session()
    x = sermons_service.update_sermon(s, current_tenant_id(), sermon_id, json_body(), current_user())
    s.commit()
    return jsonify(sermons_service.serialize_sermon(x))


@bp.delete("/sermons/<int:sermon_id>")
@require_permission("sermons.edit")
def sermons_delete(sermon_id: int):
    s = db_session()
    sermons_service.delete_sermon(s, current_tenant_id(), sermon_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.post("/sermons/<int:sermon_id>/ready")
@require_permission("sermons.edit")
def sermons_set_ready(sermon_id: int):
    s = db_session()
    result = sermons_service.set_ready_and_sync(s, current_tenant_id(), sermon_id, current_user())
    s.commit()
    return jsonify(result)


@bp.get("/sermons/<int:sermon_id>/plan")
@require_permission("sermons.view")
def plan_get(sermon_id: int):
    s = db_session()
    plan = sermons_service.get_plan(s, current_tenant_id(), sermon_id)
    return jsonify({"plan": sermons_service.serialize_plan(plan) if plan else None})


@bp.put("/sermons/<int:sermon_id>/plan")
@require_permission("sermons.edit")
def plan_save(sermon_id: int):
    s = db_session()
    plan = sermons_service.save_plan(s, current_tenant_id(), sermon_id, json_body(), current_user())
    s.commit()
    return jsonify({"plan": sermons_service.serialize_plan(plan)})


@bp.post("/sermons/<int:sermon_id>/templates")
@require_permission("sermons.edit")
def templates_create_from_plan(sermon_id: int):
    s = db_session()
    payload = json_body()
    t = sermons_service.create_template_from_plan(
        s,
        current_tenant_id(),
        sermon_id,
        payload.get("name") or "",
        current_user(),
        tags=payload.get("tags") or [],
        style_profile=clean_str(payload.get("style_profile")),
        inherit_style="style_profile" not in payload,
    )
    s.commit()
    return jsonify(sermons_service.serialize_template(t)), 201
