from flask import Blueprint, Response, current_app, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.errors import bad_request
from app.flock.modules.bulletins import service as bulletins_service
from app.flock.modules.bulletins import service_items as items_service
from app.flock.rbac import require_permission
from app.flock.storage import storage_from_config
from app.flock.utils import clamp_limit, json_body, parse_bool, parse_int, parse_offset

bp = Blueprint("bulletins_api", __name__)


@bp.get("/bulletins")
@require_permission("bulletins.view")
def bulletins_list():
    s = db_session()
    result = bulletins_service.list_bulletins(
        s,
        current_tenant_id(),
        list_filter=(request.args.get("filter") or "active").strip(),
        status=(request.args.get("status") or "").strip() or None,
        limit=clamp_limit(request.args.get("limit")),
        offset=parse_offset(request.args.get("offset")),
    )
    return jsonify(result)


@bp.get("/bulletins/templates")
@require_permission("bulletins.view")
def bulletins_templates():
    return jsonify({"templates": bulletins_service.list_service_templates()})


@bp.post("/bulletins")
@require_permission("bulletins.edit")
def bulletins_create():
    s = db_session()
    b = bulletins_service.create_bulletin(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(bulletins_service.serialize_bulletin(b, detail=True)), 201


@bp.post("/bulletins/from-previous")
@require_permission("bulletins.edit")
def bulletins_from_previous():
    s = db_session()
    payload = json_body()
    source_id = payload.get("previous_bulletin_id")
    if source_id is None:
        raise bad_request("previous_bulletin_id is required")
    b = bulletins_service.create_from_previous(
        s, current_tenant_id(), parse_int(source_id), payload.get("service_date"), current_user()
    )
    s.commit()
    return jsonify(bulletins_service.serialize_bulletin(b, detail=True)), 201


@bp.get("/bulletins/<int:bulletin_id>")
@require_permission("bulletins.view")
def bulletins_get(bulletin_id: int):
    s = db_session()
    b = bulletins_service.get_bulletin(s, current_tenant_id(), bulletin_id)
    return jsonify(bulletins_service.serialize_bulletin(b, detail=True))


@bp.patch("/bulletins/<int:bulletin_id>")
@require_permission("bulletins.edit")
def bulletins_update(bulletin_id: int):
    s = db_session()
    b = bulletins_service.update_bulletin(s, current_tenant_id(), bulletin_id, json_body(), current_user())
    s.commit()
    return jsonify(bulletins_service.serialize_bulletin(b, detail=True))


@bp.delete("/bulletins/<int:bulletin_id>")
@require_permission("bulletins.edit")
def bulletins_delete(bulletin_id: int):
    s = db_session()
    bulletins_service.delete_bulletin(s, current_tenant_id(), bulletin_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.post("/bulletins/<int:bulletin_id>/lock")
@require_permission("bulletins.edit")
def bulletins_lock(bulletin_id: int):
    s = db_session()
    b = bulletins_service.lock_bulletin(s, current_tenant_id(), bulletin_id, current_user())
    s.commit()
    return jsonify(bulletins_service.serialize_bulletin(b, detail=True))


@bp.post("/bulletins/<int:bulletin_id>/copy-from/<int:source_id>")
@require_permission("bulletins.edit")
def bulletins_copy_from(bulletin_id: int, source_id: int):
    s = db_session()
    copy_items = parse_bool(json_body().get("copy_service_items")) or False
    result = bulletins_service.copy_from_bulletin(
        s, current_tenant_id(), bulletin_id, source_id, copy_service_items=copy_items, user=current_user()
    )
    s.commit()
    return jsonify(result)


@bp.post("/bulletins/<int:bulletin_id>/apply-template")
@require_permission("bulletins.edit")
def bulletins_apply_template(bulletin_id: int):
    s = db_session()
    key = (json_body().get("template_key") or "").strip()
    if not key:
        raise bad_request("template_key is required")
    items = bulletins_service.apply_template(s, current_tenant_id(), bulletin_id, key, current_user())
    s.commit()
    return jsonify({"service_items": items})


@bp.get("/bulletins/<int:bulletin_id>/generator")
@require_permission("bulletins.view")
def bulletins_generator_get(bulletin_id: int):
    s = db_session()
    return jsonify(bulletins_service.get_generator_payload(s, current_tenant_id(), bulletin_id))


@bp.put("/bulletins/<int:bulletin_id>/generator")
@require_permission("bulletins.edit")
def bulletins_generator_save(bulletin_id: int):
    s = db_session()
    result = bulletins_service.save_generator_payload(s, current_tenant_id(), bulletin_id, json_body(), current_user())
    s.commit()
    return jsonify(result)


@bp.post("/bulletins/<int:bulletin_id>/generate")
@require_permission("bulletins.edit")
def bulletins_generate(bulletin_id: int):
    s = db_session()
    result = bulletins_service.generate_from_service(s, current_tenant_id(), bulletin_id, current_user())
    s.commit()
    return jsonify(result)


@bp.get("/bulletins/<int:bulletin_id>/preflight")
@require_permission("bulletins.view")
def bulletins_preflight(bulletin_id: int):
    s = db_session()
    return jsonify(bulletins_service.preflight_validation(s, current_tenant_id(), bulletin_id))


@bp.get("/bulletins/<int:bulletin_id>/pdf")
@require_permission("bulletins.view")
def bulletins_pdf(bulletin_id: int):
    s = db_session()
    fmt = (request.args.get("format") or "standard").strip()
    storage = storage_from_config(current_app.config)
    pdf = bulletins_service.generate_pdf(s, current_tenant_id(), bulletin_id, fmt, storage=storage)
    s.commit()
    resp = Response(pdf, mimetype="application/pdf")
    resp.headers["Content-Disposition"] = f'inline; filename="bulletin-{bulletin_id}-{fmt}.pdf"'
    return resp


@bp.get("/public/bulletins/<token>")
def bulletins_public(token: str):
    s = db_session()
    return jsonify(bulletins_service.get_by_public_token(s, token))


@bp.get("/bulletins/<int:bulletin_id>/items")
@require_permission("bulletins.view")
def items_list(bulletin_id: int):
    s = db_session()
    return jsonify({"service_items": items_service.list_items(s, current_tenant_id(), bulletin_id)})


@bp.post("/bulletins/<int:bulletin_id>/items")
@require_permission("bulletins.edit")
def items_create(bulletin_id: int):
    s = db_session()
    item = items_service.create_item(s, current_tenant_id(), bulletin_id, json_body(), current_user())
    s.commit()
    return jsonify(items_service.serialize_item(item)), 201


@bp.put("/bulletins/<int:bulletin_id>/items/order")
@require_permission("bulletins.edit")
def items_reorder(bulletin_id: int):
    s = db_session()
    items = items_service.reorder_items(s, current_tenant_id(), bulletin_id, json_body().get("items"), current_user())
    s.commit()
    return jsonify({"service_items": items})


@bp.patch("/service-items/<int:item_id>")
@require_permission("bulletins.edit")
def items_update(item_id: int):
    s = db_session()
    item = items_service.update_item(s, current_tenant_id(), item_id, json_body(), current_user())
    s.commit()
    return jsonify(items_service.serialize_item(item))


@bp.delete("/service-items/<int:item_id>")
@require_permission("bulletins.edit")
def items_delete(item_id: int):
    s = db_session()
    items_service.delete_item(s, current_tenant_id(), item_id, current_user())
    s.commit()
    return jsonify({"success": True})
