from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.errors import BadRequest
from app.flock.modules.org import service as org_service
from app.flock.modules.sermon_helper import service as helper_service
from app.flock.modules.sermon_helper import writing
from app.flock.modules.songs import service as songs_service
from app.flock.rbac import require_permission
from app.flock.utils import json_body, parse_int

bp = Blueprint("sermon_helper_api", __name__)


@bp.get("/sermon-helper/theology-profile")
@require_permission("sermons.view")
def theology_profile_get():
    s = db_session()
    return jsonify(org_service.get_theology_profile(s, current_tenant_id()))


@bp.put("/sermon-helper/theology-profile")
@require_permission("theology.edit")
def theology_profile_update():
    s = db_session()
    profile = org_service.update_theology_profile(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(profile)


@bp.post("/sermon-helper/sermons/<int:sermon_id>/suggestions")
@require_permission("ai.use")
def suggestions(sermon_id: int):
    s = db_session()
    payload = json_body()
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise BadRequest("notes must be a string")
    result = helper_service.get_suggestions(
        s,
        current_tenant_id(),
        sermon_id,
        payload.get("theme") if isinstance(payload.get("theme"), str) else "",
        notes,
    )
    return jsonify(result)


@bp.post("/sermon-helper/sermons/<int:sermon_id>/import-manuscript")
@require_permission("ai.use")
def import_manuscript(sermon_id: int):
    s = db_session()
    text = json_body().get("manuscript_text")
    if not isinstance(text, str):
        raise BadRequest("manuscript_text is required")
    return jsonify(helper_service.import_from_manuscript(s, current_tenant_id(), sermon_id, text))


@bp.post("/sermon-helper/sermons/<int:sermon_id>/draft")
@require_permission("ai.use")
def generate_draft(sermon_id: int):
    s = db_session()
    return jsonify(helper_service.generate_draft(s, current_tenant_id(), sermon_id))


@bp.get("/sermon-helper/hymns")
@require_permission("songs.view")
def hymn_search():
    s = db_session()
    query = (request.args.get("q") or "").strip()
    limit = parse_int(request.args.get("limit"), 10)
    return jsonify({"hymns": songs_service.search_hymns(s, current_tenant_id(), query, limit=limit)})


@bp.get("/ai/config")
@require_permission("sermons.view")
def ai_config():
    s = db_session()
    return jsonify(writing.ai_config(s, current_tenant_id()))


@bp.post("/ai/big-idea")
@require_permission("ai.use")
def suggest_big_idea():
    s = db_session()
    return jsonify(writing.suggest_big_idea(s, current_tenant_id(), json_body()))


@bp.post("/ai/outline")
@require_permission("ai.use")
def suggest_outline():
    s = db_session()
    return jsonify(writing.suggest_outline(s, current_tenant_id(), json_body()))


@bp.post("/ai/shorten")
@require_permission("ai.use")
def shorten_text():
    s = db_session()
    return jsonify(writing.shorten_text(s, current_tenant_id(), json_body()))


@bp.post("/ai/bulletins/<int:bulletin_id>/text")
@require_permission("ai.use")
def bulletin_text(bulletin_id: int):
    s = db_session()
    return jsonify(writing.generate_bulletin_text(s, current_tenant_id(), bulletin_id, json_body()))
