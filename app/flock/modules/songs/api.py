from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.songs import service as songs_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_int, parse_offset

bp = Blueprint("songs_api", __name__)


@bp.get("/songs")
@require_permission("songs.view")
def songs_list():
    s = db_session()
    args = request.args
    result = songs_service.list_songs(
        s,
        current_tenant_id(),
        query=(args.get("query") or "").strip() or None,
        hymnal_code=(args.get("hymnal_code") or "").strip() or None,
        limit=clamp_limit(args.get("limit")),
        offset=parse_offset(args.get("offset")),
    )
    return jsonify(result)


@bp.get("/songs/select")
@require_permission("songs.view")
def songs_for_select():
    s = db_session()
    rows = songs_service.list_for_select(
        s,
        current_tenant_id(),
        search=(request.args.get("search") or "").strip() or None,
        limit=clamp_limit(request.args.get("limit"), default=20, maximum=50),
    )
    return jsonify({"songs": rows})


@bp.get("/songs/search")
@require_permission("songs.view")
def songs_search_hymns():
    s = db_session()
    rows = songs_service.search_hymns(
        s,
        current_tenant_id(),
        request.args.get("query") or "",
        limit=parse_int(request.args.get("limit"), 10),
    )
    return jsonify({"songs": rows})


@bp.get("/songs/<int:song_id>")
@require_permission("songs.view")
def songs_get(song_id: int):
    s = db_session()
    return jsonify(songs_service.serialize_song(songs_service.get_song(s, current_tenant_id(), song_id)))


@bp.post("/songs")
@require_permission("songs.edit")
def songs_create():
    s = db_session()
    song = songs_service.create_song(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(songs_service.serialize_song(song)), 201


@bp.post("/songs/bulk")
@require_permission("songs.edit")
def songs_bulk_create():
    s = db_session()
    result = songs_service.bulk_create(s, current_tenant_id(), json_body().get("songs") or [], current_user())
    s.commit()
    return jsonify(result)


@bp.patch("/songs/<int:song_id>")
@require_permission("songs.edit")
def songs_update(song_id: int):
    s = db_session()
    song = songs_service.update_song(s, current_tenant_id(), song_id, json_body(), current_user())
    s.commit()
    return jsonify(songs_service.serialize_song(song))


@bp.delete("/songs/<int:song_id>")
@require_permission("songs.edit")
def songs_delete(song_id: int):
    s = db_session()
    result = songs_service.delete_song(s, current_tenant_id(), song_id, current_user())
    s.commit()
    return jsonify(result)
