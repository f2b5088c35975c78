from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import case, or_

from app.flock.audit import record_event
from app.flock.errors import BadRequest, not_found, raise_if_errors
from app.flock.utils import check_length, clean_str, iso, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.songs.models import Song


# field -> max length
_TEXT_LIMITS = {
    "title": 255,
    "alternate_title": 255,
    "first_line": 500,
    "tune_name": 100,
    "hymn_number": 20,
    "hymnal_code": 20,
    "author": 255,
    "composer": 255,
    "ccli_number": 50,
    "default_key": 10,
}
_LONG_TEXT = ("copyright", "lyrics")
_FIELDS = tuple(_TEXT_LIMITS) + _LONG_TEXT + ("default_tempo", "is_public_domain")
MAX_BULK = 100


def validate_song_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "title" in payload:
        check_length(errors, "Title", clean_str(payload.get("title")), min_len=1, max_len=255)
    for key, max_len in _TEXT_LIMITS.items():
        if key == "title" or key not in payload:
            continue
        check_length(errors, key, clean_str(payload.get(key)), max_len=max_len)
    if payload.get("default_tempo") not in (None, ""):
        tempo = parse_int(payload.get("default_tempo"))
        if tempo < 20 or tempo > 300:
            errors.append("default_tempo must be between 20 and 300.")
    return errors


def serialize_song(song: "Song") -> dict:
    return {
        "id": song.id,
        "title": song.title,
        "alternate_title": song.alternate_title,
        "first_line": song.first_line,
        "tune_name": song.tune_name,
        "hymn_number": song.hymn_number,
        "hymnal_code": song.hymnal_code,
        "author": song.author,
        "composer": song.composer,
        "is_public_domain": song.is_public_domain,
        "ccli_number": song.ccli_number,
        "copyright": song.copyright,
        "default_key": song.default_key,
        "default_tempo": song.default_tempo,
        "lyrics": song.lyrics,
        "created_at": iso(song.created_at),
        "updated_at": iso(song.updated_at),
    }


def _select_row(song: "Song") -> dict:
    return {
        "id": song.id,
        "title": song.title,
        "alternate_title": song.alternate_title,
        "hymn_number": song.hymn_number,
        "hymnal_code": song.hymnal_code,
        "tune_name": song.tune_name,
        "ccli_number": song.ccli_number,
        "author": song.author,
        "is_public_domain": song.is_public_domain,
    }


def _base_query(s: "Session", tenant_id: str):
    from app.flock.modules.songs.models import Song

    return s.query(Song).filter(Song.tenant_id == tenant_id, Song.deleted_at.is_(None))


def list_songs(
    s: "Session",
    tenant_id: str,
    *,
    query: str | None = None,
    hymnal_code: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    from app.flock.modules.songs.models import Song

    q = _base_query(s, tenant_id)
    if query:
        like = f"%{query}%"
        q = q.filter(
            or_(
                Song.title.ilike(like),
                Song.alternate_title.ilike(like),
                Song.first_line.ilike(like),
                Song.tune_name.ilike(like),
                Song.hymn_number.ilike(like),
                Song.ccli_number.ilike(like),
            )
        )
    if hymnal_code:
        q = q.filter(Song.hymnal_code == hymnal_code)
    total = q.count()
    rows = q.order_by(Song.title.asc()).limit(limit).offset(offset).all()
    return {"songs": [serialize_song(x) for x in rows], "total": total}


def list_for_select(s: "Session", tenant_id: str, *, search: str | None = None, limit: int = 20) -> list[dict]:
    from app.flock.modules.songs.models import Song

    q = _base_query(s, tenant_id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Song.title.ilike(like), Song.hymn_number.ilike(like), Song.ccli_number.ilike(like)))
    return [_select_row(x) for x in q.order_by(Song.title.asc()).limit(limit).all()]


def search_hymns(s: "Session", tenant_id: str, query: str, *, limit: int = 10) -> list[dict]:
    """Theme/keyword search used by the sermon helper; title hits rank first."""
    from app.flock.modules.songs.models import Song

    query = (query or "").strip()
    if not query or len(query) > 200:
        raise BadRequest("query must be between 1 and 200 characters")
    if limit < 1 or limit > 50:
        raise BadRequest("limit must be between 1 and 50")
    like = f"%{query}%"
    rows = (
        _base_query(s, tenant_id)
        .filter(
            or_(
                Song.title.ilike(like),
                Song.alternate_title.ilike(like),
                Song.first_line.ilike(like),
                Song.tune_name.ilike(like),
                Song.lyrics.ilike(like),
            )
        )
        .order_by(case((Song.title.ilike(like), 0), else_=1), Song.title.asc())
        .limit(limit)
        .all()
    )
    return [_select_row(x) for x in rows]


def get_song(s: "Session", tenant_id: str, song_id: int) -> "Song":
    from app.flock.modules.songs.models import Song

    song = _base_query(s, tenant_id).filter(Song.id == song_id).one_or_none()
    if song is None:
        raise not_found("Song")
    return song


def _apply(song: "Song", payload: dict) -> None:
    for key in _FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key == "default_tempo":
            value = parse_int(raw)
        elif key == "is_public_domain":
            value = bool(parse_bool(raw))
        else:
            value = clean_str(raw)
        setattr(song, key, value)


def create_song(s: "Session", tenant_id: str, payload: dict, user: "User | None") -> "Song":
    from app.flock.modules.songs.models import Song

    raise_if_errors(validate_song_payload(payload))
    now = datetime.utcnow()
    song = Song(tenant_id=tenant_id, created_at=now, updated_at=now)
    _apply(song, payload)
    s.add(song)
    s.flush()
    if user is not None:
        record_event(
            s,
            actor=user,
            action="song.create",
            entity_type="Song",
            entity_id=str(song.id),
            metadata={"title": song.title, "ccli_number": song.ccli_number},
        )
    return song


def update_song(s: "Session", tenant_id: str, song_id: int, payload: dict, user: "User") -> "Song":
    song = get_song(s, tenant_id, song_id)
    if not any(k in payload for k in _FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_song_payload(payload, partial=True))
    _apply(song, payload)
    song.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="song.edit", entity_type="Song", entity_id=str(song.id))
    return song


def delete_song(s: "Session", tenant_id: str, song_id: int, user: "User") -> dict:
    """Soft delete; service items pointing at the song are unlinked rather than blocking."""
    from app.flock.modules.bulletins.models import ServiceItem

    song = get_song(s, tenant_id, song_id)
    linked = (
        s.query(ServiceItem)
        .filter(ServiceItem.tenant_id == tenant_id, ServiceItem.song_id == song.id, ServiceItem.deleted_at.is_(None))
        .all()
    )
    for item in linked:
        item.song_id = None
    song.deleted_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="song.delete",
        entity_type="Song",
        entity_id=str(song.id),
        metadata={"unlinked_service_items": len(linked)},
    )
    return {"success": True, "unlinked_service_items": len(linked)}


def upsert_song(s: "Session", tenant_id: str, payload: dict, *, match: str = "ccli") -> tuple["Song", bool]:
    """
    Insert a song or refresh an existing one.

    `match="ccli"` looks the song up by CCLI number when one is given and
    falls back to title + hymnal code; `match="title"` always uses the latter.
    Returns `(song, created)`.
    """
    from app.flock.modules.songs.models import Song

    raise_if_errors(validate_song_payload(payload))
    existing = None
    ccli = clean_str(payload.get("ccli_number"))
    if match == "ccli" and ccli:
        existing = _base_query(s, tenant_id).filter(Song.ccli_number == ccli).first()
    if existing is None:
        hymnal = clean_str(payload.get("hymnal_code"))
        q = _base_query(s, tenant_id).filter(Song.title == clean_str(payload.get("title")))
        q = q.filter(Song.hymnal_code == hymnal) if hymnal else q.filter(Song.hymnal_code.is_(None))
        existing = q.first()
    if existing is None:
        return create_song(s, tenant_id, payload, None), True
    _apply(existing, payload)
    existing.updated_at = datetime.utcnow()
    return existing, False


def bulk_create(s: "Session", tenant_id: str, songs: list, user: "User") -> dict:
    if not isinstance(songs, list):
        raise BadRequest("songs must be a list")
    if len(songs) > MAX_BULK:
        raise BadRequest(f"At most {MAX_BULK} songs can be imported at a time")
    created = updated = 0
    errors: list[dict] = []
    for data in songs:
        title = data.get("title") if isinstance(data, dict) else None
        try:
            if not isinstance(data, dict):
                raise BadRequest("Each song must be an object")
            _, was_created = upsert_song(s, tenant_id, data)
        except BadRequest as e:
            errors.append({"title": title, "error": e.message})
            continue
        if was_created:
            created += 1
        else:
            updated += 1
    record_event(
        s,
        actor=user,
        action="song.bulk_import",
        entity_type="Song",
        metadata={"created": created, "updated": updated, "errors": len(errors)},
    )
    return {"created": created, "updated": updated, "errors": errors}
