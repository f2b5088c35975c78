from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.events import service as events_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_datetime, parse_int

bp = Blueprint("events_api", __name__)


@bp.get("/events")
@require_permission("events.view")
def events_list():
    s = db_session()
    result = events_service.list_events(
        s,
        current_tenant_id(),
        start=parse_datetime(request.args.get("start")),
        end=parse_datetime(request.args.get("end")),
        limit=clamp_limit(request.args.get("limit")),
    )
    return jsonify(result)


@bp.get("/events/upcoming")
@require_permission("events.view")
def events_upcoming():
    s = db_session()
    days = parse_int(request.args.get("days"), 30)
    rows = events_service.upcoming_events(
        s,
        current_tenant_id(),
        days=max(1, min(days, 365)),
        limit=clamp_limit(request.args.get("limit"), default=10),
    )
    return jsonify({"events": [events_service.serialize_event(e) for e in rows]})


@bp.get("/events/<int:event_id>")
@require_permission("events.view")
def events_get(event_id: int):
    s = db_session()
    return jsonify(events_service.serialize_event(events_service.get_event(s, current_tenant_id(), event_id)))


@bp.post("/events")
@require_permission("events.edit")
def events_create():
    s = db_session()
    e = events_service.create_event(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(events_service.serialize_event(e)), 201


@bp.patch("/events/<int:event_id>")
@require_permission("events.edit")
def events_update(event_id: int):
    s = db_session()
    e = events_service.update_event(s, current_tenant_id(), event_id, json_body(), current_user())
    s.commit()
    return jsonify(events_service.serialize_event(e))


@bp.delete("/events/<int:event_id>")
@require_permission("events.edit")
def events_delete(event_id: int):
    s = db_session()
    events_service.delete_event(s, current_tenant_id(), event_id, current_user())
    s.commit()
    return jsonify({"success": True})
