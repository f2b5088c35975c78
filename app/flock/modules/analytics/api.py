from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id
from app.flock.db import db_session
from app.flock.modules.analytics import service as analytics_service
from app.flock.rbac import require_permission
from app.flock.utils import parse_date, parse_int

bp = Blueprint("analytics_api", __name__)


def _filters(*omit: str) -> dict:
    args = request.args
    filters = {
        "start_date": parse_date(args.get("from")),
        "end_date": parse_date(args.get("to")),
        "series_id": parse_int(args.get("series_id")),
        "preacher": (args.get("preacher") or "").strip() or None,
        "slot": (args.get("service_slot") or "").strip() or None,
    }
    for key in omit:
        filters.pop(key)
    return filters


@bp.get("/analytics/overview")
@require_permission("bulletins.view")
def analytics_overview():
    s = db_session()
    return jsonify(analytics_service.overview(s, current_tenant_id(), **_filters()))


@bp.get("/analytics/preachers/stats")
@require_permission("bulletins.view")
def analytics_preacher_stats():
    s = db_session()
    return jsonify(analytics_service.preacher_stats(s, current_tenant_id(), **_filters("preacher")))


@bp.get("/analytics/series/stats")
@require_permission("bulletins.view")
def analytics_series_stats():
    s = db_session()
    return jsonify(analytics_service.series_stats(s, current_tenant_id(), **_filters("series_id")))


@bp.get("/analytics/service-slots/stats")
@require_permission("bulletins.view")
def analytics_service_time_stats():
    s = db_session()
    return jsonify(analytics_service.service_time_stats(s, current_tenant_id(), **_filters("slot")))


@bp.get("/analytics/detail")
@require_permission("bulletins.view")
def analytics_detail():
    s = db_session()
    filters = _filters()
    result = analytics_service.detail_for_filter(
        s,
        current_tenant_id(),
        (request.args.get("type") or "").strip(),
        (request.args.get("key") or "").strip() or None,
        start_date=filters["start_date"],
        end_date=filters["end_date"],
    )
    return jsonify(result)


@bp.get("/analytics/preachers")
@require_permission("bulletins.view")
def analytics_preachers():
    s = db_session()
    return jsonify(analytics_service.list_preachers(s, current_tenant_id()))


@bp.get("/analytics/series")
@require_permission("bulletins.view")
def analytics_series():
    s = db_session()
    return jsonify(analytics_service.list_series(s, current_tenant_id()))


@bp.get("/analytics/service-slots")
@require_permission("bulletins.view")
def analytics_service_slots():
    s = db_session()
    return jsonify(analytics_service.list_service_slots(s, current_tenant_id()))
