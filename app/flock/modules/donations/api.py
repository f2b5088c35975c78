from datetime import date

from flask import Blueprint, jsonify, request

from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.modules.donations import service as donations_service
from app.flock.rbac import require_permission
from app.flock.utils import clamp_limit, json_body, parse_bool, parse_date, parse_int, parse_offset

bp = Blueprint("donations_api", __name__)


@bp.get("/donations/campaigns")
@require_permission("donations.view")
def campaigns_list():
    s = db_session()
    active_only = bool(parse_bool(request.args.get("active_only")))
    return jsonify({"campaigns": donations_service.list_campaigns(s, current_tenant_id(), active_only=active_only)})


@bp.post("/donations/campaigns")
@require_permission("donations.edit")
def campaigns_create():
    s = db_session()
    c = donations_service.create_campaign(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(donations_service.serialize_campaign(c)), 201


@bp.patch("/donations/campaigns/<int:campaign_id>")
@require_permission("donations.edit")
def campaigns_update(campaign_id: int):
    s = db_session()
    c = donations_service.update_campaign(s, current_tenant_id(), campaign_id, json_body(), current_user())
    s.commit()
    return jsonify(donations_service.serialize_campaign(c))


@bp.delete("/donations/campaigns/<int:campaign_id>")
@require_permission("donations.edit")
def campaigns_delete(campaign_id: int):
    s = db_session()
    donations_service.delete_campaign(s, current_tenant_id(), campaign_id, current_user())
    s.commit()
    return jsonify({"success": True})


@bp.get("/donations")
@require_permission("donations.view")
def donations_list():
    s = db_session()
    args = request.args
    result = donations_service.list_donations(
        s,
        current_tenant_id(),
        person_id=parse_int(args.get("person_id")),
        campaign_id=parse_int(args.get("campaign_id")),
        status=(args.get("status") or "").strip() or None,
        start_date=parse_date(args.get("start_date")),
        end_date=parse_date(args.get("end_date")),
        limit=clamp_limit(args.get("limit")),
        offset=parse_offset(args.get("offset")),
    )
    return jsonify(result)


@bp.get("/donations/stats")
@require_permission("donations.view")
def donations_stats():
    s = db_session()
    return jsonify(
        donations_service.get_stats(
            s,
            current_tenant_id(),
            start_date=parse_date(request.args.get("start_date")),
            end_date=parse_date(request.args.get("end_date")),
        )
    )


@bp.get("/donations/stats/monthly")
@require_permission("donations.view")
def donations_monthly_stats():
    s = db_session()
    year = parse_int(request.args.get("year"), date.today().year)
    return jsonify({"year": year, "months": donations_service.get_monthly_stats(s, current_tenant_id(), year)})


@bp.get("/donations/tax-statements/<int:year>/<int:person_id>")
@require_permission("donations.view")
def donations_tax_statement(year: int, person_id: int):
    s = db_session()
    return jsonify(donations_service.get_tax_statement(s, current_tenant_id(), year, person_id))


@bp.get("/donations/<int:donation_id>")
@require_permission("donations.view")
def donations_get(donation_id: int):
    s = db_session()
    d = donations_service.get_donation(s, current_tenant_id(), donation_id)
    return jsonify(donations_service.serialize_donation(d))


@bp.post("/donations")
@require_permission("donations.edit")
def donations_create():
    s = db_session()
    d = donations_service.create_donation(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(donations_service.serialize_donation(d)), 201


@bp.patch("/donations/<int:donation_id>")
@require_permission("donations.edit")
def donations_update(donation_id: int):
    s = db_session()
    d = donations_service.update_donation(s, current_tenant_id(), donation_id, json_body(), current_user())
    s.commit()
    return jsonify(donations_service.serialize_donation(d))


@bp.delete("/donations/<int:donation_id>")
@require_permission("donations.edit")
def donations_delete(donation_id: int):
    s = db_session()
    donations_service.delete_donation(s, current_tenant_id(), donation_id, current_user())
    s.commit()
    return jsonify({"success": True})
