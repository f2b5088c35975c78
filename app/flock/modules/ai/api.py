from flask import Blueprint, current_app, jsonify, request

from app.flock.audit import record_event
from app.flock.auth import current_tenant_id, current_user
from app.flock.db import db_session
from app.flock.errors import BadRequest, NotFound
from app.flock.modules.ai import plans, pricing
from app.flock.modules.ai import settings as ai_settings
from app.flock.modules.ai.quota import get_ai_quota_status, month_bounds
from app.flock.rbac import require_permission
from app.flock.utils import json_body, parse_bool, parse_datetime

bp = Blueprint("ai_admin_api", __name__)


@bp.get("/admin/ai-settings")
@require_permission("ai.settings")
def ai_settings_get():
    s = db_session()
    return jsonify(ai_settings.get_ai_settings(s, current_tenant_id()))


@bp.put("/admin/ai-settings")
@require_permission("ai.settings")
def ai_settings_update():
    s = db_session()
    result = ai_settings.update_ai_settings(s, current_tenant_id(), json_body(), current_user())
    s.commit()
    return jsonify(result)


def _plan_info_or_404(s, tenant_id: str) -> dict:
    info = plans.get_tenant_plan_info(s, tenant_id)
    if info is None:
        raise NotFound("Tenant not found")
    return info


@bp.get("/admin/tenant-plan")
@require_permission("tenant.plan")
def tenant_plan_get():
    s = db_session()
    return jsonify(_plan_info_or_404(s, current_tenant_id()))


@bp.put("/admin/tenant-plan")
@require_permission("tenant.plan")
def tenant_plan_update():
    s = db_session()
    tenant_id = current_tenant_id()
    payload = json_body()
    plan = (payload.get("plan") or "").strip()
    if not plans.is_valid_plan(plan):
        raise BadRequest(f"plan must be one of: {', '.join(plans.PLAN_IDS)}")
    apply_defaults = parse_bool(payload.get("apply_defaults"))
    apply_defaults = True if apply_defaults is None else apply_defaults
    previous = _plan_info_or_404(s, tenant_id)["plan"]
    plans.update_tenant_plan(s, tenant_id, plan, apply_defaults=apply_defaults)
    record_event(
        s,
        actor=current_user(),
        action="tenant.plan.update",
        entity_type="Tenant",
        entity_id=tenant_id,
        metadata={"from": previous, "to": plan, "apply_defaults": apply_defaults},
    )
    s.commit()
    return jsonify(_plan_info_or_404(s, tenant_id))


@bp.post("/admin/tenant-plan/reset")
@require_permission("tenant.plan")
def tenant_plan_reset():
    s = db_session()
    tenant_id = current_tenant_id()
    _plan_info_or_404(s, tenant_id)
    plans.apply_plan_defaults_to_tenant(s, tenant_id)
    record_event(s, actor=current_user(), action="tenant.plan.reset", entity_type="Tenant", entity_id=tenant_id)
    s.commit()
    return jsonify(_plan_info_or_404(s, tenant_id))


@bp.get("/admin/ai-usage/summary")
@require_permission("ai.usage")
def ai_usage_summary():
    s = db_session()
    default_start, default_end = month_bounds()
    start = parse_datetime(request.args.get("from")) or default_start
    end = parse_datetime(request.args.get("to")) or default_end
    pricing.validate_range(start, end)
    tenant_id = current_tenant_id()
    summary = pricing.summarize_usage(s, start=start, end=end, tenant_id=tenant_id)
    current_app.logger.info(
        "AI usage summary tenant=%s rows=%s calls=%s", tenant_id, len(summary["rows"]), summary["totals"]["calls"]
    )
    return jsonify(summary)


@bp.get("/admin/ai-usage/current-month")
@require_permission("ai.usage")
def ai_usage_current_month():
    s = db_session()
    return jsonify(pricing.current_month_summary(s, current_tenant_id()))


@bp.get("/admin/ai-usage/quota")
@require_permission("ai.usage")
def ai_usage_quota():
    s = db_session()
    return jsonify(get_ai_quota_status(s, current_tenant_id()))
