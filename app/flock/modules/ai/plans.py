"""
Subscription plans and the AI entitlement each one grants.

A tenant's `ai_enabled` / `ai_monthly_token_limit` start from its plan's
defaults and may then be overridden per tenant.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from app.flock.models import Tenant

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

PLAN_IDS = ("core", "starter", "standard", "plus")

PLAN_DISPLAY_NAMES = {
    "core": "Core",
    "starter": "Starter",
    "standard": "Standard",
    "plus": "Plus",
}

PLAN_AI_DEFAULTS = {
    "core": {"ai_enabled": False, "ai_monthly_token_limit": 0},
    "starter": {"ai_enabled": True, "ai_monthly_token_limit": 50_000},
    "standard": {"ai_enabled": True, "ai_monthly_token_limit": 250_000},
    "plus": {"ai_enabled": True, "ai_monthly_token_limit": 1_000_000},
}


def is_valid_plan(plan) -> bool:
    return plan in PLAN_IDS


def get_plan_ai_defaults(plan: str) -> dict:
    if plan not in PLAN_AI_DEFAULTS:
        raise ValueError(f"Unknown plan: {plan}")
    return dict(PLAN_AI_DEFAULTS[plan])


def _load_tenant(s: "Session", tenant_id: str) -> Tenant | None:
    tenant = s.get(Tenant, tenant_id)
    if tenant is None or tenant.deleted_at is not None:
        return None
    return tenant


def get_tenant_plan_info(s: "Session", tenant_id: str) -> dict | None:
    tenant = _load_tenant(s, tenant_id)
    if tenant is None:
        return None
    plan = tenant.plan if tenant.plan in PLAN_IDS else "core"
    defaults = get_plan_ai_defaults(plan)
    current = {
        "ai_enabled": bool(tenant.ai_enabled),
        "ai_monthly_token_limit": tenant.ai_monthly_token_limit,
    }
    return {
        "plan": plan,
        "plan_display_name": PLAN_DISPLAY_NAMES[plan],
        "plan_defaults": defaults,
        "current_config": current,
        "is_overridden": (
            current["ai_enabled"] != defaults["ai_enabled"]
            or current["ai_monthly_token_limit"] != defaults["ai_monthly_token_limit"]
        ),
    }


def apply_plan_defaults_to_tenant(s: "Session", tenant_id: str) -> Tenant:
    tenant = _load_tenant(s, tenant_id)
    if tenant is None:
        raise ValueError(f"Tenant not found: {tenant_id}")
    defaults = get_plan_ai_defaults(tenant.plan)
    tenant.ai_enabled = defaults["ai_enabled"]
    tenant.ai_monthly_token_limit = defaults["ai_monthly_token_limit"]
    tenant.updated_at = datetime.utcnow()
    logger.info("Applied %s plan defaults to tenant %s", tenant.plan, tenant_id)
    return tenant


def update_tenant_plan(s: "Session", tenant_id: str, plan: str, *, apply_defaults: bool = True) -> Tenant:
    """
    Change a tenant's plan. With `apply_defaults` the AI settings are reset
    to the new plan's defaults; otherwise any overrides are kept.
    """
    if not is_valid_plan(plan):
        raise ValueError(f"Unknown plan: {plan}")
    tenant = _load_tenant(s, tenant_id)
    if tenant is None:
        raise ValueError(f"Tenant not found: {tenant_id}")
    tenant.plan = plan
    tenant.updated_at = datetime.utcnow()
    if apply_defaults:
        defaults = get_plan_ai_defaults(plan)
        tenant.ai_enabled = defaults["ai_enabled"]
        tenant.ai_monthly_token_limit = defaults["ai_monthly_token_limit"]
    return tenant
