from datetime import datetime

import pytest

from app.flock.db import session_scope
from app.flock.errors import BadRequest
from app.flock.models import Tenant
from app.flock.modules.ai import plans
from app.flock.modules.ai.models import AiSettings, AiUsageEvent
from app.flock.modules.ai.pricing import aggregate_usage, estimate_cost, validate_range
from app.flock.modules.ai.quota import get_ai_quota_status, month_bounds

NOW = datetime(2026, 3, 15, 12, 0)


def _set_plan(app, tenant_id, plan):
    with session_scope(app, tenant_id=tenant_id) as s:
        s.get(Tenant, tenant_id).plan = plan
        plans.apply_plan_defaults_to_tenant(s, tenant_id)


def _usage(app, tenant_id, tokens_in, tokens_out, *, model="gpt-4o-mini", feature="sermon.helperSuggestions", at=NOW):
    with session_scope(app, tenant_id=tenant_id) as s:
        s.add(
            AiUsageEvent(
                tenant_id=tenant_id, feature=feature, model=model, tokens_in=tokens_in, tokens_out=tokens_out, created_at=at
            )
        )


def test_month_bounds_wraps_december():
    assert month_bounds(datetime(2026, 12, 31, 23, 0)) == (datetime(2026, 12, 1), datetime(2027, 1, 1))
    assert month_bounds(NOW) == (datetime(2026, 3, 1), datetime(2026, 4, 1))


def test_plan_defaults():
    assert plans.get_plan_ai_defaults("starter") == {"ai_enabled": True, "ai_monthly_token_limit": 50_000}
    assert plans.PLAN_IDS == ("core", "starter", "standard", "plus")
    assert plans.get_plan_ai_defaults("plus")["ai_monthly_token_limit"] == 1_000_000
    with pytest.raises(ValueError):
        plans.get_plan_ai_defaults("gold")


def test_quota_blocks_core_plan_and_unknown_tenant(app, tenant_id):
    with session_scope(app, tenant_id=tenant_id) as s:
        assert get_ai_quota_status(s, tenant_id, now=NOW)["enabled"] is False
        assert get_ai_quota_status(s, None)["over_limit"] is True
        assert get_ai_quota_status(s, "missing", now=NOW)["enabled"] is False


def test_quota_counts_only_the_current_month(app, tenant_id):
    _set_plan(app, tenant_id, "starter")
    _usage(app, tenant_id, 30_000, 10_000)
    _usage(app, tenant_id, 40_000, 0, at=datetime(2026, 2, 28, 23, 59))

    with session_scope(app, tenant_id=tenant_id) as s:
        status = get_ai_quota_status(s, tenant_id, now=NOW)
    assert status == {
        "enabled": True,
        "limit_tokens": 50_000,
        "used_tokens": 40_000,
        "remaining_tokens": 10_000,
        "over_limit": False,
    }

    _usage(app, tenant_id, 10_000, 0)
    with session_scope(app, tenant_id=tenant_id) as s:
        status = get_ai_quota_status(s, tenant_id, now=NOW)
    assert status["over_limit"] is True
    assert status["remaining_tokens"] == 0


def test_quota_unlimited_when_limit_is_null(app, tenant_id):
    with session_scope(app, tenant_id=tenant_id) as s:
        t = s.get(Tenant, tenant_id)
        t.ai_enabled = True
        t.ai_monthly_token_limit = None
    _usage(app, tenant_id, 10**7, 0)
    with session_scope(app, tenant_id=tenant_id) as s:
        status = get_ai_quota_status(s, tenant_id, now=NOW)
    assert status["remaining_tokens"] is None
    assert status["over_limit"] is False


def test_estimate_cost():
    assert estimate_cost("gpt-4o-mini", 1000, 1000) == pytest.approx(0.00075)
    assert estimate_cost("mystery-model", 1000, 1000) == 0.0


def test_aggregate_usage_groups_by_tenant_and_feature():
    rows = [
        ("t1", "sermon.helperSuggestions", "gpt-4o-mini", 2, 1000, 500),
        ("t1", "sermon.helperSuggestions", "gpt-4o", 1, 1000, 0),
        ("t1", "sermon.manuscriptImport", "other", 1, 10, 10),
    ]
    out = aggregate_usage(rows)
    first = out["rows"][0]
    assert (first["feature"], first["calls"], first["tokens_in"]) == ("sermon.helperSuggestions", 3, 2000)
    assert first["cost_usd"] == pytest.approx(0.00015 + 0.0003 + 0.0025)
    assert out["totals"]["calls"] == 4
    assert out["unknown_models"] == ["other"]


def test_validate_range():
    validate_range(datetime(2026, 1, 1), datetime(2026, 2, 1))
    with pytest.raises(BadRequest):
        validate_range(datetime(2026, 2, 1), datetime(2026, 1, 1))
    with pytest.raises(BadRequest, match="cannot exceed 1 year"):
        validate_range(datetime(2024, 1, 1), datetime(2026, 1, 1))


def test_ai_settings_key_lifecycle(app, api, tenant_id):
    assert api.get("/api/admin/ai-settings").json == {
        "provider": "openai",
        "enabled": False,
        "has_key": False,
        "key_last4": None,
    }

    r = api.put("/api/admin/ai-settings", json={"enabled": True})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Cannot enable AI without an API key"

    r = api.put("/api/admin/ai-settings", json={"api_key": "sk-live-abcd1234", "enabled": True})
    assert r.status_code == 200, r.json
    assert r.json == {"provider": "openai", "enabled": True, "has_key": True, "key_last4": "1234"}
    with session_scope(app, tenant_id=tenant_id) as s:
        stored = s.query(AiSettings).one().api_key_encrypted
    assert "sk-live" not in stored

    r = api.put("/api/admin/ai-settings", json={"api_key": None})
    assert r.json == {"provider": "openai", "enabled": False, "has_key": False, "key_last4": None}


def test_ai_settings_require_permission(viewer_api):
    assert viewer_api.get("/api/admin/ai-settings").status_code == 403


def test_tenant_plan_endpoints(api):
    info = api.get("/api/admin/tenant-plan").json
    assert info["plan"] == "core"
    assert info["is_overridden"] is False

    r = api.put("/api/admin/tenant-plan", json={"plan": "plus"})
    assert r.status_code == 200, r.json
    assert r.json["current_config"] == {"ai_enabled": True, "ai_monthly_token_limit": 1_000_000}

    r = api.put("/api/admin/tenant-plan", json={"plan": "core", "apply_defaults": False})
    assert r.json["plan"] == "core"
    assert r.json["is_overridden"] is True

    r = api.post("/api/admin/tenant-plan/reset")
    assert r.json["is_overridden"] is False
    assert api.put("/api/admin/tenant-plan", json={"plan": "gold"}).status_code == 400


def test_usage_summary_endpoint(app, api, tenant_id, other_api):
    other = app.config["TEST_TENANTS"]["hope"]
    _usage(app, tenant_id, 1000, 1000)
    _usage(app, other, 5000, 5000)

    r = api.get("/api/admin/ai-usage/summary?from=2026-03-01T00:00:00&to=2026-04-01T00:00:00")
    assert r.status_code == 200, r.json
    assert r.json["totals"]["tokens_in"] == 1000
    assert [row["tenant_id"] for row in r.json["rows"]] == [tenant_id]

    r = api.get("/api/admin/ai-usage/summary?from=2026-04-01T00:00:00&to=2026-03-01T00:00:00")
    assert r.status_code == 400
