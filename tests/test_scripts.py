from datetime import datetime

from app.flock.crypto import decrypt_secret, encrypt_secret
from app.flock.db import session_scope
from app.flock.models import Role, Tenant
from app.flock.modules.ai.models import AiSettings, AiUsageEvent
from scripts import ai_usage_report, rotate_encryption_key
from scripts.init_db import seed_roles, seed_tenant

OLD = "ab" * 32
NEW = "cd" * 32


def _store_key(app, tenant_id, token):
    with session_scope(app, tenant_id=tenant_id) as s:
        s.add(AiSettings(tenant_id=tenant_id, provider="openai", enabled=True, api_key_encrypted=token, key_last4="1234"))


def test_rotate_rewrites_keys(app, tenant_id, capsys):
    _store_key(app, tenant_id, encrypt_secret("sk-grace-1234", OLD))

    with session_scope(app) as s:
        dry = rotate_encryption_key.rotate(s, OLD, NEW, confirm=False)
    assert dry == {"rotated": 1, "failed": 0, "skipped": 1}

    with session_scope(app) as s:
        rotate_encryption_key.rotate(s, OLD, NEW, confirm=True)
    with session_scope(app, tenant_id=tenant_id) as s:
        token = s.query(AiSettings).one().api_key_encrypted
    assert decrypt_secret(token, NEW) == "sk-grace-1234"
    assert "rotated grace" in capsys.readouterr().out


def test_rotate_counts_undecryptable_keys(app, tenant_id):
    _store_key(app, tenant_id, encrypt_secret("sk-grace-1234", "ef" * 32))
    with session_scope(app) as s:
        counts = rotate_encryption_key.rotate(s, OLD, NEW, confirm=True)
    assert counts["failed"] == 1
    assert counts["rotated"] == 0


def test_usage_report_collects_per_tenant(app, tenant_id, capsys):
    hope = app.config["TEST_TENANTS"]["hope"]
    at = datetime(2026, 3, 10)
    with session_scope(app) as s:
        s.add_all(
            [
                AiUsageEvent(tenant_id=tenant_id, feature="sermon.generateDraft", model="gpt-4o", tokens_in=1000, tokens_out=1000, created_at=at),
                AiUsageEvent(tenant_id=hope, feature="sermon.helperSuggestions", model="local-llm", tokens_in=10, tokens_out=5, created_at=at),
            ]
        )
    with session_scope(app) as s:
        tenants = s.query(Tenant).order_by(Tenant.slug.asc()).all()
        rows, unknown = ai_usage_report._collect(s, tenants, datetime(2026, 3, 1), datetime(2026, 4, 1))
    assert [r["feature"] for r in rows] == ["sermon.generateDraft", "sermon.helperSuggestions"]
    assert unknown == {"local-llm"}

    ai_usage_report.print_report(rows, {t.id: t.slug for t in tenants}, unknown)
    out = capsys.readouterr().out
    assert "TOTAL" in out
    assert "Models without pricing (cost counted as 0): local-llm" in out


def test_seed_is_idempotent(app):
    with session_scope(app) as s:
        roles = seed_roles(s)
        tenant = seed_tenant(s, "grace", "Grace Church", "office@grace.example.org")
        assert set(roles) >= {"admin", "viewer", "platform_admin"}
        assert s.query(Role).filter(Role.key == "admin").count() == 1
        assert s.query(Tenant).filter(Tenant.slug == "grace").count() == 1
        assert tenant.slug == "grace"
