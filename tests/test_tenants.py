from app.flock.db import session_scope
from app.flock.models import AuditEvent, Tenant
from app.flock.modules.songs.models import Song
from app.flock.modules.tenants.service import validate_tenant_payload

NEW_TENANT = {"slug": "new-life", "name": "New Life Fellowship", "primary_email": "Office@NewLife.example.org"}


def test_validate_tenant_payload():
    assert validate_tenant_payload(NEW_TENANT) == []
    assert validate_tenant_payload({**NEW_TENANT, "slug": "ab"}) == ["Slug must be at least 3 characters"]
    assert validate_tenant_payload({**NEW_TENANT, "slug": "New_Life"}) == [
        "Slug must contain only lowercase letters, numbers, and hyphens"
    ]
    assert validate_tenant_payload({**NEW_TENANT, "primary_email": "nope"}) == ["Invalid email address"]
    assert "Name is required" in validate_tenant_payload({**NEW_TENANT, "name": " "})


def test_platform_admin_creates_tenant_with_song_library(app, platform_api):
    r = platform_api.post("/api/platform/tenants", json=NEW_TENANT)
    assert r.status_code == 201, r.json
    body = r.json
    assert body["slug"] == "new-life"
    assert body["primary_email"] == "office@newlife.example.org"
    assert body["plan"] == "core"

    with session_scope(app, tenant_id=body["id"]) as s:
        tenant = s.get(Tenant, body["id"])
        assert tenant.ai_enabled is False
        assert s.query(Song).filter(Song.tenant_id == body["id"]).count() > 0
        event = s.query(AuditEvent).filter(AuditEvent.action == "tenant.create").one()
        assert event.tenant_id == body["id"]


def test_duplicate_slug_conflicts(platform_api):
    r = platform_api.post("/api/platform/tenants", json={**NEW_TENANT, "slug": "grace"})
    assert r.status_code == 409
    assert r.json["error"]["message"] == 'Tenant with slug "grace" already exists'


def test_invalid_payload_is_rejected(platform_api):
    r = platform_api.post("/api/platform/tenants", json={"slug": "x"})
    assert r.status_code == 400
    assert "Slug must be at least 3 characters" in r.json["error"]["message"]


def test_tenant_admin_cannot_create_tenants(api):
    assert api.post("/api/platform/tenants", json=NEW_TENANT).status_code == 403


def test_public_slug_lookup(client):
    assert client.get("/api/public/tenants/slug-available?slug=grace").json == {"available": False, "slug": "grace"}
    assert client.get("/api/public/tenants/slug-available?slug=free-one").json["available"] is True
    assert client.get("/api/public/tenants/slug-available").status_code == 400

    summary = client.get("/api/public/tenants/grace").json
    assert summary["name"] == "Grace Church"
    assert "primary_email" not in summary
    assert client.get("/api/public/tenants/nowhere").json is None
