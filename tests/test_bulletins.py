from app.flock.db import session_scope
from app.flock.models import AuditEvent


def _create(api, service_date="2026-03-01"):
    r = api.post("/api/bulletins", json={"service_date": service_date})
    assert r.status_code == 201, r.json
    return r.json


def _song(api, bulletin_id, **extra):
    body = {"item_type": "song", "title": "Amazing Grace", "ccli_number": "22025"}
    body.update(extra)
    return api.post(f"/api/bulletins/{bulletin_id}/items", json=body)


def test_create_starts_as_draft_with_public_token(api):
    b = _create(api)
    assert b["status"] == "draft"
    assert b["service_date"] == "2026-03-01"
    assert b["public_token"]
    assert b["is_public"] is False


def test_service_date_required_and_unique(api):
    r = api.post("/api/bulletins", json={})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "service_date is required"

    _create(api)
    r = api.post("/api/bulletins", json={"service_date": "2026-03-01"})
    assert r.status_code == 409
    assert r.json["error"]["message"] == "Bulletin already exists for this service date"


def test_deleted_bulletin_frees_the_date(api):
    b = _create(api)
    assert api.delete(f"/api/bulletins/{b['id']}").status_code == 200
    assert api.get(f"/api/bulletins/{b['id']}").status_code == 404
    _create(api)


def test_list_filters(api):
    draft = _create(api, "2026-03-01")
    built = _create(api, "2026-03-08")
    api.patch(f"/api/bulletins/{built['id']}", json={"status": "approved"})
    gone = _create(api, "2026-03-15")
    api.delete(f"/api/bulletins/{gone['id']}")

    def ids(query):
        r = api.get(f"/api/bulletins?{query}")
        assert r.status_code == 200, r.json
        return [b["id"] for b in r.json["bulletins"]]

    assert ids("filter=active") == [built["id"]]
    assert ids("filter=drafts") == [draft["id"]]
    assert ids("filter=deleted") == [gone["id"]]
    assert ids("filter=all") == [built["id"], draft["id"]]
    assert ids("status=draft") == [draft["id"]]
    assert api.get("/api/bulletins?filter=bogus").status_code == 400


def test_lock_requires_ccli_on_songs(app, api, tenant_id):
    b = _create(api)
    assert _song(api, b["id"]).status_code == 201

    # force a song without CCLI straight into the table
    from app.flock.modules.bulletins.models import ServiceItem

    with session_scope(app, tenant_id=tenant_id) as s:
        s.add(ServiceItem(tenant_id=tenant_id, bulletin_issue_id=b["id"], item_type="song", title="Untitled", sequence=5))

    r = api.post(f"/api/bulletins/{b['id']}/lock")
    assert r.status_code == 412
    assert r.json["error"]["code"] == "PRECONDITION_FAILED"


def test_lock_freezes_bulletin(app, api, tenant_id):
    b = _create(api)
    item = _song(api, b["id"]).json

    r = api.post(f"/api/bulletins/{b['id']}/lock")
    assert r.status_code == 200, r.json
    assert r.json["status"] == "locked"
    assert r.json["locked_at"]

    r = api.post(f"/api/bulletins/{b['id']}/lock")
    assert r.status_code == 409
    assert r.json["error"]["message"] == "Bulletin is already locked"

    r = api.patch(f"/api/bulletins/{b['id']}", json={"template_key": "x"})
    assert r.status_code == 403
    assert r.json["error"]["message"] == "Cannot update locked bulletin"
    assert api.delete(f"/api/bulletins/{b['id']}").status_code == 403

    r = api.patch(f"/api/service-items/{item['id']}", json={"title": "Other"})
    assert r.status_code == 403
    assert r.json["error"]["message"] == "Cannot modify locked bulletin"
    assert _song(api, b["id"]).status_code == 403

    with session_scope(app, tenant_id=tenant_id) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
    assert "bulletin.lock" in actions


def test_status_cannot_be_set_to_locked_by_update(api):
    b = _create(api)
    r = api.patch(f"/api/bulletins/{b['id']}", json={"status": "locked"})
    assert r.status_code == 400


def test_apply_template_appends_items(api):
    b = _create(api)
    _song(api, b["id"])
    r = api.post(f"/api/bulletins/{b['id']}/apply-template", json={"template_key": "default-sunday"})
    assert r.status_code == 200, r.json
    items = r.json["service_items"]
    assert len(items) == 9
    assert items[0]["title"] == "Amazing Grace"
    assert items[1]["title"] == "Prelude"
    assert [i["sequence"] for i in items] == list(range(9))

    r = api.post(f"/api/bulletins/{b['id']}/apply-template", json={})
    assert r.json["error"]["message"] == "template_key is required"
    r = api.post(f"/api/bulletins/{b['id']}/apply-template", json={"template_key": "nope"})
    assert r.status_code == 404


def test_templates_listing(api):
    r = api.get("/api/bulletins/templates")
    assert r.status_code == 200
    keys = [t["key"] for t in r.json["templates"]]
    assert keys == ["default-sunday"]


def test_from_previous_and_copy_from(api):
    prev = _create(api, "2026-03-01")
    api.patch(f"/api/bulletins/{prev['id']}", json={"design_options": {"service_label": "Early Service"}})
    _song(api, prev["id"])

    r = api.post("/api/bulletins/from-previous", json={"service_date": "2026-03-08"})
    assert r.json["error"]["message"] == "previous_bulletin_id is required"

    r = api.post(
        "/api/bulletins/from-previous", json={"previous_bulletin_id": prev["id"], "service_date": "2026-03-08"}
    )
    assert r.status_code == 201, r.json
    nxt = r.json
    assert nxt["design_options"] == {"service_label": "Early Service"}
    assert api.get(f"/api/bulletins/{nxt['id']}/items").json["service_items"] == []

    r = api.post(f"/api/bulletins/{nxt['id']}/copy-from/{prev['id']}", json={"copy_service_items": True})
    assert r.status_code == 200, r.json
    assert r.json == {"success": True, "items_copied": 1}
    items = api.get(f"/api/bulletins/{nxt['id']}/items").json["service_items"]
    assert items[0]["ccli_number"] == "22025"

    r = api.post(f"/api/bulletins/{nxt['id']}/copy-from/99999", json={})
    assert r.status_code == 404
    assert r.json["error"]["message"] == "Source bulletin not found"


def test_generator_roundtrip_and_preflight(api):
    b = _create(api)
    r = api.get(f"/api/bulletins/{b['id']}/preflight")
    assert r.json["is_valid"] is False
    assert r.json["warnings"] == ["No service items added to this bulletin"]

    r = api.put(
        f"/api/bulletins/{b['id']}/generator",
        json={"view_model": {"a": 1}, "marker_legend": [{"marker": "*", "meaning": "Please stand"}]},
    )
    assert r.status_code == 200, r.json
    got = api.get(f"/api/bulletins/{b['id']}/generator").json
    assert got["view_model"] == {"a": 1}
    assert got["marker_legend"][0]["marker"] == "*"

    r = api.put(f"/api/bulletins/{b['id']}/generator", json={"marker_legend": "x"})
    assert r.status_code == 400


def test_generate_builds_view_model(api):
    b = _create(api)
    _song(api, b["id"])
    r = api.post(f"/api/bulletins/{b['id']}/generate")
    assert r.status_code == 200, r.json
    vm = r.json["view_model"]
    assert vm["church_info"]["church_name"] == "Grace Church"
    assert vm["church_info"]["service_label"] == "Sunday Morning Worship"
    assert vm["service_items"][0]["type"] == "song"
    assert r.json["preflight"]["is_valid"] is True
    assert api.get(f"/api/bulletins/{b['id']}").json["status"] == "built"


def test_pdf_is_rendered_and_stored(app, api, tenant_id, tmp_path):
    b = _create(api)
    _song(api, b["id"])
    r = api.get(f"/api/bulletins/{b['id']}/pdf")
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")
    assert f"bulletin-{b['id']}-standard.pdf" in r.headers["Content-Disposition"]
    stored = tmp_path / "storage" / "bulletins" / tenant_id / str(b["id"]) / "standard.pdf"
    assert stored.exists()

    r = api.get(f"/api/bulletins/{b['id']}/pdf?format=booklet")
    assert r.status_code == 200
    assert api.get(f"/api/bulletins/{b['id']}/pdf?format=poster").status_code == 400


def test_public_view_requires_published(app, api, client):
    b = _create(api)
    _song(api, b["id"])
    token = b["public_token"]

    assert client.get(f"/api/public/bulletins/{token}").status_code == 404
    api.patch(f"/api/bulletins/{b['id']}", json={"is_public": True, "is_published": True})

    r = client.get(f"/api/public/bulletins/{token}")
    assert r.status_code == 200, r.json
    assert r.json["org_branding"]["church_name"] == "Grace Church"
    assert r.json["service_items"][0]["title"] == "Amazing Grace"

    r = client.get(f"/b/{token}")
    assert r.status_code == 200
    assert b"Amazing Grace" in r.data


def test_bulletins_are_tenant_scoped(api, other_api, viewer_api):
    b = _create(api)
    assert other_api.get(f"/api/bulletins/{b['id']}").status_code == 404
    assert viewer_api.get(f"/api/bulletins/{b['id']}").status_code == 200
    assert viewer_api.post("/api/bulletins", json={"service_date": "2026-04-01"}).status_code == 403
