import pytest

from app.flock.modules.sermons.service import validate_elements, validate_sermon_payload

PLAN = {
    "title": "Living Hope",
    "big_idea": "Hope is anchored in the resurrection.",
    "primary_text": "1 Peter 1:3-9",
    "supporting_texts": ["Romans 5:1-5"],
    "elements": [
        {"id": "el-1", "type": "section", "title": "Introduction"},
        {"id": "el-2", "type": "point", "text": "Hope is living"},
        {"id": "el-3", "type": "scripture", "reference": "1 Peter 1:3"},
    ],
    "tags": ["easter"],
    "style_profile": "expository_verse_by_verse",
}


@pytest.fixture()
def sermon(api):
    r = api.post(
        "/api/sermons",
        json={"title": "Living Hope", "sermon_date": "2026-04-05", "preacher": "Pastor Kim", "primary_scripture": "1 Peter 1:3-9"},
    )
    assert r.status_code == 201, r.json
    return r.json


def test_validate_sermon_payload():
    assert validate_sermon_payload({"title": "x", "sermon_date": "2026-01-04"}) == []
    errors = validate_sermon_payload({"title": "", "status": "done", "tags": "a"})
    assert "Title is required." in errors
    assert "Sermon date is required." in errors
    assert "tags must be a list of strings." in errors
    assert any(e.startswith("Invalid status.") for e in errors)


def test_validate_elements():
    assert validate_elements(PLAN["elements"]) == []
    assert validate_elements("nope") == ["elements must be a list."]
    assert validate_elements([{"type": "point", "text": "x"}]) == ["Element 1 must be an object with an id."]
    assert validate_elements([{"id": "a", "type": "hymn"}]) == ["Element 1 (hymn) requires title."]
    assert validate_elements([{"id": "a", "type": "poem"}]) == ["Element 1 has invalid type 'poem'."]


def test_sermon_defaults_and_series(api, sermon):
    assert sermon["status"] == "idea"
    assert sermon["path_stage"] == "text_setup"

    series = api.post("/api/sermons/series", json={"title": "Easter", "start_date": "2026-04-01"}).json
    r = api.patch(f"/api/sermons/{sermon['id']}", json={"series_id": series["id"]})
    assert r.json["series_title"] == "Easter"
    listed = api.get("/api/sermons/series").json
    assert listed["series"][0]["sermon_count"] == 1

    assert api.patch(f"/api/sermons/{sermon['id']}", json={"series_id": 99999}).status_code == 404
    r = api.post("/api/sermons/series", json={"title": "Bad", "start_date": "2026-05-01", "end_date": "2026-04-01"})
    assert r.json["error"]["message"] == "End date cannot be before start date."


def test_series_title_follows_reassignment(api, sermon):
    easter = api.post("/api/sermons/series", json={"title": "Easter", "start_date": "2026-04-01"}).json
    advent = api.post("/api/sermons/series", json={"title": "Advent", "start_date": "2026-12-01"}).json
    url = f"/api/sermons/{sermon['id']}"

    assert api.patch(url, json={"series_id": easter["id"]}).json["series_title"] == "Easter"
    r = api.patch(url, json={"series_id": advent["id"]})
    assert (r.json["series_id"], r.json["series_title"]) == (advent["id"], "Advent")
    r = api.patch(url, json={"series_id": None})
    assert (r.json["series_id"], r.json["series_title"]) == (None, None)
    assert api.get(url).json["series_title"] is None


def test_list_search_and_stats(api, sermon):
    api.post("/api/sermons", json={"title": "Good Shepherd", "sermon_date": "2026-04-12", "preacher": "pastor kim"})
    r = api.get("/api/sermons?search=peter")
    assert [x["title"] for x in r.json["sermons"]] == ["Living Hope"]
    assert api.get("/api/sermons?start_date=2026-04-06").json["total"] == 1
    stats = api.get("/api/sermons/stats").json
    assert stats["total"] == 2
    assert stats["preachers"] == 1
    assert [x["title"] for x in api.get("/api/sermons/select?search=shep").json["sermons"]] == ["Good Shepherd"]


def test_ready_syncs_linked_service_items(api, sermon):
    bulletin = api.post("/api/bulletins", json={"service_date": "2026-04-05"}).json
    item = api.post(
        f"/api/bulletins/{bulletin['id']}/items",
        json={"item_type": "sermon", "title": "Sermon", "sermon_id": sermon["id"]},
    ).json

    r = api.post(f"/api/sermons/{sermon['id']}/ready")
    assert r.status_code == 200, r.json
    assert r.json["sermon"]["status"] == "ready"
    assert r.json["synced_service_items"] == 1

    synced = api.get(f"/api/bulletins/{bulletin['id']}/items").json["service_items"][0]
    assert synced["id"] == item["id"]
    assert synced["title"] == "Living Hope"
    assert synced["leader_name"] == "Pastor Kim"
    assert synced["scripture_reference"] == "1 Peter 1:3-9"


def test_plan_save_is_an_upsert(api, sermon):
    url = f"/api/sermons/{sermon['id']}/plan"
    assert api.get(url).json == {"plan": None}

    first = api.put(url, json=PLAN).json["plan"]
    second = api.put(url, json={**PLAN, "title": "A Living Hope"}).json["plan"]
    assert first["id"] == second["id"]
    assert second["title"] == "A Living Hope"
    assert len(second["elements"]) == 3

    r = api.put(url, json={**PLAN, "elements": [{"id": "x", "type": "point"}]})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "Element 1 (point) requires text."


def test_template_from_plan(api, sermon):
    url = f"/api/sermons/{sermon['id']}/templates"
    r = api.post(url, json={"name": "Easter outline"})
    assert r.status_code == 404
    assert r.json["error"]["message"] == "No plan found for this sermon. Please save a plan first."

    api.put(f"/api/sermons/{sermon['id']}/plan", json=PLAN)
    r = api.post(url, json={"name": "Easter outline"})
    assert r.status_code == 201, r.json
    t = r.json
    assert t["tags"] == ["easter"]
    assert t["style_profile"] == "expository_verse_by_verse"
    assert [el["id"] for el in t["structure"]] == ["el-1", "el-2", "el-3"]

    r = api.post(url, json={"name": "Plain", "style_profile": None, "tags": ["lent"]})
    assert r.json["style_profile"] is None
    assert r.json["tags"] == ["lent"]

    listed = api.get("/api/sermons/templates").json["templates"]
    assert [x["name"] for x in listed] == ["Plain", "Easter outline"]
    assert "structure" not in listed[0]
    assert api.get(f"/api/sermons/templates/{t['id']}").json["default_title"] == "Living Hope"
    assert api.post(url, json={"name": ""}).status_code == 400


def test_sermons_are_tenant_scoped(other_api, sermon):
    assert other_api.get(f"/api/sermons/{sermon['id']}").status_code == 404
