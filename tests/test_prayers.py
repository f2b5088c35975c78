from app.flock.modules.prayers.service import validate_prayer_payload


def test_validate_prayer_payload():
    errors = validate_prayer_payload({"title": "", "visibility": "everyone"})
    assert "Title is required." in errors
    assert "Description is required." in errors
    assert any(e.startswith("Invalid visibility.") for e in errors)


def test_answered_transition_stamps_time(api):
    p = api.post("/api/prayers", json={"title": "Healing", "description": "For Tom's recovery"}).json
    assert p["status"] == "active"
    assert p["answered_at"] is None

    r = api.patch(f"/api/prayers/{p['id']}", json={"status": "answered", "answer_note": "Home from hospital"})
    assert r.json["answered_at"] is not None

    r = api.patch(f"/api/prayers/{p['id']}", json={"status": "active"})
    assert r.json["answered_at"] is None


def test_praying_twice_updates_one_record(api):
    pid = api.post("/api/people", json={"first_name": "Pat", "last_name": "Prayer"}).json["id"]
    req = api.post("/api/prayers", json={"title": "Jobs", "description": "New work", "is_urgent": True}).json

    first = api.post(f"/api/prayers/{req['id']}/pray", json={"person_id": pid, "note": "Monday"})
    assert first.status_code == 201
    second = api.post(f"/api/prayers/{req['id']}/pray", json={"person_id": pid, "note": "Tuesday"})
    assert second.json["id"] == first.json["id"]

    detail = api.get(f"/api/prayers/{req['id']}").json
    assert detail["prayer_count"] == 1
    assert detail["prayers"][0]["note"] == "Tuesday"

    stats = api.get("/api/prayers/stats").json
    assert stats == {"active": 1, "answered": 0, "urgent": 1, "total_prayers": 1}


def test_submitter_may_submit_but_not_edit(submitter_api, viewer_api):
    assert viewer_api.post("/api/prayers", json={"title": "Travel", "description": "Safe trip"}).status_code == 403
    r = submitter_api.post("/api/prayers", json={"title": "Travel", "description": "Safe trip"})
    assert r.status_code == 201
    r = submitter_api.patch(f"/api/prayers/{r.json['id']}", json={"status": "archived"})
    assert r.status_code == 403


def test_pray_requires_person(api):
    req = api.post("/api/prayers", json={"title": "Rain", "description": "For farms"}).json
    r = api.post(f"/api/prayers/{req['id']}/pray", json={})
    assert r.status_code == 400
    assert r.json["error"]["message"] == "person_id is required"
