from datetime import datetime, timedelta

from app.flock.modules.announcements.service import validate_announcement_payload
from app.flock.modules.events.service import validate_event_payload


def _ts(delta: timedelta) -> str:
    return (datetime.utcnow() + delta).replace(microsecond=0).isoformat()


def test_validate_announcement_payload():
    assert validate_announcement_payload({"title": "Potluck", "body": "Bring a dish"}) == []
    errors = validate_announcement_payload({"title": "x" * 61, "body": "", "priority": "Low"})
    assert "Title must be at most 60 characters." in errors
    assert "Body is required." in errors
    assert "Invalid priority. Must be one of: Urgent, High, Normal" in errors
    errors = validate_announcement_payload(
        {"title": "a", "body": "b", "starts_at": "2026-03-02T00:00:00", "expires_at": "2026-03-01T00:00:00"}
    )
    assert errors == ["Expiry must be after the start time."]


def test_active_announcements_ordered_by_priority(api):
    api.post("/api/announcements", json={"title": "Choir", "body": "Practice Thursday"})
    api.post("/api/announcements", json={"title": "Snow", "body": "Service moved online", "priority": "Urgent"})
    api.post("/api/announcements", json={"title": "Retreat", "body": "Sign up", "priority": "High"})
    api.post(
        "/api/announcements",
        json={"title": "Old", "body": "Gone", "starts_at": _ts(timedelta(days=-3)), "expires_at": _ts(timedelta(days=-1))},
    )
    hidden = api.post("/api/announcements", json={"title": "Draft", "body": "Not yet", "is_active": False}).json

    titles = [a["title"] for a in api.get("/api/announcements/active").json["announcements"]]
    assert titles == ["Snow", "Retreat", "Choir"]
    assert hidden["is_active"] is False

    everything = [a["title"] for a in api.get("/api/announcements?include_expired=true").json["announcements"]]
    assert "Old" in everything


def test_submitter_submits_and_admin_approves(api, submitter_api):
    r = submitter_api.post("/api/announcements", json={"title": "Bake sale", "body": "Sunday after service"})
    assert r.status_code == 201, r.json
    a = r.json
    assert a["approved_by"] is None
    assert submitter_api.post(f"/api/announcements/{a['id']}/approve").status_code == 403

    r = api.post(f"/api/announcements/{a['id']}/approve")
    assert r.status_code == 200
    assert r.json["approved_at"]


def test_announcement_update_and_delete(api):
    a = api.post("/api/announcements", json={"title": "Choir", "body": "Practice"}).json
    r = api.patch(f"/api/announcements/{a['id']}", json={"expires_at": "2000-01-01T00:00:00"})
    assert r.status_code == 400
    assert api.patch(f"/api/announcements/{a['id']}", json={}).status_code == 400
    assert api.patch(f"/api/announcements/{a['id']}", json={"priority": "High"}).json["priority"] == "High"
    assert api.delete(f"/api/announcements/{a['id']}").status_code == 200
    assert api.get(f"/api/announcements/{a['id']}").status_code == 404


def test_validate_event_payload():
    assert validate_event_payload({"title": "Picnic", "start_at": "2026-06-01T12:00:00"}) == []
    assert validate_event_payload({"title": ""}) == ["Title is required.", "Start time is required."]


def test_events_listing_and_upcoming(api):
    soon = api.post("/api/events", json={"title": "Youth Night", "start_at": _ts(timedelta(days=2))}).json
    api.post("/api/events", json={"title": "Board", "start_at": _ts(timedelta(days=1)), "is_public": False})
    api.post("/api/events", json={"title": "Fall Fest", "start_at": _ts(timedelta(days=60))})
    api.post("/api/events", json={"title": "Past", "start_at": _ts(timedelta(days=-2))})

    upcoming = [e["title"] for e in api.get("/api/events/upcoming").json["events"]]
    assert upcoming == ["Board", "Youth Night"]
    assert api.get("/api/events").json["total"] == 4
    assert soon["is_public"] is True


def test_event_end_before_start_rejected(api):
    r = api.post(
        "/api/events",
        json={"title": "Picnic", "start_at": "2026-06-01T12:00:00", "end_at": "2026-06-01T10:00:00"},
    )
    assert r.status_code == 400
    assert r.json["error"]["message"] == "End time cannot be before start time."


def test_upcoming_public_events_feed_bulletins(api):
    api.post("/api/events", json={"title": "Youth Night", "start_at": _ts(timedelta(days=2)), "location": "Gym"})
    api.post("/api/events", json={"title": "Board", "start_at": _ts(timedelta(days=1)), "is_public": False})
    api.post("/api/announcements", json={"title": "Snow", "body": "Online only", "priority": "Urgent"})
    b = api.post("/api/bulletins", json={"service_date": "2026-03-01"}).json

    vm = api.post(f"/api/bulletins/{b['id']}/generate").json["view_model"]
    assert [e["title"] for e in vm["upcoming_events"]] == ["Youth Night"]
    assert vm["announcements"][0]["title"] == "Snow"


def test_viewer_cannot_create_events(viewer_api):
    r = viewer_api.post("/api/events", json={"title": "Picnic", "start_at": "2026-06-01T12:00:00"})
    assert r.status_code == 403
