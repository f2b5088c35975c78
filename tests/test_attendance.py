from app.flock.modules.attendance.service import validate_session_payload


def _session(api, **extra):
    payload = {"name": "Sunday 10am", "category": "SundayService", "session_date": "2026-10-18"}
    payload.update(extra)
    r = api.post("/api/attendance/sessions", json=payload)
    assert r.status_code == 201, r.json
    return r.json


def test_validate_session_payload():
    errors = validate_session_payload({"name": "x", "category": "Picnic"})
    assert any(e.startswith("Invalid category.") for e in errors)
    assert "Session date is required." in errors


def test_check_in_counts_members_visitors_and_guests(api):
    member = api.post("/api/people", json={"first_name": "Mem", "last_name": "Ber"}).json["id"]
    visitor = api.post(
        "/api/people", json={"first_name": "Vis", "last_name": "Itor", "membership_status": "visitor"}
    ).json["id"]
    sess = _session(api)

    r = api.post(f"/api/attendance/sessions/{sess['id']}/check-in", json={"person_id": member, "guest_count": 2})
    assert r.status_code == 201
    api.post(f"/api/attendance/sessions/{sess['id']}/check-in", json={"person_id": visitor})

    detail = api.get(f"/api/attendance/sessions/{sess['id']}").json
    assert detail["member_count"] == 1
    assert detail["visitor_count"] == 3
    assert detail["total_count"] == 4
    assert len(detail["records"]) == 2

    stats = api.get("/api/attendance/stats").json
    assert stats["session_count"] == 1
    assert stats["total_attendance"] == 4
    assert stats["avg_attendance"] == 4


def test_double_check_in_conflicts(api):
    pid = api.post("/api/people", json={"first_name": "Once", "last_name": "Only"}).json["id"]
    sess = _session(api)
    api.post(f"/api/attendance/sessions/{sess['id']}/check-in", json={"person_id": pid})
    r = api.post(f"/api/attendance/sessions/{sess['id']}/check-in", json={"person_id": pid})
    assert r.status_code == 409
    assert r.json["error"]["message"] == "Person already checked in to this session"


def test_negative_guest_count_rejected(api):
    pid = api.post("/api/people", json={"first_name": "Neg", "last_name": "Guest"}).json["id"]
    sess = _session(api)
    r = api.post(f"/api/attendance/sessions/{sess['id']}/check-in", json={"person_id": pid, "guest_count": -1})
    assert r.status_code == 400


def test_check_out_removes_record(api):
    pid = api.post("/api/people", json={"first_name": "Out", "last_name": "Going"}).json["id"]
    sess = _session(api)
    api.post(f"/api/attendance/sessions/{sess['id']}/check-in", json={"person_id": pid})
    assert api.delete(f"/api/attendance/sessions/{sess['id']}/check-in/{pid}").status_code == 200
    assert api.get(f"/api/attendance/sessions/{sess['id']}").json["total_count"] == 0
    r = api.delete(f"/api/attendance/sessions/{sess['id']}/check-in/{pid}")
    assert r.status_code == 404


def test_sessions_filter_by_date(api):
    _session(api, session_date="2026-01-04")
    _session(api, session_date="2026-02-01")
    r = api.get("/api/attendance/sessions?start_date=2026-01-15")
    assert r.json["total"] == 1
