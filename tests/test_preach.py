from datetime import datetime, timedelta

from app.flock.db import session_scope
from app.flock.modules.preach import service as preach

T0 = datetime(2026, 3, 1, 9, 0, 0)


def _bulletin(api, service_date="2026-03-01"):
    b = api.post("/api/bulletins", json={"service_date": service_date}).json
    song = api.post(
        f"/api/bulletins/{b['id']}/items",
        json={"item_type": "song", "title": "Amazing Grace", "ccli_number": "22025", "duration_minutes": 5},
    )
    assert song.status_code == 201, song.json
    sermon = api.post(
        f"/api/bulletins/{b['id']}/items",
        json={"item_type": "sermon", "title": "Living Hope", "duration_minutes": 30},
    )
    assert sermon.status_code == 201, sermon.json
    return b, song.json, sermon.json


def test_duration_minutes_is_validated_and_serialized(api):
    b, song, _ = _bulletin(api)
    assert song["duration_minutes"] == 5
    r = api.post(f"/api/bulletins/{b['id']}/items", json={"item_type": "note", "title": "x", "duration_minutes": 601})
    assert r.status_code == 400
    assert "duration_minutes must be between 0 and 600." in r.json["error"]["message"]


def test_session_flow_over_http(viewer_api, api):
    b, song, _ = _bulletin(api)

    r = viewer_api.post(f"/api/bulletins/{b['id']}/preach-sessions")
    assert r.status_code == 201, r.json
    session_id = r.json["session_id"]
    assert r.json["started_at"]

    for event in ("start", "end"):
        r = viewer_api.post(
            f"/api/preach-sessions/{session_id}/timings", json={"service_item_id": song["id"], "event": event}
        )
        assert r.status_code == 200, r.json
        assert r.json == {"success": True}

    first = viewer_api.post(f"/api/preach-sessions/{session_id}/end")
    assert first.status_code == 200
    assert first.json["already_ended"] is False
    again = viewer_api.post(f"/api/preach-sessions/{session_id}/end").json
    assert again["already_ended"] is True
    assert again["ended_at"] == first.json["ended_at"]

    summary = viewer_api.get(f"/api/preach-sessions/{session_id}").json
    assert summary["session"]["bulletin_issue_id"] == b["id"]
    assert [i["title"] for i in summary["items"]] == ["Amazing Grace"]
    assert summary["items"][0]["planned_duration_seconds"] == 300
    assert summary["totals"]["planned_minutes"] == 5

    listing = viewer_api.get(f"/api/bulletins/{b['id']}/preach-sessions").json
    assert listing["total_planned_minutes"] == 35
    assert [x["id"] for x in listing["sessions"]] == [session_id]
    assert listing["sessions"][0]["total_items"] == 1


def test_missing_bulletin_session_and_item(api):
    b, song, _ = _bulletin(api)
    r = api.post("/api/bulletins/9999/preach-sessions")
    assert r.status_code == 404
    assert r.json["error"]["message"] == "Bulletin not found"

    r = api.post("/api/preach-sessions/9999/timings", json={"service_item_id": song["id"], "event": "start"})
    assert r.status_code == 404
    assert r.json["error"]["message"] == "Session not found"

    session_id = api.post(f"/api/bulletins/{b['id']}/preach-sessions").json["session_id"]
    r = api.post(f"/api/preach-sessions/{session_id}/timings", json={"service_item_id": 9999, "event": "start"})
    assert r.status_code == 404
    assert r.json["error"]["message"] == "Service item not found"

    r = api.post(f"/api/preach-sessions/{session_id}/timings", json={"service_item_id": song["id"], "event": "pause"})
    assert r.status_code == 400
    assert api.post("/api/preach-sessions/9999/end").status_code == 404


def test_sessions_are_tenant_scoped(api, other_api):
    b, _, _ = _bulletin(api)
    session_id = api.post(f"/api/bulletins/{b['id']}/preach-sessions").json["session_id"]
    assert other_api.get(f"/api/preach-sessions/{session_id}").status_code == 404
    assert other_api.post(f"/api/bulletins/{b['id']}/preach-sessions").status_code == 404


def test_timing_stamps_are_kept_and_totals_round(app, api, tenant_id):
    b, song, sermon = _bulletin(api)
    with session_scope(app, tenant_id=tenant_id) as s:
        p = preach.start_session(s, tenant_id, b["id"], None, now=T0)
        preach.record_item_timing(s, tenant_id, p.id, song["id"], "start", now=T0)
        preach.record_item_timing(s, tenant_id, p.id, song["id"], "start", now=T0 + timedelta(minutes=1))
        timing = preach.record_item_timing(s, tenant_id, p.id, song["id"], "end", now=T0 + timedelta(seconds=390))
        preach.record_item_timing(s, tenant_id, p.id, song["id"], "end", now=T0 + timedelta(minutes=20))
        assert timing.started_at == T0
        assert timing.ended_at == T0 + timedelta(seconds=390)
        assert timing.duration_seconds == 390

        # an end with no start keeps the duration unknown
        orphan = preach.record_item_timing(s, tenant_id, p.id, sermon["id"], "end", now=T0 + timedelta(minutes=40))
        assert orphan.started_at is None
        assert orphan.duration_seconds is None

        preach.end_session(s, tenant_id, p.id, now=T0 + timedelta(minutes=45))
        summary = preach.get_session_summary(s, tenant_id, p.id)

    assert [i["title"] for i in summary["items"]] == ["Amazing Grace", "Living Hope"]
    song_row, sermon_row = summary["items"]
    assert song_row["difference"] == 90
    assert sermon_row["actual_duration_seconds"] == 0
    assert sermon_row["difference"] == -1800
    assert summary["session"]["duration_seconds"] == 2700
    assert summary["totals"] == {
        "planned_seconds": 2100,
        "planned_minutes": 35,
        "actual_seconds": 390,
        "actual_minutes": 7,
        "difference_seconds": -1710,
        "difference_minutes": -28,
    }


def test_round_half_up_matches_whole_minutes():
    assert preach.round_minutes(90) == 2
    assert preach.round_minutes(-90) == -1
    assert preach.round_minutes(29) == 0
    assert preach.seconds_between(T0, None) is None
