from datetime import date, datetime, timedelta

import pytest

from app.flock.db import session_scope
from app.flock.modules.analytics import service as analytics
from app.flock.modules.preach import service as preach

MARCH = "from=2026-03-01&to=2026-03-31"


def _item(api, bulletin_id, **body):
    r = api.post(f"/api/bulletins/{bulletin_id}/items", json=body)
    assert r.status_code == 201, r.json
    return r.json["id"]


def _bulletin(api, service_date, sermon_id, sermon_minutes, *, with_song=True):
    b = api.post("/api/bulletins", json={"service_date": service_date}).json
    song = None
    if with_song:
        song = _item(api, b["id"], item_type="song", title="Amazing Grace", ccli_number="22025", duration_minutes=5)
    sermon = _item(
        api, b["id"], item_type="sermon", title="Message", sermon_id=sermon_id, duration_minutes=sermon_minutes
    )
    return b["id"], song, sermon


def _run(s, tenant_id, bulletin_id, start, durations, *, end=True):
    p = preach.start_session(s, tenant_id, bulletin_id, None, now=start)
    t = start
    for item_id, seconds in durations:
        preach.record_item_timing(s, tenant_id, p.id, item_id, "start", now=t)
        t += timedelta(seconds=seconds)
        preach.record_item_timing(s, tenant_id, p.id, item_id, "end", now=t)
    if end:
        preach.end_session(s, tenant_id, p.id, now=t)
    return p.id


@pytest.fixture()
def timed(app, api, tenant_id):
    advent = api.post("/api/sermons/series", json={"title": "Advent", "start_date": "2026-12-01"}).json
    lent = api.post("/api/sermons/series", json={"title": "Lent", "start_date": "2026-02-01"}).json
    ann = api.post(
        "/api/sermons",
        json={"title": "Come", "sermon_date": "2026-03-01", "preacher": "Pastor Ann", "series_id": advent["id"]},
    ).json
    ben = api.post(
        "/api/sermons",
        json={"title": "Go", "sermon_date": "2026-03-08", "preacher": "Pastor Ben", "series_id": lent["id"]},
    ).json

    b1, song1, sermon1 = _bulletin(api, "2026-03-01", ann["id"], 30)
    b2, _, sermon2 = _bulletin(api, "2026-03-08", ben["id"], 30)
    b3, _, sermon3 = _bulletin(api, "2026-03-15", ann["id"], 20, with_song=False)

    with session_scope(app, tenant_id=tenant_id) as s:
        ids = {
            "first": _run(s, tenant_id, b1, datetime(2026, 3, 1, 9, 0), [(song1, 360), (sermon1, 1980)]),
            "second": _run(s, tenant_id, b2, datetime(2026, 3, 8, 11, 0), [(sermon2, 2400)]),
            "third": _run(s, tenant_id, b3, datetime(2026, 3, 15, 9, 30), [(sermon3, 1200)]),
            "open": _run(s, tenant_id, b1, datetime(2026, 3, 1, 11, 0), [(sermon1, 600)], end=False),
        }
    return {"advent": advent["id"], "lent": lent["id"], "sessions": ids}


def test_overview_counts_completed_sessions_only(viewer_api, timed):
    r = viewer_api.get(f"/api/analytics/overview?{MARCH}")
    assert r.status_code == 200, r.json
    assert r.json == {
        "sessions_count": 3,
        "avg_planned_minutes": 30,
        "avg_actual_minutes": 33,
        "avg_delta_minutes": 3,
    }

    only_ben = viewer_api.get(f"/api/analytics/overview?{MARCH}&preacher=Pastor%20Ben").json
    assert only_ben["sessions_count"] == 1
    assert only_ben["avg_delta_minutes"] == 5

    later = viewer_api.get("/api/analytics/overview?from=2026-03-10&to=2026-03-31").json
    assert later["sessions_count"] == 1
    assert later["avg_planned_minutes"] == 20


def test_grouped_stats(viewer_api, timed):
    preachers = viewer_api.get(f"/api/analytics/preachers/stats?{MARCH}").json["preachers"]
    assert [p["preacher_name"] for p in preachers] == ["Pastor Ann", "Pastor Ben"]
    assert preachers[0] == {
        "preacher_id": "Pastor Ann",
        "preacher_name": "Pastor Ann",
        "sessions_count": 2,
        "avg_planned_minutes": 28,
        "avg_actual_minutes": 30,
        "avg_delta_minutes": 2,
    }

    series = viewer_api.get(f"/api/analytics/series/stats?{MARCH}").json["series"]
    assert [(x["series_name"], x["sessions_count"]) for x in series] == [("Advent", 2), ("Lent", 1)]
    assert series[0]["series_id"] == timed["advent"]

    slots = viewer_api.get(f"/api/analytics/service-slots/stats?{MARCH}").json["service_slots"]
    assert [(x["service_slot"], x["sessions_count"]) for x in slots] == [("09:00", 2), ("11:00", 1)]

    lent_only = viewer_api.get(f"/api/analytics/service-slots/stats?{MARCH}&series_id={timed['lent']}").json
    assert [x["service_slot"] for x in lent_only["service_slots"]] == ["11:00"]


def test_detail_drill_down(viewer_api, timed):
    r = viewer_api.get(f"/api/analytics/detail?type=serviceSlot&key=11:00&{MARCH}")
    assert r.status_code == 200, r.json
    (row,) = r.json["sessions"]
    assert row["session_id"] == timed["sessions"]["second"]
    assert row["preacher"] == "Pastor Ben"
    assert row["series_name"] == "Lent"
    assert row["sermon_title"] == "Go"
    assert (row["planned_minutes"], row["actual_minutes"], row["delta_minutes"]) == (35, 40, 5)

    by_series = viewer_api.get(f"/api/analytics/detail?type=series&key={timed['advent']}&{MARCH}").json
    assert [x["session_id"] for x in by_series["sessions"]] == [timed["sessions"]["third"], timed["sessions"]["first"]]

    assert viewer_api.get(f"/api/analytics/detail?type=room&key=x&{MARCH}").status_code == 400
    assert viewer_api.get(f"/api/analytics/detail?type=preacher&{MARCH}").status_code == 400


def test_filter_option_lists(viewer_api, timed):
    preachers = viewer_api.get("/api/analytics/preachers").json["preachers"]
    assert preachers == [{"id": "Pastor Ann", "name": "Pastor Ann"}, {"id": "Pastor Ben", "name": "Pastor Ben"}]
    series = viewer_api.get("/api/analytics/series").json["series"]
    assert [x["name"] for x in series] == ["Advent", "Lent"]
    slots = viewer_api.get("/api/analytics/service-slots").json["service_slots"]
    assert [x["id"] for x in slots] == ["09:00", "11:00"]


def test_other_tenant_sees_nothing(other_api, timed):
    assert other_api.get(f"/api/analytics/overview?{MARCH}").json["sessions_count"] == 0
    assert other_api.get("/api/analytics/preachers").json == {"preachers": []}


def test_default_range_is_last_ninety_days():
    today = date(2026, 10, 19)
    assert analytics.date_range(None, None, today=today) == (date(2026, 7, 21), today)
    assert analytics.date_range(date(2026, 1, 1), None, today=today) == (date(2026, 1, 1), today)
