"""
Service-timing analytics over completed preach sessions.

Each session is reduced to one row (planned vs actual seconds plus the
sermon it carried) and the grouped views average those rows. Grouping
happens in Python so the same code runs on sqlite and Postgres.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable

from app.flock.errors import BadRequest
from app.flock.modules.preach.service import round_minutes
from app.flock.utils import iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.modules.preach.models import PreachSession

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 90
DETAIL_TYPES = ("preacher", "series", "serviceSlot")


def date_range(start: date | None, end: date | None, *, today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    return start or today - timedelta(days=DEFAULT_RANGE_DAYS), end or today


def service_slot(p: "PreachSession") -> str:
    return f"{p.started_at.hour:02d}:00"


def _session_row(s: "Session", tenant_id: str, p: "PreachSession", sermons: dict, series_titles: dict) -> dict:
    from app.flock.modules.bulletins.service_items import active_items

    items = active_items(s, tenant_id, p.bulletin_issue_id)
    planned = sum((i.duration_minutes or 0) * 60 for i in items)
    actual = sum(t.duration_seconds or 0 for t in p.timings)
    sermon_item = next((i for i in items if i.item_type == "sermon" and i.sermon_id), None)
    sermon = sermons.get(sermon_item.sermon_id) if sermon_item else None
    series_id = sermon.series_id if sermon else None
    return {
        "session_id": p.id,
        "bulletin_issue_id": p.bulletin_issue_id,
        "service_date": iso(p.bulletin.service_date),
        "started_at": iso(p.started_at),
        "ended_at": iso(p.ended_at),
        "service_slot": service_slot(p),
        "preacher": sermon.preacher if sermon else None,
        "series_id": series_id,
        "series_title": series_titles.get(series_id),
        "sermon_title": sermon.title if sermon else None,
        "planned_seconds": planned,
        "actual_seconds": actual,
    }


def session_rows(
    s: "Session",
    tenant_id: str,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    series_id: int | None = None,
    preacher: str | None = None,
    slot: str | None = None,
) -> list[dict]:
    """Completed sessions whose bulletin falls in the range, newest first."""
    from app.flock.modules.bulletins.models import BulletinIssue
    from app.flock.modules.preach.models import PreachSession
    from app.flock.modules.sermons.models import Sermon, SermonSeries

    start, end = date_range(start_date, end_date)
    sessions = (
        s.query(PreachSession)
        .join(BulletinIssue, BulletinIssue.id == PreachSession.bulletin_issue_id)
        .filter(
            PreachSession.tenant_id == tenant_id,
            PreachSession.ended_at.isnot(None),
            BulletinIssue.service_date >= start,
            BulletinIssue.service_date <= end,
        )
        .order_by(PreachSession.started_at.desc(), PreachSession.id.desc())
        .all()
    )
    sermons = {x.id: x for x in s.query(Sermon).filter(Sermon.tenant_id == tenant_id).all()}
    series_titles = {x.id: x.title for x in s.query(SermonSeries).filter(SermonSeries.tenant_id == tenant_id).all()}

    rows = []
    for p in sessions:
        row = _session_row(s, tenant_id, p, sermons, series_titles)
        if series_id is not None and row["series_id"] != series_id:
            continue
        if preacher and row["preacher"] != preacher:
            continue
        if slot and row["service_slot"] != slot:
            continue
        rows.append(row)
    logger.debug("Analytics rows tenant=%s range=%s..%s count=%d", tenant_id, start, end, len(rows))
    return rows


def _averages(rows: list[dict]) -> dict:
    n = len(rows)
    if not n:
        return {"sessions_count": 0, "avg_planned_minutes": 0, "avg_actual_minutes": 0, "avg_delta_minutes": 0}
    planned = sum(r["planned_seconds"] for r in rows) / n
    actual = sum(r["actual_seconds"] for r in rows) / n
    return {
        "sessions_count": n,
        "avg_planned_minutes": round_minutes(planned),
        "avg_actual_minutes": round_minutes(actual),
        "avg_delta_minutes": round_minutes(actual - planned),
    }


def _grouped(rows: Iterable[dict], key: str) -> dict:
    groups: dict = defaultdict(list)
    for r in rows:
        if r[key] is not None:
            groups[r[key]].append(r)
    return groups


def overview(s: "Session", tenant_id: str, **filters) -> dict:
    return _averages(session_rows(s, tenant_id, **filters))


def preacher_stats(s: "Session", tenant_id: str, **filters) -> dict:
    groups = _grouped(session_rows(s, tenant_id, **filters), "preacher")
    stats = [dict(preacher_id=name, preacher_name=name, **_averages(rows)) for name, rows in groups.items()]
    stats.sort(key=lambda x: (-x["sessions_count"], x["preacher_name"]))
    return {"preachers": stats}


def series_stats(s: "Session", tenant_id: str, **filters) -> dict:
    groups = _grouped(session_rows(s, tenant_id, **filters), "series_id")
    stats = [
        dict(series_id=series_id, series_name=rows[0]["series_title"], **_averages(rows))
        for series_id, rows in groups.items()
    ]
    stats.sort(key=lambda x: (-x["sessions_count"], x["series_id"]))
    return {"series": stats}


def service_time_stats(s: "Session", tenant_id: str, **filters) -> dict:
    groups = _grouped(session_rows(s, tenant_id, **filters), "service_slot")
    return {"service_slots": [dict(service_slot=slot, **_averages(groups[slot])) for slot in sorted(groups)]}


def detail_for_filter(
    s: "Session",
    tenant_id: str,
    filter_type: str,
    key: str | None,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """Drill-down: every matching session with its own planned/actual/delta minutes."""
    if filter_type not in DETAIL_TYPES:
        raise BadRequest(f"type must be one of: {', '.join(DETAIL_TYPES)}")
    if not key:
        raise BadRequest("key is required")
    filters: dict = {"start_date": start_date, "end_date": end_date}
    if filter_type == "preacher":
        filters["preacher"] = key
    elif filter_type == "series":
        filters["series_id"] = parse_int(key)
    else:
        filters["slot"] = key

    sessions = []
    for r in session_rows(s, tenant_id, **filters):
        delta = r["actual_seconds"] - r["planned_seconds"]
        sessions.append(
            {
                "session_id": r["session_id"],
                "bulletin_issue_id": r["bulletin_issue_id"],
                "service_date": r["service_date"],
                "started_at": r["started_at"],
                "ended_at": r["ended_at"],
                "service_slot": r["service_slot"],
                "preacher": r["preacher"],
                "series_id": r["series_id"],
                "series_name": r["series_title"],
                "sermon_title": r["sermon_title"],
                "planned_minutes": round_minutes(r["planned_seconds"]),
                "actual_minutes": round_minutes(r["actual_seconds"]),
                "delta_minutes": round_minutes(delta),
            }
        )
    return {"sessions": sessions}


def list_preachers(s: "Session", tenant_id: str) -> dict:
    from app.flock.modules.sermons.models import Sermon

    rows = (
        s.query(Sermon.preacher)
        .filter(Sermon.tenant_id == tenant_id, Sermon.preacher.isnot(None), Sermon.deleted_at.is_(None))
        .distinct()
        .order_by(Sermon.preacher)
        .all()
    )
    return {"preachers": [{"id": p, "name": p} for (p,) in rows]}


def list_series(s: "Session", tenant_id: str) -> dict:
    from app.flock.modules.sermons.models import SermonSeries

    rows = (
        s.query(SermonSeries)
        .filter(SermonSeries.tenant_id == tenant_id, SermonSeries.deleted_at.is_(None))
        .all()
    )
    rows.sort(key=lambda x: x.start_date or x.created_at.date(), reverse=True)
    return {"series": [{"id": x.id, "name": x.title} for x in rows]}


def list_service_slots(s: "Session", tenant_id: str) -> dict:
    from app.flock.modules.preach.models import PreachSession

    sessions = (
        s.query(PreachSession)
        .filter(PreachSession.tenant_id == tenant_id, PreachSession.ended_at.isnot(None))
        .all()
    )
    slots = sorted({service_slot(p) for p in sessions})
    return {"service_slots": [{"id": slot, "name": slot} for slot in slots]}
