from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING

from app.flock.audit import record_event
from app.flock.errors import BadRequest, NotFound
from app.flock.modules.bulletins import service_items as items_service
from app.flock.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.preach.models import PreachSession, ServiceItemTiming

logger = logging.getLogger(__name__)

TIMING_EVENTS = ("start", "end")


def seconds_between(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return round_half_up((end - start).total_seconds())


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def round_minutes(seconds: float) -> int:
    return round_half_up(seconds / 60)


def serialize_session(p: "PreachSession") -> dict:
    return {
        "id": p.id,
        "bulletin_issue_id": p.bulletin_issue_id,
        "service_date": iso(p.bulletin.service_date) if p.bulletin else None,
        "started_at": iso(p.started_at),
        "ended_at": iso(p.ended_at),
        "duration_seconds": seconds_between(p.started_at, p.ended_at),
        "created_by_user_id": p.created_by_user_id,
    }


def get_session(s: "Session", tenant_id: str, session_id: int) -> "PreachSession":
    from app.flock.modules.preach.models import PreachSession

    p = (
        s.query(PreachSession)
        .filter(PreachSession.id == session_id, PreachSession.tenant_id == tenant_id)
        .one_or_none()
    )
    if p is None:
        raise NotFound("Session not found")
    return p


def start_session(
    s: "Session", tenant_id: str, bulletin_id: int, user: "User | None", *, now: datetime | None = None
) -> "PreachSession":
    from app.flock.modules.preach.models import PreachSession

    b = items_service.load_bulletin(s, tenant_id, bulletin_id)
    now = now or datetime.utcnow()
    p = PreachSession(
        tenant_id=tenant_id,
        bulletin_issue_id=b.id,
        started_at=now,
        created_by_user_id=user.id if user else None,
        created_at=now,
        updated_at=now,
    )
    p.bulletin = b
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="preach_session.start",
        entity_type="PreachSession",
        entity_id=str(p.id),
        metadata={"bulletin_id": b.id},
    )
    logger.info("Preach session started session=%s bulletin=%s tenant=%s", p.id, b.id, tenant_id)
    return p


def end_session(s: "Session", tenant_id: str, session_id: int, *, now: datetime | None = None) -> dict:
    """Mark the session complete. Ending twice keeps the first end time."""
    p = get_session(s, tenant_id, session_id)
    if p.ended_at is not None:
        return {"session_id": p.id, "ended_at": iso(p.ended_at), "already_ended": True}
    now = now or datetime.utcnow()
    p.ended_at = now
    p.updated_at = now
    logger.info(
        "Preach session ended session=%s tenant=%s duration=%s",
        p.id,
        tenant_id,
        seconds_between(p.started_at, p.ended_at),
    )
    return {"session_id": p.id, "ended_at": iso(p.ended_at), "already_ended": False}


def record_item_timing(
    s: "Session",
    tenant_id: str,
    session_id: int,
    service_item_id: int | None,
    event: str | None,
    *,
    now: datetime | None = None,
) -> "ServiceItemTiming":
    """
    Stamp the start or end of one service item. Existing stamps are never
    overwritten, so repeated calls are harmless.
    """
    from app.flock.modules.preach.models import ServiceItemTiming

    if event not in TIMING_EVENTS:
        raise BadRequest("event must be one of: start, end")
    if service_item_id is None:
        raise BadRequest("service_item_id is required")
    p = get_session(s, tenant_id, session_id)
    item = items_service.get_item(s, tenant_id, service_item_id)

    now = now or datetime.utcnow()
    timing = (
        s.query(ServiceItemTiming)
        .filter(ServiceItemTiming.preach_session_id == p.id, ServiceItemTiming.service_item_id == item.id)
        .one_or_none()
    )
    if timing is None:
        timing = ServiceItemTiming(tenant_id=tenant_id, service_item_id=item.id, created_at=now)
        timing.item = item
        p.timings.append(timing)
    if event == "start" and timing.started_at is None:
        timing.started_at = now
    elif event == "end" and timing.ended_at is None:
        timing.ended_at = now
    if timing.duration_seconds is None:
        timing.duration_seconds = seconds_between(timing.started_at, timing.ended_at)
    timing.updated_at = now
    s.flush()
    logger.debug("Item timing recorded session=%s item=%s event=%s", p.id, item.id, event)
    return timing


def get_session_summary(s: "Session", tenant_id: str, session_id: int) -> dict:
    """Per-item planned vs actual seconds for one session, in order of service."""
    p = get_session(s, tenant_id, session_id)
    timings = sorted(p.timings, key=lambda t: (t.item.sequence, t.item.id))

    items = []
    planned_total = actual_total = 0
    for t in timings:
        planned = (t.item.duration_minutes or 0) * 60
        actual = t.duration_seconds or 0
        planned_total += planned
        actual_total += actual
        items.append(
            {
                "service_item_id": t.service_item_id,
                "item_type": t.item.item_type,
                "title": t.item.title,
                "sequence": t.item.sequence,
                "planned_duration_minutes": t.item.duration_minutes,
                "planned_duration_seconds": planned,
                "actual_duration_seconds": actual,
                "started_at": iso(t.started_at),
                "ended_at": iso(t.ended_at),
                "difference": actual - planned,
            }
        )

    difference = actual_total - planned_total
    return {
        "session": serialize_session(p),
        "items": items,
        "totals": {
            "planned_seconds": planned_total,
            "planned_minutes": round_minutes(planned_total),
            "actual_seconds": actual_total,
            "actual_minutes": round_minutes(actual_total),
            "difference_seconds": difference,
            "difference_minutes": round_minutes(difference),
        },
    }


def list_sessions(s: "Session", tenant_id: str, bulletin_id: int) -> dict:
    from app.flock.modules.preach.models import PreachSession

    b = items_service.load_bulletin(s, tenant_id, bulletin_id)
    rows = (
        s.query(PreachSession)
        .filter(PreachSession.tenant_id == tenant_id, PreachSession.bulletin_issue_id == b.id)
        .order_by(PreachSession.started_at.desc(), PreachSession.id.desc())
        .all()
    )
    planned_minutes = sum(i.duration_minutes or 0 for i in items_service.active_items(s, tenant_id, b.id))

    sessions = []
    for p in rows:
        durations = [t.duration_seconds for t in p.timings if t.duration_seconds is not None]
        sessions.append(
            {
                "id": p.id,
                "started_at": iso(p.started_at),
                "ended_at": iso(p.ended_at),
                "created_by_user_id": p.created_by_user_id,
                "total_items": len(p.timings),
                "total_actual_seconds": sum(durations) if durations else None,
                "session_duration_seconds": seconds_between(p.started_at, p.ended_at),
            }
        )
    return {"sessions": sessions, "total_planned_minutes": planned_minutes}
