from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app.flock.models import Tenant

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def month_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """[start, end) of the calendar month containing `now` (UTC)."""
    now = now or datetime.utcnow()
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


def _blocked() -> dict:
    return {"enabled": False, "limit_tokens": 0, "used_tokens": 0, "remaining_tokens": 0, "over_limit": True}


def used_tokens_between(s: "Session", tenant_id: str, start: datetime, end: datetime) -> int:
    from app.flock.modules.ai.models import AiUsageEvent

    total = (
        s.query(func.coalesce(func.sum(AiUsageEvent.tokens_in + AiUsageEvent.tokens_out), 0))
        .filter(
            AiUsageEvent.tenant_id == tenant_id,
            AiUsageEvent.created_at >= start,
            AiUsageEvent.created_at < end,
        )
        .scalar()
    )
    return int(total or 0)


def get_ai_quota_status(s: "Session", tenant_id: str | None, *, now: datetime | None = None) -> dict:
    """
    Quota status for the tenant's current month. Anything that prevents an
    answer (no tenant, unknown tenant, DB error) blocks AI.
    """
    if not tenant_id:
        return _blocked()
    try:
        tenant = s.get(Tenant, tenant_id)
        if tenant is None or tenant.deleted_at is not None:
            return _blocked()
        start, end = month_bounds(now)
        used = used_tokens_between(s, tenant_id, start, end)
    except SQLAlchemyError as e:
        logger.error("AI quota lookup failed tenant=%s: %s", tenant_id, e)
        return _blocked()

    limit = tenant.ai_monthly_token_limit
    if not tenant.ai_enabled:
        return {
            "enabled": False,
            "limit_tokens": limit,
            "used_tokens": used,
            "remaining_tokens": 0,
            "over_limit": True,
        }
    if limit is None:
        return {
            "enabled": True,
            "limit_tokens": None,
            "used_tokens": used,
            "remaining_tokens": None,
            "over_limit": False,
        }
    return {
        "enabled": True,
        "limit_tokens": limit,
        "used_tokens": used,
        "remaining_tokens": max(limit - used, 0),
        "over_limit": used >= limit,
    }
