"""
AI model pricing and usage/cost aggregation.

Prices are USD per 1K tokens. Costs are estimates for reporting only.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import func

from app.flock.errors import BadRequest
from app.flock.modules.ai.quota import month_bounds
from app.flock.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

# model -> (input per 1K, output per 1K)
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4o-mini-2024-07-18": (0.00015, 0.0006),
    "gpt-4o": (0.0025, 0.01),
    "gpt-4o-2024-08-06": (0.0025, 0.01),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-4-turbo-preview": (0.01, 0.03),
    "gpt-3.5-turbo": (0.0005, 0.0015),
    "gpt-3.5-turbo-0125": (0.0005, 0.0015),
}

MAX_RANGE = timedelta(days=365)


def get_model_pricing(model: str) -> tuple[float, float] | None:
    return MODEL_PRICES.get(model)


def estimate_cost(model: str, tokens_in: int, tokens_out: int) -> float:
    prices = get_model_pricing(model)
    if prices is None:
        return 0.0
    return (tokens_in / 1000) * prices[0] + (tokens_out / 1000) * prices[1]


def aggregate_usage(rows: Iterable) -> dict:
    """
    Combine (tenant_id, feature, model, calls, tokens_in, tokens_out) rows
    into per (tenant, feature) totals. Cost is computed per model first
    because a feature can be served by several models.
    """
    grouped: dict[tuple[str, str], dict] = {}
    unknown: set[str] = set()
    for tenant_id, feature, model, calls, tokens_in, tokens_out in rows:
        calls, tokens_in, tokens_out = int(calls or 0), int(tokens_in or 0), int(tokens_out or 0)
        if get_model_pricing(model) is None:
            unknown.add(model)
        entry = grouped.setdefault(
            (tenant_id, feature),
            {"tenant_id": tenant_id, "feature": feature, "calls": 0, "tokens_in": 0, "tokens_out": 0, "cost_usd": 0.0},
        )
        entry["calls"] += calls
        entry["tokens_in"] += tokens_in
        entry["tokens_out"] += tokens_out
        entry["cost_usd"] += estimate_cost(model, tokens_in, tokens_out)

    out_rows = [grouped[k] for k in sorted(grouped)]
    totals = {"calls": 0, "tokens_in": 0, "tokens_out": 0, "cost_usd": 0.0}
    for r in out_rows:
        for key in totals:
            totals[key] += r[key]
    return {"rows": out_rows, "totals": totals, "unknown_models": sorted(unknown)}


def summarize_usage(s: "Session", *, start: datetime, end: datetime, tenant_id: str | None = None) -> dict:
    """Usage summary for [start, end), optionally for a single tenant."""
    from app.flock.modules.ai.models import AiUsageEvent

    q = s.query(
        AiUsageEvent.tenant_id,
        AiUsageEvent.feature,
        AiUsageEvent.model,
        func.count(AiUsageEvent.id),
        func.coalesce(func.sum(AiUsageEvent.tokens_in), 0),
        func.coalesce(func.sum(AiUsageEvent.tokens_out), 0),
    ).filter(AiUsageEvent.created_at >= start, AiUsageEvent.created_at < end)
    if tenant_id:
        q = q.filter(AiUsageEvent.tenant_id == tenant_id)
    rows = q.group_by(AiUsageEvent.tenant_id, AiUsageEvent.feature, AiUsageEvent.model).all()
    summary = aggregate_usage(rows)
    return {"from": iso(start), "to": iso(end), **summary}


def validate_range(start: datetime, end: datetime) -> None:
    if start >= end:
        raise BadRequest('"from" date must be before "to" date')
    if end - start > MAX_RANGE:
        raise BadRequest("Date range cannot exceed 1 year")


def current_month_summary(s: "Session", tenant_id: str, *, now: datetime | None = None) -> dict:
    start, end = month_bounds(now)
    return summarize_usage(s, start=start, end=end, tenant_id=tenant_id)
