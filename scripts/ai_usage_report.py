#!/usr/bin/env python
"""
AI usage / cost report across tenants.

Usage:
    # Current month, all tenants
    python scripts/ai_usage_report.py

    # Explicit range (from inclusive, to exclusive), single tenant
    python scripts/ai_usage_report.py --from 2026-01-01 --to 2026-02-01 --tenant grace-church

Environment:
    DATABASE_URL: database connection string
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.flock import create_app
from app.flock.db import bind_tenant, session_scope
from app.flock.errors import ApiError
from app.flock.models import Tenant
from app.flock.modules.ai.pricing import summarize_usage, validate_range
from app.flock.modules.ai.quota import month_bounds
from app.flock.utils import parse_datetime


def _collect(s, tenants: list[Tenant], start, end) -> tuple[list[dict], set[str]]:
    # One query per tenant so row-level security sees a tenant context.
    rows: list[dict] = []
    unknown: set[str] = set()
    for t in tenants:
        bind_tenant(s, t.id)
        summary = summarize_usage(s, start=start, end=end, tenant_id=t.id)
        rows.extend(summary["rows"])
        unknown.update(summary["unknown_models"])
    bind_tenant(s, None)
    return rows, unknown


def print_report(rows: list[dict], names: dict[str, str], unknown: set[str]) -> None:
    if not rows:
        print("No AI usage in range.")
        return
    print(f"{'tenant':<24} {'feature':<32} {'calls':>7} {'tokens_in':>11} {'tokens_out':>11} {'cost_usd':>10}")
    totals = {"calls": 0, "tokens_in": 0, "tokens_out": 0, "cost_usd": 0.0}
    for r in rows:
        print(
            f"{names.get(r['tenant_id'], r['tenant_id']):<24} {r['feature']:<32} "
            f"{r['calls']:>7} {r['tokens_in']:>11} {r['tokens_out']:>11} {r['cost_usd']:>10.4f}"
        )
        for key in totals:
            totals[key] += r[key]
    print("-" * 100)
    print(
        f"{'TOTAL':<57} {totals['calls']:>7} {totals['tokens_in']:>11} "
        f"{totals['tokens_out']:>11} {totals['cost_usd']:>10.4f}"
    )
    if unknown:
        print(f"\nModels without pricing (cost counted as 0): {', '.join(sorted(unknown))}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Per-tenant AI usage and estimated cost")
    parser.add_argument("--from", dest="start", help="Start date (ISO, inclusive); default: start of this month")
    parser.add_argument("--to", dest="end", help="End date (ISO, exclusive); default: start of next month")
    parser.add_argument("--tenant", help="Limit to one tenant slug")
    args = parser.parse_args()

    default_start, default_end = month_bounds()
    try:
        start = parse_datetime(args.start) or default_start
        end = parse_datetime(args.end) or default_end
        validate_range(start, end)
    except ApiError as e:
        print(f"ERROR: {e.message}")
        sys.exit(2)

    app = create_app()
    with session_scope(app) as s:
        q = s.query(Tenant).filter(Tenant.deleted_at.is_(None))
        if args.tenant:
            q = q.filter(Tenant.slug == args.tenant.strip().lower())
        tenants = q.order_by(Tenant.slug.asc()).all()
        if not tenants:
            print("No matching tenants.")
            return
        print(f"AI usage from {start.isoformat()} to {end.isoformat()}\n")
        rows, unknown = _collect(s, tenants, start, end)

    names = {t.id: t.slug for t in tenants}
    print_report(rows, names, unknown)


if __name__ == "__main__":
    main()
