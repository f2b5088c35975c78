from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.flock.audit import record_event
from app.flock.errors import BadRequest, not_found, raise_if_errors
from app.flock.modules.people.service import get_person
from app.flock.utils import check_choice, check_length, clean_str, iso, money, parse_bool, parse_date, parse_decimal, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.flock.models import User
    from app.flock.modules.donations.models import Donation, DonationCampaign


METHODS = ("cash", "check", "credit_card", "debit_card", "bank_transfer", "online", "other")
FREQUENCIES = ("one_time", "weekly", "monthly", "quarterly", "yearly")
STATUSES = ("pending", "completed", "failed", "refunded", "cancelled")


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

_CAMPAIGN_FIELDS = ("name", "description", "goal_amount", "start_date", "end_date", "is_active")


def validate_campaign_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "name" in payload:
        check_length(errors, "Name", clean_str(payload.get("name")), min_len=1, max_len=255)
    goal = parse_decimal(payload.get("goal_amount"))
    if goal is not None and goal <= 0:
        errors.append("Goal amount must be greater than 0.")
    start = parse_date(payload.get("start_date"))
    end = parse_date(payload.get("end_date"))
    if start and end and end < start:
        errors.append("End date must be on or after start date.")
    return errors


def serialize_campaign(c: "DonationCampaign", total_raised: Decimal | None = None, donation_count: int = 0) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "goal_amount": money(c.goal_amount) if c.goal_amount is not None else None,
        "start_date": iso(c.start_date),
        "end_date": iso(c.end_date),
        "is_active": c.is_active,
        "total_raised": money(total_raised),
        "donation_count": donation_count,
        "created_at": iso(c.created_at),
    }


def _campaign_totals(s: "Session", tenant_id: str) -> dict[int, tuple[Decimal, int]]:
    from app.flock.modules.donations.models import Donation

    rows = (
        s.query(Donation.campaign_id, func.coalesce(func.sum(Donation.amount), 0), func.count(Donation.id))
        .filter(
            Donation.tenant_id == tenant_id,
            Donation.deleted_at.is_(None),
            Donation.status == "completed",
            Donation.campaign_id.isnot(None),
        )
        .group_by(Donation.campaign_id)
        .all()
    )
    return {cid: (Decimal(str(total)), int(n)) for cid, total, n in rows}


def list_campaigns(s: "Session", tenant_id: str, *, active_only: bool = False) -> list[dict]:
    from app.flock.modules.donations.models import DonationCampaign

    q = s.query(DonationCampaign).filter(DonationCampaign.tenant_id == tenant_id, DonationCampaign.deleted_at.is_(None))
    if active_only:
        q = q.filter(DonationCampaign.is_active.is_(True))
    totals = _campaign_totals(s, tenant_id)
    out = []
    for c in q.order_by(DonationCampaign.created_at.desc()).all():
        total, n = totals.get(c.id, (Decimal("0"), 0))
        out.append(serialize_campaign(c, total, n))
    return out


def get_campaign(s: "Session", tenant_id: str, campaign_id: int) -> "DonationCampaign":
    from app.flock.modules.donations.models import DonationCampaign

    c = (
        s.query(DonationCampaign)
        .filter(DonationCampaign.id == campaign_id, DonationCampaign.tenant_id == tenant_id, DonationCampaign.deleted_at.is_(None))
        .one_or_none()
    )
    if c is None:
        raise not_found("Campaign")
    return c


def _apply_campaign(c: "DonationCampaign", payload: dict) -> dict:
    changes = {}
    for key in _CAMPAIGN_FIELDS:
        if key not in payload:
            continue
        raw = payload.get(key)
        if key == "goal_amount":
            new = parse_decimal(raw)
        elif key in ("start_date", "end_date"):
            new = parse_date(raw)
        elif key == "is_active":
            new = parse_bool(raw)
            new = True if new is None else new
        else:
            new = clean_str(raw)
        old = getattr(c, key)
        if new != old:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(c, key, new)
    return changes


def create_campaign(s: "Session", tenant_id: str, payload: dict, user: "User") -> "DonationCampaign":
    from app.flock.modules.donations.models import DonationCampaign

    raise_if_errors(validate_campaign_payload(payload))
    now = datetime.utcnow()
    c = DonationCampaign(tenant_id=tenant_id, is_active=True, created_at=now, updated_at=now)
    _apply_campaign(c, payload)
    s.add(c)
    s.flush()
    record_event(s, actor=user, action="campaign.create", entity_type="DonationCampaign", entity_id=str(c.id), metadata={"name": c.name})
    return c


def update_campaign(s: "Session", tenant_id: str, campaign_id: int, payload: dict, user: "User") -> "DonationCampaign":
    c = get_campaign(s, tenant_id, campaign_id)
    if not any(k in payload for k in _CAMPAIGN_FIELDS):
        raise BadRequest("No fields to update")
    raise_if_errors(validate_campaign_payload(payload, partial=True))
    changes = _apply_campaign(c, payload)
    c.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="campaign.edit", entity_type="DonationCampaign", entity_id=str(c.id), metadata={"changes": changes})
    return c


def delete_campaign(s: "Session", tenant_id: str, campaign_id: int, user: "User") -> None:
    c = get_campaign(s, tenant_id, campaign_id)
    c.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="campaign.delete", entity_type="DonationCampaign", entity_id=str(c.id))


# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------


def validate_donation_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    amount = parse_decimal(payload.get("amount"))
    if amount is None:
        errors.append("Amount is required.")
    elif amount <= 0:
        errors.append("Amount must be greater than 0.")
    method = clean_str(payload.get("method"))
    if not method:
        errors.append("Method is required.")
    check_choice(errors, "method", method, METHODS)
    check_choice(errors, "frequency", clean_str(payload.get("frequency")), FREQUENCIES)
    check_choice(errors, "status", clean_str(payload.get("status")), STATUSES)
    return errors


def serialize_donation(d: "Donation") -> dict:
    return {
        "id": d.id,
        "person_id": d.person_id,
        "donor_name": d.person.full_name if d.person else None,
        "campaign_id": d.campaign_id,
        "campaign_name": d.campaign.name if d.campaign else None,
        "amount": money(d.amount),
        "currency": d.currency,
        "method": d.method,
        "frequency": d.frequency,
        "status": d.status,
        "donation_date": iso(d.donation_date),
        "fund_name": d.fund_name,
        "transaction_id": d.transaction_id,
        "check_number": d.check_number,
        "notes": d.notes,
        "is_tax_deductible": d.is_tax_deductible,
        "receipt_sent_at": iso(d.receipt_sent_at),
        "created_at": iso(d.created_at),
    }


def list_donations(
    s: "Session",
    tenant_id: str,
    *,
    person_id: int | None = None,
    campaign_id: int | None = None,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    from app.flock.modules.donations.models import Donation

    errors: list[str] = []
    check_choice(errors, "status", status, STATUSES)
    raise_if_errors(errors)

    q = s.query(Donation).filter(Donation.tenant_id == tenant_id, Donation.deleted_at.is_(None))
    if person_id is not None:
        q = q.filter(Donation.person_id == person_id)
    if campaign_id is not None:
        q = q.filter(Donation.campaign_id == campaign_id)
    if status:
        q = q.filter(Donation.status == status)
    if start_date:
        q = q.filter(Donation.donation_date >= start_date)
    if end_date:
        q = q.filter(Donation.donation_date <= end_date)
    total = q.count()
    rows = q.order_by(Donation.donation_date.desc(), Donation.id.desc()).limit(limit).offset(offset).all()
    return {"donations": [serialize_donation(d) for d in rows], "total": total}


def get_donation(s: "Session", tenant_id: str, donation_id: int) -> "Donation":
    from app.flock.modules.donations.models import Donation

    d = (
        s.query(Donation)
        .filter(Donation.id == donation_id, Donation.tenant_id == tenant_id, Donation.deleted_at.is_(None))
        .one_or_none()
    )
    if d is None:
        raise not_found("Donation")
    return d


def create_donation(s: "Session", tenant_id: str, payload: dict, user: "User") -> "Donation":
    from app.flock.modules.donations.models import Donation

    raise_if_errors(validate_donation_payload(payload))
    person_id = parse_int(payload.get("person_id"))
    if person_id is not None:
        get_person(s, tenant_id, person_id)
    campaign_id = parse_int(payload.get("campaign_id"))
    if campaign_id is not None:
        get_campaign(s, tenant_id, campaign_id)

    now = datetime.utcnow()
    tax = parse_bool(payload.get("is_tax_deductible"))
    d = Donation(
        tenant_id=tenant_id,
        person_id=person_id,
        campaign_id=campaign_id,
        amount=parse_decimal(payload.get("amount")),
        currency=(clean_str(payload.get("currency")) or "USD").upper()[:3],
        method=clean_str(payload.get("method")),
        frequency=clean_str(payload.get("frequency")) or "one_time",
        status=clean_str(payload.get("status")) or "completed",
        donation_date=parse_date(payload.get("donation_date")) or date.today(),
        fund_name=clean_str(payload.get("fund_name")),
        transaction_id=clean_str(payload.get("transaction_id")),
        check_number=clean_str(payload.get("check_number")),
        notes=clean_str(payload.get("notes")),
        is_tax_deductible=True if tax is None else tax,
        created_at=now,
        updated_at=now,
    )
    s.add(d)
    s.flush()
    record_event(
        s,
        actor=user,
        action="donation.create",
        entity_type="Donation",
        entity_id=str(d.id),
        metadata={"amount": money(d.amount), "method": d.method, "person_id": d.person_id},
    )
    return d


def update_donation(s: "Session", tenant_id: str, donation_id: int, payload: dict, user: "User") -> "Donation":
    """Amount, status, notes and receipt flag are the editable fields."""
    d = get_donation(s, tenant_id, donation_id)
    if not any(k in payload for k in ("amount", "status", "notes", "receipt_sent")):
        raise BadRequest("No fields to update")

    errors: list[str] = []
    changes = {}
    if "amount" in payload:
        amount = parse_decimal(payload.get("amount"))
        if amount is None or amount <= 0:
            errors.append("Amount must be greater than 0.")
        elif amount != d.amount:
            changes["amount"] = {"old": money(d.amount), "new": money(amount)}
            d.amount = amount
    if "status" in payload:
        status = clean_str(payload.get("status"))
        check_choice(errors, "status", status, STATUSES)
        if status and status != d.status:
            changes["status"] = {"old": d.status, "new": status}
            d.status = status
    raise_if_errors(errors)
    if "notes" in payload:
        d.notes = clean_str(payload.get("notes"))
    if "receipt_sent" in payload:
        sent = parse_bool(payload.get("receipt_sent"))
        d.receipt_sent_at = datetime.utcnow() if sent else None
        changes["receipt_sent"] = bool(sent)
    d.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="donation.edit", entity_type="Donation", entity_id=str(d.id), metadata={"changes": changes})
    return d


def delete_donation(s: "Session", tenant_id: str, donation_id: int, user: "User") -> None:
    d = get_donation(s, tenant_id, donation_id)
    d.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="donation.delete", entity_type="Donation", entity_id=str(d.id))


def _completed(s: "Session", tenant_id: str):
    from app.flock.modules.donations.models import Donation

    return s.query(Donation).filter(
        Donation.tenant_id == tenant_id,
        Donation.deleted_at.is_(None),
        Donation.status == "completed",
    )


def get_stats(s: "Session", tenant_id: str, *, start_date: date | None = None, end_date: date | None = None) -> dict:
    """Completed donations between the dates (default: year to date)."""
    from app.flock.modules.donations.models import Donation

    today = date.today()
    start_date = start_date or date(today.year, 1, 1)
    end_date = end_date or today
    q = _completed(s, tenant_id).filter(Donation.donation_date >= start_date, Donation.donation_date <= end_date)
    total, count, donors = q.with_entities(
        func.coalesce(func.sum(Donation.amount), 0),
        func.count(Donation.id),
        func.count(func.distinct(Donation.person_id)),
    ).one()
    total = Decimal(str(total))
    count = int(count)
    avg = (total / count) if count else Decimal("0")
    return {
        "start_date": iso(start_date),
        "end_date": iso(end_date),
        "total_amount": money(total),
        "donation_count": count,
        "unique_donors": int(donors),
        "avg_donation": money(avg),
    }


def get_monthly_stats(s: "Session", tenant_id: str, year: int) -> list[dict]:
    from app.flock.modules.donations.models import Donation

    if year < 2000 or year > 2100:
        raise BadRequest("year must be between 2000 and 2100")
    rows = (
        _completed(s, tenant_id)
        .filter(Donation.donation_date >= date(year, 1, 1), Donation.donation_date <= date(year, 12, 31))
        .with_entities(Donation.donation_date, Donation.amount)
        .all()
    )
    months = {m: [Decimal("0"), 0] for m in range(1, 13)}
    for donated_on, amount in rows:
        bucket = months[donated_on.month]
        bucket[0] += Decimal(str(amount))
        bucket[1] += 1
    return [
        {"month": m, "month_name": calendar.month_name[m], "total_amount": money(total), "donation_count": n}
        for m, (total, n) in months.items()
    ]


def get_tax_statement(s: "Session", tenant_id: str, year: int, person_id: int) -> dict:
    """Year-end giving statement for one donor."""
    from app.flock.modules.donations.models import Donation
    from app.flock.modules.org.service import get_branding

    if year < 2000 or year > 2100:
        raise BadRequest("year must be between 2000 and 2100")
    person = get_person(s, tenant_id, person_id)
    rows = (
        _completed(s, tenant_id)
        .filter(
            Donation.person_id == person.id,
            Donation.is_tax_deductible.is_(True),
            Donation.donation_date >= date(year, 1, 1),
            Donation.donation_date <= date(year, 12, 31),
        )
        .order_by(Donation.donation_date.asc(), Donation.id.asc())
        .all()
    )
    total = sum((Decimal(str(d.amount)) for d in rows), Decimal("0"))
    branding = get_branding(s, tenant_id)
    return {
        "year": year,
        "donor": {
            "id": person.id,
            "name": person.full_name,
            "email": person.email,
            "envelope_number": person.envelope_number,
        },
        "organization": {
            "legal_name": branding["legal_name"],
            "ein": branding["ein"],
            "address": branding["formatted_address"],
            "footer": branding["tax_statement_footer"],
        },
        "donations": [
            {
                "id": d.id,
                "donation_date": iso(d.donation_date),
                "amount": money(d.amount),
                "method": d.method,
                "fund_name": d.fund_name,
                "check_number": d.check_number,
            }
            for d in rows
        ],
        "total_amount": money(total),
        "donation_count": len(rows),
    }
