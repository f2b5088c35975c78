"""
Preflight checks on a bulletin view model.

Errors block PDF generation; warnings are informational only.
"""
from __future__ import annotations

ANNOUNCEMENT_TITLE_MAX = 60
ANNOUNCEMENT_BODY_MAX = 300
MAX_ANNOUNCEMENTS_PER_PAGE = 5
MAX_EVENTS_PER_PAGE = 8
MAX_ITEMS_PER_PAGE = 15


def _blank(value) -> bool:
    return not value or not str(value).strip()


def validate_bulletin(view_model: dict) -> dict:
    errors: list[str] = []
    warnings: list[str] = []

    church = view_model.get("church_info")
    if not church:
        errors.append("Church information is missing")
    else:
        if _blank(church.get("church_name")):
            errors.append("Church name is required")
        if _blank(church.get("service_label")):
            errors.append('Service label is required (e.g., "Sunday Morning Worship")')
        if not church.get("service_date"):
            errors.append("Service date is required")

    items = view_model.get("service_items") or []
    missing_ccli = [i for i in items if i.get("type") == "song" and _blank(i.get("ccli_number"))]
    if missing_ccli:
        titles = ", ".join(f'"{i.get("title")}"' for i in missing_ccli)
        errors.append(f"Songs missing CCLI numbers: {titles}")

    announcements = view_model.get("announcements") or []
    for a in announcements:
        title = a.get("title") or ""
        if len(title) > ANNOUNCEMENT_TITLE_MAX:
            errors.append(f'Announcement "{title[:30]}..." exceeds 60 character limit')
        if len(a.get("body") or "") > ANNOUNCEMENT_BODY_MAX:
            errors.append(f'Announcement "{title}" body exceeds 300 character limit')

    if not items:
        warnings.append("Order of service is empty")

    if view_model.get("layout_key") == "simpleText":
        if not any(not _blank(i.get("printed_text")) for i in items):
            warnings.append("Simple Text layout selected but no service items have printed liturgy text")
        if any(not _blank(i.get("marker")) for i in items) and not view_model.get("marker_legend"):
            warnings.append("Service items have markers but no marker legend is defined")

    sermon = view_model.get("sermon")
    if not sermon:
        warnings.append("No sermon information included")
    else:
        if _blank(sermon.get("title")):
            warnings.append("Sermon has no title")
        if not sermon.get("preacher"):
            warnings.append("Sermon has no preacher/speaker assigned")
        if not sermon.get("primary_scripture"):
            warnings.append("Sermon has no scripture reference")

    events = view_model.get("upcoming_events") or []
    if not announcements:
        warnings.append("No announcements included")
    if not events:
        warnings.append("No upcoming events included")
    if not view_model.get("contact_info"):
        warnings.append("No contact information included")
    if not view_model.get("giving_info"):
        warnings.append("No giving/donation information included")

    if len(announcements) > MAX_ANNOUNCEMENTS_PER_PAGE:
        warnings.append(f"{len(announcements)} announcements may not fit on one page")
    if len(events) > MAX_EVENTS_PER_PAGE:
        warnings.append(f"{len(events)} events may not fit on one page")
    if len(items) > MAX_ITEMS_PER_PAGE:
        warnings.append(f"{len(items)} service items may not fit on one page")

    return {"errors": errors, "warnings": warnings, "is_valid": not errors}


def is_bulletin_valid(view_model: dict) -> bool:
    return validate_bulletin(view_model)["is_valid"]
