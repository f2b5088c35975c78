"""
PDF rendering of a bulletin view model.

Always produces exactly four half-letter pages (cover, order of worship,
announcements, back page). Overlong sections are shrunk to fit their page.
"""
from __future__ import annotations

import io
import logging
from datetime import date, datetime
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import KeepInFrame, PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger(__name__)

HALF_LETTER = (5.5 * inch, 8.5 * inch)  # 396 x 612 pt
MARGIN = 0.4 * inch
MAX_ORDER_ITEMS = 10
MAX_ANNOUNCEMENTS = 3
MAX_PRAYER_REQUESTS = 4
MAX_EVENTS = 3
DEFAULT_WELCOME = "Welcome to our worship service! We're glad you're here."
FORMATS = ("standard", "large-print")


def _styles(scale: float) -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "BulletinTitle",
            parent=base["Title"],
            fontSize=22 * scale,
            leading=26 * scale,
            alignment=TA_CENTER,
            textColor=colors.HexColor("#1f2a44"),
        ),
        "subtitle": ParagraphStyle(
            "BulletinSubtitle",
            parent=base["Normal"],
            fontSize=12 * scale,
            leading=15 * scale,
            alignment=TA_CENTER,
            textColor=colors.HexColor("#4a5568"),
        ),
        "h2": ParagraphStyle(
            "BulletinHeading",
            parent=base["Heading2"],
            fontSize=14 * scale,
            leading=18 * scale,
            spaceBefore=6,
            spaceAfter=6,
            textColor=colors.HexColor("#1f2a44"),
        ),
        "body": ParagraphStyle("BulletinBody", parent=base["Normal"], fontSize=10 * scale, leading=13 * scale),
        "small": ParagraphStyle(
            "BulletinSmall",
            parent=base["Normal"],
            fontSize=8.5 * scale,
            leading=11 * scale,
            textColor=colors.HexColor("#4a5568"),
        ),
        "center": ParagraphStyle(
            "BulletinCenter", parent=base["Normal"], fontSize=10 * scale, leading=13 * scale, alignment=TA_CENTER
        ),
    }


def _p(text, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(str(text)).replace("\n", "<br/>"), style)


def format_service_date(value) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    return f"{value.strftime('%A, %B')} {value.day}, {value.year}"


def _format_event_time(value) -> str:
    if not value:
        return ""
    try:
        dt = datetime.fromisoformat(str(value))
    except ValueError:
        return str(value)
    return f"{dt.strftime('%a %b')} {dt.day}, {dt.strftime('%I:%M %p').lstrip('0')}"


def _cover_page(vm: dict, st: dict) -> list:
    church = vm.get("church_info") or {}
    sermon = vm.get("sermon") or {}
    flow: list = [Spacer(1, 1.2 * inch), _p(church.get("church_name") or "", st["title"])]
    if church.get("tagline"):
        flow += [Spacer(1, 6), _p(church["tagline"], st["subtitle"])]
    flow += [Spacer(1, 0.5 * inch), _p(church.get("service_label") or "", st["subtitle"])]
    flow.append(_p(format_service_date(church.get("service_date")), st["subtitle"]))
    if church.get("service_time"):
        flow.append(_p(church["service_time"], st["subtitle"]))
    if sermon:
        flow.append(Spacer(1, 0.6 * inch))
        if sermon.get("series_title"):
            flow.append(_p(f"Series: {sermon['series_title']}", st["center"]))
        if sermon.get("title"):
            flow.append(_p(sermon["title"], st["h2"]))
        if sermon.get("primary_scripture"):
            flow.append(_p(sermon["primary_scripture"], st["center"]))
    return flow


def _order_page(vm: dict, st: dict) -> list:
    items = vm.get("service_items") or []
    flow: list = [_p("Order of Worship", st["h2"])]
    rows = []
    for item in items[:MAX_ORDER_ITEMS]:
        detail = item.get("scripture_reference") or item.get("leader") or ""
        if item.get("type") == "song" and item.get("ccli_number"):
            detail = f"CCLI #{item['ccli_number']}"
        label = item.get("title") or ""
        if item.get("marker"):
            label = f"{item['marker']} {label}"
        rows.append([_p(label, st["body"]), _p(detail, st["small"])])
    if rows:
        table = Table(rows, colWidths=[2.9 * inch, 1.8 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.HexColor("#e2e8f0")),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ]
            )
        )
        flow.append(table)
    if len(items) > MAX_ORDER_ITEMS:
        flow += [Spacer(1, 4), _p(f"+{len(items) - MAX_ORDER_ITEMS} more...", st["small"])]
    preacher = (vm.get("sermon") or {}).get("preacher")
    if preacher:
        flow += [Spacer(1, 12), _p(f"Preacher: {preacher}", st["body"])]
    return flow


def _announcements_page(vm: dict, st: dict) -> list:
    flow: list = [_p("Announcements", st["h2"])]
    for a in (vm.get("announcements") or [])[:MAX_ANNOUNCEMENTS]:
        flow.append(Paragraph(f"<b>{escape(a.get('title') or '')}</b>", st["body"]))
        flow += [_p(a.get("body") or "", st["small"]), Spacer(1, 6)]
    prayers = (vm.get("prayer_requests") or [])[:MAX_PRAYER_REQUESTS]
    if prayers:
        flow.append(_p("Prayer Requests", st["h2"]))
        for pr in prayers:
            flow.append(_p(f"- {pr.get('title') or ''}", st["body"]))
    design = vm.get("design_options") or {}
    sections = design.get("sections") or {}
    if sections.get("show_welcome_message", True):
        flow += [Spacer(1, 12), _p(sections.get("welcome_text") or DEFAULT_WELCOME, st["center"])]
    return flow


def _back_page(vm: dict, st: dict) -> list:
    flow: list = [_p("Upcoming Events", st["h2"])]
    for e in (vm.get("upcoming_events") or [])[:MAX_EVENTS]:
        when = _format_event_time(e.get("start_at"))
        where = f" - {e['location']}" if e.get("location") else ""
        flow += [_p(e.get("title") or "", st["body"]), _p(f"{when}{where}", st["small"]), Spacer(1, 4)]
    giving = vm.get("giving_info")
    if giving:
        flow += [Spacer(1, 10), _p("Giving", st["h2"]), _p(giving.get("text") or "", st["body"])]
    flow += [Spacer(1, 0.4 * inch), _p((vm.get("church_info") or {}).get("church_name") or "", st["center"])]
    contact = vm.get("contact_info") or {}
    for key in ("address", "phone", "email", "website"):
        if contact.get(key):
            flow.append(_p(contact[key], st["small"] if key != "address" else st["center"]))
    return flow


def render_bulletin_pdf(view_model: dict, *, fmt: str = "standard") -> bytes:
    """Render the four-page half-letter bulletin; returns PDF bytes."""
    scale = 1.3 if fmt == "large-print" else 1.0
    st = _styles(scale)
    width, height = HALF_LETTER
    frame_w = width - 2 * MARGIN
    frame_h = height - 2 * MARGIN - 12

    story: list = []
    builders = (_cover_page, _order_page, _announcements_page, _back_page)
    for idx, build in enumerate(builders):
        story.append(KeepInFrame(frame_w, frame_h, build(view_model, st), mode="shrink"))
        if idx < len(builders) - 1:
            story.append(PageBreak())

    buf = io.BytesIO()
    church_name = (view_model.get("church_info") or {}).get("church_name") or "Bulletin"
    doc = SimpleDocTemplate(
        buf,
        pagesize=HALF_LETTER,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=f"{church_name} Bulletin",
    )
    doc.build(story)
    pdf = buf.getvalue()
    logger.info("Rendered bulletin pdf format=%s bytes=%s", fmt, len(pdf))
    return pdf
