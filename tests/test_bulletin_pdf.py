import io

import pytest
from PyPDF2 import PdfReader, PdfWriter

from app.flock.modules.bulletins.booklet import BookletError, impose_booklet
from app.flock.modules.bulletins.render import format_service_date, render_bulletin_pdf
from app.flock.modules.bulletins.validation import is_bulletin_valid, validate_bulletin


def _view_model(**overrides):
    vm = {
        "church_info": {
            "church_name": "Grace Church",
            "service_label": "Sunday Morning Worship",
            "service_date": "2026-03-01",
        },
        "service_items": [{"type": "song", "title": "Amazing Grace", "ccli_number": "22025"}],
        "sermon": {"title": "Living Hope", "preacher": "Pastor Kim", "primary_scripture": "1 Peter 1:3-9"},
        "announcements": [{"title": "Potluck", "body": "After service in the hall."}],
        "upcoming_events": [{"title": "Youth Night", "start_at": "2026-03-06T19:00:00", "location": "Gym"}],
        "contact_info": {"phone": "555-0100"},
        "giving_info": {"text": "Give online at https://grace.example.org/give"},
    }
    vm.update(overrides)
    return vm


def test_complete_view_model_is_clean():
    result = validate_bulletin(_view_model())
    assert result == {"errors": [], "warnings": [], "is_valid": True}


def test_missing_church_info_and_ccli_are_errors():
    vm = _view_model(church_info=None, service_items=[{"type": "song", "title": "Untitled"}])
    errors = validate_bulletin(vm)["errors"]
    assert "Church information is missing" in errors
    assert 'Songs missing CCLI numbers: "Untitled"' in errors
    assert not is_bulletin_valid(vm)


def test_long_announcement_is_an_error():
    vm = _view_model(announcements=[{"title": "x" * 61, "body": "ok"}])
    errors = validate_bulletin(vm)["errors"]
    assert errors == [f'Announcement "{"x" * 30}..." exceeds 60 character limit']


def test_optional_sections_only_warn():
    vm = _view_model(sermon=None, announcements=[], upcoming_events=[], contact_info=None, giving_info=None, service_items=[])
    result = validate_bulletin(vm)
    assert result["is_valid"] is True
    assert "Order of service is empty" in result["warnings"]
    assert "No sermon information included" in result["warnings"]
    assert "No giving/donation information included" in result["warnings"]


def test_simple_text_layout_warnings():
    vm = _view_model(layout_key="simpleText", service_items=[{"type": "note", "title": "Call", "marker": "*"}])
    warnings = validate_bulletin(vm)["warnings"]
    assert "Simple Text layout selected but no service items have printed liturgy text" in warnings
    assert "Service items have markers but no marker legend is defined" in warnings


def test_format_service_date():
    assert format_service_date("2026-03-01") == "Sunday, March 1, 2026"
    assert format_service_date(None) == ""


@pytest.mark.parametrize("fmt", ["standard", "large-print"])
def test_render_produces_four_half_letter_pages(fmt):
    pdf = render_bulletin_pdf(_view_model(), fmt=fmt)
    reader = PdfReader(io.BytesIO(pdf))
    assert len(reader.pages) == 4
    assert float(reader.pages[0].mediabox.width) == pytest.approx(396)
    assert float(reader.pages[0].mediabox.height) == pytest.approx(612)


def test_booklet_has_two_landscape_sheets():
    booklet = impose_booklet(render_bulletin_pdf(_view_model()))
    reader = PdfReader(io.BytesIO(booklet))
    assert len(reader.pages) == 2
    assert float(reader.pages[0].mediabox.width) == pytest.approx(792)
    assert float(reader.pages[0].mediabox.height) == pytest.approx(612)


def test_booklet_sheets_pair_back_cover_with_cover():
    reader = PdfReader(io.BytesIO(impose_booklet(render_bulletin_pdf(_view_model()))))
    front = reader.pages[0].extract_text()
    back = reader.pages[1].extract_text()
    assert "Upcoming Events" in front and "Living Hope" in front
    assert "Order of Worship" in back and "Announcements" in back
    assert "Order of Worship" not in front


def test_booklet_rejects_more_than_four_pages():
    writer = PdfWriter()
    for _ in range(5):
        writer.add_blank_page(width=396, height=612)
    buf = io.BytesIO()
    writer.write(buf)

    with pytest.raises(BookletError) as exc:
        impose_booklet(buf.getvalue())
    assert exc.value.code == "BULLETIN_TOO_LONG"
    assert exc.value.status == 400
    assert "got 5 pages" in exc.value.message
