"""
Saddle-stitch imposition for a four-page bulletin.

Two landscape letter sheets: the front carries [4 | 1], the back [2 | 3].
"""
from __future__ import annotations

import io
import logging

from PyPDF2 import PdfReader, PdfWriter, Transformation

from app.flock.errors import ApiError

logger = logging.getLogger(__name__)

SHEET_WIDTH = 792.0
SHEET_HEIGHT = 612.0
BOOKLET_PAGES = 4
# (left, right) logical page numbers per sheet side
SHEET_LAYOUT = ((4, 1), (2, 3))


class BookletError(ApiError):
    code = "BULLETIN_TOO_LONG"
    status = 400


def _place(sheet, page, slot: int) -> None:
    half = SHEET_WIDTH / 2
    w = float(page.mediabox.width)
    h = float(page.mediabox.height)
    scale = min(half / w, SHEET_HEIGHT / h)
    x = slot * half + (half - w * scale) / 2
    y = (SHEET_HEIGHT - h * scale) / 2
    # PyPDF2 3.x: transform the source page in place, then overlay it
    page.add_transformation(Transformation().scale(scale, scale).translate(x, y))
    sheet.merge_page(page)


def impose_booklet(pdf_bytes: bytes) -> bytes:
    """Impose up to four logical pages onto two landscape sheets; missing pages stay blank."""
    reader = PdfReader(io.BytesIO(pdf_bytes))
    n = len(reader.pages)
    if n > BOOKLET_PAGES:
        raise BookletError(
            f"This bulletin is too long for a 4-page booklet (got {n} pages). "
            "Please remove some content (fewer announcements or a shorter order of service) and try again."
        )

    writer = PdfWriter()
    for layout in SHEET_LAYOUT:
        sheet = writer.add_blank_page(width=SHEET_WIDTH, height=SHEET_HEIGHT)
        for slot, page_no in enumerate(layout):
            if page_no <= n:
                _place(sheet, reader.pages[page_no - 1], slot)

    buf = io.BytesIO()
    writer.write(buf)
    logger.info("Imposed booklet from %s logical pages", n)
    return buf.getvalue()
