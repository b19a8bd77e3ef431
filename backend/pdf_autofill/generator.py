"""
Template-free application summary, used when no municipal template is available.
"""

from __future__ import annotations

import io

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas

from .fields import FIELD_LABELS, ApplicationData
from .pdf_utils import DEFAULT_FONT, resolve_font

MARGIN = 40
LINE_GAP = 34
VALUE_LEADING = 14.4

# Labels are Japanese; standard Type 1 fonts only cover Latin-1.
SUMMARY_CJK_FONT = "HeiseiKakuGo-W5"


def render_application_summary(data: ApplicationData, font_name: str = DEFAULT_FONT) -> bytes:
    """Lay out label/value pairs on A4, skipping empty values."""
    if font_name in pdfmetrics.standardFonts:
        font_name = resolve_font(SUMMARY_CJK_FONT)

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    title = data.value_for("applicationType") or "Application"
    c.setTitle(title)
    c.setFont(font_name, 20)
    c.drawCentredString(width / 2, height - MARGIN - 20, title)

    y = height - MARGIN - 60
    for key, label in FIELD_LABELS.items():
        if key == "applicationType":
            continue
        value = data.value_for(key)
        if value is None:
            continue
        if y < MARGIN + LINE_GAP:
            c.showPage()
            y = height - MARGIN
        c.setFillColorRGB(0.4, 0.4, 0.4)
        c.setFont(font_name, 10)
        c.drawString(MARGIN, y, label)
        c.setFillColorRGB(0, 0, 0)
        lines = value.splitlines()
        text = c.beginText(MARGIN, y - 14)
        text.setFont(font_name, 12, leading=VALUE_LEADING)
        text.textLines(lines)
        c.drawText(text)
        y -= LINE_GAP + VALUE_LEADING * (len(lines) - 1)

    c.showPage()
    c.save()
    return buffer.getvalue()
