"""
Low-level PDF utilities for the auto-fill engine.

Coordinate placements are drawn onto a reportlab overlay (one overlay page per
template page, sized to the template's MediaBox) and merged onto the template
with pypdf. AcroForm placements are set by name on a writer cloned from the
template. Page previews for the mapping editor are rendered with PyMuPDF.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import fitz  # PyMuPDF
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from .errors import FieldRenderError, TemplateLoadError

logger = logging.getLogger(__name__)

DEFAULT_FONT = "Helvetica"

# CID fonts reportlab can use without embedding a font file.
CID_FONTS = {
    "HeiseiMin-W3",
    "HeiseiKakuGo-W5",
    "STSong-Light",
    "MSung-Light",
    "HYSMyeongJo-Medium",
}


@dataclass(frozen=True)
class TextPlacement:
    key: str
    text: str
    x: float
    y: float
    page: int
    size: float


def load_reader(template_bytes: bytes) -> PdfReader:
    if not isinstance(template_bytes, (bytes, bytearray)):
        raise TypeError("template_bytes must be bytes-like")
    if not template_bytes:
        raise TemplateLoadError("Template PDF content is empty")
    try:
        reader = PdfReader(io.BytesIO(bytes(template_bytes)), strict=False)
        if reader.is_encrypted:
            reader.decrypt("")
        # Force the page tree to be parsed so broken files fail here.
        len(reader.pages)
    except (PdfReadError, ValueError, KeyError) as exc:
        raise TemplateLoadError(f"Failed to read template PDF: {exc}") from exc
    return reader


def page_sizes(reader: PdfReader) -> List[Tuple[float, float]]:
    return [(float(page.mediabox.width), float(page.mediabox.height)) for page in reader.pages]


def form_field_names(reader: PdfReader) -> Set[str]:
    return set((reader.get_fields() or {}).keys())


def resolve_font(font_name: str = DEFAULT_FONT, font_path: Optional[str] = None) -> str:
    """Make sure `font_name` is usable by reportlab and return it."""
    if font_path:
        if font_name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(TTFont(font_name, str(Path(font_path))))
        return font_name
    if font_name in pdfmetrics.standardFonts:
        return font_name
    if font_name in CID_FONTS:
        if font_name not in pdfmetrics.getRegisteredFontNames():
            pdfmetrics.registerFont(UnicodeCIDFont(font_name))
        return font_name
    if font_name in pdfmetrics.getRegisteredFontNames():
        return font_name
    raise ValueError(f"Font '{font_name}' is not registered; provide a font file path")


def unrenderable_chars(font_name: str, text: str) -> str:
    """Characters of `text` that `font_name` has no glyph or code for.

    CID fonts are trusted to cover their script.
    """
    font = pdfmetrics.getFont(font_name)
    if isinstance(font, UnicodeCIDFont):
        return ""
    if isinstance(font, TTFont):
        covered = font.face.charToGlyph
        return "".join(sorted({c for c in text if ord(c) not in covered}))
    missing = set()
    for char in set(text):
        try:
            char.encode(font.encName)
        except UnicodeEncodeError:
            missing.add(char)
    return "".join(sorted(missing))


def build_text_overlay(
    sizes: Sequence[Tuple[float, float]],
    placements: Iterable[TextPlacement],
    font_name: str = DEFAULT_FONT,
) -> Tuple[Optional[PdfReader], List[str], List[FieldRenderError]]:
    """Draw placements on a blank overlay document.

    Multi-line values are drawn downwards from (x, y) with a leading of
    1.2 x the font size. Returns (overlay reader or None if nothing was
    drawn, drawn keys, errors).
    """
    by_page: Dict[int, List[TextPlacement]] = {}
    errors: List[FieldRenderError] = []
    for placement in placements:
        if not 0 <= placement.page < len(sizes):
            errors.append(
                FieldRenderError(
                    placement.key,
                    f"page {placement.page} out of range (document has {len(sizes)} pages)",
                )
            )
            continue
        lines = placement.text.splitlines()
        missing = unrenderable_chars(font_name, "".join(lines))
        if missing:
            logger.warning("Font %s cannot render %s: %r", font_name, placement.key, missing)
            errors.append(FieldRenderError(placement.key, f"font {font_name} cannot render {missing!r}"))
            continue
        by_page.setdefault(placement.page, []).append(placement)

    if not by_page:
        return None, [], errors

    drawn: List[str] = []
    buffer = io.BytesIO()
    canv = canvas.Canvas(buffer)
    for page_index, size in enumerate(sizes):
        canv.setPageSize(size)
        for placement in by_page.get(page_index, []):
            try:
                text = canv.beginText(placement.x, placement.y)
                text.setFont(font_name, placement.size, leading=placement.size * 1.2)
                text.setFillColorRGB(0, 0, 0)
                text.textLines(placement.text.splitlines())
                canv.drawText(text)
            except Exception as exc:
                logger.warning("Failed to draw %s: %s", placement.key, exc)
                errors.append(FieldRenderError(placement.key, str(exc)))
                continue
            drawn.append(placement.key)
        canv.showPage()
    canv.save()
    buffer.seek(0)
    return PdfReader(buffer), drawn, errors


def stamp_overlay(writer: PdfWriter, overlay: PdfReader, pages: Iterable[int]) -> None:
    for index in pages:
        writer.pages[index].merge_page(overlay.pages[index])


def clone_writer(reader: PdfReader) -> PdfWriter:
    return PdfWriter(clone_from=reader)


def set_form_fields(
    writer: PdfWriter,
    available: Set[str],
    values: Dict[str, Tuple[str, str]],
) -> Tuple[List[str], List[FieldRenderError]]:
    """Set text form fields by name.

    `values` maps form field name -> (logical key, text). Missing form fields
    are reported per field; the remaining ones are still set.
    """
    filled: List[str] = []
    errors: List[FieldRenderError] = []
    if values:
        writer.set_need_appearances_writer(True)

    for field_name, (key, text) in values.items():
        if field_name not in available:
            logger.warning("Form field '%s' not found in template", field_name)
            errors.append(FieldRenderError(key, f"form field '{field_name}' not found"))
            continue
        try:
            for page in writer.pages:
                if "/Annots" in page:
                    writer.update_page_form_field_values(page, {field_name: text}, auto_regenerate=None)
        except Exception as exc:
            logger.warning("Failed to set form field '%s': %s", field_name, exc)
            errors.append(FieldRenderError(key, str(exc)))
            continue
        filled.append(key)
    return filled, errors


def write_bytes(writer: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def render_page_png(template_bytes: bytes, page: int = 0, zoom: float = 1.0) -> Tuple[bytes, Tuple[int, int]]:
    """Render one template page as PNG for the editor preview.

    Returns the image bytes and its pixel size.
    """
    try:
        doc = fitz.open(stream=template_bytes, filetype="pdf")
    except Exception as exc:
        raise TemplateLoadError(f"Failed to open template for preview: {exc}") from exc
    try:
        if not 0 <= page < doc.page_count:
            raise ValueError(f"Page {page} out of range (document has {doc.page_count} pages)")
        pix = doc[page].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return pix.tobytes("png"), (pix.width, pix.height)
    finally:
        doc.close()
