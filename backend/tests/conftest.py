import io
from typing import Iterable, List, Tuple

import pytest
from pypdf import PdfReader
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from pdf_autofill import MappingStore, MemoryKeyValueStore, PDFAutoFillService

ACROFORM_FIELDS = [
    "field_facility_name",
    "field_parent_name",
    "field_child_name",
    "field_child_birthdate",
    "field_notes",
]


def make_blank_pdf(pages: int = 1) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    for index in range(pages):
        c.setFont("Helvetica", 9)
        c.drawString(40, 20, f"template page {index + 1}")
        c.showPage()
    c.save()
    return buffer.getvalue()


def make_acroform_pdf(field_names: Iterable[str] = ACROFORM_FIELDS) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    y = 760
    for name in field_names:
        c.acroForm.textfield(
            name=name,
            tooltip=name,
            x=150,
            y=y,
            width=300,
            height=20,
            fontName="Helvetica",
            fontSize=11,
            borderWidth=1,
            forceBorder=True,
        )
        y -= 40
    c.showPage()
    c.save()
    return buffer.getvalue()


def _mult(m: List[float], n: List[float]) -> List[float]:
    return [
        m[0] * n[0] + m[1] * n[2],
        m[0] * n[1] + m[1] * n[3],
        m[2] * n[0] + m[3] * n[2],
        m[2] * n[1] + m[3] * n[3],
        m[4] * n[0] + m[5] * n[2] + n[4],
        m[4] * n[1] + m[5] * n[3] + n[5],
    ]


def text_positions(pdf_bytes: bytes, page: int = 0) -> List[Tuple[str, float, float]]:
    """Text runs on a page with their (x, y) start position in page space."""
    reader = PdfReader(io.BytesIO(pdf_bytes))
    found: List[Tuple[str, float, float]] = []

    def visitor(text, cm, tm, font_dict, font_size):
        if text.strip():
            matrix = _mult(tm, cm)
            found.append((text.strip(), round(matrix[4], 1), round(matrix[5], 1)))

    reader.pages[page].extract_text(visitor_text=visitor)
    return found


def texts_on(pdf_bytes: bytes, page: int = 0) -> List[str]:
    return [text for text, _, _ in text_positions(pdf_bytes, page)]


@pytest.fixture
def blank_pdf() -> bytes:
    return make_blank_pdf()


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_blank_pdf(pages=2)


@pytest.fixture
def acroform_pdf() -> bytes:
    return make_acroform_pdf()


@pytest.fixture
def store() -> MappingStore:
    return MappingStore(MemoryKeyValueStore())


@pytest.fixture
def service(tmp_path, monkeypatch) -> PDFAutoFillService:
    monkeypatch.delenv("PDF_AUTOFILL_S3_BUCKET", raising=False)
    monkeypatch.delenv("PDF_AUTOFILL_FONT", raising=False)
    monkeypatch.delenv("PDF_AUTOFILL_FONT_PATH", raising=False)
    templates_dir = tmp_path / "pdf_templates"
    templates_dir.mkdir()
    (templates_dir / "temporary_care_application.pdf").write_bytes(make_blank_pdf())
    (templates_dir / "application_form_acroform.pdf").write_bytes(make_acroform_pdf())
    return PDFAutoFillService(base_dir=tmp_path)
