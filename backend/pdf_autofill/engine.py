"""
Auto-fill engine: renders application data onto a PDF template.

Mapping resolution prefers a mapping saved from the editor over the static
registry. The saved mapping replaces the registry entry wholesale; the two
are never merged.

Each stage of a fill either returns its product or raises:

    resolve_mapping  -> MappingNotFoundError
    load_reader      -> TemplateLoadError
    render           -> per-field FieldRenderError, collected in the report
    write_bytes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Union

from pypdf import PdfReader, PdfWriter

from . import pdf_utils
from .errors import FieldRenderError, MappingNotFoundError
from .fields import ApplicationData
from .mapping_store import MappingStore
from .registry import FIELD_MAPPINGS, AcroFormMapping, CoordinateMapping, PDFFieldMapping

logger = logging.getLogger(__name__)

SOURCE_SAVED = "saved"
SOURCE_REGISTRY = "registry"

FillData = Union[ApplicationData, Mapping[str, object]]


@dataclass(frozen=True)
class ResolvedMapping:
    template_name: str
    source: str
    mapping: PDFFieldMapping


@dataclass
class FillReport:
    template_name: str
    source: str
    pdf_bytes: bytes = b""
    filled: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[FieldRenderError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> Dict:
        return {
            "mapping_source": self.source,
            "filled_fields": list(self.filled),
            "skipped_fields": list(self.skipped),
            "field_errors": [{"field": e.field_key, "reason": e.reason} for e in self.errors],
        }


def _lookup(data: FillData, key: str) -> Optional[str]:
    if isinstance(data, ApplicationData):
        return data.value_for(key)
    value = data.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class AutoFillEngine:
    def __init__(
        self,
        store: Optional[MappingStore] = None,
        registry: Optional[Mapping[str, PDFFieldMapping]] = None,
        font_name: str = pdf_utils.DEFAULT_FONT,
        font_path: Optional[str] = None,
    ):
        self.store = store
        self.registry = FIELD_MAPPINGS if registry is None else registry
        self.font_name = pdf_utils.resolve_font(font_name, font_path)

    def resolve_mapping(self, template_name: str) -> ResolvedMapping:
        if self.store is not None:
            saved = self.store.load(template_name)
            if saved and saved.fields:
                coordinates = {m.field_id: m.coordinate for m in saved.fields}
                return ResolvedMapping(template_name, SOURCE_SAVED, CoordinateMapping(fields=coordinates))

        entry = self.registry.get(template_name)
        if entry is not None and entry.fields:
            return ResolvedMapping(template_name, SOURCE_REGISTRY, entry)

        raise MappingNotFoundError(template_name)

    def fill(self, template_bytes: bytes, template_name: str, data: FillData) -> bytes:
        return self.fill_with_report(template_bytes, template_name, data).pdf_bytes

    def fill_with_report(self, template_bytes: bytes, template_name: str, data: FillData) -> FillReport:
        resolved = self.resolve_mapping(template_name)
        reader = pdf_utils.load_reader(template_bytes)
        writer = pdf_utils.clone_writer(reader)

        report = FillReport(template_name=template_name, source=resolved.source)
        self._render(resolved.mapping, reader, writer, data, report)
        report.pdf_bytes = pdf_utils.write_bytes(writer)

        logger.info(
            "Filled template %s from %s mapping (%d filled, %d skipped, %d errors)",
            template_name,
            resolved.source,
            len(report.filled),
            len(report.skipped),
            len(report.errors),
        )
        return report

    def _render(
        self,
        mapping: PDFFieldMapping,
        reader: PdfReader,
        writer: PdfWriter,
        data: FillData,
        report: FillReport,
    ) -> None:
        if isinstance(mapping, CoordinateMapping):
            self._draw_coordinates(mapping, reader, writer, data, report)
        elif isinstance(mapping, AcroFormMapping):
            self._set_acroform(mapping, reader, writer, data, report)
        else:
            raise TypeError(f"Unsupported mapping variant: {type(mapping).__name__}")

    def _draw_coordinates(
        self,
        mapping: CoordinateMapping,
        reader: PdfReader,
        writer: PdfWriter,
        data: FillData,
        report: FillReport,
    ) -> None:
        placements = []
        for key, coord in mapping.fields.items():
            value = _lookup(data, key)
            if value is None:
                report.skipped.append(key)
                continue
            placements.append(
                pdf_utils.TextPlacement(
                    key=key, text=value, x=coord.x, y=coord.y, page=coord.page, size=coord.size
                )
            )

        overlay, drawn, errors = pdf_utils.build_text_overlay(
            pdf_utils.page_sizes(reader), placements, font_name=self.font_name
        )
        report.errors.extend(errors)
        if overlay is None:
            return
        pages = sorted({p.page for p in placements if p.key in drawn})
        pdf_utils.stamp_overlay(writer, overlay, pages)
        report.filled.extend(drawn)

    def _set_acroform(
        self,
        mapping: AcroFormMapping,
        reader: PdfReader,
        writer: PdfWriter,
        data: FillData,
        report: FillReport,
    ) -> None:
        values = {}
        for key, form_field in mapping.fields.items():
            value = _lookup(data, key)
            if value is None:
                report.skipped.append(key)
                continue
            values[form_field] = (key, value)

        filled, errors = pdf_utils.set_form_fields(writer, pdf_utils.form_field_names(reader), values)
        report.filled.extend(filled)
        report.errors.extend(errors)
