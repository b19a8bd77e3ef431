import io

import pytest
from pypdf import PdfReader

from conftest import make_acroform_pdf, text_positions, texts_on
from pdf_autofill import (
    ApplicationData,
    AutoFillEngine,
    Coordinate,
    FieldMapping,
    MappingNotFoundError,
    TemplateLoadError,
)
from pdf_autofill.engine import SOURCE_REGISTRY, SOURCE_SAVED
from pdf_autofill.registry import build_registry


@pytest.fixture
def engine(store):
    return AutoFillEngine(store=store)


def _placed(pdf_bytes, text, page=0):
    return [(x, y) for t, x, y in text_positions(pdf_bytes, page) if text in t]


def test_temporary_care_application_draws_child_name_at_registry_coordinate(engine, blank_pdf):
    out = engine.fill(blank_pdf, "temporary_care_application", ApplicationData(child_name="Hana Hanada"))

    assert _placed(out, "Hana Hanada") == [(200.0, 720.0)]
    assert [t for t in texts_on(out) if "Hana Hanada" in t] == ["Hana Hanada"]


def test_coordinate_fill_reports_filled_and_skipped(engine, blank_pdf):
    data = ApplicationData(child_name="Hana Hanada", parent_name="Sayuri Hanada", notes="")

    report = engine.fill_with_report(blank_pdf, "temporary_care_application", data)

    assert report.source == SOURCE_REGISTRY
    assert sorted(report.filled) == ["childName", "parentName"]
    assert "notes" in report.skipped
    assert "address" in report.skipped
    assert report.ok
    assert _placed(report.pdf_bytes, "Sayuri Hanada") == [(200.0, 630.0)]


def test_missing_value_is_not_rendered(engine, blank_pdf):
    with_parent = engine.fill(
        blank_pdf,
        "temporary_care_application",
        ApplicationData(child_name="Hana Hanada", parent_name="Sayuri Hanada"),
    )
    without_parent = engine.fill(
        blank_pdf, "temporary_care_application", ApplicationData(child_name="Hana Hanada")
    )

    assert any("Sayuri Hanada" in t for t in texts_on(with_parent))
    assert not any("Sayuri Hanada" in t for t in texts_on(without_parent))
    assert _placed(without_parent, "Hana Hanada") == [(200.0, 720.0)]


def test_saved_mapping_takes_precedence_over_registry(engine, store, blank_pdf):
    store.save(
        "temporary_care_application",
        [FieldMapping(field_id="childName", field_label="Child", coordinate=Coordinate(x=300, y=400))],
    )

    report = engine.fill_with_report(
        blank_pdf, "temporary_care_application", ApplicationData(child_name="Hana Hanada", parent_name="Sayuri")
    )

    assert report.source == SOURCE_SAVED
    assert _placed(report.pdf_bytes, "Hana Hanada") == [(300.0, 400.0)]
    # the saved mapping replaces the registry entry wholesale
    assert not any("Sayuri" in t for t in texts_on(report.pdf_bytes))


def test_empty_saved_mapping_falls_back_to_registry(engine, store, blank_pdf):
    store.save("temporary_care_application", [])

    report = engine.fill_with_report(blank_pdf, "temporary_care_application", ApplicationData(child_name="Hana"))

    assert report.source == SOURCE_REGISTRY


def test_saved_mapping_for_unregistered_template(engine, store, two_page_pdf):
    store.save(
        "custom_form",
        [
            FieldMapping(field_id="childName", field_label="Child", coordinate=Coordinate(x=100, y=500, page=1)),
            FieldMapping(field_id="parentName", field_label="Parent", coordinate=Coordinate(x=100, y=700, size=14)),
        ],
    )

    out = engine.fill(two_page_pdf, "custom_form", {"childName": "Hana", "parentName": "Sayuri"})

    assert _placed(out, "Hana", page=1) == [(100.0, 500.0)]
    assert _placed(out, "Hana", page=0) == []
    assert _placed(out, "Sayuri", page=0) == [(100.0, 700.0)]
    assert len(PdfReader(io.BytesIO(out)).pages) == 2


def test_page_out_of_range_is_a_field_error_not_a_failure(engine, store, blank_pdf):
    store.save(
        "custom_form",
        [
            FieldMapping(field_id="childName", field_label="Child", coordinate=Coordinate(x=100, y=500, page=3)),
            FieldMapping(field_id="parentName", field_label="Parent", coordinate=Coordinate(x=100, y=700)),
        ],
    )

    report = engine.fill_with_report(blank_pdf, "custom_form", {"childName": "Hana", "parentName": "Sayuri"})

    assert [e.field_key for e in report.errors] == ["childName"]
    assert report.filled == ["parentName"]
    assert _placed(report.pdf_bytes, "Sayuri") == [(100.0, 700.0)]


def test_unknown_template_raises_mapping_not_found(engine, blank_pdf):
    with pytest.raises(MappingNotFoundError) as excinfo:
        engine.fill(blank_pdf, "no_such_template", ApplicationData(child_name="Hana"))
    assert excinfo.value.template_name == "no_such_template"


def test_mapping_is_resolved_before_template_is_read(engine):
    with pytest.raises(MappingNotFoundError):
        engine.fill(b"not a pdf", "no_such_template", ApplicationData())


@pytest.mark.parametrize("template_bytes", [b"", b"definitely not a pdf"])
def test_unreadable_template_raises_template_load_error(engine, template_bytes):
    with pytest.raises(TemplateLoadError):
        engine.fill(template_bytes, "temporary_care_application", ApplicationData(child_name="Hana"))


def test_template_bytes_are_not_mutated(engine, blank_pdf):
    original = bytes(blank_pdf)

    engine.fill(blank_pdf, "temporary_care_application", ApplicationData(child_name="Hana Hanada"))

    assert blank_pdf == original


def test_acroform_fill_sets_named_fields(engine, acroform_pdf):
    data = ApplicationData(child_name="Hana Hanada", facility_name="Sakura Nursery", notes=None)

    report = engine.fill_with_report(acroform_pdf, "application_form_acroform", data)
    values = PdfReader(io.BytesIO(report.pdf_bytes)).get_form_text_fields()

    assert values["field_child_name"] == "Hana Hanada"
    assert values["field_facility_name"] == "Sakura Nursery"
    assert not values.get("field_notes")
    assert sorted(report.filled) == ["childName", "facilityName"]
    assert report.ok


def test_missing_acroform_field_is_non_fatal(engine):
    template = make_acroform_pdf(["field_child_name"])
    data = ApplicationData(child_name="Hana Hanada", parent_name="Sayuri Hanada")

    report = engine.fill_with_report(template, "application_form_acroform", data)
    values = PdfReader(io.BytesIO(report.pdf_bytes)).get_form_text_fields()

    assert values["field_child_name"] == "Hana Hanada"
    assert [e.field_key for e in report.errors] == ["parentName"]
    assert "field_parent_name" in report.errors[0].reason


def test_custom_registry_is_used(store, blank_pdf):
    registry = build_registry(
        {"one_field": {"type": "coordinate", "fields": {"facilityName": {"x": 50, "y": 60, "page": 0, "size": 9}}}}
    )
    engine = AutoFillEngine(store=store, registry=registry)

    out = engine.fill(blank_pdf, "one_field", {"facilityName": "Sakura"})

    assert _placed(out, "Sakura") == [(50.0, 60.0)]
    with pytest.raises(MappingNotFoundError):
        engine.fill(blank_pdf, "temporary_care_application", {"childName": "Hana"})


def test_engine_without_store_uses_registry_only(blank_pdf):
    engine = AutoFillEngine()

    report = engine.fill_with_report(blank_pdf, "temporary_care_application", {"childName": "Hana"})

    assert report.source == SOURCE_REGISTRY


def test_unknown_font_is_rejected_at_construction():
    with pytest.raises(ValueError):
        AutoFillEngine(font_name="NoSuchFont-Regular")


def test_text_outside_font_coverage_is_reported_not_drawn(engine, blank_pdf):
    data = ApplicationData(child_name="花田はな", parent_name="Sayuri Hanada")

    report = engine.fill_with_report(blank_pdf, "temporary_care_application", data)

    assert not report.ok
    assert [e.field_key for e in report.errors] == ["childName"]
    assert "cannot render" in report.errors[0].reason
    assert report.filled == ["parentName"]
    assert not any("■" in t for t in texts_on(report.pdf_bytes))


def test_cid_font_draws_japanese_text(store, blank_pdf):
    engine = AutoFillEngine(store=store, font_name="HeiseiKakuGo-W5")

    report = engine.fill_with_report(
        blank_pdf, "temporary_care_application", ApplicationData(child_name="花田はな")
    )

    assert report.ok
    assert report.filled == ["childName"]
    assert any("花田はな" in t for t in texts_on(report.pdf_bytes))


def test_multi_line_value_is_drawn_line_by_line(store, blank_pdf):
    registry = build_registry(
        {"notes_only": {"type": "coordinate", "fields": {"notes": {"x": 100, "y": 480, "page": 0, "size": 10}}}}
    )
    engine = AutoFillEngine(store=store, registry=registry)

    report = engine.fill_with_report(blank_pdf, "notes_only", {"notes": "line one\nline two"})
    positions = {t: (x, y) for t, x, y in text_positions(report.pdf_bytes)}

    assert report.ok
    assert positions["line one"] == (100.0, 480.0)
    assert positions["line two"][0] == 100.0
    assert positions["line two"][1] < 480.0
    assert not any("■" in t for t in positions)
