import json

import pytest
from pydantic import ValidationError

from pdf_autofill import Coordinate, FieldMapping, RegistryError
from pdf_autofill.registry import (
    ACROFORM,
    COORDINATE,
    FIELD_MAPPINGS,
    RAW_FIELD_MAPPINGS,
    AcroFormMapping,
    CoordinateMapping,
    export_coordinates,
    load_registry_dir,
    parse_field_mapping,
    to_raw,
)


def test_every_registry_entry_is_type_consistent():
    assert set(FIELD_MAPPINGS) == set(RAW_FIELD_MAPPINGS)
    for name, entry in FIELD_MAPPINGS.items():
        assert entry.fields, name
        if entry.kind == ACROFORM:
            assert isinstance(entry, AcroFormMapping)
            assert all(isinstance(v, str) for v in entry.fields.values()), name
        else:
            assert entry.kind == COORDINATE
            assert isinstance(entry, CoordinateMapping)
            assert all(isinstance(v, Coordinate) for v in entry.fields.values()), name


def test_temporary_care_application_places_child_name_on_first_page():
    coord = FIELD_MAPPINGS["temporary_care_application"].fields["childName"]

    assert (coord.x, coord.y, coord.page, coord.size) == (200, 720, 0, 12)


def test_registry_cannot_be_mutated():
    with pytest.raises(TypeError):
        FIELD_MAPPINGS["new"] = AcroFormMapping(fields={})
    with pytest.raises(TypeError):
        FIELD_MAPPINGS["application_form_acroform"].fields["x"] = "y"
    with pytest.raises(ValidationError):
        FIELD_MAPPINGS["temporary_care_application"].fields["childName"].x = 5
    assert FIELD_MAPPINGS["temporary_care_application"].fields["childName"].x == 200


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "acroform", "fields": {"childName": {"x": 1, "y": 2, "page": 0}}},
        {"type": "coordinate", "fields": {"childName": "field_child_name"}},
        {"type": "coordinate", "fields": {"childName": {"x": 1}}},
        {"type": "checkbox", "fields": {}},
        {"type": "acroform"},
        ["not", "a", "mapping"],
    ],
)
def test_parse_rejects_inconsistent_entries(raw):
    with pytest.raises(RegistryError):
        parse_field_mapping("broken", raw)


def test_load_registry_dir_skips_malformed_files(tmp_path):
    (tmp_path / "good.json").write_text(
        json.dumps({"type": "coordinate", "fields": {"childName": {"x": 10, "y": 20, "page": 1}}}),
        encoding="utf-8",
    )
    (tmp_path / "mixed.json").write_text(
        json.dumps({"type": "acroform", "fields": {"childName": {"x": 10, "y": 20}}}),
        encoding="utf-8",
    )
    (tmp_path / "garbage.json").write_text("{not json", encoding="utf-8")

    entries = load_registry_dir(tmp_path)

    assert list(entries) == ["good"]
    assert entries["good"].fields["childName"].page == 1


def test_load_registry_dir_missing_directory(tmp_path):
    assert load_registry_dir(tmp_path / "absent") == {}


def test_to_raw_round_trips_registry_shape():
    raw = to_raw(FIELD_MAPPINGS["application_form_coordinate"])

    assert raw["type"] == "coordinate"
    assert raw["fields"]["notes"] == {"x": 150.0, "y": 420.0, "page": 0, "size": 10.0}
    assert parse_field_mapping("copy", raw) == FIELD_MAPPINGS["application_form_coordinate"]


def test_export_coordinates_produces_registry_record():
    mappings = [
        FieldMapping(field_id="childName", field_label="Child", coordinate=Coordinate(x=200, y=720)),
        FieldMapping(field_id="notes", field_label="Notes", coordinate=Coordinate(x=100, y=480, page=1, size=10)),
    ]

    exported = export_coordinates(mappings)

    assert exported == {
        "type": "coordinate",
        "fields": {
            "childName": {"x": 200.0, "y": 720.0, "page": 0, "size": 12.0},
            "notes": {"x": 100.0, "y": 480.0, "page": 1, "size": 10.0},
        },
    }
    assert isinstance(parse_field_mapping("exported", exported), CoordinateMapping)
