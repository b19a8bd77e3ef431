"""
Static template field-mapping registry.

Each template is filled with one of two placement strategies:

* ``acroform``   - the PDF embeds named form fields; values are set by name.
* ``coordinate`` - the PDF has no form fields; text is drawn at absolute
  positions (origin bottom-left, zero-based page index).

The raw configuration below uses the same shape as the JSON files that can be
dropped into ``field_mappings/``::

    {"type": "coordinate", "fields": {"childName": {"x": 200, "y": 720, "page": 0, "size": 12}}}

Raw records are parsed into tagged variants once, at load time, so the fill
engine never has to branch on a string tag.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Union

from pydantic import ValidationError

from .errors import RegistryError
from .models import Coordinate, FieldMapping

logger = logging.getLogger(__name__)

ACROFORM = "acroform"
COORDINATE = "coordinate"

# Page geometry reference (points). A4 is 595 x 842.
A4_WIDTH = 595
A4_HEIGHT = 842
TOP = 800
MIDDLE = 420
BOTTOM = 50
LEFT_MARGIN = 50
CENTER = 297.5


@dataclass(frozen=True)
class AcroFormMapping:
    fields: Mapping[str, str] = field(default_factory=dict)
    kind: str = field(default=ACROFORM, init=False)


@dataclass(frozen=True)
class CoordinateMapping:
    fields: Mapping[str, Coordinate] = field(default_factory=dict)
    kind: str = field(default=COORDINATE, init=False)


PDFFieldMapping = Union[AcroFormMapping, CoordinateMapping]


def parse_field_mapping(template_name: str, raw: Mapping) -> PDFFieldMapping:
    """Validate one raw registry record and build its variant."""
    if not isinstance(raw, Mapping):
        raise RegistryError(f"Registry entry '{template_name}' must be an object")

    kind = raw.get("type")
    fields = raw.get("fields")
    if not isinstance(fields, Mapping):
        raise RegistryError(f"Registry entry '{template_name}' has no 'fields' object")

    if kind == ACROFORM:
        for key, value in fields.items():
            if not isinstance(value, str) or not value:
                raise RegistryError(
                    f"Registry entry '{template_name}' is acroform but field '{key}' "
                    f"is not a form field name: {value!r}"
                )
        return AcroFormMapping(fields=MappingProxyType(dict(fields)))

    if kind == COORDINATE:
        coordinates: Dict[str, Coordinate] = {}
        for key, value in fields.items():
            if not isinstance(value, Mapping):
                raise RegistryError(
                    f"Registry entry '{template_name}' is coordinate but field '{key}' "
                    f"is not a coordinate: {value!r}"
                )
            try:
                coordinates[key] = Coordinate.model_validate(value)
            except ValidationError as exc:
                raise RegistryError(
                    f"Registry entry '{template_name}' has an invalid coordinate for '{key}': {exc}"
                ) from exc
        return CoordinateMapping(fields=MappingProxyType(coordinates))

    raise RegistryError(f"Registry entry '{template_name}' has unknown type {kind!r}")


def build_registry(raw: Mapping[str, Mapping]) -> Dict[str, PDFFieldMapping]:
    return {name: parse_field_mapping(name, entry) for name, entry in raw.items()}


def load_registry_dir(directory: Path) -> Dict[str, PDFFieldMapping]:
    """Load ``<templateName>.json`` registry records from a directory.

    Malformed files are logged and skipped.
    """
    entries: Dict[str, PDFFieldMapping] = {}
    directory = Path(directory)
    if not directory.exists():
        return entries
    for mapping_file in sorted(directory.glob("*.json")):
        try:
            with mapping_file.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            entries[mapping_file.stem] = parse_field_mapping(mapping_file.stem, raw)
        except (OSError, ValueError, RegistryError) as exc:
            logger.warning("Skipping registry file %s: %s", mapping_file.name, exc)
    return entries


def to_raw(mapping: PDFFieldMapping) -> Dict:
    """Inverse of parse_field_mapping, for API responses."""
    if isinstance(mapping, AcroFormMapping):
        return {"type": ACROFORM, "fields": dict(mapping.fields)}
    if isinstance(mapping, CoordinateMapping):
        return {
            "type": COORDINATE,
            "fields": {key: coord.to_json_dict() for key, coord in mapping.fields.items()},
        }
    raise TypeError(f"Unsupported mapping variant: {type(mapping).__name__}")


def export_coordinates(mappings: Iterable[FieldMapping]) -> Dict:
    """Convert editor mappings into a ``coordinate`` registry record."""
    return {
        "type": COORDINATE,
        "fields": {m.field_id: m.coordinate.to_json_dict() for m in mappings},
    }


RAW_FIELD_MAPPINGS: Dict[str, Dict] = {
    # Template with embedded AcroForm fields.
    "application_form_acroform": {
        "type": ACROFORM,
        "fields": {
            "facilityName": "field_facility_name",
            "applicationType": "field_application_type",
            "parentName": "field_parent_name",
            "parentPhone": "field_parent_phone",
            "parentEmail": "field_parent_email",
            "address": "field_address",
            "childName": "field_child_name",
            "childBirthDate": "field_child_birthdate",
            "childGender": "field_child_gender",
            "desiredStartDate": "field_desired_start_date",
            "notes": "field_notes",
        },
    },
    # Same form without fields, filled by coordinates.
    "application_form_coordinate": {
        "type": COORDINATE,
        "fields": {
            "facilityName": {"x": 150, "y": 750, "page": 0, "size": 12},
            "applicationType": {"x": 150, "y": 720, "page": 0, "size": 12},
            "parentName": {"x": 150, "y": 680, "page": 0, "size": 12},
            "parentPhone": {"x": 150, "y": 650, "page": 0, "size": 12},
            "parentEmail": {"x": 150, "y": 620, "page": 0, "size": 12},
            "address": {"x": 150, "y": 590, "page": 0, "size": 12},
            "childName": {"x": 150, "y": 550, "page": 0, "size": 12},
            "childBirthDate": {"x": 150, "y": 520, "page": 0, "size": 12},
            "childGender": {"x": 150, "y": 490, "page": 0, "size": 12},
            "desiredStartDate": {"x": 150, "y": 460, "page": 0, "size": 12},
            "notes": {"x": 150, "y": 420, "page": 0, "size": 10},
        },
    },
    # Temporary care application.
    "temporary_care_application": {
        "type": COORDINATE,
        "fields": {
            "childName": {"x": 200, "y": 720, "page": 0, "size": 12},
            "childBirthDate": {"x": 200, "y": 690, "page": 0, "size": 12},
            "childGender": {"x": 450, "y": 690, "page": 0, "size": 12},
            "address": {"x": 150, "y": 660, "page": 0, "size": 11},
            "parentName": {"x": 200, "y": 630, "page": 0, "size": 12},
            "parentPhone": {"x": 200, "y": 600, "page": 0, "size": 12},
            "facilityName": {"x": 200, "y": 570, "page": 0, "size": 12},
            "desiredStartDate": {"x": 200, "y": 540, "page": 0, "size": 12},
            "notes": {"x": 100, "y": 480, "page": 0, "size": 10},
        },
    },
}

FIELD_MAPPINGS: Mapping[str, PDFFieldMapping] = MappingProxyType(build_registry(RAW_FIELD_MAPPINGS))
