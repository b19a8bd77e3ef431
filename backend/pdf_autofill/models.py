"""
Mapping data model shared by the store, the editor and the fill engine.

Records are serialised with camelCase keys so the persisted JSON looks like:

    {"templateName": "...", "fields": [{"fieldId": "...", "fieldLabel": "...",
     "coordinate": {"x": 0, "y": 0, "page": 0, "size": 12}}],
     "lastUpdated": "2025-01-01T00:00:00Z"}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_FONT_SIZE = 12.0


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Coordinate(_CamelModel):
    """Page-space position, origin bottom-left, zero-based page index."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    page: int = Field(0, ge=0)
    size: float = Field(DEFAULT_FONT_SIZE, gt=0)


class FieldMapping(_CamelModel):
    field_id: str = Field(..., min_length=1)
    field_label: str = ""
    coordinate: Coordinate


class PdfMappingData(_CamelModel):
    template_name: str
    fields: List[FieldMapping] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _one_entry_per_field(self) -> "PdfMappingData":
        dupes = duplicate_field_ids(self.fields)
        if dupes:
            raise ValueError(f"duplicate fieldId entries: {', '.join(dupes)}")
        return self


def duplicate_field_ids(mappings: List[FieldMapping]) -> List[str]:
    seen = set()
    dupes: List[str] = []
    for mapping in mappings:
        if mapping.field_id in seen and mapping.field_id not in dupes:
            dupes.append(mapping.field_id)
        seen.add(mapping.field_id)
    return dupes


def upsert_mapping(mappings: List[FieldMapping], mapping: FieldMapping) -> List[FieldMapping]:
    """Return a new list with `mapping` replacing any entry for the same field id.

    An existing entry keeps its position; a new one is appended.
    """
    updated = list(mappings)
    for index, existing in enumerate(updated):
        if existing.field_id == mapping.field_id:
            updated[index] = mapping
            return updated
    updated.append(mapping)
    return updated
