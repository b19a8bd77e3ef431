"""
Field catalog and the application payload rendered into templates.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DataField(BaseModel):
    """A named value the user can place on a template."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    value: str = ""


class ApplicationData(BaseModel):
    """Payload for a childcare application form. Every field is optional."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    facility_name: Optional[str] = None
    application_type: Optional[str] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = None
    parent_email: Optional[str] = None
    address: Optional[str] = None
    child_name: Optional[str] = None
    child_birth_date: Optional[str] = None
    child_gender: Optional[str] = None
    desired_start_date: Optional[str] = None
    notes: Optional[str] = None

    def value_for(self, key: str) -> Optional[str]:
        """Look up a value by logical key (camelCase or snake_case).

        Returns None for unknown keys and for empty or whitespace-only values.
        """
        attr = _ALIAS_TO_ATTR.get(key, key)
        if attr not in type(self).model_fields:
            return None
        value = getattr(self, attr)
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def as_field_values(self) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for key in FIELD_LABELS:
            value = self.value_for(key)
            if value is not None:
                values[key] = value
        return values


_ALIAS_TO_ATTR = {to_camel(name): name for name in ApplicationData.model_fields}

# Display labels, in palette order.
FIELD_LABELS: Dict[str, str] = {
    "facilityName": "施設名",
    "applicationType": "申込種別",
    "parentName": "保護者氏名",
    "parentPhone": "電話番号",
    "parentEmail": "メールアドレス",
    "address": "住所",
    "childName": "お子様氏名",
    "childBirthDate": "生年月日",
    "childGender": "性別",
    "desiredStartDate": "希望開始日",
    "notes": "備考",
}


class FieldCatalog:
    """Ordered, id-unique collection of DataFields."""

    def __init__(self, fields: Iterable[DataField]):
        self._fields: Dict[str, DataField] = {}
        for field in fields:
            if field.id in self._fields:
                raise ValueError(f"Duplicate field id '{field.id}' in catalog")
            self._fields[field.id] = field

    def __iter__(self) -> Iterator[DataField]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._fields

    def get(self, field_id: str) -> Optional[DataField]:
        return self._fields.get(field_id)

    def ids(self) -> List[str]:
        return list(self._fields)


def default_catalog() -> FieldCatalog:
    return FieldCatalog(DataField(id=key, label=label) for key, label in FIELD_LABELS.items())


def catalog_from_application(data: ApplicationData) -> FieldCatalog:
    return FieldCatalog(
        DataField(id=key, label=label, value=data.value_for(key) or "")
        for key, label in FIELD_LABELS.items()
    )
