"""
Interactive mapping editor session.

The user picks a field from the catalog, then clicks on the template preview
to place it. A session keeps an uncommitted working list of mappings and only
writes it to the store on an explicit save.

    Idle --select_field--> FieldSelected --place_at--> Idle
                           FieldSelected --cancel_selection--> Idle
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .fields import DataField, FieldCatalog
from .mapping_store import MappingStore
from .models import DEFAULT_FONT_SIZE, Coordinate, FieldMapping, PdfMappingData, upsert_mapping

logger = logging.getLogger(__name__)


class EditorState(str, enum.Enum):
    IDLE = "idle"
    FIELD_SELECTED = "field_selected"


def preview_to_page(
    px: float,
    py: float,
    preview_size: Tuple[float, float],
    page_size: Tuple[float, float],
) -> Tuple[float, float]:
    """Convert a click on a top-left-origin preview image into page space."""
    preview_w, preview_h = preview_size
    page_w, page_h = page_size
    if preview_w <= 0 or preview_h <= 0:
        raise ValueError("Preview size must be positive")
    x = px * page_w / preview_w
    y = page_h - (py * page_h / preview_h)
    return x, y


class MappingEditorSession:
    def __init__(
        self,
        template_name: str,
        catalog: FieldCatalog,
        store: MappingStore,
        page_count: Optional[int] = None,
        default_font_size: float = DEFAULT_FONT_SIZE,
    ):
        self.template_name = template_name
        self.catalog = catalog
        self.store = store
        self.page_count = page_count
        self.default_font_size = default_font_size

        self.current_page = 0
        self.selected_field: Optional[DataField] = None
        self.is_dirty = False

        saved = store.load(template_name)
        self._mappings: List[FieldMapping] = list(saved.fields) if saved else []

    @property
    def state(self) -> EditorState:
        return EditorState.FIELD_SELECTED if self.selected_field is not None else EditorState.IDLE

    @property
    def mappings(self) -> List[FieldMapping]:
        return list(self._mappings)

    def select_field(self, field: Union[DataField, str]) -> DataField:
        if isinstance(field, str):
            found = self.catalog.get(field)
            if found is None:
                raise KeyError(f"Unknown field '{field}'")
            field = found
        self.selected_field = field
        return field

    def cancel_selection(self) -> None:
        self.selected_field = None

    def set_page(self, index: int) -> None:
        if index < 0 or (self.page_count is not None and index >= self.page_count):
            raise ValueError(f"Page {index} out of range for '{self.template_name}'")
        self.current_page = index

    def place_at(self, x: float, y: float) -> Optional[FieldMapping]:
        """Record the selected field at (x, y) on the current page.

        Ignored while no field is selected.
        """
        field = self.selected_field
        if field is None:
            logger.debug("Ignoring placement on %s: no field selected", self.template_name)
            return None

        mapping = FieldMapping(
            field_id=field.id,
            field_label=field.label,
            coordinate=Coordinate(x=x, y=y, page=self.current_page, size=self.default_font_size),
        )
        self._mappings = upsert_mapping(self._mappings, mapping)
        self.selected_field = None
        self.is_dirty = True
        return mapping

    def place_at_preview(
        self,
        px: float,
        py: float,
        preview_size: Tuple[float, float],
        page_size: Tuple[float, float],
    ) -> Optional[FieldMapping]:
        if self.selected_field is None:
            return None
        x, y = preview_to_page(px, py, preview_size, page_size)
        return self.place_at(x, y)

    def remove_mapping(self, field_id: str) -> bool:
        remaining = [m for m in self._mappings if m.field_id != field_id]
        removed = len(remaining) != len(self._mappings)
        if removed:
            self._mappings = remaining
            self.is_dirty = True
        return removed

    def clear_all(self, confirm: bool = False) -> bool:
        if not confirm:
            return False
        self._mappings = []
        self.selected_field = None
        self.is_dirty = True
        return True

    def save(self) -> PdfMappingData:
        record = self.store.save(self.template_name, self._mappings)
        self.is_dirty = False
        return record

    def mappings_on_page(self, page: Optional[int] = None) -> Sequence[FieldMapping]:
        page = self.current_page if page is None else page
        return [m for m in self._mappings if m.coordinate.page == page]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "templateName": self.template_name,
            "state": self.state.value,
            "selectedField": self.selected_field.model_dump() if self.selected_field is not None else None,
            "currentPage": self.current_page,
            "pageCount": self.page_count,
            "dirty": self.is_dirty,
            "fields": [m.to_json_dict() for m in self._mappings],
        }
