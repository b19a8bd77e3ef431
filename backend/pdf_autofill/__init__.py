"""
PDF auto-fill package for the childcare application backend.

This module bundles reusable utilities for:
  - the field catalog and application payload
  - persisting coordinate mappings designed in the mapping editor
  - the static template registry (AcroForm names vs. coordinates)
  - filling municipal PDF templates and serving the results
"""

from .editor import EditorState, MappingEditorSession
from .engine import AutoFillEngine, FillReport
from .errors import (
    FieldRenderError,
    MappingNotFoundError,
    MappingStoreError,
    PDFAutoFillError,
    RegistryError,
    TemplateLoadError,
)
from .fields import ApplicationData, DataField, FieldCatalog, default_catalog
from .mapping_store import FileKeyValueStore, MappingStore, MemoryKeyValueStore
from .models import Coordinate, FieldMapping, PdfMappingData
from .service import PDFAutoFillService

__all__ = [
    "ApplicationData",
    "AutoFillEngine",
    "Coordinate",
    "DataField",
    "EditorState",
    "FieldCatalog",
    "FieldMapping",
    "FieldRenderError",
    "FileKeyValueStore",
    "FillReport",
    "MappingEditorSession",
    "MappingNotFoundError",
    "MappingStore",
    "MappingStoreError",
    "MemoryKeyValueStore",
    "PDFAutoFillError",
    "PDFAutoFillService",
    "PdfMappingData",
    "RegistryError",
    "TemplateLoadError",
    "default_catalog",
]
