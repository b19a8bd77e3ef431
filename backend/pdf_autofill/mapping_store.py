"""
Persistence for mappings designed in the editor.

Each template's mapping is stored as one JSON record under the key
``<prefix><templateName>``. Backends implement a tiny key-value port so the
store works the same over a directory of JSON files or an in-memory dict.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from pydantic import ValidationError

from .errors import MappingStoreError
from .models import FieldMapping, PdfMappingData

logger = logging.getLogger(__name__)

STORAGE_KEY_PREFIX = "pdf_mapping_"

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> Iterable[str]: ...


class MemoryKeyValueStore:
    """Process-local backend, used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        return list(self._data)


class FileKeyValueStore:
    """One ``<key>.json`` file per key inside a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key) or key.startswith("."):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def keys(self) -> List[str]:
        return [p.stem for p in self.directory.glob("*.json")]


class MappingStore:
    """Save/load/delete/list mapping records keyed by template name."""

    def __init__(self, backend: KeyValueStore, prefix: str = STORAGE_KEY_PREFIX):
        self.backend = backend
        self.prefix = prefix

    def _key(self, template_name: str) -> str:
        return f"{self.prefix}{template_name}"

    def save(self, template_name: str, mappings: Iterable[FieldMapping]) -> PdfMappingData:
        """Overwrite the record for `template_name`.

        Raises ValueError when two entries share a field id and
        MappingStoreError when the backend write fails.
        """
        record = PdfMappingData(
            template_name=template_name,
            fields=list(mappings),
            last_updated=datetime.now(timezone.utc),
        )
        try:
            self.backend.set(self._key(template_name), json.dumps(record.to_json_dict(), ensure_ascii=False))
        except (OSError, ValueError) as exc:
            logger.error("Error saving mapping for %s: %s", template_name, exc, exc_info=True)
            raise MappingStoreError(f"Failed to save mapping for '{template_name}'") from exc
        logger.info("Saved mapping for %s (%d fields)", template_name, len(record.fields))
        return record

    def load(self, template_name: str) -> Optional[PdfMappingData]:
        """Return the stored record, or None if absent or unreadable."""
        try:
            raw = self.backend.get(self._key(template_name))
        except (OSError, ValueError) as exc:
            logger.error("Error loading mapping for %s: %s", template_name, exc)
            return None
        if raw is None:
            return None
        return self._parse(raw, template_name)

    def delete(self, template_name: str) -> bool:
        try:
            return self.backend.delete(self._key(template_name))
        except (OSError, ValueError) as exc:
            logger.error("Error deleting mapping for %s: %s", template_name, exc)
            return False

    def list_all(self) -> List[PdfMappingData]:
        records: List[PdfMappingData] = []
        for key in self.backend.keys():
            if not key.startswith(self.prefix):
                continue
            try:
                raw = self.backend.get(key)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping mapping %s: %s", key, exc)
                continue
            if raw is None:
                continue
            record = self._parse(raw, key[len(self.prefix):])
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _parse(raw: str, template_name: str) -> Optional[PdfMappingData]:
        try:
            return PdfMappingData.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning("Ignoring unparsable mapping for %s: %s", template_name, exc)
            return None
