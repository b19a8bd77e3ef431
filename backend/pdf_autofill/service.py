"""
High-level service that exposes PDF auto-fill capabilities to the FastAPI layer.

Responsibilities
----------------
* own the mapping store, the static registry and the template source
* resolve mappings (saved editor mapping first, registry second) and fill templates
* generate a template-free summary when no template is available
* keep a small in-memory cache of generated PDFs, optionally persisted to disk or S3
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import boto3
from botocore.exceptions import ClientError
from cachetools import TTLCache

from .engine import AutoFillEngine, FillData
from .errors import MappingNotFoundError, PDFAutoFillError, TemplateLoadError
from .fields import ApplicationData
from .generator import render_application_summary
from .mapping_store import FileKeyValueStore, MappingStore
from .registry import FIELD_MAPPINGS, PDFFieldMapping, load_registry_dir, to_raw
from .templates import TemplateSource

logger = logging.getLogger(__name__)


class PDFAutoFillService:
    def __init__(
        self,
        base_dir: Optional[Path] = None,
        store: Optional[MappingStore] = None,
        s3_client=None,
        pdf_cache_size: Optional[int] = None,
        pdf_cache_ttl: Optional[int] = None,
    ):
        self.base_dir = Path(
            base_dir
            or os.getenv("PDF_AUTOFILL_BASE_DIR")
            or Path(__file__).resolve().parent
        )
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.templates_dir = self.base_dir / "pdf_templates"
        self.field_mappings_dir = self.base_dir / "field_mappings"
        self.generated_dir = self.base_dir / "generated"
        self.generated_dir.mkdir(parents=True, exist_ok=True)

        self.s3_bucket = os.getenv("PDF_AUTOFILL_S3_BUCKET")
        self.s3_prefix = os.getenv("PDF_AUTOFILL_S3_PREFIX", "pdf-autofill/")
        self.s3 = s3_client
        if self.s3_bucket and self.s3 is None:
            self.s3 = boto3.client("s3")

        self.store = store or MappingStore(FileKeyValueStore(self.base_dir / "mappings"))
        self.templates = TemplateSource(
            self.templates_dir,
            s3_bucket=self.s3_bucket,
            s3_prefix=f"{self.s3_prefix}templates/",
            s3_client=self.s3,
        )

        self.registry: Dict[str, PDFFieldMapping] = {}
        self.load_registry()

        self.engine = AutoFillEngine(
            store=self.store,
            registry=self.registry,
            font_name=os.getenv("PDF_AUTOFILL_FONT", "Helvetica"),
            font_path=os.getenv("PDF_AUTOFILL_FONT_PATH"),
        )
        # Persisted PDFs are reloaded from disk or S3 after eviction.
        self._pdf_cache: TTLCache = TTLCache(
            maxsize=pdf_cache_size or int(os.getenv("PDF_AUTOFILL_CACHE_SIZE", "128")),
            ttl=pdf_cache_ttl or int(os.getenv("PDF_AUTOFILL_CACHE_TTL", "3600")),
        )

    # ------------------------------------------------------------------
    # Templates + registry
    # ------------------------------------------------------------------
    def load_registry(self) -> None:
        # Mutated in place so the engine keeps seeing the current entries.
        self.registry.clear()
        self.registry.update(FIELD_MAPPINGS)
        self.registry.update(load_registry_dir(self.field_mappings_dir))

    def list_templates(self, refresh: bool = False) -> List[Dict]:
        if refresh:
            self.load_registry()
        names = set(self.templates.list_names()) | set(self.registry)
        results = []
        for name in sorted(names):
            entry = self.registry.get(name)
            saved = self.store.load(name)
            results.append(
                {
                    "name": name,
                    "registry_type": entry.kind if entry else None,
                    "registry_field_count": len(entry.fields) if entry else 0,
                    "saved_field_count": len(saved.fields) if saved else 0,
                }
            )
        return results

    def get_registry_entry(self, template_name: str) -> Optional[Dict]:
        entry = self.registry.get(template_name)
        return to_raw(entry) if entry else None

    # ------------------------------------------------------------------
    # PDF generation / storage
    # ------------------------------------------------------------------
    def fill_template(
        self,
        template_name: str,
        data: FillData,
        template_bytes: Optional[bytes] = None,
        persist: bool = False,
    ) -> Dict:
        if template_bytes is None:
            template_bytes = self.templates.load(template_name)

        report = self.engine.fill_with_report(template_bytes, template_name, data)

        pdf_id = str(uuid.uuid4())
        metadata = {
            "pdf_id": pdf_id,
            "template_name": template_name,
            "generated_at": dt.datetime.now(dt.timezone.utc).isoformat(),
            "filename": f"{template_name}_{_filename_stem(data)}.pdf".replace(" ", "_"),
        }
        metadata.update(report.summary())
        if report.errors:
            logger.warning(
                "Template %s filled with %d field errors: %s",
                template_name,
                len(report.errors),
                "; ".join(str(e) for e in report.errors),
            )

        self._remember(pdf_id, metadata, report.pdf_bytes, persist)
        return {"metadata": metadata, "bytes": report.pdf_bytes, "report": report}

    def generate_application_pdf(
        self,
        data: ApplicationData,
        template_name: Optional[str] = None,
        persist: bool = False,
    ) -> Dict:
        """Fill `template_name` if it can be loaded, else render a summary document."""
        if template_name:
            try:
                result = self.fill_template(template_name, data, persist=persist)
                return {
                    "success": True,
                    "bytes": result["bytes"],
                    "source": "template",
                    "error": None,
                    "metadata": result["metadata"],
                }
            except TemplateLoadError as exc:
                logger.info("Template %s unavailable, falling back to summary: %s", template_name, exc)
            except MappingNotFoundError as exc:
                return {"success": False, "bytes": None, "source": None, "error": str(exc), "metadata": None}
            except PDFAutoFillError as exc:
                logger.error("PDF generation from template %s failed: %s", template_name, exc)
                return {"success": False, "bytes": None, "source": None, "error": str(exc), "metadata": None}

        pdf_bytes = render_application_summary(data, font_name=self.engine.font_name)
        pdf_id = str(uuid.uuid4())
        metadata = {
            "pdf_id": pdf_id,
            "template_name": None,
            "generated_at": dt.datetime.now(dt.timezone.utc).isoformat(),
            "filename": f"application_{_filename_stem(data)}.pdf".replace(" ", "_"),
        }
        self._remember(pdf_id, metadata, pdf_bytes, persist)
        return {"success": True, "bytes": pdf_bytes, "source": "summary", "error": None, "metadata": metadata}

    def get_pdf(self, pdf_id: str) -> Optional[Dict]:
        entry = self._pdf_cache.get(pdf_id)
        if entry:
            return entry

        try:
            uuid.UUID(pdf_id)
        except ValueError:
            return None

        file_path = self.generated_dir / f"{pdf_id}.pdf"
        if file_path.exists():
            pdf_bytes = file_path.read_bytes()
            metadata_path = file_path.with_suffix(".json")
            metadata = {}
            if metadata_path.exists():
                with metadata_path.open("r", encoding="utf-8") as f:
                    metadata = json.load(f)
            entry = {"metadata": metadata, "bytes": pdf_bytes}
            self._pdf_cache[pdf_id] = entry
            return entry

        if self.s3_bucket:
            key = f"{self.s3_prefix}generated/{pdf_id}.pdf"
            try:
                obj = self.s3.get_object(Bucket=self.s3_bucket, Key=key)
            except ClientError as exc:
                logger.warning("Generated PDF %s not available from S3: %s", key, exc)
                return None
            entry = {"metadata": {"s3_key": key}, "bytes": obj["Body"].read()}
            self._pdf_cache[pdf_id] = entry
            return entry
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _remember(self, pdf_id: str, metadata: Dict, pdf_bytes: bytes, persist: bool) -> None:
        if persist:
            metadata.update(self._store_pdf(pdf_id, metadata, pdf_bytes))
        self._pdf_cache[pdf_id] = {"metadata": metadata, "bytes": pdf_bytes}

    def _store_pdf(self, pdf_id: str, metadata: Dict, pdf_bytes: bytes) -> Dict:
        storage_meta: Dict[str, str] = {}

        if self.s3_bucket:
            key = f"{self.s3_prefix}generated/{pdf_id}.pdf"
            self.s3.put_object(Bucket=self.s3_bucket, Key=key, Body=pdf_bytes, ContentType="application/pdf")
            storage_meta.update({"s3_bucket": self.s3_bucket, "s3_key": key})
        else:
            target = self.generated_dir / f"{pdf_id}.pdf"
            target.write_bytes(pdf_bytes)
            with target.with_suffix(".json").open("w", encoding="utf-8") as f:
                json.dump(metadata, f, indent=2, ensure_ascii=False)
            storage_meta.update({"file_path": str(target)})
        return storage_meta


def _filename_stem(data: FillData) -> str:
    if isinstance(data, ApplicationData):
        name = data.value_for("childName")
    else:
        name = data.get("childName")
    return str(name) if name else "export"
