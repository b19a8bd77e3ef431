"""
Template byte source: ``<templates_dir>/<name>.pdf`` or an S3 object.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import TemplateLoadError

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class TemplateSource:
    def __init__(
        self,
        templates_dir: Path,
        s3_bucket: Optional[str] = None,
        s3_prefix: str = "templates/",
        s3_client=None,
    ):
        self.templates_dir = Path(templates_dir)
        self.s3_bucket = s3_bucket
        self.s3_prefix = s3_prefix
        self.s3 = s3_client
        if self.s3_bucket and self.s3 is None:
            self.s3 = boto3.client("s3")

    def load(self, template_name: str) -> bytes:
        if not _SAFE_NAME.match(template_name) or template_name.startswith("."):
            raise TemplateLoadError(f"Invalid template name '{template_name}'")

        candidate = self.templates_dir / f"{template_name}.pdf"
        if candidate.exists():
            try:
                data = candidate.read_bytes()
            except OSError as exc:
                raise TemplateLoadError(f"Could not read template '{template_name}': {exc}") from exc
        elif self.s3_bucket:
            data = self._load_s3(template_name)
        else:
            raise TemplateLoadError(f"PDF template '{template_name}' not found in {self.templates_dir}")

        if not data:
            raise TemplateLoadError(f"PDF template '{template_name}' is empty")
        return data

    def _load_s3(self, template_name: str) -> bytes:
        key = f"{self.s3_prefix}{template_name}.pdf"
        try:
            obj = self.s3.get_object(Bucket=self.s3_bucket, Key=key)
            data = obj["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise TemplateLoadError(
                f"Failed to download template '{key}' from bucket '{self.s3_bucket}'"
            ) from exc
        logger.info("Downloaded template %s/%s (%d bytes)", self.s3_bucket, key, len(data) if data else 0)
        return data

    def list_names(self) -> List[str]:
        names = set()
        if self.templates_dir.exists():
            names.update(p.stem for p in self.templates_dir.glob("*.pdf"))
        if self.s3_bucket:
            paginator = self.s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.s3_bucket, Prefix=self.s3_prefix):
                for item in page.get("Contents", []):
                    key = item["Key"]
                    if key.endswith(".pdf"):
                        names.add(Path(key).stem)
        return sorted(names)
