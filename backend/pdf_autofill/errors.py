"""Exception taxonomy for the PDF auto-fill package."""

from __future__ import annotations


class PDFAutoFillError(RuntimeError):
    """Base class for all auto-fill errors."""


class TemplateLoadError(PDFAutoFillError):
    """Template bytes could not be fetched or parsed."""


class MappingNotFoundError(PDFAutoFillError):
    """Neither a saved mapping nor a registry entry exists for a template."""

    def __init__(self, template_name: str):
        self.template_name = template_name
        super().__init__(
            f"No field mapping configured for template '{template_name}'. "
            "Configure it in the mapping editor first."
        )


class FieldRenderError(PDFAutoFillError):
    """A single field could not be drawn or set."""

    def __init__(self, field_key: str, reason: str):
        self.field_key = field_key
        self.reason = reason
        super().__init__(f"{field_key}: {reason}")


class MappingStoreError(PDFAutoFillError):
    """Persisting a mapping record failed."""


class RegistryError(PDFAutoFillError):
    """A static registry entry is malformed."""
