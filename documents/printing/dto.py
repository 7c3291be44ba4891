"""
Data Transfer Objects for the Printing Framework
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from django.utils import timezone


PDF_MIME_TYPE = 'application/pdf'

# Page sizes in inches (width, height), portrait
PAGE_SIZES_INCHES = {
    'letter': (8.5, 11.0),
    'a4': (8.27, 11.69),
    'legal': (8.5, 14.0),
    '4x6': (4.0, 6.0),
    '5x7': (5.0, 7.0),
}


class EngineUsed(str, Enum):
    STRUCTURED = 'structured'
    POOLED = 'pooled'


@dataclass(frozen=True)
class Margins:
    """Page margins in inches."""

    top: float = 0.5
    right: float = 0.5
    bottom: float = 0.5
    left: float = 0.5


@dataclass(frozen=True)
class RenderOptions:
    """
    Output options for a single document.

    Unset fields fall back to the template version's settings, then to the
    pipeline configuration.
    """

    dpi: Optional[int] = None
    page_size: Optional[str] = None
    orientation: Optional[str] = None
    margins: Optional[Margins] = None

    def merged_with(self, defaults: 'RenderOptions') -> 'RenderOptions':
        """Return options where every unset field is taken from ``defaults``."""
        return replace(
            self,
            dpi=self.dpi if self.dpi is not None else defaults.dpi,
            page_size=self.page_size or defaults.page_size,
            orientation=self.orientation or defaults.orientation,
            margins=self.margins or defaults.margins,
        )

    def page_dimensions_in_pixels(self) -> tuple[int, int]:
        """Page (width, height) in pixels at the configured DPI, honoring orientation."""
        width, height = PAGE_SIZES_INCHES[self.page_size or 'letter']
        dpi = self.dpi or 300
        if self.orientation == 'landscape':
            width, height = height, width
        return round(width * dpi), round(height * dpi)

    def page_css(self) -> str:
        """@page rule applying page size, orientation and margins."""
        width, height = PAGE_SIZES_INCHES[self.page_size or 'letter']
        if self.orientation == 'landscape':
            width, height = height, width
        margins = self.margins or Margins()
        return (
            f"@page {{ size: {width}in {height}in; "
            f"margin: {margins.top}in {margins.right}in {margins.bottom}in {margins.left}in; }}"
        )


@dataclass(frozen=True)
class TemplateRef:
    """Explicit template selection; version None means the current version."""

    business_key: str
    version: Optional[int] = None


@dataclass(frozen=True)
class RenderRequest:
    """Immutable per-call request assembled by the generation service."""

    document_kind: str
    tenant_id: str
    data_context: Any
    template_ref: Optional[TemplateRef] = None
    output_options: RenderOptions = field(default_factory=RenderOptions)


@dataclass(frozen=True)
class CompiledMarkup:
    """
    Fully resolved markup plus the binding paths the template consumed.
    """

    markup: str
    consumed_paths: frozenset = frozenset()

    def __len__(self) -> int:
        return len(self.markup)


@dataclass
class GenerationResult:
    """
    Result of a document generation.

    Contains the document bytes and metadata for transport.
    """

    content: bytes
    engine_used: EngineUsed
    filename: str = 'document.pdf'
    mime_type: str = PDF_MIME_TYPE
    generated_at: datetime = field(default_factory=timezone.now)
    template_version: Optional[int] = None

    def __len__(self) -> int:
        """Return the size of the document in bytes"""
        return len(self.content)


@dataclass
class TemplatePreview:
    """
    HTML preview of a stored template compiled against sample data.

    No PDF is rendered; ``html`` is the document an engine would receive.
    """

    html: str
    business_key: str
    template_version: int
    consumed_paths: frozenset = frozenset()

    def to_dict(self) -> dict:
        return {
            'html': self.html,
            'business_key': self.business_key,
            'template_version': self.template_version,
            'consumed_paths': sorted(self.consumed_paths),
        }
