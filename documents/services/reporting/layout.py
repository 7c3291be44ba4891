"""
Typed layout descriptions for the structured renderer.

A Layout is a tree of immutable nodes bound to a data context at render time.
Text fields use placeholders addressing the data by dot-path, with an
optional format:

    "Invoice {invoice_number}"
    "Total: {amounts.total:currency}"
    "Issued {issued_on:date:MM/DD/YYYY}"

Inside a RepeatingGroup, placeholders resolve against the current row only
(``{description}``); ``{root.currency}`` reaches the whole context and
``{row.number}`` is the 1-based row number.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


CONDITION_OPERATORS = ('gt', 'ge', 'lt', 'le', 'eq', 'ne', 'truthy', 'present')


@dataclass(frozen=True)
class Text:
    """Paragraph with placeholders. Optional text is skipped when a field is absent."""

    template: str
    style: str = 'ReportBody'
    optional: bool = False


@dataclass(frozen=True)
class KeyValueTable:
    """Two-column label/value table, e.g. bill-to or payment details."""

    rows: tuple
    label_width_cm: float = 5.0


@dataclass(frozen=True)
class Column:
    header: str
    template: str
    width_cm: Optional[float] = None
    align: str = 'LEFT'


@dataclass(frozen=True)
class RepeatingGroup:
    """
    One table row per item of the sequence at ``path``.

    Attributes:
        max_rows: Per-group row limit; None uses the configured MAX_GROUP_ROWS
        empty_text: Shown instead of the table when the sequence is empty
        totals: Extra (label, template) rows appended below the table
    """

    path: str
    columns: tuple
    max_rows: Optional[int] = None
    empty_text: Optional[str] = None
    totals: tuple = ()


@dataclass(frozen=True)
class Condition:
    """Predicate on a data path. ``present`` and ``truthy`` ignore ``value``."""

    path: str
    op: str = 'truthy'
    value: Any = None

    def __post_init__(self):
        if self.op not in CONDITION_OPERATORS:
            raise ValueError(f"Unknown condition operator '{self.op}'")


@dataclass(frozen=True)
class Conditional:
    """Named region included only when ``when`` holds."""

    name: str
    when: Condition
    children: tuple = ()


@dataclass(frozen=True)
class Section:
    children: tuple = ()
    title: Optional[str] = None
    keep_together: bool = False


@dataclass(frozen=True)
class Spacer:
    height_cm: float = 0.5


@dataclass(frozen=True)
class PageBreak:
    pass


@dataclass(frozen=True)
class Image:
    """Image whose file path or URL comes from the data at ``path``."""

    path: str
    width_cm: float = 4.0
    height_cm: float = 2.0
    optional: bool = True


@dataclass(frozen=True)
class PageRegion:
    """Header or footer drawn on every page (templates are single-line)."""

    title: str = ''
    subtitle: Optional[str] = None


@dataclass(frozen=True)
class Layout:
    """
    Complete document layout.

    Attributes:
        key: Registry key, e.g. 'invoice.v1'
        body: Top-level nodes in document order
        header: Optional header region drawn on every page
        footer: Optional footer region; page numbers are always drawn
    """

    key: str
    body: tuple
    header: Optional[PageRegion] = None
    footer: Optional[PageRegion] = None
    page_size: str = 'letter'
    title: str = ''


Node = Union[Text, KeyValueTable, RepeatingGroup, Conditional, Section, Spacer, PageBreak, Image]


@dataclass
class ComposedDocument:
    """Platypus story plus the conditional regions that made it in."""

    story: list
    content: bytes = b''
    included_regions: list = field(default_factory=list)
    excluded_regions: list = field(default_factory=list)
    page_count: int = 0
