"""
Structured Renderer

Renders typed layouts (see layout.py) straight to PDF with ReportLab
Platypus. No markup stage and no external process: rendering owns no shared
state, so concurrent calls need no coordination.
"""

import logging
import string
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Optional, Union
from xml.sax.saxutils import escape

from reportlab.lib.units import cm, inch
from reportlab.platypus import (
    Image as ImageFlowable,
    KeepTogether,
    PageBreak as PageBreakFlowable,
    Paragraph,
    SimpleDocTemplate,
    Spacer as SpacerFlowable,
    Table,
)

from documents.printing.dto import PAGE_SIZES_INCHES, Margins, RenderOptions
from ..config import get_pipeline_config
from ..exceptions import CompileError, LayoutError, ValidationError
from ..templating.context import MISSING, DataContext, lookup
from ..templating.helpers import (
    DEFAULT_DATE_FORMAT,
    format_currency,
    format_date,
    format_phone,
    ordinal,
)
from .canvas import create_header_footer_function
from .layout import (
    ComposedDocument,
    Conditional,
    Image,
    KeyValueTable,
    Layout,
    PageBreak,
    RepeatingGroup,
    Section,
    Spacer,
    Text,
)
from .registry import get_layout
from .styles import get_key_value_style, get_report_styles, get_table_style, get_totals_style


logger = logging.getLogger(__name__)

_formatter = string.Formatter()

ROW_NUMBER = 'row.number'
ROOT_PREFIX = 'root.'

# Space reserved for the canvas-drawn header and footer
HEADER_CLEARANCE = 2.4 * cm
FOOTER_CLEARANCE = 2.0 * cm


class _Scope:
    """
    Resolution scope: the whole context, or one repeating-group row.

    Inside a row, paths resolve against that row only, so a field missing
    from the row is reported instead of being taken from the top level.
    ``root.<path>`` always resolves against the whole context and
    ``row.number`` is the 1-based row number.
    """

    def __init__(self, context: DataContext, row: Any = None, row_number: Optional[int] = None, prefix: str = ''):
        self.context = context
        self.row = row
        self.row_number = row_number
        self.prefix = prefix

    def resolve(self, path: str) -> Any:
        if path.startswith(ROOT_PREFIX):
            return self.context.resolve(path[len(ROOT_PREFIX):])
        if self.row_number is None:
            return self.context.resolve(path)
        if path == ROW_NUMBER:
            return self.row_number
        return lookup(self.row, path)

    def describe(self, path: str) -> str:
        """Full path for error messages."""
        if path.startswith(ROOT_PREFIX):
            return path[len(ROOT_PREFIX):]
        return f"{self.prefix}.{path}" if self.prefix else path


def _display(value: Any, path: str) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, (dict, list)):
        raise LayoutError(
            f"Field '{path}' is a {type(value).__name__}, not a printable value",
            path=path,
            reason='invalid_value',
        )
    if isinstance(value, str):
        return value
    if hasattr(value, 'year'):
        return format_date(value, DEFAULT_DATE_FORMAT)
    return str(value)


def _format_value(value: Any, spec: str, path: str) -> str:
    if value is None:
        return ''
    if not spec:
        return _display(value, path)

    name, _, arg = spec.partition(':')
    formatters = {
        'currency': lambda v: format_currency(v, arg or '$'),
        'number': lambda v: format_currency(v),
        'date': lambda v: format_date(v, arg or DEFAULT_DATE_FORMAT),
        'ordinal': ordinal,
        'phone': format_phone,
        'upper': lambda v: _display(v, path).upper(),
    }
    formatter = formatters.get(name)
    if formatter is None:
        raise LayoutError(f"Unknown format '{spec}' for field '{path}'", path=path, reason='invalid_layout')

    try:
        return formatter(value)
    except CompileError as e:
        raise LayoutError(f"Invalid format '{spec}' for field '{path}'", path=path, reason='invalid_layout') from e
    except ValidationError as e:
        raise LayoutError(f"Field '{path}': {e.message}", path=path, reason='invalid_value') from e


def fill(template: str, scope: _Scope, *, markup: bool = True) -> str:
    """
    Substitute placeholders in a text template.

    Args:
        template: Text with ``{path}`` / ``{path:format}`` placeholders
        scope: Resolution scope
        markup: Escape values for Platypus paragraph markup

    Raises:
        LayoutError: missing_field if a placeholder does not resolve
    """
    parts = []
    try:
        parsed = list(_formatter.parse(template))
    except ValueError as e:
        raise LayoutError(f"Malformed text template {template!r}: {e}", reason='invalid_layout') from e

    for literal, field_name, spec, _ in parsed:
        parts.append(literal)
        if field_name is None:
            continue
        value = scope.resolve(field_name)
        if value is MISSING:
            path = scope.describe(field_name)
            raise LayoutError(f"Required field '{path}' is missing", path=path)
        text = _format_value(value, spec or '', field_name)
        parts.append(escape(text) if markup else text)
    return ''.join(parts)


def _as_number(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise LayoutError(f"Field '{path}' must be a number to compare", path=path, reason='invalid_value')
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise LayoutError(f"Field '{path}' is not a valid number", path=path, reason='invalid_value') from e


def holds(condition, scope: _Scope) -> bool:
    """Evaluate a Condition against a scope."""
    value = scope.resolve(condition.path)
    if condition.op == 'present':
        return value is not MISSING and value is not None
    if value is MISSING:
        path = scope.describe(condition.path)
        raise LayoutError(f"Required field '{path}' is missing", path=path)
    if condition.op == 'truthy':
        return bool(value)

    if isinstance(condition.value, (int, float, Decimal)) and not isinstance(condition.value, bool):
        left, right = _as_number(value, condition.path), Decimal(str(condition.value))
    else:
        left, right = value, condition.value

    if condition.op == 'eq':
        return left == right
    if condition.op == 'ne':
        return left != right
    try:
        return {
            'gt': left > right,
            'ge': left >= right,
            'lt': left < right,
            'le': left <= right,
        }[condition.op]
    except TypeError as e:
        raise LayoutError(
            f"Cannot compare field '{condition.path}' with {condition.value!r}",
            path=condition.path,
            reason='invalid_value',
        ) from e


class ReportService:
    """
    Structured renderer for tightly specified business documents.

    This service provides:
    - Layout tree to PDF rendering using ReportLab Platypus
    - Conditional regions and bounded repeating groups
    - Repeatable generation (same layout and data give byte-identical output)

    Usage:
        service = ReportService()
        pdf_bytes = service.render('invoice.v1', invoice_data)
    """

    def __init__(self, max_group_rows: Optional[int] = None, default_options: Optional[RenderOptions] = None):
        """
        Args:
            max_group_rows: Row limit per repeating group (defaults to MAX_GROUP_ROWS)
            default_options: Page settings used where a request leaves them unset
        """
        config = get_pipeline_config()
        self.max_group_rows = max_group_rows or config.max_group_rows
        self.default_options = default_options or RenderOptions(
            dpi=config.output_dpi,
            orientation='portrait',
            margins=Margins(),
        )

    def render(
        self,
        layout: Union[Layout, str],
        data: Any,
        options: Optional[RenderOptions] = None
    ) -> bytes:
        """
        Render a layout to PDF bytes.

        Args:
            layout: Layout or registered layout key ('invoice.v1', or 'invoice'
                for the latest registered version)
            data: DataContext or mapping of render-ready data
            options: Page size, orientation and margins

        Returns:
            PDF content as bytes

        Raises:
            LayoutError: If a required field is absent or a group is too large
            ValidationError: If the data contains unsupported values
            KeyError: If a layout key is not registered
        """
        return self.build(layout, data, options).content

    def build(
        self,
        layout: Union[Layout, str],
        data: Any,
        options: Optional[RenderOptions] = None
    ) -> ComposedDocument:
        """Render a layout and return the PDF with the regions that were included."""
        if isinstance(layout, str):
            layout = get_layout(layout)
        context = data if isinstance(data, DataContext) else DataContext(data)
        options = (options or RenderOptions()).merged_with(
            self.default_options.merged_with(RenderOptions(page_size=layout.page_size))
        )

        composed = self.compose(layout, context)
        scope = _Scope(context)

        header = layout.header
        on_page = create_header_footer_function(
            title=fill(header.title, scope, markup=False) if header else None,
            subtitle=fill(header.subtitle, scope, markup=False) if header and header.subtitle else None,
            footer_text=fill(layout.footer.title, scope, markup=False) if layout.footer else None,
        )

        buffer = BytesIO()
        margins = options.margins
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self._page_size(options),
            leftMargin=margins.left * inch,
            rightMargin=margins.right * inch,
            topMargin=max(margins.top * inch, HEADER_CLEARANCE) if header else margins.top * inch,
            bottomMargin=max(margins.bottom * inch, FOOTER_CLEARANCE),
            title=fill(layout.title, scope, markup=False) if layout.title else '',
            invariant=1,
        )
        doc.build(composed.story, onFirstPage=on_page, onLaterPages=on_page)

        composed.content = buffer.getvalue()
        composed.page_count = doc.page
        buffer.close()

        logger.debug(
            f"Rendered layout {layout.key}: {composed.page_count} page(s), "
            f"{len(composed.content)} bytes, regions={composed.included_regions}"
        )
        return composed

    def compose(self, layout: Layout, data: Any) -> ComposedDocument:
        """
        Bind a layout to data and build the Platypus story without rendering.

        Raises:
            LayoutError: If a required field is absent or a group is too large
        """
        context = data if isinstance(data, DataContext) else DataContext(data)
        composed = ComposedDocument(story=[])
        styles = get_report_styles()
        for node in layout.body:
            composed.story.extend(self._build_node(node, _Scope(context), styles, composed))
        return composed

    def _build_node(self, node, scope: _Scope, styles: dict, composed: ComposedDocument) -> list:
        if isinstance(node, Text):
            return self._build_text(node, scope, styles)

        if isinstance(node, KeyValueTable):
            rows = [
                [Paragraph(escape(label), styles['ReportBody']), Paragraph(fill(template, scope), styles['ReportBody'])]
                for label, template in node.rows
            ]
            table = Table(rows, colWidths=[node.label_width_cm * cm, None], hAlign='LEFT')
            table.setStyle(get_key_value_style())
            return [table]

        if isinstance(node, RepeatingGroup):
            return self._build_group(node, scope, styles)

        if isinstance(node, Conditional):
            if not holds(node.when, scope):
                composed.excluded_regions.append(node.name)
                return []
            composed.included_regions.append(node.name)
            return self._build_children(node.children, scope, styles, composed)

        if isinstance(node, Section):
            flowables = []
            if node.title:
                flowables.append(Paragraph(fill(node.title, scope), styles['ReportHeading']))
            flowables.extend(self._build_children(node.children, scope, styles, composed))
            if node.keep_together and flowables:
                return [KeepTogether(flowables)]
            return flowables

        if isinstance(node, Spacer):
            return [SpacerFlowable(1, node.height_cm * cm)]

        if isinstance(node, PageBreak):
            return [PageBreakFlowable()]

        if isinstance(node, Image):
            source = scope.resolve(node.path)
            if source is MISSING or source is None or source == '':
                if node.optional:
                    return []
                raise LayoutError(f"Required image '{node.path}' is missing", path=node.path)
            return [ImageFlowable(source, width=node.width_cm * cm, height=node.height_cm * cm)]

        raise LayoutError(f"Unsupported layout node {type(node).__name__}", reason='invalid_layout')

    def _build_children(self, children, scope, styles, composed) -> list:
        flowables = []
        for child in children:
            flowables.extend(self._build_node(child, scope, styles, composed))
        return flowables

    def _build_text(self, node: Text, scope: _Scope, styles: dict) -> list:
        style = styles.get(node.style)
        if style is None:
            raise LayoutError(f"Unknown paragraph style '{node.style}'", reason='invalid_layout')
        try:
            text = fill(node.template, scope)
        except LayoutError as e:
            if node.optional and e.reason == 'missing_field':
                return []
            raise
        if node.optional and not text.strip():
            return []
        return [Paragraph(text, style)]

    def _build_group(self, group: RepeatingGroup, scope: _Scope, styles: dict) -> list:
        items = scope.resolve(group.path)
        if items is MISSING:
            raise LayoutError(f"Required field '{group.path}' is missing", path=group.path)
        if not isinstance(items, list):
            raise LayoutError(
                f"Field '{group.path}' must be a sequence for a repeating group",
                path=group.path,
                reason='invalid_value',
            )

        limit = min(group.max_rows, self.max_group_rows) if group.max_rows else self.max_group_rows
        if len(items) > limit:
            raise LayoutError(
                f"Repeating group '{group.path}' has {len(items)} rows, more than the maximum of {limit}",
                path=group.path,
                reason='group_too_large',
            )

        flowables = []
        if not items:
            if group.empty_text:
                flowables.append(Paragraph(fill(group.empty_text, scope), styles['ReportMuted']))
        else:
            header = [Paragraph(escape(column.header), styles['TableHeader']) for column in group.columns]
            rows = [header]
            for number, item in enumerate(items, start=1):
                row_scope = _Scope(scope.context, item, number, prefix=f"{group.path}.{number - 1}")
                rows.append([
                    Paragraph(
                        fill(column.template, row_scope),
                        styles['TableCellRight'] if column.align == 'RIGHT' else styles['TableCell'],
                    )
                    for column in group.columns
                ])
            widths = [column.width_cm * cm if column.width_cm else None for column in group.columns]
            table = Table(rows, colWidths=widths, repeatRows=1, hAlign='LEFT')
            table.setStyle(get_table_style())
            flowables.append(table)

        if group.totals:
            totals = [
                [Paragraph(escape(label), styles['TableCellRight']), Paragraph(fill(template, scope), styles['TableCellRight'])]
                for label, template in group.totals
            ]
            table = Table(totals, colWidths=[4 * cm, 3 * cm], hAlign='RIGHT')
            table.setStyle(get_totals_style())
            flowables.append(table)
        return flowables

    @staticmethod
    def _page_size(options: RenderOptions) -> tuple:
        width, height = PAGE_SIZES_INCHES[options.page_size]
        if options.orientation == 'landscape':
            width, height = height, width
        return width * inch, height * inch
