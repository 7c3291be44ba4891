"""
Named helper functions available to markup templates and structured layouts.

The set is fixed. Templates call them either as filters
(``{{ service.date|format_date("MM/DD/YYYY") }}``) or as functions
(``{{ format_currency(amounts.total, "$") }}``); both forms are arity-checked.
"""

import functools
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

from markupsafe import Markup, escape

from ..exceptions import CompileError, CompileErrorKind, ValidationError


MONTHS = (
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
)

DATE_FORMATS = ('MMMM D, YYYY', 'MM/DD/YYYY', 'YYYY')
DEFAULT_DATE_FORMAT = 'MMMM D, YYYY'


def _coerce_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Cannot format {value!r} as a date")


def format_date(value: Any, fmt: str = DEFAULT_DATE_FORMAT) -> str:
    """
    Format a date.

    Supported formats: 'MMMM D, YYYY' (January 15, 1950),
    'MM/DD/YYYY' (01/15/1950) and 'YYYY' (1950). Empty values format
    as an empty string.
    """
    if value is None or value == '':
        return ''
    if fmt not in DATE_FORMATS:
        raise CompileError(
            f"Unsupported date format {fmt!r}; expected one of {DATE_FORMATS}",
            kind=CompileErrorKind.MALFORMED_EXPRESSION,
            expression='format_date',
        )
    d = _coerce_date(value)
    if fmt == 'MM/DD/YYYY':
        return f"{d.month:02d}/{d.day:02d}/{d.year}"
    if fmt == 'YYYY':
        return str(d.year)
    return f"{MONTHS[d.month - 1]} {d.day}, {d.year}"


def format_currency(value: Any, symbol: str = '') -> str:
    """Format an amount with two decimals and thousands separators (1,234.50)."""
    if isinstance(value, bool):
        raise ValidationError(f"Cannot format {value!r} as currency")
    try:
        amount = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Cannot format {value!r} as currency")
    sign = '-' if amount < 0 else ''
    return f"{sign}{symbol}{abs(amount):,.2f}"


def ordinal(value: Any) -> str:
    """Return an ordinal for an integer index (1st, 2nd, 3rd, 11th, 22nd)."""
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Cannot use {value!r} as an ordinal index")
    if 10 <= n % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(n % 10, 'th')
    return f"{n}{suffix}"


def format_phone(value: Any) -> str:
    """Format a 10-digit phone number as (555) 123-4567; other values pass through."""
    if not value:
        return ''
    text = str(value)
    digits = re.sub(r'\D', '', text)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return text


def nl2br(value: Any) -> Markup:
    """Escape text and turn newlines into <br> tags."""
    if not value:
        return Markup('')
    return Markup('<br>').join(escape(line) for line in str(value).splitlines())


def rich_text(value: Any) -> Markup:
    """Emit sanitized HTML from a rich-text data value."""
    # Imported here to keep the sanitizer's bleach import out of structured rendering
    from documents.printing.sanitizer import sanitize_html

    if not value:
        return Markup('')
    return Markup(sanitize_html(str(value), strict=True))


@dataclass(frozen=True)
class Helper:
    name: str
    func: Callable
    min_args: int
    max_args: int

    def expected(self) -> str:
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"


HELPERS = {
    helper.name: helper
    for helper in (
        Helper('format_date', format_date, 1, 2),
        Helper('format_currency', format_currency, 1, 2),
        Helper('ordinal', ordinal, 1, 1),
        Helper('format_phone', format_phone, 1, 1),
        Helper('nl2br', nl2br, 1, 1),
        Helper('rich_text', rich_text, 1, 1),
    )
}


def arity_checked(helper: Helper) -> Callable:
    """Wrap a helper so a wrong argument count raises CompileError(HELPER_ARITY_MISMATCH)."""

    @functools.wraps(helper.func)
    def call(*args, **kwargs):
        if kwargs or not helper.min_args <= len(args) <= helper.max_args:
            given = len(args) + len(kwargs)
            raise CompileError(
                f"Helper '{helper.name}' takes {helper.expected()} argument(s), got {given}",
                kind=CompileErrorKind.HELPER_ARITY_MISMATCH,
                expression=helper.name,
            )
        return helper.func(*args)

    return call


def checked_helpers() -> dict[str, Callable]:
    return {name: arity_checked(helper) for name, helper in HELPERS.items()}
