"""
HTML Sanitizer for Printing Framework

Cleans tenant-supplied rich text before it is emitted as HTML into a
compiled template. Everything else a template renders is autoescaped; only
values passed through the ``rich_text`` helper go through here.
"""

import logging
import re

import bleach
from bleach.css_sanitizer import CSSSanitizer


logger = logging.getLogger(__name__)


# Allowlist for obituary text, program notes and similar rich-text fields
ALLOWED_TAGS = [
    'p', 'br', 'strong', 'em', 'u', 's', 'b', 'i', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'blockquote', 'ol', 'ul', 'li',
    'span', 'div', 'table', 'thead', 'tbody', 'tr', 'th', 'td',
    'hr',
]

ALLOWED_ATTRIBUTES = {
    '*': ['class', 'style'],
    'td': ['colspan', 'rowspan'],
    'th': ['colspan', 'rowspan'],
}

ALLOWED_CSS_PROPERTIES = [
    'color', 'background-color', 'font-size', 'font-weight', 'font-style',
    'text-align', 'text-decoration', 'margin', 'padding',
]

# Stripping keeps element text; these elements lose their content too
DROPPED_ELEMENTS = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)


def sanitize_html(html: str, *, strict: bool = False) -> str:
    """
    Sanitize HTML content before it is rendered to PDF.

    Disallowed tags are stripped (their text is kept); script and style
    blocks are dropped whole. Links and images never survive, so a tenant
    value cannot pull remote resources into the rendering engine.

    Args:
        html: HTML string to sanitize
        strict: If True, uses stricter rules (no inline styles)

    Returns:
        Sanitized HTML string
    """
    attrs = dict(ALLOWED_ATTRIBUTES)

    css_sanitizer = None
    if strict:
        attrs['*'] = [a for a in attrs['*'] if a != 'style']
    else:
        css_sanitizer = CSSSanitizer(allowed_css_properties=ALLOWED_CSS_PROPERTIES)

    clean_html = bleach.clean(
        DROPPED_ELEMENTS.sub('', html),
        tags=ALLOWED_TAGS,
        attributes=attrs,
        css_sanitizer=css_sanitizer,
        strip=True,
    )

    if clean_html != html:
        logger.debug("Sanitizer removed disallowed markup from rich text value")
    return clean_html
