"""
Page decorations drawn on every page of a structured document: a running
header (layout title and subtitle), a footer line and the page number.
"""

from reportlab.lib.units import cm
from reportlab.pdfbase.pdfmetrics import stringWidth

from .styles import INK, MUTED, RULE


ELLIPSIS = '...'


def fit_text(text: str, font: str, size: float, max_width: float) -> str:
    """Shorten text with an ellipsis so it fits max_width points."""
    if stringWidth(text, font, size) <= max_width:
        return text
    while text and stringWidth(text + ELLIPSIS, font, size) > max_width:
        text = text[:-1]
    return text.rstrip() + ELLIPSIS


def _rule(canvas, doc, y):
    canvas.setStrokeColor(RULE)
    canvas.setLineWidth(0.5)
    canvas.line(doc.leftMargin, y, doc.pagesize[0] - doc.rightMargin, y)


def _text_line(canvas, doc, y, text, font, size, color):
    width = doc.pagesize[0] - doc.leftMargin - doc.rightMargin
    canvas.setFont(font, size)
    canvas.setFillColor(color)
    canvas.drawString(doc.leftMargin, y, fit_text(text, font, size, width))


def draw_header(canvas, doc, title, subtitle=None):
    top = doc.pagesize[1]
    _text_line(canvas, doc, top - 1.2 * cm, title, 'Helvetica-Bold', 12, INK)
    if subtitle:
        _text_line(canvas, doc, top - 1.7 * cm, subtitle, 'Helvetica', 9, MUTED)
    _rule(canvas, doc, top - (2.0 * cm if subtitle else 1.5 * cm))


def draw_footer(canvas, doc, footer_text=None):
    """Footer rule, optional left-aligned text and the centered page number."""
    _rule(canvas, doc, 1.6 * cm)
    if footer_text:
        _text_line(canvas, doc, 1.2 * cm, footer_text, 'Helvetica', 8, MUTED)

    canvas.setFont('Helvetica', 8)
    canvas.setFillColor(MUTED)
    canvas.drawCentredString(doc.pagesize[0] / 2, 0.8 * cm, f"Page {canvas.getPageNumber()}")


def create_header_footer_function(title=None, subtitle=None, footer_text=None):
    """
    Create the onPage callback for SimpleDocTemplate.build().

    Args:
        title: Running header title; no header is drawn when empty
        subtitle: Optional second header line
        footer_text: Optional footer text

    Returns:
        Function(canvas, doc) drawing header and footer
    """
    def header_footer(canvas, doc):
        canvas.saveState()
        if title:
            draw_header(canvas, doc, title, subtitle)
        draw_footer(canvas, doc, footer_text)
        canvas.restoreState()

    return header_footer
