"""
PDF Styling

Paragraph and table styles shared by all structured layouts. Layout nodes
refer to paragraph styles by name (``Text(..., style='ReportAmount')``).
"""

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import TableStyle


INK = colors.HexColor('#1a1a1a')
TEXT = colors.HexColor('#000000')
MUTED = colors.HexColor('#666666')
RULE = colors.HexColor('#cccccc')
HEADER_FILL = colors.HexColor('#4a5568')
STRIPE_FILL = colors.HexColor('#f7fafc')

# name: (parent, font size, color, alignment, bold, extra attributes)
PARAGRAPH_STYLES = {
    'ReportTitle': ('Heading1', 18, INK, TA_LEFT, True, {'spaceAfter': 14}),
    'ReportHeading': ('Heading2', 13, colors.HexColor('#333333'), TA_LEFT, True, {'spaceBefore': 10, 'spaceAfter': 8}),
    'ReportBody': ('BodyText', 10, TEXT, TA_LEFT, False, {'spaceAfter': 4}),
    'ReportMuted': ('BodyText', 8, MUTED, TA_LEFT, False, {}),
    'ReportAmount': ('BodyText', 12, INK, TA_RIGHT, True, {'spaceBefore': 6}),
    'ReportFooter': ('Normal', 8, MUTED, TA_CENTER, False, {}),
    'TableHeader': ('Normal', 9, colors.white, TA_LEFT, True, {}),
    'TableCell': ('Normal', 9, TEXT, TA_LEFT, False, {}),
    'TableCellRight': ('Normal', 9, TEXT, TA_RIGHT, False, {}),
}


def get_report_styles() -> dict[str, ParagraphStyle]:
    """
    Build the named paragraph styles.

    Returns:
        Dictionary of style name to ParagraphStyle
    """
    sample = getSampleStyleSheet()
    return {
        name: ParagraphStyle(
            name,
            parent=sample[parent],
            fontSize=size,
            leading=size * 1.2,
            textColor=color,
            alignment=alignment,
            fontName='Helvetica-Bold' if bold else 'Helvetica',
            **extra
        )
        for name, (parent, size, color, alignment, bold, extra) in PARAGRAPH_STYLES.items()
    }


def get_table_style():
    """Repeating-group table: shaded header row, striped body, light grid."""
    return TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), HEADER_FILL),
        ('TOPPADDING', (0, 0), (-1, 0), 6),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 6),
        ('TOPPADDING', (0, 1), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 1), (-1, -1), 4),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, STRIPE_FILL]),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ])


def get_key_value_style():
    """Label/value rows without a grid."""
    return TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('TOPPADDING', (0, 0), (-1, -1), 2),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
    ])


def get_totals_style():
    """Totals block under a repeating group; the last row is the grand total."""
    return TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TOPPADDING', (0, 0), (-1, -1), 2),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
        ('LINEABOVE', (0, -1), (-1, -1), 0.75, INK),
    ])
