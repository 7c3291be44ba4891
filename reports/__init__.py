"""
Reports package

Contains structured layouts for PDF generation.
"""

from documents.services.reporting.registry import is_registered, register_layout
from .layouts import invoice_v1, payment_receipt_v1, purchase_order_v1


LAYOUTS = {
    'invoice.v1': invoice_v1.build_layout,
    'purchase_order.v1': purchase_order_v1.build_layout,
    'payment_receipt.v1': payment_receipt_v1.build_layout,
}


def register_all_layouts():
    """Register all available layouts"""
    for key, factory in LAYOUTS.items():
        if not is_registered(key):
            register_layout(key, factory)


# Auto-register layouts when module is imported
register_all_layouts()
