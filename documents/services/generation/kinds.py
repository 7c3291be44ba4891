"""
Document kinds and their rendering strategy.

Structured kinds render a registered layout directly; templated kinds
compile a tenant's current markup template and render it on the engine pool.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from documents.printing.interfaces import IContextBuilder
from ..exceptions import ValidationError
from .mappers import (
    InvoiceContextBuilder,
    PaymentReceiptContextBuilder,
    PrayerCardContextBuilder,
    PurchaseOrderContextBuilder,
    ServiceProgramContextBuilder,
)


class Strategy(str, Enum):
    STRUCTURED = 'structured'
    TEMPLATED = 'templated'


@dataclass(frozen=True)
class DocumentKindSpec:
    """
    Attributes:
        kind: Document kind discriminator
        strategy: Rendering strategy
        builder_factory: Creates the IContextBuilder for this kind
        layout_key: Registered layout (structured kinds)
        default_business_key: Template used when the request names none
            (templated kinds)
    """

    kind: str
    strategy: Strategy
    builder_factory: Callable[[], IContextBuilder]
    layout_key: Optional[str] = None
    default_business_key: Optional[str] = None


DOCUMENT_KINDS = {
    spec.kind: spec
    for spec in (
        DocumentKindSpec('invoice', Strategy.STRUCTURED, InvoiceContextBuilder, layout_key='invoice.v1'),
        DocumentKindSpec('purchase_order', Strategy.STRUCTURED, PurchaseOrderContextBuilder, layout_key='purchase_order.v1'),
        DocumentKindSpec('payment_receipt', Strategy.STRUCTURED, PaymentReceiptContextBuilder, layout_key='payment_receipt.v1'),
        DocumentKindSpec('service_program', Strategy.TEMPLATED, ServiceProgramContextBuilder, default_business_key='service_program'),
        DocumentKindSpec('prayer_card', Strategy.TEMPLATED, PrayerCardContextBuilder, default_business_key='prayer_card'),
    )
}


def get_document_kind(kind: str) -> DocumentKindSpec:
    """
    Raises:
        ValidationError: If the kind is unknown
    """
    spec = DOCUMENT_KINDS.get(kind)
    if spec is None:
        raise ValidationError(
            f"Unknown document kind '{kind}'; expected one of {', '.join(DOCUMENT_KINDS)}"
        )
    return spec
