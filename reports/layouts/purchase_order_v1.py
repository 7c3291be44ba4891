"""
Purchase Order Layout (v1)

Expected data (see documents.services.generation.mappers.PurchaseOrderContextBuilder):
{
    'company': {'name', 'address', 'phone'},
    'po_number': str,
    'ordered_on': date,
    'vendor': {'name', 'address'},
    'ship_to': {'name', 'address'},
    'items': [{'sku', 'description', 'quantity', 'unit_cost', 'amount'}],
    'amounts': {'subtotal', 'shipping', 'tax', 'total'},
    'approved_by': str (optional),
    'notes': str (optional),
}
"""

from documents.services.reporting.layout import (
    Column,
    Condition,
    Conditional,
    KeyValueTable,
    Layout,
    PageRegion,
    RepeatingGroup,
    Section,
    Spacer,
    Text,
)


def build_layout() -> Layout:
    return Layout(
        key='purchase_order.v1',
        title='Purchase Order {po_number}',
        header=PageRegion(title='{company.name}', subtitle='Purchase Order {po_number}'),
        footer=PageRegion(title='{company.address}'),
        body=(
            Text('Purchase Order', style='ReportTitle'),
            KeyValueTable(rows=(
                ('PO number', '{po_number}'),
                ('Order date', '{ordered_on:date}'),
            )),
            Spacer(0.4),
            Section(title='Vendor', children=(
                Text('<b>{vendor.name}</b>'),
                Text('{vendor.address}', optional=True),
            )),
            Section(title='Ship To', children=(
                Text('<b>{ship_to.name}</b>'),
                Text('{ship_to.address}', optional=True),
            )),
            Section(title='Items', children=(
                RepeatingGroup(
                    path='items',
                    columns=(
                        Column('SKU', '{sku}', width_cm=2.5),
                        Column('Description', '{description}', width_cm=8.0),
                        Column('Qty', '{quantity}', width_cm=1.5, align='RIGHT'),
                        Column('Unit Cost', '{unit_cost:currency}', width_cm=2.6, align='RIGHT'),
                        Column('Amount', '{amount:currency}', width_cm=2.6, align='RIGHT'),
                    ),
                    totals=(
                        ('Subtotal', '{amounts.subtotal:currency}'),
                        ('Shipping', '{amounts.shipping:currency}'),
                        ('Tax', '{amounts.tax:currency}'),
                        ('Total', '<b>{amounts.total:currency}</b>'),
                    ),
                ),
            )),
            Conditional(
                name='approval',
                when=Condition('approved_by', 'present'),
                children=(Text('Approved by {approved_by}'),),
            ),
            Text('{notes}', style='ReportMuted', optional=True),
        ),
    )
