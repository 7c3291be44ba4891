"""
Invoice Layout (v1)

Expected data (see documents.services.generation.mappers.InvoiceContextBuilder):
{
    'company': {'name': str, 'address': str, 'phone': str},
    'invoice_number': str,
    'issued_on': date,
    'due_on': date,
    'bill_to': {'name': str, 'address': str},
    'line_items': [{'description', 'quantity', 'unit_price', 'amount'}],
    'amounts': {'subtotal', 'tax', 'total', 'paid', 'amount_due'},
    'payment': {'link': str | None, 'instructions': str},
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
        key='invoice.v1',
        title='Invoice {invoice_number}',
        header=PageRegion(title='{company.name}', subtitle='Invoice {invoice_number}'),
        footer=PageRegion(title='{company.name} - {company.phone:phone}'),
        body=(
            Text('Invoice', style='ReportTitle'),
            KeyValueTable(rows=(
                ('Invoice number', '{invoice_number}'),
                ('Issued', '{issued_on:date}'),
                ('Due', '{due_on:date}'),
            )),
            Spacer(0.4),
            Section(
                title='Bill To',
                children=(
                    Text('<b>{bill_to.name}</b>'),
                    Text('{bill_to.address}', optional=True),
                ),
            ),
            Section(
                title='Services and Merchandise',
                children=(
                    RepeatingGroup(
                        path='line_items',
                        columns=(
                            Column('#', '{row.number}', width_cm=1.0),
                            Column('Description', '{description}', width_cm=9.0),
                            Column('Qty', '{quantity}', width_cm=1.5, align='RIGHT'),
                            Column('Unit Price', '{unit_price:currency}', width_cm=2.8, align='RIGHT'),
                            Column('Amount', '{amount:currency}', width_cm=2.8, align='RIGHT'),
                        ),
                        empty_text='No line items.',
                        totals=(
                            ('Subtotal', '{amounts.subtotal:currency}'),
                            ('Tax', '{amounts.tax:currency}'),
                            ('Total', '<b>{amounts.total:currency}</b>'),
                            ('Paid', '{amounts.paid:currency}'),
                        ),
                    ),
                ),
            ),
            Spacer(0.4),
            Conditional(
                name='payment_instructions',
                when=Condition('amounts.amount_due', 'gt', 0),
                children=(
                    Section(
                        title='Payment',
                        keep_together=True,
                        children=(
                            Text('Balance due: {amounts.amount_due:currency}', style='ReportAmount'),
                            Text('{payment.instructions}', optional=True),
                            Conditional(
                                name='payment_link',
                                when=Condition('payment.link', 'present'),
                                children=(Text('Pay online: {payment.link}'),),
                            ),
                        ),
                    ),
                ),
            ),
            Conditional(
                name='paid_in_full',
                when=Condition('amounts.amount_due', 'le', 0),
                children=(Text('PAID IN FULL - thank you.', style='ReportAmount'),),
            ),
            Text('{notes}', style='ReportMuted', optional=True),
        ),
    )
