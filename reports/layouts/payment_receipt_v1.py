"""
Payment Receipt Layout (v1)

Expected data (see documents.services.generation.mappers.PaymentReceiptContextBuilder):
{
    'company': {'name', 'address', 'phone'},
    'receipt_number': str,
    'paid_on': date,
    'payer': {'name'},
    'payment': {'method': str, 'reference': str (optional)},
    'applied_to': [{'invoice_number', 'amount'}],
    'amounts': {'paid', 'remaining_balance'},
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
    Text,
)


def build_layout() -> Layout:
    return Layout(
        key='payment_receipt.v1',
        title='Receipt {receipt_number}',
        header=PageRegion(title='{company.name}', subtitle='Payment Receipt'),
        footer=PageRegion(title='{company.name} - {company.phone:phone}'),
        body=(
            Text('Payment Receipt', style='ReportTitle'),
            KeyValueTable(rows=(
                ('Receipt number', '{receipt_number}'),
                ('Date', '{paid_on:date}'),
                ('Received from', '{payer.name}'),
                ('Method', '{payment.method}'),
            )),
            Text('Reference: {payment.reference}', optional=True),
            Section(title='Applied To', children=(
                RepeatingGroup(
                    path='applied_to',
                    columns=(
                        Column('Invoice', '{invoice_number}', width_cm=8.0),
                        Column('Amount', '{amount:currency}', width_cm=4.0, align='RIGHT'),
                    ),
                    empty_text='Payment on account.',
                    totals=(('Amount paid', '<b>{amounts.paid:currency}</b>'),),
                ),
            )),
            Conditional(
                name='remaining_balance',
                when=Condition('amounts.remaining_balance', 'gt', 0),
                children=(Text('Remaining balance: {amounts.remaining_balance:currency}', style='ReportAmount'),),
            ),
            Text('Thank you for your payment.', style='ReportMuted'),
        ),
    )
