"""
Context builders: domain records to render-ready data.

Records arrive already validated upstream (amounts calculated by the
financial backend, dates checked against each other). Builders only reshape
them and derive display fields; a field that is missing or has the wrong
shape raises ValidationError naming its path.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from documents.printing.interfaces import IContextBuilder
from ..exceptions import ValidationError
from ..templating.helpers import format_date


MISSING = object()


def _get(record: dict, path: str, default: Any = MISSING) -> Any:
    current = record
    for segment in path.split('.'):
        if not isinstance(current, dict) or current.get(segment) is None:
            if default is MISSING:
                raise ValidationError(f"Record field '{path}' is required")
            return default
        current = current[segment]
    return current


def _text(record: dict, path: str, default: Any = MISSING) -> Any:
    value = _get(record, path, default)
    if value is default and default is not MISSING:
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Record field '{path}' must be text")
    return value


def _money(record: dict, path: str, default: Any = MISSING) -> Decimal:
    value = _get(record, path, default)
    if isinstance(value, bool):
        raise ValidationError(f"Record field '{path}' must be an amount")
    try:
        return Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Record field '{path}' must be an amount, got {value!r}")


def _date(record: dict, path: str, default: Any = MISSING) -> Optional[date]:
    value = _get(record, path, default)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError(f"Record field '{path}' must be an ISO date, got {value!r}")


def _quantity(item: dict, path: str) -> Decimal:
    value = item.get('quantity', 1)
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)) or value <= 0:
        raise ValidationError(f"Record field '{path}' must be a positive number")
    return Decimal(str(value))


def _items(record: dict, path: str, default: Any = MISSING) -> list:
    value = _get(record, path, default)
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, dict) for item in value):
        raise ValidationError(f"Record field '{path}' must be a list of objects")
    return list(value)


def _party(record: dict, path: str) -> dict:
    party = _get(record, path)
    if not isinstance(party, dict):
        raise ValidationError(f"Record field '{path}' must be an object")
    result = {'name': _text(record, f'{path}.name')}
    for optional in ('address', 'phone'):
        if party.get(optional):
            result[optional] = _text(record, f'{path}.{optional}')
    return result


def _company(record: dict) -> dict:
    company = _party(record, 'company')
    company.setdefault('address', '')
    company.setdefault('phone', '')
    return company


def _copy_optional(source: dict, target: dict, *keys) -> None:
    for key in keys:
        if source.get(key) not in (None, ''):
            target[key] = source[key]


class InvoiceContextBuilder(IContextBuilder):
    """
    Invoice record to invoice.v1 data.

    Record:
        invoice_number, issued_on, due_on, company{name, address, phone},
        bill_to{name, address}, line_items[{description, quantity,
        unit_price, amount}], subtotal, tax, total, paid, payment_link,
        payment_instructions, notes
    """

    def build_context(self, obj: Any, *, tenant_id: str = None) -> dict:
        line_items = []
        for index, item in enumerate(_items(obj, 'line_items')):
            quantity = _quantity(item, f'line_items.{index}.quantity')
            unit_price = _money(item, 'unit_price')
            amount = _money(item, 'amount', unit_price * quantity)
            line_items.append({
                'description': _text(item, 'description'),
                'quantity': quantity,
                'unit_price': unit_price,
                'amount': amount,
            })

        subtotal = _money(obj, 'subtotal', sum((item['amount'] for item in line_items), Decimal('0.00')))
        tax = _money(obj, 'tax', Decimal('0.00'))
        total = _money(obj, 'total', subtotal + tax)
        paid = _money(obj, 'paid', Decimal('0.00'))
        amount_due = max(total - paid, Decimal('0.00'))

        payment_link = _text(obj, 'payment_link', None)
        context = {
            'company': _company(obj),
            'invoice_number': str(_get(obj, 'invoice_number')),
            'issued_on': _date(obj, 'issued_on'),
            'due_on': _date(obj, 'due_on'),
            'bill_to': _party(obj, 'bill_to'),
            'line_items': line_items,
            'amounts': {
                'subtotal': subtotal,
                'tax': tax,
                'total': total,
                'paid': paid,
                'amount_due': amount_due,
            },
            'show_payment_link': amount_due > 0 and bool(payment_link),
            'payment': {
                'link': payment_link if amount_due > 0 else None,
                'instructions': _text(obj, 'payment_instructions', ''),
            },
        }
        _copy_optional(obj, context, 'notes')
        return context

    def get_filename(self, obj: Any) -> str:
        return f"invoice_{_get(obj, 'invoice_number', 'draft')}.pdf"


class PurchaseOrderContextBuilder(IContextBuilder):
    """
    Purchase order record to purchase_order.v1 data.

    Record:
        po_number, ordered_on, company, vendor{name, address},
        ship_to{name, address}, items[{sku, description, quantity,
        unit_cost, amount}], shipping, tax, total, approved_by, notes
    """

    def build_context(self, obj: Any, *, tenant_id: str = None) -> dict:
        items = []
        for index, item in enumerate(_items(obj, 'items')):
            quantity = _quantity(item, f'items.{index}.quantity')
            unit_cost = _money(item, 'unit_cost')
            items.append({
                'sku': str(_get(item, 'sku', '')),
                'description': _text(item, 'description'),
                'quantity': quantity,
                'unit_cost': unit_cost,
                'amount': _money(item, 'amount', unit_cost * quantity),
            })

        subtotal = sum((item['amount'] for item in items), Decimal('0.00'))
        shipping = _money(obj, 'shipping', Decimal('0.00'))
        tax = _money(obj, 'tax', Decimal('0.00'))
        context = {
            'company': _company(obj),
            'po_number': str(_get(obj, 'po_number')),
            'ordered_on': _date(obj, 'ordered_on'),
            'vendor': _party(obj, 'vendor'),
            'ship_to': _party(obj, 'ship_to'),
            'items': items,
            'amounts': {
                'subtotal': subtotal,
                'shipping': shipping,
                'tax': tax,
                'total': _money(obj, 'total', subtotal + shipping + tax),
            },
        }
        _copy_optional(obj, context, 'approved_by', 'notes')
        return context

    def get_filename(self, obj: Any) -> str:
        return f"purchase_order_{_get(obj, 'po_number', 'draft')}.pdf"


class PaymentReceiptContextBuilder(IContextBuilder):
    """
    Payment record to payment_receipt.v1 data.

    Record:
        receipt_number, paid_on, company, payer{name}, method, reference,
        applied_to[{invoice_number, amount}], amount, remaining_balance
    """

    METHOD_LABELS = {
        'cash': 'Cash',
        'check': 'Check',
        'credit_card': 'Credit Card',
        'ach': 'ACH Transfer',
        'wire': 'Wire Transfer',
    }

    def build_context(self, obj: Any, *, tenant_id: str = None) -> dict:
        applied_to = [
            {
                'invoice_number': str(_get(item, 'invoice_number')),
                'amount': _money(item, 'amount'),
            }
            for item in _items(obj, 'applied_to', [])
        ]
        method = _text(obj, 'method')
        payment = {'method': self.METHOD_LABELS.get(method, method)}
        _copy_optional(obj, payment, 'reference')

        return {
            'company': _company(obj),
            'receipt_number': str(_get(obj, 'receipt_number')),
            'paid_on': _date(obj, 'paid_on'),
            'payer': {'name': _text(obj, 'payer.name')},
            'payment': payment,
            'applied_to': applied_to,
            'amounts': {
                'paid': _money(obj, 'amount', sum((item['amount'] for item in applied_to), Decimal('0.00'))),
                'remaining_balance': _money(obj, 'remaining_balance', Decimal('0.00')),
            },
        }

    def get_filename(self, obj: Any) -> str:
        return f"receipt_{_get(obj, 'receipt_number', 'draft')}.pdf"


PROGRAM_TITLES = {
    'funeral': 'Funeral Service',
    'memorial': 'Memorial Service',
    'celebration_of_life': 'Celebration of Life',
}

IRREGULAR_PLURALS = {
    'Wife': 'Wives',
    'Child': 'Children',
    'Person': 'People',
}


def age_at_death(birth_date: date, death_date: date) -> int:
    age = death_date.year - birth_date.year
    if (death_date.month, death_date.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def lifespan(birth_date: date, death_date: date) -> str:
    """'January 15, 1950 - December 3, 2024'"""
    return f"{format_date(birth_date)} - {format_date(death_date)}"


def pluralize_relationship(relationship: str) -> str:
    if relationship in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[relationship]
    if relationship.endswith('y'):
        return relationship[:-1] + 'ies'
    return relationship + 's'


def group_survivors(survivors: list) -> list[dict]:
    """Group survivors by relationship, in order of first appearance."""
    grouped = {}
    for survivor in survivors:
        grouped.setdefault(survivor['relationship'], []).append(survivor['name'])

    groups = []
    for relationship, names in grouped.items():
        label = relationship if len(names) == 1 else pluralize_relationship(relationship)
        groups.append({'label': label, 'names': names, 'text': f"{label}: {', '.join(names)}"})
    return groups


def _deceased(obj: dict) -> dict:
    birth_date = _date(obj, 'deceased.birth_date')
    death_date = _date(obj, 'deceased.death_date')
    deceased = {
        'full_name': _text(obj, 'deceased.full_name'),
        'birth_date': birth_date,
        'death_date': death_date,
    }
    _copy_optional(obj['deceased'], deceased, 'birth_place', 'photo_url')
    return deceased


class ServiceProgramContextBuilder(IContextBuilder):
    """
    Funeral service program record to template data.

    Record:
        program_type, deceased{full_name, birth_date, death_date,
        birth_place, photo_url}, service{date, time, location,
        location_address, officiant}, order_of_service[{title, description,
        performed_by}], survivors[{name, relationship}], obituary,
        acknowledgements, pallbearers[str], funeral_home{name, address, phone}
    """

    def build_context(self, obj: Any, *, tenant_id: str = None) -> dict:
        deceased = _deceased(obj)
        program_type = _text(obj, 'program_type', 'funeral')
        if program_type not in PROGRAM_TITLES:
            raise ValidationError(f"Unknown program type '{program_type}'")

        service_date = _date(obj, 'service.date')
        service = {
            'date': service_date,
            'time': _text(obj, 'service.time'),
            'location': _text(obj, 'service.location'),
        }
        _copy_optional(obj['service'], service, 'location_address', 'officiant')
        service['datetime_display'] = (
            f"{service_date.strftime('%A')}, {format_date(service_date)} at {service['time']}"
        )

        order_of_service = []
        for event in _items(obj, 'order_of_service'):
            entry = {'title': _text(event, 'title')}
            _copy_optional(event, entry, 'description', 'performed_by')
            order_of_service.append(entry)

        survivors = [
            {'name': _text(s, 'name'), 'relationship': _text(s, 'relationship')}
            for s in _items(obj, 'survivors', [])
        ]
        survivor_groups = group_survivors(survivors)

        context = {
            'program_title': PROGRAM_TITLES[program_type],
            'deceased': deceased,
            'lifespan': lifespan(deceased['birth_date'], deceased['death_date']),
            'age_at_death': age_at_death(deceased['birth_date'], deceased['death_date']),
            'show_photo': bool(deceased.get('photo_url')),
            'service': service,
            'order_of_service': order_of_service,
            'survivors': survivors,
            'survivor_groups': survivor_groups,
            'survivors_text': '; '.join(group['text'] for group in survivor_groups),
            'funeral_home': _party(obj, 'funeral_home'),
        }
        _copy_optional(obj, context, 'obituary', 'acknowledgements')
        if obj.get('pallbearers'):
            context['pallbearers'] = [str(name) for name in obj['pallbearers']]
        return context

    def get_filename(self, obj: Any) -> str:
        name = _get(obj, 'deceased.full_name', 'service')
        return f"program_{name.lower().replace(' ', '_')}.pdf"


class PrayerCardContextBuilder(IContextBuilder):
    """
    Prayer card record to template data.

    Record:
        deceased{full_name, birth_date, death_date, photo_url},
        prayer{title, text}, funeral_home{name, phone}
    """

    def build_context(self, obj: Any, *, tenant_id: str = None) -> dict:
        deceased = _deceased(obj)
        return {
            'deceased': deceased,
            'lifespan': lifespan(deceased['birth_date'], deceased['death_date']),
            'show_photo': bool(deceased.get('photo_url')),
            'prayer': {
                'title': _text(obj, 'prayer.title'),
                'text': _text(obj, 'prayer.text'),
            },
            'funeral_home': _party(obj, 'funeral_home'),
        }

    def get_filename(self, obj: Any) -> str:
        name = _get(obj, 'deceased.full_name', 'card')
        return f"prayer_card_{name.lower().replace(' ', '_')}.pdf"
