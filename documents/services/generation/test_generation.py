"""
Tests for the Document Generation Service
"""

import copy
from datetime import date
from decimal import Decimal
from io import BytesIO
from unittest import mock

from django.test import SimpleTestCase, TestCase
from pypdf import PdfReader

from documents.printing.dto import (
    EngineUsed,
    GenerationResult,
    Margins,
    RenderOptions,
    TemplatePreview,
    TemplateRef,
)
from documents.printing.engine import WeasyPrintEngine
from documents.printing.pool import RenderEnginePool
from documents.printing.service import PdfRenderService
from documents.printing.weasyprint_renderer import WEASYPRINT_AVAILABLE
from documents.services.exceptions import (
    CompileError,
    CompileErrorKind,
    FailureCategory,
    GenerationStage,
    LayoutError,
    NotFound,
    PoolExhausted,
    TemplateNotFound,
    ValidationError,
)
from documents.services.generation import DocumentGenerationService
from documents.services.generation.kinds import DOCUMENT_KINDS, Strategy, get_document_kind
from documents.services.generation.mappers import (
    InvoiceContextBuilder,
    PaymentReceiptContextBuilder,
    ServiceProgramContextBuilder,
    age_at_death,
    pluralize_relationship,
)
from documents.services.reporting import ReportService
from documents.services.templates import TemplateRepository


INVOICE_RECORD = {
    'invoice_number': 'INV-1001',
    'issued_on': '2024-03-01',
    'due_on': '2024-03-31',
    'company': {'name': 'Oak Hill Funeral Home', 'address': '1 Main St', 'phone': '5551234567'},
    'bill_to': {'name': 'Jane Doe', 'address': '2 Elm St'},
    'line_items': [
        {'description': 'Professional services', 'quantity': 1, 'unit_price': '2500.00'},
        {'description': 'Memorial folders', 'quantity': 100, 'unit_price': '1.25'},
    ],
    'tax': '0',
    'paid': '0',
    'payment_link': 'https://pay.example.com/INV-1001',
    'payment_instructions': 'Checks payable to Oak Hill Funeral Home',
}

PURCHASE_ORDER_RECORD = {
    'po_number': 'PO-77',
    'ordered_on': '2024-04-02',
    'company': {'name': 'Oak Hill Funeral Home', 'address': '1 Main St'},
    'vendor': {'name': 'Casket Supply Co.', 'address': '9 Industrial Way'},
    'ship_to': {'name': 'Oak Hill Funeral Home'},
    'items': [{'sku': 'C-100', 'description': 'Oak casket', 'quantity': 1, 'unit_cost': '1800.00'}],
    'shipping': '150.00',
    'approved_by': 'R. Hill',
}

RECEIPT_RECORD = {
    'receipt_number': 'R-5',
    'paid_on': '2024-03-15',
    'company': {'name': 'Oak Hill Funeral Home', 'phone': '5551234567'},
    'payer': {'name': 'Jane Doe'},
    'method': 'credit_card',
    'reference': 'AUTH-991',
    'applied_to': [{'invoice_number': 'INV-1001', 'amount': '1000.00'}],
    'remaining_balance': '1625.00',
}

PROGRAM_RECORD = {
    'program_type': 'celebration_of_life',
    'deceased': {
        'full_name': 'Mary Ellen Smith',
        'birth_date': '1950-01-15',
        'death_date': '2024-12-03',
    },
    'service': {
        'date': '2024-12-10',
        'time': '11:00 AM',
        'location': 'Grace Chapel',
        'officiant': 'Rev. Brown',
    },
    'order_of_service': [
        {'title': 'Prelude', 'performed_by': 'Organist'},
        {'title': 'Eulogy', 'performed_by': 'John Smith'},
    ],
    'survivors': [
        {'name': 'John', 'relationship': 'Son'},
        {'name': 'Paul', 'relationship': 'Son'},
        {'name': 'Anna', 'relationship': 'Daughter'},
    ],
    'funeral_home': {'name': 'Oak Hill Funeral Home', 'phone': '5551234567'},
}

PROGRAM_MARKUP = (
    '<h1>{{ program_title }}</h1>'
    '<h2>{{ deceased.full_name }}</h2>'
    '<p class="dates">{{ lifespan }}</p>'
    '<p>{{ service.datetime_display }}, {{ service.location }}</p>'
    '{% if obituary %}<div class="obituary">{{ obituary|nl2br }}</div>{% endif %}'
    '<ol>{% for event in order_of_service %}<li>{{ event.title }} - {{ event.performed_by }}</li>{% endfor %}</ol>'
    '<p>{{ survivors_text }}</p>'
)

PROGRAM_SCHEMA = {
    'deceased.full_name': 'string',
    'order_of_service': 'sequence',
    'obituary': {'type': 'string', 'required': False},
}


def pdf_text(content: bytes) -> str:
    return '\n'.join(page.extract_text() for page in PdfReader(BytesIO(content)).pages)


class MapperTestCase(SimpleTestCase):
    """Test cases for the context builders"""

    def test_invoice_amounts(self):
        context = InvoiceContextBuilder().build_context(INVOICE_RECORD)

        self.assertEqual(context['amounts']['subtotal'], Decimal('2625.00'))
        self.assertEqual(context['amounts']['total'], Decimal('2625.00'))
        self.assertEqual(context['amounts']['amount_due'], Decimal('2625.00'))
        self.assertEqual(context['line_items'][1]['amount'], Decimal('125.00'))
        self.assertEqual(context['issued_on'], date(2024, 3, 1))
        self.assertTrue(context['show_payment_link'])
        self.assertEqual(context['payment']['link'], 'https://pay.example.com/INV-1001')

    def test_paid_invoice_has_no_payment_link(self):
        record = dict(INVOICE_RECORD, paid='3000.00')
        context = InvoiceContextBuilder().build_context(record)

        self.assertEqual(context['amounts']['amount_due'], Decimal('0.00'))
        self.assertFalse(context['show_payment_link'])
        self.assertIsNone(context['payment']['link'])

    def test_invoice_missing_field(self):
        record = dict(INVOICE_RECORD)
        del record['bill_to']

        with self.assertRaises(ValidationError) as cm:
            InvoiceContextBuilder().build_context(record)

        self.assertIn('bill_to', cm.exception.message)

    def test_invoice_filename(self):
        self.assertEqual(InvoiceContextBuilder().get_filename(INVOICE_RECORD), 'invoice_INV-1001.pdf')

    def test_receipt_method_label(self):
        context = PaymentReceiptContextBuilder().build_context(RECEIPT_RECORD)

        self.assertEqual(context['payment']['method'], 'Credit Card')
        self.assertEqual(context['amounts']['paid'], Decimal('1000.00'))

    def test_service_program_derived_fields(self):
        context = ServiceProgramContextBuilder().build_context(PROGRAM_RECORD)

        self.assertEqual(context['program_title'], 'Celebration of Life')
        self.assertEqual(context['lifespan'], 'January 15, 1950 - December 3, 2024')
        self.assertEqual(context['age_at_death'], 74)
        self.assertEqual(context['service']['datetime_display'], 'Tuesday, December 10, 2024 at 11:00 AM')
        self.assertEqual(context['survivors_text'], 'Sons: John, Paul; Daughter: Anna')
        self.assertFalse(context['show_photo'])
        self.assertNotIn('obituary', context)
        self.assertNotIn('pallbearers', context)

    def test_unknown_program_type(self):
        with self.assertRaises(ValidationError):
            ServiceProgramContextBuilder().build_context(dict(PROGRAM_RECORD, program_type='wake'))

    def test_helpers(self):
        self.assertEqual(age_at_death(date(1950, 6, 1), date(2024, 5, 31)), 73)
        self.assertEqual(age_at_death(date(1950, 6, 1), date(2024, 6, 1)), 74)
        self.assertEqual(pluralize_relationship('Wife'), 'Wives')
        self.assertEqual(pluralize_relationship('Granddaughter'), 'Granddaughters')
        self.assertEqual(pluralize_relationship('Baby'), 'Babies')


class DocumentKindTestCase(SimpleTestCase):

    def test_strategies(self):
        self.assertEqual(get_document_kind('invoice').strategy, Strategy.STRUCTURED)
        self.assertEqual(get_document_kind('service_program').strategy, Strategy.TEMPLATED)
        self.assertEqual(len(DOCUMENT_KINDS), 5)

    def test_unknown_kind(self):
        with self.assertRaises(ValidationError):
            get_document_kind('obituary')


class StructuredGenerationTestCase(SimpleTestCase):
    """End-to-end generation of structured documents"""

    def setUp(self):
        self.pdf_service = mock.Mock(spec=PdfRenderService)
        self.service = DocumentGenerationService(
            repository=mock.Mock(spec=TemplateRepository),
            pdf_service=self.pdf_service,
        )

    def test_invoice_end_to_end(self):
        """Test that an invoice renders to a non-empty PDF"""
        result = self.service.generate('invoice', 'tenant-a', INVOICE_RECORD)

        self.assertIsInstance(result, GenerationResult)
        self.assertEqual(result.mime_type, 'application/pdf')
        self.assertEqual(result.engine_used, EngineUsed.STRUCTURED)
        self.assertEqual(result.filename, 'invoice_INV-1001.pdf')
        self.assertIsNone(result.template_version)
        self.assertTrue(result.content.startswith(b'%PDF'))
        self.assertGreater(len(result), 0)

        text = pdf_text(result.content)
        self.assertIn('INV-1001', text)
        self.assertIn('Pay online', text)
        self.pdf_service.render.assert_not_called()

    def test_invoice_is_byte_identical(self):
        """Test that regenerating the same invoice yields the same bytes"""
        first = self.service.generate('invoice', 'tenant-a', INVOICE_RECORD)
        second = self.service.generate('invoice', 'tenant-a', copy.deepcopy(INVOICE_RECORD))

        self.assertEqual(first.content, second.content)

    def test_paid_invoice_has_no_payment_section(self):
        result = self.service.generate('invoice', 'tenant-a', dict(INVOICE_RECORD, paid='2625.00'))

        text = pdf_text(result.content)
        self.assertIn('PAID IN FULL', text)
        self.assertNotIn('Pay online', text)

    def test_other_structured_kinds(self):
        order = self.service.generate('purchase_order', 'tenant-a', PURCHASE_ORDER_RECORD)
        receipt = self.service.generate('payment_receipt', 'tenant-a', RECEIPT_RECORD)

        self.assertEqual(order.filename, 'purchase_order_PO-77.pdf')
        self.assertIn('Approved by R. Hill', pdf_text(order.content))
        self.assertEqual(receipt.filename, 'receipt_R-5.pdf')
        self.assertIn('Remaining balance', pdf_text(receipt.content))

    def test_output_options(self):
        result = self.service.generate(
            'invoice', 'tenant-a', INVOICE_RECORD,
            output_options=RenderOptions(page_size='a4', orientation='landscape'),
        )
        box = PdfReader(BytesIO(result.content)).pages[0].mediabox

        self.assertGreater(float(box.width), float(box.height))

    def test_mapping_failures_are_tagged(self):
        """Test that record, kind and option problems fail at the mapping stage"""
        record = dict(INVOICE_RECORD)
        del record['invoice_number']

        cases = [
            ('invoice', record, None),
            ('obituary', INVOICE_RECORD, None),
            ('invoice', 'not a record', None),
            ('invoice', INVOICE_RECORD, RenderOptions(dpi=200)),
            ('invoice', INVOICE_RECORD, RenderOptions(page_size='tabloid')),
            ('invoice', INVOICE_RECORD, RenderOptions(margins=Margins(top=3))),
        ]
        for kind, data, options in cases:
            with self.subTest(kind=kind, options=options):
                with self.assertRaises(ValidationError) as cm:
                    self.service.generate(kind, 'tenant-a', data, output_options=options)
                self.assertEqual(cm.exception.stage, GenerationStage.MAPPING)
                self.assertEqual(cm.exception.category, FailureCategory.FIX_DATA)

    def test_layout_failure_is_tagged(self):
        service = DocumentGenerationService(
            repository=mock.Mock(spec=TemplateRepository),
            structured_renderer=ReportService(max_group_rows=1),
            pdf_service=self.pdf_service,
        )

        with self.assertRaises(LayoutError) as cm:
            service.generate('invoice', 'tenant-a', INVOICE_RECORD)

        self.assertEqual(cm.exception.stage, GenerationStage.LAYOUT)
        self.assertEqual(cm.exception.reason, 'group_too_large')

    def test_unknown_layout(self):
        with self.assertRaises(NotFound) as cm:
            self.service.generate('invoice', 'tenant-a', INVOICE_RECORD, template_ref=TemplateRef('invoice.v9'))

        self.assertEqual(cm.exception.stage, GenerationStage.TEMPLATE_LOOKUP)

    def test_layout_version_from_template_ref(self):
        """Test that a structured template ref may pin a layout version or follow the latest"""
        renderer = mock.Mock(spec=ReportService)
        renderer.render.return_value = b'%PDF-structured'
        service = DocumentGenerationService(
            repository=mock.Mock(spec=TemplateRepository),
            structured_renderer=renderer,
            pdf_service=self.pdf_service,
        )

        service.generate('invoice', 'tenant-a', INVOICE_RECORD, template_ref=TemplateRef('invoice', version=1))
        service.generate('invoice', 'tenant-a', INVOICE_RECORD, template_ref=TemplateRef('invoice'))
        service.generate('invoice', 'tenant-a', INVOICE_RECORD)

        self.assertEqual(
            [call.args[0] for call in renderer.render.call_args_list],
            ['invoice.v1', 'invoice', 'invoice.v1'],
        )

        with self.assertRaises(NotFound):
            self.service.generate('invoice', 'tenant-a', INVOICE_RECORD, template_ref=TemplateRef('invoice', version=4))


class TemplatedGenerationTestCase(TestCase):
    """Generation of templated documents with a mocked render service"""

    def setUp(self):
        self.repository = TemplateRepository()
        self.pdf_service = mock.Mock(spec=PdfRenderService)
        self.pdf_service.render.side_effect = lambda markup, **kwargs: GenerationResult(
            content=b'%PDF-mock',
            engine_used=EngineUsed.POOLED,
        )
        self.service = DocumentGenerationService(repository=self.repository, pdf_service=self.pdf_service)

    def save_program(self, markup=PROGRAM_MARKUP, tenant_id='tenant-a', **kwargs):
        kwargs.setdefault('document_kind', 'service_program')
        kwargs.setdefault('schema', PROGRAM_SCHEMA)
        return self.repository.save(tenant_id, 'service_program', markup, **kwargs)

    def test_service_program_end_to_end(self):
        self.save_program(css_styles='h1 { font-size: 28pt; }', page_size='legal', print_quality=600)

        result = self.service.generate('service_program', 'tenant-a', PROGRAM_RECORD)

        self.assertEqual(result.engine_used, EngineUsed.POOLED)
        self.assertEqual(result.template_version, 1)
        self.assertEqual(result.filename, 'program_mary_ellen_smith.pdf')

        markup = self.pdf_service.render.call_args.args[0]
        kwargs = self.pdf_service.render.call_args.kwargs
        self.assertIn('<h1>Celebration of Life</h1>', markup)
        self.assertIn('<li>Eulogy - John Smith</li>', markup)
        self.assertIn('Sons: John, Paul; Daughter: Anna', markup)
        self.assertNotIn('class="obituary"', markup)
        self.assertEqual(kwargs['css_styles'], 'h1 { font-size: 28pt; }')
        self.assertEqual(kwargs['options'].page_size, 'legal')
        self.assertEqual(kwargs['options'].dpi, 600)
        self.assertEqual(kwargs['options'].orientation, 'portrait')

    def test_request_options_override_template(self):
        self.save_program(page_size='legal', print_quality=600)

        self.service.generate(
            'service_program', 'tenant-a', PROGRAM_RECORD,
            output_options=RenderOptions(page_size='letter', dpi=150),
        )

        options = self.pdf_service.render.call_args.kwargs['options']
        self.assertEqual(options.page_size, 'letter')
        self.assertEqual(options.dpi, 150)

    def test_current_version_is_used_unless_pinned(self):
        self.save_program('<p>v1 {{ deceased.full_name }}</p>')
        self.save_program('<p>v2 {{ deceased.full_name }}</p>')

        current = self.service.generate('service_program', 'tenant-a', PROGRAM_RECORD)
        self.assertEqual(current.template_version, 2)
        self.assertIn('v2 Mary', self.pdf_service.render.call_args.args[0])

        pinned = self.service.generate(
            'service_program', 'tenant-a', PROGRAM_RECORD,
            template_ref=TemplateRef('service_program', version=1),
        )
        self.assertEqual(pinned.template_version, 1)
        self.assertIn('v1 Mary', self.pdf_service.render.call_args.args[0])

    def test_missing_template(self):
        """Test that a tenant without a template fails at lookup"""
        self.save_program(tenant_id='tenant-b')

        with self.assertRaises(TemplateNotFound) as cm:
            self.service.generate('service_program', 'tenant-a', PROGRAM_RECORD)

        self.assertEqual(cm.exception.stage, GenerationStage.TEMPLATE_LOOKUP)
        self.pdf_service.render.assert_not_called()

    def test_template_kind_mismatch(self):
        self.repository.save('tenant-a', 'service_program', '<p>card</p>', document_kind='prayer_card')

        with self.assertRaises(ValidationError) as cm:
            self.service.generate('service_program', 'tenant-a', PROGRAM_RECORD)

        self.assertEqual(cm.exception.stage, GenerationStage.TEMPLATE_LOOKUP)

    def test_compile_failure_is_tagged(self):
        """Test that an unknown binding stops generation before rendering"""
        self.save_program('<p>{{ deceased.nickname }}</p>')

        with self.assertRaises(CompileError) as cm:
            self.service.generate('service_program', 'tenant-a', PROGRAM_RECORD)

        self.assertEqual(cm.exception.stage, GenerationStage.COMPILATION)
        self.assertEqual(cm.exception.kind, CompileErrorKind.UNKNOWN_BINDING)
        self.assertEqual(cm.exception.expression, 'deceased.nickname')
        self.pdf_service.render.assert_not_called()

    def test_render_failure_keeps_its_stage(self):
        self.save_program()
        self.pdf_service.render.side_effect = PoolExhausted(retry_after=5, stage=GenerationStage.ACQUISITION)

        with self.assertRaises(PoolExhausted) as cm:
            self.service.generate('service_program', 'tenant-a', PROGRAM_RECORD)

        self.assertEqual(cm.exception.stage, GenerationStage.ACQUISITION)
        self.assertTrue(cm.exception.retryable)


class TemplatePreviewTestCase(TestCase):
    """Previewing stored templates against sample data"""

    def setUp(self):
        self.repository = TemplateRepository()
        self.pdf_service = mock.Mock(spec=PdfRenderService)
        self.service = DocumentGenerationService(repository=self.repository, pdf_service=self.pdf_service)
        self.repository.save(
            'tenant-a', 'memorial_card', '<h1>{{ deceased.full_name }}</h1><p>{{ verse }}</p>',
            document_kind='prayer_card', css_styles='h1 { font-size: 20pt; }',
        )

    def test_preview_returns_resolved_html(self):
        preview = self.service.preview(
            'tenant-a', 'memorial_card',
            {'deceased': {'full_name': 'Mary Smith'}, 'verse': 'Psalm 23', 'unused': 1},
        )

        self.assertIsInstance(preview, TemplatePreview)
        self.assertEqual(preview.template_version, 1)
        self.assertEqual(preview.business_key, 'memorial_card')
        self.assertTrue(preview.html.startswith('<!DOCTYPE html>'))
        self.assertIn('<h1>Mary Smith</h1><p>Psalm 23</p>', preview.html)
        self.assertIn('h1 { font-size: 20pt; }', preview.html)
        self.assertIn('verse', preview.consumed_paths)
        self.assertNotIn('unused', preview.consumed_paths)
        self.pdf_service.render.assert_not_called()

    def test_preview_pinned_version(self):
        self.repository.save('tenant-a', 'memorial_card', '<h1>v2</h1>')

        self.assertIn('<h1>v2</h1>', self.service.preview('tenant-a', 'memorial_card', {}).html)
        pinned = self.service.preview(
            'tenant-a', 'memorial_card',
            {'deceased': {'full_name': 'Mary'}, 'verse': ''},
            version=1,
        )
        self.assertEqual(pinned.template_version, 1)
        self.assertIn('<h1>Mary</h1>', pinned.html)

    def test_preview_failures_are_tagged(self):
        with self.assertRaises(ValidationError) as cm:
            self.service.preview('tenant-a', 'memorial_card', ['not', 'an', 'object'])
        self.assertEqual(cm.exception.stage, GenerationStage.MAPPING)

        with self.assertRaises(TemplateNotFound) as cm:
            self.service.preview('tenant-b', 'memorial_card', {})
        self.assertEqual(cm.exception.stage, GenerationStage.TEMPLATE_LOOKUP)

        with self.assertRaises(CompileError) as cm:
            self.service.preview('tenant-a', 'memorial_card', {'deceased': {'full_name': 'Mary'}})
        self.assertEqual(cm.exception.stage, GenerationStage.COMPILATION)
        self.assertEqual(cm.exception.expression, 'verse')

        self.pdf_service.render.assert_not_called()


class PooledGenerationSmokeTestCase(TestCase):
    """Templated generation through a real WeasyPrint engine pool"""

    def setUp(self):
        if not WEASYPRINT_AVAILABLE:
            self.skipTest("WeasyPrint not available")
        self.pool = RenderEnginePool(WeasyPrintEngine, max_size=1, startup_timeout=60, render_timeout=60, reap_interval=3600)

    def tearDown(self):
        self.pool.shutdown(timeout=5)

    def test_prayer_card(self):
        repository = TemplateRepository()
        repository.save(
            'tenant-a', 'prayer_card',
            '<h1>{{ deceased.full_name }}</h1><p>{{ lifespan }}</p><h2>{{ prayer.title }}</h2><p>{{ prayer.text|nl2br }}</p>',
            document_kind='prayer_card',
            page_size='4x6',
        )
        service = DocumentGenerationService(repository=repository, pdf_service=PdfRenderService(pool=self.pool))

        result = service.generate('prayer_card', 'tenant-a', {
            'deceased': {'full_name': 'Mary Ellen Smith', 'birth_date': '1950-01-15', 'death_date': '2024-12-03'},
            'prayer': {'title': 'The Lord is my Shepherd', 'text': 'The Lord is my shepherd;\nI shall not want.'},
            'funeral_home': {'name': 'Oak Hill Funeral Home'},
        })

        self.assertTrue(result.content.startswith(b'%PDF'))
        self.assertEqual(result.filename, 'prayer_card_mary_ellen_smith.pdf')
        box = PdfReader(BytesIO(result.content)).pages[0].mediabox
        self.assertAlmostEqual(float(box.width), 4 * 72, delta=1)
        self.assertIn('Mary Ellen Smith', pdf_text(result.content))
