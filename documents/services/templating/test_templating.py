"""
Tests for the Template Compiler
"""

from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase

from documents.services.exceptions import CompileError, CompileErrorKind, ValidationError
from documents.services.templating import BindingSchema, DataContext, TemplateCompiler
from documents.services.templating.context import MISSING
from documents.services.templating.helpers import format_currency, format_date, format_phone, ordinal


class DataContextTestCase(SimpleTestCase):
    """Test cases for DataContext"""

    def test_resolves_dot_paths(self):
        """Test nested mapping and sequence lookups"""
        context = DataContext({
            'deceased': {'full_name': 'Mary Smith'},
            'events': [{'title': 'Prelude'}, {'title': 'Hymn'}],
        })

        self.assertEqual(context.resolve('deceased.full_name'), 'Mary Smith')
        self.assertEqual(context.resolve('events.1.title'), 'Hymn')
        self.assertIs(context.resolve('events.5.title'), MISSING)
        self.assertIs(context.resolve('deceased.middle_name'), MISSING)
        self.assertIn('deceased.full_name', context)

    def test_rejects_unsupported_values(self):
        """Test that values outside the supported kinds are rejected with their path"""
        with self.assertRaises(ValidationError) as cm:
            DataContext({'service': {'venue': object()}})

        self.assertIn('service.venue', str(cm.exception))

    def test_copies_source_data(self):
        """Test that later changes to the source do not leak into the context"""
        source = {'names': ['Anna']}
        context = DataContext(source)
        source['names'].append('Ben')

        self.assertEqual(context.resolve('names'), ['Anna'])

    def test_with_value_returns_new_context(self):
        """Test that with_value leaves the original untouched"""
        context = DataContext({'a': {'b': 1}})
        updated = context.with_value('a.c', 2)

        self.assertIs(context.resolve('a.c'), MISSING)
        self.assertEqual(updated.resolve('a.c'), 2)
        self.assertEqual(updated.resolve('a.b'), 1)


class TemplateCompilerTestCase(SimpleTestCase):
    """Test cases for TemplateCompiler"""

    def setUp(self):
        self.compiler = TemplateCompiler()
        self.data = {
            'deceased': {
                'full_name': 'Mary Ellen Smith',
                'date_of_birth': date(1950, 1, 15),
                'date_of_death': date(2024, 3, 2),
            },
            'order_of_service': [
                {'title': 'Prelude', 'participant': 'Organist'},
                {'title': 'Eulogy', 'participant': 'John Smith'},
                {'title': 'Benediction', 'participant': 'Rev. Brown'},
            ],
            'amounts': {'amount_due': Decimal('0.00')},
            'unused': 'never referenced',
        }

    def test_substitutes_bindings(self):
        """Test variable substitution"""
        compiled = self.compiler.compile('<h1>{{ deceased.full_name }}</h1>', self.data)

        self.assertEqual(compiled.markup, '<h1>Mary Ellen Smith</h1>')

    def test_escapes_data_values(self):
        """Test that data values cannot inject markup"""
        compiled = self.compiler.compile('<p>{{ name }}</p>', {'name': '<script>x</script>'})

        self.assertNotIn('<script>', compiled.markup)
        self.assertIn('&lt;script&gt;', compiled.markup)

    def test_unknown_nested_binding_names_full_path(self):
        """Test that an unresolved nested binding fails instead of rendering empty"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('<p>{{ deceased.middle_name }}</p>', self.data)

        self.assertEqual(cm.exception.kind, CompileErrorKind.UNKNOWN_BINDING)
        self.assertEqual(cm.exception.expression, 'deceased.middle_name')

    def test_null_binding_renders_empty(self):
        """Test that a present binding holding null prints nothing rather than 'None'"""
        compiled = self.compiler.compile(
            '<p>[{{ deceased.middle_name }}]</p>{% if deceased.middle_name %}x{% endif %}',
            {'deceased': {'middle_name': None}},
        )

        self.assertEqual(compiled.markup, '<p>[]</p>')
        self.assertIn('deceased.middle_name', compiled.consumed_paths)

    def test_null_binding_in_helper_still_reaches_helper(self):
        compiled = self.compiler.compile('{{ note|default("n/a", true) }}', {'note': None})

        self.assertEqual(compiled.markup, 'n/a')

    def test_unknown_root_binding(self):
        """Test that an unresolved top-level binding fails"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('{{ obituary_text }}', self.data)

        self.assertEqual(cm.exception.kind, CompileErrorKind.UNKNOWN_BINDING)
        self.assertEqual(cm.exception.expression, 'obituary_text')

    def test_unknown_binding_in_condition(self):
        """Test that conditions on missing data fail instead of evaluating false"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('{% if amounts.paid > 0 %}paid{% endif %}', self.data)

        self.assertEqual(cm.exception.kind, CompileErrorKind.UNKNOWN_BINDING)

    def test_malformed_expression(self):
        """Test that syntax errors are reported as malformed expressions"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('<p>{{ deceased.full_name </p>', self.data)

        self.assertEqual(cm.exception.kind, CompileErrorKind.MALFORMED_EXPRESSION)
        self.assertEqual(cm.exception.lineno, 1)

    def test_unknown_helper_filter_is_malformed(self):
        """Test that an unknown helper used as a filter is rejected"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('{{ deceased.full_name|shout }}', self.data)

        self.assertEqual(cm.exception.kind, CompileErrorKind.MALFORMED_EXPRESSION)

    def test_helper_arity_mismatch(self):
        """Test that helpers called with the wrong number of arguments fail"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('{{ ordinal(1, 2) }}', self.data)
        self.assertEqual(cm.exception.kind, CompileErrorKind.HELPER_ARITY_MISMATCH)
        self.assertEqual(cm.exception.expression, 'ordinal')

        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('{{ deceased.date_of_birth|format_date("YYYY", "x") }}', self.data)
        self.assertEqual(cm.exception.kind, CompileErrorKind.HELPER_ARITY_MISMATCH)

    def test_sandbox_blocks_internal_attributes(self):
        """Test that templates cannot reach Python internals"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile("{{ ''.__class__ }}", self.data)

        self.assertEqual(cm.exception.kind, CompileErrorKind.MALFORMED_EXPRESSION)

    def test_iteration_preserves_source_order(self):
        """Test loops emit items in data order with ordinal helpers"""
        markup = (
            '{% for event in order_of_service %}'
            '{{ loop.index|ordinal }} {{ event.title }};'
            '{% endfor %}'
        )
        compiled = self.compiler.compile(markup, self.data)

        self.assertEqual(compiled.markup, '1st Prelude;2nd Eulogy;3rd Benediction;')

    def test_conditional_blocks(self):
        """Test that conditional blocks include or omit content"""
        markup = '{% if amounts.amount_due > 0 %}Pay now{% else %}Paid in full{% endif %}'

        self.assertEqual(self.compiler.compile(markup, self.data).markup, 'Paid in full')

        data = dict(self.data, amounts={'amount_due': Decimal('12.50')})
        self.assertEqual(self.compiler.compile(markup, data).markup, 'Pay now')

    def test_helpers_in_markup(self):
        """Test helpers as filters and functions"""
        markup = (
            '{{ deceased.date_of_birth|format_date }} - '
            '{{ deceased.date_of_death|format_date("MM/DD/YYYY") }} '
            '{{ format_currency(1234.5, "$") }}'
        )
        compiled = self.compiler.compile(markup, self.data)

        self.assertEqual(compiled.markup, 'January 15, 1950 - 03/02/2024 $1,234.50')

    def test_consumed_paths(self):
        """Test that only referenced bindings are reported as consumed"""
        markup = (
            '{{ deceased.full_name }}'
            '{% for event in order_of_service %}{{ event.title }}{% endfor %}'
        )
        compiled = self.compiler.compile(markup, self.data)

        self.assertIn('deceased', compiled.consumed_paths)
        self.assertIn('deceased.full_name', compiled.consumed_paths)
        self.assertIn('order_of_service.0.title', compiled.consumed_paths)
        self.assertIn('order_of_service.2.title', compiled.consumed_paths)
        self.assertNotIn('unused', compiled.consumed_paths)
        self.assertNotIn('deceased.date_of_birth', compiled.consumed_paths)

    def test_compilation_is_deterministic(self):
        """Test that the same markup and data always compile to the same output"""
        markup = '{% for e in order_of_service %}<li>{{ e.participant }}</li>{% endfor %}'

        first = self.compiler.compile(markup, self.data)
        second = self.compiler.compile(markup, DataContext(self.data))

        self.assertEqual(first.markup, second.markup)
        self.assertEqual(first.consumed_paths, second.consumed_paths)

    def test_parsed_templates_are_cached(self):
        """Test that parsing the same markup twice returns the cached template"""
        markup = '<p>{{ deceased.full_name }}</p>'

        self.assertIs(self.compiler.parse(markup), self.compiler.parse(markup))


class BindingSchemaTestCase(SimpleTestCase):
    """Test cases for binding schemas"""

    def setUp(self):
        self.compiler = TemplateCompiler()
        self.schema = BindingSchema.from_dict({
            'deceased.full_name': 'string',
            'obituary_text': {'type': 'string', 'required': False},
            'pallbearers': {'type': 'sequence', 'required': False},
        })

    def test_absent_optional_bindings_render_empty(self):
        """Test that absent optional bindings are filled with empty values"""
        markup = (
            '{{ deceased.full_name }}[{{ obituary_text }}]'
            '{% for name in pallbearers %}{{ name }}{% endfor %}'
        )
        compiled = self.compiler.compile(markup, {'deceased': {'full_name': 'Mary'}}, self.schema)

        self.assertEqual(compiled.markup, 'Mary[]')

    def test_absent_required_binding_fails(self):
        """Test that absent required bindings fail compilation"""
        with self.assertRaises(CompileError) as cm:
            self.compiler.compile('{{ obituary_text }}', {'obituary_text': 'x'}, self.schema)

        self.assertEqual(cm.exception.kind, CompileErrorKind.UNKNOWN_BINDING)
        self.assertEqual(cm.exception.expression, 'deceased.full_name')

    def test_mistyped_binding_fails(self):
        """Test that a present value of the wrong kind is a validation error"""
        with self.assertRaises(ValidationError):
            self.compiler.compile('', {'deceased': {'full_name': 42}}, self.schema)

    def test_round_trip_dict(self):
        """Test the normalized dict form of a schema"""
        self.assertEqual(
            self.schema.to_dict()['deceased.full_name'],
            {'type': 'string', 'required': True},
        )
        self.assertEqual(len(self.schema), 3)

    def test_invalid_schema(self):
        """Test that malformed schemas are rejected"""
        with self.assertRaises(ValidationError):
            BindingSchema.from_dict({'name': {'type': 'blob'}})
        with self.assertRaises(ValidationError):
            BindingSchema.from_dict({'name': {'type': 'string', 'required': 'yes'}})
        with self.assertRaises(ValidationError):
            BindingSchema.from_dict(['name'])


class HelperTestCase(SimpleTestCase):
    """Test cases for template helpers"""

    def test_format_date(self):
        self.assertEqual(format_date(date(1950, 1, 15)), 'January 15, 1950')
        self.assertEqual(format_date('2024-03-02', 'MM/DD/YYYY'), '03/02/2024')
        self.assertEqual(format_date(date(1950, 1, 15), 'YYYY'), '1950')
        self.assertEqual(format_date(None), '')

    def test_format_date_unknown_format(self):
        with self.assertRaises(CompileError):
            format_date(date(1950, 1, 15), 'DD.MM.YYYY')

    def test_format_currency(self):
        self.assertEqual(format_currency(Decimal('1234.5')), '1,234.50')
        self.assertEqual(format_currency(-5, '$'), '-$5.00')
        with self.assertRaises(ValidationError):
            format_currency('abc')

    def test_ordinal(self):
        self.assertEqual(
            [ordinal(n) for n in (1, 2, 3, 4, 11, 12, 13, 21, 22, 101, 111)],
            ['1st', '2nd', '3rd', '4th', '11th', '12th', '13th', '21st', '22nd', '101st', '111th'],
        )

    def test_format_phone(self):
        self.assertEqual(format_phone('555.123.4567'), '(555) 123-4567')
        self.assertEqual(format_phone('+44 20 7946 0958'), '+44 20 7946 0958')
        self.assertEqual(format_phone(None), '')
