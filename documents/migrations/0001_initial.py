# Generated manually for the template history store

from decimal import Decimal

import django.core.validators
import django.utils.timezone
from django.db import migrations, models


MARGIN_VALIDATORS = [
    django.core.validators.MinValueValidator(Decimal('0')),
    django.core.validators.MaxValueValidator(Decimal('2')),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='DocumentTemplate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64)),
                ('business_key', models.CharField(max_length=128)),
                ('version', models.PositiveIntegerField()),
                ('valid_from', models.DateTimeField(default=django.utils.timezone.now)),
                ('valid_to', models.DateTimeField(blank=True, null=True)),
                ('is_current', models.BooleanField(default=True)),
                ('name', models.CharField(blank=True, max_length=255)),
                ('document_kind', models.CharField(choices=[('invoice', 'Invoice'), ('purchase_order', 'Purchase Order'), ('payment_receipt', 'Payment Receipt'), ('service_program', 'Service Program'), ('prayer_card', 'Prayer Card')], max_length=32)),
                ('markup', models.TextField()),
                ('css_styles', models.TextField(blank=True)),
                ('data_binding_schema', models.JSONField(blank=True, default=dict)),
                ('page_size', models.CharField(choices=[('letter', 'Letter (8.5 x 11 in)'), ('a4', 'A4'), ('legal', 'Legal (8.5 x 14 in)'), ('4x6', '4 x 6 in'), ('5x7', '5 x 7 in')], default='letter', max_length=10)),
                ('orientation', models.CharField(choices=[('portrait', 'Portrait'), ('landscape', 'Landscape')], default='portrait', max_length=10)),
                ('margin_top', models.DecimalField(decimal_places=2, default=Decimal('0.50'), max_digits=4, validators=MARGIN_VALIDATORS)),
                ('margin_right', models.DecimalField(decimal_places=2, default=Decimal('0.50'), max_digits=4, validators=MARGIN_VALIDATORS)),
                ('margin_bottom', models.DecimalField(decimal_places=2, default=Decimal('0.50'), max_digits=4, validators=MARGIN_VALIDATORS)),
                ('margin_left', models.DecimalField(decimal_places=2, default=Decimal('0.50'), max_digits=4, validators=MARGIN_VALIDATORS)),
                ('print_quality', models.PositiveIntegerField(choices=[(150, 'Draft (150 DPI)'), (300, 'Standard (300 DPI)'), (600, 'High (600 DPI)')], default=300)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('active', 'Active'), ('deprecated', 'Deprecated')], default='active', max_length=16)),
                ('change_reason', models.TextField(blank=True)),
                ('created_by', models.CharField(blank=True, max_length=255)),
            ],
            options={
                'ordering': ['tenant_id', 'business_key', 'version'],
            },
        ),
        migrations.AddConstraint(
            model_name='documenttemplate',
            constraint=models.UniqueConstraint(fields=('tenant_id', 'business_key', 'version'), name='unique_template_version'),
        ),
        migrations.AddConstraint(
            model_name='documenttemplate',
            constraint=models.UniqueConstraint(condition=models.Q(('is_current', True)), fields=('tenant_id', 'business_key'), name='unique_current_template_version'),
        ),
        migrations.AddIndex(
            model_name='documenttemplate',
            index=models.Index(fields=['tenant_id', 'business_key', 'is_current'], name='template_current_idx'),
        ),
    ]
