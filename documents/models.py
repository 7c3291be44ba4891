from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from documents.services.exceptions import TemplateImmutable


# Enums as TextChoices
class DocumentKind(models.TextChoices):
    INVOICE = 'invoice', _('Invoice')
    PURCHASE_ORDER = 'purchase_order', _('Purchase Order')
    PAYMENT_RECEIPT = 'payment_receipt', _('Payment Receipt')
    SERVICE_PROGRAM = 'service_program', _('Service Program')
    PRAYER_CARD = 'prayer_card', _('Prayer Card')


class PageSize(models.TextChoices):
    LETTER = 'letter', _('Letter (8.5 x 11 in)')
    A4 = 'a4', _('A4')
    LEGAL = 'legal', _('Legal (8.5 x 14 in)')
    CARD_4X6 = '4x6', _('4 x 6 in')
    CARD_5X7 = '5x7', _('5 x 7 in')


class Orientation(models.TextChoices):
    PORTRAIT = 'portrait', _('Portrait')
    LANDSCAPE = 'landscape', _('Landscape')


class PrintQuality(models.IntegerChoices):
    DRAFT = 150, _('Draft (150 DPI)')
    STANDARD = 300, _('Standard (300 DPI)')
    HIGH = 600, _('High (600 DPI)')


class TemplateStatus(models.TextChoices):
    DRAFT = 'draft', _('Draft')
    ACTIVE = 'active', _('Active')
    DEPRECATED = 'deprecated', _('Deprecated')


MARGIN_VALIDATORS = [MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('2'))]


class DocumentTemplateQuerySet(models.QuerySet):
    def for_tenant(self, tenant_id):
        return self.filter(tenant_id=tenant_id)

    def for_key(self, tenant_id, business_key):
        return self.filter(tenant_id=tenant_id, business_key=business_key)

    def current(self):
        return self.filter(is_current=True)

    def delete(self):
        raise TemplateImmutable("Template versions cannot be deleted")


class DocumentTemplate(models.Model):
    """
    One version of a tenant's markup template (SCD2 row).

    For every (tenant_id, business_key) exactly one row is current
    (is_current=True, valid_to=None); older rows are closed. Rows are only
    ever inserted; the single permitted change to an existing row is closing
    it, done by TemplateRepository.save inside the same transaction that
    inserts its successor.
    """

    tenant_id = models.CharField(max_length=64, db_index=True)
    business_key = models.CharField(max_length=128)
    version = models.PositiveIntegerField()
    valid_from = models.DateTimeField(default=timezone.now)
    valid_to = models.DateTimeField(null=True, blank=True)
    is_current = models.BooleanField(default=True)

    name = models.CharField(max_length=255, blank=True)
    document_kind = models.CharField(max_length=32, choices=DocumentKind.choices)
    markup = models.TextField()
    css_styles = models.TextField(blank=True)
    data_binding_schema = models.JSONField(default=dict, blank=True)

    page_size = models.CharField(max_length=10, choices=PageSize.choices, default=PageSize.LETTER)
    orientation = models.CharField(max_length=10, choices=Orientation.choices, default=Orientation.PORTRAIT)
    margin_top = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('0.50'), validators=MARGIN_VALIDATORS)
    margin_right = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('0.50'), validators=MARGIN_VALIDATORS)
    margin_bottom = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('0.50'), validators=MARGIN_VALIDATORS)
    margin_left = models.DecimalField(max_digits=4, decimal_places=2, default=Decimal('0.50'), validators=MARGIN_VALIDATORS)
    print_quality = models.PositiveIntegerField(choices=PrintQuality.choices, default=PrintQuality.STANDARD)

    status = models.CharField(max_length=16, choices=TemplateStatus.choices, default=TemplateStatus.ACTIVE)
    change_reason = models.TextField(blank=True)
    created_by = models.CharField(max_length=255, blank=True)

    objects = DocumentTemplateQuerySet.as_manager()

    class Meta:
        ordering = ['tenant_id', 'business_key', 'version']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'business_key', 'version'],
                name='unique_template_version',
            ),
            models.UniqueConstraint(
                fields=['tenant_id', 'business_key'],
                condition=models.Q(is_current=True),
                name='unique_current_template_version',
            ),
        ]
        indexes = [
            models.Index(fields=['tenant_id', 'business_key', 'is_current'], name='template_current_idx'),
        ]

    def __str__(self):
        return f"{self.tenant_id}/{self.business_key} v{self.version}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TemplateImmutable(f"Template version {self} is append-only and cannot be modified")
        self.full_clean(validate_unique=False, validate_constraints=False)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TemplateImmutable(f"Template version {self} cannot be deleted")
