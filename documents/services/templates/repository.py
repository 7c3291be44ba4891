"""
Template Repository

Per-tenant template store with full version history (SCD2). Every save
inserts a new version and closes the prior current one in a single
transaction; rows are never updated otherwise and never deleted.

Serialization of concurrent saves for one (tenant_id, business_key):
- an in-process lock per key orders saves from threads of this process
- ``select_for_update`` on the current row orders saves across processes
  on databases that support row locks
- the partial unique constraint on (tenant_id, business_key, is_current)
  plus the unique version constraint reject whatever slips through; the
  losing save is retried against the new current version
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from documents.models import DocumentTemplate, PageSize, TemplateStatus
from documents.printing.dto import Margins, RenderOptions
from ..config import get_pipeline_config
from ..exceptions import ConcurrencyConflict, TemplateNotFound, ValidationError
from ..templating.schema import BindingSchema


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateRecord:
    """Immutable snapshot of one template version."""

    tenant_id: str
    business_key: str
    version: int
    valid_from: datetime
    valid_to: Optional[datetime]
    is_current: bool
    markup: str
    data_binding_schema: dict = field(default_factory=dict)
    name: str = ''
    document_kind: str = ''
    css_styles: str = ''
    page_size: str = PageSize.LETTER
    orientation: str = 'portrait'
    margins: Margins = field(default_factory=Margins)
    print_quality: int = 300
    status: str = TemplateStatus.ACTIVE
    change_reason: str = ''
    created_by: str = ''

    @classmethod
    def from_model(cls, row: DocumentTemplate) -> 'TemplateRecord':
        return cls(
            tenant_id=row.tenant_id,
            business_key=row.business_key,
            version=row.version,
            valid_from=row.valid_from,
            valid_to=row.valid_to,
            is_current=row.is_current,
            markup=row.markup,
            data_binding_schema=row.data_binding_schema or {},
            name=row.name,
            document_kind=row.document_kind,
            css_styles=row.css_styles,
            page_size=row.page_size,
            orientation=row.orientation,
            margins=Margins(
                top=float(row.margin_top),
                right=float(row.margin_right),
                bottom=float(row.margin_bottom),
                left=float(row.margin_left),
            ),
            print_quality=row.print_quality,
            status=row.status,
            change_reason=row.change_reason,
            created_by=row.created_by,
        )

    @property
    def binding_schema(self) -> BindingSchema:
        return BindingSchema.from_dict(self.data_binding_schema)

    def render_options(self) -> RenderOptions:
        """Page settings of this version as render defaults."""
        return RenderOptions(
            dpi=self.print_quality,
            page_size=self.page_size,
            orientation=self.orientation,
            margins=self.margins,
        )

    def page_dimensions_in_pixels(self) -> tuple[int, int]:
        return self.render_options().page_dimensions_in_pixels()

    def to_dict(self) -> dict:
        return {
            'tenant_id': self.tenant_id,
            'business_key': self.business_key,
            'version': self.version,
            'valid_from': self.valid_from.isoformat(),
            'valid_to': self.valid_to.isoformat() if self.valid_to else None,
            'is_current': self.is_current,
            'name': self.name,
            'document_kind': self.document_kind,
            'markup': self.markup,
            'css_styles': self.css_styles,
            'data_binding_schema': self.data_binding_schema,
            'page_size': self.page_size,
            'orientation': self.orientation,
            'margins': {
                'top': self.margins.top,
                'right': self.margins.right,
                'bottom': self.margins.bottom,
                'left': self.margins.left,
            },
            'print_quality': self.print_quality,
            'status': self.status,
            'change_reason': self.change_reason,
            'created_by': self.created_by,
        }


# Page settings a save may carry besides markup and schema
PAGE_SETTING_FIELDS = (
    'name', 'document_kind', 'css_styles', 'page_size', 'orientation',
    'print_quality', 'status', 'change_reason', 'created_by',
)

MARGIN_FIELDS = ('top', 'right', 'bottom', 'left')


class TemplateRepository:
    """
    Tenant-scoped access to template versions.

    Every query filters on ``tenant_id`` first; no method returns rows of
    another tenant.
    """

    _key_locks = defaultdict(threading.Lock)
    _key_locks_guard = threading.Lock()

    def __init__(self, retry_attempts: Optional[int] = None):
        self.retry_attempts = retry_attempts or get_pipeline_config().save_retry_attempts

    @classmethod
    def _lock_for(cls, tenant_id: str, business_key: str) -> threading.Lock:
        with cls._key_locks_guard:
            return cls._key_locks[(tenant_id, business_key)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(
        self,
        tenant_id: str,
        business_key: str,
        markup: str,
        schema: Optional[dict] = None,
        *,
        margins: Optional[dict] = None,
        **settings
    ) -> TemplateRecord:
        """
        Store a new template version and make it current.

        Args:
            tenant_id: Owning tenant
            business_key: Stable template identifier
            markup: Template markup
            schema: Data-binding schema (see BindingSchema.from_dict)
            margins: Optional dict with top/right/bottom/left in inches (0..2)
            **settings: name, document_kind, css_styles, page_size,
                orientation, print_quality, status, change_reason, created_by;
                unset values are carried over from the prior version

        Returns:
            TemplateRecord of the new current version

        Raises:
            ValidationError: If the markup, schema or settings are invalid
            ConcurrencyConflict: If the save could not be serialized after
                all retries (never expected in practice)
        """
        self._validate(tenant_id, business_key, markup, schema, margins, settings)

        with self._lock_for(tenant_id, business_key):
            for attempt in range(1, self.retry_attempts + 1):
                try:
                    record = self._save_once(tenant_id, business_key, markup, schema, margins, settings)
                except IntegrityError as e:
                    logger.warning(
                        f"Concurrent save of template {tenant_id}/{business_key} "
                        f"(attempt {attempt}/{self.retry_attempts}): {e}"
                    )
                    continue
                logger.info(f"Saved template {tenant_id}/{business_key} v{record.version}")
                return record

        logger.error(f"Could not serialize saves of template {tenant_id}/{business_key}")
        raise ConcurrencyConflict(
            f"Template {tenant_id}/{business_key} was saved concurrently "
            f"{self.retry_attempts} times in a row"
        )

    def _save_once(self, tenant_id, business_key, markup, schema, margins, settings) -> TemplateRecord:
        with transaction.atomic():
            prior = (
                DocumentTemplate.objects
                .select_for_update()
                .for_key(tenant_id, business_key)
                .current()
                .first()
            )
            latest_version = (
                DocumentTemplate.objects
                .for_key(tenant_id, business_key)
                .order_by('-version')
                .values_list('version', flat=True)
                .first()
            ) or 0

            now = timezone.now()
            if prior is not None:
                closed = (
                    DocumentTemplate.objects
                    .filter(pk=prior.pk, is_current=True)
                    .update(is_current=False, valid_to=now)
                )
                if closed != 1:
                    # Another save closed it first; let the retry loop re-read
                    raise IntegrityError(f"Current version of {tenant_id}/{business_key} changed during save")

            row = DocumentTemplate(
                tenant_id=tenant_id,
                business_key=business_key,
                version=latest_version + 1,
                valid_from=now,
                valid_to=None,
                is_current=True,
                markup=markup,
                data_binding_schema=schema if schema is not None else (prior.data_binding_schema if prior else {}),
                **self._carry_over(prior, margins, settings),
            )
            try:
                row.save()
            except DjangoValidationError as e:
                raise ValidationError(f"Invalid template settings: {'; '.join(e.messages)}") from e

        return TemplateRecord.from_model(row)

    @staticmethod
    def _carry_over(prior: Optional[DocumentTemplate], margins: Optional[dict], settings: dict) -> dict:
        values = {}
        for name in PAGE_SETTING_FIELDS:
            if name in settings and settings[name] is not None:
                values[name] = settings[name]
            elif prior is not None and name not in ('change_reason', 'created_by'):
                values[name] = getattr(prior, name)

        for side in MARGIN_FIELDS:
            if margins and margins.get(side) is not None:
                values[f'margin_{side}'] = Decimal(str(margins[side]))
            elif prior is not None:
                values[f'margin_{side}'] = getattr(prior, f'margin_{side}')
        return values

    @staticmethod
    def _validate(tenant_id, business_key, markup, schema, margins, settings) -> None:
        if not tenant_id or not business_key:
            raise ValidationError("tenant_id and business_key are required")
        if not isinstance(markup, str) or not markup.strip():
            raise ValidationError("Template markup must be a non-empty string")
        unknown = set(settings) - set(PAGE_SETTING_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown template settings: {', '.join(sorted(unknown))}")
        if schema is not None:
            BindingSchema.from_dict(schema)
        if margins is not None:
            if not isinstance(margins, dict) or set(margins) - set(MARGIN_FIELDS):
                raise ValidationError(f"Margins must be a mapping of {', '.join(MARGIN_FIELDS)}")
            for side, value in margins.items():
                try:
                    inches = Decimal(str(value))
                except ArithmeticError as e:
                    raise ValidationError(f"Margin '{side}' must be a number") from e
                # NaN cannot be ordered against the bounds
                if not inches.is_finite():
                    raise ValidationError(f"Margin '{side}' must be a finite number")
                if not Decimal('0') <= inches <= Decimal('2'):
                    raise ValidationError(f"Margin '{side}' must be between 0 and 2 inches")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_current(self, tenant_id: str, business_key: str) -> TemplateRecord:
        """
        Raises:
            TemplateNotFound: If the tenant has no such template
        """
        row = DocumentTemplate.objects.for_key(tenant_id, business_key).current().first()
        if row is None:
            raise TemplateNotFound(tenant_id, business_key)
        return TemplateRecord.from_model(row)

    def get_version(self, tenant_id: str, business_key: str, version: int) -> TemplateRecord:
        """
        Raises:
            TemplateNotFound: If the version does not exist for this tenant
        """
        row = DocumentTemplate.objects.for_key(tenant_id, business_key).filter(version=version).first()
        if row is None:
            raise TemplateNotFound(tenant_id, business_key, version)
        return TemplateRecord.from_model(row)

    def get_history(self, tenant_id: str, business_key: str) -> list[TemplateRecord]:
        """All versions by ascending version; each call re-reads the full history."""
        rows = DocumentTemplate.objects.for_key(tenant_id, business_key).order_by('version')
        return [TemplateRecord.from_model(row) for row in rows]

    def get_as_of(self, tenant_id: str, business_key: str, when: datetime) -> TemplateRecord:
        """
        Version that was current at ``when``.

        Raises:
            TemplateNotFound: If no version was valid at that time
        """
        row = (
            DocumentTemplate.objects
            .for_key(tenant_id, business_key)
            .filter(valid_from__lte=when)
            .exclude(valid_to__lte=when)
            .order_by('-version')
            .first()
        )
        if row is None:
            raise TemplateNotFound(tenant_id, business_key)
        return TemplateRecord.from_model(row)

    def list_by_tenant(
        self,
        tenant_id: str,
        document_kind: Optional[str] = None,
        include_deprecated: bool = False
    ) -> list[TemplateRecord]:
        """
        Current version of every template of a tenant, ordered by business key.

        Deprecated templates are left out unless ``include_deprecated`` is set.
        """
        rows = DocumentTemplate.objects.for_tenant(tenant_id).current()
        if document_kind:
            rows = rows.filter(document_kind=document_kind)
        if not include_deprecated:
            rows = rows.exclude(status=TemplateStatus.DEPRECATED)
        return [TemplateRecord.from_model(row) for row in rows.order_by('business_key')]
