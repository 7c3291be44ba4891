"""
Document Generation Service

Use-case layer of the pipeline:

    domain record -> context builder -> {structured renderer
                                         | template compiler -> engine pool}
                  -> GenerationResult

The first failure of any stage is re-raised unchanged in kind, tagged with
the stage it came from. There is no fallback between strategies.
"""

import logging
from contextlib import contextmanager
from typing import Any, Optional

from documents.printing.dto import (
    EngineUsed,
    GenerationResult,
    Margins,
    RenderOptions,
    RenderRequest,
    TemplatePreview,
    TemplateRef,
)
from documents.printing.service import PdfRenderService, build_document_html
from ..config import SUPPORTED_DPI, SUPPORTED_PAGE_SIZES, PipelineConfig, get_pipeline_config
from ..exceptions import (
    DocumentGenerationError,
    GenerationStage,
    LayoutError,
    NotFound,
    ValidationError,
)
from ..reporting import ReportService
from ..templates import TemplateRecord, TemplateRepository
from ..templating import DataContext, TemplateCompiler
from .kinds import DocumentKindSpec, Strategy, get_document_kind


logger = logging.getLogger(__name__)

ORIENTATIONS = ('portrait', 'landscape')

_compiler = None


def get_template_compiler() -> TemplateCompiler:
    """Process-wide compiler, so parsed templates are cached across requests."""
    global _compiler
    if _compiler is None:
        _compiler = TemplateCompiler()
    return _compiler


@contextmanager
def stage(name: GenerationStage):
    """Tag typed failures raised inside the block with the stage they came from."""
    try:
        yield
    except DocumentGenerationError as e:
        if e.stage is None:
            e.stage = name
        raise


class DocumentGenerationService:
    """
    Generates documents for business records.

    Usage:
        service = DocumentGenerationService()
        result = service.generate('invoice', 'tenant-1', invoice_record)
        response = HttpResponse(result.content, content_type=result.mime_type)
    """

    def __init__(
        self,
        repository: Optional[TemplateRepository] = None,
        compiler: Optional[TemplateCompiler] = None,
        structured_renderer: Optional[ReportService] = None,
        pdf_service: Optional[PdfRenderService] = None,
        config: Optional[PipelineConfig] = None
    ):
        self.config = config or get_pipeline_config()
        self.repository = repository or TemplateRepository(self.config.save_retry_attempts)
        self.compiler = compiler or get_template_compiler()
        self.structured_renderer = structured_renderer or ReportService(self.config.max_group_rows)
        self.pdf_service = pdf_service or PdfRenderService()

    def generate(
        self,
        document_kind: str,
        tenant_id: str,
        domain_record: Any,
        output_options: Optional[RenderOptions] = None,
        template_ref: Optional[TemplateRef] = None
    ) -> GenerationResult:
        """
        Generate a document.

        Args:
            document_kind: 'invoice', 'purchase_order', 'payment_receipt',
                'service_program' or 'prayer_card'
            tenant_id: Tenant the document belongs to
            domain_record: Already-validated business record (mapping)
            output_options: Overrides for dpi, page size, orientation, margins
            template_ref: Explicit template (templated kinds) or layout key
                (structured kinds); defaults to the kind's own

        Returns:
            GenerationResult with the PDF bytes

        Raises:
            DocumentGenerationError: Typed failure with ``stage`` set
        """
        with stage(GenerationStage.MAPPING):
            spec = get_document_kind(document_kind)
            options = self._validate_options(output_options or RenderOptions())
            data, filename = self._map(spec, tenant_id, domain_record)

        request = RenderRequest(
            document_kind=document_kind,
            tenant_id=tenant_id,
            data_context=data,
            template_ref=template_ref,
            output_options=options,
        )

        try:
            if spec.strategy == Strategy.STRUCTURED:
                result = self._generate_structured(spec, request)
            else:
                result = self._generate_templated(spec, request)
        except DocumentGenerationError as e:
            logger.warning(
                f"Generation of {document_kind} for tenant {tenant_id} failed "
                f"at {e.stage.value if e.stage else 'unknown'} stage: {e.message}"
            )
            raise

        result.filename = filename
        logger.info(
            f"Generated {document_kind} for tenant {tenant_id} via {result.engine_used.value} "
            f"({len(result)} bytes)"
        )
        return result

    def preview(
        self,
        tenant_id: str,
        business_key: str,
        sample_data: Any,
        version: Optional[int] = None
    ) -> TemplatePreview:
        """
        Compile a stored template against sample data without rendering a PDF.

        Lets template authors check bindings and layout before a template
        is used for real documents. No engine instance is acquired.

        Args:
            tenant_id: Tenant owning the template
            business_key: Template business key
            sample_data: Data object the template is compiled against as-is
            version: Specific version to preview (defaults to the current one)

        Returns:
            TemplatePreview with the HTML an engine would receive

        Raises:
            DocumentGenerationError: Typed failure with ``stage`` set
        """
        try:
            with stage(GenerationStage.MAPPING):
                if not isinstance(sample_data, dict):
                    raise ValidationError(f"Sample data must be an object, got {type(sample_data).__name__}")
                data = DataContext(sample_data)

            with stage(GenerationStage.TEMPLATE_LOOKUP):
                if version is not None:
                    template = self.repository.get_version(tenant_id, business_key, version)
                else:
                    template = self.repository.get_current(tenant_id, business_key)

            with stage(GenerationStage.COMPILATION):
                compiled = self.compiler.compile(template.markup, data, template.binding_schema)
        except DocumentGenerationError as e:
            logger.warning(
                f"Preview of {business_key} for tenant {tenant_id} failed "
                f"at {e.stage.value} stage: {e.message}"
            )
            raise

        logger.info(f"Previewed {business_key} v{template.version} for tenant {tenant_id}")
        return TemplatePreview(
            html=build_document_html(compiled.markup, template.css_styles),
            business_key=template.business_key,
            template_version=template.version,
            consumed_paths=compiled.consumed_paths,
        )

    def _map(self, spec: DocumentKindSpec, tenant_id: str, record: Any) -> tuple[DataContext, str]:
        if not isinstance(record, dict):
            raise ValidationError(f"Domain record must be an object, got {type(record).__name__}")
        builder = spec.builder_factory()
        try:
            data = builder.build_context(record, tenant_id=tenant_id)
            filename = builder.get_filename(record)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise ValidationError(f"Could not map {spec.kind} record: {e}") from e
        return DataContext(data), filename

    def _validate_options(self, options: RenderOptions) -> RenderOptions:
        if options.dpi is not None and options.dpi not in SUPPORTED_DPI:
            raise ValidationError(f"Unsupported print resolution {options.dpi}; expected one of {SUPPORTED_DPI}")
        if options.page_size is not None and options.page_size not in SUPPORTED_PAGE_SIZES:
            raise ValidationError(f"Unsupported page size '{options.page_size}'")
        if options.orientation is not None and options.orientation not in ORIENTATIONS:
            raise ValidationError(f"Unsupported orientation '{options.orientation}'")
        if options.margins is not None:
            for side in ('top', 'right', 'bottom', 'left'):
                if not 0 <= getattr(options.margins, side) <= 2:
                    raise ValidationError(f"Margin '{side}' must be between 0 and 2 inches")
        return options

    def _defaults(self) -> RenderOptions:
        return RenderOptions(
            dpi=self.config.output_dpi,
            page_size=self.config.default_page_size,
            orientation='portrait',
            margins=Margins(),
        )

    def _generate_structured(self, spec: DocumentKindSpec, request: RenderRequest) -> GenerationResult:
        ref = request.template_ref
        if ref is None:
            layout_key = spec.layout_key
        elif ref.version is None:
            layout_key = ref.business_key
        else:
            layout_key = f"{ref.business_key}.v{ref.version}"

        with stage(GenerationStage.LAYOUT):
            try:
                content = self.structured_renderer.render(layout_key, request.data_context, request.output_options)
            except KeyError as e:
                raise NotFound(f"Layout '{layout_key}' is not registered", stage=GenerationStage.TEMPLATE_LOOKUP) from e
            except DocumentGenerationError:
                raise
            except Exception as e:
                logger.error(f"Structured rendering of {layout_key} failed: {e}", exc_info=True)
                raise LayoutError(f"Layout '{layout_key}' could not be rendered: {e}", reason='invalid_layout') from e

        return GenerationResult(content=content, engine_used=EngineUsed.STRUCTURED)

    def _generate_templated(self, spec: DocumentKindSpec, request: RenderRequest) -> GenerationResult:
        with stage(GenerationStage.TEMPLATE_LOOKUP):
            template = self._lookup_template(spec, request)

        with stage(GenerationStage.COMPILATION):
            compiled = self.compiler.compile(template.markup, request.data_context, template.binding_schema)
        logger.debug(
            f"Compiled {template.business_key} v{template.version}: "
            f"{len(compiled.consumed_paths)} binding(s) consumed"
        )

        options = request.output_options.merged_with(
            template.render_options().merged_with(self._defaults())
        )
        # Stages (acquisition / rendering) are tagged by the render service
        result = self.pdf_service.render(
            compiled.markup,
            options=options,
            css_styles=template.css_styles,
        )
        result.template_version = template.version
        return result

    def _lookup_template(self, spec: DocumentKindSpec, request: RenderRequest) -> TemplateRecord:
        ref = request.template_ref or TemplateRef(business_key=spec.default_business_key)
        if ref.version is not None:
            template = self.repository.get_version(request.tenant_id, ref.business_key, ref.version)
        else:
            template = self.repository.get_current(request.tenant_id, ref.business_key)

        if template.document_kind and template.document_kind != spec.kind:
            raise ValidationError(
                f"Template '{ref.business_key}' is a {template.document_kind} template, "
                f"not {spec.kind}"
            )
        return template
