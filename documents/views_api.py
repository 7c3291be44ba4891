"""
Document Pipeline API Views.

JSON endpoints for document generation and template management. Generated
documents are returned base64-encoded. Typed pipeline failures map to HTTP
status codes by category:

    fix_data         -> 422
    NotFound         -> 404
    retry_later      -> 503 with Retry-After
    contact_support  -> 500
"""
import base64
import json
import logging
import math

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from documents.printing.dto import Margins, RenderOptions, TemplateRef
from documents.services.exceptions import (
    DocumentGenerationError,
    FailureCategory,
    NotFound,
    PoolExhausted,
    ValidationError,
)
from documents.services.generation import DocumentGenerationService
from documents.services.templates import TemplateRepository
from documents.services.templates.repository import PAGE_SETTING_FIELDS

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 5

TEMPLATE_BODY_FIELDS = frozenset(('markup', 'schema', 'margins') + PAGE_SETTING_FIELDS)


def error_response(error: DocumentGenerationError) -> JsonResponse:
    """
    Convert a typed pipeline failure to a JSON error response.

    Args:
        error: DocumentGenerationError raised by a service

    Returns:
        JsonResponse with the serialized failure and a matching status code
    """
    if isinstance(error, NotFound):
        return JsonResponse(error.to_dict(), status=404)
    if error.category == FailureCategory.FIX_DATA:
        return JsonResponse(error.to_dict(), status=422)
    if error.category == FailureCategory.RETRY_LATER:
        response = JsonResponse(error.to_dict(), status=503)
        retry_after = error.retry_after if isinstance(error, PoolExhausted) and error.retry_after else DEFAULT_RETRY_AFTER
        response['Retry-After'] = str(math.ceil(retry_after))
        return response
    return JsonResponse(error.to_dict(), status=500)


def parse_json_body(request) -> dict:
    """
    Raises:
        ValidationError: If the body is not a JSON object
    """
    try:
        data = json.loads(request.body or b'{}')
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError('Invalid JSON payload')
    if not isinstance(data, dict):
        raise ValidationError('JSON payload must be an object')
    return data


def parse_output_options(raw) -> RenderOptions:
    """Build RenderOptions from the 'output_options' object of a request."""
    if raw is None:
        return RenderOptions()
    if not isinstance(raw, dict):
        raise ValidationError("'output_options' must be an object")

    unknown = set(raw) - {'dpi', 'page_size', 'orientation', 'margins'}
    if unknown:
        raise ValidationError(f"Unknown output options: {', '.join(sorted(unknown))}")

    margins = raw.get('margins')
    if margins is not None:
        if not isinstance(margins, dict) or set(margins) - {'top', 'right', 'bottom', 'left'}:
            raise ValidationError("'margins' must be an object with top, right, bottom, left")
        try:
            margins = Margins(**{side: float(value) for side, value in margins.items()})
        except (TypeError, ValueError):
            raise ValidationError("Margins must be numbers (inches)")

    dpi = raw.get('dpi')
    if dpi is not None and (isinstance(dpi, bool) or not isinstance(dpi, int)):
        raise ValidationError("'dpi' must be an integer")

    return RenderOptions(
        dpi=dpi,
        page_size=raw.get('page_size'),
        orientation=raw.get('orientation'),
        margins=margins,
    )


def parse_template_ref(raw):
    if raw is None:
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get('business_key'), str):
        raise ValidationError("'template' must be an object with a 'business_key'")
    version = raw.get('version')
    if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
        raise ValidationError("'template.version' must be an integer")
    return TemplateRef(business_key=raw['business_key'], version=version)


# Generation Endpoint

@csrf_exempt
@require_http_methods(["POST"])
def api_generate_document(request, tenant_id):
    """
    POST /api/documents/{tenant_id}/generate

    Generate a document for a business record.

    Request Body:
        {
            "document_kind": "invoice",
            "record": {...},
            "output_options": {"dpi": 300, "page_size": "letter"},   (optional)
            "template": {"business_key": "...", "version": 3}         (optional)
        }

    Returns:
        200: Document metadata with base64 content
        404: Template not found
        422: Invalid data or template
        503: Engine pool busy (see Retry-After)
        500: Rendering failed repeatedly / internal error
    """
    try:
        data = parse_json_body(request)
        document_kind = data.get('document_kind')
        if not isinstance(document_kind, str):
            raise ValidationError("'document_kind' is required")

        result = DocumentGenerationService().generate(
            document_kind,
            tenant_id,
            data.get('record'),
            output_options=parse_output_options(data.get('output_options')),
            template_ref=parse_template_ref(data.get('template')),
        )
        return JsonResponse({
            'filename': result.filename,
            'mime_type': result.mime_type,
            'engine_used': result.engine_used.value,
            'generated_at': result.generated_at.isoformat(),
            'template_version': result.template_version,
            'size_bytes': len(result),
            'content_base64': base64.b64encode(result.content).decode('ascii'),
        })
    except DocumentGenerationError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error generating document for tenant {tenant_id}: {e}", exc_info=True)
        return JsonResponse({'error': 'Internal server error'}, status=500)


# Template Endpoints

@csrf_exempt
@require_http_methods(["GET"])
def api_templates_list(request, tenant_id):
    """
    GET /api/documents/{tenant_id}/templates?document_kind=...&include_deprecated=true

    List the current version of every draft or active template of a tenant.
    Deprecated templates are listed only with ``include_deprecated=true``.

    Returns:
        200: Array of template versions
    """
    try:
        records = TemplateRepository().list_by_tenant(
            tenant_id,
            request.GET.get('document_kind') or None,
            include_deprecated=request.GET.get('include_deprecated', '').lower() in ('1', 'true', 'yes'),
        )
        return JsonResponse([record.to_dict() for record in records], safe=False)
    except DocumentGenerationError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error listing templates for tenant {tenant_id}: {e}", exc_info=True)
        return JsonResponse({'error': 'Internal server error'}, status=500)


@csrf_exempt
@require_http_methods(["GET", "POST"])
def api_template(request, tenant_id, business_key):
    """
    GET  /api/documents/{tenant_id}/templates/{business_key}
    POST /api/documents/{tenant_id}/templates/{business_key}

    GET returns the current version. POST saves a new version and makes it
    current.

    Request Body (POST):
        {
            "markup": "...",
            "schema": {...},                               (optional)
            "margins": {"top": 0.5, ...},                  (optional)
            "name", "document_kind", "css_styles", "page_size",
            "orientation", "print_quality", "status",
            "change_reason", "created_by"                  (optional)
        }

    Returns:
        200: Current template version (GET)
        201: New template version (POST)
        404: Template not found (GET)
        422: Invalid payload
    """
    repository = TemplateRepository()
    try:
        if request.method == 'GET':
            return JsonResponse(repository.get_current(tenant_id, business_key).to_dict())

        data = parse_json_body(request)
        unknown = set(data) - TEMPLATE_BODY_FIELDS
        if unknown:
            raise ValidationError(f"Unknown template fields: {', '.join(sorted(unknown))}")
        markup = data.pop('markup', None)
        schema = data.pop('schema', None)
        margins = data.pop('margins', None)
        record = repository.save(tenant_id, business_key, markup, schema, margins=margins, **data)
        return JsonResponse(record.to_dict(), status=201)
    except DocumentGenerationError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error handling template {tenant_id}/{business_key}: {e}", exc_info=True)
        return JsonResponse({'error': 'Internal server error'}, status=500)


@csrf_exempt
@require_http_methods(["GET"])
def api_template_history(request, tenant_id, business_key):
    """
    GET /api/documents/{tenant_id}/templates/{business_key}/versions

    Returns:
        200: Array of all versions, oldest first
        404: Template not found
    """
    try:
        history = TemplateRepository().get_history(tenant_id, business_key)
        if not history:
            return JsonResponse({'error': 'Template not found'}, status=404)
        return JsonResponse([record.to_dict() for record in history], safe=False)
    except DocumentGenerationError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error getting history of {tenant_id}/{business_key}: {e}", exc_info=True)
        return JsonResponse({'error': 'Internal server error'}, status=500)


@csrf_exempt
@require_http_methods(["GET"])
def api_template_version(request, tenant_id, business_key, version):
    """
    GET /api/documents/{tenant_id}/templates/{business_key}/versions/{version}

    Returns:
        200: Template version
        404: Version not found
    """
    try:
        return JsonResponse(TemplateRepository().get_version(tenant_id, business_key, version).to_dict())
    except DocumentGenerationError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error getting {tenant_id}/{business_key} v{version}: {e}", exc_info=True)
        return JsonResponse({'error': 'Internal server error'}, status=500)


@csrf_exempt
@require_http_methods(["POST"])
def api_template_preview(request, tenant_id, business_key):
    """
    POST /api/documents/{tenant_id}/templates/{business_key}/preview

    Compile a template against sample data and return the resulting HTML.
    No PDF is rendered.

    Request Body:
        {
            "data": {...},
            "version": 3                                   (optional)
        }

    Returns:
        200: HTML preview with the template version and consumed bindings
        404: Template not found
        422: Invalid sample data or template
    """
    try:
        data = parse_json_body(request)
        version = data.get('version')
        if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
            raise ValidationError("'version' must be an integer")

        preview = DocumentGenerationService().preview(tenant_id, business_key, data.get('data'), version)
        return JsonResponse(preview.to_dict())
    except DocumentGenerationError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error previewing template {tenant_id}/{business_key}: {e}", exc_info=True)
        return JsonResponse({'error': 'Internal server error'}, status=500)
