"""
Service-layer exceptions for the document generation pipeline.

Every stage of the pipeline raises one of the typed failures below instead of
an untyped fault. Each failure carries a ``category`` telling the caller what
to do about it:

- ``fix_data``: the input data or template is wrong (ValidationError, CompileError)
- ``retry_later``: transient capacity problem (PoolExhausted, RenderTimeout)
- ``contact_support``: needs an operator (repeated RenderCrash, missing template)

The generation service tags the first failure with the stage it came from
and re-raises it unchanged in kind.
"""

from enum import Enum
from typing import Optional


class ServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class ServiceNotConfigured(ServiceError):
    """
    Raised when the pipeline configuration is incomplete or inconsistent.

    Example:
        POOL_MIN_SIZE is larger than POOL_MAX_SIZE.
    """
    pass


class FailureCategory(str, Enum):
    FIX_DATA = 'fix_data'
    RETRY_LATER = 'retry_later'
    CONTACT_SUPPORT = 'contact_support'


class GenerationStage(str, Enum):
    """Pipeline stage a failure originated from."""
    MAPPING = 'mapping'
    TEMPLATE_LOOKUP = 'template_lookup'
    COMPILATION = 'compilation'
    ACQUISITION = 'acquisition'
    RENDERING = 'rendering'
    LAYOUT = 'layout'


class DocumentGenerationError(ServiceError):
    """
    Base exception for all typed pipeline failures.

    Attributes:
        stage: GenerationStage the failure originated from (set by the
            generation service, None when raised outside of it)
        category: FailureCategory telling the caller how to react
        retryable: True when retrying the same request later may succeed
    """

    category = FailureCategory.FIX_DATA
    retryable = False

    def __init__(self, message: str, *, stage: Optional[GenerationStage] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict:
        """Serialize the failure for a JSON call boundary."""
        return {
            'error': type(self).__name__,
            'message': self.message,
            'stage': self.stage.value if self.stage else None,
            'category': self.category.value,
            'retryable': self.retryable,
        }


class ValidationError(DocumentGenerationError):
    """Raised when data is missing or malformed for a layout or binding."""
    pass


class LayoutError(ValidationError):
    """
    Raised by the structured renderer.

    Attributes:
        path: Data path that caused the failure
        reason: 'missing_field', 'group_too_large', 'invalid_value' or 'invalid_layout'
    """

    def __init__(self, message: str, *, path: Optional[str] = None, reason: str = 'missing_field', **kwargs):
        super().__init__(message, **kwargs)
        self.path = path
        self.reason = reason

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({'path': self.path, 'reason': self.reason})
        return data


class CompileErrorKind(str, Enum):
    UNKNOWN_BINDING = 'UnknownBinding'
    MALFORMED_EXPRESSION = 'MalformedExpression'
    HELPER_ARITY_MISMATCH = 'HelperArityMismatch'


class CompileError(DocumentGenerationError):
    """
    Raised when a markup template cannot be compiled against a data context.

    Indicates a template authoring bug, never a transient condition.

    Attributes:
        kind: CompileErrorKind
        expression: Offending binding path, helper name or expression
        lineno: Line in the markup, when known
    """

    def __init__(
        self,
        message: str,
        *,
        kind: CompileErrorKind,
        expression: Optional[str] = None,
        lineno: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.kind = kind
        self.expression = expression
        self.lineno = lineno

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({'kind': self.kind.value, 'expression': self.expression, 'lineno': self.lineno})
        return data


class PoolExhausted(DocumentGenerationError):
    """
    Raised when no engine instance becomes available within the acquire timeout.

    Backpressure: the caller may retry with backoff.

    Attributes:
        retry_after: Suggested seconds to wait before retrying
    """

    category = FailureCategory.RETRY_LATER
    retryable = True

    def __init__(self, message: str = 'Rendering engine pool exhausted', *, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class PoolShutDown(PoolExhausted):
    """Raised when acquiring from a pool that is shutting down or closed."""
    pass


class RenderTimeout(DocumentGenerationError):
    """Raised when a single render exceeds its wall-clock budget."""

    category = FailureCategory.RETRY_LATER
    retryable = True


class RenderCrash(DocumentGenerationError):
    """
    Raised when a rendering engine instance terminates unexpectedly.

    Attributes:
        support_required: True once consecutive crashes reach the configured
            alert threshold; the failure is then reported as 'contact support'.
    """

    retryable = True

    def __init__(self, message: str, *, support_required: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.support_required = support_required

    @property
    def category(self):
        if self.support_required:
            return FailureCategory.CONTACT_SUPPORT
        return FailureCategory.RETRY_LATER


class EngineBusy(DocumentGenerationError):
    """
    Raised when a render is started on a lease that is already rendering.

    An engine instance serves one render at a time; a second concurrent
    render on the same lease is a caller bug.
    """

    category = FailureCategory.CONTACT_SUPPORT


class NotFound(DocumentGenerationError):
    """Raised when a lookup misses."""

    category = FailureCategory.CONTACT_SUPPORT


class TemplateNotFound(NotFound):
    """Raised when no template version matches a tenant/business key lookup."""

    def __init__(self, tenant_id: str, business_key: str, version: Optional[int] = None, **kwargs):
        if version is None:
            message = f"No current template '{business_key}' for tenant '{tenant_id}'"
        else:
            message = f"Template '{business_key}' v{version} not found for tenant '{tenant_id}'"
        super().__init__(message, **kwargs)
        self.tenant_id = tenant_id
        self.business_key = business_key
        self.version = version


class ConcurrencyConflict(DocumentGenerationError):
    """
    Raised when two saves for the same business key could not be serialized.

    The atomic save path must prevent this from ever reaching a caller; its
    occurrence is an invariant violation.
    """

    category = FailureCategory.CONTACT_SUPPORT


class TemplateImmutable(ServiceError):
    """
    Raised when code tries to modify or delete a stored template version.

    Template history is append-only; new content is always a new version
    created through the repository's save path.
    """
    pass
