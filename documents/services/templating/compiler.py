"""
Template Compiler

Resolves tenant-authored markup templates against a data context using a
sandboxed Jinja2 environment. Unknown bindings never render as empty strings:
every unresolved lookup raises CompileError(UNKNOWN_BINDING) naming the full
dot-path that failed. A binding that exists but holds null prints as an
empty string.

Supported markup:
    {{ deceased.full_name }}                      variable substitution
    {% if amounts.amount_due > 0 %}...{% endif %} conditional blocks
    {% for event in order_of_service %}...{% endfor %}
    {{ service.date|format_date("MM/DD/YYYY") }}  helpers (see helpers.py)
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from jinja2 import TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError, TemplateRuntimeError
from jinja2.runtime import Context, StrictUndefined
from jinja2.sandbox import ImmutableSandboxedEnvironment
from jinja2.utils import missing

from documents.printing.dto import CompiledMarkup
from ..exceptions import CompileError, CompileErrorKind
from .context import DataContext, join_path
from .helpers import checked_helpers
from .schema import BindingSchema


logger = logging.getLogger(__name__)

# Not a valid identifier, so templates cannot reference it
RECORDER_KEY = '$bindings'

TEMPLATE_CACHE_SIZE = 128


class UnresolvedBinding(UndefinedError):
    """Raised from inside a render when a binding path does not resolve."""


class _Recorder:
    def __init__(self, roots):
        self.roots = frozenset(roots)
        self.paths = set()


def _track(value: Any, path: str, recorder: _Recorder) -> Any:
    if isinstance(value, dict):
        return _TrackedMapping(value, path, recorder)
    if isinstance(value, list):
        return _TrackedSequence(value, path, recorder)
    return value


class _TrackedMapping(Mapping):
    """Read-only mapping that records every child path looked up through it."""

    __slots__ = ('_data', '_path', '_recorder')

    def __init__(self, data, path, recorder):
        self._data = data
        self._path = path
        self._recorder = recorder

    def __getitem__(self, key):
        value = self._data[key]
        path = join_path(self._path, key)
        self._recorder.paths.add(path)
        return _track(value, path, self._recorder)

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def child_path(self, key) -> str:
        return join_path(self._path, key)


class _TrackedSequence(Sequence):
    """Read-only sequence preserving source order; items are tracked by index."""

    __slots__ = ('_data', '_path', '_recorder')

    def __init__(self, data, path, recorder):
        self._data = data
        self._path = path
        self._recorder = recorder

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self._data)))]
        value = self._data[index]
        if index < 0:
            index += len(self._data)
        path = join_path(self._path, index)
        self._recorder.paths.add(path)
        return _track(value, path, self._recorder)

    def __iter__(self):
        for index in range(len(self._data)):
            yield self[index]

    def __len__(self):
        return len(self._data)


class _UnboundPath(StrictUndefined):
    """Strict undefined whose error message is the full unresolved binding path."""

    __slots__ = ()

    def __init__(self, hint=None, obj=missing, name=None, exc=UndefinedError):
        # The sandbox passes SecurityError for unsafe attribute access; keep it
        if exc is UndefinedError:
            exc = UnresolvedBinding
        super().__init__(hint, obj, name, exc)

    @property
    def _undefined_message(self) -> str:
        if isinstance(self._undefined_obj, _TrackedMapping):
            return self._undefined_obj.child_path(self._undefined_name)
        if self._undefined_hint:
            return self._undefined_hint
        return str(self._undefined_name)


class _RecordingContext(Context):
    def resolve_or_missing(self, key):
        value = super().resolve_or_missing(key)
        recorder = self.parent.get(RECORDER_KEY)
        if recorder is not None and value is not missing and key in recorder.roots:
            recorder.paths.add(key)
        return value


class _BindingEnvironment(ImmutableSandboxedEnvironment):
    """Sandbox that resolves attribute and item access on data as binding lookups."""

    context_class = _RecordingContext

    def _binding(self, obj, name):
        try:
            return obj[name]
        except KeyError:
            return self.undefined(obj=obj, name=name)

    def getattr(self, obj, attribute):
        if isinstance(obj, _TrackedMapping):
            return self._binding(obj, attribute)
        return super().getattr(obj, attribute)

    def getitem(self, obj, argument):
        if isinstance(obj, _TrackedMapping) and isinstance(argument, str):
            return self._binding(obj, argument)
        if isinstance(obj, _TrackedSequence) and isinstance(argument, int):
            try:
                return obj[argument]
            except IndexError:
                return self.undefined(hint=join_path(obj._path, argument))
        return super().getitem(obj, argument)


def _blank_none(value):
    """A bound null prints as nothing; the binding itself still has to exist."""
    return '' if value is None else value


class TemplateCompiler:
    """
    Compiles markup templates into fully resolved markup.

    Compilation is pure: the same markup and data always yield the same
    output. Parsed templates are cached by content hash, so repeated
    generations against the same template version skip parsing.
    """

    def __init__(self, cache_size: int = TEMPLATE_CACHE_SIZE):
        self.environment = _BindingEnvironment(
            autoescape=True,
            undefined=_UnboundPath,
            keep_trailing_newline=True,
            finalize=_blank_none,
        )
        helpers = checked_helpers()
        self.environment.filters.update(helpers)
        self.environment.globals.update(helpers)

        self._cache_size = cache_size
        self._templates = OrderedDict()
        self._lock = threading.Lock()

    def parse(self, markup: str):
        """
        Parse markup into a Jinja2 template.

        Raises:
            CompileError: MALFORMED_EXPRESSION on syntax errors or unknown helpers
        """
        key = hashlib.sha256(markup.encode('utf-8')).hexdigest()
        with self._lock:
            template = self._templates.get(key)
            if template is not None:
                self._templates.move_to_end(key)
                return template

        try:
            template = self.environment.from_string(markup)
        except TemplateSyntaxError as e:
            raise CompileError(
                f"Malformed template expression at line {e.lineno}: {e.message}",
                kind=CompileErrorKind.MALFORMED_EXPRESSION,
                expression=e.message,
                lineno=e.lineno,
            ) from e

        with self._lock:
            self._templates[key] = template
            while len(self._templates) > self._cache_size:
                self._templates.popitem(last=False)
        return template

    def compile(
        self,
        markup: str,
        data: Any,
        schema: Optional[BindingSchema] = None
    ) -> CompiledMarkup:
        """
        Compile markup against a data context.

        Args:
            markup: Template text with bindings, conditionals and loops
            data: DataContext or plain mapping of render-ready data
            schema: Optional binding schema; absent optional bindings are
                filled with empty values before rendering

        Returns:
            CompiledMarkup with the resolved markup and the consumed binding paths

        Raises:
            CompileError: UNKNOWN_BINDING, MALFORMED_EXPRESSION or HELPER_ARITY_MISMATCH
            ValidationError: If data values are unsupported or mistyped
        """
        context = data if isinstance(data, DataContext) else DataContext(data)
        if schema is not None:
            context = schema.apply(context)

        template = self.parse(markup)

        recorder = _Recorder(context.data.keys())
        variables = {key: _track(value, key, recorder) for key, value in context.data.items()}
        variables[RECORDER_KEY] = recorder

        try:
            resolved = template.render(variables)
        except UnresolvedBinding as e:
            path = e.message or str(e)
            raise CompileError(
                f"Unknown binding '{path}'",
                kind=CompileErrorKind.UNKNOWN_BINDING,
                expression=path,
            ) from e
        except UndefinedError as e:
            raise CompileError(
                f"Unknown binding: {e.message}",
                kind=CompileErrorKind.UNKNOWN_BINDING,
                expression=e.message,
            ) from e
        except (SecurityError, TemplateRuntimeError) as e:
            raise CompileError(
                f"Disallowed template expression: {e}",
                kind=CompileErrorKind.MALFORMED_EXPRESSION,
                expression=str(e),
            ) from e
        except (TypeError, ValueError, ArithmeticError, AttributeError, LookupError) as e:
            raise CompileError(
                f"Template expression failed: {e}",
                kind=CompileErrorKind.MALFORMED_EXPRESSION,
                expression=str(e),
            ) from e

        logger.debug(f"Compiled template ({len(resolved)} chars, {len(recorder.paths)} bindings)")
        return CompiledMarkup(markup=resolved, consumed_paths=frozenset(recorder.paths))
