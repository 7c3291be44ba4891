"""
Data-binding schema for markup templates.

A template version declares the bindings it expects:

    {
        "deceased.full_name": {"type": "string", "required": true},
        "obituary_text": {"type": "string", "required": false},
        "order_of_service": "sequence"
    }

The shorthand form (a bare type name) declares a required binding.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from ..exceptions import CompileError, CompileErrorKind, ValidationError
from .context import MISSING, DataContext, ValueKind, split_path, value_kind


SCHEMA_KINDS = (
    ValueKind.STRING,
    ValueKind.NUMBER,
    ValueKind.BOOLEAN,
    ValueKind.DATE,
    ValueKind.SEQUENCE,
    ValueKind.MAPPING,
)

EMPTY_VALUES = {
    ValueKind.SEQUENCE: list,
    ValueKind.MAPPING: dict,
}


@dataclass(frozen=True)
class BindingSpec:
    path: str
    kind: ValueKind
    required: bool = True

    def empty_value(self) -> Any:
        factory = EMPTY_VALUES.get(self.kind)
        return factory() if factory else ''


class BindingSchema:
    """Ordered set of declared bindings."""

    def __init__(self, bindings: Iterable[BindingSpec] = ()):
        self._bindings = {spec.path: spec for spec in bindings}

    @classmethod
    def from_dict(cls, raw: Optional[Mapping]) -> 'BindingSchema':
        """
        Parse a stored schema.

        Raises:
            ValidationError: If the schema is not a mapping of path to spec
        """
        if not raw:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValidationError("Data binding schema must be a mapping of path to binding spec")

        bindings = []
        for path, spec in raw.items():
            split_path(path)
            if isinstance(spec, str):
                spec = {'type': spec}
            if not isinstance(spec, Mapping):
                raise ValidationError(f"Binding spec for '{path}' must be a type name or mapping")
            try:
                kind = ValueKind(spec.get('type', ValueKind.STRING.value))
            except ValueError:
                raise ValidationError(f"Unknown binding type {spec.get('type')!r} for '{path}'")
            if kind not in SCHEMA_KINDS:
                raise ValidationError(f"Binding type '{kind.value}' is not allowed for '{path}'")
            required = spec.get('required', True)
            if not isinstance(required, bool):
                raise ValidationError(f"'required' for '{path}' must be a boolean")
            bindings.append(BindingSpec(path=path, kind=kind, required=required))
        return cls(bindings)

    def to_dict(self) -> dict:
        return {
            spec.path: {'type': spec.kind.value, 'required': spec.required}
            for spec in self._bindings.values()
        }

    def __iter__(self):
        return iter(self._bindings.values())

    def __len__(self):
        return len(self._bindings)

    def __contains__(self, path):
        return path in self._bindings

    def apply(self, context: DataContext) -> DataContext:
        """
        Check a data context against the schema.

        Absent optional bindings are filled with an empty value; absent
        required bindings fail.

        Raises:
            CompileError: UNKNOWN_BINDING for an absent required binding
            ValidationError: If a present value has the wrong kind
        """
        for spec in self._bindings.values():
            value = context.resolve(spec.path)
            if value is MISSING or value is None:
                if spec.required:
                    raise CompileError(
                        f"Required binding '{spec.path}' is absent from the data context",
                        kind=CompileErrorKind.UNKNOWN_BINDING,
                        expression=spec.path,
                    )
                context = context.with_value(spec.path, spec.empty_value())
                continue

            actual = value_kind(value)
            if actual != spec.kind and not (spec.kind == ValueKind.NUMBER and actual == ValueKind.BOOLEAN):
                raise ValidationError(
                    f"Binding '{spec.path}' expects {spec.kind.value}, got {actual.value}"
                )
        return context
