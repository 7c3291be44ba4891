"""
Typed data context.

Render-ready data is a tree of mappings and sequences whose leaves belong to
a closed set of value kinds. Both rendering strategies address it with
dot-paths (``amounts.total``, ``line_items.0.description``).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from ..exceptions import ValidationError


class ValueKind(str, Enum):
    STRING = 'string'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    DATE = 'date'
    SEQUENCE = 'sequence'
    MAPPING = 'mapping'
    NULL = 'null'


class _Missing:
    def __repr__(self):
        return '<missing>'


MISSING = _Missing()


def value_kind(value: Any) -> Optional[ValueKind]:
    """Return the ValueKind of a value, or None if it is not a supported type."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, date):
        return ValueKind.DATE
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    return None


def join_path(prefix: str, key: Any) -> str:
    return f"{prefix}.{key}" if prefix else str(key)


def _normalize(value: Any, path: str) -> Any:
    kind = value_kind(value)
    if kind is None:
        raise ValidationError(
            f"Unsupported value of type {type(value).__name__} at '{path or '<root>'}'"
        )
    if kind == ValueKind.MAPPING:
        normalized = {}
        for key, child in value.items():
            if not isinstance(key, str) or not key or '.' in key:
                raise ValidationError(f"Invalid key {key!r} at '{path or '<root>'}'")
            normalized[key] = _normalize(child, join_path(path, key))
        return normalized
    if kind == ValueKind.SEQUENCE:
        return [_normalize(child, join_path(path, index)) for index, child in enumerate(value)]
    return value


def split_path(path: str) -> list[str]:
    if not path or any(not segment for segment in path.split('.')):
        raise ValidationError(f"Malformed data path '{path}'")
    return path.split('.')


def lookup(data: Any, path: str) -> Any:
    """
    Resolve a dot-path against normalized data.

    Integer segments index into sequences.

    Returns:
        The value, or MISSING if any segment does not resolve
    """
    current = data
    for segment in split_path(path):
        if isinstance(current, dict):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit() or int(segment) >= len(current):
                return MISSING
            current = current[int(segment)]
        else:
            return MISSING
    return current


class DataContext:
    """
    Immutable view of render-ready data.

    Construction validates that every value in the tree is one of the
    supported kinds and copies the tree, so later changes to the source
    mapping never leak into a render.
    """

    def __init__(self, data: Mapping):
        if isinstance(data, DataContext):
            data = data.data
        if not isinstance(data, Mapping):
            raise ValidationError(f"Data context must be a mapping, got {type(data).__name__}")
        self._data = _normalize(data, '')

    @property
    def data(self) -> dict:
        return self._data

    def resolve(self, path: str) -> Any:
        """Return the value at ``path`` or MISSING."""
        return lookup(self._data, path)

    def has(self, path: str) -> bool:
        return self.resolve(path) is not MISSING

    def with_value(self, path: str, value: Any) -> 'DataContext':
        """Return a new context with ``value`` set at ``path``, creating mappings as needed."""
        segments = split_path(path)
        data = _normalize(self._data, '')
        current = data
        walked = ''
        for segment in segments[:-1]:
            walked = join_path(walked, segment)
            child = current.get(segment, MISSING)
            if child is MISSING or child is None:
                child = current[segment] = {}
            if not isinstance(child, dict):
                raise ValidationError(f"Cannot set '{path}': '{walked}' is not a mapping")
            current = child
        current[segments[-1]] = value
        return DataContext(data)

    def leaf_paths(self) -> Iterator[str]:
        """Yield the dot-path of every scalar leaf, in source order."""
        def walk(value, path):
            if isinstance(value, dict):
                for key, child in value.items():
                    yield from walk(child, join_path(path, key))
            elif isinstance(value, list):
                for index, child in enumerate(value):
                    yield from walk(child, join_path(path, index))
            else:
                yield path
        yield from walk(self._data, '')

    def __contains__(self, path: str) -> bool:
        return self.has(path)

    def __repr__(self):
        return f"DataContext(keys={list(self._data)})"
