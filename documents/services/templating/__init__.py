"""
Template Compiler

Resolves markup templates (bindings, conditionals, iteration, helpers)
against a typed data context.
"""

from .compiler import TemplateCompiler
from .context import DataContext, ValueKind
from .schema import BindingSchema, BindingSpec

__all__ = [
    'TemplateCompiler',
    'DataContext',
    'ValueKind',
    'BindingSchema',
    'BindingSpec',
]
