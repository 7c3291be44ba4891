"""
Template Repository

Append-only, per-tenant store of markup template versions.
"""

from .repository import TemplateRecord, TemplateRepository

__all__ = ['TemplateRecord', 'TemplateRepository']
