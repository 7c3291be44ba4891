"""
Generation Orchestrator

Maps domain records to render-ready data, picks the rendering strategy per
document kind and returns the rendered document.
"""

from .kinds import DOCUMENT_KINDS, DocumentKindSpec, Strategy, get_document_kind
from .service import DocumentGenerationService

__all__ = [
    'DocumentGenerationService',
    'DOCUMENT_KINDS',
    'DocumentKindSpec',
    'Strategy',
    'get_document_kind',
]
