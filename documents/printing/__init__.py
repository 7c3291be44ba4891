"""
Core Printing Framework

Converts resolved HTML markup to PDF on a bounded pool of out-of-process
WeasyPrint engines. Supports paged media with page size, orientation,
margins and print resolution.
"""

from .dto import EngineUsed, GenerationResult, Margins, RenderOptions
from .interfaces import IContextBuilder, IPdfRenderer, IRenderEngine
from .pool import EngineLease, EngineState, RenderEnginePool, get_engine_pool
from .service import PdfRenderService

__all__ = [
    'PdfRenderService',
    'GenerationResult',
    'EngineUsed',
    'Margins',
    'RenderOptions',
    'IPdfRenderer',
    'IRenderEngine',
    'IContextBuilder',
    'RenderEnginePool',
    'EngineLease',
    'EngineState',
    'get_engine_pool',
]
