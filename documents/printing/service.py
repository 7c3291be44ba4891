"""
Core PDF Render Service

Renders resolved markup to PDF on the rendering engine pool.
"""

from typing import Optional
import logging

from documents.services.exceptions import DocumentGenerationError, GenerationStage
from .dto import EngineUsed, GenerationResult, RenderOptions
from .pool import RenderEnginePool, get_engine_pool


logger = logging.getLogger(__name__)


def build_document_html(markup: str, css_styles: str = '') -> str:
    """
    Wrap resolved markup into a full HTML document carrying the template CSS.

    Markup that already is a full document keeps its structure; the CSS is
    injected at the end of its <head>.
    """
    style = f"<style>\n{css_styles}\n</style>" if css_styles else ''
    lowered = markup.lower()
    if '<html' in lowered:
        head_end = lowered.find('</head>')
        if head_end != -1:
            return markup[:head_end] + style + markup[head_end:]
        body_start = lowered.find('<body')
        if body_start != -1 and style:
            return markup[:body_start] + f"<head>{style}</head>" + markup[body_start:]
        return markup
    return (
        '<!DOCTYPE html>\n'
        '<html>\n<head>\n<meta charset="utf-8">\n'
        f"{style}\n"
        '</head>\n<body>\n'
        f"{markup}\n"
        '</body>\n</html>\n'
    )


class PdfRenderService:
    """
    Service for the pooled PDF rendering pipeline.

    Responsibilities:
    1. Wrap resolved markup into an HTML document with template CSS
    2. Acquire an engine from the pool, render, and release it on every exit path
    3. Return a structured GenerationResult

    Failures are tagged with the stage they came from (acquisition or
    rendering) and re-raised unchanged.

    Usage:
        service = PdfRenderService()
        result = service.render(
            compiled.markup,
            options=RenderOptions(dpi=300, page_size='5x7'),
            css_styles=template.css_styles,
            filename='prayer_card.pdf',
        )
    """

    def __init__(self, pool: Optional[RenderEnginePool] = None):
        """
        Initialize the service.

        Args:
            pool: Engine pool to render on. If None, uses the process-wide pool.
        """
        self._pool = pool

    @property
    def pool(self) -> RenderEnginePool:
        if self._pool is None:
            self._pool = get_engine_pool()
        return self._pool

    def render(
        self,
        markup: str,
        *,
        options: RenderOptions,
        css_styles: str = '',
        filename: Optional[str] = None,
        acquire_timeout: Optional[float] = None
    ) -> GenerationResult:
        """
        Render resolved markup to PDF.

        Args:
            markup: Fully resolved markup (no bindings left)
            options: Resolved render options
            css_styles: Template CSS to embed into the document
            filename: Optional filename for the PDF (defaults to 'document.pdf')
            acquire_timeout: Override for the pool's acquire timeout

        Returns:
            GenerationResult with PDF bytes and metadata

        Raises:
            PoolExhausted: No engine became available in time
            RenderTimeout: The render exceeded its budget
            RenderCrash: The engine failed
        """
        html = build_document_html(markup, css_styles)

        try:
            lease = self.pool.acquire(acquire_timeout)
        except DocumentGenerationError as e:
            e.stage = e.stage or GenerationStage.ACQUISITION
            raise

        try:
            logger.debug(f"Rendering {len(html)} chars of HTML on engine {lease.slot_id}")
            pdf_bytes = self.pool.render(lease, html, options)
        except DocumentGenerationError as e:
            e.stage = e.stage or GenerationStage.RENDERING
            raise
        finally:
            self.pool.release(lease)

        result = GenerationResult(
            content=pdf_bytes,
            engine_used=EngineUsed.POOLED,
            filename=filename or 'document.pdf',
        )
        logger.info(f"Successfully generated PDF: {result.filename} ({len(result)} bytes)")
        return result
