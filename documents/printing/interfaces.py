"""
Interfaces for the Printing Framework

Defines core interfaces that can be implemented by different rendering engines
and context builders.
"""

from abc import ABC, abstractmethod
from typing import Any

from .dto import RenderOptions


class IPdfRenderer(ABC):
    """
    Interface for PDF rendering engines.

    Implementations convert HTML to PDF bytes using their specific engine.
    """

    @abstractmethod
    def render_html_to_pdf(self, html: str, base_url: str, options: RenderOptions) -> bytes:
        """
        Render HTML to PDF.

        Args:
            html: HTML string to render
            base_url: Base URL for resolving relative URLs (static assets, etc.)
            options: Page size, orientation, margins and print resolution

        Returns:
            PDF content as bytes

        Raises:
            Exception: If rendering fails
        """
        pass


class IRenderEngine(ABC):
    """
    Interface for a heavyweight, long-lived rendering engine instance.

    Instances are owned by the RenderEnginePool; one job at a time per
    instance. Implementations must report failures as RenderTimeout (budget
    exceeded, the instance is no longer usable) or RenderCrash (the instance
    died or returned an error).
    """

    @abstractmethod
    def start(self, timeout: float) -> None:
        """
        Start the engine and block until it is ready to render.

        Raises:
            RenderCrash: If the engine fails to start within ``timeout``
        """
        pass

    @abstractmethod
    def render(self, markup: str, options: RenderOptions, timeout: float) -> bytes:
        """
        Render resolved markup into document bytes.

        Raises:
            RenderTimeout: If rendering takes longer than ``timeout`` seconds
            RenderCrash: If the engine terminates or fails
        """
        pass

    @abstractmethod
    def is_alive(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        """Terminate the engine. Must be safe to call more than once."""
        pass


class IContextBuilder(ABC):
    """
    Interface for building render-ready data from domain records.

    One builder per document kind (invoices, purchase orders, service
    programs, ...). Builders map already-validated records; they do not
    enforce business rules.
    """

    @abstractmethod
    def build_context(self, obj: Any, *, tenant_id: str = None) -> dict:
        """
        Build template context from a domain record.

        Args:
            obj: The domain record (mapping) to build context from
            tenant_id: Tenant the document is generated for

        Returns:
            Dictionary with render-ready data

        Raises:
            ValidationError: If a field the document needs is missing or malformed
        """
        pass

    def get_filename(self, obj: Any) -> str:
        """
        Get the download filename for a record (optional).

        Args:
            obj: The domain record

        Returns:
            Filename ending in .pdf
        """
        return 'document.pdf'
