"""
Structured Renderer

Renders typed layout descriptions directly to PDF with ReportLab.
"""

from .service import ReportService

__all__ = ['ReportService']
