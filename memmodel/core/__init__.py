"""Report generation pipeline."""

from .generator import ReportGenerator

__all__ = ['ReportGenerator']
