"""API route modules."""

from . import analytics

__all__ = ["analytics"]
