"""
Reference FlipLab search service.

A FastAPI application serving the search API over pluggable per-source
listing providers.
"""

from .main import create_app

__all__ = ['create_app']
