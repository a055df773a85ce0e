"""
Catalog API
FastAPI surface over the catalog runtime.
"""

from .main import create_app

__all__ = ["create_app"]
