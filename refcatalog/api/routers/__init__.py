"""
API Routers
FastAPI route handlers for the catalog endpoints.
"""

from .health import router as health_router
from .materials import router as materials_router
from .search import router as search_router
from .sync import router as sync_router
from .works import router as works_router

__all__ = [
    "health_router",
    "materials_router",
    "search_router",
    "sync_router",
    "works_router",
]
