"""
Dependency Injection
FastAPI dependencies resolving the catalog runtime and its components.
"""

from fastapi import Depends, Request

from ..caching.reference_cache import ReferenceCache
from ..runtime import CatalogRuntime
from ..search.hybrid import HybridSearchService
from ..search.query_engine import QueryEngine
from ..sync.sync_manager import SyncManager


def get_runtime(request: Request) -> CatalogRuntime:
    """The runtime created by the app lifespan."""
    return request.app.state.runtime


def get_query_engine(runtime: CatalogRuntime = Depends(get_runtime)) -> QueryEngine:
    return runtime.query_engine


def get_search_service(runtime: CatalogRuntime = Depends(get_runtime)) -> HybridSearchService:
    return runtime.search_service


def get_sync_manager(runtime: CatalogRuntime = Depends(get_runtime)) -> SyncManager:
    return runtime.sync_manager


def get_works_cache(runtime: CatalogRuntime = Depends(get_runtime)) -> ReferenceCache:
    return runtime.works_cache
