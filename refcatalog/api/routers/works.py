"""
Works Endpoints
Works catalog served from the TTL reference cache.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_works_cache
from ..errors import ServiceUnavailableError
from ..models.search import WorksResponse
from ...caching.reference_cache import ReferenceCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/works", tags=["works"])


def _response(cache: ReferenceCache, items) -> WorksResponse:
    return WorksResponse(items=items, total=len(items), cache=cache.get_stats())


@router.get("", response_model=WorksResponse, status_code=status.HTTP_200_OK)
async def list_works(
    is_global: Optional[bool] = Query(default=None, description="Only global (true) or tenant (false) works"),
    category: Optional[str] = Query(default=None, description="Category substring"),
    name: Optional[str] = Query(default=None, description="Name substring"),
    cache: ReferenceCache = Depends(get_works_cache),
) -> WorksResponse:
    """
    Works list, loaded through the TTL cache.

    Filters are evaluated per request and never change the shared cache view.
    """
    await cache.load()
    if cache.error and not cache.all_data:
        raise ServiceUnavailableError("Works catalog is unavailable", details={"error": cache.error})

    items = cache.select({"is_global": is_global, "category": category, "name": name})
    return _response(cache, items)


@router.post("/refresh", response_model=WorksResponse, status_code=status.HTTP_200_OK)
async def refresh_works(cache: ReferenceCache = Depends(get_works_cache)) -> WorksResponse:
    """Reload the works list, ignoring the TTL."""
    await cache.refresh()
    return _response(cache, cache.all_data)


@router.post("/invalidate", response_model=WorksResponse, status_code=status.HTTP_200_OK)
async def invalidate_works(cache: ReferenceCache = Depends(get_works_cache)) -> WorksResponse:
    """Drop the cached and persisted copy, then reload."""
    await cache.invalidate_cache()
    return _response(cache, cache.all_data)
