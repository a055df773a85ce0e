"""
Search Endpoint
POST /api/v1/search - semantic-first search with keyword fallback.
"""

import logging

from fastapi import APIRouter, Depends, status

from ..dependencies import get_search_service
from ..models.search import SearchRequest, SearchResponse
from ...search.hybrid import HybridSearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


@router.post("/search", response_model=SearchResponse, status_code=status.HTTP_200_OK)
async def search(
    request: SearchRequest,
    service: HybridSearchService = Depends(get_search_service),
) -> SearchResponse:
    """
    Hybrid search.

    Non-empty queries return a ranked, non-paginated list from the semantic
    backend or the keyword fallback. Empty queries browse page by page.
    """
    result = await service.query(request.query, page=request.page, page_size=request.page_size)
    return SearchResponse(**result.to_dict())
