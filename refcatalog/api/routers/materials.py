"""
Materials Endpoints
Replica-backed listing, suggestions and record lookup.
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_query_engine, get_runtime
from ..errors import ResourceNotFoundError, ServiceUnavailableError
from ..models.search import RecordResult, SearchResponse, SuggestionResult, SuggestResponse
from ...runtime import CatalogRuntime
from ...search.query_engine import QueryEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/materials", tags=["materials"])


def _require_replica(runtime: CatalogRuntime) -> None:
    if not runtime.store.is_open:
        raise ServiceUnavailableError(
            "Local replica is unavailable",
            details={"degraded": runtime.degraded},
        )


@router.get("", response_model=SearchResponse, status_code=status.HTTP_200_OK)
async def list_materials(
    q: str = Query(default="", max_length=500, description="Query; empty to browse, `category:<name>` for a category"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    runtime: CatalogRuntime = Depends(get_runtime),
    engine: QueryEngine = Depends(get_query_engine),
) -> SearchResponse:
    """Paginated search over the local replica."""
    _require_replica(runtime)

    result = await engine.search(q, page=page, page_size=page_size)
    return SearchResponse(**result.to_dict(), source="browse-local" if not q.strip() else "keyword-local")


@router.get("/suggest", response_model=SuggestResponse, status_code=status.HTTP_200_OK)
async def suggest_materials(
    q: str = Query(..., min_length=1, max_length=500),
    limit: int = Query(default=10, ge=1, le=100),
    runtime: CatalogRuntime = Depends(get_runtime),
    engine: QueryEngine = Depends(get_query_engine),
) -> SuggestResponse:
    """Ranked suggestions: every token must match, best score first."""
    _require_replica(runtime)

    scored = await engine.suggest(q, limit=limit)
    return SuggestResponse(
        query=q,
        suggestions=[
            SuggestionResult(record=RecordResult(**item.record.model_dump()), score=item.score)
            for item in scored
        ],
    )


@router.get("/{record_id}", response_model=RecordResult, status_code=status.HTTP_200_OK)
async def get_material(
    record_id: str,
    runtime: CatalogRuntime = Depends(get_runtime),
    engine: QueryEngine = Depends(get_query_engine),
) -> RecordResult:
    """Single record by id."""
    _require_replica(runtime)

    record = await engine.get_record(record_id)
    if record is None:
        raise ResourceNotFoundError("Material", record_id)
    return RecordResult(**record.model_dump())
