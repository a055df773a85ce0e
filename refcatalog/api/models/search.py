"""
Search Models
Pydantic models for the catalog search and listing endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordResult(BaseModel):
    """Single catalog record in a response."""

    id: str = Field(..., description="Record ID")
    name: str = Field(default="", description="Display name")
    sku: Optional[str] = Field(None, description="SKU or work code")
    unit: Optional[str] = Field(None, description="Unit of measure")
    price: Optional[float] = Field(None, description="Unit price")
    category: Optional[str] = Field(None, description="Category name")
    category_full_path: Optional[str] = Field(None, description="Hierarchical category path")
    supplier: Optional[str] = Field(None, description="Supplier")
    image: Optional[str] = Field(None, description="Image URL")
    is_global: bool = Field(default=False, description="Shared (global) catalog entry")
    matched_keyword: Optional[str] = Field(None, description="Keyword the semantic backend matched on")


class SearchRequest(BaseModel):
    """
    Hybrid search request.

    An empty query browses the catalog page by page; `category:<name>` filters by category.
    """

    query: str = Field(default="", max_length=500, description="Search text")
    page: int = Field(default=1, ge=1, description="1-based page number")
    page_size: Optional[int] = Field(default=None, ge=1, le=500, description="Results per page")

    model_config = ConfigDict(
        json_schema_extra={"example": {"query": "демонтаж стяжки", "page": 1, "page_size": 50}}
    )


class SearchResponse(BaseModel):
    """One page of results."""

    items: List[RecordResult] = Field(default_factory=list)
    total_count: int = Field(..., description="Exact number of matches (capped list length for ranked results)")
    mode: str = Field(..., description="paginated or ranked-topk")
    page: int
    page_size: int
    has_more: bool = Field(..., description="Whether another page exists (paginated mode only)")
    source: Optional[str] = Field(None, description="Backend that served the results")
    expanded_keywords: List[str] = Field(default_factory=list)


class SuggestionResult(BaseModel):
    record: RecordResult
    score: int


class SuggestResponse(BaseModel):
    query: str
    suggestions: List[SuggestionResult] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    """Sync manager status."""

    status: str = Field(..., description="idle, syncing, success or error")
    syncing: bool
    last_synced_at: Optional[str] = None
    last_error: Optional[str] = None
    last_record_count: Optional[int] = None
    store_open: bool


class SyncTriggerResponse(BaseModel):
    started: bool = Field(..., description="Whether a sync ran and succeeded")
    sync: SyncStatusResponse


class WorksResponse(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)
    total: int
    cache: Dict[str, Any] = Field(default_factory=dict)
