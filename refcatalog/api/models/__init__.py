"""
API Models
Request and response schemas.
"""

from .search import (
    RecordResult,
    SearchRequest,
    SearchResponse,
    SuggestionResult,
    SuggestResponse,
    SyncStatusResponse,
    SyncTriggerResponse,
    WorksResponse,
)

__all__ = [
    "RecordResult",
    "SearchRequest",
    "SearchResponse",
    "SuggestionResult",
    "SuggestResponse",
    "SyncStatusResponse",
    "SyncTriggerResponse",
    "WorksResponse",
]
