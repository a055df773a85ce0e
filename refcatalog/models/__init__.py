"""
Data Models Package
Reference records, sync markers and search result shapes.
"""

from .record import ReferenceRecord, SyncMarker, FIELD_ALIASES
from .search import ResultMode, SearchQuery, SearchResultPage, ScoredRecord

__all__ = [
    "ReferenceRecord",
    "SyncMarker",
    "FIELD_ALIASES",
    "ResultMode",
    "SearchQuery",
    "SearchResultPage",
    "ScoredRecord",
]
