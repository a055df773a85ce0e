"""
Search Module
Matching, the local query engine and the hybrid (semantic-first) orchestrator.
"""

from .hybrid import Debouncer, HybridResult, HybridSearchService, ResultSource, SearchSession
from .matching import (
    filter_records,
    full_text_search,
    highlight_matches,
    parse_query,
    score_records,
    tokenize_query,
)
from .query_engine import QueryEngine

__all__ = [
    "Debouncer",
    "HybridResult",
    "HybridSearchService",
    "ResultSource",
    "SearchSession",
    "filter_records",
    "full_text_search",
    "highlight_matches",
    "parse_query",
    "score_records",
    "tokenize_query",
    "QueryEngine",
]
