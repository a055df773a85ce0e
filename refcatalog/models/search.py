"""
Search models.
Derived query and paginated result shapes shared by the query engine and the orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .record import ReferenceRecord


class ResultMode(str, Enum):
    """Whether a result page supports stable pagination."""

    PAGINATED = "paginated"  # browse / keyword pages with exact totals
    RANKED_TOPK = "ranked-topk"  # capped ranked list, no cursor


@dataclass(frozen=True)
class SearchQuery:
    """
    Parsed search input.

    A `category:<name>` query sets `category_filter` and leaves `tokens` empty.
    """

    raw_text: str
    tokens: List[str] = field(default_factory=list)
    category_filter: Optional[str] = None
    page: int = 1
    page_size: int = 50

    @property
    def is_empty(self) -> bool:
        """True when the query should be served by the browse path."""
        return not self.tokens and self.category_filter is None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class SearchResultPage:
    """One page of search results."""

    items: List[ReferenceRecord]
    total_count: int
    mode: ResultMode = ResultMode.PAGINATED
    page: int = 1
    page_size: int = 50

    @property
    def has_more(self) -> bool:
        if self.mode is not ResultMode.PAGINATED:
            return False
        return self.page * self.page_size < self.total_count

    @classmethod
    def empty(cls, page: int = 1, page_size: int = 50) -> "SearchResultPage":
        return cls(items=[], total_count=0, page=page, page_size=page_size)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "items": [item.model_dump() for item in self.items],
            "total_count": self.total_count,
            "mode": self.mode.value,
            "page": self.page,
            "page_size": self.page_size,
            "has_more": self.has_more,
        }


@dataclass(frozen=True)
class ScoredRecord:
    """Record with its relevance score from the scored matcher."""

    record: ReferenceRecord
    score: int
