"""
Cache Filters
Predicate filtering for cached reference lists.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..search.matching import get_field

logger = logging.getLogger(__name__)


class FilterOperator(Enum):
    """How a predicate value is compared with a record field."""

    IS = "IS"  # Exact boolean match
    ILIKE = "ILIKE"  # Case-insensitive substring
    EQ = "="


@dataclass
class FieldFilter:
    """
    Single filter condition on a record field.

    Example:
        FieldFilter("is_global", FilterOperator.IS, True)
        FieldFilter("category", FilterOperator.ILIKE, "бетон")
    """

    field: str
    operator: FilterOperator
    value: Any

    @classmethod
    def from_predicate(cls, field: str, value: Any) -> "FieldFilter":
        """Pick the operator from the predicate value's type."""
        if isinstance(value, bool):
            return cls(field, FilterOperator.IS, value)
        if isinstance(value, str):
            return cls(field, FilterOperator.ILIKE, value.lower())
        return cls(field, FilterOperator.EQ, value)

    def matches(self, item: Any) -> bool:
        actual = get_field(item, self.field)

        if self.operator is FilterOperator.IS:
            return isinstance(actual, bool) and actual is self.value
        if self.operator is FilterOperator.ILIKE:
            return isinstance(actual, str) and self.value in actual.lower()
        return actual == self.value


def build_filters(predicates: Optional[Mapping[str, Any]]) -> List[FieldFilter]:
    """
    Build FieldFilter objects from a predicate mapping.

    None and empty-string values mean "no filter on this field" and are skipped.
    """
    filters = []
    for field, value in (predicates or {}).items():
        if value is None or value == "":
            continue
        filters.append(FieldFilter.from_predicate(field, value))
    return filters


def apply_filters(items: Sequence[Any], predicates: Optional[Mapping[str, Any]]) -> List[Any]:
    """
    Keep items matching every predicate (AND across keys).

    Args:
        items: Source items; never mutated
        predicates: Field -> wanted value

    Returns:
        New list of matching items, source order kept
    """
    filters = build_filters(predicates)
    if not filters:
        return list(items)

    return [item for item in items if all(f.matches(item) for f in filters)]


def active_predicates(predicates: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """The subset of predicates that actually filter."""
    return {
        field: value
        for field, value in (predicates or {}).items()
        if value is not None and value != ""
    }
