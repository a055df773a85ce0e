"""
Caching Module
TTL reference cache with optional Redis or in-process persistence.
"""

from .filters import FieldFilter, FilterOperator, apply_filters, build_filters
from .persistence import MemorySlotStore, PersistentSlotStore, RedisSlotStore
from .reference_cache import CacheEntry, CacheState, ReferenceCache

__all__ = [
    "FieldFilter",
    "FilterOperator",
    "apply_filters",
    "build_filters",
    "MemorySlotStore",
    "PersistentSlotStore",
    "RedisSlotStore",
    "CacheEntry",
    "CacheState",
    "ReferenceCache",
]
