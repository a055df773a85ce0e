"""
Query Engine
Serves browse pages straight from the replica and filtered pages from an in-memory snapshot.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..errors import CatalogError, SearchError
from ..models.record import ReferenceRecord
from ..models.search import ResultMode, ScoredRecord, SearchResultPage
from ..sync.replica_store import LocalReplicaStore
from .matching import DEFAULT_SEARCH_FIELDS, filter_records, parse_query, score_records

logger = logging.getLogger(__name__)


class QueryEngine:
    """
    Search over the local replica.

    Empty queries page through the store with offset/limit plus an exact count.
    Non-empty queries run over an immutable snapshot of the whole replica that is
    built on first use and dropped whenever a sync changes the replica.
    """

    def __init__(
        self,
        store: LocalReplicaStore,
        page_size: int = 50,
        search_fields: Sequence[str] = DEFAULT_SEARCH_FIELDS,
    ):
        """
        Initialize query engine.

        Args:
            store: Replica store (must be opened before querying)
            page_size: Default page size
            search_fields: Record fields the matcher looks at
        """
        self.store = store
        self.page_size = page_size
        self.search_fields = tuple(search_fields)

        self._snapshot: Optional[Tuple[ReferenceRecord, ...]] = None
        self._generation = 0
        self._build_task: Optional[asyncio.Task] = None

        self.snapshot_builds = 0

    @property
    def has_snapshot(self) -> bool:
        return self._snapshot is not None

    def invalidate_snapshot(self) -> None:
        """Drop the snapshot; the next filtered query rebuilds it from the store."""
        self._generation += 1
        self._snapshot = None
        self._build_task = None
        logger.debug(f"Snapshot invalidated (generation {self._generation})")

    async def get_snapshot(self) -> Tuple[ReferenceRecord, ...]:
        """
        Return the current snapshot, building it once for concurrent callers.

        Raises:
            SearchError: If the store is not open or the replica read fails
        """
        if self._snapshot is not None:
            return self._snapshot

        if self._build_task is None:
            self._build_task = asyncio.create_task(self._build_snapshot(self._generation))

        task = self._build_task
        try:
            return await asyncio.shield(task)
        except Exception:
            # Failed builds are not cached; the next query retries
            if self._build_task is task:
                self._build_task = None
            raise

    async def _build_snapshot(self, generation: int) -> Tuple[ReferenceRecord, ...]:
        self._ensure_open()
        start_time = time.time()

        records = tuple(await self._read(self.store.load_all))

        # An invalidation during the load means these rows may already be stale
        if generation == self._generation:
            self._snapshot = records
            self.snapshot_builds += 1
            elapsed_ms = (time.time() - start_time) * 1000
            logger.info(f"Snapshot built: {len(records)} records in {elapsed_ms:.0f}ms")
        return records

    def _ensure_open(self) -> None:
        if not self.store.is_open:
            raise SearchError("Replica store is not open")

    async def _read(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking store read off the loop; database errors become SearchError."""
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            raise SearchError(
                f"Replica read failed: {e}",
                details={"operation": getattr(fn, "__name__", str(fn))},
            ) from e

    # ========== Queries ==========

    async def search(
        self,
        query: Optional[str],
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> SearchResultPage:
        """
        Search the replica.

        Args:
            query: Raw query text (empty for browse, `category:<name>` for category mode)
            page: 1-based page number
            page_size: Results per page (defaults to the engine's page size)

        Returns:
            SearchResultPage in paginated mode; an empty page if the store is unavailable
        """
        page = max(page, 1)
        page_size = page_size or self.page_size
        parsed = parse_query(query, page=page, page_size=page_size)

        try:
            if parsed.is_empty:
                return await self._browse(page, page_size)

            snapshot = await self.get_snapshot()
            matches = filter_records(snapshot, parsed, self.search_fields)

        except CatalogError as e:
            logger.error(f"Search failed for query {query!r}: {e.message}")
            return SearchResultPage.empty(page=page, page_size=page_size)

        return SearchResultPage(
            items=matches[parsed.offset:parsed.offset + page_size],
            total_count=len(matches),
            mode=ResultMode.PAGINATED,
            page=page,
            page_size=page_size,
        )

    async def _browse(self, page: int, page_size: int) -> SearchResultPage:
        self._ensure_open()
        offset = (page - 1) * page_size

        items, total = await self._read(self.store.fetch_page_with_count, offset, page_size)

        return SearchResultPage(
            items=items,
            total_count=total,
            mode=ResultMode.PAGINATED,
            page=page,
            page_size=page_size,
        )

    async def suggest(self, query: Optional[str], limit: int = 10) -> List[ScoredRecord]:
        """
        Ranked suggestions: records matching every token, best score first.

        Args:
            query: Raw query text
            limit: Maximum suggestions

        Returns:
            Scored records (empty if the store is unavailable or the query is empty)
        """
        if not parse_query(query).tokens:
            return []

        try:
            snapshot = await self.get_snapshot()
        except CatalogError as e:
            logger.error(f"Suggest failed for query {query!r}: {e.message}")
            return []

        return score_records(snapshot, query, self.search_fields)[:limit]

    async def get_record(self, record_id: str) -> Optional[ReferenceRecord]:
        """Fetch one record by primary key (None when absent or unavailable)."""
        try:
            self._ensure_open()
            return await self._read(self.store.get, record_id)
        except CatalogError as e:
            logger.error(f"Record lookup failed for {record_id}: {e.message}")
            return None

    async def lookup(self, index: str, value: str) -> List[ReferenceRecord]:
        """
        Exact match through a secondary index (name, sku or category).

        Raises:
            ValueError: For an unknown index name
        """
        try:
            self._ensure_open()
            return await self._read(self.store.lookup, index, value)
        except CatalogError as e:
            logger.error(f"Index lookup failed ({index}={value!r}): {e.message}")
            return []

    def get_stats(self) -> Dict[str, Any]:
        return {
            "snapshot_loaded": self.has_snapshot,
            "snapshot_size": len(self._snapshot) if self._snapshot is not None else 0,
            "snapshot_builds": self.snapshot_builds,
            "generation": self._generation,
        }
