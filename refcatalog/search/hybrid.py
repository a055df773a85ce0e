"""
Hybrid Search
Semantic-first search with a single keyword fallback, plus the stateful session
that accumulates pages for one search box.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..errors import CatalogAPIError, SemanticSearchError
from ..models.record import ReferenceRecord
from ..models.search import ResultMode, SearchResultPage
from .matching import parse_query
from .query_engine import QueryEngine

logger = logging.getLogger(__name__)


class ResultSource(str, Enum):
    """Which backend produced a result page."""

    SEMANTIC = "semantic"
    KEYWORD_LOCAL = "keyword-local"
    KEYWORD_REMOTE = "keyword-remote"
    BROWSE_LOCAL = "browse-local"
    BROWSE_REMOTE = "browse-remote"


@dataclass
class HybridResult:
    """Result page plus where it came from."""

    page: SearchResultPage
    source: ResultSource
    expanded_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = self.page.to_dict()
        result["source"] = self.source.value
        result["expanded_keywords"] = self.expanded_keywords
        return result


def normalize_results(items: List[Dict[str, Any]]) -> List[ReferenceRecord]:
    """Normalize backend rows, dropping the ones without a usable id."""
    records = []
    for item in items:
        try:
            records.append(ReferenceRecord.from_payload(item))
        except (ValidationError, AttributeError, TypeError) as e:
            logger.debug(f"Dropping search result without id: {e}")
    return records


def _ranked(records: List[ReferenceRecord], page_size: int) -> SearchResultPage:
    return SearchResultPage(
        items=records,
        total_count=len(records),
        mode=ResultMode.RANKED_TOPK,
        page=1,
        page_size=page_size,
    )


class HybridSearchService:
    """
    Stateless hybrid search.

    Non-empty queries go to the semantic backend first. Any failure, timeout,
    `success: false` or empty answer triggers exactly one keyword fallback:
    the local query engine when the replica is available, the remote listing
    otherwise. Empty queries are paginated browses.
    """

    def __init__(
        self,
        query_engine: Optional[QueryEngine] = None,
        semantic_client=None,
        catalog_client=None,
        semantic_entity: str = "materials",
        semantic_limit: int = 50,
        semantic_threshold: float = 0.3,
        semantic_timeout_seconds: float = 10.0,
        fallback_limit: int = 50,
        page_size: int = 50,
    ):
        """
        Initialize hybrid search.

        Args:
            query_engine: Local engine over the replica (None in degraded mode)
            semantic_client: SemanticSearchClient (None disables semantic search)
            catalog_client: CatalogAPIClient used when the replica is unavailable
            semantic_entity: Collection name sent to the semantic backend
            semantic_limit: Cap of semantic results
            semantic_threshold: Minimum similarity sent to the semantic backend
            semantic_timeout_seconds: Timeout of one semantic call
            fallback_limit: Cap of keyword fallback results
            page_size: Default browse page size
        """
        self.query_engine = query_engine
        self.semantic_client = semantic_client
        self.catalog_client = catalog_client
        self.semantic_entity = semantic_entity
        self.semantic_limit = semantic_limit
        self.semantic_threshold = semantic_threshold
        self.semantic_timeout_seconds = semantic_timeout_seconds
        self.fallback_limit = fallback_limit
        self.page_size = page_size

        logger.info(
            f"Hybrid search initialized (semantic={'on' if semantic_client else 'off'}, "
            f"local={'on' if query_engine else 'off'})"
        )

    @property
    def local_available(self) -> bool:
        return self.query_engine is not None and self.query_engine.store.is_open

    async def query(self, text: Optional[str], page: int = 1, page_size: Optional[int] = None) -> HybridResult:
        """
        Run one search.

        Args:
            text: Raw query (empty for browse)
            page: 1-based page (browse and category queries only)
            page_size: Page size for paginated results

        Returns:
            HybridResult
        """
        page = max(page, 1)
        page_size = page_size or self.page_size
        parsed = parse_query(text)

        if parsed.is_empty:
            return await self._browse(page, page_size)

        if parsed.category_filter is not None and self.local_available:
            result = await self.query_engine.search(text, page=page, page_size=page_size)
            return HybridResult(page=result, source=ResultSource.KEYWORD_LOCAL)

        start_time = time.time()
        result = await self._semantic(text.strip())
        if result is None:
            result = await self._keyword_fallback(text.strip())

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Search '{text}' served by {result.source.value}: "
            f"{len(result.page.items)} results in {elapsed_ms:.0f}ms"
        )
        return result

    async def _semantic(self, text: str) -> Optional[HybridResult]:
        """Semantic attempt; None means "fall back"."""
        if self.semantic_client is None:
            return None

        try:
            response = await asyncio.wait_for(
                self.semantic_client.search(
                    text,
                    limit=self.semantic_limit,
                    entity=self.semantic_entity,
                    threshold=self.semantic_threshold,
                ),
                timeout=self.semantic_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Semantic search timed out after {self.semantic_timeout_seconds}s, falling back")
            return None
        except SemanticSearchError as e:
            logger.warning(f"Semantic search failed ({e.message}), falling back")
            return None

        if not response.success:
            logger.warning(f"Semantic search unsuccessful ({response.message}), falling back")
            return None

        records = normalize_results(response.results)[:self.semantic_limit]
        if not records:
            logger.info(f"Semantic search found nothing for '{text}', falling back")
            return None

        return HybridResult(
            page=_ranked(records, self.semantic_limit),
            source=ResultSource.SEMANTIC,
            expanded_keywords=response.expanded_keywords,
        )

    async def _keyword_fallback(self, text: str) -> HybridResult:
        if self.local_available:
            result = await self.query_engine.search(text, page=1, page_size=self.fallback_limit)
            return HybridResult(
                page=_ranked(list(result.items), self.fallback_limit),
                source=ResultSource.KEYWORD_LOCAL,
            )

        records: List[ReferenceRecord] = []
        if self.catalog_client is not None:
            try:
                listing = await self.catalog_client.list_records(
                    page=1, page_size=self.fallback_limit, search=text
                )
                records = normalize_results(listing.data)[:self.fallback_limit]
            except CatalogAPIError as e:
                logger.error(f"Remote keyword search failed: {e.message}")

        return HybridResult(page=_ranked(records, self.fallback_limit), source=ResultSource.KEYWORD_REMOTE)

    async def _browse(self, page: int, page_size: int) -> HybridResult:
        if self.local_available:
            result = await self.query_engine.search("", page=page, page_size=page_size)
            return HybridResult(page=result, source=ResultSource.BROWSE_LOCAL)

        if self.catalog_client is None:
            return HybridResult(
                page=SearchResultPage.empty(page=page, page_size=page_size),
                source=ResultSource.BROWSE_REMOTE,
            )

        try:
            listing = await self.catalog_client.list_records(page=page, page_size=page_size)
        except CatalogAPIError as e:
            logger.error(f"Remote browse failed: {e.message}")
            return HybridResult(
                page=SearchResultPage.empty(page=page, page_size=page_size),
                source=ResultSource.BROWSE_REMOTE,
            )

        records = normalize_results(listing.data)
        total = listing.total if listing.total is not None else (page - 1) * page_size + len(records)
        return HybridResult(
            page=SearchResultPage(
                items=records,
                total_count=total,
                mode=ResultMode.PAGINATED,
                page=page,
                page_size=page_size,
            ),
            source=ResultSource.BROWSE_REMOTE,
        )


class Debouncer:
    """
    Delays a coroutine call until input settles.

    Each call() cancels the previous timer if it has not fired yet; a call
    that already fired runs to completion.
    """

    def __init__(self, delay_ms: int = 400):
        self.delay_ms = delay_ms
        self._timer: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def call(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        self.cancel()
        task = asyncio.create_task(self._fire(fn, args))
        self._timer = task
        return task

    async def _fire(self, fn: Callable[..., Awaitable[Any]], args: tuple) -> Any:
        await asyncio.sleep(self.delay_ms / 1000)
        self._timer = None
        return await fn(*args)

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None


class SearchSession:
    """
    State of one search surface: accumulated items, paging and staleness.

    Every dispatch takes a sequence number; a completion whose number is no
    longer current is dropped.
    """

    def __init__(self, service: HybridSearchService, page_size: int = 50, debounce_ms: int = 400):
        self.service = service
        self.page_size = page_size
        self.debouncer = Debouncer(debounce_ms)

        self.query = ""
        self.items: List[ReferenceRecord] = []
        self.page = 1
        self.has_more = True
        self.total_count = 0
        self.mode = ResultMode.PAGINATED
        self.source: Optional[ResultSource] = None
        self.expanded_keywords: List[str] = []
        self.loading = False

        self._sequence = 0
        self._loading_more = False
        self.discarded = 0

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _is_current(self, sequence: int) -> bool:
        if sequence != self._sequence:
            self.discarded += 1
            logger.debug(f"Discarding stale search result #{sequence} (current #{self._sequence})")
            return False
        return True

    def _reset(self) -> None:
        self.items = []
        self.page = 1
        self.has_more = True
        self.total_count = 0

    async def search(self, text: Optional[str]) -> bool:
        """
        Replace the result list with page 1 of a new query.

        Returns:
            True if the result was applied, False if a newer dispatch superseded it
        """
        text = text or ""
        sequence = self._next_sequence()

        if not text.strip() and self.query.strip():
            self._reset()
        self.query = text
        self.loading = True

        try:
            result = await self.service.query(text, page=1, page_size=self.page_size)
        finally:
            if sequence == self._sequence:
                self.loading = False

        if not self._is_current(sequence):
            return False

        self.items = list(result.page.items)
        self.page = result.page.page
        self.has_more = result.page.has_more
        self.total_count = result.page.total_count
        self.mode = result.page.mode
        self.source = result.source
        self.expanded_keywords = result.expanded_keywords
        return True

    async def load_more(self) -> bool:
        """
        Append the next page of a paginated result, skipping ids already shown.

        Returns:
            True if a page was appended
        """
        if not self.has_more or self.mode is not ResultMode.PAGINATED or self._loading_more:
            return False

        sequence = self._sequence
        self._loading_more = True
        try:
            result = await self.service.query(self.query, page=self.page + 1, page_size=self.page_size)
        finally:
            self._loading_more = False

        if not self._is_current(sequence):
            return False

        seen = {item.id for item in self.items}
        fresh = [item for item in result.page.items if item.id not in seen]
        self.items = self.items + fresh
        self.page = result.page.page
        self.has_more = result.page.has_more
        self.total_count = result.page.total_count
        return True

    def schedule(self, text: Optional[str]) -> asyncio.Task:
        """Debounced search(): only the last call within the delay runs."""
        return self.debouncer.call(self.search, text)

    def close(self) -> None:
        self.debouncer.cancel()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "items": [item.model_dump() for item in self.items],
            "page": self.page,
            "has_more": self.has_more,
            "total_count": self.total_count,
            "mode": self.mode.value,
            "source": self.source.value if self.source else None,
            "expanded_keywords": self.expanded_keywords,
            "loading": self.loading,
        }
