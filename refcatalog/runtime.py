"""
Catalog Runtime
Builds and owns every component of the catalog layer for one process.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .caching.persistence import MemorySlotStore, PersistentSlotStore, RedisSlotStore
from .caching.reference_cache import ReferenceCache
from .clients.catalog_api import CatalogAPIClient
from .clients.semantic import SemanticSearchClient
from .config import CatalogSettings, get_settings
from .errors import StoreInitError
from .search.hybrid import HybridResult, HybridSearchService, SearchSession, normalize_results
from .search.query_engine import QueryEngine
from .sync.replica_store import LocalReplicaStore
from .sync.sync_manager import SyncManager

logger = logging.getLogger(__name__)


def build_persistence(settings: CatalogSettings) -> Optional[PersistentSlotStore]:
    """Pick the persistence backend for reference caches from settings."""
    if not settings.cache_persistence_enabled:
        return None
    if settings.redis_enabled:
        return RedisSlotStore(host=settings.redis_host, port=settings.redis_port, db=settings.redis_db)
    return MemorySlotStore(max_bytes=settings.cache_persistence_max_bytes)


class CatalogRuntime:
    """
    Composition root: replica store, sync manager, query engine, hybrid search
    and the works reference cache.

    When the replica cannot be opened the runtime runs degraded: searches and
    browses go to the remote endpoints.
    """

    def __init__(
        self,
        settings: Optional[CatalogSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        persistence: Optional[PersistentSlotStore] = None,
        store: Optional[LocalReplicaStore] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize runtime (no I/O until start()).

        Args:
            settings: Catalog settings (defaults to the global settings)
            transport: httpx transport shared by the remote clients (tests)
            persistence: Slot store for reference caches (overrides settings)
            store: Pre-built replica store (tests)
            clock: Millisecond clock for sync and cache TTLs (tests)
        """
        self.settings = settings or get_settings()
        s = self.settings

        self.store = store or LocalReplicaStore(
            database_url=s.replica_database_url,
            marker_key=s.sync_marker_key,
        )

        self.materials_client = CatalogAPIClient(
            s.catalog_api_url,
            listing_path=s.materials_path,
            timeout=s.api_timeout_seconds,
            token=s.catalog_api_token,
            transport=transport,
        )
        self.works_client = CatalogAPIClient(
            s.catalog_api_url,
            listing_path=s.works_path,
            timeout=s.api_timeout_seconds,
            token=s.catalog_api_token,
            transport=transport,
        )
        self.semantic_client = None
        if s.semantic_search_enabled:
            self.semantic_client = SemanticSearchClient(
                s.catalog_api_url,
                search_path=s.semantic_search_path,
                timeout=s.semantic_timeout_seconds,
                token=s.catalog_api_token,
                transport=transport,
            )

        self.sync_manager = SyncManager(
            self.store,
            self.materials_client,
            freshness_window_ms=s.sync_interval_ms,
            initial_delay_seconds=s.sync_initial_delay_seconds,
            max_records=s.sync_max_records,
            fetch_timeout_seconds=s.sync_timeout_seconds,
            clock=clock,
        )

        self.query_engine = QueryEngine(self.store, page_size=s.search_page_size)
        self.sync_manager.add_listener(self.query_engine.invalidate_snapshot)

        self.search_service = HybridSearchService(
            query_engine=self.query_engine,
            semantic_client=self.semantic_client,
            catalog_client=self.materials_client,
            semantic_entity=s.semantic_entity,
            semantic_limit=s.semantic_limit,
            semantic_threshold=s.semantic_threshold,
            semantic_timeout_seconds=s.semantic_timeout_seconds,
            fallback_limit=s.keyword_fallback_limit,
            page_size=s.search_page_size,
        )

        self.persistence = persistence if persistence is not None else build_persistence(s)
        self.works_cache = ReferenceCache(
            self._fetch_works,
            ttl_ms=s.works_cache_ttl_ms,
            cache_key=s.works_cache_key,
            persistence=self.persistence,
            clock=clock,
        )

        self.degraded = False
        self.started = False

    async def _fetch_works(self) -> List[Dict[str, Any]]:
        """Works listing normalized to plain dicts (JSON-persistable)."""
        listing = await self.works_client.list_records(page=1, page_size=self.settings.works_page_size)
        return [record.model_dump() for record in normalize_results(listing.data)]

    # ========== Lifecycle ==========

    async def start(self, schedule_sync: bool = True) -> None:
        """
        Open the replica and schedule the startup sync.

        A replica that cannot be opened switches the runtime to degraded mode
        instead of failing startup.
        """
        try:
            await self.sync_manager.initialize(schedule=schedule_sync)
            self.degraded = False
        except StoreInitError as e:
            self.degraded = True
            logger.error(f"Replica unavailable, running degraded (remote-only): {e.message}")

        self.started = True
        logger.info(f"Catalog runtime started (degraded={self.degraded})")

    async def close(self) -> None:
        """Cancel the scheduled sync, close HTTP clients and the replica."""
        await self.sync_manager.close()

        clients = [self.materials_client, self.works_client]
        if self.semantic_client is not None:
            clients.append(self.semantic_client)
        for client in clients:
            await client.aclose()

        await asyncio.to_thread(self.store.close)
        self.started = False
        logger.info("Catalog runtime closed")

    # ========== Operations ==========

    async def search(self, text: Optional[str], page: int = 1, page_size: Optional[int] = None) -> HybridResult:
        return await self.search_service.query(text, page=page, page_size=page_size)

    def new_session(self) -> SearchSession:
        """Stateful search session for one query surface."""
        return SearchSession(
            self.search_service,
            page_size=self.settings.search_page_size,
            debounce_ms=self.settings.search_debounce_ms,
        )

    async def get_status(self) -> Dict[str, Any]:
        """Component status; the persistence health check runs off the event loop."""
        healthy = None
        if self.persistence is not None:
            healthy = await asyncio.to_thread(self.persistence.health_check)

        return {
            "degraded": self.degraded,
            "replica": {
                "open": self.store.is_open,
                "database_url": self.settings.replica_database_url,
            },
            "sync": self.sync_manager.get_status(),
            "query_engine": self.query_engine.get_stats(),
            "works_cache": self.works_cache.get_stats(),
            "persistence": {
                "enabled": self.works_cache.persistence_enabled,
                "healthy": healthy,
            },
            "semantic_search_enabled": self.semantic_client is not None,
        }
