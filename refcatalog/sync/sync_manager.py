"""
Sync Manager
Owns the full-replace refresh of the local replica from the remote catalog API.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..errors import SyncError
from ..models.record import ReferenceRecord, SyncMarker
from .replica_store import LocalReplicaStore

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW_MS = 24 * 60 * 60 * 1000  # 24 hours
DEFAULT_MAX_RECORDS = 50000


class SyncStatus(str, Enum):
    """Sync state as seen by callers."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


def _now_ms() -> float:
    return time.time() * 1000


def normalize_payload(items: List[Dict[str, Any]]) -> List[ReferenceRecord]:
    """
    Normalize raw catalog items for storage.

    Items without a usable id are skipped. A repeated id keeps the last
    occurrence at the position of its first appearance.
    """
    by_id: Dict[str, ReferenceRecord] = {}
    skipped = 0

    for item in items:
        try:
            record = ReferenceRecord.from_payload(item)
        except (ValidationError, AttributeError, TypeError) as e:
            skipped += 1
            logger.debug(f"Skipping malformed catalog item: {e}")
            continue
        by_id[record.id] = record

    if skipped:
        logger.warning(f"Skipped {skipped} catalog items without a usable id")

    return list(by_id.values())


class SyncManager:
    """
    Full-replace sync of a LocalReplicaStore.

    At most one sync runs at a time. Outcomes are reported through `status`,
    `last_synced_at` and `last_error`; no exception escapes sync(),
    force_sync() or clear().
    """

    def __init__(
        self,
        store: LocalReplicaStore,
        catalog_client,
        freshness_window_ms: int = DEFAULT_FRESHNESS_WINDOW_MS,
        initial_delay_seconds: float = 1.0,
        max_records: int = DEFAULT_MAX_RECORDS,
        fetch_timeout_seconds: Optional[float] = 120.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize sync manager.

        Args:
            store: Replica store to keep fresh
            catalog_client: Object with `async fetch_all(max_records)` returning a CatalogPage
            freshness_window_ms: Marker age after which a sync is due
            initial_delay_seconds: Delay before the startup sync (keeps first paint fast)
            max_records: Cap of the bulk fetch
            fetch_timeout_seconds: Timeout of the bulk fetch (None disables it)
            clock: Millisecond clock (for tests)
        """
        self.store = store
        self.catalog_client = catalog_client
        self.freshness_window_ms = freshness_window_ms
        self.initial_delay_seconds = initial_delay_seconds
        self.max_records = max_records
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.clock = clock or _now_ms

        self.status = SyncStatus.IDLE
        self.last_synced_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_record_count: Optional[int] = None

        self._lock = asyncio.Lock()
        self._listeners: List[Callable[[], None]] = []
        self._scheduled: Optional[asyncio.Task] = None

        logger.info("Sync manager initialized")

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run after every replica change (sync, forced sync, clear)."""
        self._listeners.append(callback)

    def _notify_listeners(self) -> None:
        for callback in self._listeners:
            try:
                callback()
            except Exception as e:
                logger.error(f"Sync listener failed: {e}")

    def _set_marker_state(self, marker: Optional[SyncMarker]) -> None:
        if marker is None:
            self.last_synced_at = None
        else:
            self.last_synced_at = datetime.fromtimestamp(
                marker.last_synced_at_millis / 1000, tz=timezone.utc
            )

    # ========== Lifecycle ==========

    async def initialize(self, schedule: bool = True) -> Optional[asyncio.Task]:
        """
        Open the replica and schedule a background sync when it is due.

        Args:
            schedule: Whether to schedule the startup sync (the CLI syncs explicitly)

        Returns:
            The scheduled sync task, or None when the replica is fresh

        Raises:
            StoreInitError: If the replica store cannot be opened
        """
        await asyncio.to_thread(self.store.open)

        marker = await asyncio.to_thread(self.store.read_marker)
        self._set_marker_state(marker)

        if not schedule:
            return None

        if not self.is_due(marker):
            logger.info(f"Replica is fresh (last sync {self.last_synced_at})")
            return None

        logger.info(f"Replica sync due; starting in {self.initial_delay_seconds}s")
        self._scheduled = asyncio.create_task(self._delayed_sync())
        return self._scheduled

    async def _delayed_sync(self) -> bool:
        await asyncio.sleep(self.initial_delay_seconds)
        return await self.sync()

    def is_due(self, marker: Optional[SyncMarker]) -> bool:
        """True when there is no marker or it is older than the freshness window."""
        if marker is None:
            return True
        return marker.is_stale(self.clock(), self.freshness_window_ms)

    async def close(self) -> None:
        """Cancel a pending startup sync."""
        if self._scheduled is not None and not self._scheduled.done():
            self._scheduled.cancel()
            try:
                await self._scheduled
            except asyncio.CancelledError:
                pass
        self._scheduled = None

    # ========== Sync ==========

    async def sync(self, force: bool = False) -> bool:
        """
        Replace the replica with a fresh copy of the remote catalog.

        Args:
            force: Run even when the marker is fresh; wait for a running sync instead of skipping

        Returns:
            True if a sync ran and succeeded, False if it was skipped or failed
        """
        # locked() and the uncontended acquire below share one step of the
        # event loop, so no other sync can slip in between
        if self._lock.locked() and not force:
            logger.info("Sync already in progress, skipping")
            return False

        async with self._lock:
            if not force:
                try:
                    marker = await asyncio.to_thread(self.store.read_marker)
                except Exception as e:
                    self._fail(f"Failed to read sync marker: {e}", e)
                    return False
                if not self.is_due(marker):
                    logger.info("Replica still fresh, skipping sync")
                    return False
            return await self._run_sync()

    async def _run_sync(self) -> bool:
        self.status = SyncStatus.SYNCING
        self.last_error = None
        start_time = time.time()
        logger.info("Starting catalog sync...")

        try:
            page = await self._fetch_catalog()

            if not page.data:
                logger.warning("No catalog records fetched from API; keeping current replica")
                self.status = SyncStatus.SUCCESS
                return True

            if page.total is not None and page.total > len(page.data):
                logger.warning(
                    f"Remote catalog has {page.total} records but only {len(page.data)} "
                    f"were fetched (cap {self.max_records})"
                )

            records = normalize_payload(page.data)
            marker = SyncMarker(last_synced_at_millis=int(self.clock()))

            written = await asyncio.to_thread(self.store.replace_all, records, marker)

        except SyncError as e:
            self._fail(e.message, e)
            return False
        except Exception as e:
            self._fail(f"Catalog sync failed: {e}", e)
            return False

        self._set_marker_state(marker)
        self.last_record_count = written
        self.status = SyncStatus.SUCCESS
        self._notify_listeners()

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Sync complete: saved {written} records in {elapsed_ms:.0f}ms")
        return True

    async def _fetch_catalog(self):
        try:
            return await asyncio.wait_for(
                self.catalog_client.fetch_all(max_records=self.max_records),
                timeout=self.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise SyncError(
                f"Catalog fetch timed out after {self.fetch_timeout_seconds}s",
                details={"timeout_seconds": self.fetch_timeout_seconds},
            ) from e

    def _fail(self, message: str, error: Exception) -> None:
        self.status = SyncStatus.ERROR
        self.last_error = message
        logger.error(message, exc_info=not isinstance(error, SyncError))

    async def force_sync(self) -> bool:
        """Drop the marker and snapshot, then sync unconditionally."""
        logger.info("Force sync initiated...")
        try:
            await asyncio.to_thread(self.store.clear_marker)
        except Exception as e:
            self._fail(f"Failed to clear sync marker: {e}", e)
            return False

        self._set_marker_state(None)
        self._notify_listeners()
        return await self.sync(force=True)

    async def clear(self) -> bool:
        """Wipe the replica, the marker and the snapshot."""
        logger.info("Clearing catalog replica...")
        async with self._lock:
            try:
                await asyncio.to_thread(self.store.clear)
            except Exception as e:
                self._fail(f"Failed to clear replica: {e}", e)
                return False

            self._set_marker_state(None)
            self.last_record_count = 0
            self.last_error = None
            self.status = SyncStatus.IDLE
            self._notify_listeners()
            return True

    def get_status(self) -> Dict[str, Any]:
        """Sync status for diagnostics and the API."""
        return {
            "status": self.status.value,
            "syncing": self.is_syncing,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "last_error": self.last_error,
            "last_record_count": self.last_record_count,
            "store_open": self.store.is_open,
        }
