"""
Local Replica Store
Durable local copy of the remote catalog plus its sync marker.

The store has exactly one writer path (replace_all / clear, driven by the sync
manager) and any number of readers. Every write is a single transaction, so
readers only ever see a complete replica generation.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..db.models import Base, CatalogRecordRow, SyncMetadata
from ..db.session import create_replica_engine, create_session_factory
from ..errors import StoreInitError, SyncError
from ..models.record import ReferenceRecord, SyncMarker

logger = logging.getLogger(__name__)

DEFAULT_MARKER_KEY = "materials_last_sync"

# Secondary lookup indexes exposed to readers
LOOKUP_COLUMNS = {
    "name": CatalogRecordRow.name,
    "sku": CatalogRecordRow.sku,
    "category": CatalogRecordRow.category,
}

_RECORD_COLUMNS = (
    "id", "name", "sku", "unit", "price", "category", "category_full_path",
    "supplier", "image", "is_global", "search_blob",
)


def _row_to_record(row: CatalogRecordRow) -> ReferenceRecord:
    return ReferenceRecord(**{column: getattr(row, column) for column in _RECORD_COLUMNS})


class LocalReplicaStore:
    """
    SQLite-backed replica of a reference catalog.

    All methods are blocking; async callers run them with asyncio.to_thread.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        marker_key: str = DEFAULT_MARKER_KEY,
    ):
        """
        Initialize the store (no I/O until open()).

        Args:
            database_url: SQLAlchemy URL of the replica database
            engine: Pre-built engine (takes precedence over database_url)
            marker_key: Metadata key holding the sync marker
        """
        if engine is None and database_url is None:
            raise ValueError("Either database_url or engine is required")

        self.database_url = database_url
        self.engine = engine
        self.marker_key = marker_key
        self.session_factory = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        """
        Open the database and create the schema (record table, lookup indexes, metadata).

        Raises:
            StoreInitError: If the database is unavailable or corrupt
        """
        if self._open:
            return

        try:
            if self.engine is None:
                self.engine = create_replica_engine(self.database_url)
            Base.metadata.create_all(self.engine)
            self.session_factory = create_session_factory(self.engine)

            # Touch both tables so a corrupt file fails here, not on first query
            with self.session_factory() as session:
                record_count = session.execute(
                    select(func.count()).select_from(CatalogRecordRow)
                ).scalar_one()
                session.execute(select(SyncMetadata).limit(1))

        except (SQLAlchemyError, OSError) as e:
            raise StoreInitError(
                f"Failed to open replica store: {e}",
                details={"database_url": self.database_url},
            ) from e

        self._open = True
        logger.info(f"Replica store opened ({record_count} records)")

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self._open = False

    def _require_open(self) -> None:
        if not self._open:
            raise StoreInitError("Replica store is not open")

    # ========== Sync marker ==========

    def read_marker(self) -> Optional[SyncMarker]:
        """Read the sync marker (None when the replica was never synced)."""
        self._require_open()
        with self.session_factory() as session:
            row = session.get(SyncMetadata, self.marker_key)
            return SyncMarker.parse(row.value if row else None)

    def clear_marker(self) -> None:
        self._require_open()
        with self.session_factory.begin() as session:
            session.execute(delete(SyncMetadata).where(SyncMetadata.key == self.marker_key))

    def _write_marker(self, session, marker: SyncMarker) -> None:
        session.merge(SyncMetadata(key=self.marker_key, value=marker.serialize()))

    # ========== Writes ==========

    def replace_all(self, records: Sequence[ReferenceRecord], marker: SyncMarker) -> int:
        """
        Atomically swap the replica for a new record set and marker.

        Args:
            records: Normalized records, in remote order, unique by id
            marker: Marker committed together with the records

        Returns:
            Number of records written

        Raises:
            SyncError: If the transaction fails (it is rolled back in full)
        """
        self._require_open()

        rows = []
        for position, record in enumerate(records):
            row = record.to_storage()
            row["position"] = position
            rows.append(row)

        try:
            with self.session_factory.begin() as session:
                session.execute(delete(CatalogRecordRow))
                self._write_rows(session, rows)
                self._write_marker(session, marker)
        except Exception as e:
            logger.error(f"Replica replace rolled back: {e}")
            raise SyncError(
                "Replica transaction failed; previous data kept",
                details={"records": len(rows), "error": str(e)},
            ) from e

        logger.info(f"Replica replaced with {len(rows)} records")
        return len(rows)

    def _write_rows(self, session, rows: List[Dict]) -> None:
        if rows:
            session.execute(insert(CatalogRecordRow), rows)

    def clear(self) -> None:
        """Remove every record and the sync marker."""
        self._require_open()
        with self.session_factory.begin() as session:
            session.execute(delete(CatalogRecordRow))
            session.execute(delete(SyncMetadata).where(SyncMetadata.key == self.marker_key))
        logger.info("Replica cleared")

    # ========== Reads ==========

    def _count(self, session) -> int:
        return session.execute(
            select(func.count()).select_from(CatalogRecordRow)
        ).scalar_one()

    def _select_page(self, session, offset: int, limit: int) -> List[ReferenceRecord]:
        rows = session.execute(
            select(CatalogRecordRow)
            .order_by(CatalogRecordRow.position)
            .offset(max(offset, 0))
            .limit(max(limit, 0))
        ).scalars().all()
        return [_row_to_record(row) for row in rows]

    def count(self) -> int:
        """Exact number of records in the replica."""
        self._require_open()
        with self.session_factory() as session:
            return self._count(session)

    def fetch_page(self, offset: int, limit: int) -> List[ReferenceRecord]:
        """
        Read one page in storage order without loading the rest.

        Args:
            offset: Rows to skip
            limit: Maximum rows to return
        """
        self._require_open()
        with self.session_factory() as session:
            return self._select_page(session, offset, limit)

    def fetch_page_with_count(self, offset: int, limit: int) -> Tuple[List[ReferenceRecord], int]:
        """
        Read one page and the exact total from the same replica generation.

        Both reads share one transaction, so a sync committing in between
        cannot pair old items with a new count.
        """
        self._require_open()
        with self.session_factory() as session:
            items = self._select_page(session, offset, limit)
            return items, self._count(session)

    def load_all(self) -> List[ReferenceRecord]:
        """Read the whole replica in storage order."""
        self._require_open()
        with self.session_factory() as session:
            rows = session.execute(
                select(CatalogRecordRow).order_by(CatalogRecordRow.position)
            ).scalars().all()
            return [_row_to_record(row) for row in rows]

    def get(self, record_id: str) -> Optional[ReferenceRecord]:
        self._require_open()
        with self.session_factory() as session:
            row = session.get(CatalogRecordRow, str(record_id))
            return _row_to_record(row) if row else None

    def lookup(self, index: str, value: str) -> List[ReferenceRecord]:
        """
        Exact lookup through one of the secondary indexes (name, sku, category).

        Raises:
            ValueError: For an unknown index name
        """
        self._require_open()
        column = LOOKUP_COLUMNS.get(index)
        if column is None:
            raise ValueError(f"Unknown lookup index: {index}")

        with self.session_factory() as session:
            rows = session.execute(
                select(CatalogRecordRow)
                .where(column == value)
                .order_by(CatalogRecordRow.position)
            ).scalars().all()
            return [_row_to_record(row) for row in rows]
