"""
Tests for the SQLite replica store.
"""

import pytest
from sqlalchemy import insert

from refcatalog.db.models import CatalogRecordRow
from refcatalog.errors import StoreInitError, SyncError
from refcatalog.models.record import ReferenceRecord, SyncMarker
from refcatalog.sync.replica_store import LocalReplicaStore


def _records(payload):
    return [ReferenceRecord.from_payload(item) for item in payload]


def test_open_creates_empty_replica(store):
    assert store.is_open
    assert store.count() == 0
    assert store.read_marker() is None


def test_reads_require_open(replica_url):
    replica = LocalReplicaStore(database_url=replica_url)
    with pytest.raises(StoreInitError):
        replica.count()


def test_open_failure_raises_store_init_error(tmp_path):
    # A directory is not a database file
    replica = LocalReplicaStore(database_url=f"sqlite:///{tmp_path}")
    with pytest.raises(StoreInitError):
        replica.open()
    assert not replica.is_open


def test_requires_url_or_engine():
    with pytest.raises(ValueError):
        LocalReplicaStore()


def test_replace_all_writes_records_and_marker(store, sample_materials):
    written = store.replace_all(_records(sample_materials), SyncMarker(1000))

    assert written == 5
    assert store.count() == 5
    assert store.read_marker() == SyncMarker(1000)


def test_storage_order_follows_payload(store, sample_materials):
    store.replace_all(_records(reversed(sample_materials)), SyncMarker(1))
    assert [r.id for r in store.load_all()] == ["5", "4", "3", "2", "1"]


def test_fetch_page_slices_in_storage_order(store, fakes):
    payload = [fakes.make_material(i) for i in range(1, 121)]
    store.replace_all(_records(payload), SyncMarker(1))

    page = store.fetch_page(offset=50, limit=50)

    assert [r.id for r in page] == [str(i) for i in range(51, 101)]
    assert len(store.fetch_page(offset=100, limit=50)) == 20


def test_page_and_count_share_one_transaction(store, replica_url, sample_materials, monkeypatch):
    store.replace_all(_records(sample_materials), SyncMarker(1))
    writer = LocalReplicaStore(database_url=replica_url)
    writer.open()
    select_page = store._select_page

    def page_then_replace(session, offset, limit):
        items = select_page(session, offset, limit)
        writer.replace_all(_records(sample_materials[:1]), SyncMarker(2))
        return items

    monkeypatch.setattr(store, "_select_page", page_then_replace)
    try:
        items, total = store.fetch_page_with_count(offset=0, limit=2)
    finally:
        writer.close()

    assert [r.id for r in items] == ["1", "2"]
    assert total == 5
    assert store.count() == 1


def test_replace_all_drops_previous_generation(store, sample_materials):
    store.replace_all(_records(sample_materials), SyncMarker(1))
    store.replace_all(_records(sample_materials[:2]), SyncMarker(2))

    assert store.count() == 2
    assert store.get("5") is None
    assert store.read_marker().last_synced_at_millis == 2


def test_round_trips_record_fields(store, sample_materials):
    store.replace_all(_records(sample_materials), SyncMarker(1))

    cement = store.get("4")

    assert cement.sku == "CM-500"
    assert cement.is_global is True
    assert cement.supplier == "Евроцемент"
    assert cement.search_blob == "портландцемент м500 cm-500 евроцемент цемент"
    assert store.get("5").category_full_path == "Стройматериалы / Сухие смеси / Цементные"


def test_lookup_by_secondary_index(store, sample_materials):
    store.replace_all(_records(sample_materials), SyncMarker(1))

    assert [r.id for r in store.lookup("category", "Демонтаж")] == ["1", "2"]
    assert [r.id for r in store.lookup("sku", "PK-001")] == ["3"]
    with pytest.raises(ValueError):
        store.lookup("price", "100")


def test_failed_replace_keeps_previous_replica(store, replica_url, sample_materials, monkeypatch):
    store.replace_all(_records(sample_materials), SyncMarker(1000))
    before = store.load_all()

    def write_half_then_fail(session, rows):
        session.execute(insert(CatalogRecordRow), rows[:1])
        raise RuntimeError("disk full")

    monkeypatch.setattr(store, "_write_rows", write_half_then_fail)

    with pytest.raises(SyncError):
        store.replace_all(_records(sample_materials[:1]), SyncMarker(2000))

    assert store.count() == len(before)
    assert store.load_all() == before
    assert store.read_marker() == SyncMarker(1000)

    # A second connection sees the same generation
    reader = LocalReplicaStore(database_url=replica_url)
    reader.open()
    try:
        assert reader.load_all() == before
    finally:
        reader.close()


def test_clear_removes_records_and_marker(store, sample_materials):
    store.replace_all(_records(sample_materials), SyncMarker(1))

    store.clear()

    assert store.count() == 0
    assert store.read_marker() is None


def test_clear_marker_keeps_records(store, sample_materials):
    store.replace_all(_records(sample_materials), SyncMarker(1))

    store.clear_marker()

    assert store.count() == 5
    assert store.read_marker() is None


def test_in_memory_database(sample_materials):
    replica = LocalReplicaStore(database_url="sqlite:///:memory:")
    replica.open()
    replica.replace_all(_records(sample_materials), SyncMarker(1))
    assert replica.count() == 5
    replica.close()
