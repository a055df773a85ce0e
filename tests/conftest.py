"""
Pytest configuration and shared fixtures
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from refcatalog.clients.catalog_api import CatalogPage
from refcatalog.clients.semantic import SemanticSearchResponse
from refcatalog.config import CatalogSettings, reset_settings
from refcatalog.errors import CatalogAPIError, SemanticSearchError
from refcatalog.sync.replica_store import LocalReplicaStore


class FakeClock:
    """Millisecond clock driven by the test."""

    def __init__(self, start_ms: float = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class FakeCatalogClient:
    """In-memory stand-in for CatalogAPIClient."""

    def __init__(self, items: Optional[List[Dict[str, Any]]] = None, total: Optional[int] = None):
        self.items = list(items or [])
        self.total = total
        self.fetch_all_calls = 0
        self.list_calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    async def fetch_all(self, max_records: int = 50000) -> CatalogPage:
        self.fetch_all_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        data = self.items[:max_records]
        return CatalogPage(data=data, total=self.total if self.total is not None else len(self.items))

    async def list_records(self, page=1, page_size=50, search=None, skip_count=False) -> CatalogPage:
        self.list_calls.append({"page": page, "page_size": page_size, "search": search})
        if self.fail_with is not None:
            raise self.fail_with

        items = self.items
        if search:
            needle = search.lower()
            items = [item for item in items if needle in str(item.get("name", "")).lower()]

        start = (page - 1) * page_size
        return CatalogPage(data=items[start:start + page_size], total=len(items))

    async def aclose(self) -> None:
        pass


class FakeSemanticClient:
    """Semantic backend double returning a canned response (or raising)."""

    def __init__(self, response: Optional[SemanticSearchResponse] = None, error: Optional[Exception] = None):
        self.response = response or SemanticSearchResponse(success=True, results=[])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def search(self, query, limit=50, entity="materials", threshold=0.3):
        self.calls.append({"query": query, "limit": limit, "entity": entity, "threshold": threshold})
        if self.error is not None:
            raise self.error
        return self.response

    async def aclose(self) -> None:
        pass


def make_material(index: int, **overrides) -> Dict[str, Any]:
    """Raw listing payload for one material."""
    item = {
        "id": index,
        "name": f"Материал {index}",
        "sku": f"SKU-{index:05d}",
        "unit": "шт",
        "price": 100.0 + index,
        "category": "Разное",
        "supplier": "Поставщик",
        "is_global": index % 2 == 0,
    }
    item.update(overrides)
    return item


@pytest.fixture(autouse=True)
def _reset_global_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sample_materials() -> List[Dict[str, Any]]:
    """Small catalog with Cyrillic names, codes and category paths."""
    return [
        {"id": 1, "name": "Демонтаж цементной стяжки", "sku": "DM-001", "category": "Демонтаж",
         "unit": "м2", "price": 350},
        {"id": 2, "name": "Демонтаж стяжки пола", "sku": "DM-002", "category": "Демонтаж",
         "unit": "м2", "price": 300},
        {"id": 3, "name": "Покраска стен", "sku": "PK-001", "category": "Отделка",
         "unit": "м2", "price": 250},
        {"dbId": 4, "name": "Портландцемент М500", "code": "CM-500", "category": "Цемент",
         "supplier": "Евроцемент", "unit": "мешок", "price": 480, "isGlobal": True},
        {"id": 5, "name": "Смесь кладочная", "sku": "SM-010", "category": "Сухие смеси",
         "categoryFullPath": "Стройматериалы / Сухие смеси / Цементные", "unit": "мешок", "price": 390},
    ]


@pytest.fixture
def replica_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'replica.db'}"


@pytest.fixture
def store(replica_url):
    """Opened, empty replica store on a temporary SQLite file."""
    replica = LocalReplicaStore(database_url=replica_url)
    replica.open()
    yield replica
    replica.close()


@pytest.fixture
def catalog_client(sample_materials):
    return FakeCatalogClient(sample_materials)


@pytest.fixture
def settings(replica_url) -> CatalogSettings:
    """Settings pointing at a temporary replica, no startup delay."""
    return CatalogSettings(
        catalog_api_url="http://catalog.test/api",
        replica_database_url=replica_url,
        sync_initial_delay_seconds=0.0,
        semantic_timeout_seconds=1.0,
    )


@pytest.fixture
def fakes():
    """Access to the fake classes and helpers from tests."""
    return type(
        "Fakes",
        (),
        {
            "Clock": FakeClock,
            "CatalogClient": FakeCatalogClient,
            "SemanticClient": FakeSemanticClient,
            "make_material": staticmethod(make_material),
            "CatalogAPIError": CatalogAPIError,
            "SemanticSearchError": SemanticSearchError,
        },
    )
