"""
Integration test fixtures
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from refcatalog.api.main import create_app
from refcatalog.caching.persistence import MemorySlotStore
from refcatalog.config import CatalogSettings
from refcatalog.runtime import CatalogRuntime


class FakeCatalogBackend:
    """Remote catalog API served through httpx.MockTransport."""

    def __init__(self, materials, works):
        self.materials = materials
        self.works = works
        self.semantic_payload = {"success": False, "message": "index not ready"}
        self.fail_works = False
        self.requests = []

    def _listing(self, items, request):
        page = int(request.url.params.get("page", 1))
        page_size = int(request.url.params.get("pageSize", 50))
        search = request.url.params.get("search")
        if search:
            items = [item for item in items if search.lower() in item["name"].lower()]
        start = (page - 1) * page_size
        return httpx.Response(200, json={"data": items[start:start + page_size], "total": len(items)})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/materials":
            return self._listing(self.materials, request)
        if path == "/api/works":
            if self.fail_works:
                return httpx.Response(503, text="Service Unavailable")
            return self._listing(self.works, request)
        if path == "/api/search":
            body = json.loads(request.content)
            if body["entity"] != "materials":
                return httpx.Response(400, json={"message": "unknown entity"})
            return httpx.Response(200, json=self.semantic_payload)
        return httpx.Response(404, json={"message": "not found"})

    def count(self, path):
        return sum(1 for request in self.requests if request.url.path == path)


@pytest.fixture
def works():
    return [
        {"id": 1, "name": "Демонтаж перегородок", "category": "Демонтажные работы", "unit": "м2", "is_global": True},
        {"id": 2, "name": "Штукатурка стен", "category": "Отделочные работы", "unit": "м2", "is_global": False},
        {"id": 3, "name": "Монтаж розеток", "category": "Электромонтаж", "unit": "шт", "is_global": True},
    ]


@pytest.fixture
def backend(sample_materials, works):
    return FakeCatalogBackend(sample_materials, works)


@pytest.fixture
def api_settings(replica_url):
    # The startup sync stays scheduled but never fires during a test
    return CatalogSettings(
        catalog_api_url="http://catalog.test/api",
        replica_database_url=replica_url,
        sync_initial_delay_seconds=60.0,
        semantic_timeout_seconds=1.0,
    )


@pytest.fixture
def runtime(api_settings, backend):
    return CatalogRuntime(
        api_settings,
        transport=httpx.MockTransport(backend.handle),
        persistence=MemorySlotStore(),
    )


@pytest.fixture
def client(api_settings, runtime):
    """API client with the lifespan running."""
    app = create_app(api_settings, runtime)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def synced_client(client):
    """API client over a replica filled by one sync."""
    response = client.post("/api/v1/sync")
    assert response.status_code == 200
    assert response.json()["started"] is True
    return client
