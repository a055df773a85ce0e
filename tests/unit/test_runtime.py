"""
Tests for the catalog runtime composition.
"""

import threading
from unittest.mock import MagicMock

import httpx
import pytest

from refcatalog.runtime import CatalogRuntime


def _transport():
    return httpx.MockTransport(lambda request: httpx.Response(200, json={"data": [], "total": 0}))


@pytest.mark.asyncio
async def test_status_runs_health_check_in_worker_thread(settings):
    threads = []
    persistence = MagicMock()
    persistence.get.return_value = None
    persistence.health_check.side_effect = lambda: threads.append(threading.get_ident()) or True

    runtime = CatalogRuntime(settings, transport=_transport(), persistence=persistence)
    await runtime.start(schedule_sync=False)
    try:
        status = await runtime.get_status()
    finally:
        await runtime.close()

    assert status["persistence"]["healthy"] is True
    assert threads and threads[0] != threading.get_ident()
    assert status["degraded"] is False
    assert status["replica"]["open"] is True


@pytest.mark.asyncio
async def test_status_without_persistence(settings):
    runtime = CatalogRuntime(settings, transport=_transport())
    await runtime.start(schedule_sync=False)
    try:
        status = await runtime.get_status()
    finally:
        await runtime.close()

    assert status["persistence"] == {"enabled": False, "healthy": None}


@pytest.mark.asyncio
async def test_unopenable_replica_runs_degraded(settings, tmp_path):
    corrupt = tmp_path / "corrupt.db"
    corrupt.write_bytes(b"not a database" * 100)
    settings.replica_database_url = f"sqlite:///{corrupt}"

    runtime = CatalogRuntime(settings, transport=_transport())
    await runtime.start(schedule_sync=False)
    try:
        status = await runtime.get_status()
    finally:
        await runtime.close()

    assert runtime.degraded is True
    assert status["replica"]["open"] is False
