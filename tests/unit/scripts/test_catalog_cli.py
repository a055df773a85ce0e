"""
Tests for the catalog CLI commands.
"""

import httpx
import pytest

from refcatalog.caching.persistence import MemorySlotStore
from refcatalog.runtime import CatalogRuntime
from refcatalog.scripts.catalog_cli import build_parser, run_command


@pytest.fixture
def runtime(settings, sample_materials):
    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/materials":
            return httpx.Response(200, json={"data": sample_materials, "total": len(sample_materials)})
        return httpx.Response(200, json={"success": False})

    return CatalogRuntime(settings, transport=httpx.MockTransport(handle), persistence=MemorySlotStore())


def test_parser_commands():
    parser = build_parser()

    args = parser.parse_args(["search", "цемент", "--page", "2", "--local"])
    assert (args.command, args.query, args.page, args.local) == ("search", "цемент", 2, True)
    assert parser.parse_args(["sync", "--force"]).force is True


@pytest.mark.asyncio
async def test_sync_then_local_search(runtime, capsys):
    parser = build_parser()
    try:
        assert await run_command(parser.parse_args(["sync"]), runtime) == 0
        assert runtime.sync_manager.last_record_count == 5

        capsys.readouterr()
        assert await run_command(parser.parse_args(["search", "покраска", "--local"]), runtime) == 0
        assert "Покраска стен" in capsys.readouterr().out
    finally:
        await runtime.close()


@pytest.mark.asyncio
async def test_suggest_prints_scores(runtime, capsys):
    parser = build_parser()
    try:
        await run_command(parser.parse_args(["sync"]), runtime)
        capsys.readouterr()

        assert await run_command(parser.parse_args(["suggest", "цемент"]), runtime) == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert "Портландцемент" in lines[0]
    finally:
        await runtime.close()


@pytest.mark.asyncio
async def test_sync_failure_exit_code(settings):
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    runtime = CatalogRuntime(settings, transport=transport, persistence=MemorySlotStore())
    try:
        assert await run_command(build_parser().parse_args(["sync"]), runtime) == 1
        assert runtime.sync_manager.status.value == "error"
    finally:
        await runtime.close()
