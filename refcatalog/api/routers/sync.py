"""
Sync Endpoints
Status and manual control of the replica sync.
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_runtime, get_sync_manager
from ..errors import ServiceUnavailableError
from ..models.search import SyncStatusResponse, SyncTriggerResponse
from ...runtime import CatalogRuntime
from ...sync.sync_manager import SyncManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatusResponse, status_code=status.HTTP_200_OK)
async def sync_status(manager: SyncManager = Depends(get_sync_manager)) -> SyncStatusResponse:
    return SyncStatusResponse(**manager.get_status())


@router.post("", response_model=SyncTriggerResponse, status_code=status.HTTP_200_OK)
async def trigger_sync(
    force: bool = Query(default=False, description="Drop the marker and sync even if fresh"),
    runtime: CatalogRuntime = Depends(get_runtime),
    manager: SyncManager = Depends(get_sync_manager),
) -> SyncTriggerResponse:
    """
    Run a sync now.

    Without `force` the call is a no-op while the replica is fresh or another
    sync is running. Failures are reported in the returned status.
    """
    if not runtime.store.is_open:
        raise ServiceUnavailableError("Local replica is unavailable; sync is disabled")

    logger.info(f"Manual sync requested (force={force})")
    started = await (manager.force_sync() if force else manager.sync())
    return SyncTriggerResponse(started=started, sync=SyncStatusResponse(**manager.get_status()))


@router.post("/clear", response_model=SyncStatusResponse, status_code=status.HTTP_200_OK)
async def clear_replica(
    runtime: CatalogRuntime = Depends(get_runtime),
    manager: SyncManager = Depends(get_sync_manager),
) -> SyncStatusResponse:
    """Wipe the replica and its marker."""
    if not runtime.store.is_open:
        raise ServiceUnavailableError("Local replica is unavailable")

    await manager.clear()
    return SyncStatusResponse(**manager.get_status())
