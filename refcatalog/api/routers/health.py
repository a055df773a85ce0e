"""
Health Check Endpoints
Liveness plus a detailed status of the replica, sync and caches.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from ..dependencies import get_runtime
from ...runtime import CatalogRuntime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, str]:
    """Basic health check."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/status", status_code=status.HTTP_200_OK)
async def status_check(runtime: CatalogRuntime = Depends(get_runtime)) -> Dict[str, Any]:
    """
    Detailed status check.

    The service is `degraded` when the replica is unavailable, the last sync
    failed or the persistence backend does not answer.
    """
    status_info: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": runtime.settings.version,
        "components": {},
    }

    try:
        components = await runtime.get_status()
    except Exception as e:
        logger.error(f"Status collection failed: {e}")
        status_info["status"] = "degraded"
        status_info["components"] = {"error": str(e)}
        return status_info

    status_info["components"] = components

    if components["degraded"] or components["sync"]["status"] == "error":
        status_info["status"] = "degraded"
    if components["persistence"]["healthy"] is False:
        status_info["status"] = "degraded"

    return status_info
