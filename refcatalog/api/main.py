"""
FastAPI Main Application
Entry point for the reference catalog API.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..config import CatalogSettings, get_settings
from ..runtime import CatalogRuntime
from .errors import setup_error_handlers
from .middleware import RequestLoggingMiddleware
from .routers import (
    health_router,
    materials_router,
    search_router,
    sync_router,
    works_router,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[CatalogSettings] = None,
    runtime: Optional[CatalogRuntime] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Catalog settings (defaults to the global settings)
        runtime: Pre-built runtime (tests inject one with fake remotes)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the runtime (replica open + scheduled sync) and close it on shutdown."""
        logger.info(f"Starting {settings.app_name}...")

        app.state.runtime = runtime or CatalogRuntime(settings)
        await app.state.runtime.start()

        logger.info(f"{settings.app_name} started (degraded={app.state.runtime.degraded})")

        yield

        logger.info(f"Shutting down {settings.app_name}...")
        await app.state.runtime.close()

    app = FastAPI(
        title=settings.app_name,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    setup_error_handlers(app)

    app.include_router(health_router)
    app.include_router(materials_router)
    app.include_router(search_router)
    app.include_router(sync_router)
    app.include_router(works_router)

    @app.get("/")
    async def root():
        """API information."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "description": settings.description,
            "endpoints": {
                "health": "/health",
                "status": "/status",
                "materials": "/api/v1/materials",
                "search": "/api/v1/search",
                "sync": "/api/v1/sync",
                "works": "/api/v1/works",
                "docs": "/docs",
            },
        }

    return app


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    uvicorn.run(
        "refcatalog.api.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
