"""FastAPI application factory and configuration."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from glidesync import __version__
from glidesync.api.exceptions import register_exception_handlers
from glidesync.api.routes import (
    connections_router,
    health_router,
    mappings_router,
    sync_router,
)
from glidesync.config import get_settings


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="glidesync API",
        description="Table mappings and sync runs between Glide apps and Supabase tables",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(connections_router, prefix="/api/v1")
    app.include_router(mappings_router, prefix="/api/v1")
    app.include_router(sync_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
