"""API route modules."""

from glidesync.api.routes.connections import router as connections_router
from glidesync.api.routes.health import router as health_router
from glidesync.api.routes.mappings import router as mappings_router
from glidesync.api.routes.sync import router as sync_router

__all__ = [
    "connections_router",
    "health_router",
    "mappings_router",
    "sync_router",
]
