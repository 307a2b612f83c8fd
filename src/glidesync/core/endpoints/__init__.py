"""Sync endpoints: the Glide source and the relational sink."""

from glidesync.core.endpoints.base import SyncEndpoint
from glidesync.core.endpoints.exceptions import (
    EndpointConnectionError,
    EndpointError,
    EndpointNotFoundError,
    EndpointWriteError,
    TableNotFoundError,
)
from glidesync.core.endpoints.glide import ROW_ID_COLUMN, GlideEndpoint
from glidesync.core.endpoints.provider import EndpointProvider
from glidesync.core.endpoints.registry import EndpointInfo, EndpointRegistry
from glidesync.core.endpoints.schemas import GlideConfig, SqlTableConfig
from glidesync.core.endpoints.sql import SqlTableEndpoint

__all__ = [
    # Base
    "SyncEndpoint",
    # Registry
    "EndpointRegistry",
    "EndpointInfo",
    "EndpointProvider",
    # Exceptions
    "EndpointError",
    "EndpointConnectionError",
    "EndpointWriteError",
    "EndpointNotFoundError",
    "TableNotFoundError",
    # Config schemas
    "GlideConfig",
    "SqlTableConfig",
    # Endpoints
    "GlideEndpoint",
    "SqlTableEndpoint",
    "ROW_ID_COLUMN",
]
