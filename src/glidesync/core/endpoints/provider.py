"""Builds the endpoints that sit on either side of a connection's mappings."""

from typing import Any

from glidesync.config import Settings, get_settings
from glidesync.core.endpoints.base import SyncEndpoint
from glidesync.core.endpoints.registry import EndpointRegistry
from glidesync.core.models import Connection


class EndpointProvider:
    """Creates source and sink endpoints for a connection.

    The source endpoint kind comes from `connection.source_type` and is
    configured from the connection credentials plus its settings map. The
    sink is the SQL database from settings, unless the connection overrides
    it with a `sink_database_url` setting.

    Services and the orchestrator accept any object with the same two
    methods, which is how tests substitute in-memory endpoints.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def source_for(self, connection: Connection) -> SyncEndpoint:
        """Build the (unconnected) source endpoint for a connection."""
        config: dict[str, Any] = dict(connection.settings or {})
        config.setdefault("base_url", self.settings.glide_api_url)
        config.setdefault("timeout", self.settings.glide_timeout_seconds)
        config["app_id"] = connection.app_id
        config["api_key"] = connection.api_key
        return EndpointRegistry.get_endpoint(connection.source_type, config)

    def sink_for(self, connection: Connection) -> SyncEndpoint:
        """Build the (unconnected) sink endpoint for a connection."""
        settings_map = connection.settings or {}
        config = {
            "database_url": settings_map.get("sink_database_url")
            or self.settings.resolved_sink_database_url,
            "schema_name": settings_map.get("sink_schema"),
        }
        return EndpointRegistry.get_endpoint("sql", config)
