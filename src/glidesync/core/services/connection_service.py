"""Service for managing Glide connections."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from glidesync.core.endpoints import EndpointNotFoundError, EndpointProvider, EndpointRegistry
from glidesync.core.exceptions import ConnectionInUseError, ConnectionNotFoundError
from glidesync.core.models import (
    Connection,
    ConnectionCreate,
    ConnectionTestResult,
    ConnectionUpdate,
    TableInfo,
)
from glidesync.core.repositories import ConnectionRepository
from glidesync.core.services.config_loader import load_connection_config

logger = logging.getLogger(__name__)


class ConnectionService:
    """Service for Glide connection configurations.

    Handles:
    - Creating, listing, updating and deleting connections
    - Credential rotation and activation state
    - Testing connectivity, which also records the connection status

    A connection that mappings still reference cannot be deleted; it is
    deactivated instead.
    """

    def __init__(self, session: Session, endpoints: EndpointProvider | None = None) -> None:
        """Initialize connection service.

        Args:
            session: SQLAlchemy database session.
            endpoints: Builds endpoints for connection tests.
        """
        self.session = session
        self.repo = ConnectionRepository(session)
        self.endpoints = endpoints or EndpointProvider()

    def create_connection(self, data: ConnectionCreate) -> Connection:
        """Create a connection.

        Raises:
            EndpointNotFoundError: If the source type is not a registered endpoint kind.
        """
        if not EndpointRegistry.is_registered(data.source_type):
            raise EndpointNotFoundError(data.source_type)

        connection = self.repo.create(
            app_id=data.app_id,
            api_key=data.api_key.get_secret_value(),
            app_name=data.app_name,
            source_type=data.source_type,
            settings=data.settings,
        )
        self.repo.flush()
        logger.info(f"Created connection {connection.id} for app {connection.app_id}")
        return connection

    def create_from_file(self, path: Path) -> Connection:
        """Create a connection from a YAML definition file."""
        return self.create_connection(load_connection_config(path))

    def get_connection(self, connection_id: int) -> Connection:
        """Get a connection by id.

        Raises:
            ConnectionNotFoundError: If the connection does not exist.
        """
        connection = self.repo.get_by_id(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        return connection

    def list_connections(self, status: str | None = None) -> list[Connection]:
        """List connections, optionally filtered by status."""
        return self.repo.list_connections(status=status)

    def update_connection(self, connection_id: int, data: ConnectionUpdate) -> Connection:
        """Update a connection. Only fields that were set are changed."""
        connection = self.get_connection(connection_id)
        changes: dict[str, Any] = data.model_dump(exclude_unset=True)

        if "api_key" in changes and data.api_key is not None:
            connection.api_key = data.api_key.get_secret_value()
            logger.info(f"Rotated API key for connection {connection_id}")
        for field_name in ("app_id", "app_name", "status", "settings"):
            if field_name in changes and changes[field_name] is not None:
                setattr(connection, field_name, changes[field_name])

        self.repo.flush()
        return connection

    def deactivate_connection(self, connection_id: int) -> Connection:
        """Mark a connection inactive."""
        connection = self.get_connection(connection_id)
        self.repo.set_status(connection, "inactive")
        self.repo.flush()
        return connection

    def activate_connection(self, connection_id: int) -> Connection:
        """Mark a connection active."""
        connection = self.get_connection(connection_id)
        self.repo.set_status(connection, "active")
        self.repo.flush()
        return connection

    def delete_connection(self, connection_id: int) -> None:
        """Delete a connection that no mapping references.

        Raises:
            ConnectionNotFoundError: If the connection does not exist.
            ConnectionInUseError: If any mapping references the connection.
        """
        connection = self.get_connection(connection_id)
        mapping_count = self.repo.count_mappings(connection_id)
        if mapping_count:
            raise ConnectionInUseError(connection_id, mapping_count)
        self.repo.delete(connection)
        self.repo.flush()
        logger.info(f"Deleted connection {connection_id}")

    def test_connection(self, connection_id: int) -> ConnectionTestResult:
        """Test connectivity to a connection's source endpoint.

        The connection status becomes `active` on success and `error` on
        failure.
        """
        connection = self.get_connection(connection_id)

        async def _test() -> ConnectionTestResult:
            start = time.perf_counter()
            try:
                endpoint = self.endpoints.source_for(connection)
                async with endpoint:
                    connected = await endpoint.test_connection()
                    latency = (time.perf_counter() - start) * 1000
                    return ConnectionTestResult(
                        connection_id=connection_id,
                        connected=connected,
                        message="Connection successful" if connected else "Connection test failed",
                        latency_ms=round(latency, 2),
                    )
            except Exception as e:
                return ConnectionTestResult(
                    connection_id=connection_id,
                    connected=False,
                    message=str(e),
                    latency_ms=None,
                )

        result = asyncio.run(_test())
        self.repo.set_status(connection, "active" if result.connected else "error")
        self.repo.flush()
        if not result.connected:
            logger.warning(f"Connection {connection_id} test failed: {result.message}")
        return result

    def list_tables(self, connection_id: int, side: str = "source") -> list[TableInfo]:
        """List the tables reachable through a connection.

        Args:
            connection_id: Connection id.
            side: `source` for the Glide app, `sink` for the database.

        Raises:
            ConnectionNotFoundError: If the connection does not exist.
            EndpointError: If the endpoint cannot be reached.
        """
        connection = self.get_connection(connection_id)
        if side == "sink":
            endpoint = self.endpoints.sink_for(connection)
        else:
            endpoint = self.endpoints.source_for(connection)

        async def _list() -> list[TableInfo]:
            async with endpoint:
                return await endpoint.list_tables()

        return asyncio.run(_list())
