"""Repository for Connection operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from glidesync.core.models import Connection, Mapping
from glidesync.core.repositories.base import BaseRepository


class ConnectionRepository(BaseRepository[Connection]):
    """Repository for Connection CRUD operations."""

    model = Connection

    def list_connections(self, status: str | None = None) -> list[Connection]:
        """List connections ordered by app name, optionally filtered by status.

        Args:
            status: Only return connections with this status.

        Returns:
            List of Connection instances.
        """
        stmt = select(Connection).order_by(Connection.app_name, Connection.id)
        if status is not None:
            stmt = stmt.where(Connection.status == status)
        return list(self.session.scalars(stmt))

    def create(
        self,
        app_id: str,
        api_key: str,
        app_name: str | None = None,
        source_type: str = "glide",
        settings: dict[str, Any] | None = None,
    ) -> Connection:
        """Create a new connection.

        Args:
            app_id: Glide app identifier.
            api_key: Glide API key.
            app_name: Display name of the app.
            source_type: Endpoint kind used to reach the app.
            settings: Free-form settings.

        Returns:
            The created Connection instance.
        """
        connection = Connection(
            app_id=app_id,
            api_key=api_key,
            app_name=app_name,
            source_type=source_type,
            status="active",
            settings=settings or {},
        )
        self.add(connection)
        return connection

    def count_mappings(self, connection_id: int) -> int:
        """Count mappings that reference a connection."""
        stmt = select(func.count()).select_from(Mapping).where(
            Mapping.connection_id == connection_id
        )
        return self.session.scalar(stmt) or 0

    def set_status(self, connection: Connection, status: str) -> Connection:
        """Set the connection status."""
        connection.status = status
        return connection

    def stamp_last_sync(self, connection: Connection, when: datetime) -> Connection:
        """Record when a sync for this connection last completed."""
        connection.last_sync_at = when
        return connection
