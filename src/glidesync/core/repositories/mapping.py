"""Repository for Mapping operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from glidesync.core.models import Mapping, SyncError, SyncLog
from glidesync.core.repositories.base import BaseRepository


class MappingRepository(BaseRepository[Mapping]):
    """Repository for Mapping CRUD operations."""

    model = Mapping

    def get_with_connection(self, mapping_id: int) -> Mapping | None:
        """Get a mapping with its connection eagerly loaded.

        Args:
            mapping_id: ID of the mapping.

        Returns:
            Mapping instance or None if not found.
        """
        stmt = (
            select(Mapping)
            .options(selectinload(Mapping.connection))
            .where(Mapping.id == mapping_id)
        )
        return self.session.scalar(stmt)

    def list_mappings(
        self,
        connection_id: int | None = None,
        enabled: bool | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Mapping]:
        """List mappings ordered by source table display name.

        Args:
            connection_id: Only return mappings owned by this connection.
            enabled: Only return mappings with this enabled state.
            limit: Maximum number of mappings to return.
            offset: Number of mappings to skip.

        Returns:
            List of Mapping instances.
        """
        stmt = select(Mapping).order_by(Mapping.source_table_display_name.asc(), Mapping.id)
        if connection_id is not None:
            stmt = stmt.where(Mapping.connection_id == connection_id)
        if enabled is not None:
            stmt = stmt.where(Mapping.enabled == enabled)
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def create(
        self,
        connection_id: int,
        source_table: str,
        source_table_display_name: str,
        sink_table: str,
        sync_direction: str,
        column_mappings: dict[str, Any],
    ) -> Mapping:
        """Create a new, disabled mapping.

        Returns:
            The created Mapping instance.
        """
        mapping = Mapping(
            connection_id=connection_id,
            source_table=source_table,
            source_table_display_name=source_table_display_name,
            sink_table=sink_table,
            sync_direction=sync_direction,
            enabled=False,
            column_mappings=column_mappings,
            error_count=0,
            total_records=0,
        )
        self.add(mapping)
        return mapping

    def detach_history(self, mapping_id: int) -> None:
        """Null the mapping reference on logs and errors before a delete.

        Historical logs are kept even when the mapping goes away.
        """
        self.session.execute(
            update(SyncLog).where(SyncLog.mapping_id == mapping_id).values(mapping_id=None)
        )
        self.session.execute(
            update(SyncError).where(SyncError.mapping_id == mapping_id).values(mapping_id=None)
        )

    def record_run_outcome(
        self,
        mapping: Mapping,
        status: str,
        records_processed: int,
        failed_records: int,
        completed_at: datetime,
    ) -> Mapping:
        """Fold a finished run into the mapping's status and counters.

        `last_sync_completed_at` only moves forward on success or partial failure.
        """
        mapping.current_status = status
        mapping.error_count = (mapping.error_count or 0) + failed_records
        mapping.total_records = (mapping.total_records or 0) + records_processed
        if status in ("success", "partial_failure"):
            mapping.last_sync_completed_at = completed_at
        return mapping
