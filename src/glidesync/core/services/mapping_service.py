"""Service for managing table mappings."""

import asyncio
import logging
from pathlib import Path

from sqlalchemy.orm import Session

from glidesync.core.endpoints import EndpointProvider
from glidesync.core.exceptions import (
    ConnectionNotFoundError,
    MappingBusyError,
    MappingNotFoundError,
    MappingValidationError,
)
from glidesync.core.models import (
    ColumnMapping,
    ColumnMappingSuggestion,
    ColumnSchema,
    Mapping,
    MappingCreate,
    MappingUpdate,
    ValidationResult,
    column_mappings_to_json,
)
from glidesync.core.repositories import (
    ConnectionRepository,
    MappingRepository,
    SyncLogRepository,
)
from glidesync.core.services.config_loader import load_mapping_config
from glidesync.core.services.suggestion import suggest_column_mappings
from glidesync.core.services.validation import MappingValidator

logger = logging.getLogger(__name__)

# Edits to these fields invalidate a previous validation
_STRUCTURAL_FIELDS = ("source_table", "sink_table", "sync_direction", "column_mappings")


class MappingService:
    """Service for Glide-to-relational table mappings.

    Handles:
    - Creating, listing, updating and deleting mappings
    - Validating column mappings against live schemas and enabling mappings
    - Suggesting column mappings for a pair of tables

    A mapping is created disabled and only becomes enabled after its column
    mappings pass validation. Mappings with a run in progress cannot be
    updated or deleted.
    """

    def __init__(
        self,
        session: Session,
        endpoints: EndpointProvider | None = None,
        validator: MappingValidator | None = None,
    ) -> None:
        """Initialize mapping service.

        Args:
            session: SQLAlchemy database session.
            endpoints: Builds endpoints used to fetch schema snapshots.
            validator: Column mapping validator.
        """
        self.session = session
        self.repo = MappingRepository(session)
        self.connection_repo = ConnectionRepository(session)
        self.log_repo = SyncLogRepository(session)
        self.endpoints = endpoints or EndpointProvider()
        self.validator = validator or MappingValidator()

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create_mapping(self, data: MappingCreate) -> Mapping:
        """Create a disabled mapping.

        Raises:
            ConnectionNotFoundError: If the owning connection does not exist.
            MappingValidationError: If two column mappings share a source column.
        """
        if self.connection_repo.get_by_id(data.connection_id) is None:
            raise ConnectionNotFoundError(data.connection_id)

        try:
            column_mappings = column_mappings_to_json(data.column_mappings)
        except ValueError as e:
            raise MappingValidationError(None, str(e)) from e

        mapping = self.repo.create(
            connection_id=data.connection_id,
            source_table=data.source_table,
            source_table_display_name=data.source_table_display_name or data.source_table,
            sink_table=data.sink_table,
            sync_direction=data.sync_direction,
            column_mappings=column_mappings,
        )
        self.repo.flush()
        logger.info(
            f"Created mapping {mapping.id}: {mapping.source_table} -> {mapping.sink_table}"
        )
        return mapping

    def create_from_file(self, path: Path, connection_id: int | None = None) -> Mapping:
        """Create a mapping from a YAML definition file."""
        return self.create_mapping(load_mapping_config(path, connection_id=connection_id))

    def get_mapping(self, mapping_id: int) -> Mapping:
        """Get a mapping by id.

        Raises:
            MappingNotFoundError: If the mapping does not exist.
        """
        mapping = self.repo.get_with_connection(mapping_id)
        if mapping is None:
            raise MappingNotFoundError(mapping_id)
        return mapping

    def list_mappings(
        self,
        connection_id: int | None = None,
        enabled: bool | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Mapping]:
        """List mappings ordered by source table display name."""
        return self.repo.list_mappings(
            connection_id=connection_id,
            enabled=enabled,
            limit=limit,
            offset=offset,
        )

    def _ensure_idle(self, mapping_id: int) -> None:
        if self.log_repo.get_running(mapping_id) is not None:
            raise MappingBusyError(mapping_id)

    def update_mapping(self, mapping_id: int, data: MappingUpdate) -> Mapping:
        """Update a mapping. Only fields that were set are changed.

        An enabled mapping whose tables, direction or column mappings change
        is disabled and has to be enabled (and so validated) again.

        Raises:
            MappingNotFoundError: If the mapping does not exist.
            MappingBusyError: If a run is in progress for the mapping.
            MappingValidationError: If two column mappings share a source column.
        """
        mapping = self.get_mapping(mapping_id)
        self._ensure_idle(mapping_id)

        changes = data.model_dump(exclude_unset=True)
        structural_change = False

        if data.column_mappings is not None:
            try:
                new_columns = column_mappings_to_json(data.column_mappings)
            except ValueError as e:
                raise MappingValidationError(mapping_id, str(e)) from e
            if new_columns != mapping.column_mappings:
                mapping.column_mappings = new_columns
                structural_change = True

        for field_name in (
            "source_table",
            "source_table_display_name",
            "sink_table",
            "sync_direction",
        ):
            value = changes.get(field_name)
            if value is None or value == getattr(mapping, field_name):
                continue
            setattr(mapping, field_name, value)
            if field_name in _STRUCTURAL_FIELDS:
                structural_change = True

        if structural_change and mapping.enabled:
            mapping.enabled = False
            logger.info(f"Mapping {mapping_id} disabled after edit; it must be re-validated")

        self.repo.flush()
        return mapping

    def delete_mapping(self, mapping_id: int) -> None:
        """Delete a mapping. Its sync logs are kept with the reference cleared.

        Raises:
            MappingNotFoundError: If the mapping does not exist.
            MappingBusyError: If a run is in progress for the mapping.
        """
        mapping = self.get_mapping(mapping_id)
        self._ensure_idle(mapping_id)
        self.repo.detach_history(mapping_id)
        self.repo.delete(mapping)
        self.repo.flush()
        logger.info(f"Deleted mapping {mapping_id}")

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def fetch_schemas(self, mapping: Mapping) -> tuple[list[ColumnSchema], list[ColumnSchema]]:
        """Fetch live schema snapshots of a mapping's source and sink tables.

        Raises:
            EndpointError: If either endpoint cannot describe its table.
        """
        connection = mapping.connection

        async def _fetch() -> tuple[list[ColumnSchema], list[ColumnSchema]]:
            async with self.endpoints.source_for(connection) as source:
                source_schema = await source.list_columns(mapping.source_table)
            async with self.endpoints.sink_for(connection) as sink:
                sink_schema = await sink.list_columns(mapping.sink_table)
            return source_schema, sink_schema

        return asyncio.run(_fetch())

    def validate_mapping(
        self,
        mapping_id: int,
        source_schema: list[ColumnSchema] | None = None,
        sink_schema: list[ColumnSchema] | None = None,
    ) -> ValidationResult:
        """Validate a mapping's column mappings without changing it.

        Schemas that are not supplied are fetched from the endpoints.
        """
        mapping = self.get_mapping(mapping_id)
        if source_schema is None or sink_schema is None:
            fetched_source, fetched_sink = self.fetch_schemas(mapping)
            source_schema = source_schema if source_schema is not None else fetched_source
            sink_schema = sink_schema if sink_schema is not None else fetched_sink

        result = self.validator.validate(
            mapping.get_column_mappings(),
            mapping.sync_direction,
            source_schema,
            sink_schema,
        )
        logger.debug(f"Validated mapping {mapping_id}: {result.message}")
        return result

    def enable_mapping(
        self,
        mapping_id: int,
        source_schema: list[ColumnSchema] | None = None,
        sink_schema: list[ColumnSchema] | None = None,
    ) -> Mapping:
        """Validate a mapping and enable it.

        Raises:
            MappingNotFoundError: If the mapping does not exist.
            MappingValidationError: If validation fails. The mapping stays disabled.
            MappingBusyError: If a run is in progress for the mapping.
        """
        self.get_mapping(mapping_id)
        self._ensure_idle(mapping_id)
        result = self.validate_mapping(mapping_id, source_schema, sink_schema)
        mapping = self.get_mapping(mapping_id)
        if not result.is_valid:
            logger.info(f"Mapping {mapping_id} not enabled: {result.message}")
            raise MappingValidationError(mapping_id, result.message)

        mapping.enabled = True
        self.repo.flush()
        logger.info(f"Enabled mapping {mapping_id}")
        return mapping

    def disable_mapping(self, mapping_id: int) -> Mapping:
        """Disable a mapping.

        Raises:
            MappingBusyError: If a run is in progress for the mapping.
        """
        mapping = self.get_mapping(mapping_id)
        self._ensure_idle(mapping_id)
        mapping.enabled = False
        self.repo.flush()
        logger.info(f"Disabled mapping {mapping_id}")
        return mapping

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def suggest_columns(
        self,
        mapping_id: int,
        source_columns: list[str] | None = None,
    ) -> list[ColumnMappingSuggestion]:
        """Suggest column mappings for a mapping's tables.

        Nothing is saved. Source columns that are not supplied are fetched
        from the source endpoint.
        """
        mapping = self.get_mapping(mapping_id)
        source_schema, sink_schema = self.fetch_schemas(mapping)
        if source_columns is None:
            source_columns = [column.name for column in source_schema]
        return suggest_column_mappings(sink_schema, source_columns)

    @staticmethod
    def merge_suggestions(
        current: list[ColumnMapping],
        suggestions: list[ColumnMappingSuggestion],
    ) -> list[ColumnMapping]:
        """Add suggestions for source columns that are not mapped yet."""
        mapped = {column.source_column for column in current}
        merged = list(current)
        for suggestion in suggestions:
            if suggestion.source_column not in mapped:
                merged.append(
                    ColumnMapping(
                        source_column=suggestion.source_column,
                        sink_column=suggestion.sink_column,
                        data_type=suggestion.data_type,
                    )
                )
        return merged
