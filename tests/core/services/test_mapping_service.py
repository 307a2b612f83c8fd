"""Tests for MappingService."""

from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from glidesync.core.endpoints import TableNotFoundError
from glidesync.core.exceptions import (
    ConnectionNotFoundError,
    MappingBusyError,
    MappingNotFoundError,
    MappingValidationError,
)
from glidesync.core.models import (
    ColumnMapping,
    Connection,
    Mapping,
    MappingCreate,
    MappingUpdate,
)
from glidesync.core.services import MappingService, SyncLogService


class TestMappingCrud:
    """Test cases for creating, editing and deleting mappings."""

    def test_create_mapping(self, test_db: Session, sample_connection: Connection, order_columns):
        """New mappings are disabled and keyed by source column."""
        service = MappingService(test_db)

        mapping = service.create_mapping(
            MappingCreate(
                connection_id=sample_connection.id,
                source_table="native-table-orders",
                sink_table="orders",
                column_mappings=order_columns,
            )
        )

        assert mapping.enabled is False
        assert mapping.sync_direction == "to_sink"
        assert mapping.source_table_display_name == "native-table-orders"
        assert set(mapping.column_mappings) == {"$rowID", "Name", "Total Amount"}
        assert mapping.get_column_mappings() == order_columns

    def test_create_for_missing_connection(self, test_db: Session):
        service = MappingService(test_db)

        with pytest.raises(ConnectionNotFoundError):
            service.create_mapping(
                MappingCreate(connection_id=42, source_table="t", sink_table="s")
            )

    def test_create_duplicate_source_column(self, test_db: Session, sample_connection: Connection):
        service = MappingService(test_db)
        columns = [
            ColumnMapping(source_column="Name", sink_column="name", data_type="string"),
            ColumnMapping(source_column="Name", sink_column="title", data_type="string"),
        ]

        with pytest.raises(MappingValidationError, match="Duplicate source column"):
            service.create_mapping(
                MappingCreate(
                    connection_id=sample_connection.id,
                    source_table="t",
                    sink_table="s",
                    column_mappings=columns,
                )
            )

    def test_create_from_file(
        self, test_db: Session, sample_connection: Connection, sample_mapping_file: Path
    ):
        service = MappingService(test_db)

        mapping = service.create_from_file(sample_mapping_file, connection_id=sample_connection.id)

        assert mapping.source_table_display_name == "Invoices"
        assert mapping.sync_direction == "to_sink"
        assert mapping.column_mappings["$rowID"]["sink_column"] == "glide_row_id"

    def test_get_mapping_not_found(self, test_db: Session):
        with pytest.raises(MappingNotFoundError):
            MappingService(test_db).get_mapping(404)

    def test_list_mappings_by_connection(self, test_db: Session, sample_mapping: Mapping):
        service = MappingService(test_db)

        assert service.list_mappings(connection_id=sample_mapping.connection_id) == [
            sample_mapping
        ]
        assert service.list_mappings(connection_id=999) == []
        assert service.list_mappings(enabled=True) == []

    def test_structural_edit_disables(self, test_db: Session, enabled_mapping: Mapping):
        """Changing the column mappings requires validating again."""
        service = MappingService(test_db)
        columns = enabled_mapping.get_column_mappings()[:2]

        mapping = service.update_mapping(enabled_mapping.id, MappingUpdate(column_mappings=columns))

        assert mapping.enabled is False
        assert set(mapping.column_mappings) == {"$rowID", "Name"}

    def test_cosmetic_edit_keeps_enabled(self, test_db: Session, enabled_mapping: Mapping):
        service = MappingService(test_db)

        mapping = service.update_mapping(
            enabled_mapping.id, MappingUpdate(source_table_display_name="All orders")
        )

        assert mapping.enabled is True
        assert mapping.source_table_display_name == "All orders"

    def test_unchanged_values_keep_enabled(self, test_db: Session, enabled_mapping: Mapping):
        service = MappingService(test_db)

        mapping = service.update_mapping(
            enabled_mapping.id,
            MappingUpdate(
                sink_table="orders",
                column_mappings=enabled_mapping.get_column_mappings(),
            ),
        )

        assert mapping.enabled is True

    def test_edit_while_running(self, test_db: Session, sample_mapping: Mapping):
        SyncLogService(test_db).start_run(sample_mapping.id)
        service = MappingService(test_db)

        with pytest.raises(MappingBusyError):
            service.update_mapping(sample_mapping.id, MappingUpdate(sink_table="orders_v2"))
        with pytest.raises(MappingBusyError):
            service.delete_mapping(sample_mapping.id)

    def test_delete_keeps_logs(self, test_db: Session, sample_mapping: Mapping):
        """Deleting a mapping keeps its sync logs without the reference."""
        log_service = SyncLogService(test_db)
        log = log_service.start_run(sample_mapping.id)
        log_service.complete_run(log.id, "success", 3, 0, "done")
        service = MappingService(test_db)

        service.delete_mapping(sample_mapping.id)
        test_db.commit()
        test_db.expire_all()

        assert log_service.get_log(log.id).mapping_id is None
        with pytest.raises(MappingNotFoundError):
            service.get_mapping(sample_mapping.id)


class TestMappingValidation:
    """Test cases for validating and enabling mappings."""

    def test_validate_with_live_schemas(
        self, test_db: Session, sample_mapping: Mapping, fake_endpoints
    ):
        service = MappingService(test_db, endpoints=fake_endpoints)

        result = service.validate_mapping(sample_mapping.id)

        assert result.is_valid is True
        assert sample_mapping.enabled is False

    def test_validate_missing_sink_table(
        self, test_db: Session, sample_mapping: Mapping, fake_endpoints
    ):
        fake_endpoints.sink.schemas = {}
        service = MappingService(test_db, endpoints=fake_endpoints)

        with pytest.raises(TableNotFoundError):
            service.validate_mapping(sample_mapping.id)

    def test_enable_mapping(self, test_db: Session, sample_mapping: Mapping, fake_endpoints):
        service = MappingService(test_db, endpoints=fake_endpoints)

        mapping = service.enable_mapping(sample_mapping.id)

        assert mapping.enabled is True

    def test_enable_rejected(
        self, test_db: Session, sample_mapping: Mapping, source_schema, sink_schema
    ):
        """A mapping that fails validation stays disabled."""
        service = MappingService(test_db)
        sink_without_amount = [c for c in sink_schema if c.name != "total_amount"]

        with pytest.raises(MappingValidationError) as exc_info:
            service.enable_mapping(
                sample_mapping.id,
                source_schema=source_schema,
                sink_schema=sink_without_amount,
            )

        assert "total_amount" in exc_info.value.message
        assert sample_mapping.enabled is False

    def test_disable_mapping(self, test_db: Session, enabled_mapping: Mapping):
        mapping = MappingService(test_db).disable_mapping(enabled_mapping.id)

        assert mapping.enabled is False

    def test_toggle_while_running(
        self, test_db: Session, enabled_mapping: Mapping, fake_endpoints
    ):
        """Enabling or disabling is refused while a run holds the slot."""
        SyncLogService(test_db).start_run(enabled_mapping.id)
        service = MappingService(test_db, endpoints=fake_endpoints)

        with pytest.raises(MappingBusyError):
            service.disable_mapping(enabled_mapping.id)
        with pytest.raises(MappingBusyError):
            service.enable_mapping(enabled_mapping.id)
        assert service.get_mapping(enabled_mapping.id).enabled is True


class TestMappingSuggestions:
    """Test cases for column mapping suggestions."""

    def test_suggest_columns(self, test_db: Session, sample_mapping: Mapping, fake_endpoints):
        service = MappingService(test_db, endpoints=fake_endpoints)

        suggestions = service.suggest_columns(sample_mapping.id)

        assert [s.source_column for s in suggestions] == ["$rowID", "Name", "Total Amount", "Paid"]
        # Nothing is persisted
        assert "Paid" not in sample_mapping.column_mappings

    def test_suggest_for_given_columns(
        self, test_db: Session, sample_mapping: Mapping, fake_endpoints
    ):
        service = MappingService(test_db, endpoints=fake_endpoints)

        suggestions = service.suggest_columns(sample_mapping.id, source_columns=["Paid"])

        assert [(s.source_column, s.sink_column) for s in suggestions] == [("Paid", "paid")]

    def test_merge_suggestions(self, test_db: Session, sample_mapping: Mapping, fake_endpoints):
        """Only unmapped source columns are added."""
        service = MappingService(test_db, endpoints=fake_endpoints)
        current = sample_mapping.get_column_mappings()

        merged = service.merge_suggestions(current, service.suggest_columns(sample_mapping.id))

        assert merged[: len(current)] == current
        assert [c.source_column for c in merged[len(current) :]] == ["Paid"]
        assert type(merged[-1]) is ColumnMapping
