"""Pytest configuration and shared fixtures."""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from typer.testing import CliRunner

# Import models to ensure all tables are registered with Base before create_all
from glidesync.core import models  # noqa: F401
from glidesync.core.endpoints import (
    EndpointConnectionError,
    EndpointWriteError,
    SyncEndpoint,
    TableNotFoundError,
)
from glidesync.core.events import reset_event_bus
from glidesync.core.models import (
    Base,
    ColumnMapping,
    ColumnSchema,
    Connection,
    ConnectionCreate,
    Mapping,
    MappingCreate,
    RowPage,
    RowWriteResult,
    TableInfo,
)
from glidesync.core.services import ConnectionService, MappingService


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a CLI runner for testing Typer commands."""
    return CliRunner()


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Foreign keys are enforced so ON DELETE rules behave as in production.
    """
    engine = create_engine("sqlite:///:memory:", echo=False)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def clean_event_bus() -> Generator[None, None, None]:
    """Give every test a fresh global event bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def temp_data_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary data directory for testing.

    Sets GLIDESYNC_DATA_DIR and resets the cached settings and the global
    database engine so the CLI works against an empty database.
    """
    from glidesync.config.settings import get_settings
    from glidesync.core.database import reset_engine

    get_settings.cache_clear()

    data_dir = tmp_path / "glidesync"
    data_dir.mkdir()

    old_value = os.environ.get("GLIDESYNC_DATA_DIR")
    os.environ["GLIDESYNC_DATA_DIR"] = str(data_dir)

    reset_engine()

    try:
        yield data_dir
    finally:
        reset_engine()

        if old_value is not None:
            os.environ["GLIDESYNC_DATA_DIR"] = old_value
        else:
            os.environ.pop("GLIDESYNC_DATA_DIR", None)

        get_settings.cache_clear()


# =============================================================================
# In-memory endpoints
# =============================================================================


class FakeEndpoint(SyncEndpoint):
    """In-memory endpoint with failure injection.

    Rows are read from `tables` and writes are appended to `written`, so a
    bidirectional run never reads back what it wrote in the same run.
    """

    kind = "fake"

    def __init__(
        self,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        schemas: dict[str, list[ColumnSchema]] | None = None,
    ) -> None:
        super().__init__(config=None)
        self.tables = tables or {}
        self.schemas = schemas or {}
        self.written: dict[str, list[dict[str, Any]]] = {}
        self.write_calls: list[dict[str, Any]] = []
        self.reads = 0
        self.connected = False
        # Failure injection, batches are numbered from 1
        self.fail_read_at: int | None = None
        self.fail_write_at: int | None = None
        self.reject_write_at: int | None = None
        self.reject_row: Callable[[dict[str, Any]], str | None] | None = None
        self.on_read: Callable[[int], None] | None = None

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def test_connection(self) -> bool:
        return True

    async def list_tables(self) -> list[TableInfo]:
        return [TableInfo(name=name) for name in sorted(self.schemas)]

    async def list_columns(self, table: str) -> list[ColumnSchema]:
        if table not in self.schemas:
            raise TableNotFoundError(table, kind=self.kind)
        return list(self.schemas[table])

    async def read_rows(self, table: str, cursor: str | None, batch_size: int) -> RowPage:
        self.reads += 1
        if self.on_read is not None:
            self.on_read(self.reads)
        if self.fail_read_at == self.reads:
            raise EndpointConnectionError("connection reset by peer", kind=self.kind)

        rows = self.tables.get(table, [])
        offset = int(cursor) if cursor else 0
        page = rows[offset : offset + batch_size]
        end = offset + len(page)
        return RowPage(rows=page, next_cursor=str(end) if end < len(rows) else None)

    async def write_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        key_column: str | None = None,
    ) -> list[RowWriteResult]:
        self.write_calls.append({"table": table, "rows": list(rows), "key_column": key_column})
        batch = len(self.write_calls)
        if self.fail_write_at == batch:
            raise EndpointConnectionError("connection reset by peer", kind=self.kind)
        if self.reject_write_at == batch:
            raise EndpointWriteError("batch rejected", kind=self.kind)

        results = []
        for row in rows:
            error = self.reject_row(row) if self.reject_row else None
            if error:
                results.append(RowWriteResult(success=False, error=error))
                continue
            self.written.setdefault(table, []).append(row)
            results.append(
                RowWriteResult(success=True, row_id=row.get(key_column) if key_column else None)
            )
        return results


class FakeEndpointProvider:
    """Hands out the same pair of fake endpoints for every connection."""

    def __init__(self, source: FakeEndpoint, sink: FakeEndpoint) -> None:
        self.source = source
        self.sink = sink

    def source_for(self, connection: Connection) -> FakeEndpoint:
        return self.source

    def sink_for(self, connection: Connection) -> FakeEndpoint:
        return self.sink


SOURCE_TABLE = "native-table-orders"
SINK_TABLE = "orders"

SOURCE_SCHEMA = [
    ColumnSchema(name="$rowID", native_type="row-id", primary_key=True, unique=True),
    ColumnSchema(name="Name", native_type="string"),
    ColumnSchema(name="Total Amount", native_type="number"),
    ColumnSchema(name="Paid", native_type="boolean"),
    ColumnSchema(name="Summary", native_type="string", writable=False),
]

SINK_SCHEMA = [
    ColumnSchema(name="id", native_type="INTEGER", primary_key=True),
    ColumnSchema(name="glide_row_id", native_type="VARCHAR(64)"),
    ColumnSchema(name="name", native_type="TEXT"),
    ColumnSchema(name="total_amount", native_type="NUMERIC(10, 2)"),
    ColumnSchema(name="paid", native_type="BOOLEAN"),
    ColumnSchema(name="created_at", native_type="TIMESTAMP"),
]

ORDER_COLUMNS = [
    ColumnMapping(source_column="$rowID", sink_column="glide_row_id", data_type="string"),
    ColumnMapping(source_column="Name", sink_column="name", data_type="string"),
    ColumnMapping(source_column="Total Amount", sink_column="total_amount", data_type="number"),
]


def make_source_rows(count: int) -> list[dict[str, Any]]:
    """Build Glide-style order rows numbered from 1."""
    return [
        {"$rowID": f"row-{i}", "Name": f"Order {i}", "Total Amount": i * 1.5, "Paid": i % 2 == 0}
        for i in range(1, count + 1)
    ]


@pytest.fixture
def source_schema() -> list[ColumnSchema]:
    """Columns of the Glide orders table."""
    return list(SOURCE_SCHEMA)


@pytest.fixture
def sink_schema() -> list[ColumnSchema]:
    """Columns of the relational orders table."""
    return list(SINK_SCHEMA)


@pytest.fixture
def order_columns() -> list[ColumnMapping]:
    """Column mappings between the two orders tables."""
    return list(ORDER_COLUMNS)


@pytest.fixture
def fake_source() -> FakeEndpoint:
    """Fake Glide app with an orders table of 100 rows."""
    return FakeEndpoint(
        tables={SOURCE_TABLE: make_source_rows(100)},
        schemas={SOURCE_TABLE: SOURCE_SCHEMA},
    )


@pytest.fixture
def fake_sink() -> FakeEndpoint:
    """Fake sink database with an empty orders table."""
    return FakeEndpoint(tables={SINK_TABLE: []}, schemas={SINK_TABLE: SINK_SCHEMA})


@pytest.fixture
def fake_endpoints(fake_source: FakeEndpoint, fake_sink: FakeEndpoint) -> FakeEndpointProvider:
    """Endpoint provider wired to the fake source and sink."""
    return FakeEndpointProvider(fake_source, fake_sink)


@pytest.fixture
def sample_connection(test_db: Session) -> Connection:
    """Create a Glide connection."""
    service = ConnectionService(test_db)
    connection = service.create_connection(
        ConnectionCreate(app_id="app-123", api_key="glide-secret-key-9876", app_name="Orders")
    )
    test_db.commit()
    return connection


@pytest.fixture
def sample_mapping(test_db: Session, sample_connection: Connection) -> Mapping:
    """Create a disabled to_sink mapping over the orders tables."""
    service = MappingService(test_db)
    mapping = service.create_mapping(
        MappingCreate(
            connection_id=sample_connection.id,
            source_table=SOURCE_TABLE,
            source_table_display_name="Orders",
            sink_table=SINK_TABLE,
            column_mappings=ORDER_COLUMNS,
        )
    )
    test_db.commit()
    return mapping


@pytest.fixture
def enabled_mapping(
    test_db: Session,
    sample_mapping: Mapping,
    fake_endpoints: FakeEndpointProvider,
) -> Mapping:
    """The sample mapping, validated and enabled."""
    service = MappingService(test_db, endpoints=fake_endpoints)
    mapping = service.enable_mapping(sample_mapping.id)
    test_db.commit()
    return mapping


@pytest.fixture
def sample_connection_file(tmp_path: Path) -> Path:
    """Create a connection definition file."""
    config_file = tmp_path / "connection.yaml"
    config_file.write_text(
        """
app_id: app-from-file
api_key: file-secret-key-1234
app_name: Invoicing
settings:
  sink_schema: public
"""
    )
    return config_file


@pytest.fixture
def sample_mapping_file(tmp_path: Path) -> Path:
    """Create a mapping definition file without a connection id."""
    config_file = tmp_path / "mapping.yaml"
    config_file.write_text(
        """
source_table: native-table-invoices
source_table_display_name: Invoices
sink_table: invoices
sync_direction: to_supabase
column_mappings:
  - glide_column_name: $rowID
    supabase_column_name: glide_row_id
    data_type: string
  - source_column: Total Amount
    sink_column: total_amount
    data_type: number
"""
    )
    return config_file
