"""Relational table endpoint backed by SQLAlchemy."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Date, DateTime, MetaData, Table, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, NoSuchTableError, SQLAlchemyError

from glidesync.core.database import create_database_engine
from glidesync.core.endpoints.base import SyncEndpoint
from glidesync.core.endpoints.exceptions import (
    EndpointConnectionError,
    EndpointWriteError,
    TableNotFoundError,
)
from glidesync.core.endpoints.registry import EndpointRegistry
from glidesync.core.endpoints.schemas import SqlTableConfig
from glidesync.core.models.schemas import ColumnSchema, RowPage, RowWriteResult, TableInfo

logger = logging.getLogger(__name__)

# Error text that means the server went away rather than rejecting the statement
_CONNECTION_ERROR_MARKERS = (
    "could not connect",
    "connection refused",
    "server closed the connection",
    "connection timed out",
    "terminating connection",
    "unable to open database",
    "connection is closed",
    "ssl syscall error",
)


def _is_connection_error(error: Exception) -> bool:
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _CONNECTION_ERROR_MARKERS)


@EndpointRegistry.register(
    kind="sql",
    display_name="SQL database (Supabase/PostgreSQL/SQLite)",
    config_schema=SqlTableConfig,
)
class SqlTableEndpoint(SyncEndpoint):
    """Endpoint for tables in a relational database.

    Supports:
    - Column discovery through SQLAlchemy reflection
    - Offset pagination ordered by primary key
    - Upsert on a key column using the dialect's ON CONFLICT support
      (PostgreSQL and SQLite), with an update-then-insert fallback elsewhere
      and for key columns without a unique constraint

    SQLAlchemy calls are blocking and run in the default executor.
    """

    def __init__(self, config: SqlTableConfig, engine: Engine | None = None) -> None:
        super().__init__(config)
        self.config: SqlTableConfig = config
        self._engine: Engine | None = engine
        self._owns_engine = engine is None
        self._metadata = MetaData(schema=config.schema_name)
        self._tables: dict[str, Table] = {}
        self._unique: dict[str, set[str]] = {}

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def connect(self) -> None:
        """Create the engine and check that the database answers."""
        if self._engine is None:
            self._engine = create_database_engine(self.config.database_url)

        def _ping() -> None:
            with self._get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))

        try:
            await self._run(_ping)
        except SQLAlchemyError as e:
            raise EndpointConnectionError(
                f"Failed to connect to database: {e}",
                kind="sql",
            ) from e

    async def disconnect(self) -> None:
        """Dispose of the engine if this endpoint created it."""
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None
        self._tables.clear()
        self._unique.clear()

    def _get_engine(self) -> Engine:
        if self._engine is None:
            raise EndpointConnectionError(
                "Not connected. Call connect() first.",
                kind="sql",
            )
        return self._engine

    def _reflect(self, table: str) -> Table:
        if table not in self._tables:
            try:
                self._tables[table] = Table(
                    table,
                    self._metadata,
                    autoload_with=self._get_engine(),
                )
            except NoSuchTableError as e:
                raise TableNotFoundError(table, kind="sql") from e
        return self._tables[table]

    def _unique_columns(self, table: str) -> set[str]:
        """Columns that are unique on their own through a key, constraint or index."""
        if table not in self._unique:
            inspector = inspect(self._get_engine())
            schema = self.config.schema_name
            pk = inspector.get_pk_constraint(table, schema=schema)
            candidates = [pk.get("constrained_columns") or []]
            candidates += [
                uc["column_names"]
                for uc in inspector.get_unique_constraints(table, schema=schema)
            ]
            candidates += [
                ix["column_names"]
                for ix in inspector.get_indexes(table, schema=schema)
                if ix.get("unique")
            ]
            self._unique[table] = {
                columns[0] for columns in candidates if len(columns) == 1 and columns[0]
            }
        return self._unique[table]

    async def test_connection(self) -> bool:
        """Test connection by running a simple query."""
        try:
            def _ping() -> None:
                with self._get_engine().connect() as conn:
                    conn.execute(text("SELECT 1"))

            await self._run(_ping)
            return True
        except (SQLAlchemyError, EndpointConnectionError):
            return False

    async def list_tables(self) -> list[TableInfo]:
        """List the tables in the configured schema."""

        def _tables() -> list[TableInfo]:
            inspector = inspect(self._get_engine())
            names = inspector.get_table_names(schema=self.config.schema_name)
            return [TableInfo(name=name) for name in sorted(names)]

        try:
            return await self._run(_tables)
        except SQLAlchemyError as e:
            raise EndpointConnectionError(f"Failed to list tables: {e}", kind="sql") from e

    async def list_columns(self, table: str) -> list[ColumnSchema]:
        """Describe a table's columns using the database inspector."""

        def _columns() -> list[ColumnSchema]:
            inspector = inspect(self._get_engine())
            try:
                raw_columns = inspector.get_columns(table, schema=self.config.schema_name)
                pk = inspector.get_pk_constraint(table, schema=self.config.schema_name)
            except NoSuchTableError as e:
                raise TableNotFoundError(table, kind="sql") from e
            pk_columns = set(pk.get("constrained_columns") or [])
            unique_columns = self._unique_columns(table)
            return [
                ColumnSchema(
                    name=col["name"],
                    native_type=str(col["type"]),
                    writable=not col.get("computed"),
                    primary_key=col["name"] in pk_columns,
                    unique=col["name"] in unique_columns,
                )
                for col in raw_columns
            ]

        try:
            return await self._run(_columns)
        except SQLAlchemyError as e:
            raise EndpointConnectionError(f"Failed to describe {table!r}: {e}", kind="sql") from e

    async def read_rows(
        self,
        table: str,
        cursor: str | None,
        batch_size: int,
    ) -> RowPage:
        """Read one page. The cursor is the row offset of the next page."""
        offset = int(cursor) if cursor else 0

        def _read() -> list[dict[str, Any]]:
            tbl = self._reflect(table)
            order_by = list(tbl.primary_key.columns) or list(tbl.columns)
            stmt = select(tbl).order_by(*order_by).offset(offset).limit(batch_size)
            with self._get_engine().connect() as conn:
                return [dict(row._mapping) for row in conn.execute(stmt)]

        try:
            rows = await self._run(_read)
        except SQLAlchemyError as e:
            raise EndpointConnectionError(f"Failed to read {table!r}: {e}", kind="sql") from e

        next_cursor = str(offset + len(rows)) if len(rows) == batch_size else None
        return RowPage(rows=rows, next_cursor=next_cursor)

    def _adapt_row(self, tbl: Table, row: dict[str, Any]) -> dict[str, Any]:
        adapted = {}
        for name, value in row.items():
            column = tbl.columns.get(name)
            if (
                column is not None
                and isinstance(value, datetime)
                and isinstance(column.type, Date)
                and not isinstance(column.type, DateTime)
            ):
                value = value.date()
            adapted[name] = value
        return adapted

    def _upsert_statement(self, tbl: Table, rows: list[dict[str, Any]], key_column: str) -> Any:
        dialect = self._get_engine().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            return None

        stmt = insert(tbl).values(rows)
        update_columns = {
            name: stmt.excluded[name]
            for name in rows[0]
            if name != key_column
        }
        if not update_columns:
            return stmt.on_conflict_do_nothing(index_elements=[key_column])
        return stmt.on_conflict_do_update(index_elements=[key_column], set_=update_columns)

    async def write_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        key_column: str | None = None,
    ) -> list[RowWriteResult]:
        """Write a batch in a single transaction.

        Either every row in the batch is written or the batch is rejected.
        ON CONFLICT needs a unique key column; when the key column has no
        unique constraint or index, rows are updated or inserted one by one.
        """
        if not rows:
            return []

        def _has_key(row: dict[str, Any]) -> bool:
            return key_column is not None and row.get(key_column) is not None

        def _write() -> None:
            tbl = self._reflect(table)
            adapted = [self._adapt_row(tbl, row) for row in rows]

            stmt = None
            # Multi-row VALUES needs the same keys in every row
            if (
                key_column in self._unique_columns(table)
                and all(_has_key(row) for row in adapted)
                and all(row.keys() == adapted[0].keys() for row in adapted)
            ):
                stmt = self._upsert_statement(tbl, adapted, key_column)

            with self._get_engine().begin() as conn:
                if stmt is not None:
                    conn.execute(stmt)
                    return
                for row in adapted:
                    if _has_key(row):
                        values = {k: v for k, v in row.items() if k != key_column}
                        if not values:
                            existing = conn.execute(
                                select(tbl.c[key_column]).where(
                                    tbl.c[key_column] == row[key_column]
                                )
                            ).first()
                            if existing is not None:
                                continue
                            conn.execute(tbl.insert().values(**row))
                            continue
                        result = conn.execute(
                            tbl.update()
                            .where(tbl.c[key_column] == row[key_column])
                            .values(**values)
                        )
                        if result.rowcount:
                            continue
                    conn.execute(tbl.insert().values(**row))

        try:
            await self._run(_write)
        except SQLAlchemyError as e:
            if _is_connection_error(e):
                logger.error(f"Database unreachable while writing {table!r}: {e}")
                raise EndpointConnectionError(
                    f"Database unreachable while writing {table!r}: {e}",
                    kind="sql",
                ) from e
            logger.warning(f"Batch write to {table!r} rejected: {e}")
            raise EndpointWriteError(f"Batch write to {table!r} failed: {e}", kind="sql") from e

        return [
            RowWriteResult(
                success=True,
                row_id=str(row[key_column]) if _has_key(row) else None,
            )
            for row in rows
        ]
