"""Tests for the relational table endpoint."""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from glidesync.core.endpoints import (
    EndpointConnectionError,
    EndpointWriteError,
    SqlTableConfig,
    SqlTableEndpoint,
    TableNotFoundError,
)


@pytest.fixture
def sink_url(tmp_path: Path) -> str:
    """SQLite database with an orders table keyed by glide_row_id."""
    url = f"sqlite:///{tmp_path}/sink.db"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE orders ("
                " id INTEGER PRIMARY KEY,"
                " glide_row_id VARCHAR(64) UNIQUE,"
                " name TEXT,"
                " total_amount NUMERIC(10, 2),"
                " paid BOOLEAN,"
                " ordered_on DATE,"
                " created_at TIMESTAMP"
                ")"
            )
        )
        conn.execute(
            text(
                "CREATE TABLE notes ("
                " id INTEGER PRIMARY KEY, glide_row_id VARCHAR(64), body TEXT NOT NULL"
                ")"
            )
        )
    engine.dispose()
    return url


def _fetch(url: str, sql: str) -> list[tuple]:
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            return [tuple(row) for row in conn.execute(text(sql))]
    finally:
        engine.dispose()


def _run(url: str, scenario):
    """Run a coroutine function against a connected endpoint."""
    endpoint = SqlTableEndpoint(SqlTableConfig(database_url=url))

    async def _main():
        async with endpoint:
            return await scenario(endpoint)

    return asyncio.run(_main())


class TestSqlSchema:
    """Test cases for connecting and describing tables."""

    def test_test_connection(self, sink_url: str):
        assert _run(sink_url, lambda endpoint: endpoint.test_connection()) is True

    def test_connect_failure(self, tmp_path: Path):
        url = f"sqlite:///{tmp_path}/missing-dir/sink.db"

        with pytest.raises(EndpointConnectionError):
            _run(url, lambda endpoint: endpoint.test_connection())

    def test_list_columns(self, sink_url: str):
        columns = _run(sink_url, lambda endpoint: endpoint.list_columns("orders"))
        by_name = {c.name: c for c in columns}

        assert list(by_name) == [
            "id",
            "glide_row_id",
            "name",
            "total_amount",
            "paid",
            "ordered_on",
            "created_at",
        ]
        assert by_name["id"].primary_key is True
        assert by_name["glide_row_id"].unique is True
        assert by_name["name"].unique is False
        assert by_name["glide_row_id"].native_type.startswith("VARCHAR")
        assert by_name["total_amount"].native_type.startswith("NUMERIC")
        assert all(c.writable for c in columns)

    def test_list_columns_missing_table(self, sink_url: str):
        with pytest.raises(TableNotFoundError):
            _run(sink_url, lambda endpoint: endpoint.list_columns("invoices"))

    def test_list_tables(self, sink_url: str):
        tables = _run(sink_url, lambda endpoint: endpoint.list_tables())

        assert [(t.name, t.display_name) for t in tables] == [("notes", None), ("orders", None)]


class TestSqlRows:
    """Test cases for reading and writing rows."""

    def test_upsert_on_key_column(self, sink_url: str):
        rows = [
            {"glide_row_id": "r1", "name": "A", "total_amount": 1.5},
            {"glide_row_id": "r2", "name": "B", "total_amount": 2},
        ]

        async def scenario(endpoint):
            first = await endpoint.write_rows("orders", rows, key_column="glide_row_id")
            await endpoint.write_rows(
                "orders",
                [{"glide_row_id": "r1", "name": "A (edited)", "total_amount": 3}],
                key_column="glide_row_id",
            )
            return first

        results = _run(sink_url, scenario)

        assert [r.row_id for r in results] == ["r1", "r2"]
        assert _fetch(sink_url, "SELECT glide_row_id, name FROM orders ORDER BY glide_row_id") == [
            ("r1", "A (edited)"),
            ("r2", "B"),
        ]

    def test_insert_without_key(self, sink_url: str):
        async def scenario(endpoint):
            return await endpoint.write_rows("orders", [{"name": "A"}, {"name": "A"}])

        results = _run(sink_url, scenario)

        assert [r.row_id for r in results] == [None, None]
        assert _fetch(sink_url, "SELECT count(*) FROM orders") == [(2,)]

    def test_dates_stored_in_date_columns(self, sink_url: str):
        moment = datetime(2024, 3, 1, 15, 30, tzinfo=timezone.utc)

        async def scenario(endpoint):
            await endpoint.write_rows(
                "orders",
                [{"glide_row_id": "r1", "ordered_on": moment}],
                key_column="glide_row_id",
            )

        _run(sink_url, scenario)

        assert _fetch(sink_url, "SELECT ordered_on FROM orders") == [("2024-03-01",)]

    def test_read_pages(self, sink_url: str):
        async def scenario(endpoint):
            await endpoint.write_rows(
                "orders",
                [{"glide_row_id": f"r{i}", "name": f"Order {i}"} for i in range(1, 4)],
                key_column="glide_row_id",
            )
            first = await endpoint.read_rows("orders", None, 2)
            second = await endpoint.read_rows("orders", first.next_cursor, 2)
            return first, second

        first, second = _run(sink_url, scenario)

        assert [r["glide_row_id"] for r in first.rows] == ["r1", "r2"]
        assert first.next_cursor == "2"
        assert [r["glide_row_id"] for r in second.rows] == ["r3"]
        assert second.next_cursor is None

    def test_read_missing_table(self, sink_url: str):
        with pytest.raises(TableNotFoundError):
            _run(sink_url, lambda endpoint: endpoint.read_rows("invoices", None, 10))

    def test_upsert_without_unique_constraint(self, sink_url: str):
        """A key column with no unique constraint is updated or inserted row by row."""

        async def scenario(endpoint):
            await endpoint.write_rows(
                "notes",
                [{"glide_row_id": "r1", "body": "x"}, {"glide_row_id": "r2", "body": "y"}],
                key_column="glide_row_id",
            )
            await endpoint.write_rows(
                "notes",
                [{"glide_row_id": "r1", "body": "x2"}, {"glide_row_id": "r3", "body": "z"}],
                key_column="glide_row_id",
            )
            return await endpoint.list_columns("notes")

        columns = _run(sink_url, scenario)

        assert {c.name: c.unique for c in columns} == {
            "id": True,
            "glide_row_id": False,
            "body": False,
        }
        assert _fetch(sink_url, "SELECT glide_row_id, body FROM notes ORDER BY glide_row_id") == [
            ("r1", "x2"),
            ("r2", "y"),
            ("r3", "z"),
        ]

    def test_rejected_batch_writes_nothing(self, sink_url: str):
        """The whole batch is rejected when one row violates a constraint."""

        async def scenario(endpoint):
            await endpoint.write_rows(
                "notes",
                [{"glide_row_id": "r1", "body": "x"}, {"glide_row_id": "r2", "body": None}],
                key_column="glide_row_id",
            )

        with pytest.raises(EndpointWriteError):
            _run(sink_url, scenario)

        assert _fetch(sink_url, "SELECT count(*) FROM notes") == [(0,)]
