"""Base endpoint interface for sync sources and sinks."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from glidesync.core.models.schemas import ColumnSchema, RowPage, RowWriteResult, TableInfo


class SyncEndpoint(ABC):
    """Abstract base class for row-oriented sync endpoints.

    An endpoint is either side of a mapping: the Glide app that owns the
    source table or the relational database that owns the sink table. The
    orchestrator only talks to endpoints through this interface, so a run
    can go in either direction.

    All methods are async. Use the endpoint as an async context manager to
    open and release its connection.
    """

    kind: str = ""

    def __init__(self, config: BaseModel) -> None:
        """Initialize endpoint with validated configuration.

        Args:
            config: Pydantic model with connection configuration.
        """
        self.config = config

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            EndpointConnectionError: If the endpoint cannot be reached.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection and release resources."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Check that the endpoint is reachable and accepts the credentials."""
        pass

    @abstractmethod
    async def list_tables(self) -> list[TableInfo]:
        """List the tables the endpoint can address.

        Raises:
            EndpointConnectionError: If the endpoint cannot be reached.
        """
        pass

    @abstractmethod
    async def list_columns(self, table: str) -> list[ColumnSchema]:
        """Describe the columns of a table.

        Raises:
            TableNotFoundError: If the table does not exist.
            EndpointConnectionError: If the endpoint cannot be reached.
        """
        pass

    @abstractmethod
    async def read_rows(
        self,
        table: str,
        cursor: str | None,
        batch_size: int,
    ) -> RowPage:
        """Read one page of rows.

        Args:
            table: Table to read.
            cursor: Cursor returned by the previous page, or None to start.
            batch_size: Maximum number of rows to return.

        Returns:
            RowPage whose next_cursor is None once the table is exhausted.
        """
        pass

    @abstractmethod
    async def write_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        key_column: str | None = None,
    ) -> list[RowWriteResult]:
        """Write a batch of rows.

        Rows are upserted on `key_column` when it is given and present in the
        row, and inserted otherwise.

        Returns:
            One RowWriteResult per input row, in order.

        Raises:
            EndpointWriteError: If the batch as a whole was rejected.
            EndpointConnectionError: If the endpoint cannot be reached.
        """
        pass

    async def __aenter__(self) -> "SyncEndpoint":
        """Async context manager entry - open connection."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit - close connection."""
        await self.disconnect()
